"""
Validate motion-estimation options and print the resolved frequencies.

USAGE:
------
python scripts/check_estimator_options.py --params2 --k_cut_A 20 --box 256 --angpix 1.1
python scripts/check_estimator_options.py --params3 --k_cut 30 --box 256 --angpix 1.1 \
    --save options.json
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from polish_solver.alignment.interfaces import ObservationModel
from polish_solver.core.parameters import (
    add_arguments,
    options_from_args,
    validate_options,
    save_options_to_json,
)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Check motion-estimation options')
    parser.add_argument('--box', type=int, required=True, help='Box size [px]')
    parser.add_argument('--angpix', type=float, required=True, help='Pixel size [A]')
    parser.add_argument('--save', type=Path, default=None,
                        help='Write the options to this JSON file if they are valid')
    add_arguments(parser)

    args = parser.parse_args()
    options = options_from_args(args)

    result = validate_options(options, ObservationModel(args.angpix), args.box)

    if not result.ok:
        for message in result.messages():
            print(f"ERROR: {message}")
        sys.exit(1)

    print(f"alignment cutoff:  {result.k_cutoff:.3f} px = {result.k_cutoff_angst:.3f} A")
    print(f"evaluation start:  {result.k_eval:.3f} px = {result.k_eval_angst:.3f} A")
    print(f"parameters:        {2 if options.estimate_two else 3 if options.estimate_three else 0}")

    if args.save is not None:
        save_options_to_json(options, args.save)
        print(f"saved to {args.save}")
