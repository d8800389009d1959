"""
Fit a B-factor and scale factor to a saved radial profile.

The profile file holds two columns (or arrays in an .npz): the radially
binned predicted power and the observed/predicted cross term, one row per
integer frequency radius starting at 0.

USAGE:
------
# Fit with the default B-factor range
python scripts/fit_decay_profile.py profile.txt --box 256 --angpix 1.1

# Narrow range, finer search
python scripts/fit_decay_profile.py profile.npz --box 256 --angpix 1.1 \
    --bfac_min_B 0 --bfac_max_B 150 --steps 40 --depth 6
"""

import argparse
import sys
from pathlib import Path

import numpy as np
from tabulate import tabulate

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from polish_solver.core.constants import BFAC_STEPS_PER_ITER, BFAC_NUM_ITERS
from polish_solver.core.parameters import add_arguments, bfactor_options_from_args
from polish_solver.fitting.bfactor_fit import (
    fit_decay_scale,
    weighted_residual,
    decay_angstrom_to_px,
)
from polish_solver.spatial.radial import RadialProfile


def load_profile(path: Path) -> RadialProfile:
    if path.suffix == '.npz':
        data = np.load(path)
        return RadialProfile(power=data['power'], cross=data['cross'])
    table = np.loadtxt(path, ndmin=2)
    return RadialProfile(power=table[:, 0], cross=table[:, 1])


if __name__ == '__main__':
    parser = argparse.ArgumentParser(
        description='Fit B-factor and scale to a radial profile',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('profile', type=Path, help='Profile file (.txt columns or .npz)')
    parser.add_argument('--box', type=int, required=True, help='Box size [px]')
    parser.add_argument('--angpix', type=float, required=True, help='Pixel size [A]')
    parser.add_argument('--steps', type=int, default=BFAC_STEPS_PER_ITER,
                        help='Candidates per refinement level (default: %(default)s)')
    parser.add_argument('--depth', type=int, default=BFAC_NUM_ITERS,
                        help='Number of refinement levels (default: %(default)s)')
    add_arguments(parser)

    args = parser.parse_args()
    options = bfactor_options_from_args(args)

    profile = load_profile(args.profile)

    # frequencies below kmin are dominated by the particle envelope
    kmin_px = args.box * args.angpix / options.kmin
    mask = profile.radii >= kmin_px
    power = np.where(mask, profile.power, 0.0)
    cross = np.where(mask, profile.cross, 0.0)

    result = fit_decay_scale(
        power, cross,
        decay_angstrom_to_px(options.min_B, args.box, args.angpix),
        decay_angstrom_to_px(options.max_B, args.box, args.angpix),
        options.min_scale, args.steps, args.depth)

    print("=" * 70)
    print("B-FACTOR FIT")
    print("=" * 70)
    print(f"  B     = {result.decay_angstrom(args.box, args.angpix):.3f} A^2")
    print(f"  scale = {result.scale:.4f}")
    print(f"  residual = {weighted_residual(power, cross, result.decay, result.scale):.6g}")
    print()

    ratio = profile.ratio()
    model = result.model(profile.radii)
    rows = [[r, ratio[r], model[r]] for r in profile.radii if mask[r]]
    print(tabulate(rows, headers=["r [px]", "observed", "model"], floatfmt=".4f"))
