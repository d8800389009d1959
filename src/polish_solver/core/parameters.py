"""
Option dataclasses and configuration validation.

Options can be built directly, read from an argparse namespace or loaded
from JSON. Validation never aborts by itself: validate_options() collects
every problem into a ValidationResult, and the estimator decides to raise
ConfigurationError from it.
"""

import argparse
import json
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from polish_solver.core.constants import DEFAULTS


@dataclass
class EstimatorOptions:
    """
    Options of the motion hyperparameter estimation.

    Attributes:
        estimate_two: Estimate (s_vel, s_div) with s_acc held fixed.
        estimate_three: Estimate (s_vel, s_div, s_acc).
        k_cutoff: Alignment frequency cutoff in pixels (<= 0: unset).
        k_cutoff_angst: Alignment frequency cutoff in Angstrom (<= 0: unset).
        k_eval: Lower evaluation frequency in pixels (<= 0: unset).
        k_eval_angst: Lower evaluation frequency in Angstrom (<= 0: unset).
        min_particles: Number of particles to sample micrographs for.
        sig_vel: Initial velocity sigma.
        sig_div: Initial divergence sigma.
        sig_acc: Initial acceleration sigma (<= 0: no acceleration prior).
        initial_step: Initial simplex step size (problem space).
        conv: Simplex size below which the search stops (problem space).
        max_iters: Maximum number of simplex iterations.
        max_range: Crop cross-correlation maps to this motion range [px]
            (<= 0: no cropping).
        seed: Seed of the micrograph selection.
    """
    estimate_two: bool = DEFAULTS["estimate_two"]
    estimate_three: bool = DEFAULTS["estimate_three"]
    k_cutoff: float = DEFAULTS["k_cutoff"]
    k_cutoff_angst: float = DEFAULTS["k_cutoff_angst"]
    k_eval: float = DEFAULTS["k_eval"]
    k_eval_angst: float = DEFAULTS["k_eval_angst"]
    min_particles: int = DEFAULTS["min_particles"]
    sig_vel: float = DEFAULTS["sig_vel"]
    sig_div: float = DEFAULTS["sig_div"]
    sig_acc: float = DEFAULTS["sig_acc"]
    initial_step: float = DEFAULTS["initial_step"]
    conv: float = DEFAULTS["conv"]
    max_iters: int = DEFAULTS["max_iters"]
    max_range: int = DEFAULTS["max_range"]
    seed: int = DEFAULTS["seed"]

    @property
    def anything_to_do(self) -> bool:
        return self.estimate_two or self.estimate_three


@dataclass
class BFactorOptions:
    """
    Options of the per-particle / per-micrograph B-factor estimation.

    Attributes:
        per_micrograph: Fit one B-factor per micrograph instead of per particle.
        min_B: Minimal allowed B-factor [A^2].
        max_B: Maximal allowed B-factor [A^2].
        min_scale: Minimal allowed scale factor (rejects inverted fits).
        kmin: Inner frequency threshold [A].
    """
    per_micrograph: bool = DEFAULTS["bfac_per_micrograph"]
    min_B: float = DEFAULTS["bfac_min_B"]
    max_B: float = DEFAULTS["bfac_max_B"]
    min_scale: float = DEFAULTS["bfac_min_scale"]
    kmin: float = DEFAULTS["bfac_kmin"]

    def __post_init__(self):
        if self.max_B <= self.min_B:
            raise ValueError(
                f"max_B ({self.max_B}) must be larger than min_B ({self.min_B})")
        if self.kmin <= 0:
            raise ValueError(f"kmin must be positive, got {self.kmin}")


# =============================================================================
# Validation
# =============================================================================

class ValidationIssue(Enum):
    """Reasons for rejecting an estimator configuration."""
    BOTH_CUTOFF_UNITS = "both_cutoff_units"
    BOTH_EVAL_UNITS = "both_eval_units"
    MISSING_CUTOFF = "missing_cutoff"
    BOTH_MODES = "both_modes"
    SOLVER_NOT_READY = "solver_not_ready"
    NO_PIXEL_SIZE = "no_pixel_size"


ISSUE_MESSAGES: Dict[ValidationIssue, str] = {
    ValidationIssue.BOTH_CUTOFF_UNITS:
        "Cutoff frequency can only be provided in pixels (--k_cut) "
        "or Angstrom (--k_cut_A), not both.",
    ValidationIssue.BOTH_EVAL_UNITS:
        "Evaluation frequency can only be provided in pixels (--k_eval) "
        "or Angstrom (--k_eval_A), not both.",
    ValidationIssue.MISSING_CUTOFF:
        "Parameter estimation requires a freq. cutoff (--k_cut or --k_cut_A).",
    ValidationIssue.BOTH_MODES:
        "Only 2 or 3 parameters can be estimated (--params2 or --params3), not both.",
    ValidationIssue.SOLVER_NOT_READY:
        "The parameter estimator was configured before the trajectory solver was ready.",
    ValidationIssue.NO_PIXEL_SIZE:
        "Converting between pixel and Angstrom frequencies requires an "
        "observation model and a box size.",
}


class ConfigurationError(RuntimeError):
    """Fatal configuration or usage error of the estimator."""

    def __init__(self, message: str, issues: Optional[List[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = list(issues or [])


@dataclass
class ValidationResult:
    """
    Outcome of validate_options().

    The frequency fields hold the resolved values (both units filled in
    where possible); they are only meaningful when ok is True.
    """
    issues: List[ValidationIssue] = field(default_factory=list)
    k_cutoff: float = -1.0
    k_cutoff_angst: float = -1.0
    k_eval: float = -1.0
    k_eval_angst: float = -1.0

    @property
    def ok(self) -> bool:
        return not self.issues

    def messages(self) -> List[str]:
        return [ISSUE_MESSAGES[issue] for issue in self.issues]

    def raise_if_invalid(self) -> None:
        """Raise ConfigurationError listing every issue, if any."""
        if self.issues:
            raise ConfigurationError(
                "ERROR: " + " ".join(self.messages()), self.issues)


def validate_options(
    options: EstimatorOptions,
    obs_model=None,
    box_size: Optional[int] = None,
    solver_ready: bool = True,
) -> ValidationResult:
    """
    Check an estimator configuration and resolve its frequencies.

    Args:
        options: Options to validate.
        obs_model: Object with ang_to_pix()/pix_to_ang(); only needed when
            a frequency has to be converted between units.
        box_size: Box size in pixels used for unit conversion.
        solver_ready: Whether the trajectory solver has been initialized.

    Returns:
        ValidationResult with all issues found and the resolved frequencies.
    """
    result = ValidationResult(
        k_cutoff=options.k_cutoff,
        k_cutoff_angst=options.k_cutoff_angst,
        k_eval=options.k_eval,
        k_eval_angst=options.k_eval_angst,
    )

    if not solver_ready:
        result.issues.append(ValidationIssue.SOLVER_NOT_READY)

    if options.k_cutoff_angst > 0.0 and options.k_cutoff > 0.0:
        result.issues.append(ValidationIssue.BOTH_CUTOFF_UNITS)

    if options.k_eval_angst > 0.0 and options.k_eval > 0.0:
        result.issues.append(ValidationIssue.BOTH_EVAL_UNITS)

    if options.estimate_two and options.estimate_three:
        result.issues.append(ValidationIssue.BOTH_MODES)

    can_convert = obs_model is not None and box_size is not None

    def convert(value: float, to_pixels: bool) -> float:
        if not can_convert:
            if ValidationIssue.NO_PIXEL_SIZE not in result.issues:
                result.issues.append(ValidationIssue.NO_PIXEL_SIZE)
            return -1.0
        if to_pixels:
            return obs_model.ang_to_pix(value, box_size)
        return obs_model.pix_to_ang(value, box_size)

    if ValidationIssue.BOTH_CUTOFF_UNITS not in result.issues:
        if options.k_cutoff_angst > 0.0 and options.k_cutoff <= 0.0:
            result.k_cutoff = convert(options.k_cutoff_angst, to_pixels=True)
        elif options.k_cutoff > 0.0 and options.k_cutoff_angst <= 0.0:
            result.k_cutoff_angst = convert(options.k_cutoff, to_pixels=False)

    if options.anything_to_do and result.k_cutoff <= 0.0 \
            and ValidationIssue.BOTH_CUTOFF_UNITS not in result.issues \
            and ValidationIssue.NO_PIXEL_SIZE not in result.issues:
        result.issues.append(ValidationIssue.MISSING_CUTOFF)

    if ValidationIssue.BOTH_EVAL_UNITS not in result.issues:
        if options.k_eval <= 0.0 and options.k_eval_angst > 0.0:
            result.k_eval = convert(options.k_eval_angst, to_pixels=True)
        elif options.k_eval > 0.0 and options.k_eval_angst <= 0.0:
            result.k_eval_angst = convert(options.k_eval, to_pixels=False)
        else:
            # evaluate everything above the alignment cutoff
            result.k_eval = result.k_cutoff
            result.k_eval_angst = result.k_cutoff_angst

    return result


# =============================================================================
# argparse / JSON
# =============================================================================

def add_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the estimator and B-factor options on an argparse parser."""
    group = parser.add_argument_group("Parameter estimation")
    group.add_argument("--params2", action="store_true", dest="estimate_two",
                       help="Estimate 2 parameters instead of motion")
    group.add_argument("--params3", action="store_true", dest="estimate_three",
                       help="Estimate 3 parameters instead of motion")
    group.add_argument("--k_cut", type=float, dest="k_cutoff", default=DEFAULTS["k_cutoff"],
                       help="Freq. cutoff for parameter estimation [Pixels]")
    group.add_argument("--k_cut_A", type=float, dest="k_cutoff_angst",
                       default=DEFAULTS["k_cutoff_angst"],
                       help="Freq. cutoff for parameter estimation [Angstrom]")
    group.add_argument("--k_eval", type=float, dest="k_eval", default=DEFAULTS["k_eval"],
                       help="Threshold freq. for parameter evaluation [Pixels]")
    group.add_argument("--k_eval_A", type=float, dest="k_eval_angst",
                       default=DEFAULTS["k_eval_angst"],
                       help="Threshold freq. for parameter evaluation [Angstrom]")
    group.add_argument("--min_p", type=int, dest="min_particles",
                       default=DEFAULTS["min_particles"],
                       help="Minimum number of particles on which to estimate the parameters "
                            "(default: %(default)s)")
    group.add_argument("--s_vel_0", type=float, dest="sig_vel", default=DEFAULTS["sig_vel"],
                       help="Initial s_vel (default: %(default)s)")
    group.add_argument("--s_div_0", type=float, dest="sig_div", default=DEFAULTS["sig_div"],
                       help="Initial s_div (default: %(default)s)")
    group.add_argument("--s_acc_0", type=float, dest="sig_acc", default=DEFAULTS["sig_acc"],
                       help="Initial s_acc (default: %(default)s)")
    group.add_argument("--in_step", type=float, dest="initial_step",
                       default=DEFAULTS["initial_step"],
                       help="Initial step size in s_div (default: %(default)s)")
    group.add_argument("--conv", type=float, dest="conv", default=DEFAULTS["conv"],
                       help="Abort when simplex diameter falls below this (default: %(default)s)")
    group.add_argument("--par_iters", type=int, dest="max_iters", default=DEFAULTS["max_iters"],
                       help="Max. number of iterations (default: %(default)s)")
    group.add_argument("--mot_range", type=int, dest="max_range", default=DEFAULTS["max_range"],
                       help="Limit allowed motion range [Px] (default: %(default)s)")
    group.add_argument("--seed", type=int, dest="seed", default=DEFAULTS["seed"],
                       help="Random seed for micrograph selection (default: %(default)s)")

    bfac = parser.add_argument_group("B-factor estimation")
    bfac.add_argument("--bfac_per_mg", action="store_true", dest="bfac_per_micrograph",
                      help="Estimate B-factors per micrograph, instead of per particle")
    bfac.add_argument("--bfac_min_B", type=float, dest="bfac_min_B",
                      default=DEFAULTS["bfac_min_B"],
                      help="Minimal allowed B-factor (default: %(default)s)")
    bfac.add_argument("--bfac_max_B", type=float, dest="bfac_max_B",
                      default=DEFAULTS["bfac_max_B"],
                      help="Maximal allowed B-factor (default: %(default)s)")
    bfac.add_argument("--bfac_min_scale", type=float, dest="bfac_min_scale",
                      default=DEFAULTS["bfac_min_scale"],
                      help="Minimal allowed scale-factor, essential for outlier rejection "
                           "(default: %(default)s)")
    bfac.add_argument("--kmin_bfac", type=float, dest="bfac_kmin",
                      default=DEFAULTS["bfac_kmin"],
                      help="Inner freq. threshold for B-factor estimation [Angst] "
                           "(default: %(default)s)")


def options_from_args(args: argparse.Namespace) -> EstimatorOptions:
    """Build EstimatorOptions from a namespace produced by add_arguments()."""
    names = {f.name for f in fields(EstimatorOptions)}
    return EstimatorOptions(**{k: v for k, v in vars(args).items() if k in names})


def bfactor_options_from_args(args: argparse.Namespace) -> BFactorOptions:
    """Build BFactorOptions from a namespace produced by add_arguments()."""
    return BFactorOptions(
        per_micrograph=args.bfac_per_micrograph,
        min_B=args.bfac_min_B,
        max_B=args.bfac_max_B,
        min_scale=args.bfac_min_scale,
        kmin=args.bfac_kmin,
    )


def save_options_to_json(options: EstimatorOptions, path: Union[str, Path]) -> None:
    """Write estimator options to a JSON file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(asdict(options), f, indent=4)


def load_options_from_json(path: Union[str, Path]) -> EstimatorOptions:
    """
    Read estimator options from a JSON file.

    Unknown keys are ignored; missing keys keep their defaults.
    """
    with open(path, 'r', encoding='utf-8') as f:
        loaded: Dict[str, Any] = json.load(f)
    names = {f.name for f in fields(EstimatorOptions)}
    return EstimatorOptions(**{k: v for k, v in loaded.items() if k in names})
