"""
Core module for polish-solver.

Contains the hyperparameter scaling constants, option defaults, option
dataclasses and configuration validation.
"""

from polish_solver.core.constants import (
    VEL_SCALE,
    DIV_SCALE,
    ACC_SCALE,
    ACC_DISABLED,
    MIN_PARTICLES_PER_MICROGRAPH,
    BFAC_STEPS_PER_ITER,
    BFAC_NUM_ITERS,
    DEFAULTS,
)
from polish_solver.core.parameters import (
    EstimatorOptions,
    BFactorOptions,
    ValidationIssue,
    ValidationResult,
    ConfigurationError,
    validate_options,
    add_arguments,
    options_from_args,
    bfactor_options_from_args,
    load_options_from_json,
    save_options_to_json,
)

__all__ = [
    # Constants
    "VEL_SCALE",
    "DIV_SCALE",
    "ACC_SCALE",
    "ACC_DISABLED",
    "MIN_PARTICLES_PER_MICROGRAPH",
    "BFAC_STEPS_PER_ITER",
    "BFAC_NUM_ITERS",
    "DEFAULTS",
    # Options and validation
    "EstimatorOptions",
    "BFactorOptions",
    "ValidationIssue",
    "ValidationResult",
    "ConfigurationError",
    "validate_options",
    "add_arguments",
    "options_from_args",
    "bfactor_options_from_args",
    "load_options_from_json",
    "save_options_to_json",
]
