"""
polish-solver - Motion hyperparameter and B-factor estimation for cryo-EM
particle polishing.

Two procedures:
1. MotionParamEstimator: Nelder-Mead search for the trajectory smoothness
   priors (s_vel, s_div, s_acc) maximizing a cross-validated score over a
   random sample of micrographs.
2. BFactorRefiner / fit_decay_scale: coarse-to-fine fit of a B-factor and a
   scale factor to radial Fourier amplitude ratios.

Main Interface:
    from polish_solver import MotionParamEstimator, EstimatorOptions

    options = EstimatorOptions(estimate_two=True, k_cutoff_angst=20.0)
    estimator = MotionParamEstimator(options, n_threads=8)
    estimator.configure(micrographs, solver, reference, obs_model,
                        box_size=256, frame_count=40)
    estimator.prepare()
    print(estimator.run().summary())
    estimator.close()

The trajectory solver, reference projector and image loading are supplied
by the caller (see polish_solver.alignment.interfaces).
"""

from polish_solver.core import (
    VEL_SCALE,
    DIV_SCALE,
    ACC_SCALE,
    EstimatorOptions,
    BFactorOptions,
    ConfigurationError,
    ValidationIssue,
    validate_options,
)
from polish_solver.spatial import RadialAccumulator, RadialProfile
from polish_solver.fitting import (
    DecayScaleResult,
    fit_decay_scale,
    BFactorRefiner,
)
from polish_solver.alignment import (
    AlignmentSet,
    MicrographRecord,
    MicrographLoadError,
    ObservationModel,
)
from polish_solver.optimization import (
    SimplexOptimizer,
    TwoHyperParameterProblem,
    ThreeHyperParameterProblem,
    MotionParamEstimator,
    ParameterEstimate,
)

__version__ = "0.1.0"

__all__ = [
    # Constants
    "VEL_SCALE",
    "DIV_SCALE",
    "ACC_SCALE",
    # Configuration
    "EstimatorOptions",
    "BFactorOptions",
    "ConfigurationError",
    "ValidationIssue",
    "validate_options",
    # Decay fitting
    "RadialAccumulator",
    "RadialProfile",
    "DecayScaleResult",
    "fit_decay_scale",
    "BFactorRefiner",
    # Alignment data
    "AlignmentSet",
    "MicrographRecord",
    "MicrographLoadError",
    "ObservationModel",
    # Hyperparameter search
    "SimplexOptimizer",
    "TwoHyperParameterProblem",
    "ThreeHyperParameterProblem",
    "MotionParamEstimator",
    "ParameterEstimate",
]
