"""
Optimization module for polish-solver.

Estimates the trajectory smoothness hyperparameters (s_vel, s_div, s_acc)
by Nelder-Mead search over a cross-validated trajectory score.
"""

from polish_solver.optimization.simplex import SimplexOptimizer
from polish_solver.optimization.hyperparameter_problem import (
    HyperParameterProblem,
    TwoHyperParameterProblem,
    ThreeHyperParameterProblem,
)
from polish_solver.optimization.parameter_estimator import (
    MotionParamEstimator,
    EstimatorState,
    ParameterEstimate,
    sample_micrographs,
    round_to_resolution,
)

__all__ = [
    'SimplexOptimizer',
    'HyperParameterProblem',
    'TwoHyperParameterProblem',
    'ThreeHyperParameterProblem',
    'MotionParamEstimator',
    'EstimatorState',
    'ParameterEstimate',
    'sample_micrographs',
    'round_to_resolution',
]
