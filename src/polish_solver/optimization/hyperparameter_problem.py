"""
Cost functions of the motion hyperparameter search.

A candidate lives in "problem space", where each physical sigma is scaled
by a fixed constant (see core.constants) so that the simplex can use a
single step size for all dimensions:

    TwoHyperParameterProblem:    x = (s_vel·VEL_SCALE, s_div·DIV_SCALE)
                                 s_acc held fixed
    ThreeHyperParameterProblem:  x = (s_vel·VEL_SCALE, s_div·DIV_SCALE,
                                      s_acc·ACC_SCALE)

Evaluating a candidate re-runs the trajectory fit over all cached
micrographs, which is expensive; results are never memoized.
"""

from typing import Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from polish_solver.core.constants import VEL_SCALE, DIV_SCALE, ACC_SCALE


class HyperParameterProblem:
    """
    Base class: maps problem-space vectors to physical sigmas and scores them.

    Subclasses define dim, motion_to_problem() and problem_to_motion().
    The estimator must provide evaluate_params(sig_vals) -> scores.
    """

    dim: int = 0

    def __init__(self, estimator):
        self.estimator = estimator
        self.evaluations = 0

    @staticmethod
    def motion_to_problem(sigmas: Sequence[float]) -> NDArray:
        raise NotImplementedError

    @staticmethod
    def problem_to_motion(x: Sequence[float]) -> NDArray:
        raise NotImplementedError

    def to_sigmas(self, x: Sequence[float]) -> Tuple[float, float, float]:
        """Physical (s_vel, s_div, s_acc) of a problem-space vector."""
        raise NotImplementedError

    def __call__(self, x: Sequence[float]) -> float:
        """Negated score of candidate x (the simplex minimizes)."""
        self.evaluations += 1
        scores = self.estimator.evaluate_params([self.to_sigmas(x)])
        return -float(scores[0])

    def report(self, iteration: int, cost: float, x: Sequence[float]) -> str:
        s_vel, s_div, s_acc = self.to_sigmas(x)
        line = f"{iteration} \t {s_vel:.6f} \t {s_div:.6f} \t {s_acc:.6f} \t {-cost:.6f}"
        return line


class TwoHyperParameterProblem(HyperParameterProblem):
    """Search over (s_vel, s_div) with a fixed acceleration sigma."""

    dim = 2

    def __init__(self, estimator, sig_acc: float):
        super().__init__(estimator)
        self.sig_acc = sig_acc

    @staticmethod
    def motion_to_problem(sigmas: Sequence[float]) -> NDArray:
        return np.array([sigmas[0] * VEL_SCALE, sigmas[1] * DIV_SCALE])

    @staticmethod
    def problem_to_motion(x: Sequence[float]) -> NDArray:
        return np.array([x[0] / VEL_SCALE, x[1] / DIV_SCALE])

    def to_sigmas(self, x: Sequence[float]) -> Tuple[float, float, float]:
        vd = self.problem_to_motion(x)
        return float(vd[0]), float(vd[1]), self.sig_acc


class ThreeHyperParameterProblem(HyperParameterProblem):
    """Search over (s_vel, s_div, s_acc)."""

    dim = 3

    @staticmethod
    def motion_to_problem(sigmas: Sequence[float]) -> NDArray:
        return np.array([
            sigmas[0] * VEL_SCALE,
            sigmas[1] * DIV_SCALE,
            sigmas[2] * ACC_SCALE,
        ])

    @staticmethod
    def problem_to_motion(x: Sequence[float]) -> NDArray:
        return np.array([
            x[0] / VEL_SCALE,
            x[1] / DIV_SCALE,
            x[2] / ACC_SCALE,
        ])

    def to_sigmas(self, x: Sequence[float]) -> Tuple[float, float, float]:
        vda = self.problem_to_motion(x)
        return float(vda[0]), float(vda[1]), float(vda[2])
