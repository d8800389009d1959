"""
Derivative-free simplex minimization.

Thin wrapper around scipy's Nelder-Mead with the conventions used by the
hyperparameter search: one initial step size for every dimension, an
absolute simplex-size tolerance, and an iteration cap.
"""

from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize, OptimizeResult


class SimplexOptimizer:
    """
    Nelder-Mead minimizer.

    Stops when the simplex has shrunk below `tolerance` (largest coordinate
    distance of any vertex to the best one) or after `max_iterations`
    iterations, whichever comes first. The best cost never increases between
    iterations.
    """

    def __init__(self):
        self.last_result: Optional[OptimizeResult] = None

    @staticmethod
    def initial_simplex(initial: Sequence[float], step: float) -> NDArray:
        """x0 plus one vertex displaced by `step` along each axis."""
        x0 = np.asarray(initial, dtype=np.float64)
        n = len(x0)
        sim = np.tile(x0, (n + 1, 1))
        for i in range(n):
            sim[i + 1, i] += step
        return sim

    def optimize(
        self,
        initial: Sequence[float],
        cost_fn: Callable[[NDArray], float],
        initial_step: float,
        tolerance: float,
        max_iterations: int,
        report: Optional[Callable[[int, float, NDArray], None]] = None,
    ) -> Tuple[NDArray, float]:
        """
        Minimize cost_fn starting from `initial`.

        Args:
            initial: Starting point.
            cost_fn: Function R^n -> R to minimize.
            initial_step: Edge length of the initial simplex.
            tolerance: Simplex size at which to stop.
            max_iterations: Maximum number of iterations.
            report: Optional callback(iteration, best_cost, best_x) called
                after every iteration.

        Returns:
            Tuple (best point, best cost).
        """
        iteration = [0]

        def callback(intermediate_result: OptimizeResult):
            iteration[0] += 1
            if report is not None:
                report(iteration[0], float(intermediate_result.fun),
                       np.array(intermediate_result.x))

        result = minimize(
            cost_fn,
            np.asarray(initial, dtype=np.float64),
            method='Nelder-Mead',
            callback=callback,
            options={
                'initial_simplex': self.initial_simplex(initial, initial_step),
                'xatol': tolerance,
                'fatol': np.inf,
                'maxiter': max_iterations,
            },
        )
        self.last_result = result

        return np.array(result.x), float(result.fun)
