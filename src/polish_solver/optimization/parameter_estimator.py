"""
Motion hyperparameter estimation.

Finds the trajectory smoothness priors (s_vel, s_div and optionally s_acc)
that maximize a cross-validated score of the fitted particle trajectories.

APPROACH:
=========
1. Pick a random (seeded) subset of micrographs holding at least
   min_particles particles, ignoring micrographs with fewer than 2.
2. Prepare alignment data once: CC maps computed with frame weights
   band-limited to the alignment cutoff k_cut, plus the observed and
   predicted Fourier data above the evaluation threshold k_eval.
3. Run a Nelder-Mead search over the hyperparameters. Each candidate
   re-fits all trajectories against the cached CC maps (frequencies below
   k_cut) and scores them on the held-out frequencies k_eval..k_out:

       TSC = Σ num / sqrt(Σ w_obs · Σ w_pred)

4. Round the optimum to the resolution of the search (conv / 2 in problem
   space) and report it.

Usage:
    with MotionParamEstimator(options, n_threads=8) as estimator:
        estimator.configure(micrographs, solver, reference, obs_model,
                            box_size=s, frame_count=fc)
        estimator.prepare()
        estimate = estimator.run()
    print(estimate.command_line())
"""

import gc
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from polish_solver.core.constants import (
    VEL_SCALE,
    DIV_SCALE,
    ACC_SCALE,
    ACC_DISABLED,
    MIN_PARTICLES_PER_MICROGRAPH,
)
from polish_solver.core.parameters import (
    EstimatorOptions,
    ConfigurationError,
    validate_options,
)
from polish_solver.alignment.alignment_set import AlignmentSet
from polish_solver.alignment.interfaces import MicrographLoadError, MicrographRecord
from polish_solver.spatial.filters import band_limit_envelope
from polish_solver.optimization.simplex import SimplexOptimizer
from polish_solver.optimization.hyperparameter_problem import (
    HyperParameterProblem,
    TwoHyperParameterProblem,
    ThreeHyperParameterProblem,
)
from polish_solver.reporting.results_reporter import append_to_log, format_micrograph_table


class EstimatorState(Enum):
    UNCONFIGURED = 0
    CONFIGURED = 1
    PREPARED = 2
    OPTIMIZED = 3


@dataclass
class ParameterEstimate:
    """Result of MotionParamEstimator.run()."""

    # Reported (rounded) parameters
    sig_vel: float
    sig_div: float
    sig_acc: float

    # Unrounded optimum and its score
    optimum: Tuple[float, float, float]
    tsc: float

    n_params: int
    micrograph_count: int = 0
    particle_count: int = 0
    evaluations: int = 0
    time_seconds: float = 0.0

    def command_line(self) -> str:
        return (f"--s_vel {self.sig_vel:g} --s_div {self.sig_div:g} "
                f"--s_acc {self.sig_acc:g}")

    def summary(self) -> str:
        """Generate a summary of the estimation."""
        lines = [
            "=" * 70,
            f"MOTION PARAMETER ESTIMATION ({self.n_params} PARAMETERS)",
            "=" * 70,
            "",
            f"  s_vel = {self.sig_vel:g}",
            f"  s_div = {self.sig_div:g}",
            f"  s_acc = {self.sig_acc:g}"
            + ("  (no acceleration prior)" if self.sig_acc == ACC_DISABLED else ""),
            "",
            f"TSC at optimum: {self.tsc:.6f}",
            f"Micrographs: {self.micrograph_count}, particles: {self.particle_count}",
            f"Evaluations: {self.evaluations}",
            f"Time: {self.time_seconds:.2f} s",
            "",
            f"good parameters: {self.command_line()}",
            "=" * 70,
        ]
        return "\n".join(lines)


def sample_micrographs(
    micrographs: Sequence[MicrographRecord],
    min_particles: int,
    seed: int,
) -> Tuple[List[MicrographRecord], int]:
    """
    Randomly select micrographs until min_particles particles are reached.

    The micrographs are visited in an order drawn from a generator seeded
    with `seed`; micrographs with fewer than 2 particles are skipped.

    Args:
        micrographs: All available micrographs.
        min_particles: Particle count to reach.
        seed: Seed of the visiting order.

    Returns:
        Tuple (selected micrographs in visiting order, their particle count).
    """
    rng = np.random.default_rng(seed)
    order = rng.permutation(len(micrographs))

    selected = []
    pc = 0

    for m in order:
        mg = micrographs[int(m)]

        # trajectories cannot be fitted to a single particle
        if mg.particle_count < MIN_PARTICLES_PER_MICROGRAPH:
            continue

        selected.append(mg)
        pc += mg.particle_count

        if pc >= min_particles:
            break

    if pc < min_particles:
        warnings.warn(
            f"this dataset does not contain {min_particles} particles (--min_p) "
            f"in micrographs with at least {MIN_PARTICLES_PER_MICROGRAPH} particles; "
            f"using {pc}")

    return selected, pc


def round_to_resolution(value: float, conv: float) -> float:
    """Round a problem-space value to the nearest multiple of conv / 2."""
    return conv * 0.5 * np.floor(2.0 * value / conv + 0.5)


class MotionParamEstimator:
    """
    Estimates trajectory smoothness hyperparameters.

    States: UNCONFIGURED -> configure() -> CONFIGURED -> prepare() ->
    PREPARED -> run() -> OPTIMIZED.
    """

    def __init__(
        self,
        options: EstimatorOptions,
        n_threads: int = 1,
        verbose: bool = True,
        debug: bool = False,
        log_file: Optional[str] = None,
        optimizer: Optional[SimplexOptimizer] = None,
    ):
        """
        Initialize the estimator.

        Args:
            options: Estimation options.
            n_threads: Worker threads for per-particle work.
            verbose: Print progress information.
            debug: Print per-micrograph, per-candidate detail.
            log_file: Path to log file for optimizer iterations (optional).
            optimizer: Simplex optimizer to use (default: SimplexOptimizer()).
        """
        self.options = options
        self.n_threads = max(1, n_threads)
        self.verbose = verbose
        self.debug = debug
        self.log_file = log_file
        self.optimizer = optimizer or SimplexOptimizer()

        # one pool for the lifetime of the estimator, see close()
        self.executor: Optional[ThreadPoolExecutor] = None
        if self.n_threads > 1:
            self.executor = ThreadPoolExecutor(max_workers=self.n_threads)

        self.state = EstimatorState.UNCONFIGURED
        self.micrographs: List[MicrographRecord] = []
        self.particle_total = 0
        self.alignment_set: Optional[AlignmentSet] = None
        self.result: Optional[ParameterEstimate] = None

        self.k_cutoff = -1.0
        self.k_cutoff_angst = -1.0
        self.k_eval = -1.0
        self.k_eval_angst = -1.0
        self.k_out = -1.0

        self._eval_count = 0

    def close(self) -> None:
        """Shut down the worker pool."""
        if self.executor is not None:
            self.executor.shutdown(wait=True)
            self.executor = None

    def __enter__(self) -> "MotionParamEstimator":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _print(self, message: str):
        if self.verbose:
            print(message)
        if self.log_file:
            append_to_log(self.log_file, message)

    def _require(self, *states: EstimatorState, action: str):
        if self.state not in states:
            raise ConfigurationError(
                f"ERROR: MotionParamEstimator.{action}: estimator is {self.state.name.lower()}, "
                f"expected {' or '.join(s.name.lower() for s in states)}.")

    def anything_to_do(self) -> bool:
        return self.options.anything_to_do

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def configure(
        self,
        micrographs: Sequence[MicrographRecord],
        solver,
        reference,
        obs_model,
        box_size: int,
        frame_count: int,
    ) -> None:
        """
        Validate the options and select the micrographs to work on.

        Args:
            micrographs: All micrographs of the dataset.
            solver: TrajectorySolver.
            reference: ReferenceMap.
            obs_model: ObservationModel.
            box_size: Particle box size s in pixels.
            frame_count: Number of movie frames.

        Raises:
            ConfigurationError: If the options are inconsistent or the
                solver is not ready. Raised before any micrograph is sampled.
        """
        validation = validate_options(
            self.options, obs_model, box_size, solver_ready=solver.is_ready())
        validation.raise_if_invalid()

        self.solver = solver
        self.reference = reference
        self.obs_model = obs_model
        self.s = box_size
        self.fc = frame_count
        self.k_out = reference.k_out

        self.k_cutoff = validation.k_cutoff
        self.k_cutoff_angst = validation.k_cutoff_angst
        self.k_eval = validation.k_eval
        self.k_eval_angst = validation.k_eval_angst

        if self.options.anything_to_do:
            self._print(
                f" + maximum frequency to consider for alignment: "
                f"{self.k_cutoff_angst:.3f} A ({self.k_cutoff:.3f} px)")
            self._print(
                f" + frequency range to consider for evaluation:  "
                f"{self.k_eval_angst:.3f} - {obs_model.pix_to_ang(self.k_out, box_size):.3f} A "
                f"({self.k_eval:.3f} - {self.k_out:.3f} px)")

        self.micrographs, self.particle_total = sample_micrographs(
            micrographs, self.options.min_particles, self.options.seed)

        if self.verbose:
            self._print(" + micrographs randomly selected for parameter optimization:")
            self._print(format_micrograph_table(self.micrographs))
            self._print(f" + {self.particle_total} particles found in "
                        f"{len(self.micrographs)} micrographs")

        self.state = EstimatorState.CONFIGURED

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    def prepare(self) -> None:
        """
        Compute and cache the alignment data of all selected micrographs.

        Micrographs whose movies cannot be loaded are skipped with a warning
        and dropped from the sample.
        """
        self._require(EstimatorState.CONFIGURED, action="prepare")

        self._print(" + preparing alignment data...")

        damage = self.solver.damage_weights()
        align_damage = [
            band_limit_envelope(d, self.k_cutoff - 1, self.k_cutoff + 1) for d in damage]

        aset = AlignmentSet(
            self.micrographs, self.fc, self.s,
            self.k_eval + 2, self.k_out, self.options.max_range)

        for f in range(self.fc):
            aset.set_damage(f, damage[f])

        sig_vel_px = self.solver.normalize_sig_vel(self.options.sig_vel)
        sig_div_px = self.solver.normalize_sig_div(self.options.sig_div)
        sig_acc_px = self.solver.normalize_sig_acc(self.options.sig_acc)

        failed = []
        pctot = 0

        for g, mg in enumerate(self.micrographs):
            pc = mg.particle_count
            pctot += pc

            self._print(f"        micrograph {g + 1} / {len(self.micrographs)}: "
                        f"{pc} particles [{pctot} total]")

            try:
                data = self.solver.prep_micrograph(mg, self.n_threads, align_damage)
            except (MicrographLoadError, OSError) as e:
                warnings.warn(f"unable to load micrograph #{g + 1} ({mg.name}): {e}")
                failed.append(g)
                continue

            aset.positions[g] = np.asarray(data.positions, dtype=np.float64)
            aset.initial_tracks[g] = np.array(data.initial_tracks, dtype=np.float64)
            if data.glob_comp is not None:
                aset.glob_comp[g] = np.asarray(data.glob_comp, dtype=np.float64)

            def fill(p: int):
                for f in range(self.fc):
                    aset.copy_cc(g, p, f, data.movie_cc[p][f])
                    aset.set_observation(g, p, f, data.movie[p][f])
                pred = self.reference.predict(mg, p, self.obs_model, "opposite")
                aset.set_prediction(g, p, pred)

            # each worker writes its own particle slots
            if self.executor is not None:
                list(self.executor.map(fill, range(pc)))
            else:
                for p in range(pc):
                    fill(p)

            tracks = self.solver.optimize(
                aset.ccs[g], aset.initial_tracks[g],
                sig_vel_px, sig_acc_px, sig_div_px,
                aset.positions[g], aset.glob_comp[g])

            aset.initial_tracks[g] = np.array(tracks, dtype=np.float64)

            del data

        if failed:
            aset.remove(failed)
            self.micrographs = list(aset.micrographs)
            self.particle_total = sum(m.particle_count for m in self.micrographs)
            if not self.micrographs:
                warnings.warn("no micrograph could be prepared for parameter estimation")

        self.alignment_set = aset

        # movies and full-size CC maps are gone by now
        gc.collect()

        self._print("   done")
        self.state = EstimatorState.PREPARED

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate_params(self, sig_vals: Sequence[Sequence[float]]) -> NDArray:
        """
        Score candidate hyperparameters on all prepared micrographs.

        Args:
            sig_vals: Candidates (s_vel, s_div, s_acc) in physical units.

        Returns:
            TSC per candidate; 0 where the normalization weights vanish.
        """
        self._require(EstimatorState.PREPARED, EstimatorState.OPTIMIZED,
                      action="evaluate_params")

        count = len(sig_vals)
        sig_v_px = [self.solver.normalize_sig_vel(v[0]) for v in sig_vals]
        sig_d_px = [self.solver.normalize_sig_div(v[1]) for v in sig_vals]
        sig_a_px = [self.solver.normalize_sig_acc(v[2]) for v in sig_vals]

        aset = self.alignment_set
        tscs_as = np.zeros((count, 3))
        pctot = 0

        for g in range(len(aset)):
            pc = aset.particle_count(g)
            if pc < MIN_PARTICLES_PER_MICROGRAPH:
                continue

            pctot += pc

            if self.debug:
                print(f"    micrograph {g + 1} / {len(aset)}: {pc} particles [{pctot} total]")

            for i in range(count):
                if self.debug:
                    print(f"        evaluating: {tuple(sig_vals[i])}")

                tracks = self.solver.optimize(
                    aset.ccs[g], aset.initial_tracks[g],
                    sig_v_px[i], sig_a_px[i], sig_d_px[i],
                    aset.positions[g], aset.glob_comp[g])

                tscs_as[i] += aset.update_tsc(tracks, g, self.n_threads, self.executor)

        self._eval_count += count

        tscs = np.zeros(count)
        wg = tscs_as[:, 1] * tscs_as[:, 2]
        valid = wg > 0.0
        tscs[valid] = tscs_as[valid, 0] / np.sqrt(wg[valid])
        return tscs

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def _search(
        self,
        problem: HyperParameterProblem,
        initial: Sequence[float],
        initial_step: float,
        conv: float,
        max_iters: int,
    ) -> Tuple[NDArray, float]:
        if len(initial) != problem.dim:
            raise ValueError(
                f"{type(problem).__name__} takes {problem.dim} parameters, got {len(initial)}")

        self._print("\nit: \t s_vel: \t s_div: \t s_acc: \t tsc:\n")

        def report(iteration: int, cost: float, x: NDArray):
            self._print(problem.report(iteration, cost, x))

        x, cost = self.optimizer.optimize(
            problem.motion_to_problem(initial), problem,
            initial_step, conv, max_iters, report=report)
        return x, cost

    def estimate_two_params(
        self,
        sig_v_0: float,
        sig_d_0: float,
        sig_acc: float,
        initial_step: float,
        conv: float,
        max_iters: int,
    ) -> Tuple[float, float, float, float]:
        """
        Optimize (s_vel, s_div) with s_acc fixed.

        Returns:
            (s_vel, s_div, s_acc, tsc) at the optimum.
        """
        problem = TwoHyperParameterProblem(self, sig_acc)
        x, min_cost = self._search(problem, (sig_v_0, sig_d_0), initial_step, conv, max_iters)
        vd = problem.problem_to_motion(x)
        return float(vd[0]), float(vd[1]), sig_acc, -min_cost

    def estimate_three_params(
        self,
        sig_v_0: float,
        sig_d_0: float,
        sig_a_0: float,
        initial_step: float,
        conv: float,
        max_iters: int,
    ) -> Tuple[float, float, float, float]:
        """
        Optimize (s_vel, s_div, s_acc).

        Returns:
            (s_vel, s_div, s_acc, tsc) at the optimum.
        """
        problem = ThreeHyperParameterProblem(self)
        x, min_cost = self._search(
            problem, (sig_v_0, sig_d_0, sig_a_0), initial_step, conv, max_iters)
        vda = problem.problem_to_motion(x)
        return float(vda[0]), float(vda[1]), float(vda[2]), -min_cost

    def run(self) -> Optional[ParameterEstimate]:
        """
        Run the estimation on the prepared alignment data.

        Returns:
            ParameterEstimate, or None if no estimation was requested.

        Raises:
            ConfigurationError: If an estimation was requested but prepare()
                has not been called.
        """
        if not self.anything_to_do():
            return None

        self._require(EstimatorState.PREPARED, EstimatorState.OPTIMIZED, action="run")

        start = time.time()
        self._eval_count = 0

        o = self.options

        if o.estimate_two:
            opt = self.estimate_two_params(
                o.sig_vel, o.sig_div, o.sig_acc, o.initial_step, o.conv, o.max_iters)
        else:
            opt = self.estimate_three_params(
                o.sig_vel, o.sig_div, o.sig_acc, o.initial_step, o.conv, o.max_iters)

        # round to conv / 2, the smallest simplex radius
        rnd = [
            round_to_resolution(opt[0] * VEL_SCALE, o.conv) / VEL_SCALE,
            round_to_resolution(opt[1] * DIV_SCALE, o.conv) / DIV_SCALE,
            round_to_resolution(opt[2] * ACC_SCALE, o.conv) / ACC_SCALE,
        ]

        if o.estimate_two:
            rnd[2] = o.sig_acc

        if opt[2] <= 0.0:
            rnd[2] = ACC_DISABLED

        self.result = ParameterEstimate(
            sig_vel=float(rnd[0]),
            sig_div=float(rnd[1]),
            sig_acc=float(rnd[2]),
            optimum=(opt[0], opt[1], opt[2]),
            tsc=opt[3],
            n_params=2 if o.estimate_two else 3,
            micrograph_count=len(self.micrographs),
            particle_count=self.particle_total,
            evaluations=self._eval_count,
            time_seconds=time.time() - start,
        )

        self._print(f"\ngood parameters: {self.result.command_line()}\n")

        self.state = EstimatorState.OPTIMIZED
        return self.result
