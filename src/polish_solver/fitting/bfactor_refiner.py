"""
Per-particle and per-micrograph B-factor estimation.

For every particle the observed image is compared with its CTF-modulated
prediction, radially averaged over the frequencies above kmin, and a decay
B and scale a are fitted with fit_decay_scale(). In per-micrograph mode the
radial sums of all particles of a micrograph are pooled into one fit.

Stored values:
    rlnCtfBfactor     = B_px · (s·angpix)² - min_B
    rlnCtfScalefactor = a

i.e. the B-factor is shifted so that the smallest allowed value maps to 0.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from polish_solver.core.constants import BFAC_STEPS_PER_ITER, BFAC_NUM_ITERS
from polish_solver.core.parameters import BFactorOptions
from polish_solver.alignment.interfaces import MicrographRecord
from polish_solver.spatial.radial import RadialAccumulator, RadialProfile
from polish_solver.spatial.filters import hollow_weight
from polish_solver.fitting.bfactor_fit import (
    DecayScaleResult,
    fit_decay_scale,
    decay_angstrom_to_px,
)
from polish_solver.reporting.results_reporter import (
    bfactor_table_path,
    write_bfactor_table,
    format_bfactor_table,
)


@dataclass
class MicrographBFactors:
    """
    B-factor results of one micrograph.

    Attributes:
        rows: Per-particle table rows (rlnCtfBfactor, rlnCtfScalefactor).
        fits: Fits in pixel units; one per particle, or a single one in
            per-micrograph mode.
        profiles: Radial profiles the fits were made on.
    """
    rows: List[Dict[str, float]] = field(default_factory=list)
    fits: List[DecayScaleResult] = field(default_factory=list)
    profiles: List[RadialProfile] = field(default_factory=list)


class BFactorRefiner:
    """
    Fits B-factors and CTF scale factors to particle images.

    Usage:
        refiner = BFactorRefiner(BFactorOptions(per_micrograph=True))
        refiner.init(box_size=s, obs_model=obs_model, out_path="out/")
        result = refiner.process_micrograph(g, micrograph, obs, pred, ctfs)
        refiner.close()
    """

    def __init__(self, options: Optional[BFactorOptions] = None):
        self.options = options or BFactorOptions()
        self.executor: Optional[ThreadPoolExecutor] = None
        self.ready = False

    def init(
        self,
        box_size: int,
        obs_model,
        k_out: Optional[float] = None,
        n_threads: int = 1,
        out_path: Optional[str] = None,
        verbose: bool = False,
        debug: bool = False,
    ) -> None:
        """
        Set up the frequency weight.

        Args:
            box_size: Box size s in pixels.
            obs_model: ObservationModel (pixel size, unit conversion).
            k_out: Outer frequency limit [px] (default: s/2 + 1).
            n_threads: Worker threads.
            out_path: Directory for the fit tables (None: don't write).
            verbose: Print the fitted values.
            debug: Print per-particle values as they are computed.
        """
        self.s = box_size
        self.sh = box_size // 2 + 1
        self.obs_model = obs_model
        self.n_threads = max(1, n_threads)
        self.out_path = out_path
        self.verbose = verbose
        self.debug = debug

        self.angpix = obs_model.get_pixel_size(0)

        kmin_px = obs_model.ang_to_pix(self.options.kmin, box_size)
        self.freq_weight = hollow_weight(box_size, kmin_px, k_out)

        # one pool per init, reused by every process_micrograph call
        self.close()
        if self.n_threads > 1:
            self.executor = ThreadPoolExecutor(max_workers=self.n_threads)

        self.ready = True

    def close(self) -> None:
        """Shut down the worker pool."""
        if self.executor is not None:
            self.executor.shutdown(wait=True)
            self.executor = None

    def _check_ready(self, action: str):
        if not self.ready:
            raise RuntimeError(f"ERROR: BFactorRefiner.{action}: BFactorRefiner not initialized.")

    def _fit(self, profile: RadialProfile) -> DecayScaleResult:
        min_B_px = decay_angstrom_to_px(self.options.min_B, self.s, self.angpix)
        max_B_px = decay_angstrom_to_px(self.options.max_B, self.s, self.angpix)
        return fit_decay_scale(
            profile.power, profile.cross, min_B_px, max_B_px,
            self.options.min_scale, BFAC_STEPS_PER_ITER, BFAC_NUM_ITERS)

    def _row(self, fit: DecayScaleResult) -> Dict[str, float]:
        return {
            "rlnCtfBfactor": fit.decay_angstrom(self.s, self.angpix) - self.options.min_B,
            "rlnCtfScalefactor": fit.scale,
        }

    def _accumulate(
        self,
        particles: Sequence[int],
        obs: Sequence[NDArray],
        pred: Sequence[NDArray],
        ctfs: Optional[Sequence[NDArray]],
    ) -> RadialAccumulator:
        acc = RadialAccumulator(self.s)
        for p in particles:
            ctf = None if ctfs is None else ctfs[p]
            acc.add(obs[p], pred[p], self.freq_weight, ctf)
        return acc

    def process_micrograph(
        self,
        g: int,
        micrograph: MicrographRecord,
        obs: Sequence[NDArray],
        pred: Sequence[NDArray],
        ctfs: Optional[Sequence[NDArray]] = None,
    ) -> MicrographBFactors:
        """
        Fit B-factors for all particles of one micrograph.

        Args:
            g: Micrograph index (for messages).
            micrograph: The micrograph.
            obs: Observed half-complex particle images.
            pred: Predicted half-complex particle images.
            ctfs: Real half-complex CTF images per particle (optional).

        Returns:
            MicrographBFactors; the table is also written to out_path if set.
        """
        self._check_ready("process_micrograph")

        pc = len(obs)
        result = MicrographBFactors()

        if self.options.per_micrograph:
            chunks = [c for c in np.array_split(np.arange(pc), self.n_threads) if len(c)]

            if self.executor is not None and len(chunks) > 1:
                partial = list(self.executor.map(
                    lambda c: self._accumulate(c, obs, pred, ctfs), chunks))
            else:
                partial = [self._accumulate(c, obs, pred, ctfs) for c in chunks]

            total = RadialAccumulator(self.s)
            for acc in partial:
                total.merge(acc)

            profile = total.profile()
            fit = self._fit(profile)

            result.profiles.append(profile)
            result.fits.append(fit)
            result.rows = [self._row(fit) for _ in range(pc)]

        else:
            def work(p: int):
                profile = self._accumulate([p], obs, pred, ctfs).profile()
                return profile, self._fit(profile)

            if self.executor is not None:
                fitted = list(self.executor.map(work, range(pc)))
            else:
                fitted = [work(p) for p in range(pc)]

            for p, (profile, fit) in enumerate(fitted):
                if self.debug:
                    print(f"{p}: {fit.decay_angstrom(self.s, self.angpix):.3f} \t {fit.scale:.3f}")
                result.profiles.append(profile)
                result.fits.append(fit)
                result.rows.append(self._row(fit))

        if self.verbose:
            print(f" + micrograph {g + 1}: {micrograph.name}")
            print(format_bfactor_table(result.rows))

        if self.out_path is not None:
            write_bfactor_table(
                bfactor_table_path(micrograph.name, self.out_path),
                micrograph.name, result.rows)

        return result

    def is_finished(self, micrograph: MicrographRecord) -> bool:
        """Whether the fit table of this micrograph has already been written."""
        self._check_ready("is_finished")
        if self.out_path is None:
            return False
        return bfactor_table_path(micrograph.name, self.out_path).exists()
