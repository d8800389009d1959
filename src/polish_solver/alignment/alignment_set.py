"""
Cached alignment data for repeated trajectory fits.

AlignmentSet holds everything the hyperparameter search needs to re-run the
trajectory solver and score its result without touching the movies again:

- cross-correlation maps ccs[g][p][f] (float32, optionally cropped to the
  allowed motion range),
- observed and predicted Fourier data in the accelerated representation,
- positions, initial trajectories and the global motion component.

ACCELERATED REPRESENTATION:
===========================
Only the Fourier pixels of the evaluation band k0 <= r < k1 are needed to
score a trajectory, so each half-complex image is reduced to a flat
complex64 vector over those pixels (real weights become float32 vectors).
For typical box sizes this keeps well under half of the image, at half the
precision.

SCORE (TSC):
============
For trajectory t of particle p, each frame f of the observation is shifted
back by t[f] and compared with the prediction:

    z_f = obs_f · exp(2πi k·t[f] / s)
    num   += Σ_k D_f(k) Re(pred(k) conj(z_f(k)))
    w_obs += Σ_k D_f(k) |z_f(k)|²
    w_pred+= Σ_k D_f(k) |pred(k)|²

with D_f the per-frame damage weight. The caller turns the accumulated
triple into num / sqrt(w_obs · w_pred).
"""

from concurrent.futures import Executor
from typing import List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from polish_solver.alignment.interfaces import MicrographRecord
from polish_solver.spatial.radial import frequency_coords
from polish_solver.spatial.filters import crop_corner


class AlignmentSet:
    """
    Alignment data of all sampled micrographs.

    Attributes:
        fc: Number of frames.
        s: Box size in pixels.
        k0: Inner radius of the evaluation band [px].
        k1: Outer radius of the evaluation band [px].
        max_range: CC maps are cropped to 2·max_range (<= 0: no crop).
        ccs: ccs[g][p][f] real CC maps.
        obs: obs[g] complex64 array (pc, fc, n) of accelerated observations.
        pred: pred[g] complex64 array (pc, n) of accelerated predictions.
        damage: damage float32 array (fc, n) of accelerated damage weights.
        positions: positions[g] array (pc, 2).
        initial_tracks: initial_tracks[g] array (pc, fc, 2).
        glob_comp: glob_comp[g] array (fc, 2).
    """

    def __init__(
        self,
        micrographs: Sequence[MicrographRecord],
        fc: int,
        s: int,
        k0: float,
        k1: float,
        max_range: int = 0,
    ):
        self.fc = fc
        self.s = s
        self.sh = s // 2 + 1
        self.k0 = k0
        self.k1 = k1
        self.max_range = max_range

        x, y = frequency_coords(s)
        x = np.broadcast_to(x, (s, self.sh))
        y = np.broadcast_to(y, (s, self.sh))
        r = np.sqrt(x * x + y * y)
        band = (r >= k0) & (r < k1)

        self._flat_index = np.flatnonzero(band)
        self.acc_x = x[band].astype(np.float64)
        self.acc_y = y[band].astype(np.float64)
        self.n = len(self._flat_index)

        self.micrographs = list(micrographs)
        pcs = [m.particle_count for m in self.micrographs]

        self.ccs: List[List[List[Optional[NDArray]]]] = [
            [[None] * fc for _ in range(pc)] for pc in pcs]
        self.obs: List[NDArray] = [
            np.zeros((pc, fc, self.n), dtype=np.complex64) for pc in pcs]
        self.pred: List[NDArray] = [
            np.zeros((pc, self.n), dtype=np.complex64) for pc in pcs]
        self.damage = np.zeros((fc, self.n), dtype=np.float32)
        self.positions: List[NDArray] = [np.zeros((pc, 2)) for pc in pcs]
        self.initial_tracks: List[NDArray] = [np.zeros((pc, fc, 2)) for pc in pcs]
        self.glob_comp: List[NDArray] = [np.zeros((fc, 2)) for _ in pcs]

    def __len__(self) -> int:
        return len(self.micrographs)

    def particle_count(self, g: int) -> int:
        return self.obs[g].shape[0]

    # -------------------------------------------------------------------------
    # Filling
    # -------------------------------------------------------------------------

    def accelerate(self, img: NDArray) -> NDArray:
        """
        Reduce a half-complex image to its evaluation-band pixels.

        Returns:
            complex64 vector for complex input, float32 vector otherwise.
        """
        if img.shape != (self.s, self.sh):
            raise ValueError(
                f"expected a half-complex image of shape {(self.s, self.sh)}, got {img.shape}")
        flat = np.ravel(img)[self._flat_index]
        if np.iscomplexobj(flat):
            return flat.astype(np.complex64)
        return flat.astype(np.float32)

    def set_damage(self, f: int, weight: NDArray) -> None:
        self.damage[f] = self.accelerate(weight)

    def set_observation(self, g: int, p: int, f: int, img: NDArray) -> None:
        self.obs[g][p, f] = self.accelerate(img)

    def set_prediction(self, g: int, p: int, img: NDArray) -> None:
        self.pred[g][p] = self.accelerate(img)

    def copy_cc(self, g: int, p: int, f: int, cc: NDArray) -> None:
        """Store a CC map, cropped to the allowed motion range."""
        if self.max_range > 0:
            cc = crop_corner(cc, 2 * self.max_range, 2 * self.max_range)
        self.ccs[g][p][f] = np.asarray(cc, dtype=np.float32)

    def remove(self, indices: Sequence[int]) -> None:
        """Drop the data of the given micrographs (e.g. failed to load)."""
        drop = set(indices)
        keep = [g for g in range(len(self.micrographs)) if g not in drop]
        self.micrographs = [self.micrographs[g] for g in keep]
        self.ccs = [self.ccs[g] for g in keep]
        self.obs = [self.obs[g] for g in keep]
        self.pred = [self.pred[g] for g in keep]
        self.positions = [self.positions[g] for g in keep]
        self.initial_tracks = [self.initial_tracks[g] for g in keep]
        self.glob_comp = [self.glob_comp[g] for g in keep]

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def _particle_tsc(self, g: int, p: int, track: NDArray) -> NDArray:
        """(num, w_obs, w_pred) of one particle for track (fc, 2)."""
        shift = np.asarray(track, dtype=np.float64) / self.s
        phase = 2.0 * np.pi * (shift[:, 0:1] * self.acc_x[None, :]
                               + shift[:, 1:2] * self.acc_y[None, :])
        z = self.obs[g][p] * np.exp(1j * phase)
        pred = self.pred[g][p][None, :]

        num = np.sum(self.damage * (pred.real * z.real + pred.imag * z.imag))
        w_obs = np.sum(self.damage * (z.real ** 2 + z.imag ** 2))
        w_pred = np.sum(self.damage * (pred.real ** 2 + pred.imag ** 2))
        return np.array([num, w_obs, w_pred])

    def update_tsc(
        self,
        tracks: NDArray,
        g: int,
        n_threads: int = 1,
        executor: Optional[Executor] = None,
    ) -> NDArray:
        """
        Accumulate the score triple of micrograph g for the given tracks.

        Particles are split into n_threads chunks; each chunk sums into its
        own buffer and the buffers are reduced afterwards. The chunks run on
        `executor` if one is given, otherwise in the calling thread.

        Args:
            tracks: Trajectories (pc, fc, 2) in pixels.
            g: Micrograph index.
            n_threads: Number of chunks (workers of the executor).
            executor: Long-lived worker pool shared across calls.

        Returns:
            Array [num, w_obs, w_pred].
        """
        pc = self.particle_count(g)
        tracks = np.asarray(tracks)

        def work(chunk: NDArray) -> NDArray:
            out = np.zeros(3)
            for p in chunk:
                out += self._particle_tsc(g, int(p), tracks[p])
            return out

        chunks = [c for c in np.array_split(np.arange(pc), max(1, n_threads)) if len(c)]

        if executor is None or len(chunks) <= 1:
            partial = [work(c) for c in chunks]
        else:
            partial = list(executor.map(work, chunks))

        total = np.zeros(3)
        for part in partial:
            total += part
        return total
