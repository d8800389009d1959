"""
Radial binning of half-complex Fourier images.

Fourier images are stored in the half-complex layout produced by
numpy.fft.rfft2 of an s×s image: shape (s, s//2 + 1), x = 0..s/2 along the
last axis, y wrapped so that rows y >= s/2 hold negative frequencies.

The radius of pixel (y, x) is

    r = sqrt(x² + yy²),   yy = (y + s/2) mod s - s/2

rounded to the nearest integer. Only r < s//2 + 1 is used.

RadialAccumulator collects, per integer radius, the two sums needed by the
decay fit:

    power[r] = Σ w |z_pred|²
    cross[r] = Σ w Re(z_pred · conj(z_obs))
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from polish_solver.core.constants import POWER_EPS


@lru_cache(maxsize=16)
def radius_map(s: int) -> NDArray:
    """
    Integer radius of every pixel of a half-complex s×(s//2+1) image.

    Args:
        s: Box size in pixels.

    Returns:
        Read-only int array of shape (s, s//2 + 1).
    """
    sh = s // 2 + 1
    xx = np.arange(sh, dtype=np.float64)[None, :]
    yy = ((np.arange(s) + s // 2) % s - s // 2).astype(np.float64)[:, None]
    ri = (np.sqrt(xx * xx + yy * yy) + 0.5).astype(np.int64)
    ri.setflags(write=False)
    return ri


def frequency_coords(s: int) -> Tuple[NDArray, NDArray]:
    """
    Signed frequency coordinates (x, y) of a half-complex image.

    Returns:
        Tuple (x, y) of float arrays broadcastable to (s, s//2 + 1).
    """
    sh = s // 2 + 1
    x = np.arange(sh, dtype=np.float64)[None, :]
    y = np.arange(s, dtype=np.float64)
    y = np.where(y < sh, y, y - s)[:, None]
    return x, y


@dataclass
class RadialProfile:
    """
    Radially binned predicted power and observed/predicted cross term.

    Attributes:
        power: Σ w |z_pred|² per integer radius.
        cross: Σ w Re(z_pred conj(z_obs)) per integer radius.
    """
    power: NDArray
    cross: NDArray

    def __post_init__(self):
        self.power = np.asarray(self.power, dtype=np.float64)
        self.cross = np.asarray(self.cross, dtype=np.float64)
        if self.power.shape != self.cross.shape:
            raise ValueError(
                f"power and cross must have the same length, "
                f"got {self.power.shape} and {self.cross.shape}")

    def __len__(self) -> int:
        return len(self.power)

    @property
    def radii(self) -> NDArray:
        return np.arange(len(self.power))

    def ratio(self, eps: float = POWER_EPS) -> NDArray:
        """
        Observed amplitude ratio cross/power; NaN where power <= eps.
        """
        out = np.full(len(self.power), np.nan)
        valid = self.power > eps
        out[valid] = self.cross[valid] / self.power[valid]
        return out


class RadialAccumulator:
    """
    Accumulates radial power / cross sums over many particles.

    One accumulator per worker thread; partial accumulators are combined
    with merge() (or +) after the parallel section.
    """

    def __init__(self, s: int):
        self.s = s
        self.sh = s // 2 + 1
        self._radius = radius_map(s)
        self._inside = self._radius < self.sh
        self._bins = self._radius[self._inside]
        self.power = np.zeros(self.sh)
        self.cross = np.zeros(self.sh)
        self.count = 0

    def add(
        self,
        obs: NDArray,
        pred: NDArray,
        weight: Optional[NDArray] = None,
        ctf: Optional[NDArray] = None,
    ) -> None:
        """
        Add one particle.

        Args:
            obs: Observed half-complex image, shape (s, s//2+1).
            pred: Predicted half-complex image, same shape.
            weight: Real per-pixel frequency weight (default: 1).
            ctf: Real CTF image multiplied into pred (default: none).
        """
        expected = (self.s, self.sh)
        if obs.shape != expected or pred.shape != expected:
            raise ValueError(
                f"expected half-complex images of shape {expected}, "
                f"got {obs.shape} and {pred.shape}")

        z_pred = pred if ctf is None else ctf * pred
        w = np.ones(expected) if weight is None else weight

        pw = w * (z_pred.real ** 2 + z_pred.imag ** 2)
        cr = w * (z_pred.real * obs.real + z_pred.imag * obs.imag)

        self.power += np.bincount(self._bins, weights=pw[self._inside], minlength=self.sh)
        self.cross += np.bincount(self._bins, weights=cr[self._inside], minlength=self.sh)
        self.count += 1

    def merge(self, other: "RadialAccumulator") -> "RadialAccumulator":
        """Add the sums of another accumulator of the same box size in place."""
        if other.s != self.s:
            raise ValueError(f"cannot merge box sizes {self.s} and {other.s}")
        self.power += other.power
        self.cross += other.cross
        self.count += other.count
        return self

    def __add__(self, other: "RadialAccumulator") -> "RadialAccumulator":
        out = RadialAccumulator(self.s)
        out.merge(self)
        out.merge(other)
        return out

    def profile(self) -> RadialProfile:
        """Snapshot of the accumulated sums."""
        return RadialProfile(power=self.power.copy(), cross=self.cross.copy())
