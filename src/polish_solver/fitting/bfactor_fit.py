"""
Coarse-to-fine fit of a B-factor (decay) and a scale factor.

The observed amplitude ratio at spatial-frequency radius r is modelled as

    cross[r] / power[r] ≈ a · exp(-B r² / 4)

with B in pixel units (B_px = B_A / (s · angpix)²). For a fixed B the
optimal scale has the closed form

    a(B) = Σ cross·e / Σ power·e²,     e = exp(-B r² / 4)

so only B has to be searched. The search scans `steps` equally spaced
values of B, then narrows the interval to one grid spacing around the best
value and scans again, `depth` times.

The weighted least-squares cost

    Σ power · (a e - cross/power)²

is evaluated without the division by power, i.e. with the constant
Σ cross²/power dropped. That shortcut only changes the cost by an offset
and never leaves this module; weighted_residual() returns the true value.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from numpy.typing import NDArray, ArrayLike

from polish_solver.core.constants import DENOMINATOR_EPS


@dataclass
class DecayScaleResult:
    """
    Result of fit_decay_scale().

    Attributes:
        decay: Fitted decay B in pixel units.
        scale: Fitted scale factor a (>= min_scale).
        lower: Lower bound of the search interval.
        upper: Upper bound of the search interval.
        steps: Candidates per refinement level.
        depth: Number of refinement levels after the first scan.
    """
    decay: float
    scale: float
    lower: float
    upper: float
    steps: int
    depth: int

    def decay_angstrom(self, box_size: int, pixel_size: float) -> float:
        """B-factor in A² for a box of box_size pixels of pixel_size A."""
        return decay_px_to_angstrom(self.decay, box_size, pixel_size)

    def model(self, radii: ArrayLike) -> NDArray:
        """Fitted amplitude ratio at the given radii [px]."""
        return decay_model(radii, self.decay, self.scale)


def decay_model(radii: ArrayLike, decay: float, scale: float = 1.0) -> NDArray:
    """a · exp(-B r² / 4)"""
    r = np.asarray(radii, dtype=np.float64)
    return scale * np.exp(-decay * r * r / 4.0)


def decay_px_to_angstrom(decay_px: float, box_size: int, pixel_size: float) -> float:
    as_ = box_size * pixel_size
    return decay_px * as_ * as_


def decay_angstrom_to_px(decay_angst: float, box_size: int, pixel_size: float) -> float:
    as_ = box_size * pixel_size
    return decay_angst / (as_ * as_)


def weighted_residual(
    power: ArrayLike,
    cross: ArrayLike,
    decay: float,
    scale: float,
) -> float:
    """
    Weighted sum of squared differences between model and observed ratio.

        Σ_{power>0} power · (a e - cross/power)²

    Args:
        power: Radial predicted power.
        cross: Radial observed/predicted cross term.
        decay: B in pixel units.
        scale: Scale factor a.

    Returns:
        The residual (>= 0).
    """
    t = np.asarray(power, dtype=np.float64)
    c = np.asarray(cross, dtype=np.float64)
    valid = t > 0.0
    e = decay_model(np.arange(len(t))[valid], decay, scale)
    return float(np.sum(t[valid] * (e - c[valid] / t[valid]) ** 2))


def _scan(
    power: NDArray,
    cross: NDArray,
    r2: NDArray,
    b0: float,
    b1: float,
    min_scale: float,
    steps: int,
) -> Tuple[float, float, float]:
    """
    Evaluate `steps` candidate decays in [b0, b1].

    Returns:
        (decay, scale, cost) of the best candidate; cost has the constant
        term dropped.
    """
    candidates = np.linspace(b0, b1, steps)
    e = np.exp(-candidates[:, None] * r2[None, :] / 4.0)

    num = e @ cross
    denom = (e * e) @ power

    scale = num / np.where(denom > DENOMINATOR_EPS, denom, DENOMINATOR_EPS)
    scale = np.maximum(scale, min_scale)

    cost = scale * scale * denom - 2.0 * scale * num

    best = int(np.argmin(cost))
    return float(candidates[best]), float(scale[best]), float(cost[best])


def fit_decay_scale(
    power: ArrayLike,
    cross: ArrayLike,
    b_min: float,
    b_max: float,
    min_scale: float,
    steps: int,
    depth: int,
) -> DecayScaleResult:
    """
    Fit decay B and scale a to radial profiles by coarse-to-fine search.

    Args:
        power: Σ w |z_pred|² per radius.
        cross: Σ w Re(z_pred conj(z_obs)) per radius.
        b_min: Lower bound of B [px units].
        b_max: Upper bound of B [px units].
        min_scale: Lower clamp of the scale factor.
        steps: Candidates per level (>= 2).
        depth: Number of refinements after the first scan (>= 0).

    Returns:
        DecayScaleResult with b_min <= decay <= b_max and scale >= min_scale.
    """
    if steps < 2:
        raise ValueError(f"steps must be at least 2, got {steps}")
    if depth < 0:
        raise ValueError(f"depth must be non-negative, got {depth}")
    if b_max < b_min:
        raise ValueError(f"empty search interval [{b_min}, {b_max}]")

    t = np.asarray(power, dtype=np.float64)
    s = np.asarray(cross, dtype=np.float64)
    if t.shape != s.shape:
        raise ValueError(f"power and cross differ in shape: {t.shape} vs {s.shape}")

    r = np.arange(len(t), dtype=np.float64)
    r2 = r * r

    lo, hi = b_min, b_max
    best_b, best_a, best_cost = b_min, max(1.0, min_scale), np.inf

    for level in range(depth + 1):
        b, a, cost = _scan(t, s, r2, lo, hi, min_scale, steps)

        # an even number of steps does not revisit the previous optimum
        if cost < best_cost:
            best_b, best_a, best_cost = b, a, cost

        if level < depth:
            h = (hi - lo) / (steps - 1.0)
            lo = max(best_b - h, b_min)
            hi = min(best_b + h, b_max)

    return DecayScaleResult(
        decay=best_b,
        scale=best_a,
        lower=b_min,
        upper=b_max,
        steps=steps,
        depth=depth,
    )
