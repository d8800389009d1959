"""
Frequency-space weights and filters on half-complex images.
"""

import numpy as np
from numpy.typing import NDArray
from typing import Optional

from polish_solver.spatial.radial import frequency_coords


def hollow_weight(s: int, k_min: float, k_max: Optional[float] = None) -> NDArray:
    """
    Binary frequency mask that is 1 for k_min <= r < k_max and 0 elsewhere.

    Used to exclude the low frequencies (dominated by the particle envelope
    and carbon) from the B-factor fit.

    Args:
        s: Box size in pixels.
        k_min: Inner radius in pixels.
        k_max: Outer radius in pixels (default: s/2 + 1, i.e. no limit).

    Returns:
        Float array of shape (s, s//2 + 1).
    """
    x, y = frequency_coords(s)
    r = np.sqrt(x * x + y * y)
    if k_max is None:
        k_max = s // 2 + 1
    return ((r >= k_min) & (r < k_max)).astype(np.float64)


def band_limit_envelope(img: NDArray, rad_in: float, rad_out: float) -> NDArray:
    """
    Smoothly band-limit a half-complex weight image.

    Keeps img below rad_in, zeroes it above rad_out and applies a raised
    cosine falloff in between.

    Args:
        img: Half-complex real image of shape (s, s//2 + 1).
        rad_in: Radius where the falloff starts [px].
        rad_out: Radius where the image reaches zero [px].

    Returns:
        Filtered copy of img.
    """
    s = img.shape[0]
    x, y = frequency_coords(s)
    r = np.sqrt(x * x + y * y)

    if rad_out <= rad_in:
        return np.where(r < rad_in, img, 0.0)

    t = np.clip((r - rad_in) / (rad_out - rad_in), 0.0, 1.0)
    env = 0.5 + 0.5 * np.cos(np.pi * t)
    return img * env


def crop_corner(img: NDArray, w: int, h: int) -> NDArray:
    """
    Crop a periodic real-space map to w×h around its origin.

    The origin stays in the corner: rows/columns 0..h/2 are kept from the
    start of the array and the rest from its end, so that small shifts in
    both directions survive the crop.

    Args:
        img: 2D array with the origin at index (0, 0).
        w: Output width.
        h: Output height.

    Returns:
        Cropped array (a copy); img itself if it is not larger than w×h.
    """
    H, W = img.shape
    if w >= W and h >= H:
        return img

    w = min(w, W)
    h = min(h, H)

    ys = np.arange(h)
    ys = np.where(ys < h / 2, ys, ys - h + H)
    xs = np.arange(w)
    xs = np.where(xs < w / 2, xs, xs - w + W)

    return img[np.ix_(ys, xs)].copy()
