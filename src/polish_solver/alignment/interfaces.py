"""
Contracts of the collaborators driven by the estimators.

The trajectory solver, the reference projector and the image loading live
outside this package. They are described here as typing Protocols; any
object with matching methods can be passed in.

Array conventions:
    pc: particles in a micrograph, fc: frames, s: box size, sh = s//2 + 1
    Fourier images:      complex (s, sh), half-complex layout
    CC maps:             real (h, w), origin at index (0, 0)
    positions:           (pc, 2)
    tracks:              (pc, fc, 2), in pixels
    global component:    (fc, 2)
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from numpy.typing import NDArray


class MicrographLoadError(Exception):
    """Raised by a collaborator when a micrograph's movie cannot be prepared."""


@dataclass
class MicrographRecord:
    """
    One micrograph and the metadata of its particles.

    Attributes:
        name: Micrograph name (used for output file names).
        particles: Per-particle metadata, opaque to this package.
        index: Position in the full micrograph list.
    """
    name: str
    particles: Sequence[Any] = field(default_factory=list)
    index: int = -1

    @property
    def particle_count(self) -> int:
        return len(self.particles)

    def __len__(self) -> int:
        return len(self.particles)


@dataclass
class MovieData:
    """
    Per-micrograph data produced by TrajectorySolver.prep_micrograph().

    Attributes:
        movie: movie[p][f], observed half-complex particle images.
        movie_cc: movie_cc[p][f], real cross-correlation maps.
        positions: Particle positions, (pc, 2).
        initial_tracks: Initial trajectories, (pc, fc, 2).
        glob_comp: Global motion component, (fc, 2).
    """
    movie: List[List[NDArray]]
    movie_cc: List[List[NDArray]]
    positions: NDArray
    initial_tracks: NDArray
    glob_comp: Optional[NDArray] = None


@runtime_checkable
class TrajectorySolver(Protocol):
    """Per-particle motion trajectory solver (black box)."""

    def is_ready(self) -> bool:
        ...

    def damage_weights(self) -> List[NDArray]:
        """Per-frame real half-complex dose-weighting images."""
        ...

    def prep_micrograph(
        self,
        micrograph: MicrographRecord,
        n_threads: int,
        damage_weights: List[NDArray],
    ) -> MovieData:
        """Load a movie and compute CC maps using the given frame weights."""
        ...

    def optimize(
        self,
        ccs: List[List[NDArray]],
        initial_tracks: NDArray,
        sig_vel_px: float,
        sig_acc_px: float,
        sig_div_px: float,
        positions: NDArray,
        glob_comp: Optional[NDArray],
    ) -> NDArray:
        """Fit trajectories (pc, fc, 2) to the CC maps under the given priors."""
        ...

    def normalize_sig_vel(self, sig_vel: float) -> float:
        ...

    def normalize_sig_div(self, sig_div: float) -> float:
        ...

    def normalize_sig_acc(self, sig_acc: float) -> float:
        ...


@runtime_checkable
class ReferenceMap(Protocol):
    """Reference projector."""

    k_out: float

    def predict(
        self,
        micrograph: MicrographRecord,
        particle_index: int,
        obs_model: "ObservationModel",
        mode: str = "opposite",
    ) -> NDArray:
        """Predicted half-complex image of one particle."""
        ...


class ObservationModel:
    """
    Pixel size and frequency unit conversion.

    A frequency of k pixels (Fourier radius) in a box of s pixels of size
    angpix corresponds to a resolution of s·angpix/k Angstrom, and vice
    versa, so both conversions share one formula.
    """

    def __init__(self, pixel_size: float):
        if pixel_size <= 0:
            raise ValueError(f"pixel_size must be positive, got {pixel_size}")
        self.pixel_size = pixel_size

    def get_pixel_size(self, optics_group: int = 0) -> float:
        return self.pixel_size

    def ang_to_pix(self, a: float, s: int) -> float:
        return s * self.pixel_size / a

    def pix_to_ang(self, p: float, s: int) -> float:
        return s * self.pixel_size / p

    def __repr__(self) -> str:
        return f"ObservationModel(pixel_size={self.pixel_size})"
