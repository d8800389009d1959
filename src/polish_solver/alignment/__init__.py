"""
Alignment module for polish-solver.

Key components:
- AlignmentSet: cached CC maps and accelerated Fourier data
- TrajectorySolver, ReferenceMap: collaborator protocols
- ObservationModel: pixel size and frequency unit conversion
- MicrographRecord, MovieData: micrograph metadata and prepared movie data
"""

from polish_solver.alignment.interfaces import (
    MicrographLoadError,
    MicrographRecord,
    MovieData,
    TrajectorySolver,
    ReferenceMap,
    ObservationModel,
)
from polish_solver.alignment.alignment_set import AlignmentSet

__all__ = [
    'AlignmentSet',
    'MicrographLoadError',
    'MicrographRecord',
    'MovieData',
    'TrajectorySolver',
    'ReferenceMap',
    'ObservationModel',
]
