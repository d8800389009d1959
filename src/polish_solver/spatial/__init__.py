"""
Spatial-frequency module for polish-solver.

Key components:
- RadialAccumulator / RadialProfile: radially binned power and cross terms
- radius_map, frequency_coords: half-complex frequency grids
- hollow_weight, band_limit_envelope, crop_corner: frequency weights and
  real-space cropping
"""

from polish_solver.spatial.radial import (
    RadialAccumulator,
    RadialProfile,
    radius_map,
    frequency_coords,
)
from polish_solver.spatial.filters import hollow_weight, band_limit_envelope, crop_corner

__all__ = [
    'RadialAccumulator',
    'RadialProfile',
    'radius_map',
    'frequency_coords',
    'hollow_weight',
    'band_limit_envelope',
    'crop_corner',
]
