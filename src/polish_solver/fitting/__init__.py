"""
Fitting module for polish-solver.

Provides the coarse-to-fine fit of an exponential amplitude decay
(B-factor) and a scale factor to radial Fourier profiles, and the
per-particle / per-micrograph B-factor refiner built on it.

Key components:
- fit_decay_scale: (B, scale) fit to radial power / cross profiles
- BFactorRefiner: B-factors of all particles of a micrograph
"""

from polish_solver.fitting.bfactor_fit import (
    DecayScaleResult,
    fit_decay_scale,
    weighted_residual,
    decay_model,
    decay_px_to_angstrom,
    decay_angstrom_to_px,
)
from polish_solver.fitting.bfactor_refiner import BFactorRefiner, MicrographBFactors

__all__ = [
    'DecayScaleResult',
    'fit_decay_scale',
    'weighted_residual',
    'decay_model',
    'decay_px_to_angstrom',
    'decay_angstrom_to_px',
    'BFactorRefiner',
    'MicrographBFactors',
]
