"""
Numerical constants and option defaults for polish-solver.

Option defaults are read from defaults.json (next to this file) if it
exists, otherwise the built-in values below are used.
"""

import json
from pathlib import Path
from typing import Dict, Any

# =============================================================================
# Hyperparameter Space Scaling
# =============================================================================
#
# The simplex works in "problem space": every physical sigma is multiplied
# by a fixed constant so that one initial step size fits all dimensions.
#
#     problem = physical * SCALE
#
# Typical physical values are s_vel ~ 0.5, s_div ~ 3000, s_acc ~ 2-5.

VEL_SCALE: float = 1000.0
DIV_SCALE: float = 1.0
ACC_SCALE: float = 10000.0

# Reported acceleration sigma when no acceleration prior is used
ACC_DISABLED: float = -1.0

# Trajectory fitting needs at least two observations per micrograph
MIN_PARTICLES_PER_MICROGRAPH: int = 2

# =============================================================================
# Decay (B-factor) Fitting
# =============================================================================

# Coarse-to-fine search: BFAC_STEPS_PER_ITER candidates per level,
# refined BFAC_NUM_ITERS times
BFAC_STEPS_PER_ITER: int = 20
BFAC_NUM_ITERS: int = 5

# Divisor used when the predicted power is (near) zero
DENOMINATOR_EPS: float = 1e-10

# Radial bins with less power than this count as empty when forming ratios
POWER_EPS: float = 1e-10

# =============================================================================
# Option Defaults
# =============================================================================

_DEFAULTS_JSON_PATH = Path(__file__).parent / "defaults.json"

_DEFAULT_OPTIONS: Dict[str, Any] = {
    # motion parameter estimation
    "estimate_two": False,
    "estimate_three": False,
    "k_cutoff": -1.0,        # px
    "k_cutoff_angst": -1.0,  # A
    "k_eval": -1.0,          # px
    "k_eval_angst": -1.0,    # A
    "min_particles": 1000,
    "sig_vel": 0.6,
    "sig_div": 3000.0,
    "sig_acc": 5.0,
    "initial_step": 100.0,
    "conv": 10.0,
    "max_iters": 50,
    "max_range": 50,         # px
    "seed": 23,
    # B-factor estimation
    "bfac_per_micrograph": False,
    "bfac_min_B": -30.0,     # A^2
    "bfac_max_B": 300.0,     # A^2
    "bfac_min_scale": 0.2,
    "bfac_kmin": 30.0,       # A
}


def load_defaults_from_json() -> Dict[str, Any]:
    """
    Load option defaults, merged over the built-in values.

    If defaults.json doesn't exist or is invalid, the built-in values
    are returned.

    Returns:
        Dictionary with option names as keys and default values.
    """
    result = _DEFAULT_OPTIONS.copy()
    if _DEFAULTS_JSON_PATH.exists():
        try:
            with open(_DEFAULTS_JSON_PATH, 'r', encoding='utf-8') as f:
                result.update(json.load(f))
        except (json.JSONDecodeError, IOError) as e:
            print(f"Warning: Failed to load defaults.json: {e}. Using built-in defaults.")
    return result


DEFAULTS = load_defaults_from_json()
