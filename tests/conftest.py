"""
Pytest configuration for the polish-solver test suite.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from polish_solver.alignment.interfaces import ObservationModel  # noqa: E402
from tests.synthetic import make_dataset  # noqa: E402


def pytest_configure(config):
    """Called after command line options have been parsed."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


@pytest.fixture
def synthetic_dataset():
    """Six micrographs, two of which are too small to be sampled."""
    return make_dataset([3, 1, 4, 3, 0, 2])


@pytest.fixture
def obs_model():
    return ObservationModel(pixel_size=1.5)
