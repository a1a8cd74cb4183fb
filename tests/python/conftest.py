"""
Pytest configuration and shared fixtures for nnmat tests.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

import nnmat
from nnmat import (
    config,
    RandomConfig,
    DenseMatrix,
    SparseMatrix,
    LoggingRecorder,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config():
    """Restore default configuration after every test."""
    yield
    config.reset()


@pytest.fixture
def seeded():
    """Seed the global random source for reproducible draws."""
    config.random = RandomConfig(seed=1234)
    return config


@pytest.fixture(params=[DenseMatrix, SparseMatrix], ids=["dense", "sparse"])
def matrix_cls(request):
    """Both storage representations."""
    return request.param


@pytest.fixture
def make(matrix_cls):
    """Build a matrix of the current representation from a 2D array-like."""
    def _make(values):
        return matrix_cls.from_array(values)
    return _make


@pytest.fixture
def small_values():
    """A 2x3 matrix of distinct values.

    Matrix:
    [[1, 2, 3],
     [4, 5, 6]]
    """
    return np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])


@pytest.fixture
def square_values():
    """A 4x4 matrix holding 1..16 in row-major order."""
    return np.arange(1.0, 17.0).reshape(4, 4)


@pytest.fixture
def recorder():
    """In-memory recorder."""
    return LoggingRecorder()


# =============================================================================
# Helper Functions
# =============================================================================

def to_numpy(value):
    """Array view of a matrix or array-like."""
    if isinstance(value, nnmat.Matrix):
        return value.to_array()
    return np.asarray(value, dtype=np.float64)


def assert_array_equal(a1, a2, rtol=1e-7, atol=1e-12):
    """Assert two matrices or arrays are equal within tolerance."""
    np.testing.assert_allclose(to_numpy(a1), to_numpy(a2), rtol=rtol, atol=atol)
