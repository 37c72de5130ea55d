"""
Pytest configuration and fixtures for SOM tests
"""

import pytest
import numpy as np
from gridsom import SOM, SOMConfig, DistanceType, NeighborhoodKernel


@pytest.fixture
def sample_data():
    """Generate sample 3D data for testing"""
    rng = np.random.RandomState(42)
    return rng.random_sample((50, 3))


@pytest.fixture
def small_data():
    """Generate small dataset for quick tests"""
    rng = np.random.RandomState(42)
    return rng.random_sample((10, 2))


@pytest.fixture
def basic_config():
    """Basic SOM configuration for testing"""
    return SOMConfig(width=5, height=4, n_features=3, n_iterations=20, seed=42)


@pytest.fixture
def minimal_config():
    """Minimal SOM configuration for quick tests"""
    return SOMConfig(width=3, height=3, n_features=2, n_iterations=5, seed=42)


@pytest.fixture
def corner_som():
    """2x2 lattice with weights [[0,0],[1,0],[0,1],[1,1]] in row-major order"""
    som = SOM(SOMConfig(width=2, height=2, n_features=2, seed=0), verbose=False)
    som.set_node_at(0, 0, [0.0, 0.0])
    som.set_node_at(0, 1, [1.0, 0.0])
    som.set_node_at(1, 0, [0.0, 1.0])
    som.set_node_at(1, 1, [1.0, 1.0])
    return som


@pytest.fixture
def trained_som(basic_config, sample_data):
    """Pre-trained SOM for testing"""
    som = SOM(basic_config, verbose=False)
    som.train(sample_data)
    return som


@pytest.fixture
def all_distance_types():
    """All distance metrics for testing"""
    return list(DistanceType)


@pytest.fixture
def all_kernels():
    """All neighborhood kernels for testing"""
    return list(NeighborhoodKernel)
