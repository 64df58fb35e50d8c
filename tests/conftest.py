"""Pytest configuration for molecular surface tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_device_state():
    """Clear the uploaded molecule and occlusion samples around each test."""
    # Import here so Taichi is initialized before any field is created
    from src.molsurf.postprocess.ssao import clear_ssao
    from src.molsurf.scene.grid import clear_voxel_grid

    def _clear_all():
        clear_voxel_grid()
        clear_ssao()

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def pocket_atoms():
    """Three overlapping unit atoms enclosing a probe pocket above z = 0."""
    from src.molsurf.scene.presets import create_pocket_scene

    return create_pocket_scene()


@pytest.fixture
def pocket_grid(pocket_atoms):
    """Upload the pocket molecule and return its grid."""
    from src.molsurf.scene.grid import build_voxel_grid, upload_voxel_grid

    grid = build_voxel_grid(pocket_atoms)
    upload_voxel_grid(grid, pocket_atoms)
    return grid
