"""Scene module: atom storage, spatial index and the molecular distance field.

Components:
    atoms: Immutable host-side AtomStore
    grid: Uniform voxel grid (host build, device upload, 3x3x3 queries)
    sdf: Aggregate signed distance field and single-point host wrappers
    presets: Built-in molecules and default camera placement
"""

from .atoms import AtomStore
from .grid import (
    MAX_ATOMS,
    MAX_CELLS,
    VoxelGrid,
    build_voxel_grid,
    clear_voxel_grid,
    query_neighbour_atoms,
    upload_voxel_grid,
)
from .presets import create_default_scene, create_pocket_scene, default_camera
from .sdf import (
    BACKGROUND_DISTANCE,
    evaluate_patch_predicates,
    evaluate_sdf,
    evaluate_spherical_patch,
    evaluate_toroidal_patch,
    find_close_atoms,
)

__all__ = [
    "AtomStore",
    "VoxelGrid",
    "MAX_ATOMS",
    "MAX_CELLS",
    "build_voxel_grid",
    "upload_voxel_grid",
    "clear_voxel_grid",
    "query_neighbour_atoms",
    "BACKGROUND_DISTANCE",
    "evaluate_sdf",
    "evaluate_toroidal_patch",
    "evaluate_spherical_patch",
    "evaluate_patch_predicates",
    "find_close_atoms",
    "create_default_scene",
    "create_pocket_scene",
    "default_camera",
]
