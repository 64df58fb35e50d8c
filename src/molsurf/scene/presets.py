"""Ready-made molecules and camera placement.

This module provides:
- The three-atom scene the interactive viewer opens with
- The three-atom pocket used to check the end-to-end surface
- A camera orbiting a grid's bounding box at a distance proportional to its size

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.molsurf.scene.presets import create_default_scene, default_camera
    >>> from src.molsurf.scene.grid import build_voxel_grid
    >>>
    >>> atoms = create_default_scene()
    >>> camera = default_camera(build_voxel_grid(atoms), aspect_ratio=16 / 9)
"""

from src.molsurf.camera.pinhole import PinholeCamera, orbit_camera
from src.molsurf.scene.atoms import AtomStore
from src.molsurf.scene.grid import VoxelGrid

# Three unit atoms in a row-and-apex arrangement
DEFAULT_ATOMS: tuple[tuple[tuple[float, float, float], float], ...] = (
    ((1.5, 0.0, 0.0), 1.0),
    ((-1.5, 0.0, 0.0), 1.0),
    ((0.0, 2.5, 0.0), 1.0),
)

# Three overlapping unit atoms enclosing a solvent pocket above their plane
POCKET_ATOMS: tuple[tuple[tuple[float, float, float], float], ...] = (
    ((0.0, 0.0, 0.0), 1.0),
    ((2.0, 0.0, 0.0), 1.0),
    ((1.0, 1.5, 0.0), 1.0),
)

# Orbit distance as a fraction of the bounding-box diagonal
ORBIT_DISTANCE_SCALE = 0.5


def create_default_scene() -> AtomStore:
    """The three-atom molecule shown when no input is given."""
    return AtomStore.from_tuples(DEFAULT_ATOMS)


def create_pocket_scene() -> AtomStore:
    """Three atoms whose probe pocket produces a spherical patch."""
    return AtomStore.from_tuples(POCKET_ATOMS)


def default_camera(
    grid: VoxelGrid,
    aspect_ratio: float = 1.0,
    yaw: float = -90.0,
    pitch: float = 0.0,
) -> PinholeCamera:
    """Orbit camera looking at the grid center from half its diagonal away.

    Args:
        grid: Grid whose bounding box frames the view.
        aspect_ratio: Window width divided by height.
        yaw: Orbit yaw in degrees; -90 looks down -z.
        pitch: Orbit pitch in degrees.

    Returns:
        A camera positioned outside the molecule.
    """
    bbox = grid.bbox
    target = tuple(float(c) for c in bbox.center)
    distance = ORBIT_DISTANCE_SCALE * bbox.diagonal
    return orbit_camera(target, distance, yaw=yaw, pitch=pitch, aspect_ratio=aspect_ratio)
