"""Uniform voxel grid for local neighbour queries.

Atoms are bucketed by the cell containing their center. The cell size is at
least the largest interaction distance (two atom radii plus two probe radii),
so every atom that can contribute to the surface at a point lies in the 3x3x3
block of cells around it.

The host builds the grid with NumPy (stable sort by flat cell index) and
uploads it to preallocated Taichi fields; device code walks the 27 cells with
cell_index() and the (start, length) pointers.

Example:
    >>> from src.molsurf.scene.atoms import AtomStore
    >>> from src.molsurf.scene.grid import build_voxel_grid, upload_voxel_grid
    >>> atoms = AtomStore.from_arrays([[0, 0, 0], [2, 0, 0]], 1.0)
    >>> grid = build_voxel_grid(atoms)
    >>> upload_voxel_grid(grid, atoms)
"""

from collections.abc import Generator
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from src.molsurf.core.config import SOLVENT_RADIUS_MAX
from src.molsurf.geometry.aabb import BoundingBox
from src.molsurf.scene.atoms import AtomStore

# Type aliases for vectors using Taichi's math module
vec3 = tm.vec3
ivec3 = tm.ivec3

DEFAULT_MARGIN = 1.0


# =============================================================================
# Host-side Grid
# =============================================================================


@dataclass(frozen=True, eq=False)
class VoxelGrid:
    """Host representation of the voxel grid.

    Attributes:
        bbox: Grid bounds, snapped to multiples of cell_size.
        cell_size: Edge length of every (cubic) cell.
        dims: Number of cells along x, y and z. (0, 0, 0) for an empty scene.
        pointers: int32 array of shape (cell_count, 2) with (start, length)
            into atom_indices for every cell.
        atom_indices: int32 array of atom indices ordered by cell.
    """

    bbox: BoundingBox
    cell_size: float
    dims: tuple[int, int, int]
    pointers: np.ndarray
    atom_indices: np.ndarray

    @property
    def cell_count(self) -> int:
        return int(self.dims[0] * self.dims[1] * self.dims[2])

    def flat_index(self, x: int, y: int, z: int) -> int:
        """Flattened index of cell (x, y, z)."""
        nx, ny, _ = self.dims
        return x + nx * (y + ny * z)

    def in_bounds(self, x: int, y: int, z: int) -> bool:
        nx, ny, nz = self.dims
        return 0 <= x < nx and 0 <= y < ny and 0 <= z < nz

    def cell_of(self, point) -> tuple[int, int, int]:
        """Integer cell coordinates of a point (may lie outside the grid)."""
        rel = (np.asarray(point, dtype=np.float64) - np.asarray(self.bbox.minimum)) / self.cell_size
        cx, cy, cz = np.floor(rel).astype(np.int64)
        return int(cx), int(cy), int(cz)

    def atoms_in_cell(self, x: int, y: int, z: int) -> np.ndarray:
        """Atom indices stored in one cell (empty for cells outside the grid)."""
        if not self.in_bounds(x, y, z):
            return self.atom_indices[:0]
        start, count = self.pointers[self.flat_index(x, y, z)]
        return self.atom_indices[start : start + count]

    def neighbors_3x3x3(self, point) -> Generator[int, None, None]:
        """Yield the atom indices of the 27 cells around the point's cell.

        Cells outside the grid are skipped, so a point far from the molecule
        yields nothing.
        """
        cx, cy, cz = self.cell_of(point)
        for dz in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for dx in (-1, 0, 1):
                    for idx in self.atoms_in_cell(cx + dx, cy + dy, cz + dz):
                        yield int(idx)

    def __repr__(self) -> str:
        return (
            f"VoxelGrid(dims={self.dims}, cell_size={self.cell_size:.3f}, "
            f"num_atoms={len(self.atom_indices)})"
        )


def default_cell_size(max_radius: float, solvent_radius_max: float = SOLVENT_RADIUS_MAX) -> float:
    """Cell edge covering two atom radii plus two probe diameters' worth of reach."""
    return 2.0 * max_radius + 2.0 * solvent_radius_max


def build_voxel_grid(
    atoms: AtomStore,
    cell_size: float | None = None,
    solvent_radius_max: float = SOLVENT_RADIUS_MAX,
    margin: float = DEFAULT_MARGIN,
) -> VoxelGrid:
    """Bucket atoms into a uniform grid.

    Args:
        atoms: The atoms to index.
        cell_size: Cell edge length. Defaults to default_cell_size().
        solvent_radius_max: Largest probe radius the grid must support.
        margin: Extra padding around the atoms beyond their largest radius.

    Returns:
        A VoxelGrid whose bounds enclose every atom sphere plus margin.

    Raises:
        ValueError: If cell_size is not positive.
    """
    max_radius = atoms.max_radius
    if cell_size is None:
        cell_size = default_cell_size(max_radius, solvent_radius_max)
    if cell_size <= 0.0:
        raise ValueError(f"cell_size must be positive, got {cell_size}")

    if len(atoms) == 0:
        return VoxelGrid(
            bbox=BoundingBox(minimum=(-1.0, -1.0, -1.0), maximum=(1.0, 1.0, 1.0)),
            cell_size=float(cell_size),
            dims=(0, 0, 0),
            pointers=np.zeros((0, 2), dtype=np.int32),
            atom_indices=np.zeros(0, dtype=np.int32),
        )

    bbox = atoms.bounding_box(padding=margin + max_radius).snapped(cell_size)
    dims_arr = np.maximum(np.rint(bbox.extent / cell_size).astype(np.int64), 1)
    dims = (int(dims_arr[0]), int(dims_arr[1]), int(dims_arr[2]))

    rel = (atoms.centers.astype(np.float64) - np.asarray(bbox.minimum)) / cell_size
    coords = np.clip(np.floor(rel).astype(np.int64), 0, dims_arr - 1)
    flat = coords[:, 0] + dims[0] * (coords[:, 1] + dims[1] * coords[:, 2])

    order = np.argsort(flat, kind="stable")
    counts = np.bincount(flat, minlength=dims[0] * dims[1] * dims[2])
    starts = np.cumsum(counts) - counts

    return VoxelGrid(
        bbox=bbox,
        cell_size=float(cell_size),
        dims=dims,
        pointers=np.column_stack([starts, counts]).astype(np.int32),
        atom_indices=order.astype(np.int32),
    )


# =============================================================================
# Device-side Grid
# =============================================================================

# Maximum supported sizes (preallocated to avoid kernel recompilation)
MAX_ATOMS = 1 << 16
MAX_CELLS = 1 << 18

# Atom centers (xyz) and radii (w)
atom_data = ti.Vector.field(4, dtype=ti.f32, shape=MAX_ATOMS)
num_atoms = ti.field(dtype=ti.i32, shape=())

# Atom indices ordered by cell, addressed by voxel_pointers (start, length)
cell_atom_indices = ti.field(dtype=ti.i32, shape=MAX_ATOMS)
voxel_pointers = ti.Vector.field(2, dtype=ti.i32, shape=MAX_CELLS)

grid_dims = ti.Vector.field(3, dtype=ti.i32, shape=())
grid_bb_min = ti.Vector.field(3, dtype=ti.f32, shape=())
grid_bb_max = ti.Vector.field(3, dtype=ti.f32, shape=())
grid_cell_size = ti.field(dtype=ti.f32, shape=())
grid_max_radius = ti.field(dtype=ti.f32, shape=())

# Flag to track if a grid has been uploaded
_grid_initialized = ti.field(dtype=ti.i32, shape=())


def upload_voxel_grid(grid: VoxelGrid, atoms: AtomStore) -> None:
    """Copy a host grid and its atoms into the device fields.

    Args:
        grid: Grid built from atoms by build_voxel_grid().
        atoms: The atoms the grid indexes.

    Raises:
        ValueError: If the atom or cell count exceeds the preallocated capacity,
            or the grid does not index the given atoms.
    """
    n = len(atoms)
    if n > MAX_ATOMS:
        raise ValueError(f"Maximum number of atoms ({MAX_ATOMS}) exceeded: {n}")
    if grid.cell_count > MAX_CELLS:
        raise ValueError(
            f"Maximum number of grid cells ({MAX_CELLS}) exceeded: {grid.cell_count}; "
            "use a larger cell size"
        )
    if len(grid.atom_indices) != n:
        raise ValueError(
            f"Grid indexes {len(grid.atom_indices)} atoms but {n} were given"
        )

    atom_buf = np.zeros((MAX_ATOMS, 4), dtype=np.float32)
    atom_buf[:n] = atoms.data
    index_buf = np.zeros(MAX_ATOMS, dtype=np.int32)
    index_buf[:n] = grid.atom_indices
    pointer_buf = np.zeros((MAX_CELLS, 2), dtype=np.int32)
    pointer_buf[: grid.cell_count] = grid.pointers

    atom_data.from_numpy(atom_buf)
    cell_atom_indices.from_numpy(index_buf)
    voxel_pointers.from_numpy(pointer_buf)

    num_atoms[None] = n
    grid_dims[None] = grid.dims
    grid_bb_min[None] = grid.bbox.minimum
    grid_bb_max[None] = grid.bbox.maximum
    grid_cell_size[None] = grid.cell_size
    grid_max_radius[None] = atoms.max_radius
    _grid_initialized[None] = 1


def clear_voxel_grid() -> None:
    """Reset the device grid to an empty scene."""
    num_atoms[None] = 0
    grid_dims[None] = (0, 0, 0)
    grid_bb_min[None] = (-1.0, -1.0, -1.0)
    grid_bb_max[None] = (1.0, 1.0, 1.0)
    grid_cell_size[None] = 1.0
    grid_max_radius[None] = 0.0
    _grid_initialized[None] = 0


def is_grid_initialized() -> bool:
    return bool(_grid_initialized[None])


def get_grid_bounds() -> tuple[tuple[float, float, float], tuple[float, float, float]]:
    """Return the uploaded grid bounds as ((min), (max))."""
    lo = grid_bb_min[None]
    hi = grid_bb_max[None]
    return (float(lo[0]), float(lo[1]), float(lo[2])), (float(hi[0]), float(hi[1]), float(hi[2]))


@ti.func
def cell_coords(p: vec3) -> ivec3:
    """Integer cell coordinates of a point (may lie outside the grid)."""
    rel = (p - grid_bb_min[None]) / grid_cell_size[None]
    return ti.cast(ti.floor(rel), ti.i32)


@ti.func
def cell_index(c: ivec3):
    """Flattened index of cell c, or -1 when c lies outside the grid."""
    dims = grid_dims[None]
    idx = -1
    if (c >= 0).all() and (c < dims).all():
        idx = c.x + dims.x * (c.y + dims.y * c.z)
    return idx


@ti.func
def neighbour_offset(k: ti.i32) -> ivec3:
    """Offset of the k-th cell (0..26) in the 3x3x3 block."""
    return ivec3(k % 3 - 1, (k // 3) % 3 - 1, k // 9 - 1)


@ti.func
def get_atom(idx: ti.i32):
    """Center and radius of atom idx."""
    a = atom_data[idx]
    return vec3(a.x, a.y, a.z), a.w


@ti.func
def max_safe_step() -> ti.f32:
    """Longest step that cannot cross a surface outside the 3x3x3 block.

    Atoms outside the block around a point have their centers at least one
    cell away, so their surface and probe patches start at least
    cell_size - max_radius - SOLVENT_RADIUS_MAX away. Grids built with cells
    smaller than that reach fall back to one cell.
    """
    cell = grid_cell_size[None]
    bound = cell - grid_max_radius[None] - SOLVENT_RADIUS_MAX
    if bound <= 0.0:
        bound = cell
    return bound



# =============================================================================
# Neighbour Query (diagnostics)
# =============================================================================

MAX_QUERY_RESULTS = 4096

_query_results = ti.field(dtype=ti.i32, shape=MAX_QUERY_RESULTS)
_query_count = ti.field(dtype=ti.i32, shape=())


@ti.kernel
def _query_neighbours_kernel(px: ti.f32, py: ti.f32, pz: ti.f32):
    # Single work item so results come out in cell order
    for _ in range(1):
        _query_count[None] = 0
        base = cell_coords(vec3(px, py, pz))
        for k in range(27):
            flat = cell_index(base + neighbour_offset(k))
            if flat >= 0:
                ptr = voxel_pointers[flat]
                for j in range(ptr.y):
                    # Count past the cap so the host can report the overflow
                    n = _query_count[None]
                    if n < MAX_QUERY_RESULTS:
                        _query_results[n] = cell_atom_indices[ptr.x + j]
                    _query_count[None] = n + 1


def query_neighbour_atoms(point) -> np.ndarray:
    """Run the device-side 3x3x3 gather for one point.

    Args:
        point: Query position (x, y, z).

    Returns:
        int32 array of atom indices found in the 27 cells around the point,
        in cell order.

    Raises:
        RuntimeError: If no grid has been uploaded.
        ValueError: If more than MAX_QUERY_RESULTS atoms lie in the block.
    """
    if not is_grid_initialized():
        raise RuntimeError("Voxel grid not set up. Call upload_voxel_grid() first.")
    _query_neighbours_kernel(float(point[0]), float(point[1]), float(point[2]))
    count = int(_query_count[None])
    if count > MAX_QUERY_RESULTS:
        raise ValueError(
            f"Maximum number of query results ({MAX_QUERY_RESULTS}) exceeded: {count}"
        )
    return _query_results.to_numpy()[:count]
