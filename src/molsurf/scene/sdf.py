"""Aggregate signed distance field of the molecular surface.

The field at a point is the union (maximum, positive inside) of:
- the sphere of every atom in the 3x3x3 cell neighbourhood
- the toroidal patch of every pair of close atoms
- the spherical patch of every triple of close atoms

Close atoms (surface within SOLVENT_RADIUS_MAX + R of the point) are kept in a
fixed-capacity per-thread working set sorted by distance, so the patch loops
only visit the max_neighbours + 1 nearest of them.

Host wrappers run single-point kernels for diagnostics and tests.
"""

import taichi as ti
import taichi.math as tm

from src.molsurf.core.config import CLOSE_SET_CAPACITY, MAX_NEIGHBOURS_LIMIT, SOLVENT_RADIUS_MAX
from src.molsurf.geometry.atom import Atom, PatchResult, make_atom, sphere_sdf, union_patch
from src.molsurf.geometry.patches import (
    spherical_patch,
    spherical_predicate,
    toroidal_patch,
    toroidal_predicate,
)
from src.molsurf.scene.grid import (
    cell_atom_indices,
    cell_coords,
    cell_index,
    get_atom,
    is_grid_initialized,
    neighbour_offset,
    voxel_pointers,
)

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Distance reported where no atom is in range
BACKGROUND_DISTANCE = -1e10


# =============================================================================
# Close-atom Working Set
# =============================================================================


@ti.func
def insert_close_atom(ids, dists, count: ti.i32, limit: ti.i32, idx: ti.i32, dist: ti.f32):
    """Insert an atom into a working set sorted ascending by distance.

    When the set already holds limit entries the farthest one is dropped
    (the new atom itself, if it is the farthest). Equal distances keep their
    insertion order.

    Args:
        ids: Atom indices, CLOSE_SET_CAPACITY entries.
        dists: Matching distances.
        count: Entries currently in use.
        limit: Maximum entries to keep (<= CLOSE_SET_CAPACITY).
        idx: Atom index to insert.
        dist: Its distance.

    Returns:
        Tuple (ids, dists, count) after insertion.
    """
    slot = -1
    if count < limit:
        slot = count
        count += 1
    elif dist < dists[limit - 1]:
        slot = limit - 1

    if slot >= 0:
        ids[slot] = idx
        dists[slot] = dist
        active = 1
        for k in range(CLOSE_SET_CAPACITY - 1):
            j = slot - k
            if active and j > 0 and dists[j - 1] > dists[j]:
                tmp_d = dists[j - 1]
                dists[j - 1] = dists[j]
                dists[j] = tmp_d
                tmp_i = ids[j - 1]
                ids[j - 1] = ids[j]
                ids[j] = tmp_i
            else:
                active = 0
    return ids, dists, count


@ti.func
def _load_atom(idx: ti.i32) -> Atom:
    center, radius = get_atom(idx)
    return make_atom(center, radius)


# =============================================================================
# Aggregate Field
# =============================================================================


@ti.func
def sdf(p: vec3, probe_radius: ti.f32, max_neighbours: ti.i32) -> PatchResult:
    """Evaluate the molecular surface distance at p.

    Args:
        p: Query point.
        probe_radius: Solvent probe radius R.
        max_neighbours: Close atoms considered for patches, beyond the nearest.

    Returns:
        PatchResult with the un-normalised outward gradient and the signed
        distance (positive inside). With no atom nearby the distance is
        BACKGROUND_DISTANCE and the normal is zero.
    """
    best = PatchResult(normal=vec3(0.0, 0.0, 0.0), distance=BACKGROUND_DISTANCE)

    ids = ti.Vector.zero(ti.i32, CLOSE_SET_CAPACITY)
    dists = ti.Vector.zero(ti.f32, CLOSE_SET_CAPACITY)
    count = 0
    limit = ti.min(ti.max(max_neighbours, 1), MAX_NEIGHBOURS_LIMIT) + 1
    close_range = SOLVENT_RADIUS_MAX + probe_radius

    base = cell_coords(p)
    for k in range(27):
        flat = cell_index(base + neighbour_offset(k))
        if flat >= 0:
            ptr = voxel_pointers[flat]
            for j in range(ptr.y):
                atom_idx = cell_atom_indices[ptr.x + j]
                atom = _load_atom(atom_idx)
                best = union_patch(best, sphere_sdf(atom, p))
                surface_dist = tm.length(p - atom.center) - atom.radius
                if surface_dist < close_range:
                    ids, dists, count = insert_close_atom(
                        ids, dists, count, limit, atom_idx, surface_dist
                    )

    for i in range(count):
        a = _load_atom(ids[i])
        for j in range(i + 1, count):
            b = _load_atom(ids[j])
            _, pair = toroidal_patch(a, b, p, probe_radius)
            best = union_patch(best, pair)
            for k in range(j + 1, count):
                c = _load_atom(ids[k])
                _, triple = spherical_patch(a, b, c, p, probe_radius)
                best = union_patch(best, triple)

    return best


# =============================================================================
# Host Wrappers (single-point kernels)
# =============================================================================

_probe_result = ti.Vector.field(4, dtype=ti.f32, shape=())
_probe_valid = ti.field(dtype=ti.i32, shape=())

_close_ids = ti.field(dtype=ti.i32, shape=CLOSE_SET_CAPACITY)
_close_dists = ti.field(dtype=ti.f32, shape=CLOSE_SET_CAPACITY)
_close_count = ti.field(dtype=ti.i32, shape=())


def _check_grid_initialized() -> None:
    if not is_grid_initialized():
        raise RuntimeError("Voxel grid not set up. Call upload_voxel_grid() first.")


def _unpack_result() -> tuple[tuple[float, float, float], float]:
    r = _probe_result[None]
    return (float(r[0]), float(r[1]), float(r[2])), float(r[3])


@ti.kernel
def _evaluate_sdf_kernel(px: ti.f32, py: ti.f32, pz: ti.f32, probe_radius: ti.f32, max_neighbours: ti.i32):
    for _ in range(1):
        res = sdf(vec3(px, py, pz), probe_radius, max_neighbours)
        _probe_result[None] = ti.Vector([res.normal.x, res.normal.y, res.normal.z, res.distance])


def evaluate_sdf(
    point, solvent_radius: float, max_neighbours: int
) -> tuple[tuple[float, float, float], float]:
    """Evaluate the aggregate field at one point of the uploaded grid.

    Args:
        point: Query position (x, y, z).
        solvent_radius: Solvent probe radius R.
        max_neighbours: Close atoms considered for patches.

    Returns:
        Tuple (normal, distance) with the un-normalised gradient.

    Raises:
        RuntimeError: If no grid has been uploaded.
    """
    _check_grid_initialized()
    _evaluate_sdf_kernel(
        float(point[0]), float(point[1]), float(point[2]), float(solvent_radius), int(max_neighbours)
    )
    return _unpack_result()


@ti.kernel
def _toroidal_kernel(a: ti.types.vector(4, ti.f32), b: ti.types.vector(4, ti.f32), p: vec3, probe_radius: ti.f32):
    for _ in range(1):
        atom_a = Atom(center=vec3(a.x, a.y, a.z), radius=a.w)
        atom_b = Atom(center=vec3(b.x, b.y, b.z), radius=b.w)
        valid, res = toroidal_patch(atom_a, atom_b, p, probe_radius)
        _probe_valid[None] = valid
        _probe_result[None] = ti.Vector([res.normal.x, res.normal.y, res.normal.z, res.distance])


def evaluate_toroidal_patch(
    a, b, point, solvent_radius: float
) -> tuple[bool, tuple[float, float, float], float]:
    """Evaluate the toroidal patch of two atoms given as (x, y, z, r).

    Returns:
        Tuple (valid, normal, distance).
    """
    _toroidal_kernel(
        ti.Vector([float(v) for v in a]),
        ti.Vector([float(v) for v in b]),
        ti.Vector([float(v) for v in point]),
        float(solvent_radius),
    )
    normal, distance = _unpack_result()
    return bool(_probe_valid[None]), normal, distance


@ti.kernel
def _spherical_kernel(
    a: ti.types.vector(4, ti.f32),
    b: ti.types.vector(4, ti.f32),
    c: ti.types.vector(4, ti.f32),
    p: vec3,
    probe_radius: ti.f32,
):
    for _ in range(1):
        atom_a = Atom(center=vec3(a.x, a.y, a.z), radius=a.w)
        atom_b = Atom(center=vec3(b.x, b.y, b.z), radius=b.w)
        atom_c = Atom(center=vec3(c.x, c.y, c.z), radius=c.w)
        valid, res = spherical_patch(atom_a, atom_b, atom_c, p, probe_radius)
        _probe_valid[None] = valid
        _probe_result[None] = ti.Vector([res.normal.x, res.normal.y, res.normal.z, res.distance])


def evaluate_spherical_patch(
    a, b, c, point, solvent_radius: float
) -> tuple[bool, tuple[float, float, float], float]:
    """Evaluate the spherical patch of three atoms given as (x, y, z, r).

    Returns:
        Tuple (valid, normal, distance).
    """
    _spherical_kernel(
        ti.Vector([float(v) for v in a]),
        ti.Vector([float(v) for v in b]),
        ti.Vector([float(v) for v in c]),
        ti.Vector([float(v) for v in point]),
        float(solvent_radius),
    )
    normal, distance = _unpack_result()
    return bool(_probe_valid[None]), normal, distance


@ti.kernel
def _predicates_kernel(
    a: ti.types.vector(4, ti.f32),
    b: ti.types.vector(4, ti.f32),
    c: ti.types.vector(4, ti.f32),
    p: vec3,
    probe_radius: ti.f32,
):
    for _ in range(1):
        atom_a = Atom(center=vec3(a.x, a.y, a.z), radius=a.w)
        atom_b = Atom(center=vec3(b.x, b.y, b.z), radius=b.w)
        atom_c = Atom(center=vec3(c.x, c.y, c.z), radius=c.w)
        mask = 0
        if toroidal_predicate(atom_a.center, atom_a.radius, atom_b.center, atom_b.radius, p, probe_radius):
            mask |= 1
        if toroidal_predicate(atom_b.center, atom_b.radius, atom_c.center, atom_c.radius, p, probe_radius):
            mask |= 2
        if toroidal_predicate(atom_c.center, atom_c.radius, atom_a.center, atom_a.radius, p, probe_radius):
            mask |= 4
        if spherical_predicate(atom_a, atom_b, atom_c, p, probe_radius):
            mask |= 8
        _probe_valid[None] = mask


def evaluate_patch_predicates(a, b, c, point, solvent_radius: float) -> dict[str, bool]:
    """Report which patch predicates hold at a point for three atoms.

    Returns:
        Dict with keys "ab", "bc", "ca" (toroidal) and "abc" (spherical).
    """
    _predicates_kernel(
        ti.Vector([float(v) for v in a]),
        ti.Vector([float(v) for v in b]),
        ti.Vector([float(v) for v in c]),
        ti.Vector([float(v) for v in point]),
        float(solvent_radius),
    )
    mask = int(_probe_valid[None])
    return {"ab": bool(mask & 1), "bc": bool(mask & 2), "ca": bool(mask & 4), "abc": bool(mask & 8)}


@ti.kernel
def _close_atoms_kernel(px: ti.f32, py: ti.f32, pz: ti.f32, probe_radius: ti.f32, max_neighbours: ti.i32):
    for _ in range(1):
        p = vec3(px, py, pz)
        ids = ti.Vector.zero(ti.i32, CLOSE_SET_CAPACITY)
        dists = ti.Vector.zero(ti.f32, CLOSE_SET_CAPACITY)
        count = 0
        limit = ti.min(ti.max(max_neighbours, 1), MAX_NEIGHBOURS_LIMIT) + 1
        base = cell_coords(p)
        for k in range(27):
            flat = cell_index(base + neighbour_offset(k))
            if flat >= 0:
                ptr = voxel_pointers[flat]
                for j in range(ptr.y):
                    atom_idx = cell_atom_indices[ptr.x + j]
                    center, radius = get_atom(atom_idx)
                    surface_dist = tm.length(p - center) - radius
                    if surface_dist < SOLVENT_RADIUS_MAX + probe_radius:
                        ids, dists, count = insert_close_atom(
                            ids, dists, count, limit, atom_idx, surface_dist
                        )
        for i in range(CLOSE_SET_CAPACITY):
            _close_ids[i] = ids[i]
            _close_dists[i] = dists[i]
        _close_count[None] = count


def find_close_atoms(point, solvent_radius: float, max_neighbours: int) -> list[tuple[int, float]]:
    """List the close-atom working set the field would use at a point.

    Returns:
        (atom index, surface distance) pairs sorted by distance.

    Raises:
        RuntimeError: If no grid has been uploaded.
    """
    _check_grid_initialized()
    _close_atoms_kernel(
        float(point[0]), float(point[1]), float(point[2]), float(solvent_radius), int(max_neighbours)
    )
    count = int(_close_count[None])
    ids = _close_ids.to_numpy()[:count]
    dists = _close_dists.to_numpy()[:count]
    return [(int(i), float(d)) for i, d in zip(ids, dists)]
