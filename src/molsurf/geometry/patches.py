"""Toroidal and spherical blend patches of the solvent-excluded surface.

Where a solvent probe of radius R touches two atoms at once it sweeps a
toroidal patch; where it touches three it rests in a pocket and leaves a
concave spherical triangle. Both patches are the outside of a probe sphere, so
their signed distance is |p - x| - R for the probe position x (positive
inside the molecule), with gradient x - p.

Each patch has a validity predicate deciding whether the query point lies in
the patch's region of influence. The probe position is found with a fixed
number of Newton iterations so every pixel does the same amount of work.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.molsurf.geometry.patches import toroidal_patch
    >>> # Use toroidal_patch(a, b, p, R) within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from src.molsurf.core.vec import build_onb_from_normal, safe_normalize
from src.molsurf.geometry.atom import Atom, PatchResult, sphere_sdf, union_patch

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Newton iterations for the probe position (fixed count, no convergence test)
NEWTON_ITERATIONS = 7

# Below this the 3x3 system is treated as singular
SINGULAR_EPSILON = 1e-12

# Minimum seed offset from the axis so the first Jacobian is well-formed
SEED_EPSILON = 1e-4


@ti.func
def solve_3x3(r0: vec3, r1: vec3, r2: vec3, rhs: vec3) -> vec3:
    """Solve the system with rows r0, r1, r2 by Cramer's rule.

    Returns the zero vector when the system is singular.
    """
    c0 = tm.cross(r1, r2)
    det = tm.dot(r0, c0)
    result = vec3(0.0, 0.0, 0.0)
    if ti.abs(det) > SINGULAR_EPSILON:
        result = (rhs.x * c0 + rhs.y * tm.cross(r2, r0) + rhs.z * tm.cross(r0, r1)) / det
    return result


@ti.func
def expanded_distance(center: vec3, radius: ti.f32, p: vec3, probe_radius: ti.f32) -> ti.f32:
    """Signed distance from p to a sphere grown by the probe radius."""
    return radius + probe_radius - tm.length(p - center)


# =============================================================================
# Toroidal Patch
# =============================================================================


@ti.func
def toroidal_predicate(
    ca: vec3, ra: ti.f32, cb: vec3, rb: ti.f32, p: vec3, probe_radius: ti.f32
) -> ti.i32:
    """Check whether p lies in the region of influence of the a-b torus.

    p is projected radially onto each expanded sphere; the patch applies when
    each projection lies strictly inside the other atom's expanded sphere.
    """
    p1 = ca + (ra + probe_radius) * safe_normalize(p - ca)
    p2 = cb + (rb + probe_radius) * safe_normalize(p - cb)
    return expanded_distance(ca, ra, p2, probe_radius) > 0.0 and expanded_distance(
        cb, rb, p1, probe_radius
    ) > 0.0


@ti.func
def toroidal_probe(
    ca: vec3, ra: ti.f32, cb: vec3, rb: ti.f32, p: vec3, probe_radius: ti.f32
) -> vec3:
    """Probe position touching both atoms in the plane of p and the axis.

    The probe lies on the circle where the two expanded spheres meet; of that
    circle, the point on p's side of the axis is returned.
    """
    ea = ra + probe_radius
    eb = rb + probe_radius
    axis = cb - ca
    d = tm.length(axis)
    axis_n = axis / ti.max(d, 1e-12)

    # Normal of the plane through both centers and p
    n = tm.cross(p - ca, p - cb)
    if tm.dot(n, n) < 1e-12:
        tangent, _, _ = build_onb_from_normal(axis_n)
        n = tangent
    n = tm.normalize(n)

    side = tm.cross(n, axis_n)
    if tm.dot(side, p - ca) < 0.0:
        side = -side

    along = (d * d + ea * ea - eb * eb) / (2.0 * ti.max(d, 1e-12))
    h = ti.sqrt(ti.max(ea * ea - along * along, 0.0))
    x = ca + axis_n * along + side * ti.max(h, SEED_EPSILON)

    for _ in ti.static(range(NEWTON_ITERATIONS)):
        va = x - ca
        vb = x - cb
        la = ti.max(tm.length(va), 1e-12)
        lb = ti.max(tm.length(vb), 1e-12)
        f = vec3(la - ea, lb - eb, tm.dot(va, n))
        x -= solve_3x3(va / la, vb / lb, n, f)
    return x


@ti.func
def toroidal_patch(a: Atom, b: Atom, p: vec3, probe_radius: ti.f32):
    """Evaluate the toroidal patch between two atoms.

    Args:
        a: First atom.
        b: Second atom.
        p: Query point.
        probe_radius: Solvent probe radius R.

    Returns:
        Tuple (valid, PatchResult). When valid, distance is |p - x| - R and
        normal is x - p for the probe position x; otherwise the result is the
        union of the two atom spheres.
    """
    valid = toroidal_predicate(a.center, a.radius, b.center, b.radius, p, probe_radius)
    result = union_patch(sphere_sdf(a, p), sphere_sdf(b, p))
    if valid:
        x = toroidal_probe(a.center, a.radius, b.center, b.radius, p, probe_radius)
        result = PatchResult(normal=x - p, distance=tm.length(p - x) - probe_radius)
    return valid, result


# =============================================================================
# Spherical Patch
# =============================================================================


@ti.func
def spherical_predicate(a: Atom, b: Atom, c: Atom, p: vec3, probe_radius: ti.f32) -> ti.i32:
    """Check whether p lies in the region of influence of the a-b-c pocket.

    Requires all three pairwise torus predicates, the a-b probe colliding with
    c's expanded sphere, and p within R of a's and b's expanded spheres. The
    last two conditions are not symmetric in (a, b, c).
    """
    valid = 0
    if (
        toroidal_predicate(a.center, a.radius, b.center, b.radius, p, probe_radius)
        and toroidal_predicate(b.center, b.radius, c.center, c.radius, p, probe_radius)
        and toroidal_predicate(c.center, c.radius, a.center, a.radius, p, probe_radius)
        and expanded_distance(a.center, a.radius, p, probe_radius) >= -probe_radius
        and expanded_distance(b.center, b.radius, p, probe_radius) >= -probe_radius
    ):
        x_ab = toroidal_probe(a.center, a.radius, b.center, b.radius, p, probe_radius)
        if expanded_distance(c.center, c.radius, x_ab, probe_radius) > 0.0:
            valid = 1
    return valid


@ti.func
def spherical_probe(a: Atom, b: Atom, c: Atom, p: vec3, probe_radius: ti.f32) -> vec3:
    """Probe position touching all three atoms on p's side of their plane."""
    ea = a.radius + probe_radius
    eb = b.radius + probe_radius
    ec = c.radius + probe_radius

    centroid = (a.center + b.center + c.center) / 3.0
    n_tri = tm.cross(b.center - a.center, c.center - a.center)
    if tm.dot(n_tri, n_tri) < 1e-12:
        tangent, _, _ = build_onb_from_normal(safe_normalize(b.center - a.center))
        n_tri = tangent
    n_tri = tm.normalize(n_tri)
    if tm.dot(n_tri, p - centroid) < 0.0:
        n_tri = -n_tri

    mean_r2 = (ea * ea + eb * eb + ec * ec) / 3.0
    mean_d2 = (
        tm.dot(a.center - centroid, a.center - centroid)
        + tm.dot(b.center - centroid, b.center - centroid)
        + tm.dot(c.center - centroid, c.center - centroid)
    ) / 3.0
    min_h = 0.1 * (ea + eb + ec) / 3.0
    h0 = ti.sqrt(ti.max(mean_r2 - mean_d2, min_h * min_h))
    x = centroid + n_tri * h0

    for _ in ti.static(range(NEWTON_ITERATIONS)):
        va = x - a.center
        vb = x - b.center
        vc = x - c.center
        la = ti.max(tm.length(va), 1e-12)
        lb = ti.max(tm.length(vb), 1e-12)
        lc = ti.max(tm.length(vc), 1e-12)
        f = vec3(la - ea, lb - eb, lc - ec)
        x -= solve_3x3(va / la, vb / lb, vc / lc, f)
    return x


@ti.func
def spherical_patch(a: Atom, b: Atom, c: Atom, p: vec3, probe_radius: ti.f32):
    """Evaluate the concave spherical patch between three atoms.

    Args:
        a: First atom.
        b: Second atom.
        c: Third atom.
        p: Query point.
        probe_radius: Solvent probe radius R.

    Returns:
        Tuple (valid, PatchResult). When valid, distance is |p - x| - R and
        normal is x - p for the probe position x; otherwise the result is the
        union of the three atom spheres.
    """
    valid = spherical_predicate(a, b, c, p, probe_radius)
    result = union_patch(union_patch(sphere_sdf(a, p), sphere_sdf(b, p)), sphere_sdf(c, p))
    if valid:
        x = spherical_probe(a, b, c, p, probe_radius)
        result = PatchResult(normal=x - p, distance=tm.length(p - x) - probe_radius)
    return valid, result
