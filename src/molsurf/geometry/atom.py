"""Atom primitive and the sphere distance functions built on it.

Distances in this package use the molecular-surface sign convention: positive
inside the molecule, negative outside. Every distance primitive returns a
PatchResult carrying the (un-normalised) gradient alongside the distance so the
aggregate field can hand out a shading normal without finite differences.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.molsurf.geometry.atom import Atom, sphere_sdf
    >>> atom = Atom(center=ti.math.vec3(0, 0, 0), radius=1.0)
    >>> # Use sphere_sdf(atom, p) within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Atom:
    """A spherical atom defined by center point and van der Waals radius.

    Attributes:
        center: The center point of the atom (vec3).
        radius: The radius of the atom (positive float).
    """

    center: vec3
    radius: ti.f32


@ti.dataclass
class PatchResult:
    """Distance sample returned by every surface primitive.

    Attributes:
        normal: Un-normalised gradient of the distance, pointing out of the
            molecule. Zero when the gradient is undefined.
        distance: Signed distance to the patch, positive inside.
    """

    normal: vec3
    distance: ti.f32


@ti.func
def make_atom(center: vec3, radius: ti.f32) -> Atom:
    """Create an atom from center and radius."""
    return Atom(center=center, radius=radius)


@ti.func
def sphere_sdf(atom: Atom, p: vec3) -> PatchResult:
    """Signed distance from p to the atom's sphere.

    Args:
        atom: The atom to measure against.
        p: The query point.

    Returns:
        PatchResult with normal p - center and distance radius - |p - center|.
    """
    offset = p - atom.center
    return PatchResult(normal=offset, distance=atom.radius - tm.length(offset))


@ti.func
def expanded_sphere_sdf(atom: Atom, p: vec3, probe_radius: ti.f32) -> PatchResult:
    """Signed distance from p to the atom's sphere grown by the probe radius.

    The expanded sphere is the locus of probe centers touching the atom.

    Args:
        atom: The atom to measure against.
        p: The query point.
        probe_radius: Solvent probe radius R added to the atom radius.

    Returns:
        PatchResult with normal p - center and distance r + R - |p - center|.
    """
    offset = p - atom.center
    return PatchResult(
        normal=offset,
        distance=atom.radius + probe_radius - tm.length(offset),
    )


@ti.func
def union_patch(a: PatchResult, b: PatchResult) -> PatchResult:
    """Combine two distance samples, keeping the one with larger distance."""
    result = a
    if b.distance > a.distance:
        result = b
    return result
