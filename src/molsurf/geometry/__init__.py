"""Geometry module: atoms, bounding boxes and surface patches.

Components:
    atom: Atom dataclass, PatchResult and sphere distance functions
    aabb: Host BoundingBox and the slab ray-box test
    patches: Toroidal (two-atom) and spherical (three-atom) probe patches

Every distance function returns a PatchResult (gradient, signed distance) with
positive values inside the molecule:
    result = sphere_sdf(atom, p)
    valid, result = toroidal_patch(a, b, p, probe_radius)
"""

from .aabb import BoundingBox, intersect_aabb
from .atom import Atom, PatchResult, expanded_sphere_sdf, make_atom, sphere_sdf, union_patch
from .patches import (
    solve_3x3,
    spherical_patch,
    spherical_predicate,
    toroidal_patch,
    toroidal_predicate,
)

__all__ = [
    "Atom",
    "PatchResult",
    "make_atom",
    "sphere_sdf",
    "expanded_sphere_sdf",
    "union_patch",
    "BoundingBox",
    "intersect_aabb",
    "solve_3x3",
    "toroidal_patch",
    "toroidal_predicate",
    "spherical_patch",
    "spherical_predicate",
]
