"""Ray record and the vector helpers shared by the distance field and marcher.

All functions here are Taichi functions and must be called from kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> ray = Ray(origin=vec3(1.0, 0.5, 10.0), direction=vec3(0.0, 0.0, -1.0))
    >>> sample = ray_at(ray, 4.0)  # box entry of a molecule below the camera
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.dataclass
class Ray:
    """Primary ray of one pixel.

    Attributes:
        origin: Camera position (vec3).
        direction: Unit direction through the pixel centre (vec3).
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Sample position after marching a distance t along the ray."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    return Ray(origin=origin, direction=direction)


@ti.func
def safe_normalize(v: vec3) -> vec3:
    """Unit vector along v, or zero when v (nearly) vanishes.

    Patch gradients vanish at atom centers and at probe positions.
    """
    result = vec3(0.0, 0.0, 0.0)
    len_sq = tm.dot(v, v)
    if len_sq > 1e-20:
        result = v / ti.sqrt(len_sq)
    return result


@ti.func
def build_onb_from_normal(normal: vec3):
    """Two unit vectors perpendicular to normal and to each other.

    Args:
        normal: Unit axis direction.

    Returns:
        A tuple (tangent, bitangent, normal).
    """
    helper = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        helper = vec3(0.0, 1.0, 0.0)
    tangent = tm.normalize(tm.cross(helper, normal))
    bitangent = tm.cross(normal, tangent)
    return tangent, bitangent, normal
