"""Look-at pinhole camera for sphere-tracing primary rays.

This module implements a pinhole camera that generates one ray per pixel
center. The camera supports:
- Look-at positioning (lookfrom, lookat, vup)
- Vertical field of view (45 degrees by default)
- Arbitrary aspect ratios
- A perspective projection matrix (near/far planes) used for depth output
- Orbit placement around a target (yaw/pitch/distance)

The camera builds an orthonormal basis (u, v, w) from the view parameters:
- w: points from lookat toward lookfrom (opposite view direction)
- u: points right in the image plane
- v: points up in the image plane

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.molsurf.camera.pinhole import PinholeCamera, setup_camera, get_ray
    >>>
    >>> camera = PinholeCamera(
    ...     lookfrom=(0.0, 0.0, 8.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     aspect_ratio=1.0,
    ... )
    >>> setup_camera(camera)
"""

import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from src.molsurf.core.vec import Ray, make_ray, vec3

DEFAULT_VFOV = 45.0
DEFAULT_NEAR = 0.01
DEFAULT_FAR = 100.0

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        lookfrom: Camera position in world space (x, y, z).
        lookat: Point the camera is looking at in world space (x, y, z).
        vup: Up direction vector for camera orientation (typically (0, 1, 0)).
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height of the output image.
        near: Near clipping distance of the projection matrix.
        far: Far clipping distance of the projection matrix.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = DEFAULT_VFOV
    aspect_ratio: float = 1.0
    near: float = DEFAULT_NEAR
    far: float = DEFAULT_FAR

    def with_aspect_ratio(self, aspect_ratio: float) -> "PinholeCamera":
        """Return a copy of this camera for a different window shape."""
        return PinholeCamera(
            lookfrom=self.lookfrom,
            lookat=self.lookat,
            vup=self.vup,
            vfov=self.vfov,
            aspect_ratio=aspect_ratio,
            near=self.near,
            far=self.far,
        )


def orbit_camera(
    target: tuple[float, float, float],
    distance: float,
    yaw: float = -90.0,
    pitch: float = 0.0,
    aspect_ratio: float = 1.0,
    vfov: float = DEFAULT_VFOV,
) -> PinholeCamera:
    """Place a camera on a sphere around a target, looking at it.

    Yaw and pitch are in degrees; yaw -90 with pitch 0 looks down -z.

    Raises:
        ValueError: If distance is not positive.
    """
    if distance <= 0.0:
        raise ValueError(f"Orbit distance must be positive, got {distance}")
    yaw_r = math.radians(yaw)
    pitch_r = math.radians(max(-89.0, min(89.0, pitch)))
    front = np.array(
        [
            math.cos(yaw_r) * math.cos(pitch_r),
            math.sin(pitch_r),
            math.sin(yaw_r) * math.cos(pitch_r),
        ]
    )
    eye = np.asarray(target, dtype=np.float64) - distance * front
    return PinholeCamera(
        lookfrom=tuple(float(c) for c in eye),
        lookat=tuple(float(c) for c in target),
        vup=(0.0, 1.0, 0.0),
        vfov=vfov,
        aspect_ratio=aspect_ratio,
    )


def perspective_matrix(vfov: float, aspect_ratio: float, near: float, far: float) -> np.ndarray:
    """Right-handed OpenGL-style projection matrix (clip z in [-1, 1])."""
    f = 1.0 / math.tan(math.radians(vfov) / 2.0)
    m = np.zeros((4, 4), dtype=np.float64)
    m[0, 0] = f / aspect_ratio
    m[1, 1] = f
    m[2, 2] = (far + near) / (near - far)
    m[2, 3] = 2.0 * far * near / (near - far)
    m[3, 2] = -1.0
    return m


def look_at_matrix(eye: np.ndarray, u: np.ndarray, v: np.ndarray, w: np.ndarray) -> np.ndarray:
    """World-to-view matrix for a camera basis at eye."""
    m = np.identity(4, dtype=np.float64)
    m[0, :3] = u
    m[1, :3] = v
    m[2, :3] = w
    m[:3, 3] = -m[:3, :3] @ eye
    return m


# =============================================================================
# Taichi Fields for Camera State (GPU-accessible)
# =============================================================================

# Camera origin (position)
_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())

# Orthonormal basis vectors
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())  # Right
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())  # Up
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())  # Backward (opposite view)

# Viewport vectors for ray computation
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())

# Projection state for depth output
_view_projection = ti.Matrix.field(4, 4, dtype=ti.f32, shape=())
_camera_near = ti.field(dtype=ti.f32, shape=())
_camera_far = ti.field(dtype=ti.f32, shape=())

# 1 / tan(vfov / 2), the projection's vertical focal length
_camera_focal = ti.field(dtype=ti.f32, shape=())


# =============================================================================
# Camera Setup (Python-side, called once per camera configuration)
# =============================================================================


def setup_camera(camera: PinholeCamera) -> None:
    """Initialize camera state from configuration.

    Computes the camera's orthonormal basis (u, v, w), viewport geometry and
    view-projection matrix. This must be called before rendering.

    Args:
        camera: Camera configuration with position, orientation, and FOV.

    Raises:
        ValueError: If lookfrom equals lookat, vup is parallel to the view
            direction, or the clip planes are invalid.
    """
    if not 0.0 < camera.near < camera.far:
        raise ValueError(f"Expected 0 < near < far, got near={camera.near}, far={camera.far}")

    theta = math.radians(camera.vfov)
    h = math.tan(theta / 2.0)

    # Viewport dimensions at unit distance
    viewport_height = 2.0 * h
    viewport_width = camera.aspect_ratio * viewport_height

    lookfrom = np.array(camera.lookfrom, dtype=np.float64)
    lookat = np.array(camera.lookat, dtype=np.float64)
    vup = np.array(camera.vup, dtype=np.float64)

    # w points from lookat toward lookfrom (backward)
    w = lookfrom - lookat
    w_len = np.linalg.norm(w)
    if w_len < 1e-12:
        raise ValueError("Camera lookfrom and lookat must differ")
    w = w / w_len

    # u points right (perpendicular to w and vup)
    u = np.cross(vup, w)
    u_len = np.linalg.norm(u)
    if u_len < 1e-12:
        raise ValueError("Camera vup must not be parallel to the view direction")
    u = u / u_len

    # v points up in the camera's frame
    v = np.cross(w, u)

    _camera_origin[None] = lookfrom.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()

    horizontal = viewport_width * u
    vertical = viewport_height * v
    lower_left = lookfrom - w - horizontal / 2.0 - vertical / 2.0

    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = lower_left.tolist()

    proj = perspective_matrix(camera.vfov, camera.aspect_ratio, camera.near, camera.far)
    view = look_at_matrix(lookfrom, u, v, w)
    _view_projection[None] = (proj @ view).tolist()
    _camera_near[None] = camera.near
    _camera_far[None] = camera.far
    _camera_focal[None] = 1.0 / h


# =============================================================================
# Ray Generation (Taichi-compatible, GPU-callable)
# =============================================================================


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Generate a ray through normalized image coordinates (u, v).

    The coordinates are normalized:
    - u = 0: left edge of image, u = 1: right edge
    - v = 0: bottom edge of image, v = 1: top edge

    Args:
        u: Horizontal coordinate in [0, 1] (left to right).
        v: Vertical coordinate in [0, 1] (bottom to top).

    Returns:
        A Ray with origin at the camera position and unit direction toward
        the specified point on the image plane.
    """
    point_on_viewport = (
        _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    )
    origin = _camera_origin[None]
    direction = tm.normalize(point_on_viewport - origin)
    return make_ray(origin, direction)


@ti.func
def get_pixel_ray(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32) -> Ray:
    """Generate the ray through the center of pixel (i, j), j = 0 at the bottom."""
    u = (ti.cast(pixel_i, ti.f32) + 0.5) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + 0.5) / ti.cast(height, ti.f32)
    return get_ray(u, v)


@ti.func
def get_camera_origin() -> vec3:
    """Get the camera origin (position) in world space."""
    return _camera_origin[None]


@ti.func
def get_camera_basis():
    """Get the camera's orthonormal basis vectors.

    Returns:
        A tuple (u, v, w) where:
        - u: Right direction in world space
        - v: Up direction in world space
        - w: Backward direction (opposite view direction)
    """
    return _camera_u[None], _camera_v[None], _camera_w[None]


@ti.func
def get_focal_length() -> ti.f32:
    """Vertical focal length 1 / tan(vfov / 2) of the projection."""
    return _camera_focal[None]


@ti.func
def linear_depth(position: vec3) -> ti.f32:
    """Eye-space depth of a world position, recovered from the projection.

    The point is projected by the view-projection matrix to normalised device
    z and linearised with the near/far planes.
    """
    clip = _view_projection[None] @ ti.Vector([position.x, position.y, position.z, 1.0])
    ndc_z = clip.z / clip.w
    near = _camera_near[None]
    far = _camera_far[None]
    return 2.0 * near * far / (far + near - ndc_z * (far - near))


# =============================================================================
# Utility Functions
# =============================================================================


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Get current camera state for debugging.

    Returns:
        Dictionary with origin, u, v, w, horizontal, vertical, lower_left.
    """
    fields = {
        "origin": _camera_origin,
        "u": _camera_u,
        "v": _camera_v,
        "w": _camera_w,
        "horizontal": _viewport_horizontal,
        "vertical": _viewport_vertical,
        "lower_left": _lower_left_corner,
    }
    info = {}
    for name, f in fields.items():
        vec = f[None]
        info[name] = (float(vec[0]), float(vec[1]), float(vec[2]))
    return info


def get_view_projection() -> np.ndarray:
    """Return the current 4x4 view-projection matrix."""
    return _view_projection.to_numpy()
