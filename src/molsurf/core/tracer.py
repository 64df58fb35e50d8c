"""Sphere tracer with per-pixel distance accumulation.

Each pixel marches its camera ray through the molecular distance field for a
bounded number of steps per frame. The distance travelled is kept in a
per-pixel buffer between frames, so a pixel that runs out of steps resumes
where it stopped instead of starting again at the camera. Any change to the
camera, scene or surface tunables must reset that buffer.

Pixel state machine:
    NOT_STARTED -> MARCHING (step budget exhausted, resumable)
                -> HIT      (distance rose above -hit_epsilon)
                -> MISSED   (ray misses the bounding box or leaves it)

The distance field is positive inside the molecule, so outside the surface
stepping by -d always moves the sample forward. Steps are capped by
max_safe_step(): the field only sees atoms in the 3x3x3 cell block around the
sample and reports BACKGROUND_DISTANCE when that block is empty, which is a
sign and not a usable distance. The hit test uses the largest distance seen
during the frame.

Output buffers (preallocated to MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT, indexed
[i, j] with j = 0 at the bottom):
    color: shaded RGB
    accumulated_t: distance travelled along the ray
    position: world position of the sample (xyz) and its linear depth (w)
    normal: unit surface normal, zero unless the pixel hit
    state: MarchState value
"""

from enum import IntEnum

import numpy as np
import taichi as ti
import taichi.math as tm

from src.molsurf.camera.pinhole import get_camera_basis, get_pixel_ray, linear_depth
from src.molsurf.core.config import MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH, RenderConfig
from src.molsurf.core.vec import ray_at, safe_normalize, vec3
from src.molsurf.geometry.aabb import intersect_aabb
from src.molsurf.scene.grid import grid_bb_max, grid_bb_min, is_grid_initialized, max_safe_step
from src.molsurf.scene.sdf import BACKGROUND_DISTANCE, sdf


class MarchState(IntEnum):
    """Per-pixel outcome of the most recent frame."""

    NOT_STARTED = 0
    MARCHING = 1
    HIT = 2
    MISSED = 3


# Plain ints for use inside kernels
STATE_NOT_STARTED = int(MarchState.NOT_STARTED)
STATE_MARCHING = int(MarchState.MARCHING)
STATE_HIT = int(MarchState.HIT)
STATE_MISSED = int(MarchState.MISSED)

# Work items per block, matching 32x32 pixel tiles
BLOCK_DIM = 32 * 32

# Depth written for pixels whose ray never entered the molecule's box
BACKGROUND_DEPTH = 1e10


# =============================================================================
# Render Target
# =============================================================================

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_accumulated_t = ti.field(dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_position_buffer = ti.Vector.field(4, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_normal_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_state_buffer = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Flag to track if render target is initialized
_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Set the active window size and reset every buffer.

    Args:
        width: Window width in pixels (max MAX_IMAGE_WIDTH).
        height: Window height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If dimensions are not positive or exceed the maximum.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )
    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Clear output buffers and restart every pixel's march at the box entry."""
    _color_buffer.fill(0.0)
    _position_buffer.fill(0.0)
    _normal_buffer.fill(0.0)
    _state_buffer.fill(STATE_NOT_STARTED)
    reset_accumulation()


def reset_accumulation() -> None:
    """Forget the distance travelled by every pixel.

    -inf makes the next frame start each ray at its bounding-box entry.
    """
    _accumulated_t.fill(-np.inf)


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


# =============================================================================
# Marching
# =============================================================================


@ti.func
def shade(normal: vec3, surface_color: vec3) -> vec3:
    """Single diffuse term with the light at the camera."""
    _, _, w = get_camera_basis()
    return surface_color * ti.max(tm.dot(normal, w), 0.0)


@ti.func
def trace_pixel(
    i: ti.i32,
    j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    probe_radius: ti.f32,
    max_neighbours: ti.i32,
    max_steps: ti.i32,
    hit_epsilon: ti.f32,
    surface_color: vec3,
    background_color: vec3,
):
    """March one pixel's ray for up to max_steps and write its buffers."""
    ray = get_pixel_ray(i, j, width, height)
    hit_box, t_near, t_far = intersect_aabb(ray.origin, ray.direction, grid_bb_min[None], grid_bb_max[None])

    state = STATE_MISSED
    color = background_color
    normal = vec3(0.0, 0.0, 0.0)
    t = _accumulated_t[i, j]
    depth = BACKGROUND_DEPTH
    position = ray.origin

    if hit_box:
        t = ti.max(t, t_near)
        state = STATE_MARCHING
        step_limit = max_safe_step()
        nearest = BACKGROUND_DISTANCE
        active = 1
        for _ in range(max_steps):
            if active:
                res = sdf(ray_at(ray, t), probe_radius, max_neighbours)
                nearest = ti.max(nearest, res.distance)
                if nearest > -hit_epsilon:
                    state = STATE_HIT
                    normal = safe_normalize(res.normal)
                    color = shade(normal, surface_color)
                    active = 0
                else:
                    t += ti.min(-res.distance, step_limit)
                    if t > t_far:
                        state = STATE_MISSED
                        active = 0
        _accumulated_t[i, j] = t
        position = ray_at(ray, t)
        if state != STATE_MISSED:
            depth = linear_depth(position)

    _state_buffer[i, j] = state
    _color_buffer[i, j] = color
    _normal_buffer[i, j] = normal
    _position_buffer[i, j] = ti.Vector([position.x, position.y, position.z, depth])


@ti.kernel
def _march_kernel(
    width: ti.i32,
    height: ti.i32,
    probe_radius: ti.f32,
    max_neighbours: ti.i32,
    max_steps: ti.i32,
    hit_epsilon: ti.f32,
    surface_color: vec3,
    background_color: vec3,
):
    """March every pixel of the active window once."""
    ti.loop_config(block_dim=BLOCK_DIM)
    for i, j in ti.ndrange(width, height):
        trace_pixel(
            i,
            j,
            width,
            height,
            probe_radius,
            max_neighbours,
            max_steps,
            hit_epsilon,
            surface_color,
            background_color,
        )


def march_frame(config: RenderConfig) -> None:
    """Run one sphere-tracing pass over the active window.

    Args:
        config: Tunables for this frame. Its window size must match the render
            target.

    Raises:
        RuntimeError: If the render target or voxel grid is not set up.
        ValueError: If config's window size differs from the render target.
    """
    _check_render_target_initialized()
    if not is_grid_initialized():
        raise RuntimeError("Voxel grid not set up. Call upload_voxel_grid() first.")
    width, height = get_image_dimensions()
    if (config.width, config.height) != (width, height):
        raise ValueError(
            f"Config window {config.width}x{config.height} does not match "
            f"render target {width}x{height}; resize first"
        )
    _march_kernel(
        width,
        height,
        config.solvent_radius,
        config.max_neighbours,
        config.max_steps,
        config.hit_epsilon,
        vec3(*config.surface_color),
        vec3(*config.background_color),
    )


# =============================================================================
# Buffer Readback
# =============================================================================


def _active_region(field) -> np.ndarray:
    """Active window of a (W, H, ...) field as a (H, W, ...) array, top row first."""
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    data = field.to_numpy()[:width, :height]
    data = np.swapaxes(data, 0, 1)
    return np.flipud(data)


def get_image() -> "ti.MatrixField":
    """Get the full preallocated colour buffer.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    return _color_buffer


def get_image_numpy() -> np.ndarray:
    """Rendered colours clamped to [0, 1], shape (height, width, 3)."""
    return np.clip(_active_region(_color_buffer), 0.0, 1.0).astype(np.float32)


def get_accumulated_t_numpy() -> np.ndarray:
    """Distance travelled per pixel, shape (height, width)."""
    return _active_region(_accumulated_t)


def get_state_numpy() -> np.ndarray:
    """MarchState per pixel, shape (height, width)."""
    return _active_region(_state_buffer)


def get_normal_numpy() -> np.ndarray:
    """Unit normals (zero where not hit), shape (height, width, 3)."""
    return _active_region(_normal_buffer)


def get_position_numpy() -> np.ndarray:
    """World positions (xyz) and linear depth (w), shape (height, width, 4)."""
    return _active_region(_position_buffer)


def get_pixel(i: int, j: int) -> dict[str, object]:
    """Read every buffer for one pixel (j = 0 at the bottom).

    Raises:
        RuntimeError: If render target has not been set up.
        IndexError: If the pixel lies outside the active window.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    if not (0 <= i < width and 0 <= j < height):
        raise IndexError(f"Pixel ({i}, {j}) outside {width}x{height} window")
    c = _color_buffer[i, j]
    n = _normal_buffer[i, j]
    p = _position_buffer[i, j]
    return {
        "state": MarchState(int(_state_buffer[i, j])),
        "t": float(_accumulated_t[i, j]),
        "color": (float(c[0]), float(c[1]), float(c[2])),
        "normal": (float(n[0]), float(n[1]), float(n[2])),
        "position": (float(p[0]), float(p[1]), float(p[2])),
        "depth": float(p[3]),
    }
