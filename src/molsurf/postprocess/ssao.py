"""Screen-space ambient occlusion over the tracer's G-buffers.

For every hit pixel the pass samples nearby pixels of the position buffer
along four screen directions at several radii, rotated per pixel by a tiled
4x4 noise texture. Samples that sit above the pixel's tangent plane occlude
it, weighted down with distance. The normalised occlusion darkens the pixel's
own colour; neighbouring colours are never written, so pixels are independent.

Example:
    >>> from src.molsurf.postprocess.ssao import setup_ssao, apply_ssao
    >>> setup_ssao(seed=0)
    >>> apply_ssao(config)  # after march_frame(config)
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from src.molsurf.camera.pinhole import get_focal_length
from src.molsurf.core.config import RenderConfig
from src.molsurf.core.tracer import (
    BLOCK_DIM,
    STATE_HIT,
    _check_render_target_initialized,
    _color_buffer,
    _normal_buffer,
    _position_buffer,
    _state_buffer,
    get_image_dimensions,
)

# Type aliases for vectors using Taichi's math module
vec2 = tm.vec2
vec3 = tm.vec3

SSAO_KERNEL_SIZE = 64
SSAO_NOISE_SIZE = 4

_ssao_kernel = ti.Vector.field(3, dtype=ti.f32, shape=SSAO_KERNEL_SIZE)
_ssao_noise = ti.Vector.field(3, dtype=ti.f32, shape=(SSAO_NOISE_SIZE, SSAO_NOISE_SIZE))
_ssao_initialized = ti.field(dtype=ti.i32, shape=())


# =============================================================================
# Sample Generation (host)
# =============================================================================


def _lerp(a: float, b: float, t: float) -> float:
    return a + t * (b - a)


def generate_ssao_kernel(rng: np.random.Generator, size: int = SSAO_KERNEL_SIZE) -> np.ndarray:
    """Random sample offsets in the +z hemisphere, denser near the origin.

    Sample i is scaled by lerp(0.1, 1, (i / size)^2).

    Returns:
        float32 array of shape (size, 3).
    """
    samples = np.empty((size, 3), dtype=np.float32)
    for i in range(size):
        direction = np.array(
            [rng.uniform(-1.0, 1.0), rng.uniform(-1.0, 1.0), rng.uniform(0.0, 1.0)]
        )
        norm = np.linalg.norm(direction)
        if norm < 1e-6:
            direction = np.array([0.0, 0.0, 1.0])
        else:
            direction = direction / norm
        scale = _lerp(0.1, 1.0, (i / size) ** 2)
        samples[i] = direction * rng.uniform(0.0, 1.0) * scale
    return samples


def generate_ssao_noise(rng: np.random.Generator, size: int = SSAO_NOISE_SIZE) -> np.ndarray:
    """Random rotation vectors in the xy plane (z = 0).

    Returns:
        float32 array of shape (size, size, 3).
    """
    noise = np.zeros((size, size, 3), dtype=np.float32)
    noise[..., 0] = rng.uniform(-1.0, 1.0, (size, size))
    noise[..., 1] = rng.uniform(-1.0, 1.0, (size, size))
    return noise


def setup_ssao(seed: int | None = None) -> None:
    """Generate and upload the sample kernel and noise texture.

    Args:
        seed: Seed for the sample generator; None draws fresh entropy.
    """
    rng = np.random.default_rng(seed)
    _ssao_kernel.from_numpy(generate_ssao_kernel(rng))
    _ssao_noise.from_numpy(generate_ssao_noise(rng))
    _ssao_initialized[None] = 1


def is_ssao_initialized() -> bool:
    return bool(_ssao_initialized[None])


def clear_ssao() -> None:
    """Forget the uploaded samples; apply_ssao() raises until setup_ssao() runs."""
    _ssao_initialized[None] = 0


# =============================================================================
# Occlusion Pass
# =============================================================================


@ti.func
def _base_direction(s: ti.i32) -> vec2:
    d = s % 4
    result = vec2(1.0, 0.0)
    if d == 1:
        result = vec2(-1.0, 0.0)
    elif d == 2:
        result = vec2(0.0, 1.0)
    elif d == 3:
        result = vec2(0.0, -1.0)
    return result


@ti.func
def pixel_occlusion(
    i: ti.i32, j: ti.i32, width: ti.i32, height: ti.i32, radius: ti.f32, bias: ti.f32
) -> ti.f32:
    """Normalised occlusion in [0, 1] of a hit pixel."""
    normal = _normal_buffer[i, j]
    pos4 = _position_buffer[i, j]
    pos = vec3(pos4.x, pos4.y, pos4.z)
    depth = ti.max(pos4.w, 1e-6)
    radius_px = radius * 0.5 * ti.cast(height, ti.f32) * get_focal_length() / depth

    noise = _ssao_noise[i % SSAO_NOISE_SIZE, j % SSAO_NOISE_SIZE]
    rot = vec2(noise.x, noise.y)
    has_rot = tm.dot(rot, rot) > 1e-12
    if has_rot:
        rot = tm.normalize(rot)

    occlusion = 0.0
    for s in range(SSAO_KERNEL_SIZE):
        direction = _base_direction(s)
        if has_rot:
            direction = tm.reflect(direction, rot)
        offset = direction * radius_px * tm.length(_ssao_kernel[s])
        si = i + ti.cast(ti.round(offset.x), ti.i32)
        sj = j + ti.cast(ti.round(offset.y), ti.i32)
        if 0 <= si and si < width and 0 <= sj and sj < height:
            if _state_buffer[si, sj] == STATE_HIT:
                sample = _position_buffer[si, sj]
                v = vec3(sample.x, sample.y, sample.z) - pos
                dist_sq = tm.dot(v, v)
                if dist_sq > 1e-12:
                    cos_term = tm.dot(normal, v / ti.sqrt(dist_sq)) - bias
                    occlusion += ti.max(cos_term, 0.0) / (1.0 + dist_sq)
    return ti.min(occlusion / SSAO_KERNEL_SIZE, 1.0)


@ti.kernel
def _ssao_kernel_pass(width: ti.i32, height: ti.i32, radius: ti.f32, bias: ti.f32, strength: ti.f32):
    ti.loop_config(block_dim=BLOCK_DIM)
    for i, j in ti.ndrange(width, height):
        normal = _normal_buffer[i, j]
        if tm.dot(normal, normal) > 0.0:
            occ = pixel_occlusion(i, j, width, height, radius, bias)
            factor = tm.clamp(1.0 - strength * occ, 0.0, 1.0)
            _color_buffer[i, j] = _color_buffer[i, j] * factor


def apply_ssao(config: RenderConfig) -> None:
    """Darken the colour buffer by screen-space ambient occlusion.

    Pixels with a zero normal (missed or unconverged) pass through unchanged.

    Raises:
        RuntimeError: If the render target or the SSAO samples are not set up.
    """
    _check_render_target_initialized()
    if not is_ssao_initialized():
        raise RuntimeError("SSAO samples not set up. Call setup_ssao() first.")
    width, height = get_image_dimensions()
    _ssao_kernel_pass(width, height, config.ssao_radius, config.ssao_bias, config.ssao_strength)
