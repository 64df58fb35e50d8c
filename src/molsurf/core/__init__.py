"""Core module: vectors, configuration, the sphere tracer and the frame loop.

Components:
    vec: Ray data structure and vector helpers for Taichi functions
    config: RenderConfig and the tunable limits
    tracer: Render buffers, march kernel and per-pixel state machine
    renderer: SurfaceRenderer frame loop (march + ambient occlusion)

Marching runs one Taichi work item per pixel; the distance travelled is kept
per pixel across frames so a bounded step budget still converges.
"""

from .config import (
    MAX_NEIGHBOURS_LIMIT,
    MAX_STEPS_LIMIT,
    SOLVENT_RADIUS_MAX,
    RenderConfig,
    clamp_max_neighbours,
)
from .vec import Ray, build_onb_from_normal, make_ray, ray_at, safe_normalize, vec3

# Note: tracer and renderer are NOT imported here to avoid circular imports
# with the camera module. Import them directly:
#   from src.molsurf.core.renderer import SurfaceRenderer

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec3",
    "safe_normalize",
    "build_onb_from_normal",
    "RenderConfig",
    "clamp_max_neighbours",
    "SOLVENT_RADIUS_MAX",
    "MAX_NEIGHBOURS_LIMIT",
    "MAX_STEPS_LIMIT",
]
