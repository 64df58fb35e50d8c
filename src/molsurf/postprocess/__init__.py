"""Post-processing passes over the tracer's G-buffers.

Components:
    ssao: Screen-space ambient occlusion
"""

from .ssao import apply_ssao, clear_ssao, generate_ssao_kernel, generate_ssao_noise, setup_ssao

__all__ = [
    "setup_ssao",
    "apply_ssao",
    "clear_ssao",
    "generate_ssao_kernel",
    "generate_ssao_noise",
]
