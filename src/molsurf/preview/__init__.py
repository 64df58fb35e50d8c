"""Preview module for output and visualization.

Components:
    display: Matplotlib preview of the colour and G-buffers
    export: PNG export via Pillow

Example:
    >>> from src.molsurf.preview import show_preview, save_png
    >>> renderer.render(16)
    >>> show_preview(renderer, buffer="depth")
    >>> save_png(renderer, "surface.png")
"""

from src.molsurf.preview.display import (
    BufferName,
    apply_gamma,
    buffer_to_rgb,
    depth_to_rgb,
    normals_to_rgb,
    show_buffers,
    show_preview,
    state_to_rgb,
)
from src.molsurf.preview.export import (
    compute_rmse,
    image_to_uint8,
    save_png,
    save_png_from_array,
)

__all__ = [
    "show_preview",
    "show_buffers",
    "BufferName",
    "apply_gamma",
    "normals_to_rgb",
    "depth_to_rgb",
    "state_to_rgb",
    "buffer_to_rgb",
    "save_png",
    "save_png_from_array",
    "image_to_uint8",
    "compute_rmse",
]
