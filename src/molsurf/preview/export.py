"""PNG export of rendered images and buffers via Pillow.

Example:
    >>> from src.molsurf.preview.export import save_png
    >>> renderer.render(16)
    >>> save_png(renderer, "surface.png")
    >>> save_png(renderer, "normals.png", buffer="normal")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from src.molsurf.preview.display import BufferName, apply_gamma, buffer_to_rgb

if TYPE_CHECKING:
    from src.molsurf.core.renderer import SurfaceRenderer


def image_to_uint8(
    image: npt.NDArray[np.float32],
    *,
    gamma: float = 2.2,
) -> npt.NDArray[np.uint8]:
    """Convert a linear float image in [0, 1] to gamma-encoded uint8.

    Args:
        image: Image array of shape (H, W, 3).
        gamma: Gamma value (default 2.2 for sRGB).

    Returns:
        8-bit image array of shape (H, W, 3).
    """
    encoded = np.clip(apply_gamma(image, gamma), 0.0, 1.0)
    return (encoded * 255).astype(np.uint8)


def save_png_from_array(
    image: npt.NDArray[np.float32],
    filepath: str,
    *,
    gamma: float = 2.2,
) -> None:
    """Save a linear (H, W, 3) float image as an 8-bit PNG."""
    PILImage.fromarray(image_to_uint8(image, gamma=gamma)).save(filepath)


def save_png(
    renderer: SurfaceRenderer,
    filepath: str,
    *,
    buffer: BufferName = "color",
    gamma: float = 2.2,
) -> None:
    """Save one of the renderer's buffers as a PNG file.

    Only the colour buffer is gamma encoded; the visualisations of the other
    buffers are written as they are.

    Args:
        renderer: The SurfaceRenderer instance to save.
        filepath: Output file path (should end in .png).
        buffer: Which buffer to save ("color", "normal", "depth", "state").
        gamma: Gamma for the colour buffer (default 2.2 for sRGB).
    """
    image = buffer_to_rgb(renderer, buffer, gamma=1.0)
    save_png_from_array(image, filepath, gamma=gamma if buffer == "color" else 1.0)


def compute_rmse(
    image_a: npt.NDArray[np.floating],
    image_b: npt.NDArray[np.floating],
) -> float:
    """Root mean squared error between two images of the same shape.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")
    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
