"""Matplotlib-based preview of the tracer's output buffers.

Besides the shaded colour image, the G-buffers are turned into viewable
images: normals mapped to RGB, linear depth mapped to gray, and the per-pixel
march state mapped to a fixed palette (useful for watching convergence).

Example:
    >>> from src.molsurf.preview.display import show_preview
    >>> renderer.render(16)
    >>> show_preview(renderer, buffer="normal")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import numpy as np
import numpy.typing as npt

from src.molsurf.core.tracer import MarchState

if TYPE_CHECKING:
    from src.molsurf.core.renderer import SurfaceRenderer


# Type alias for the buffer to visualise
BufferName = Literal["color", "normal", "depth", "state"]

# RGB per MarchState value
STATE_PALETTE = np.array(
    [
        [0.0, 0.0, 0.0],  # NOT_STARTED
        [0.9, 0.6, 0.1],  # MARCHING
        [0.2, 0.8, 0.3],  # HIT
        [0.2, 0.3, 0.8],  # MISSED
    ],
    dtype=np.float32,
)


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Encode a linear [0, 1] image with a display gamma.

    Args:
        image: Linear image array of shape (H, W, 3).
        gamma: Gamma value (default 2.2 for sRGB). 1.0 returns the input.
    """
    if gamma == 1.0:
        return image
    # Negative inputs would give NaN under the power
    return np.power(np.clip(image, 0.0, 1.0), 1.0 / gamma).astype(np.float32)


def normals_to_rgb(normals: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Map unit normals to RGB as 0.5 * (n + 1); zero normals stay black."""
    rgb = 0.5 * (normals + 1.0)
    mask = np.any(normals != 0.0, axis=-1, keepdims=True)
    return np.where(mask, rgb, 0.0).astype(np.float32)


def depth_to_rgb(
    depth: npt.NDArray[np.float32],
    state: npt.NDArray[np.int32] | None = None,
) -> npt.NDArray[np.float32]:
    """Map linear depth to gray, near surfaces bright.

    Depth is normalised over the hit pixels (or all finite pixels when no
    state is given); other pixels are black.
    """
    if state is not None:
        valid = state == MarchState.HIT
    else:
        valid = np.isfinite(depth)
    gray = np.zeros(depth.shape, dtype=np.float32)
    if np.any(valid):
        lo = float(depth[valid].min())
        hi = float(depth[valid].max())
        span = hi - lo if hi > lo else 1.0
        gray[valid] = 1.0 - 0.8 * (depth[valid] - lo) / span
    return np.repeat(gray[..., None], 3, axis=-1)


def state_to_rgb(state: npt.NDArray[np.int32]) -> npt.NDArray[np.float32]:
    """Colour every pixel by its MarchState."""
    return STATE_PALETTE[np.clip(state, 0, len(STATE_PALETTE) - 1)]


def buffer_to_rgb(
    renderer: SurfaceRenderer,
    buffer: BufferName = "color",
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Read one of the renderer's buffers as a displayable (H, W, 3) image.

    Raises:
        ValueError: If buffer is not a known buffer name.
    """
    if buffer == "color":
        return apply_gamma(renderer.get_image_numpy(gamma=1.0), gamma)
    if buffer == "normal":
        return normals_to_rgb(renderer.get_normal_numpy())
    if buffer == "depth":
        return depth_to_rgb(renderer.get_depth_numpy(), renderer.get_state_numpy())
    if buffer == "state":
        return state_to_rgb(renderer.get_state_numpy())
    raise ValueError(f"Unknown buffer: {buffer}")


def show_preview(
    renderer: SurfaceRenderer,
    *,
    buffer: BufferName = "color",
    gamma: float = 2.2,
    title: str | None = None,
    figsize: tuple[float, float] = (8, 8),
    block: bool = True,
) -> None:
    """Display one buffer of the current render as a Matplotlib figure.

    The default title shows the frame count and the converged fraction.

    Args:
        renderer: The SurfaceRenderer instance to display.
        buffer: Which buffer to show ("color", "normal", "depth", "state").
        gamma: Gamma for the colour buffer.
        title: Custom title.
        figsize: Figure size in inches (width, height).
        block: Whether to block execution until figure is closed.
    """
    import matplotlib.pyplot as plt

    image = buffer_to_rgb(renderer, buffer, gamma)

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.imshow(image)
    ax.axis("off")
    if title is None:
        title = (
            f"{buffer} - frame {renderer.frame_count}, "
            f"{100.0 * renderer.converged_fraction():.1f}% converged"
        )
    ax.set_title(title)

    plt.tight_layout()
    plt.show(block=block)


def show_buffers(
    renderer: SurfaceRenderer,
    *,
    gamma: float = 2.2,
    figsize: tuple[float, float] = (12, 12),
    block: bool = True,
) -> None:
    """Display colour, normal, depth and state buffers in a 2x2 grid."""
    import matplotlib.pyplot as plt

    names: tuple[BufferName, ...] = ("color", "normal", "depth", "state")
    fig, axes = plt.subplots(2, 2, figsize=figsize)
    for ax, name in zip(axes.flat, names):
        ax.imshow(buffer_to_rgb(renderer, name, gamma))
        ax.set_title(name)
        ax.axis("off")
    fig.suptitle(f"frame {renderer.frame_count}")

    plt.tight_layout()
    plt.show(block=block)
