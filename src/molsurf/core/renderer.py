"""Frame loop for the molecular surface sphere tracer.

SurfaceRenderer owns the render configuration, the loaded molecule and the
camera, and drives the per-frame march followed by the ambient occlusion
pass. The per-pixel march distance carries over between frames; every change
that invalidates it (camera, atoms, surface tunables, window size) resets it.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.molsurf.core.renderer import SurfaceRenderer
    >>> from src.molsurf.scene.presets import create_default_scene, default_camera
    >>>
    >>> renderer = SurfaceRenderer()
    >>> grid = renderer.load_atoms(create_default_scene())
    >>> renderer.set_camera(default_camera(grid))
    >>> renderer.render(16)  # 16 frames of 8 steps each
    >>> image = renderer.get_image_numpy()
"""

import time
from collections.abc import Callable, Generator
from typing import Any

import numpy as np
import numpy.typing as npt

from src.molsurf.camera.pinhole import PinholeCamera, setup_camera
from src.molsurf.core.config import RenderConfig, clamp_max_neighbours
from src.molsurf.core.tracer import (
    MarchState,
    get_accumulated_t_numpy,
    get_image,
    get_image_numpy,
    get_normal_numpy,
    get_pixel,
    get_position_numpy,
    get_state_numpy,
    march_frame,
    reset_accumulation,
    setup_render_target,
)
from src.molsurf.postprocess.ssao import apply_ssao, setup_ssao
from src.molsurf.scene.atoms import AtomStore
from src.molsurf.scene.grid import VoxelGrid, build_voxel_grid, upload_voxel_grid

# Type alias for progress callback
# Callback receives (frames_rendered, target_frames)
ProgressCallback = Callable[[int, int], None]


class SurfaceRenderer:
    """Progressive sphere tracer for one molecule.

    Each rendered frame advances every unfinished pixel by up to
    config.max_steps steps, so the image converges over several frames.

    Attributes:
        config: Current render configuration.
        frame_count: Frames rendered since the last reset.
        elapsed_time: Seconds spent in render_frame() since construction.
    """

    def __init__(self, config: RenderConfig | None = None, ssao_seed: int | None = 0) -> None:
        """Initialize the renderer and its buffers.

        Args:
            config: Render configuration. Defaults to RenderConfig().
            ssao_seed: Seed for the occlusion sample kernel.

        Raises:
            ValueError: If the window size exceeds the maximum supported size.
        """
        self._config = config if config is not None else RenderConfig()
        self._camera: PinholeCamera | None = None
        self._atoms: AtomStore | None = None
        self._grid: VoxelGrid | None = None
        self._frame_count = 0
        self._elapsed = 0.0
        setup_render_target(self._config.width, self._config.height)
        setup_ssao(ssao_seed)

    @property
    def config(self) -> RenderConfig:
        return self._config

    @property
    def width(self) -> int:
        return self._config.width

    @property
    def height(self) -> int:
        return self._config.height

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def elapsed_time(self) -> float:
        return self._elapsed

    @property
    def atoms(self) -> AtomStore | None:
        return self._atoms

    @property
    def grid(self) -> VoxelGrid | None:
        return self._grid

    @property
    def camera(self) -> PinholeCamera | None:
        return self._camera

    # -------------------------------------------------------------------------
    # Scene and tunables
    # -------------------------------------------------------------------------

    def load_atoms(self, atoms: AtomStore, center: bool = False) -> VoxelGrid:
        """Index a molecule and upload it for rendering.

        Args:
            atoms: The atoms to render.
            center: Translate the atoms so their bounding box is centred at
                the origin first.

        Returns:
            The voxel grid built for the atoms.

        Raises:
            ValueError: If the molecule exceeds the device capacity.
        """
        if center:
            atoms = atoms.centered()
        grid = build_voxel_grid(atoms)
        upload_voxel_grid(grid, atoms)
        self._atoms = atoms
        self._grid = grid
        self.reset()
        return grid

    def set_camera(self, camera: PinholeCamera) -> None:
        """Use a new camera; its aspect ratio is matched to the window."""
        camera = camera.with_aspect_ratio(self._config.aspect_ratio)
        setup_camera(camera)
        self._camera = camera
        self.reset()

    def update_config(self, **changes) -> RenderConfig:
        """Replace configuration fields, resetting or resizing as needed.

        Raises:
            ValueError: If the new values are invalid.
        """
        old = self._config
        new = old.with_updates(**changes)
        self._config = new
        if (new.width, new.height) != (old.width, old.height):
            self._apply_window_size()
        elif new != old:
            self.reset()
        return new

    def set_solvent_radius(self, radius: float) -> None:
        """Change the solvent probe radius (resets accumulation)."""
        self.update_config(solvent_radius=float(radius))

    def set_max_neighbours(self, count: int) -> None:
        """Change the neighbour budget, clamped to the supported range."""
        self.update_config(max_neighbours=clamp_max_neighbours(count))

    def set_max_steps(self, steps: int) -> None:
        """Change the per-frame step budget (resets accumulation)."""
        self.update_config(max_steps=int(steps))

    def reset(self) -> None:
        """Restart every pixel's march at its bounding-box entry."""
        reset_accumulation()
        self._frame_count = 0

    def resize(self, width: int, height: int) -> None:
        """Resize the window, clearing all buffers.

        Raises:
            ValueError: If dimensions exceed maximum supported size.
        """
        self.update_config(width=width, height=height)

    def _apply_window_size(self) -> None:
        setup_render_target(self._config.width, self._config.height)
        if self._camera is not None:
            self._camera = self._camera.with_aspect_ratio(self._config.aspect_ratio)
            setup_camera(self._camera)
        self._frame_count = 0

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render_frame(self) -> None:
        """March every pixel once and apply ambient occlusion.

        Raises:
            RuntimeError: If no atoms or no camera have been set.
        """
        if self._grid is None:
            raise RuntimeError("No molecule loaded. Call load_atoms() first.")
        if self._camera is None:
            raise RuntimeError("No camera set. Call set_camera() first.")
        start = time.perf_counter()
        march_frame(self._config)
        if self._config.ssao_enabled:
            apply_ssao(self._config)
        self._elapsed += time.perf_counter() - start
        self._frame_count += 1
        self._config = self._config.with_updates(time=self._elapsed)

    def render(self, num_frames: int = 1, callback: ProgressCallback | None = None) -> None:
        """Render several frames with an optional progress callback.

        Args:
            num_frames: Number of frames to render.
            callback: Called after each frame with (frame_count, target).

        Example:
            >>> def progress(current, target):
            ...     print(f"Frame {current}/{target}")
            >>> renderer.render(32, callback=progress)
        """
        if num_frames <= 0:
            return
        target = self._frame_count + num_frames
        for _ in range(num_frames):
            self.render_frame()
            if callback is not None:
                callback(self._frame_count, target)

    def render_progressive(self, num_frames: int = 1) -> Generator[tuple[int, int], None, None]:
        """Render frames, yielding (frame_count, target) after each one."""
        if num_frames <= 0:
            return
        target = self._frame_count + num_frames
        for _ in range(num_frames):
            self.render_frame()
            yield (self._frame_count, target)

    def converged_fraction(self) -> float:
        """Fraction of pixels that have finished marching (hit or missed)."""
        state = self.get_state_numpy()
        done = (state == MarchState.HIT) | (state == MarchState.MISSED)
        return float(np.count_nonzero(done)) / state.size

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def get_image(self) -> Any:
        """Get the raw Taichi colour buffer (full preallocated size)."""
        return get_image()

    def get_image_numpy(self, gamma: float = 1.0) -> npt.NDArray[np.float32]:
        """Get the rendered image, shape (height, width, 3), values in [0, 1].

        Args:
            gamma: Gamma correction value. Default 1.0 (linear).
        """
        image = get_image_numpy()
        if gamma != 1.0:
            image = np.power(image, 1.0 / gamma)
        return image

    def get_image_uint8(self, gamma: float = 2.2) -> npt.NDArray[np.uint8]:
        """Get the rendered image as 8-bit RGB, shape (height, width, 3)."""
        image = self.get_image_numpy(gamma=gamma)
        return (image * 255).astype(np.uint8)

    def save_image(self, filepath: str, gamma: float = 2.2) -> None:
        """Save the rendered image to a file (format from the extension)."""
        from PIL import Image as PILImage

        PILImage.fromarray(self.get_image_uint8(gamma=gamma)).save(filepath)

    def get_state_numpy(self) -> npt.NDArray[np.int32]:
        """MarchState per pixel, shape (height, width)."""
        return get_state_numpy()

    def get_depth_numpy(self) -> npt.NDArray[np.float32]:
        """Linear depth per pixel, shape (height, width)."""
        return get_position_numpy()[..., 3]

    def get_position_numpy(self) -> npt.NDArray[np.float32]:
        return get_position_numpy()

    def get_normal_numpy(self) -> npt.NDArray[np.float32]:
        return get_normal_numpy()

    def get_accumulated_t_numpy(self) -> npt.NDArray[np.float32]:
        return get_accumulated_t_numpy()

    def get_pixel(self, i: int, j: int) -> dict[str, object]:
        """Read every buffer for pixel (i, j), j = 0 at the bottom."""
        return get_pixel(i, j)

    def __repr__(self) -> str:
        return (
            f"SurfaceRenderer(width={self.width}, height={self.height}, "
            f"frames={self.frame_count}, atoms={0 if self._atoms is None else len(self._atoms)})"
        )
