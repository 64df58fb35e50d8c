"""Unit tests for the SurfaceRenderer frame loop.

Tests cover:
- Renderer initialization and required scene setup
- Progress callbacks and the progressive generator
- Accumulation reset on tunable, camera and scene changes
- Resizing and image output
"""

import numpy as np
import pytest


def _renderer(width=16, height=16, **kwargs):
    from src.molsurf.core.config import RenderConfig
    from src.molsurf.core.renderer import SurfaceRenderer

    return SurfaceRenderer(RenderConfig(width=width, height=height, **kwargs))


def _ready_renderer(width=16, height=16, **kwargs):
    from src.molsurf.scene.presets import create_default_scene, default_camera

    renderer = _renderer(width, height, **kwargs)
    grid = renderer.load_atoms(create_default_scene())
    renderer.set_camera(default_camera(grid))
    return renderer


def _fraction_after(renderer):
    renderer.render_frame()
    return renderer.converged_fraction()


class TestRendererSetup:
    """Tests for construction and scene setup."""

    def test_initial_state(self):
        renderer = _renderer(32, 24)
        assert (renderer.width, renderer.height) == (32, 24)
        assert renderer.frame_count == 0
        assert renderer.elapsed_time == 0.0
        assert renderer.atoms is None
        assert renderer.grid is None
        assert renderer.camera is None

    def test_render_requires_atoms(self):
        renderer = _renderer()
        with pytest.raises(RuntimeError, match="No molecule"):
            renderer.render_frame()

    def test_render_requires_camera(self):
        from src.molsurf.scene.presets import create_default_scene

        renderer = _renderer()
        renderer.load_atoms(create_default_scene())
        with pytest.raises(RuntimeError, match="No camera"):
            renderer.render_frame()

    def test_load_atoms_returns_grid(self):
        from src.molsurf.scene.presets import create_default_scene

        renderer = _renderer()
        grid = renderer.load_atoms(create_default_scene())
        assert renderer.grid is grid
        assert len(renderer.atoms) == 3
        assert grid.cell_count > 0

    def test_load_atoms_centered(self):
        from src.molsurf.scene.presets import create_default_scene

        renderer = _renderer()
        renderer.load_atoms(create_default_scene(), center=True)
        assert np.allclose(renderer.atoms.bounding_box(padding=1.0).center, 0.0, atol=1e-6)

    def test_camera_matches_window_aspect(self):
        from src.molsurf.camera.pinhole import PinholeCamera

        renderer = _renderer(32, 16)
        renderer.set_camera(PinholeCamera(lookfrom=(0.0, 0.0, 10.0), lookat=(0.0, 0.0, 0.0)))
        assert renderer.camera.aspect_ratio == 2.0

    def test_oversized_window_raises(self):
        renderer = _renderer()
        with pytest.raises(ValueError):
            renderer.resize(2048, 2048)

    def test_repr(self):
        renderer = _ready_renderer()
        assert "atoms=3" in repr(renderer)


class TestRendering:
    """Tests for the frame loop."""

    def test_render_counts_frames(self):
        renderer = _ready_renderer()
        renderer.render(3)
        assert renderer.frame_count == 3
        assert renderer.elapsed_time > 0.0
        assert renderer.config.time == renderer.elapsed_time

    def test_render_zero_frames_is_noop(self):
        renderer = _ready_renderer()
        renderer.render(0)
        assert renderer.frame_count == 0

    def test_progress_callback(self):
        renderer = _ready_renderer()
        calls = []
        renderer.render(3, callback=lambda current, target: calls.append((current, target)))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_progressive_generator(self):
        renderer = _ready_renderer()
        renderer.render(2)
        progress = list(renderer.render_progressive(2))
        assert progress == [(3, 4), (4, 4)]

    def test_convergence_never_decreases(self):
        renderer = _ready_renderer(max_steps=4, ssao_enabled=False)
        fractions = [_fraction_after(renderer) for _ in range(6)]
        assert fractions == sorted(fractions)
        assert 0.0 < fractions[-1] <= 1.0

    def test_surface_is_hit(self):
        from src.molsurf.core.tracer import MarchState

        renderer = _ready_renderer(max_steps=64)
        renderer.render(4)
        state = renderer.get_state_numpy()
        assert np.any(state == MarchState.HIT)
        assert np.any(state == MarchState.MISSED)


class TestAccumulationReset:
    """Changing anything the march depends on restarts it."""

    def _rendered(self):
        renderer = _ready_renderer(max_steps=2)
        renderer.render(2)
        assert not np.all(np.isneginf(renderer.get_accumulated_t_numpy()))
        return renderer

    def _assert_reset(self, renderer):
        assert renderer.frame_count == 0
        assert np.all(np.isneginf(renderer.get_accumulated_t_numpy()))

    def test_reset(self):
        renderer = self._rendered()
        renderer.reset()
        self._assert_reset(renderer)

    def test_solvent_radius_change(self):
        renderer = self._rendered()
        renderer.set_solvent_radius(1.2)
        assert renderer.config.solvent_radius == 1.2
        self._assert_reset(renderer)

    def test_max_neighbours_clamped(self):
        from src.molsurf.core.config import MAX_NEIGHBOURS_LIMIT

        renderer = self._rendered()
        renderer.set_max_neighbours(45)
        assert renderer.config.max_neighbours == MAX_NEIGHBOURS_LIMIT
        self._assert_reset(renderer)

    def test_max_steps_change(self):
        renderer = self._rendered()
        renderer.set_max_steps(16)
        assert renderer.config.max_steps == 16
        self._assert_reset(renderer)

    def test_camera_change(self):
        from src.molsurf.scene.presets import default_camera

        renderer = self._rendered()
        renderer.set_camera(default_camera(renderer.grid, yaw=-60.0))
        self._assert_reset(renderer)

    def test_atoms_change(self):
        from src.molsurf.scene.presets import create_pocket_scene

        renderer = self._rendered()
        renderer.load_atoms(create_pocket_scene())
        self._assert_reset(renderer)

    def test_unchanged_config_keeps_accumulation(self):
        renderer = self._rendered()
        before = renderer.get_accumulated_t_numpy()
        renderer.update_config(max_steps=renderer.config.max_steps)
        assert renderer.frame_count == 2
        assert np.array_equal(renderer.get_accumulated_t_numpy(), before)

    def test_resize(self):
        renderer = self._rendered()
        renderer.resize(24, 12)
        assert (renderer.width, renderer.height) == (24, 12)
        assert renderer.camera.aspect_ratio == 2.0
        self._assert_reset(renderer)
        renderer.render(1)
        assert renderer.get_image_numpy().shape == (12, 24, 3)


class TestOutput:
    """Tests for image and buffer getters."""

    def test_image_range_and_shape(self):
        renderer = _ready_renderer(20, 10)
        renderer.render(2)
        image = renderer.get_image_numpy()
        assert image.shape == (10, 20, 3)
        assert image.min() >= 0.0 and image.max() <= 1.0

    def test_uint8_image(self):
        renderer = _ready_renderer()
        renderer.render(1)
        image = renderer.get_image_uint8()
        assert image.dtype == np.uint8
        assert image.shape == (16, 16, 3)

    def test_buffer_shapes(self):
        renderer = _ready_renderer(20, 10)
        renderer.render(1)
        assert renderer.get_depth_numpy().shape == (10, 20)
        assert renderer.get_position_numpy().shape == (10, 20, 4)
        assert renderer.get_normal_numpy().shape == (10, 20, 3)
        assert renderer.get_state_numpy().shape == (10, 20)

    def test_save_image(self, tmp_path):
        from PIL import Image

        renderer = _ready_renderer(20, 10)
        renderer.render(1)
        path = tmp_path / "surface.png"
        renderer.save_image(str(path))
        with Image.open(path) as img:
            assert img.size == (20, 10)

    def test_get_pixel(self):
        renderer = _ready_renderer()
        renderer.render(1)
        pixel = renderer.get_pixel(8, 8)
        assert set(pixel) == {"state", "t", "color", "normal", "position", "depth"}
