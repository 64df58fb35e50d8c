"""Unit tests for the sphere tracer kernels and buffers.

Tests cover:
- Render target setup and validation
- A single ray through the three-atom pocket (hit, normal, colour, depth)
- Resumption of an interrupted march across frames
- Rays crossing atom-free cells of a multi-cell grid
- Rays missing the bounding box or leaving it
- Accumulation reset and buffer readback
"""

import math

import numpy as np
import pytest


def _setup(lookfrom, lookat, width=1, height=1):
    from src.molsurf.camera.pinhole import PinholeCamera, setup_camera
    from src.molsurf.core.tracer import setup_render_target

    setup_render_target(width, height)
    setup_camera(PinholeCamera(lookfrom=lookfrom, lookat=lookat, aspect_ratio=width / height))


def _config(**kwargs):
    from src.molsurf.core.config import RenderConfig

    params = {"width": 1, "height": 1, "solvent_radius": 0.3, "ssao_enabled": False}
    params.update(kwargs)
    return RenderConfig(**params)


class TestRenderTarget:
    """Tests for render target setup."""

    def test_setup_sets_dimensions(self):
        from src.molsurf.core.tracer import get_image_dimensions, setup_render_target

        setup_render_target(64, 32)
        assert get_image_dimensions() == (64, 32)

    def test_rejects_oversized_window(self):
        from src.molsurf.core.tracer import setup_render_target

        with pytest.raises(ValueError, match="exceed maximum"):
            setup_render_target(2048, 16)

    def test_rejects_empty_window(self):
        from src.molsurf.core.tracer import setup_render_target

        with pytest.raises(ValueError, match="must be positive"):
            setup_render_target(0, 16)

    def test_setup_resets_accumulation(self):
        from src.molsurf.core.tracer import get_accumulated_t_numpy, get_state_numpy

        _setup((0.0, 0.0, 5.0), (0.0, 0.0, 0.0), width=4, height=3)
        t = get_accumulated_t_numpy()
        assert t.shape == (3, 4)
        assert np.all(np.isneginf(t))
        assert np.all(get_state_numpy() == 0)

    def test_march_requires_grid(self):
        from src.molsurf.core.tracer import march_frame

        _setup((0.0, 0.0, 5.0), (0.0, 0.0, 0.0))
        with pytest.raises(RuntimeError, match="Voxel grid"):
            march_frame(_config())

    def test_march_rejects_mismatched_config(self, pocket_grid):
        from src.molsurf.core.tracer import march_frame

        _setup((0.0, 0.0, 5.0), (0.0, 0.0, 0.0))
        with pytest.raises(ValueError, match="does not match"):
            march_frame(_config(width=2))

    def test_get_pixel_outside_window(self):
        from src.molsurf.core.tracer import get_pixel

        _setup((0.0, 0.0, 5.0), (0.0, 0.0, 0.0), width=2, height=2)
        with pytest.raises(IndexError):
            get_pixel(2, 0)


class TestPocketRay:
    """A single ray straight down into the pocket between three atoms."""

    EYE = (1.0, 0.5, 10.0)
    TARGET = (1.0, 0.5, 0.0)

    @staticmethod
    def _surface_z():
        probe_y = 1.25 / 3.0
        probe_z = math.sqrt(1.69 - 1.0 - probe_y**2)
        return probe_z - math.sqrt(0.09 - (0.5 - probe_y) ** 2)

    def test_hits_pocket_surface(self, pocket_grid):
        from src.molsurf.core.tracer import MarchState, get_pixel, march_frame

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=16))
        pixel = get_pixel(0, 0)
        assert pixel["state"] == MarchState.HIT
        assert abs(pixel["position"][2] - self._surface_z()) < 2e-3
        assert abs(pixel["t"] - (10.0 - self._surface_z())) < 2e-3

    def test_normal_faces_camera(self, pocket_grid):
        from src.molsurf.core.tracer import get_pixel, march_frame

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=16))
        normal = get_pixel(0, 0)["normal"]
        assert normal[2] > 0.0
        assert abs(math.sqrt(sum(c * c for c in normal)) - 1.0) < 1e-4

    def test_colour_is_diffuse_term(self, pocket_grid):
        from src.molsurf.core.tracer import get_pixel, march_frame

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=16, surface_color=(1.0, 0.5, 0.25)))
        pixel = get_pixel(0, 0)
        n_z = pixel["normal"][2]
        assert np.allclose(pixel["color"], (n_z, 0.5 * n_z, 0.25 * n_z), atol=1e-5)

    def test_depth_is_eye_distance(self, pocket_grid):
        from src.molsurf.core.tracer import get_pixel, march_frame

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=16))
        pixel = get_pixel(0, 0)
        assert abs(pixel["depth"] - (10.0 - pixel["position"][2])) < 1e-2

    def test_small_budget_leaves_pixel_marching(self, pocket_grid):
        from src.molsurf.core.tracer import MarchState, get_pixel, march_frame

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=2))
        pixel = get_pixel(0, 0)
        assert pixel["state"] == MarchState.MARCHING
        assert pixel["normal"] == (0.0, 0.0, 0.0)
        assert 4.0 < pixel["t"] < 10.0

    def test_resumed_march_matches_single_frame(self, pocket_grid):
        from src.molsurf.core.tracer import (
            MarchState,
            get_pixel,
            march_frame,
            reset_accumulation,
        )

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=16))
        single = get_pixel(0, 0)

        reset_accumulation()
        for _ in range(8):
            march_frame(_config(max_steps=2))
        resumed = get_pixel(0, 0)

        assert resumed["state"] == MarchState.HIT
        assert resumed["t"] == pytest.approx(single["t"], abs=1e-5)
        assert np.allclose(resumed["normal"], single["normal"], atol=1e-5)

    def test_reset_restarts_at_box_entry(self, pocket_grid):
        from src.molsurf.core.tracer import get_pixel, march_frame, reset_accumulation

        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=1))
        first = get_pixel(0, 0)["t"]
        march_frame(_config(max_steps=1))
        assert get_pixel(0, 0)["t"] > first

        reset_accumulation()
        march_frame(_config(max_steps=1))
        assert get_pixel(0, 0)["t"] == pytest.approx(first)


class TestEmptyCells:
    """A ray crossing atom-free cells inside a multi-cell grid.

    The L-shaped molecule runs 21 atoms along +x and 20 along +y, two units
    apart, so the 6-unit grid spans (-6, -6, -6)..(42, 42, 6) and its
    interior between the arms holds no atoms.
    """

    EYE = (60.0, 60.0, 0.0)
    TARGET = (0.0, 20.0, 0.0)

    @staticmethod
    def _upload_l_shape():
        from src.molsurf.scene.atoms import AtomStore
        from src.molsurf.scene.grid import build_voxel_grid, upload_voxel_grid

        centers = [(2.0 * k, 0.0, 0.0) for k in range(21)]
        centers += [(0.0, 2.0 * k, 0.0) for k in range(1, 21)]
        atoms = AtomStore.from_arrays(centers, 1.0)
        grid = build_voxel_grid(atoms)
        upload_voxel_grid(grid, atoms)
        return grid

    def test_grid_has_empty_interior(self):
        from src.molsurf.scene.sdf import BACKGROUND_DISTANCE, evaluate_sdf

        grid = self._upload_l_shape()
        assert grid.bbox.minimum == (-6.0, -6.0, -6.0)
        assert grid.bbox.maximum == (42.0, 42.0, 6.0)
        _, distance = evaluate_sdf((30.0, 30.0, 0.0), 0.3, 15)
        assert distance == pytest.approx(BACKGROUND_DISTANCE)

    def test_step_limit_is_atom_free_reach(self):
        import taichi as ti

        from src.molsurf.scene.grid import max_safe_step

        self._upload_l_shape()
        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def read_step_limit():
            result[None] = max_safe_step()

        read_step_limit()
        # cell 6 minus radius 1 minus the largest probe radius 2
        assert result[None] == pytest.approx(3.0)

    def test_hits_atom_across_empty_cells(self):
        from src.molsurf.core.tracer import MarchState, get_pixel, march_frame

        self._upload_l_shape()
        _setup(self.EYE, self.TARGET)
        for _ in range(2):
            march_frame(_config(max_steps=64))
        pixel = get_pixel(0, 0)
        assert pixel["state"] == MarchState.HIT
        center_distance = math.dist(pixel["position"], self.TARGET)
        assert abs(center_distance - 1.0) < 1e-2
        assert abs(pixel["t"] - (math.dist(self.EYE, self.TARGET) - 1.0)) < 1e-2

    def test_steps_through_empty_cells_are_bounded(self):
        from src.molsurf.core.tracer import MarchState, get_pixel, march_frame

        self._upload_l_shape()
        _setup(self.EYE, self.TARGET)
        march_frame(_config(max_steps=4))
        pixel = get_pixel(0, 0)
        # Box entry through y = 42, then at most four steps of 3
        t_near = 18.0 / (40.0 / math.dist(self.EYE, self.TARGET))
        assert pixel["state"] == MarchState.MARCHING
        assert t_near < pixel["t"] <= t_near + 12.0 + 1e-3


class TestMisses:
    """Rays that never reach the surface."""

    def test_ray_missing_box(self, pocket_grid):
        from src.molsurf.core.tracer import BACKGROUND_DEPTH, MarchState, get_pixel, march_frame

        _setup((0.0, 0.0, 10.0), (0.0, 0.0, 20.0))
        march_frame(_config(background_color=(0.2, 0.3, 0.4)))
        pixel = get_pixel(0, 0)
        assert pixel["state"] == MarchState.MISSED
        assert np.allclose(pixel["color"], (0.2, 0.3, 0.4))
        assert pixel["normal"] == (0.0, 0.0, 0.0)
        assert pixel["depth"] == pytest.approx(BACKGROUND_DEPTH)
        assert math.isinf(pixel["t"]) and pixel["t"] < 0.0

    def test_ray_leaving_box(self, pocket_grid):
        from src.molsurf.core.tracer import MarchState, get_pixel, march_frame

        _setup((5.0, 5.0, 10.0), (5.0, 5.0, 0.0))
        march_frame(_config(max_steps=16))
        pixel = get_pixel(0, 0)
        assert pixel["state"] == MarchState.MISSED
        assert pixel["normal"] == (0.0, 0.0, 0.0)
        assert pixel["t"] > 16.0


class TestReadback:
    """Tests for whole-buffer readback."""

    def test_buffer_shapes(self, pocket_grid):
        from src.molsurf.core.tracer import (
            get_image_numpy,
            get_normal_numpy,
            get_position_numpy,
            get_state_numpy,
            march_frame,
        )

        _setup((1.0, 0.5, 10.0), (1.0, 0.5, 0.0), width=8, height=6)
        march_frame(_config(width=8, height=6))
        assert get_image_numpy().shape == (6, 8, 3)
        assert get_normal_numpy().shape == (6, 8, 3)
        assert get_position_numpy().shape == (6, 8, 4)
        assert get_state_numpy().shape == (6, 8)

    def test_every_pixel_written(self, pocket_grid):
        from src.molsurf.core.tracer import get_state_numpy, march_frame

        _setup((1.0, 0.5, 10.0), (1.0, 0.5, 0.0), width=8, height=6)
        march_frame(_config(width=8, height=6))
        assert np.all(get_state_numpy() != 0)

    def test_top_row_first(self, pocket_grid):
        from src.molsurf.core.tracer import get_position_numpy, march_frame

        # Rows fan out vertically from the eye
        _setup((1.0, 0.5, 10.0), (1.0, 0.5, 0.0), width=1, height=4)
        march_frame(_config(width=1, height=4, max_steps=1))
        positions = get_position_numpy()
        assert positions[0, 0, 1] > positions[-1, 0, 1]
