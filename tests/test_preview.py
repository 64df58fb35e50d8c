"""Unit tests for the preview module.

Tests cover:
- Gamma encoding
- Normal, depth and march-state visualisations
- Buffer selection from a renderer
- PNG export and 8-bit conversion
- Image comparison utilities
"""

import os
import tempfile

import numpy as np
import pytest
from PIL import Image as PILImage


def _rendered(width=24, height=16):
    from src.molsurf.core.config import RenderConfig
    from src.molsurf.core.renderer import SurfaceRenderer
    from src.molsurf.scene.presets import create_default_scene, default_camera

    renderer = SurfaceRenderer(RenderConfig(width=width, height=height, max_steps=32))
    grid = renderer.load_atoms(create_default_scene())
    renderer.set_camera(default_camera(grid))
    renderer.render(2)
    return renderer


class TestGamma:
    """Test gamma encoding."""

    def test_gamma_1_no_change(self):
        from src.molsurf.preview.display import apply_gamma

        image = np.array([[[0.25, 0.5, 0.75]]], dtype=np.float32)
        assert np.array_equal(apply_gamma(image, 1.0), image)

    def test_gamma_brightens_midtones(self):
        from src.molsurf.preview.display import apply_gamma

        image = np.full((1, 1, 3), 0.5, dtype=np.float32)
        result = apply_gamma(image, 2.2)
        assert np.allclose(result, 0.5 ** (1.0 / 2.2), atol=1e-6)

    def test_gamma_clamps_negative(self):
        from src.molsurf.preview.display import apply_gamma

        image = np.array([[[-0.5, 0.0, 2.0]]], dtype=np.float32)
        result = apply_gamma(image, 2.2)
        assert np.allclose(result, [[[0.0, 0.0, 1.0]]])


class TestBufferVisualisation:
    """Test G-buffer to RGB mappings."""

    def test_normals_to_rgb(self):
        from src.molsurf.preview.display import normals_to_rgb

        normals = np.array([[[0.0, 0.0, 1.0], [0.0, 0.0, 0.0], [-1.0, 0.0, 0.0]]], dtype=np.float32)
        rgb = normals_to_rgb(normals)
        assert np.allclose(rgb[0, 0], (0.5, 0.5, 1.0))
        assert np.allclose(rgb[0, 1], (0.0, 0.0, 0.0))
        assert np.allclose(rgb[0, 2], (0.0, 0.5, 0.5))

    def test_depth_near_is_brighter(self):
        from src.molsurf.core.tracer import MarchState
        from src.molsurf.preview.display import depth_to_rgb

        depth = np.array([[2.0, 4.0, 1e10]], dtype=np.float32)
        state = np.array([[MarchState.HIT, MarchState.HIT, MarchState.MISSED]], dtype=np.int32)
        rgb = depth_to_rgb(depth, state)
        assert rgb.shape == (1, 3, 3)
        assert rgb[0, 0, 0] == pytest.approx(1.0)
        assert rgb[0, 1, 0] == pytest.approx(0.2)
        assert rgb[0, 2, 0] == 0.0

    def test_depth_without_hits_is_black(self):
        from src.molsurf.core.tracer import MarchState
        from src.molsurf.preview.display import depth_to_rgb

        depth = np.full((2, 2), 5.0, dtype=np.float32)
        state = np.full((2, 2), MarchState.MARCHING, dtype=np.int32)
        assert np.all(depth_to_rgb(depth, state) == 0.0)

    def test_state_palette(self):
        from src.molsurf.preview.display import STATE_PALETTE, state_to_rgb

        state = np.array([[0, 1], [2, 3]], dtype=np.int32)
        rgb = state_to_rgb(state)
        assert rgb.shape == (2, 2, 3)
        assert np.array_equal(rgb[1, 0], STATE_PALETTE[2])

    @pytest.mark.parametrize("buffer", ["color", "normal", "depth", "state"])
    def test_buffer_to_rgb_shapes(self, buffer):
        from src.molsurf.preview.display import buffer_to_rgb

        renderer = _rendered()
        image = buffer_to_rgb(renderer, buffer)
        assert image.shape == (16, 24, 3)
        assert image.min() >= 0.0 and image.max() <= 1.0

    def test_unknown_buffer_raises(self):
        from src.molsurf.preview.display import buffer_to_rgb

        renderer = _rendered()
        with pytest.raises(ValueError, match="Unknown buffer"):
            buffer_to_rgb(renderer, "albedo")


class TestSavePng:
    """Test PNG export."""

    def test_save_png_creates_file(self):
        from src.molsurf.preview.export import save_png

        renderer = _rendered()
        with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as f:
            filepath = f.name

        try:
            save_png(renderer, filepath, gamma=2.2)
            assert os.path.exists(filepath)
            img = PILImage.open(filepath)
            assert img.size == (24, 16)
            assert img.mode == "RGB"
        finally:
            if os.path.exists(filepath):
                os.remove(filepath)

    def test_save_png_each_buffer(self):
        from src.molsurf.preview.export import save_png

        renderer = _rendered()
        for buffer in ["color", "normal", "depth", "state"]:
            with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as f:
                filepath = f.name

            try:
                save_png(renderer, filepath, buffer=buffer)
                img = PILImage.open(filepath)
                assert img.size == (24, 16)
            finally:
                if os.path.exists(filepath):
                    os.remove(filepath)

    def test_save_png_from_array(self):
        from src.molsurf.preview.export import save_png_from_array

        image = np.zeros((32, 64, 3), dtype=np.float32)
        image[:, :, 0] = np.linspace(0, 1, 64)

        with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as f:
            filepath = f.name

        try:
            save_png_from_array(image, filepath, gamma=2.2)
            img = PILImage.open(filepath)
            assert img.size == (64, 32)
            assert img.mode == "RGB"
        finally:
            if os.path.exists(filepath):
                os.remove(filepath)


class TestImageToUint8:
    """Test conversion to uint8."""

    def test_black_and_white(self):
        from src.molsurf.preview.export import image_to_uint8

        image = np.zeros((2, 2, 3), dtype=np.float32)
        image[1, 1] = 1.0
        result = image_to_uint8(image, gamma=2.2)
        assert result.dtype == np.uint8
        assert result[0, 0, 0] == 0
        assert result[1, 1, 0] == 255

    def test_out_of_range_clamped(self):
        from src.molsurf.preview.export import image_to_uint8

        image = np.array([[[-1.0, 0.5, 3.0]]], dtype=np.float32)
        result = image_to_uint8(image, gamma=1.0)
        assert list(result[0, 0]) == [0, 127, 255]


class TestComputeRmse:
    """Test image comparison."""

    def test_identical_images(self):
        from src.molsurf.preview.export import compute_rmse

        image = np.random.default_rng(0).random((8, 8, 3))
        assert compute_rmse(image, image) == 0.0

    def test_different_images(self):
        from src.molsurf.preview.export import compute_rmse

        a = np.zeros((4, 4, 3))
        b = np.full((4, 4, 3), 0.5)
        assert compute_rmse(a, b) == pytest.approx(0.5)

    def test_shape_mismatch_raises(self):
        from src.molsurf.preview.export import compute_rmse

        with pytest.raises(ValueError, match="shapes must match"):
            compute_rmse(np.zeros((4, 4, 3)), np.zeros((4, 5, 3)))


class TestModuleExports:
    """Test the preview package's public names."""

    def test_preview_exports(self):
        import src.molsurf.preview as preview

        for name in ["show_preview", "show_buffers", "buffer_to_rgb", "save_png", "compute_rmse"]:
            assert name in preview.__all__
            assert hasattr(preview, name)
