import numpy as np
import pytest
from PIL import Image

from mandelbrot_tiles import (
    GradientConfig,
    InvalidConfigurationError,
    MandelbrotRenderer,
    PixelRect,
    Region,
    RenderConfig,
    render,
)
from mandelbrot_tiles.api import WORKERS_ENV_VAR, default_worker_grid

RED = (255, 0, 0)


class TestRender:
    def test_full_view_4x4(self, full_region, red_interior):
        buffer = render((1, 1), PixelRect.from_size(4, 4), full_region, 50,
                        [(0, 0, 0), (255, 255, 255)], red_interior, 1e10)

        assert buffer.data.size == 48

        # c = -2.5 - 1i escapes, so it takes a gray from the palette
        r, g, b = buffer.pixel(0, 0)
        assert r == g == b
        assert (r, g, b) != RED

        # c = -2.5 on the real axis escapes too
        assert buffer.pixel(0, 2) != RED

        # c = -1.625, -0.75 and 0.125 on the real axis never escape
        for x in (1, 2, 3):
            assert buffer.pixel(x, 2) == RED

    def test_bgr_byte_order(self, full_region, red_interior):
        buffer = render((1, 1), PixelRect.from_size(4, 4), full_region, 50,
                        [(0, 0, 0), (255, 255, 255)], red_interior)
        offset = buffer.stride * 2 + 3 * 2
        assert buffer.data[offset:offset + 3].tolist() == [0, 0, 255]

    def test_row_zero_is_minimum_imaginary(self, red_interior):
        # Row 0 lies at imag -0.25 inside the cardioid, row 3 at imag 2.1875
        region = Region.from_bounds(-0.5, -0.25, 0.5, 3.0)
        buffer = render((1, 2), PixelRect.from_size(4, 4), region, 100,
                        [(0, 0, 0), (255, 255, 255)], red_interior)
        assert buffer.pixel(1, 0) == RED
        assert buffer.pixel(1, 3) != RED

    def test_origin_and_extent_matches_absolute(self, gray_palette):
        rect = PixelRect.from_size(12, 8)
        absolute = render((2, 2), rect, Region.from_bounds(-2.5, -1.0, 1.0, 1.0), 100, gray_palette)
        relative = render((2, 2), rect, Region.from_bounds(-2.5, -1.0, 3.5, 2.0, origin_and_extent=True),
                          100, gray_palette)
        assert np.array_equal(absolute.data, relative.data)

    def test_swapped_corners_match(self, gray_palette):
        rect = PixelRect.from_size(12, 8)
        ordered = render((1, 1), rect, Region.from_bounds(-2.5, -1.0, 1.0, 1.0), 100, gray_palette)
        swapped = render((1, 1), rect, Region.from_bounds(1.0, 1.0, -2.5, -1.0), 100, gray_palette)
        assert np.array_equal(ordered.data, swapped.data)

    def test_to_rgb_array(self, full_region, red_interior):
        buffer = render((1, 1), PixelRect.from_size(4, 4), full_region, 50,
                        [(0, 0, 0), (255, 255, 255)], red_interior)
        rgb = buffer.to_rgb_array()
        assert rgb.shape == (4, 4, 3)
        assert tuple(rgb[2, 2]) == RED


class TestRenderConfig:
    def test_defaults(self):
        config = RenderConfig()
        config.validate()
        assert config.get_region().to_tuple() == (-2.5, -1.0, 1.0, 1.0)
        assert config.resolve_max_iterations() == 5000
        assert config.get_pixel_rect() == PixelRect(0, 0, 1024, 1024)

    def test_worker_grid_from_environment(self, monkeypatch):
        monkeypatch.setenv(WORKERS_ENV_VAR, '3x2')
        assert default_worker_grid() == (3, 2)
        assert RenderConfig().worker_grid == (3, 2)

    def test_invalid_worker_grid_in_environment(self, monkeypatch):
        monkeypatch.setenv(WORKERS_ENV_VAR, 'lots')
        with pytest.raises(InvalidConfigurationError):
            default_worker_grid()

    @pytest.mark.parametrize("kwargs", [
        {'width': 0},
        {'height': -1},
        {'region': (0.0, 0.0, 0.0, 1.0)},
        {'region': (0.0, 0.0, 1.0)},
        {'max_iterations': 0},
        {'bailout': 0.0},
        {'periodicity_epsilon': -1.0},
        {'worker_grid': (0, 1)},
        {'backend': 'gpu'},
        {'jpeg_quality': 0},
        {'gradient': GradientConfig(palette_bailout=0.5)},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidConfigurationError):
            RenderConfig(**{"worker_grid": (1, 1), **kwargs}).validate()

    def test_from_dict(self):
        config = RenderConfig.from_dict({
            'width': 8,
            'region': [-2, -1, 1, 1],
            'worker_grid': '2x4',
            'gradient': {'log_index': True, 'max_iteration_color': [1, 2, 3]},
        })
        assert config.width == 8
        assert config.region == (-2.0, -1.0, 1.0, 1.0)
        assert config.worker_grid == (2, 4)
        assert config.gradient == GradientConfig(log_index=True, max_iteration_color=(1, 2, 3))

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(InvalidConfigurationError):
            RenderConfig.from_dict({'antialiasing': 4})

    def test_dict_conversion(self):
        config = RenderConfig(width=64, worker_grid=(2, 2), max_iterations=300)
        assert RenderConfig.from_dict(config.to_dict()) == config


class TestMandelbrotRenderer:
    def _config(self, **kwargs):
        defaults = dict(width=16, height=12, max_iterations=50, worker_grid=(2, 2), palette='gray')
        defaults.update(kwargs)
        return RenderConfig(**defaults)

    def test_render_to_png(self, tmp_path):
        renderer = MandelbrotRenderer(self._config())
        output = tmp_path / "set.png"

        buffer = renderer.render(output)

        assert renderer.last_render_time >= 0
        with Image.open(output) as img:
            assert img.size == (16, 12)
            assert img.getpixel((0, 0)) == buffer.pixel(0, 0)

        metadata = renderer.image_exporter.extract_metadata_from_image(output)
        assert metadata.resolution == (16, 12)
        assert metadata.max_iterations == 50
        assert metadata.worker_grid == (2, 2)
        assert metadata.palette == "Grayscale"

    def test_render_without_output(self):
        buffer = MandelbrotRenderer(self._config()).render()
        assert (buffer.width, buffer.height) == (16, 12)

    def test_palette_file(self, tmp_path):
        path = tmp_path / "duo.map"
        path.write_text("10 20 30\n40 50 60\n")
        renderer = MandelbrotRenderer(self._config(palette_file=str(path)))
        assert renderer.get_palette().name == "duo"

    def test_unknown_palette(self):
        renderer = MandelbrotRenderer(self._config(palette='plaid'))
        with pytest.raises(InvalidConfigurationError):
            renderer.render()

    def test_backends_agree(self):
        threaded = MandelbrotRenderer(self._config()).render()
        serial = MandelbrotRenderer(self._config(backend='serial', worker_grid=(1, 1))).render()
        assert np.array_equal(threaded.data, serial.data)

    def test_update_config(self):
        renderer = MandelbrotRenderer(self._config())
        renderer.update_config(backend='serial', width=8)
        assert renderer.scheduler.backend == 'serial'
        assert renderer.render().width == 8

    def test_update_config_unknown_key(self):
        renderer = MandelbrotRenderer(self._config())
        with pytest.raises(InvalidConfigurationError):
            renderer.update_config(antialiasing=2)

    def test_invalid_config_rejected_up_front(self):
        with pytest.raises(InvalidConfigurationError):
            MandelbrotRenderer(self._config(width=0))
