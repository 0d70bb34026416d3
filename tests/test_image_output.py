import numpy as np
import pytest
from PIL import Image

from mandelbrot_tiles.core.pixel_buffer import PixelBuffer
from mandelbrot_tiles.rendering.image_output import ImageExporter, RenderMetadata, buffer_to_image


@pytest.fixture
def buffer():
    # 2x2 pixels in BGR order: red, green / blue, white
    data = np.array([0, 0, 255, 0, 255, 0,
                     255, 0, 0, 255, 255, 255], dtype=np.uint8)
    return PixelBuffer(data, 2, 2)


@pytest.fixture
def metadata():
    return RenderMetadata(
        region=(-2.5, -1.0, 1.0, 1.0),
        resolution=(2, 2),
        max_iterations=100,
        bailout=1e10,
        palette="Grayscale",
        worker_grid=(1, 2),
        backend="thread",
        render_time_seconds=0.25,
        gradient={'log_index': False},
    )


class TestPixelBuffer:
    def test_pixel_is_rgb(self, buffer):
        assert buffer.pixel(0, 0) == (255, 0, 0)
        assert buffer.pixel(1, 0) == (0, 255, 0)
        assert buffer.pixel(0, 1) == (0, 0, 255)

    def test_to_rgb_array(self, buffer):
        rgb = buffer.to_rgb_array()
        assert rgb.shape == (2, 2, 3)
        assert rgb[0, 0].tolist() == [255, 0, 0]
        assert rgb[1, 1].tolist() == [255, 255, 255]

    def test_allocate(self):
        allocated = PixelBuffer.allocate(5, 3)
        assert allocated.stride == 15
        assert not allocated.data.any()

    @pytest.mark.parametrize("data", [
        np.zeros(11, dtype=np.uint8),
        np.zeros(12, dtype=np.int32),
        np.zeros((2, 6), dtype=np.uint8),
    ])
    def test_wrong_layout_rejected(self, data):
        with pytest.raises(ValueError):
            PixelBuffer(data, 2, 2)


def test_buffer_to_image(buffer):
    image = buffer_to_image(buffer)
    assert image.mode == 'RGB'
    assert image.getpixel((0, 0)) == (255, 0, 0)
    assert image.getpixel((0, 1)) == (0, 0, 255)


class TestRenderMetadata:
    def test_json_conversion(self, metadata):
        restored = RenderMetadata.from_json(metadata.to_json())
        assert restored == metadata
        assert isinstance(restored.region, tuple)

    def test_timestamp_defaults_to_now(self, metadata):
        assert metadata.timestamp


class TestImageExporter:
    def test_png_with_metadata(self, tmp_path, buffer, metadata):
        exporter = ImageExporter()
        path = exporter.save_image(buffer, tmp_path / "out.png", metadata)

        with Image.open(path) as img:
            assert img.getpixel((1, 0)) == (0, 255, 0)
            assert 'RenderMetadata' in img.text
        assert exporter.extract_metadata_from_image(path) == metadata

    def test_png_without_metadata(self, tmp_path, buffer):
        exporter = ImageExporter()
        path = exporter.save_image(buffer, tmp_path / "plain.png")
        assert exporter.extract_metadata_from_image(path) is None

    def test_bmp_writes_companion_json(self, tmp_path, buffer, metadata):
        exporter = ImageExporter()
        path = exporter.save_image(buffer, tmp_path / "out.bmp", metadata)

        assert (tmp_path / "out.json").exists()
        with Image.open(path) as img:
            assert img.mode == 'RGB'
            assert img.getpixel((0, 1)) == (0, 0, 255)
        assert exporter.extract_metadata_from_image(path) == metadata

    def test_tiff_description(self, tmp_path, buffer, metadata):
        exporter = ImageExporter()
        path = exporter.save_image(buffer, tmp_path / "out.tiff", metadata)
        assert exporter.extract_metadata_from_image(path) == metadata

    def test_jpeg(self, tmp_path, buffer, metadata):
        exporter = ImageExporter()
        path = exporter.save_image(buffer, tmp_path / "out.jpg", metadata, quality=80)

        with Image.open(path) as img:
            assert img.size == (2, 2)
        assert exporter.extract_metadata_from_image(path).max_iterations == 100

    def test_unsupported_format(self, tmp_path, buffer):
        with pytest.raises(ValueError):
            ImageExporter().save_image(buffer, tmp_path / "out.gif")
