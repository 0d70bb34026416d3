"""
Image export for rendered pixel buffers.

This module converts the scheduler's packed BGR pixel buffer into Pillow
images and writes them as PNG, BMP, TIFF or JPEG, embedding render metadata
where the format allows it.
"""

from typing import Dict, Any, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass, asdict, field
import json
import logging
from datetime import datetime

from PIL import Image, PngImagePlugin

from .. import __version__
from ..core.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)


@dataclass
class RenderMetadata:
    """Metadata for a finished render."""

    region: Tuple[float, float, float, float]  # real_min, imag_min, real_max, imag_max
    resolution: Tuple[int, int]  # width, height
    max_iterations: int
    bailout: float
    palette: str
    worker_grid: Tuple[int, int]  # columns, rows
    backend: str
    render_time_seconds: float
    gradient: Dict[str, Any] = field(default_factory=dict)

    timestamp: str = ""
    software_version: str = __version__

    def __post_init__(self):
        """Set default timestamp if not provided."""
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderMetadata':
        """Create metadata from dictionary."""
        data = dict(data)
        for key in ('region', 'resolution', 'worker_grid'):
            if key in data:
                data[key] = tuple(data[key])
        return cls(**data)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'RenderMetadata':
        """Create metadata from JSON string."""
        return cls.from_dict(json.loads(json_str))


def buffer_to_image(buffer: PixelBuffer) -> Image.Image:
    """Wrap a BGR pixel buffer as an RGB Pillow image."""
    return Image.frombytes('RGB', (buffer.width, buffer.height), buffer.tobytes(), 'raw', 'BGR')


class ImageExporter:
    """Image export with metadata support."""

    def __init__(self):
        """Initialize image exporter."""
        self.supported_formats = {
            '.png': self._save_png,
            '.bmp': self._save_bmp,
            '.tiff': self._save_tiff,
            '.tif': self._save_tiff,
            '.jpg': self._save_jpeg,
            '.jpeg': self._save_jpeg,
        }

    def save_image(self, buffer: PixelBuffer, filepath: Path,
                   metadata: Optional[RenderMetadata] = None,
                   quality: int = 95) -> Path:
        """
        Save a pixel buffer to file.

        Args:
            buffer: Completed pixel buffer
            filepath: Output file path; the suffix selects the format
            metadata: Render metadata to embed
            quality: JPEG quality (1-100)

        Returns:
            The written path
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix not in self.supported_formats:
            supported = ', '.join(self.supported_formats.keys())
            raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

        pil_image = buffer_to_image(buffer)

        save_method = self.supported_formats[suffix]
        save_method(pil_image, filepath, metadata, quality)

        logger.info(f"Saved image: {filepath} ({pil_image.size[0]}x{pil_image.size[1]})")
        return filepath

    def _save_png(self, pil_image: Image.Image, filepath: Path,
                  metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as PNG with metadata."""
        pnginfo = PngImagePlugin.PngInfo()

        if metadata:
            pnginfo.add_text("Title", "Mandelbrot set")
            pnginfo.add_text("Software", f"mandelbrot-tiles v{metadata.software_version}")
            pnginfo.add_text("Creation Time", metadata.timestamp)
            pnginfo.add_text("RenderMetadata", metadata.to_json())

        pil_image.save(filepath, "PNG", pnginfo=pnginfo)

    def _save_bmp(self, pil_image: Image.Image, filepath: Path,
                  metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as 24-bit BMP; metadata goes to a companion JSON file."""
        pil_image.save(filepath, "BMP")
        self._save_companion_json(filepath, metadata)

    def _save_tiff(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as LZW-compressed TIFF with the metadata in ImageDescription."""
        save_kwargs = {'format': 'TIFF', 'compression': 'tiff_lzw'}
        if metadata:
            save_kwargs['tiffinfo'] = {270: metadata.to_json(), 305: f"mandelbrot-tiles v{metadata.software_version}"}
        pil_image.save(filepath, **save_kwargs)

    def _save_jpeg(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as JPEG; metadata goes to a companion JSON file."""
        pil_image.save(filepath, "JPEG", quality=quality, optimize=True)
        self._save_companion_json(filepath, metadata)

    def _save_companion_json(self, filepath: Path, metadata: Optional[RenderMetadata]) -> None:
        if metadata:
            json_path = filepath.with_suffix('.json')
            with open(json_path, 'w') as f:
                f.write(metadata.to_json())
            logger.info(f"Saved metadata: {json_path}")

    def extract_metadata_from_image(self, filepath: Path) -> Optional[RenderMetadata]:
        """
        Extract render metadata from a saved image.

        Args:
            filepath: Path to image file

        Returns:
            Extracted metadata or None
        """
        filepath = Path(filepath)

        with Image.open(filepath) as img:
            if hasattr(img, 'text') and 'RenderMetadata' in img.text:
                return RenderMetadata.from_json(img.text['RenderMetadata'])

            if hasattr(img, 'tag_v2') and 270 in img.tag_v2:
                try:
                    return RenderMetadata.from_json(img.tag_v2[270])
                except (ValueError, TypeError) as e:
                    logger.warning(f"Could not parse TIFF metadata in {filepath}: {e}")

        json_path = filepath.with_suffix('.json')
        if json_path.exists():
            with open(json_path, 'r') as f:
                return RenderMetadata.from_json(f.read())

        return None
