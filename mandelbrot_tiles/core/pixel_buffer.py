"""
Packed 24-bit pixel buffer produced by the tile scheduler.
"""

from dataclasses import dataclass

import numpy as np

BYTES_PER_PIXEL = 3


@dataclass
class PixelBuffer:
    """
    Row-major pixel data, 3 bytes per pixel in (blue, green, red) order.

    ``data`` is a flat uint8 array of length ``width * height * 3`` with a
    stride of ``width * 3`` bytes per row.
    """

    data: np.ndarray
    width: int
    height: int

    def __post_init__(self):
        expected = self.width * self.height * BYTES_PER_PIXEL
        if self.data.dtype != np.uint8 or self.data.ndim != 1 or self.data.size != expected:
            raise ValueError(
                f"Expected flat uint8 buffer of {expected} bytes for "
                f"{self.width}x{self.height}, got {self.data.dtype} {self.data.shape}")

    @classmethod
    def allocate(cls, width: int, height: int) -> 'PixelBuffer':
        """Zero-filled buffer."""
        return cls(np.zeros(width * height * BYTES_PER_PIXEL, dtype=np.uint8), width, height)

    @property
    def stride(self) -> int:
        return self.width * BYTES_PER_PIXEL

    def tobytes(self) -> bytes:
        return self.data.tobytes()

    def pixel(self, x: int, y: int):
        """(red, green, blue) of one pixel."""
        offset = BYTES_PER_PIXEL * (y * self.width + x)
        blue, green, red = self.data[offset:offset + BYTES_PER_PIXEL]
        return int(red), int(green), int(blue)

    def to_rgb_array(self) -> np.ndarray:
        """Copy as an RGB image array of shape (height, width, 3)."""
        bgr = self.data.reshape(self.height, self.width, BYTES_PER_PIXEL)
        return np.ascontiguousarray(bgr[:, :, ::-1])
