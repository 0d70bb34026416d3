"""
Exception types raised by the rendering pipeline.
"""


class InvalidConfigurationError(ValueError):
    """Raised when a render request is rejected before any worker starts."""


class RenderError(RuntimeError):
    """Raised when a tile worker fails and the whole render is aborted."""

    def __init__(self, tile_id: int, message: str):
        super().__init__(f"Tile {tile_id} failed: {message}")
        self.tile_id = tile_id
