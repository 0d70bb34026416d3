"""
Configuration file handling.

Render configurations are stored as JSON documents whose keys mirror
:class:`RenderConfig`, with an optional nested ``gradient`` section.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, Union

from .api import RenderConfig
from .core.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)


class ConfigManager:
    """Load and save render configurations."""

    def load_config(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Read a configuration file.

        Args:
            path: JSON file path

        Returns:
            Raw configuration dictionary
        """
        path = Path(path)
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfigurationError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, dict):
            raise InvalidConfigurationError(f"Configuration in {path} must be a JSON object")

        logger.info(f"Loaded configuration from {path}")
        return data

    def create_render_config(self, data: Dict[str, Any]) -> RenderConfig:
        """Build and validate a RenderConfig from a raw dictionary."""
        try:
            config = RenderConfig.from_dict(data)
        except TypeError as e:
            raise InvalidConfigurationError(f"Invalid configuration: {e}") from e
        config.validate()
        return config

    def load_render_config(self, path: Union[str, Path]) -> RenderConfig:
        """Read a configuration file straight into a RenderConfig."""
        return self.create_render_config(self.load_config(path))

    def save_config(self, config: RenderConfig, path: Union[str, Path]) -> None:
        """Write a configuration as JSON."""
        path = Path(path)
        with open(path, 'w') as f:
            json.dump(config.to_dict(), f, indent=2)
        logger.info(f"Saved configuration to {path}")
