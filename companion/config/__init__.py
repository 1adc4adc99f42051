"""Configuration module for companion."""

from companion.config.loader import get_config_path, load_config
from companion.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
