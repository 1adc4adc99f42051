"""Configuration loading utilities."""

import json
from pathlib import Path

from pydantic import ValidationError

from companion.config.schema import Config
from companion.errors import ConfigError
from companion.logging import get_logger

logger = get_logger(__name__)


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".companion" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.

    Raises:
        ConfigError: If the file exists but is not valid JSON or fails validation.
    """
    path = config_path or get_config_path()
    if not path.exists():
        logger.debug("config_file_missing", path=str(path))
        return Config()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return Config.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file using camelCase keys."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(by_alias=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
