"""Configuration schema using Pydantic."""

import os
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ENV_REF_RE = re.compile(r"^\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?$")


def _resolve_env(value: str) -> str:
    """Resolve ``$VAR`` / ``${VAR}`` references; unresolvable values are returned unchanged."""
    if not value:
        return value
    m = _ENV_REF_RE.match(value.strip())
    if not m:
        return value
    return os.environ.get(m.group(1), value)


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderConfig(Base):
    """Generation backend connection settings."""

    api_key: str = ""
    api_base: str | None = None
    extra_headers: dict[str, str] | None = None
    timeout: float = 120  # transport timeout, seconds

    @property
    def resolved_api_key(self) -> str:
        return _resolve_env(self.api_key)


class GenerationConfig(Base):
    """Parameters for the conversational generation call."""

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.85
    recall_temperature: float = 0.8
    max_tokens: int = 4096


class DeliveryConfig(Base):
    """Pacing of delivery units, in milliseconds."""

    ms_per_char: int = 50
    min_delay_ms: int = 500
    max_delay_ms: int = 2000
    emoji_delay_min_ms: int = 300
    emoji_delay_max_ms: int = 800


class ArchiveConfig(Base):
    """Archival (day summary) pipeline settings."""

    prompt_id: str = "preset_rational"
    temperature: float = 0.5
    max_tokens: int = 8000
    pacing_ms: int = 500
    raw_log_max_chars: int = 200_000


class LoggingConfig(Base):
    json_output: bool = True
    level: str = "INFO"


class Config(Base):
    """Root configuration for companion."""

    workspace: str = "~/.companion/workspace"
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    emojis: dict[str, str] = Field(default_factory=dict)  # sticker name -> image URL

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        return Path(self.workspace).expanduser()
