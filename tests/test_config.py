import json
from pathlib import Path

import pytest

from companion.config.loader import load_config, save_config
from companion.config.schema import Config
from companion.errors import ConfigError


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "nope.json")
    assert config.generation.temperature == 0.85
    assert config.delivery.min_delay_ms == 500
    assert config.delivery.max_delay_ms == 2000
    assert config.archive.max_tokens == 8000
    assert config.archive.pacing_ms == 500


def test_camel_case_keys_are_accepted(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "workspace": str(tmp_path / "ws"),
        "provider": {"apiKey": "sk-x", "apiBase": "http://llm.local"},
        "delivery": {"msPerChar": 80, "maxDelayMs": 3000},
        "archive": {"promptId": "preset_diary"},
        "emojis": {"smile": "https://img/smile.png"},
    }), encoding="utf-8")

    config = load_config(path)

    assert config.provider.api_base == "http://llm.local"
    assert config.delivery.ms_per_char == 80
    assert config.delivery.max_delay_ms == 3000
    assert config.archive.prompt_id == "preset_diary"
    assert config.emojis == {"smile": "https://img/smile.png"}
    assert config.workspace_path == tmp_path / "ws"


def test_invalid_json_raises_config_error(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_invalid_values_raise_config_error(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"delivery": {"minDelayMs": "soon"}}), encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_save_then_load_uses_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    config = Config()
    config.generation.model = "openai/gpt-4o"
    save_config(config, path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert "maxTokens" in raw["generation"]
    assert load_config(path).generation.model == "openai/gpt-4o"
