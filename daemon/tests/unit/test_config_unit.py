"""Unit tests for Config loading and validation."""

from pathlib import Path

import pytest

from tubedigest_daemon.config import Config, config_dir, expand_env_var
from tubedigest_daemon.defaults import ensure_config


def minimal_config() -> dict:
    return {
        "channels": [{"id": "UC_test", "display_name": "Test Channel"}],
        "llm": {"provider": "openai", "model": "gpt-4o-mini"},
    }


def test_from_dict_applies_defaults(monkeypatch) -> None:
    """Test that omitted settings fall back to documented defaults."""
    monkeypatch.setenv("YOUTUBE_API_KEY", "yt-key")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("LOOPS_API_KEY", raising=False)

    config = Config.from_dict(minimal_config())

    assert config.poll_interval == 360
    assert config.max_results == 1
    assert config.request_timeout == 30.0
    assert config.caption_languages == ["en"]
    assert config.youtube_api_key == "yt-key"
    assert config.llm_api_key == "sk-test"
    assert config.loops_api_key == ""
    assert config.notifications_enabled is True
    assert config.notification_recipient is None
    assert config.api_host == "127.0.0.1"
    assert config.api_port == 8990


def test_channel_display_name_defaults_to_id() -> None:
    raw = minimal_config()
    raw["channels"] = [{"id": "UC_noname"}]

    config = Config.from_dict(raw)

    assert config.channels == [{"id": "UC_noname", "display_name": "UC_noname"}]


def test_expand_env_var(monkeypatch) -> None:
    """Test env: prefix resolution, including unset variables."""
    monkeypatch.setenv("SOME_KEY", "value")
    monkeypatch.delenv("MISSING_KEY", raising=False)

    assert expand_env_var("env:SOME_KEY") == "value"
    assert expand_env_var("env:MISSING_KEY") == ""
    assert expand_env_var("literal") == "literal"
    assert expand_env_var(None) is None


def test_missing_llm_model_rejected() -> None:
    raw = minimal_config()
    raw["llm"] = {"provider": "openai"}

    with pytest.raises(ValueError):
        Config.from_dict(raw)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"channels": []}, "No channels configured"),
        ({"daemon": {"poll_interval": 0}}, "poll_interval"),
        ({"daemon": {"max_results": 0}}, "max_results"),
        ({"daemon": {"max_results": 51}}, "max_results"),
        ({"daemon": {"request_timeout": 0}}, "request_timeout"),
    ],
)
def test_invalid_values_rejected(overrides: dict, message: str) -> None:
    raw = minimal_config()
    raw.update(overrides)

    with pytest.raises(ValueError, match=message):
        Config.from_dict(raw)


def test_duplicate_channel_ids_rejected() -> None:
    raw = minimal_config()
    raw["channels"] = [
        {"id": "UC_same", "display_name": "One"},
        {"id": "UC_same", "display_name": "Two"},
    ]

    with pytest.raises(ValueError, match="Duplicate channel id"):
        Config.from_dict(raw)


def test_from_file_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        Config.from_file(tmp_path / "nope.toml")


def test_from_file_invalid_toml(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("[daemon\npoll_interval = ")

    with pytest.raises(ValueError, match="Failed to parse config file"):
        Config.from_file(path)


def test_ensure_config_writes_loadable_defaults() -> None:
    """Test that the generated default config loads and validates."""
    ensure_config()

    config_file = config_dir() / "config.toml"
    assert config_file.exists()

    config = Config.from_file()
    ids = [channel["id"] for channel in config.channels]
    assert ids == ["UClgJyzwGs-GyaNxUHcLZrkg", "UC_Wcg4f22Zhf2tU8oD-LK4w"]
    assert config.poll_interval == 360
    assert config.max_results == 1


def test_ensure_config_keeps_existing_file() -> None:
    directory = config_dir()
    directory.mkdir(parents=True)
    (directory / "config.toml").write_text("# mine\n")

    ensure_config()

    assert (directory / "config.toml").read_text() == "# mine\n"


def test_llm_config_includes_api_base_only_when_set() -> None:
    config = Config.from_dict(minimal_config())
    assert "api_base" not in config.llm_config()

    raw = minimal_config()
    raw["llm"] = {
        "provider": "ollama",
        "model": "ollama/llama3",
        "api_base": "http://localhost:11434",
    }
    config = Config.from_dict(raw)
    llm = config.llm_config()
    assert llm["api_base"] == "http://localhost:11434"
    assert llm["model"] == "ollama/llama3"
