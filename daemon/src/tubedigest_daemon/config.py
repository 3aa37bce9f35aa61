"""Configuration loading from TOML."""

import tomllib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict


def config_dir() -> Path:
    """Return $XDG_CONFIG_HOME/tubedigest (or ~/.config/tubedigest)."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(xdg_config_home) / "tubedigest"


def expand_env_var(value: Optional[str]) -> Optional[str]:
    """Resolve ``env:NAME`` values from the environment.

    Unset variables resolve to an empty string so that a missing secret reads
    as "not configured" rather than as the literal placeholder.
    """
    if isinstance(value, str) and value.startswith("env:"):
        return os.environ.get(value[4:], "")
    return value


@dataclass
class Config:
    """Configuration dataclass with validation.

    Loads from ~/.config/tubedigest/config.toml - config file is required.
    """

    # Watched channels: [{"id": "UC...", "display_name": "..."}]
    channels: List[Dict[str, str]]

    # YouTube Data API
    youtube_api_key: str

    # LLM settings
    llm_provider: str  # openai, ollama, anthropic, groq
    llm_model: str
    llm_api_key: str

    # Daemon settings
    poll_interval: int = 360  # minutes
    max_results: int = 1  # newest videos inspected per channel check
    request_timeout: float = 30.0  # seconds, every upstream HTTP call
    caption_languages: List[str] = field(default_factory=lambda: ["en"])

    llm_api_base: Optional[str] = None  # For Ollama and custom endpoints
    llm_temperature: float = 0.3
    llm_max_tokens: int = 2000
    llm_timeout: float = 120.0

    # Notification settings
    notifications_enabled: bool = True
    loops_api_key: str = ""
    loops_event_name: str = "crypto_analysis"
    notification_recipient: Optional[str] = None  # Always notified in addition to subscribers

    # API settings
    api_host: str = "127.0.0.1"
    api_port: int = 8990

    def llm_config(self) -> dict:
        """LLM settings as the dict the summarizer expects."""
        llm_config = {
            "provider": self.llm_provider,
            "model": self.llm_model,
            "api_key": self.llm_api_key,
            "temperature": self.llm_temperature,
            "max_tokens": self.llm_max_tokens,
            "timeout": self.llm_timeout,
        }
        # Add api_base if configured (for Ollama)
        if self.llm_api_base:
            llm_config["api_base"] = self.llm_api_base
        return llm_config

    def notification_config(self) -> dict:
        return {
            "enabled": self.notifications_enabled,
            "api_key": self.loops_api_key,
            "event_name": self.loops_event_name,
            "timeout": self.request_timeout,
        }

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration values are invalid.
        """
        if not self.channels:
            raise ValueError(
                "No channels configured. Add at least one [[channels]] entry with id and display_name"
            )

        seen = set()
        for channel in self.channels:
            channel_id = channel.get("id")
            if not channel_id:
                raise ValueError(f"Channel entry missing 'id': {channel}")
            if channel_id in seen:
                raise ValueError(f"Duplicate channel id in config: {channel_id}")
            seen.add(channel_id)

        if self.poll_interval < 1:
            raise ValueError(
                f"poll_interval must be at least 1 minute, got {self.poll_interval}"
            )

        if not 1 <= self.max_results <= 50:
            raise ValueError(
                f"max_results must be between 1 and 50, got {self.max_results}"
            )

        if self.request_timeout <= 0:
            raise ValueError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

        if not self.llm_model:
            raise ValueError("Model must be specified in [llm] section")

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from TOML file.

        Args:
            config_path: Optional path to config file.
                        Defaults to $XDG_CONFIG_HOME/tubedigest/config.toml
                        (or ~/.config/tubedigest/config.toml)

        Returns:
            Config instance with loaded values.
        """
        if config_path is None:
            config_path = config_dir() / "config.toml"

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Run 'tubedigest' once to create default configuration, or create config.toml manually."
            )

        try:
            with open(config_path, "rb") as f:
                config_dict = tomllib.load(f)
        except Exception as e:
            raise ValueError(f"Failed to parse config file {config_path}: {e}")

        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Build and validate a Config from parsed TOML."""
        daemon = config_dict.get("daemon", {})
        youtube = config_dict.get("youtube", {})
        llm = config_dict.get("llm", {})
        notifications = config_dict.get("notifications", {})
        api = config_dict.get("api", {})

        channels = [
            {
                "id": str(entry.get("id", "")).strip(),
                "display_name": entry.get("display_name") or entry.get("id", ""),
            }
            for entry in config_dict.get("channels", [])
        ]

        try:
            config = cls(
                channels=channels,
                youtube_api_key=expand_env_var(
                    youtube.get("api_key", "env:YOUTUBE_API_KEY")
                ),
                llm_provider=llm["provider"],
                llm_model=llm["model"],
                llm_api_key=expand_env_var(llm.get("api_key", "env:OPENAI_API_KEY")),
                llm_api_base=llm.get("api_base"),  # Optional for Ollama/custom
                llm_temperature=llm.get("temperature", 0.3),
                llm_max_tokens=llm.get("max_tokens", 2000),
                llm_timeout=llm.get("timeout", 120.0),
                poll_interval=daemon.get("poll_interval", 360),
                max_results=daemon.get("max_results", 1),
                request_timeout=daemon.get("request_timeout", 30.0),
                caption_languages=list(daemon.get("caption_languages", ["en"])),
                notifications_enabled=notifications.get("enabled", True),
                loops_api_key=expand_env_var(
                    notifications.get("loops_api_key", "env:LOOPS_API_KEY")
                ),
                loops_event_name=notifications.get("event_name", "crypto_analysis"),
                notification_recipient=expand_env_var(notifications.get("recipient"))
                or None,
                api_host=api.get(
                    "host", "127.0.0.1"
                ),  # Default to localhost for security
                api_port=api.get("port", 8990),
            )
        except KeyError as e:
            raise ValueError(f"Missing required config field: {e}")

        config.validate()

        return config
