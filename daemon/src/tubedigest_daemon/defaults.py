"""Default configuration file for TubeDigest daemon."""

from .config import config_dir


DEFAULT_CONFIG_TOML = """# TubeDigest Configuration

[daemon]
poll_interval = 360  # minutes between channel sweeps
max_results = 1  # newest videos inspected per channel check
request_timeout = 30  # seconds, applied to every YouTube/Loops request
caption_languages = ["en", "en-US", "en-GB"]  # preferred caption tracks, in order

[youtube]
api_key = "env:YOUTUBE_API_KEY"  # YouTube Data API v3 key

# One [[channels]] block per watched channel
[[channels]]
id = "UClgJyzwGs-GyaNxUHcLZrkg"
display_name = "Invest Answers"

[[channels]]
id = "UC_Wcg4f22Zhf2tU8oD-LK4w"
display_name = "Trader XO"

[llm]
# Choose ONE provider configuration below:

# OpenAI
provider = "openai"
model = "gpt-4o-mini"
api_key = "env:OPENAI_API_KEY"
temperature = 0.3
max_tokens = 2000

# Ollama (local models) - replace above config with:
# provider = "ollama"
# model = "ollama/llama3"  # Must use ollama/ prefix
# api_base = "http://localhost:11434"  # REQUIRED for Ollama
# api_key = ""  # Not needed for Ollama

[notifications]
enabled = true  # e-mail new digests to subscribers
loops_api_key = "env:LOOPS_API_KEY"  # Loops transactional API key
event_name = "crypto_analysis"  # Loops event that triggers the digest e-mail
# recipient = "env:NOTIFICATION_EMAIL"  # always notified, in addition to subscribers

[api]
host = "127.0.0.1"  # API server host binding (127.0.0.1=localhost only, 0.0.0.0=all interfaces)
port = 8990
"""


def ensure_config() -> None:
    """Create default configuration directory and file if they don't exist.

    Creates $XDG_CONFIG_HOME/tubedigest/config.toml
    (or ~/.config/tubedigest/config.toml).
    """
    directory = config_dir()
    directory.mkdir(parents=True, exist_ok=True)

    config_file = directory / "config.toml"
    if not config_file.exists():
        config_file.write_text(DEFAULT_CONFIG_TOML)
        print(f"Created {config_file}")
    else:
        print(f"Config already exists: {config_file}")


if __name__ == "__main__":
    ensure_config()
