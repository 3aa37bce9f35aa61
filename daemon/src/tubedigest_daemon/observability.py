"""Observability logging for TubeDigest daemon - JSONL event tracking."""

import fcntl
import json
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class ObservabilityLogger:
    """Thread-safe and process-safe JSONL event logger with daily rotation."""

    def __init__(self, base_dir: Path | None = None):
        """Initialize observability logger.

        Args:
            base_dir: Directory for JSONL files. Defaults to
                $XDG_DATA_HOME/tubedigest/observability
        """
        if base_dir is None:
            data_home = Path(
                os.environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))
            )
            base_dir = data_home / "tubedigest" / "observability"

        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, **metadata: Any) -> None:
        """Log an event with metadata to daily JSONL file.

        Gracefully degrades on failure - prints to stderr but doesn't crash.

        Args:
            event: Event name (e.g., "monitor.item", "llm.call")
            **metadata: Additional event metadata
        """
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.base_dir / f"{today}_events.jsonl"

        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event,
            **metadata,
        }

        # 3 attempts with backoff on lock contention
        for attempt in range(3):
            try:
                with open(log_file, "a") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.write(json.dumps(entry, default=str) + "\n")
                        f.flush()
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return
            except BlockingIOError:
                if attempt < 2:
                    time.sleep(0.01 * (attempt + 1))  # 10ms, 20ms
                else:
                    print(
                        f"[Observability] Failed to log event after 3 attempts: {event}",
                        file=sys.stderr,
                    )
            except Exception as e:
                print(
                    f"[Observability] Error logging event '{event}': {e}",
                    file=sys.stderr,
                )
                return


_logger: ObservabilityLogger | None = None


def get_logger() -> ObservabilityLogger:
    """Get global observability logger instance (singleton pattern)."""
    global _logger
    if _logger is None:
        _logger = ObservabilityLogger()
    return _logger


def log(event: str, **metadata: Any) -> None:
    """Convenience function to log events using global logger.

    Usage:
        from tubedigest_daemon.observability import log
        log("monitor.cycle.start", channels=2)
        log("llm.call", action="summarize", tokens={"prompt": 450, "completion": 85})
    """
    get_logger().log(event, **metadata)
