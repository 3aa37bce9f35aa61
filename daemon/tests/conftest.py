"""Shared test fixtures for all tests."""

from pathlib import Path

import pytest

from tubedigest_daemon import database, observability
from tubedigest_daemon.storage import Storage


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch) -> Path:
    """Point config, data and observability output at a temp directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    # Global observability logger caches its directory
    monkeypatch.setattr(observability, "_logger", None)
    return tmp_path


@pytest.fixture
def test_db(isolated_dirs: Path) -> Path:
    """Create a temporary test database for each test."""
    db_path = isolated_dirs / "data" / "tubedigest" / "tubedigest.db"
    database.init_db(db_path)
    return db_path


@pytest.fixture
def storage(test_db: Path) -> Storage:
    store = Storage(test_db)
    yield store
    store.close()


@pytest.fixture
def sample_digest() -> dict:
    """A complete digest as the LLM is asked to produce it."""
    return {
        "title": "🚀 Bitcoin Eyes New Highs",
        "overview": "📝 The host walks through the week's price action.",
        "marketUpdate": "📊 BTC up 4% on strong spot volume.",
        "technicalCorner": "📈 Support at 62k, resistance at 68k.",
        "projectSpotlight": "💡 Ethereum's next upgrade is on track.",
        "keyTakeaway": "🎯 Momentum favors the bulls above 62k.",
        "disclaimer": "⚠️ Not financial advice.",
        "mentionedTokens": ["BTC", "ETH"],
    }
