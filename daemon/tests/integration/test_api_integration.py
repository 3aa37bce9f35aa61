"""Integration tests for REST API - protecting invariants and handling failures."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from rich.console import Console

from tubedigest_daemon.api import create_app, render_markdown
from tubedigest_daemon.errors import InvalidIdentifier, NoCaptionsAvailable, TransientError
from tubedigest_daemon.models import ContentItem, ContentUnit
from tubedigest_daemon.monitor import ChannelMonitor
from tubedigest_daemon.storage import Storage

UNITS = [
    ContentUnit(text="Bitcoin is up.", start=0.0, duration=2.0),
    ContentUnit(text="Support at 62k.", start=2.0, duration=3.5),
]


class Pipeline:
    """Collaborator doubles shared by the app and the assertions."""

    def __init__(self, storage: Storage, digest: dict):
        self.listings = {"UC_alpha": []}
        self.source = AsyncMock()
        self.source.api_key = "yt-key"
        self.source.resolve_channel.return_value = {"resolved_name": "Alpha"}
        self.source.list_latest_items.side_effect = self._list

        self.extractor = AsyncMock()
        self.extractor.extract.return_value = UNITS
        self.summarizer = AsyncMock()
        self.summarizer.summarize.return_value = digest

        self.notifier = MagicMock()
        self.notifier.enabled = False
        self.notifier.configured = True
        self.notifier.send_to_all = AsyncMock(return_value=1)

        self.storage = storage
        self.monitor = ChannelMonitor(
            channels=[{"id": "UC_alpha", "display_name": "Alpha"}],
            source=self.source,
            extractor=self.extractor,
            summarizer=self.summarizer,
            storage=storage,
            notifier=self.notifier,
            notification_recipient="owner@example.com",
            console=Console(quiet=True),
        )

    async def _list(self, channel_id: str, max_results: int = 1):
        listing = self.listings.get(channel_id, [])
        if isinstance(listing, Exception):
            raise listing
        return listing


@pytest.fixture
def pipeline(storage: Storage, sample_digest: dict) -> Pipeline:
    return Pipeline(storage, sample_digest)


@pytest.fixture
def api_client(pipeline: Pipeline) -> TestClient:
    """Create test client for API."""
    app = create_app(
        monitor=pipeline.monitor,
        storage=pipeline.storage,
        extractor=pipeline.extractor,
        summarizer=pipeline.summarizer,
        notifier=pipeline.notifier,
    )
    return TestClient(app)


def video(source_id: str) -> ContentItem:
    return ContentItem(
        source_id=source_id,
        channel_id="UC_alpha",
        title=f"Video {source_id}",
        published_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["youtube"] is True
    assert data["services"]["email"] is True
    assert data["services"]["monitor"] == "uninitialized"
    assert data["polling"] is None


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_check_channel_processes_new_video(
    api_client: TestClient, pipeline: Pipeline, method: str
) -> None:
    pipeline.listings["UC_alpha"] = [video("aaaaaaaaaaa")]

    response = api_client.request(method, "/check-channel/UC_alpha")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["channel_id"] == "UC_alpha"
    assert [p["source_id"] for p in data["items_processed"]] == ["aaaaaaaaaaa"]
    assert data["last_checked_at"] is not None
    assert pipeline.storage.count_artifacts() == 1


def test_check_channel_is_idempotent(api_client: TestClient, pipeline: Pipeline) -> None:
    """
    INVARIANT: Re-checking a channel never re-processes a stored video
    BREAKS: Every manual check re-bills the LLM and re-sends e-mail
    """
    pipeline.listings["UC_alpha"] = [video("aaaaaaaaaaa")]

    api_client.get("/check-channel/UC_alpha")
    response = api_client.get("/check-channel/UC_alpha")

    data = response.json()
    assert data["items_processed"] == []
    assert data["items_skipped"] == ["aaaaaaaaaaa"]
    assert pipeline.extractor.extract.await_count == 1


def test_check_channel_summary_and_send_email(api_client: TestClient, pipeline: Pipeline) -> None:
    pipeline.listings["UC_alpha"] = [video("aaaaaaaaaaa")]
    api_client.get("/check-channel/UC_alpha")
    pipeline.notifier.send_to_all.assert_not_called()

    response = api_client.get("/check-channel/UC_alpha?summary=true&sendEmail=true")

    data = response.json()
    assert [p["source_id"] for p in data["items_processed"]] == ["aaaaaaaaaaa"]
    assert data["items_skipped"] == ["aaaaaaaaaaa"]
    pipeline.notifier.send_to_all.assert_awaited_once()


def test_check_unknown_channel(api_client: TestClient, pipeline: Pipeline) -> None:
    response = api_client.get("/check-channel/UC_nope")

    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert "UC_nope" in data["message"]
    pipeline.source.list_latest_items.assert_not_called()


def test_check_channel_item_failure(api_client: TestClient, pipeline: Pipeline) -> None:
    """Test that per-video failures surface with the full result attached."""
    pipeline.listings["UC_alpha"] = [video("aaaaaaaaaaa"), video("bbbbbbbbbbb")]

    async def extract(source_id: str):
        if source_id == "aaaaaaaaaaa":
            raise NoCaptionsAvailable(source_id)
        return UNITS

    pipeline.extractor.extract.side_effect = extract

    response = api_client.get("/check-channel/UC_alpha")

    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert "aaaaaaaaaaa" in data["message"]
    assert data["data"]["items_failed"][0]["kind"] == "no_captions"
    assert [p["source_id"] for p in data["data"]["items_processed"]] == ["bbbbbbbbbbb"]


def test_check_channel_transient_listing_failure(api_client: TestClient, pipeline: Pipeline) -> None:
    pipeline.listings["UC_alpha"] = TransientError("YouTube timed out")

    response = api_client.get("/check-channel/UC_alpha")

    assert response.status_code == 503
    assert response.json()["success"] is False


def test_check_channel_no_channels_available(api_client: TestClient, pipeline: Pipeline) -> None:
    pipeline.source.resolve_channel.return_value = None

    response = api_client.get("/check-channel/UC_alpha")

    assert response.status_code == 503
    assert response.json()["message"] == "No channels could be initialized"


def test_transcript_json(api_client: TestClient, pipeline: Pipeline) -> None:
    response = api_client.get("/transcript/dQw4w9WgXcQ")

    assert response.status_code == 200
    data = response.json()
    assert data["video_id"] == "dQw4w9WgXcQ"
    assert data["metadata"] == {"total_entries": 2, "total_duration": 5.5}
    assert "summary" not in data
    pipeline.summarizer.summarize.assert_not_called()


def test_transcript_with_summary(api_client: TestClient, sample_digest: dict) -> None:
    response = api_client.get("/transcript/dQw4w9WgXcQ?summary=true")

    assert response.json()["summary"] == sample_digest


def test_transcript_send_email_ignores_disabled_setting(
    api_client: TestClient, pipeline: Pipeline
) -> None:
    api_client.get("/transcript/dQw4w9WgXcQ?summary=true&sendEmail=true")

    pipeline.notifier.send_to_all.assert_awaited_once()
    artifact, source_id, recipients = pipeline.notifier.send_to_all.call_args.args
    assert source_id == "dQw4w9WgXcQ"
    assert recipients == ["owner@example.com"]


def test_transcript_markdown_and_html(api_client: TestClient, sample_digest: dict) -> None:
    markdown = api_client.get("/transcript/dQw4w9WgXcQ?summary=true&format=markdown")

    assert markdown.status_code == 200
    assert markdown.headers["content-type"].startswith("text/markdown")
    assert markdown.text.startswith(f"# {sample_digest['title']}")
    assert "## Market Update" in markdown.text
    assert "BTC, ETH" in markdown.text

    page = api_client.get("/transcript/dQw4w9WgXcQ?summary=true&format=html")
    assert page.headers["content-type"].startswith("text/html")
    assert page.text.startswith("<pre")


def test_transcript_plain_text_without_summary(api_client: TestClient) -> None:
    response = api_client.get("/transcript/dQw4w9WgXcQ?format=markdown")

    assert response.text == "Bitcoin is up. Support at 62k.\n"


def test_transcript_bad_format_rejected(api_client: TestClient) -> None:
    response = api_client.get("/transcript/dQw4w9WgXcQ?format=pdf")

    assert response.status_code == 422
    assert response.json()["success"] is False


@pytest.mark.parametrize(
    "error, status_code",
    [
        (InvalidIdentifier("bad"), 400),
        (NoCaptionsAvailable("dQw4w9WgXcQ"), 404),
        (TransientError("timeout"), 503),
    ],
)
def test_transcript_errors(
    api_client: TestClient, pipeline: Pipeline, error: Exception, status_code: int
) -> None:
    pipeline.extractor.extract.side_effect = error

    response = api_client.get("/transcript/dQw4w9WgXcQ")

    assert response.status_code == status_code
    assert response.json()["success"] is False


def test_subscribe(api_client: TestClient, pipeline: Pipeline) -> None:
    response = api_client.post("/subscribers", json={"email": "New@Example.com"})

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["data"]["email"] == "new@example.com"
    assert pipeline.storage.get_subscriber_emails() == ["new@example.com"]

    duplicate = api_client.post("/subscribers", json={"email": "new@example.com"})
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "Email already subscribed"


@pytest.mark.parametrize("payload", [{"email": "not-an-email"}, {"email": ""}, {}])
def test_subscribe_invalid_email(api_client: TestClient, payload: dict) -> None:
    response = api_client.post("/subscribers", json=payload)

    assert response.status_code == 422
    assert response.json()["success"] is False


def test_render_markdown_orders_sections(sample_digest: dict) -> None:
    text = render_markdown(sample_digest)

    assert text.index("## Overview") < text.index("## Market Update") < text.index("## Disclaimer")
