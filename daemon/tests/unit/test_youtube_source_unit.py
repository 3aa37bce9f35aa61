"""Unit tests for YouTubeSource discovery and page fetching."""

from datetime import datetime, timezone

import httpx
import pytest

from tubedigest_daemon.errors import TransientError
from tubedigest_daemon.fetchers.youtube import YOUTUBE_API_BASE, YouTubeSource


def make_source(handler) -> YouTubeSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YouTubeSource(api_key="yt-key", timeout=5.0, client=client)


SEARCH_RESPONSE = {
    "items": [
        {
            "id": {"kind": "youtube#video", "videoId": "dQw4w9WgXcQ"},
            "snippet": {
                "title": "Market update",
                "publishedAt": "2024-05-01T12:00:00Z",
                "thumbnails": {
                    "default": {"url": "https://i.ytimg.com/default.jpg"},
                    "high": {"url": "https://i.ytimg.com/high.jpg"},
                },
            },
        },
        {"id": {"kind": "youtube#playlist", "playlistId": "PL123"}, "snippet": {}},
    ]
}


@pytest.mark.asyncio
async def test_list_latest_items_queries_newest_videos() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=SEARCH_RESPONSE)

    source = make_source(handler)
    items = await source.list_latest_items("UC_test", max_results=3)

    assert str(seen[0].url).startswith(f"{YOUTUBE_API_BASE}/search")
    params = seen[0].url.params
    assert params["channelId"] == "UC_test"
    assert params["order"] == "date"
    assert params["type"] == "video"
    assert params["maxResults"] == "3"
    assert params["key"] == "yt-key"

    # Entry without a videoId is skipped
    assert len(items) == 1
    item = items[0]
    assert item.source_id == "dQw4w9WgXcQ"
    assert item.channel_id == "UC_test"
    assert item.title == "Market update"
    assert item.published_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert item.thumbnail_url == "https://i.ytimg.com/high.jpg"
    assert item.url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.mark.asyncio
async def test_list_latest_items_empty_channel() -> None:
    source = make_source(lambda request: httpx.Response(200, json={"items": []}))

    assert await source.list_latest_items("UC_test") == []


@pytest.mark.asyncio
async def test_resolve_channel() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["id"] == "UC_known":
            return httpx.Response(
                200, json={"items": [{"snippet": {"title": "Known Channel"}}]}
            )
        return httpx.Response(200, json={"items": []})

    source = make_source(handler)

    assert await source.resolve_channel("UC_known") == {"resolved_name": "Known Channel"}
    assert await source.resolve_channel("UC_missing") is None


@pytest.mark.asyncio
async def test_server_error_is_transient() -> None:
    source = make_source(lambda request: httpx.Response(503))

    with pytest.raises(TransientError):
        await source.list_latest_items("UC_test")


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    source = make_source(handler)

    with pytest.raises(TransientError):
        await source.fetch_raw_page("dQw4w9WgXcQ")


@pytest.mark.asyncio
async def test_client_error_propagates() -> None:
    """Test that 4xx responses are not mistaken for transient failures."""
    source = make_source(lambda request: httpx.Response(403, json={"error": "quota"}))

    with pytest.raises(httpx.HTTPStatusError):
        await source.resolve_channel("UC_test")


@pytest.mark.asyncio
async def test_fetch_raw_page_requests_watch_url() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"<html>page</html>")

    source = make_source(handler)
    page = await source.fetch_raw_page("dQw4w9WgXcQ")

    assert page == b"<html>page</html>"
    assert seen[0].url.host == "www.youtube.com"
    assert seen[0].url.params["v"] == "dQw4w9WgXcQ"
