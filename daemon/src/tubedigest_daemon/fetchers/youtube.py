"""YouTube content source using the Data API v3 and public watch pages."""

import logging
import time
from datetime import datetime
from typing import List, Dict, Any, Optional

import httpx

from ..config import Config
from ..errors import TransientError
from ..models import ContentItem
from ..observability import log as obs_log

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
WATCH_URL = "https://www.youtube.com/watch"

# Largest first
THUMBNAIL_PREFERENCE = ("maxres", "high", "medium", "default")


class YouTubeSource:
    """Discovers channel uploads and downloads watch pages and caption tracks.

    Every request goes through one ``httpx.AsyncClient`` carrying the
    configured timeout. Timeouts, connection failures and 5xx responses are
    raised as ``TransientError``; other HTTP errors propagate as
    ``httpx.HTTPStatusError``.
    """

    def __init__(
        self,
        config: Config = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the YouTube source.

        Args:
            config: Config instance (loads from file if None and no api_key)
            api_key: YouTube Data API key, overrides config
            timeout: Timeout in seconds for every request, overrides config
            client: Pre-built client (tests inject one with a mock transport)
        """
        if config is None and api_key is None:
            config = Config.from_file()

        self.api_key = api_key if api_key is not None else config.youtube_api_key
        self.timeout = timeout or (config.request_timeout if config else 30.0)
        self.client = client or httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"Accept-Language": "en-US,en;q=0.9"},
        )

        if not self.api_key:
            logger.warning(
                "YouTube API key not configured - channel discovery will fail"
            )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def resolve_channel(self, channel_id: str) -> Optional[Dict[str, str]]:
        """Look up channel metadata.

        Args:
            channel_id: YouTube channel id (UC...)

        Returns:
            {"resolved_name": title} or None if the channel does not exist
        """
        data = await self._api_get(
            "channels", {"part": "snippet", "id": channel_id}
        )
        items = data.get("items") or []
        if not items:
            return None

        snippet = items[0].get("snippet", {})
        return {"resolved_name": snippet.get("title", "")}

    async def list_latest_items(
        self, channel_id: str, max_results: int = 1
    ) -> List[ContentItem]:
        """Fetch the newest videos of a channel, newest first.

        Args:
            channel_id: YouTube channel id
            max_results: Number of videos to return

        Returns:
            List of ContentItem objects (may be empty)
        """
        start_time = time.time()

        try:
            data = await self._api_get(
                "search",
                {
                    "channelId": channel_id,
                    "part": "snippet",
                    "order": "date",
                    "maxResults": max_results,
                    "type": "video",
                },
            )
        except Exception as e:
            obs_log(
                "fetcher.error",
                fetcher_type="youtube",
                channel_id=channel_id,
                error=str(e),
                duration_ms=int((time.time() - start_time) * 1000),
                status="error",
            )
            raise

        items = []
        for entry in data.get("items") or []:
            item = self._to_content_item(entry, channel_id)
            if item:
                items.append(item)

        obs_log(
            "fetcher.complete",
            fetcher_type="youtube",
            channel_id=channel_id,
            items_count=len(items),
            duration_ms=int((time.time() - start_time) * 1000),
            status="success",
        )
        logger.info(f"Found {len(items)} videos for channel {channel_id}")
        return items

    async def fetch_raw_page(self, source_id: str) -> bytes:
        """Download the watch page of a video."""
        response = await self._request(WATCH_URL, params={"v": source_id})
        return response.content

    async def fetch_caption_track(self, url: str) -> bytes:
        """Download a caption track payload."""
        response = await self._request(url)
        return response.content

    async def _api_get(self, resource: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Call a Data API resource and return the decoded JSON body."""
        query = dict(params)
        query["key"] = self.api_key
        response = await self._request(f"{YOUTUBE_API_BASE}/{resource}", params=query)
        return response.json()

    async def _request(
        self, url: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        try:
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"Request to {url} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 500:
            raise TransientError(
                f"YouTube returned HTTP {response.status_code} for {url}"
            )
        response.raise_for_status()
        return response

    def _to_content_item(
        self, entry: Dict[str, Any], channel_id: str
    ) -> Optional[ContentItem]:
        """Convert a search.list result to a ContentItem."""
        video_id = (entry.get("id") or {}).get("videoId")
        if not video_id:
            logger.warning(f"Skipping search result without videoId: {entry.get('id')}")
            return None

        snippet = entry.get("snippet") or {}
        return ContentItem(
            source_id=video_id,
            channel_id=channel_id,
            title=snippet.get("title", ""),
            published_at=self._parse_published_at(snippet.get("publishedAt")),
            thumbnail_url=self._pick_thumbnail(snippet.get("thumbnails") or {}),
        )

    def _pick_thumbnail(self, thumbnails: Dict[str, Any]) -> Optional[str]:
        for size in THUMBNAIL_PREFERENCE:
            url = (thumbnails.get(size) or {}).get("url")
            if url:
                return url
        return None

    def _parse_published_at(self, value: Optional[str]) -> Optional[datetime]:
        """Parse RFC 3339 timestamps such as 2024-05-01T12:00:00Z."""
        if not value:
            return None

        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Could not parse date: {value}")
            return None
