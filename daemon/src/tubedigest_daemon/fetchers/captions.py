"""Caption transcript extraction for YouTube videos."""

import html
import json
import logging
import math
import re
import time
import xml.etree.ElementTree as ET
from typing import List, Dict, Any, Optional, Sequence

from ..errors import CaptionParseError, InvalidIdentifier, NoCaptionsAvailable
from ..models import ContentUnit
from ..observability import log as obs_log

logger = logging.getLogger(__name__)

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
PLAYER_RESPONSE_MARKER = "ytInitialPlayerResponse"
CAPTION_TRACKS_KEY = '"captionTracks":'


def is_valid_video_id(source_id: str) -> bool:
    return isinstance(source_id, str) and bool(VIDEO_ID_PATTERN.match(source_id))


def transcript_metadata(units: Sequence[ContentUnit]) -> Dict[str, Any]:
    """Summary numbers for a transcript."""
    return {
        "total_entries": len(units),
        "total_duration": round(sum(unit.duration for unit in units), 3),
    }


class CaptionExtractor:
    """Turns a video id into an ordered list of caption cues.

    Looks up the caption-track list embedded in the watch page's player
    response, downloads the preferred track and parses its XML cues. A page
    without caption tracks raises ``NoCaptionsAvailable``; a track that does
    not parse cleanly raises ``CaptionParseError`` and never yields partial
    data.
    """

    def __init__(self, source, languages: Optional[Sequence[str]] = None):
        """Initialize the extractor.

        Args:
            source: YouTubeSource (anything with fetch_raw_page/fetch_caption_track)
            languages: Preferred caption language codes, in order
        """
        self.source = source
        self.languages = list(languages or ["en"])

    async def extract(self, source_id: str) -> List[ContentUnit]:
        """Fetch and parse the transcript of a video.

        Args:
            source_id: 11-character video id

        Returns:
            Caption cues ordered by start time

        Raises:
            InvalidIdentifier: Malformed id (raised before any request)
            NoCaptionsAvailable: Watch page has no caption track reference
            CaptionParseError: Caption payload is malformed or empty
        """
        if not is_valid_video_id(source_id):
            raise InvalidIdentifier(source_id)

        start_time = time.time()

        page = await self.source.fetch_raw_page(source_id)
        tracks = find_caption_tracks(_decode(page))
        if not tracks:
            raise NoCaptionsAvailable(source_id)

        track = self._select_track(tracks)
        logger.debug(
            f"Using caption track {track.get('languageCode', '?')} for {source_id}"
        )

        payload = await self.source.fetch_caption_track(track["baseUrl"])
        units = parse_caption_xml(payload)

        obs_log(
            "extractor.complete",
            source_id=source_id,
            language=track.get("languageCode"),
            units=len(units),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(f"Extracted {len(units)} caption cues for video {source_id}")
        return units

    def _select_track(self, tracks: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Pick the first track matching the preferred languages, else the first."""
        for language in self.languages:
            for track in tracks:
                if track.get("languageCode") == language:
                    return track
        for language in self.languages:
            base = language.split("-")[0]
            for track in tracks:
                if str(track.get("languageCode", "")).split("-")[0] == base:
                    return track
        return tracks[0]


def find_caption_tracks(page: str) -> List[Dict[str, Any]]:
    """Return caption track descriptors embedded in a watch page.

    Only tracks with a ``baseUrl`` are returned. An empty list means the page
    carries no caption-track reference.
    """
    tracks = []

    player = _decode_object_after(page, PLAYER_RESPONSE_MARKER)
    if player:
        renderer = (player.get("captions") or {}).get(
            "playerCaptionsTracklistRenderer"
        ) or {}
        tracks = renderer.get("captionTracks") or []

    if not tracks:
        # Player response missing or truncated: look for the bare key
        index = page.find(CAPTION_TRACKS_KEY)
        if index != -1:
            try:
                decoded, _ = json.JSONDecoder().raw_decode(
                    page, index + len(CAPTION_TRACKS_KEY)
                )
            except json.JSONDecodeError:
                decoded = []
            if isinstance(decoded, list):
                tracks = decoded

    return [
        track for track in tracks if isinstance(track, dict) and track.get("baseUrl")
    ]


def parse_caption_xml(payload) -> List[ContentUnit]:
    """Parse a ``<transcript><text start= dur=>`` caption document.

    Raises:
        CaptionParseError: Invalid XML, unexpected root, bad timing attributes,
            or no cues at all
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise CaptionParseError(f"Failed to parse captions: {e}") from e

    if root.tag != "transcript":
        raise CaptionParseError(
            f"Failed to parse captions: unexpected root element <{root.tag}>"
        )

    units = []
    for position, element in enumerate(root.iter("text")):
        start = _parse_seconds(element.get("start"), "start", position)
        duration = _parse_seconds(element.get("dur", "0"), "dur", position)

        text = " ".join(html.unescape(element.text or "").split())
        if text:
            units.append(ContentUnit(text=text, start=start, duration=duration))

    if not units:
        raise CaptionParseError("Failed to parse captions: no caption cues found")

    units.sort(key=lambda unit: unit.start)
    return units


def _parse_seconds(value: Optional[str], attribute: str, position: int) -> float:
    if value is None:
        raise CaptionParseError(
            f"Failed to parse captions: cue {position} has no '{attribute}'"
        )
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    # float() also accepts "nan" and "inf"
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        raise CaptionParseError(
            f"Failed to parse captions: cue {position} has invalid '{attribute}' {value!r}"
        )
    return seconds


def _decode(page) -> str:
    if isinstance(page, bytes):
        return page.decode("utf-8", errors="replace")
    return page


def _decode_object_after(page: str, marker: str) -> Optional[Dict[str, Any]]:
    """Decode the first JSON object assigned right after ``marker``."""
    decoder = json.JSONDecoder()
    index = page.find(marker)
    while index != -1:
        brace = page.find("{", index + len(marker))
        if brace == -1:
            return None
        # Accept `ytInitialPlayerResponse = {` and `["ytInitialPlayerResponse"] = {`
        between = page[index + len(marker) : brace].strip().lstrip("\"']").strip()
        if between == "=":
            try:
                obj, _ = decoder.raw_decode(page, brace)
                if isinstance(obj, dict):
                    return obj
            except json.JSONDecodeError:
                logger.debug("Player response is not valid JSON, trying next match")
        index = page.find(marker, index + len(marker))
    return None
