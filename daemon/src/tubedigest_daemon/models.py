"""Data models for TubeDigest daemon."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass
class Channel:
    """A watched YouTube channel.

    Matches the channels table schema. ``last_checked_at`` is the only field
    that changes after initialization.
    """

    id: str  # YouTube channel id (UC...)
    display_name: str  # Name from config
    resolved_name: str = ""  # Channel title reported by the provider
    last_checked_at: Optional[datetime] = None


@dataclass
class ContentItem:
    """A video discovered on a channel. Transient, never stored itself."""

    source_id: str  # 11-character video id
    channel_id: str
    title: str
    published_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.source_id}"


@dataclass
class ContentUnit:
    """One caption cue: text plus timing in seconds."""

    text: str
    start: float
    duration: float


@dataclass
class Artifact:
    """Digest derived from one video's transcript.

    Matches the artifacts table schema. Immutable once stored; its existence
    for a ``source_id`` marks the video as processed.
    """

    source_id: str
    channel_id: str
    channel_name: str
    title: str  # Video title
    digest: Dict[str, Any]  # Transformer output sections
    published_at: Optional[datetime] = None
    source_url: str = ""
    thumbnail_url: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_item(
        cls, item: ContentItem, channel: Channel, digest: Dict[str, Any]
    ) -> "Artifact":
        """Build an artifact with provenance copied from the item and channel."""
        return cls(
            source_id=item.source_id,
            channel_id=channel.id,
            channel_name=channel.display_name,
            title=item.title,
            digest=dict(digest),
            published_at=item.published_at,
            source_url=item.url,
            thumbnail_url=item.thumbnail_url,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database storage."""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "title": self.title,
            "digest": self.digest,
            "published_at": self.published_at,
            "source_url": self.source_url,
            "thumbnail_url": self.thumbnail_url,
            "created_at": self.created_at,
        }

    def notification_payload(self) -> Dict[str, Any]:
        """Digest sections merged with provenance, as sent to subscribers."""
        payload = dict(self.digest)
        payload.update(
            {
                "channelId": self.channel_id,
                "channelName": self.channel_name,
                "videoTitle": self.title,
                "publishedAt": _isoformat(self.published_at),
                "videoUrl": self.source_url,
                "thumbnailUrl": self.thumbnail_url,
            }
        )
        return payload


@dataclass
class ProcessedItem:
    source_id: str
    artifact_id: str
    title: str
    published_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "artifact_id": self.artifact_id,
            "title": self.title,
            "published_at": _isoformat(self.published_at),
        }


@dataclass
class FailedItem:
    source_id: str
    error: str
    kind: str

    def to_dict(self) -> dict:
        return {"source_id": self.source_id, "error": self.error, "kind": self.kind}


@dataclass
class ChannelCheckResult:
    """Outcome of one check of one channel."""

    channel_id: str
    channel_name: str
    items_seen: int = 0
    items_processed: List[ProcessedItem] = field(default_factory=list)
    items_skipped: List[str] = field(default_factory=list)
    items_failed: List[FailedItem] = field(default_factory=list)
    last_checked_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "items_seen": self.items_seen,
            "items_processed": [p.to_dict() for p in self.items_processed],
            "items_skipped": list(self.items_skipped),
            "items_failed": [f.to_dict() for f in self.items_failed],
            "last_checked_at": _isoformat(self.last_checked_at),
        }


@dataclass
class CycleResult:
    """Outcome of one sweep over every watched channel."""

    results: List[ChannelCheckResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return sum(len(r.items_processed) for r in self.results)

    @property
    def total_failed(self) -> int:
        return sum(len(r.items_failed) for r in self.results)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
