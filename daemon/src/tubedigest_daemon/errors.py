"""Error taxonomy for the ingestion pipeline.

Every error carries a short ``kind`` used in per-item failure records and an
HTTP-equivalent ``status_code`` used by the API layer.
"""

from typing import Iterable, List


class TubeDigestError(Exception):
    """Base class for all pipeline errors."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidIdentifier(TubeDigestError):
    """Video id does not match the 11-character id format."""

    kind = "invalid_identifier"
    status_code = 400

    def __init__(self, source_id: str):
        super().__init__(f"Invalid YouTube video ID format: {source_id!r}")
        self.source_id = source_id


class NoCaptionsAvailable(TubeDigestError):
    """The watch page carries no caption-track reference."""

    kind = "no_captions"
    status_code = 404

    def __init__(self, source_id: str):
        super().__init__(f"No captions available for video {source_id}")
        self.source_id = source_id


class CaptionParseError(TubeDigestError):
    """Caption payload is structurally malformed."""

    kind = "caption_parse_error"
    status_code = 500


class TransformError(TubeDigestError):
    """LLM response could not be turned into a digest document."""

    kind = "transform_error"
    status_code = 500


class IncompleteTransformResult(TransformError):
    """LLM response parsed but lacks required digest sections."""

    kind = "incomplete_transform"

    def __init__(self, missing_keys: Iterable[str]):
        self.missing_keys: List[str] = list(missing_keys)
        super().__init__(
            f"Invalid response format. Missing keys: {', '.join(self.missing_keys)}"
        )


class UnknownChannel(TubeDigestError):
    """Channel id is not part of the watched set."""

    kind = "unknown_channel"
    status_code = 404

    def __init__(self, channel_id: str):
        super().__init__(f"Channel {channel_id} not found in monitored channels")
        self.channel_id = channel_id


class NoChannelsAvailable(TubeDigestError):
    """No configured channel could be resolved during initialization."""

    kind = "no_channels"
    status_code = 503

    def __init__(self, message: str = "No channels could be initialized"):
        super().__init__(message)


class TransientError(TubeDigestError):
    """Timeout, connection failure or upstream 5xx. Retried next cycle."""

    kind = "transient"
    status_code = 503


class DuplicateArtifactError(TubeDigestError):
    """An artifact for this source id already exists in the store."""

    kind = "duplicate"
    status_code = 409

    def __init__(self, source_id: str):
        super().__init__(f"Artifact already exists for video {source_id}")
        self.source_id = source_id


class SubscriberExistsError(TubeDigestError):
    """Email address is already subscribed."""

    kind = "subscriber_exists"
    status_code = 409

    def __init__(self, email: str):
        super().__init__("Email already subscribed")
        self.email = email


def error_kind(error: BaseException) -> str:
    """Return the failure kind for any exception."""
    if isinstance(error, TubeDigestError):
        return error.kind
    return "internal"
