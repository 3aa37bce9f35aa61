"""Repository pattern storage layer for TubeDigest daemon."""

import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

from .database import get_db_connection
from .errors import DuplicateArtifactError, SubscriberExistsError
from .models import Artifact, Channel, utcnow


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class Storage:
    """Repository for all database operations.

    Implements the repository pattern - all SQL stays in this class.
    Uses connection reuse pattern for efficiency.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize storage with database connection.

        Args:
            db_path: Optional custom database path for testing.
                     Defaults to $XDG_DATA_HOME/tubedigest/tubedigest.db
        """
        self.db_path = db_path
        self._conn = None  # Lazy connection initialization
        # Test that we can create a connection
        test_conn = get_db_connection(self.db_path)
        test_conn.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection with lazy initialization."""
        if self._conn is None:
            self._conn = get_db_connection(self.db_path)
        return self._conn

    def close(self) -> None:
        """Close the database connection if open."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Artifacts

    def find_by_source_id(self, source_id: str) -> Optional[Dict[str, Any]]:
        """Find the artifact derived from a video.

        Args:
            source_id: The 11-character video id

        Returns:
            Dict with artifact fields if found, None otherwise

        Raises:
            sqlite3.Error: If database operation fails
        """
        try:
            cursor = self.conn.execute(
                """
                SELECT id, source_id, channel_id, channel_name, title, digest,
                       published_at, source_url, thumbnail_url, created_at
                FROM artifacts
                WHERE source_id = ?
                """,
                (source_id,),
            )
            row = cursor.fetchone()
            return self._artifact_row_to_dict(row) if row else None

        except sqlite3.Error as e:
            raise sqlite3.Error(f"Failed to get artifact by source_id: {e}")

    def create_artifact(self, artifact: Union[Artifact, Dict[str, Any]]) -> str:
        """Persist a new artifact.

        Args:
            artifact: Artifact to store, or dict with the same fields

        Returns:
            The UUID of the stored artifact

        Raises:
            DuplicateArtifactError: If an artifact for the same source_id exists
            sqlite3.Error: If database operation fails
        """
        if isinstance(artifact, dict):
            artifact = Artifact(**artifact)

        try:
            self.conn.execute(
                """
                INSERT INTO artifacts (
                    id, source_id, channel_id, channel_name, title, digest,
                    published_at, source_url, thumbnail_url, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    artifact.id,
                    artifact.source_id,
                    artifact.channel_id,
                    artifact.channel_name,
                    artifact.title,
                    json.dumps(artifact.digest),
                    _to_db_time(artifact.published_at),
                    artifact.source_url,
                    artifact.thumbnail_url,
                    _to_db_time(artifact.created_at),
                ),
            )
            self.conn.commit()
            return artifact.id

        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise DuplicateArtifactError(artifact.source_id)
        except sqlite3.Error as e:
            self.conn.rollback()
            raise sqlite3.Error(f"Failed to create artifact: {e}")

    def count_artifacts(self, channel_id: Optional[str] = None) -> int:
        """Count stored artifacts, optionally for one channel."""
        if channel_id:
            cursor = self.conn.execute(
                "SELECT COUNT(*) FROM artifacts WHERE channel_id = ?", (channel_id,)
            )
        else:
            cursor = self.conn.execute("SELECT COUNT(*) FROM artifacts")
        return cursor.fetchone()[0]

    def _artifact_row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "source_id": row["source_id"],
            "channel_id": row["channel_id"],
            "channel_name": row["channel_name"],
            "title": row["title"],
            "digest": json.loads(row["digest"]) if row["digest"] else {},
            "published_at": _from_db_time(row["published_at"]),
            "source_url": row["source_url"],
            "thumbnail_url": row["thumbnail_url"],
            "created_at": _from_db_time(row["created_at"]),
        }

    # Channels

    def upsert_channel(self, channel: Channel) -> Optional[datetime]:
        """Insert or update a channel record keyed by id.

        ``last_checked_at`` never moves backwards: the later of the stored and
        the given value is kept.

        Returns:
            The persisted last_checked_at

        Raises:
            sqlite3.Error: If database operation fails
        """
        try:
            existing = self.get_channel(channel.id)
            last_checked_at = channel.last_checked_at
            if existing and existing["last_checked_at"]:
                if last_checked_at is None or existing["last_checked_at"] > last_checked_at:
                    last_checked_at = existing["last_checked_at"]

            self.conn.execute(
                """
                INSERT INTO channels (id, display_name, resolved_name, last_checked_at,
                                      created_at, updated_at)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    display_name = excluded.display_name,
                    resolved_name = excluded.resolved_name,
                    last_checked_at = excluded.last_checked_at,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    channel.id,
                    channel.display_name,
                    channel.resolved_name,
                    _to_db_time(last_checked_at),
                ),
            )
            self.conn.commit()
            return last_checked_at

        except sqlite3.Error as e:
            self.conn.rollback()
            raise sqlite3.Error(f"Failed to upsert channel: {e}")

    def get_channel(self, channel_id: str) -> Optional[Dict[str, Any]]:
        """Get one channel record by id."""
        try:
            cursor = self.conn.execute(
                """
                SELECT id, display_name, resolved_name, last_checked_at,
                       created_at, updated_at
                FROM channels
                WHERE id = ?
                """,
                (channel_id,),
            )
            row = cursor.fetchone()
            return self._channel_row_to_dict(row) if row else None

        except sqlite3.Error as e:
            raise sqlite3.Error(f"Failed to get channel: {e}")

    def get_channels(self) -> List[Dict[str, Any]]:
        """Get all channel records ordered by display name."""
        try:
            cursor = self.conn.execute(
                """
                SELECT id, display_name, resolved_name, last_checked_at,
                       created_at, updated_at
                FROM channels
                ORDER BY display_name
                """
            )
            return [self._channel_row_to_dict(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise sqlite3.Error(f"Failed to get channels: {e}")

    def _channel_row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "display_name": row["display_name"],
            "resolved_name": row["resolved_name"],
            "last_checked_at": _from_db_time(row["last_checked_at"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    # Subscribers

    def add_subscriber(self, email: str) -> Dict[str, Any]:
        """Add an e-mail subscriber.

        Raises:
            SubscriberExistsError: If the address is already subscribed
            sqlite3.Error: If database operation fails
        """
        email = email.strip().lower()
        subscriber_id = str(uuid.uuid4())
        subscribed_at = utcnow()
        try:
            self.conn.execute(
                "INSERT INTO subscribers (id, email, subscribed_at) VALUES (?, ?, ?)",
                (subscriber_id, email, _to_db_time(subscribed_at)),
            )
            self.conn.commit()
            return {"id": subscriber_id, "email": email, "subscribed_at": subscribed_at}

        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise SubscriberExistsError(email)
        except sqlite3.Error as e:
            self.conn.rollback()
            raise sqlite3.Error(f"Failed to add subscriber: {e}")

    def get_subscriber_emails(self) -> List[str]:
        """Get all subscribed e-mail addresses, oldest first."""
        try:
            cursor = self.conn.execute(
                "SELECT email FROM subscribers ORDER BY subscribed_at, rowid"
            )
            return [row["email"] for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise sqlite3.Error(f"Failed to get subscribers: {e}")
