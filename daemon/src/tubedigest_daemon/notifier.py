"""E-mail delivery of new digests through Loops transactional events."""

import logging
from typing import Dict, Any, Iterable, Optional

import httpx

from .models import Artifact, utcnow
from .observability import log as obs_log

logger = logging.getLogger(__name__)

LOOPS_EVENTS_URL = "https://app.loops.so/api/v1/events/send"


class EmailNotifier:
    """Sends a digest to subscribers. Best-effort: failures are logged, never raised."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the notifier.

        Args:
            config: Optional configuration dict with:
                - enabled: Notify on new digests (default: True)
                - api_key: Loops API key (no key = notifier disabled)
                - event_name: Loops event name (default: crypto_analysis)
                - timeout: Request timeout in seconds (default: 30)
            client: Pre-built client (tests inject one with a mock transport)
        """
        self.config = config or {}
        self.enabled = self.config.get("enabled", True)
        self.api_key = self.config.get("api_key") or ""
        self.event_name = self.config.get("event_name", "crypto_analysis")
        self.timeout = self.config.get("timeout", 30.0)
        self.client = client or httpx.AsyncClient(timeout=self.timeout)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def send(self, artifact: Artifact, source_id: str, recipient: str) -> bool:
        """Deliver one digest to one recipient.

        Returns:
            True if Loops accepted the event, False otherwise
        """
        if not self.configured:
            logger.debug("Loops API key not configured, skipping e-mail")
            return False

        payload = {
            "email": recipient,
            "eventName": self.event_name,
            "eventProperties": self._event_properties(artifact, source_id),
        }

        try:
            response = await self.client.post(
                LOOPS_EVENTS_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            if response.status_code >= 400:
                logger.warning(
                    f"Loops rejected digest for {source_id} to {recipient}: "
                    f"HTTP {response.status_code} {response.text[:200]}"
                )
                obs_log(
                    "notify.send",
                    source_id=source_id,
                    status="error",
                    status_code=response.status_code,
                )
                return False
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send digest for {source_id} to {recipient}: {e}")
            obs_log("notify.send", source_id=source_id, status="error", error=str(e))
            return False

        logger.info(f"Sent digest for {source_id} to {recipient}")
        obs_log("notify.send", source_id=source_id, status="success")
        return True

    async def send_to_all(
        self, artifact: Artifact, source_id: str, recipients: Iterable[str]
    ) -> int:
        """Deliver one digest to every recipient.

        Returns:
            Number of successful deliveries
        """
        sent = 0
        for recipient in recipients:
            if await self.send(artifact, source_id, recipient):
                sent += 1
        return sent

    def _event_properties(self, artifact: Artifact, source_id: str) -> Dict[str, Any]:
        """Flatten the digest for Loops, which only accepts scalar properties."""
        properties = {}
        for key, value in artifact.notification_payload().items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            elif isinstance(value, dict):
                value = ", ".join(f"{k}: {v}" for k, v in value.items())
            properties[key] = value

        properties["videoId"] = source_id
        properties["timestamp"] = utcnow().isoformat()
        return properties
