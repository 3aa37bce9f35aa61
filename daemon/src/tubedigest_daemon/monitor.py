"""Channel monitoring and ingestion pipeline."""

import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from rich.console import Console

from .errors import DuplicateArtifactError, NoChannelsAvailable, UnknownChannel, error_kind
from .models import (
    Artifact,
    Channel,
    ChannelCheckResult,
    ContentItem,
    CycleResult,
    FailedItem,
    ProcessedItem,
    utcnow,
)
from .observability import log as obs_log

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    """Channel monitor lifecycle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class ChannelMonitor:
    """Watches a fixed set of channels and turns new videos into stored digests.

    Owns the watched-channel list and references to its collaborators. One
    monitor is a single logical worker: channels are checked one after
    another and so are the videos of a channel. A video is processed at most
    once: an existing artifact for its id is the skip marker, an in-process
    lock per video id serializes overlapping checks, and a duplicate
    rejected by the store is reported as a skip.
    """

    def __init__(
        self,
        channels: List[Dict[str, str]],
        source,
        extractor,
        summarizer,
        storage,
        notifier=None,
        max_results: int = 1,
        notification_recipient: Optional[str] = None,
        console: Optional[Console] = None,
    ):
        """Initialize monitor with configuration and dependencies.

        Args:
            channels: Configured channels, dicts with 'id' and 'display_name'
            source: YouTubeSource for discovery and channel metadata
            extractor: CaptionExtractor producing transcript cues
            summarizer: DigestSummarizer producing digest sections
            storage: Storage for artifacts and channel bookkeeping
            notifier: Optional EmailNotifier for new digests
            max_results: Newest videos inspected per channel check
            notification_recipient: Address notified in addition to subscribers
            console: Optional Rich console for output
        """
        self.configured_channels = [dict(channel) for channel in channels]
        self.source = source
        self.extractor = extractor
        self.summarizer = summarizer
        self.storage = storage
        self.notifier = notifier
        self.max_results = max_results
        self.notification_recipient = notification_recipient
        self.console = console or Console()

        self._state = MonitorState.UNINITIALIZED
        self._channels: List[Channel] = []
        self._init_lock = asyncio.Lock()
        self._item_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def channels(self) -> List[Channel]:
        """Watched channels (empty until initialized)."""
        return list(self._channels)

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        for channel in self._channels:
            if channel.id == channel_id:
                return channel
        return None

    async def initialize(self) -> None:
        """Resolve configured channels against YouTube.

        Unresolvable channels are logged and left out. A no-op once ready;
        concurrent callers wait for the same initialization.

        Raises:
            NoChannelsAvailable: If no configured channel could be resolved
        """
        if self._state == MonitorState.READY:
            return

        async with self._init_lock:
            if self._state == MonitorState.READY:
                return

            self._state = MonitorState.INITIALIZING
            resolved: List[Channel] = []

            for configured in self.configured_channels:
                channel = await self._resolve_channel(configured)
                if channel:
                    resolved.append(channel)

            if not resolved:
                self._state = MonitorState.UNINITIALIZED
                obs_log("monitor.init", status="error", channels=0)
                logger.error("No channels could be initialized")
                raise NoChannelsAvailable()

            self._channels = resolved
            self._state = MonitorState.READY
            obs_log("monitor.init", status="success", channels=len(resolved))
            logger.info(f"Initialized YouTube monitor for {len(resolved)} channels")

    async def _resolve_channel(self, configured: Dict[str, str]) -> Optional[Channel]:
        channel_id = configured["id"]
        display_name = configured.get("display_name") or channel_id

        try:
            metadata = await self.source.resolve_channel(channel_id)
            if metadata is None:
                logger.error(f"Channel not found: {channel_id}")
                return None

            channel = Channel(
                id=channel_id,
                display_name=display_name,
                resolved_name=metadata.get("resolved_name", ""),
                last_checked_at=utcnow(),
            )
            channel.last_checked_at = self.storage.upsert_channel(channel)

        except Exception as e:
            logger.error(f"Error initializing channel {display_name}: {e}")
            return None

        self.console.print(
            f"  📺 Monitoring channel: {channel.display_name} ({channel.id})"
        )
        return channel

    async def check_channel(
        self,
        channel_id: str,
        force_summary: bool = False,
        force_send_email: bool = False,
    ) -> ChannelCheckResult:
        """Check one channel for new videos and process them.

        Args:
            channel_id: Watched channel id
            force_summary: Report an already-stored digest as processed
            force_send_email: Deliver digests even when notifications are
                disabled, and re-deliver already-stored ones

        Returns:
            ChannelCheckResult with processed, skipped and failed videos

        Raises:
            NoChannelsAvailable: If the monitor could not be initialized
            UnknownChannel: If channel_id is not watched
            TransientError: If the video listing could not be fetched
        """
        if self._state != MonitorState.READY:
            logger.info("Monitor not initialized, initializing now...")
            await self.initialize()

        channel = self.get_channel(channel_id)
        if channel is None:
            raise UnknownChannel(channel_id)

        self.console.print(
            f"\n[bold cyan]Checking channel: {channel.display_name} ({channel.id})[/bold cyan]"
        )

        items = await self.source.list_latest_items(
            channel.id, max_results=self.max_results
        )
        result = ChannelCheckResult(
            channel_id=channel.id,
            channel_name=channel.display_name,
            items_seen=len(items),
        )

        if not items:
            self.console.print(f"  📭 No videos found for {channel.display_name}")

        for item in items:
            await self._process_item(
                channel, item, result, force_summary, force_send_email
            )

        channel.last_checked_at = self._next_checked_at(channel.last_checked_at)
        channel.last_checked_at = self.storage.upsert_channel(channel)
        result.last_checked_at = channel.last_checked_at

        self.console.print(
            f"  ✅ {channel.display_name}: {len(result.items_processed)} processed, "
            f"{len(result.items_skipped)} skipped, {len(result.items_failed)} failed"
        )
        return result

    async def check_all_channels(self) -> CycleResult:
        """Check every watched channel in turn.

        A failing channel is logged and recorded; it never stops the sweep.

        Raises:
            NoChannelsAvailable: If the monitor could not be initialized
        """
        await self.initialize()

        cycle = CycleResult()
        obs_log("monitor.cycle.start", channels=len(self._channels))

        for channel in self.channels:
            try:
                cycle.results.append(await self.check_channel(channel.id))
            except Exception as e:
                error_msg = f"Error checking channel {channel.id}: {e}"
                logger.error(error_msg)
                self.console.print(f"  [red]{error_msg}[/red]")
                cycle.errors.append(error_msg)

        obs_log(
            "monitor.cycle.complete",
            channels=len(self._channels),
            processed=cycle.total_processed,
            failed=cycle.total_failed,
            channel_errors=len(cycle.errors),
        )
        self.console.print(
            f"\n[bold green]✅ Sweep complete[/bold green]: {cycle.total_processed} new digests, "
            f"{cycle.total_failed} failed videos, {len(cycle.errors)} channel errors"
        )
        return cycle

    def start_polling(self, interval_minutes: int) -> "PollingHandle":
        """Start background polling; returns immediately.

        Must be called from a running event loop. Initializes the monitor, runs
        one sweep right away, then sweeps every ``interval_minutes``.

        Returns:
            PollingHandle to await startup or stop polling
        """
        if interval_minutes < 1:
            raise ValueError(
                f"interval_minutes must be at least 1, got {interval_minutes}"
            )

        handle = PollingHandle(self, interval_minutes)
        handle.start()
        return handle

    async def _process_item(
        self,
        channel: Channel,
        item: ContentItem,
        result: ChannelCheckResult,
        force_summary: bool,
        force_send_email: bool,
    ) -> None:
        """Dedup-check, extract, summarize, store and notify one video.

        Failures are recorded on ``result`` and never raised.
        """
        source_id = item.source_id
        self.console.print(f"    🔍 {source_id}: {item.title[:60]}")

        async with self._lock_for(source_id):
            try:
                existing = self.storage.find_by_source_id(source_id)
            except Exception as e:
                self._record_failure(result, source_id, e)
                return

            if existing:
                logger.info(f"Video {source_id} already processed, skipping")
                self._record_skip(result, source_id)
                stored = Artifact(**existing)
                if force_summary:
                    result.items_processed.append(
                        ProcessedItem(
                            source_id=source_id,
                            artifact_id=stored.id,
                            title=stored.title,
                            published_at=stored.published_at,
                        )
                    )
                if force_send_email:
                    await self.notify(stored, force=True)
                return

            try:
                units = await self.extractor.extract(source_id)
                digest = await self.summarizer.summarize(
                    units, title=item.title, channel_name=channel.display_name
                )
                artifact = Artifact.from_item(item, channel, digest)
                artifact_id = self.storage.create_artifact(artifact)
            except DuplicateArtifactError:
                logger.info(f"Video {source_id} stored concurrently, skipping")
                self._record_skip(result, source_id)
                return
            except Exception as e:
                self._record_failure(result, source_id, e)
                return

        result.items_processed.append(
            ProcessedItem(
                source_id=source_id,
                artifact_id=artifact_id,
                title=item.title,
                published_at=item.published_at,
            )
        )
        obs_log("monitor.item", source_id=source_id, status="processed")
        self.console.print(f"       🆕 Stored digest {artifact_id}")

        await self.notify(artifact, force=force_send_email)

    async def notify(self, artifact: Artifact, force: bool = False) -> None:
        """Best-effort delivery to every recipient; never raises."""
        if self.notifier is None:
            return
        if not (self.notifier.enabled or force):
            return

        try:
            recipients = self.recipients()
            if not recipients:
                logger.debug("No notification recipients configured")
                return
            sent = await self.notifier.send_to_all(
                artifact, artifact.source_id, recipients
            )
            logger.info(
                f"Notification for {artifact.source_id} sent to {sent}/{len(recipients)} recipients"
            )
        except Exception as e:
            logger.warning(f"Failed to notify for {artifact.source_id}: {e}")

    def recipients(self) -> List[str]:
        recipients = []
        if self.notification_recipient:
            recipients.append(self.notification_recipient)
        for email in self.storage.get_subscriber_emails():
            if email not in recipients:
                recipients.append(email)
        return recipients

    def _lock_for(self, source_id: str) -> asyncio.Lock:
        lock = self._item_locks.get(source_id)
        if lock is None:
            lock = asyncio.Lock()
            self._item_locks[source_id] = lock
        return lock

    def _record_skip(self, result: ChannelCheckResult, source_id: str) -> None:
        result.items_skipped.append(source_id)
        obs_log("monitor.item", source_id=source_id, status="skipped")

    def _record_failure(
        self, result: ChannelCheckResult, source_id: str, error: Exception
    ) -> None:
        kind = error_kind(error)
        error_msg = f"Error processing video {source_id}: {error}"
        logger.error(error_msg)
        self.console.print(f"    [red]{error_msg}[/red]")
        result.items_failed.append(
            FailedItem(source_id=source_id, error=str(error), kind=kind)
        )
        obs_log(
            "monitor.item", source_id=source_id, status="failed", kind=kind, error=str(error)
        )

    @staticmethod
    def _next_checked_at(previous: Optional[datetime]) -> datetime:
        """Current time, strictly after ``previous`` even if the clock stepped back."""
        now = utcnow()
        if previous is not None and now <= previous:
            return previous + timedelta(microseconds=1)
        return now


class PollingHandle:
    """Background polling started by ChannelMonitor.start_polling."""

    JOB_ID = "channel_sweep"

    def __init__(self, monitor: ChannelMonitor, interval_minutes: int):
        self.monitor = monitor
        self.interval_minutes = interval_minutes
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        self._task.add_done_callback(self._on_started)

    async def wait_started(self) -> None:
        """Wait until the recurring sweep is armed.

        Raises:
            NoChannelsAvailable: If initialization failed
        """
        await asyncio.shield(self._task)

    async def stop(self) -> None:
        """Cancel startup if still pending and shut the scheduler down.

        The asyncio scheduler finishes shutting down on the next loop pass,
        so ``running`` is already False when this returns.
        """
        if self._task and not self._task.done():
            self._task.cancel()
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            await asyncio.sleep(0)
        logger.info("Channel polling stopped")

    async def _run(self) -> None:
        await self.monitor.initialize()

        # Immediate first sweep
        await self._sweep()

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            func=self._sweep,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=self.JOB_ID,
            name="Check watched channels",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping sweeps
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            f"YouTube monitor started, checking every {self.interval_minutes} minute(s)"
        )

    async def _sweep(self) -> None:
        try:
            await self.monitor.check_all_channels()
        except Exception as e:
            logger.error(f"Channel sweep failed: {e}")

    def _on_started(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to start YouTube monitor: {error}")

    def status(self) -> Dict[str, Any]:
        next_run = None
        if self.running:
            job = self.scheduler.get_job(self.JOB_ID)
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()
        return {
            "running": self.running,
            "interval_minutes": self.interval_minutes,
            "next_run_at": next_run,
        }
