"""
Trigger adapters - decide when a pipeline run starts.

- PeriodicRunner: server-side loop, one full run every interval
- ClientPoller: timer plus visibility/focus nudges from an interactive
  client session
- on_scheduled_alert_created: processes a just-created alert when it is
  due within the lookahead window

The runner and poller each hold an in-memory guard so a tick that
arrives while their previous run is still in flight is a no-op. The
guard is local to one adapter instance; exactly-once materialization
across instances comes from the store claim.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.scheduled_alerts.processor import ProcessingRun, ScheduledAlertProcessor
from src.scheduled_alerts.schemas import ScheduledAlert

logger = structlog.get_logger(__name__)

# Role -> adapter name, as reported by /health and used as the metrics label.
TRIGGER_ADAPTERS: dict[str, str] = {
    "scheduled": "periodic_runner",
    "creation": "creation_hook",
    "client": "client_poller",
    "manual": "manual",
    "cron": "cron",
}


class _GuardedTrigger:
    """Shared guard and error handling for adapters that run full scans."""

    name = "trigger"

    def __init__(self, processor: ScheduledAlertProcessor):
        self._processor = processor
        self._running = False
        self._is_processing = False
        self.runs_completed = 0
        self.runs_failed = 0
        self.last_run: ProcessingRun | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    async def _guarded_run(self) -> ProcessingRun | None:
        if self._is_processing:
            logger.debug("Run already in progress, skipping", trigger=self.name)
            return None

        self._is_processing = True
        try:
            run = await self._processor.run(trigger=self.name)
        except Exception as e:
            self.runs_failed += 1
            logger.error("Scheduled alert run failed", trigger=self.name, error=str(e))
            return None
        finally:
            self._is_processing = False

        self.runs_completed += 1
        self.last_run = run
        return run


class PeriodicRunner(_GuardedTrigger):
    """
    Runs the pipeline for all organizations on a fixed interval.

    The first run happens immediately on start. Failures are logged and
    counted; the loop keeps ticking.

    Usage:
        runner = PeriodicRunner(processor)
        await runner.start()  # Runs until stopped
    """

    name = "periodic_runner"

    def __init__(
        self,
        processor: ScheduledAlertProcessor,
        interval_seconds: float | None = None,
    ):
        super().__init__(processor)
        if interval_seconds is None:
            interval_seconds = processor.config.runner_interval_seconds
        self._interval = interval_seconds
        self._stop_event = asyncio.Event()

    @property
    def interval_seconds(self) -> float:
        return self._interval

    async def tick(self) -> ProcessingRun | None:
        """Run once unless the previous tick is still processing."""
        return await self._guarded_run()

    async def start(self) -> None:
        """Enter the tick loop until :meth:`stop` is called."""
        self._running = True
        self._stop_event.clear()
        logger.info("Starting periodic runner", interval_seconds=self._interval)

        try:
            while self._running:
                await self.tick()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("Periodic runner cancelled")
        finally:
            self._running = False
            logger.info(
                "Periodic runner stopped",
                runs_completed=self.runs_completed,
                runs_failed=self.runs_failed,
            )

    async def stop(self) -> None:
        """Stop after the current tick."""
        logger.info("Stopping periodic runner")
        self._running = False
        self._stop_event.set()


class ClientPoller(_GuardedTrigger):
    """
    Runs the pipeline from an interactive client session.

    Processes immediately on start, then on every timer tick, whenever
    the session becomes visible again and whenever it regains focus.
    Overlapping requests collapse into the one already running.
    """

    name = "client_poller"

    def __init__(
        self,
        processor: ScheduledAlertProcessor,
        interval_seconds: float | None = None,
    ):
        super().__init__(processor)
        if interval_seconds is None:
            interval_seconds = processor.config.poller_interval_seconds
        self._interval = interval_seconds
        self._timer: asyncio.Task | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def start(self) -> None:
        """Start the timer. Must be called from inside a running event loop."""
        if self._running:
            logger.debug("Client poller already running")
            return

        self._running = True
        self._timer = asyncio.create_task(self._timer_loop())
        logger.info("Client poller started", interval_seconds=self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        logger.info("Client poller stopped")

    async def _timer_loop(self) -> None:
        while self._running:
            await self.poll()
            await asyncio.sleep(self._interval)

    async def poll(self) -> ProcessingRun | None:
        """Run once unless a run from this poller is already in flight."""
        return await self._guarded_run()

    async def notify_visibility(self, visible: bool) -> ProcessingRun | None:
        """Session visibility changed. Becoming visible triggers a run."""
        if not visible or not self._running:
            return None
        logger.debug("Session visible, checking scheduled alerts")
        return await self.poll()

    async def notify_focus(self) -> ProcessingRun | None:
        """Session regained focus."""
        if not self._running:
            return None
        logger.debug("Session focused, checking scheduled alerts")
        return await self.poll()

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self._running,
            "has_timer": self._timer is not None and not self._timer.done(),
            "is_processing": self._is_processing,
        }


async def on_scheduled_alert_created(
    processor: ScheduledAlertProcessor,
    alert: ScheduledAlert,
    lookahead_seconds: float | None = None,
    now: datetime | None = None,
) -> ProcessingRun | None:
    """
    Creation hook: process a new alert right away if it is (nearly) due.

    Alerts scheduled further out than the lookahead are left to the
    periodic runner. Never raises; a failure here must not fail the
    creation that triggered it.

    Args:
        processor: Pipeline processor.
        alert: The alert just written.
        lookahead_seconds: Window (default: creation_lookahead_seconds).
        now: Reference instant (default: current UTC time).

    Returns:
        The single-alert ProcessingRun, or None if skipped or failed.
    """
    if lookahead_seconds is None:
        lookahead_seconds = processor.config.creation_lookahead_seconds
    now = now or datetime.now(timezone.utc)

    if not alert.is_active:
        return None

    remaining = alert.time_until_scheduled(now)
    if remaining > timedelta(seconds=lookahead_seconds):
        logger.debug(
            "New alert not due yet, leaving it to the runner",
            scheduled_alert_id=alert.id,
            seconds_until_due=round(remaining.total_seconds(), 1),
        )
        return None

    try:
        return await processor.process_single(alert, trigger="creation_hook")
    except Exception as e:
        logger.error(
            "Creation hook failed",
            scheduled_alert_id=alert.id,
            error=str(e),
        )
        return None
