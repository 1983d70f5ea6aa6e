"""
Scheduled alert processor - claims due alerts and materializes them.

For each due ScheduledAlert:
1. Claim it with one conditional UPDATE (pending -> processed)
2. Build the ActiveAlert payload
3. Write it to the global feed (required)
4. Write it to the organization feed (best effort)
5. Store the back-reference on the scheduled alert (best effort)
6. Fan out a push notification (best effort)

Only the claim decides who materializes an alert, so any number of
processors may run concurrently. Steps 4-6 are not rolled back on
failure; a claimed alert is never re-queued.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from src.observability.logging import bind_run_context, clear_run_context
from src.observability.metrics import get_metrics
from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.events import RunCompletedPublisher
from src.scheduled_alerts.exceptions import MaterializationError
from src.scheduled_alerts.fanout import NotificationFanout
from src.scheduled_alerts.repository import (
    ActiveAlertRepository,
    ScheduledAlertRepository,
)
from src.scheduled_alerts.scanner import DueAlertScanner
from src.scheduled_alerts.schemas import ScheduledAlert, build_active_alert

logger = structlog.get_logger(__name__)


@dataclass
class ProcessingRun:
    """Summary of one pipeline run. Not persisted."""

    trigger: str
    scope: str = "all"
    organization_id: str | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    processed_alerts: list[str] = field(default_factory=list)
    organizations_scanned: int = 0
    organizations_failed: list[str] = field(default_factory=list)
    claims_lost: int = 0
    errors: list[str] = field(default_factory=list)
    timed_out: bool = False
    elapsed_seconds: float = 0.0

    @property
    def processed_count(self) -> int:
        return len(self.processed_alerts)

    @property
    def status(self) -> str:
        if self.timed_out:
            return "timeout"
        if self.errors or self.organizations_failed:
            return "partial"
        return "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "scope": self.scope,
            "organization_id": self.organization_id,
            "status": self.status,
            "processed_alerts": list(self.processed_alerts),
            "processed_count": self.processed_count,
            "organizations_scanned": self.organizations_scanned,
            "organizations_failed": list(self.organizations_failed),
            "claims_lost": self.claims_lost,
            "errors": list(self.errors),
            "timed_out": self.timed_out,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class ScheduledAlertProcessor:
    """
    Turns due scheduled alerts into delivered alerts.

    Usage:
        processor = ScheduledAlertProcessor(scheduled_repo, active_repo, fanout)
        run = await processor.run(trigger="manual")
        print(run.processed_alerts)
    """

    def __init__(
        self,
        scheduled_repo: ScheduledAlertRepository,
        active_repo: ActiveAlertRepository,
        fanout: NotificationFanout,
        config: ScheduledAlertConfig | None = None,
        publisher: RunCompletedPublisher | None = None,
        scanner: DueAlertScanner | None = None,
    ):
        self._config = config or ScheduledAlertConfig()
        self._scheduled = scheduled_repo
        self._active = active_repo
        self._fanout = fanout
        self._publisher = publisher
        self._scanner = scanner or DueAlertScanner(scheduled_repo, self._config)
        self._inflight: set[asyncio.Task] = set()

    @property
    def config(self) -> ScheduledAlertConfig:
        return self._config

    # ── Single alert ─────────────────────────────────────

    async def process_alert(
        self,
        alert: ScheduledAlert,
        organization_name: str | None = None,
    ) -> str | None:
        """
        Claim and materialize one scheduled alert.

        Args:
            alert: Due alert as read by the scanner.
            organization_name: Display name of the owning organization.

        Returns:
            The alert title if this call materialized it, None if another
            run already claimed it.

        Raises:
            MaterializationError: The global feed write failed after the
                claim. The scheduled alert stays processed.
        """
        metrics = get_metrics()
        processed_at = datetime.now(timezone.utc)

        claimed = await self._scheduled.claim(
            alert.organization_id, alert.id, processed_at,
        )
        if not claimed:
            logger.debug("Claim lost, already processed", scheduled_alert_id=alert.id)
            metrics.record_claim_lost()
            return None

        active = build_active_alert(alert, organization_name, processed_at)

        try:
            active.id = await self._active.create_global(active) or active.id
        except Exception as e:
            raise MaterializationError(alert.id, e) from e

        try:
            await self._active.create_for_organization(active)
        except Exception as e:
            logger.error(
                "Partial materialization: organization feed write failed",
                scheduled_alert_id=alert.id,
                active_alert_id=active.id,
                organization_id=alert.organization_id,
                error=str(e),
            )
            metrics.record_partial_materialization("organization_feed")

        try:
            await self._scheduled.set_processed_alert_id(
                alert.organization_id, alert.id, active.id,
            )
        except Exception as e:
            logger.error(
                "Partial materialization: back-reference not stored",
                scheduled_alert_id=alert.id,
                active_alert_id=active.id,
                error=str(e),
            )
            metrics.record_partial_materialization("back_reference")

        try:
            await self._fanout.notify(active)
        except Exception as e:
            logger.error(
                "Push fanout failed",
                scheduled_alert_id=alert.id,
                active_alert_id=active.id,
                error=str(e),
            )
            metrics.record_fanout_error()

        logger.info(
            "Scheduled alert processed",
            scheduled_alert_id=alert.id,
            active_alert_id=active.id,
            organization_id=alert.organization_id,
            title=alert.title,
        )
        return alert.title

    async def _process_into(
        self,
        run: ProcessingRun,
        alert: ScheduledAlert,
        organization_name: str | None,
    ) -> None:
        try:
            title = await self.process_alert(alert, organization_name)
        except Exception as e:
            logger.error(
                "Failed to process scheduled alert",
                scheduled_alert_id=alert.id,
                organization_id=alert.organization_id,
                error=str(e),
            )
            run.errors.append(f"{alert.id}: {e}")
            return

        if title is None:
            run.claims_lost += 1
        else:
            run.processed_alerts.append(title)

    async def _process_shielded(
        self,
        run: ProcessingRun,
        alert: ScheduledAlert,
        organization_name: str | None,
    ) -> None:
        # A run timeout must not interrupt an alert between claim and write.
        task = asyncio.ensure_future(self._process_into(run, alert, organization_name))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for alerts that were claimed but not yet fully processed."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # ── Runs ─────────────────────────────────────────────

    async def _scan_and_process(self, run: ProcessingRun) -> None:
        report = await self._scanner.scan_with_report(run.organization_id)
        run.organizations_scanned = report.organizations_scanned
        run.organizations_failed = list(report.failed_organizations)

        logger.info(
            "Due alerts found",
            due=len(report.alerts),
            organizations_scanned=report.organizations_scanned,
            organizations_failed=len(report.failed_organizations),
        )

        for alert in report.alerts:
            await self._process_shielded(
                run, alert, report.organization_names.get(alert.organization_id),
            )

    async def _execute(
        self,
        run: ProcessingRun,
        work: Awaitable[None],
        timeout: float | None,
    ) -> ProcessingRun:
        timeout = self._config.scan_timeout_seconds if timeout is None else timeout
        bind_run_context(run.run_id, run.trigger)
        start_time = time.monotonic()
        status = "failed"

        try:
            try:
                await asyncio.wait_for(work, timeout=timeout)
            except asyncio.TimeoutError:
                run.timed_out = True
                logger.warning(
                    "Run timed out, finishing claimed alerts",
                    timeout_seconds=timeout,
                    inflight=len(self._inflight),
                )
                await self.drain()

            status = run.status
            if run.processed_alerts and self._publisher is not None:
                await self._publisher.publish(run.processed_alerts)

            logger.info(
                "Run complete",
                scope=run.scope,
                status=status,
                processed_count=run.processed_count,
                claims_lost=run.claims_lost,
                errors=len(run.errors),
            )
            return run
        finally:
            run.elapsed_seconds = time.monotonic() - start_time
            get_metrics().record_run(
                run.trigger,
                status,
                processed=run.processed_count,
                latency=run.elapsed_seconds,
            )
            clear_run_context()

    async def run(
        self,
        organization_id: str | None = None,
        trigger: str = "manual",
        timeout: float | None = None,
    ) -> ProcessingRun:
        """
        Scan for due alerts and process each one.

        Args:
            organization_id: Limit the run to one organization.
            trigger: Adapter name, used for logs and metrics.
            timeout: Run deadline in seconds (default: scan_timeout_seconds).

        Returns:
            ProcessingRun. On timeout ``timed_out`` is set, no new alert is
            started, and alerts already claimed are finished and reported.

        Raises:
            OrganizationNotFoundError: ``organization_id`` does not exist.
            ScanError: Organizations could not be listed.
        """
        run = ProcessingRun(
            trigger=trigger,
            scope="organization" if organization_id else "all",
            organization_id=organization_id,
        )
        return await self._execute(run, self._scan_and_process(run), timeout)

    async def process_single(
        self,
        alert: ScheduledAlert,
        trigger: str = "creation_hook",
        timeout: float | None = None,
    ) -> ProcessingRun:
        """Process one known alert without scanning. Used by the creation hook."""
        run = ProcessingRun(
            trigger=trigger,
            scope="alert",
            organization_id=alert.organization_id,
        )
        return await self._execute(
            run, self._process_shielded(run, alert, None), timeout,
        )

    async def get_due_alerts(
        self,
        organization_id: str | None = None,
    ) -> list[ScheduledAlert]:
        """List due alerts without claiming them."""
        return await self._scanner.scan(organization_id)
