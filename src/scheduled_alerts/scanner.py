"""Due-alert scanner.

Finds every pending ScheduledAlert whose ``scheduled_date`` has elapsed,
across all organizations or within one. The store query is only a
pre-filter; :func:`is_due` is always re-applied to what comes back.

Organizations are read concurrently. One unreadable organization is
logged and skipped and never aborts the rest of the scan.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from src.observability.metrics import get_metrics
from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.exceptions import OrganizationNotFoundError, ScanError
from src.scheduled_alerts.repository import ScheduledAlertRepository
from src.scheduled_alerts.schemas import Organization, ScheduledAlert

logger = structlog.get_logger(__name__)


def is_due(alert: ScheduledAlert, now: datetime) -> bool:
    """Pending and scheduled at or before ``now``.

    A missing ``scheduled_date`` counts as due.
    """
    if not alert.is_active:
        return False
    if alert.scheduled_date is None:
        return True
    return alert.scheduled_date <= now


@dataclass
class ScanReport:
    """Due alerts found by one scan plus per-organization bookkeeping."""

    alerts: list[ScheduledAlert] = field(default_factory=list)
    organization_names: dict[str, str] = field(default_factory=dict)
    organizations_scanned: int = 0
    failed_organizations: list[str] = field(default_factory=list)


class DueAlertScanner:
    """Reads pending alerts from the store and filters them by due time."""

    def __init__(
        self,
        repository: ScheduledAlertRepository,
        config: ScheduledAlertConfig | None = None,
    ) -> None:
        self._repo = repository
        self._config = config or ScheduledAlertConfig()

    async def _organizations_in_scope(
        self,
        organization_id: str | None,
    ) -> list[Organization]:
        if organization_id is not None:
            org = await self._repo.get_organization(organization_id)
            if org is None:
                raise OrganizationNotFoundError(organization_id)
            return [org]

        try:
            return await self._repo.list_organizations()
        except Exception as e:
            raise ScanError(f"Failed to list organizations: {e}") from e

    async def scan_with_report(
        self,
        organization_id: str | None = None,
        now: datetime | None = None,
    ) -> ScanReport:
        """Scan for due alerts and report which organizations were read.

        Args:
            organization_id: Limit the scan to one organization.
            now: Reference instant (default: current UTC time).

        Returns:
            ScanReport with due alerts in no particular order.

        Raises:
            OrganizationNotFoundError: ``organization_id`` does not exist.
            ScanError: The organization list itself could not be read.
        """
        now = now or datetime.now(timezone.utc)
        organizations = await self._organizations_in_scope(organization_id)
        semaphore = asyncio.Semaphore(self._config.org_scan_concurrency)
        metrics = get_metrics()

        async def scan_org(org: Organization) -> list[ScheduledAlert] | None:
            async with semaphore:
                try:
                    pending = await self._repo.list_active(org.id, due_before=now)
                except Exception as e:
                    logger.warning(
                        "Skipping organization, scheduled alerts unreadable",
                        organization_id=org.id,
                        error=str(e),
                    )
                    metrics.record_org_scan_failure()
                    return None
            return [alert for alert in pending if is_due(alert, now)]

        results = await asyncio.gather(*(scan_org(org) for org in organizations))

        report = ScanReport()
        for org, due in zip(organizations, results):
            report.organization_names[org.id] = org.name
            if due is None:
                report.failed_organizations.append(org.id)
                continue
            report.organizations_scanned += 1
            report.alerts.extend(due)

        logger.debug(
            "Scan complete",
            organizations=len(organizations),
            failed=len(report.failed_organizations),
            due=len(report.alerts),
        )
        return report

    async def scan(
        self,
        organization_id: str | None = None,
        now: datetime | None = None,
    ) -> list[ScheduledAlert]:
        """Return due alerts only. See :meth:`scan_with_report`."""
        report = await self.scan_with_report(organization_id, now)
        return report.alerts
