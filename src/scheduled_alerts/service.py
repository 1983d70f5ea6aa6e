"""
Scheduled alert authoring: create, edit and duplicate.

Creation writes every row first and only then runs the creation hook,
so a hook failure can never lose a created alert.
"""

from collections.abc import Iterable
from datetime import date, datetime, timezone
from typing import Any

import structlog

from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.duplication import build_recurrence_siblings, duplicate_to_dates
from src.scheduled_alerts.exceptions import OrganizationNotFoundError
from src.scheduled_alerts.processor import ScheduledAlertProcessor
from src.scheduled_alerts.repository import ScheduledAlertRepository
from src.scheduled_alerts.schemas import ScheduledAlert
from src.scheduled_alerts.triggers import on_scheduled_alert_created

logger = structlog.get_logger(__name__)


class ScheduledAlertService:
    """Authoring operations over ScheduledAlertRepository."""

    def __init__(
        self,
        repository: ScheduledAlertRepository,
        processor: ScheduledAlertProcessor | None = None,
        config: ScheduledAlertConfig | None = None,
    ):
        self._repo = repository
        self._processor = processor
        self._config = config or (processor.config if processor else ScheduledAlertConfig())

    async def _prepare(self, alert: ScheduledAlert) -> ScheduledAlert:
        org = await self._repo.get_organization(alert.organization_id)
        if org is None:
            raise OrganizationNotFoundError(alert.organization_id)
        if not alert.organization_name:
            alert.organization_name = org.name
        if alert.scheduled_date is None:
            alert.scheduled_date = datetime.now(timezone.utc)
        alert.is_active = True
        alert.processed_at = None
        alert.processed_alert_id = None
        return alert

    async def _persist_all(self, alerts: list[ScheduledAlert]) -> list[ScheduledAlert]:
        created = [await self._repo.create(alert) for alert in alerts]
        for alert in created:
            if self._processor is not None:
                await on_scheduled_alert_created(
                    self._processor,
                    alert,
                    lookahead_seconds=self._config.creation_lookahead_seconds,
                )
        return created

    async def create(self, alert: ScheduledAlert) -> list[ScheduledAlert]:
        """
        Create a scheduled alert, plus its siblings when it repeats.

        Args:
            alert: New alert. Lifecycle fields are reset to pending.

        Returns:
            Created alerts, the original first.

        Raises:
            OrganizationNotFoundError: The owning organization does not exist.
        """
        alert = await self._prepare(alert)
        siblings = build_recurrence_siblings(alert, self._config.max_occurrences)
        created = await self._persist_all([alert, *siblings])

        logger.info(
            "Scheduled alert created",
            scheduled_alert_id=created[0].id,
            organization_id=alert.organization_id,
            scheduled_date=alert.scheduled_date.isoformat(),
            siblings=len(siblings),
        )
        return created

    async def duplicate(
        self,
        alert: ScheduledAlert,
        dates: Iterable[date],
    ) -> list[ScheduledAlert]:
        """Create ``alert`` and one copy per selected day. Original first."""
        alert = await self._prepare(alert)
        copies = duplicate_to_dates(alert, dates)
        if not copies:
            raise ValueError("Select at least one date to duplicate the alert to")

        created = await self._persist_all([alert, *copies])
        logger.info(
            "Scheduled alert duplicated",
            scheduled_alert_id=created[0].id,
            copies=len(copies),
        )
        return created

    async def update(
        self,
        organization_id: str,
        alert_id: str,
        changes: dict[str, Any],
    ) -> ScheduledAlert | None:
        """Edit content or timing. A processed alert stays processed."""
        updated = await self._repo.update(organization_id, alert_id, changes)
        if updated is not None:
            logger.info(
                "Scheduled alert updated",
                scheduled_alert_id=alert_id,
                fields=sorted(changes),
            )
        return updated
