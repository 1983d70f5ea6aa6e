"""Shared fixtures for scheduled alert pipeline tests."""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.events import RunCompletedPublisher
from src.scheduled_alerts.fanout import NotificationFanout
from src.scheduled_alerts.processor import ScheduledAlertProcessor
from src.scheduled_alerts.repository import EDITABLE_FIELDS
from src.scheduled_alerts.schemas import ActiveAlert, Organization, ScheduledAlert


class InMemoryAlertStore:
    """Alert store fake implementing both repository interfaces.

    ``claim`` yields to the event loop once and then does its
    check-and-set without awaiting, so it is atomic with respect to other
    coroutines exactly like the conditional UPDATE it replaces.
    """

    def __init__(self):
        self.organizations: dict[str, Organization] = {}
        self.scheduled: dict[tuple[str, str], ScheduledAlert] = {}
        self.global_feed: list[ActiveAlert] = []
        self.org_feed: list[ActiveAlert] = []
        self.unreadable_orgs: set[str] = set()
        self.fail_global_write = False
        self.fail_org_feed_write = False
        self.fail_back_reference = False
        self.list_delay = 0.0

    # ── Test setup helpers ──

    def add_organization(self, org_id: str, name: str = "") -> None:
        self.organizations[org_id] = Organization(id=org_id, name=name)

    def add(self, alert: ScheduledAlert) -> ScheduledAlert:
        if alert.organization_id not in self.organizations:
            self.add_organization(alert.organization_id)
        self.scheduled[(alert.organization_id, alert.id)] = alert
        return alert

    def stored(self, alert: ScheduledAlert) -> ScheduledAlert:
        return self.scheduled[(alert.organization_id, alert.id)]

    # ── ScheduledAlertRepository ──

    async def list_organizations(self) -> list[Organization]:
        return list(self.organizations.values())

    async def get_organization(self, organization_id: str) -> Organization | None:
        return self.organizations.get(organization_id)

    async def list_active(self, organization_id, due_before=None):
        await asyncio.sleep(self.list_delay)
        if organization_id in self.unreadable_orgs:
            raise ConnectionError(f"cannot read {organization_id}")
        return [
            replace(alert)
            for (org_id, _), alert in self.scheduled.items()
            if org_id == organization_id
            and alert.is_active
            and (
                due_before is None
                or alert.scheduled_date is None
                or alert.scheduled_date <= due_before
            )
        ]

    async def claim(self, organization_id, alert_id, processed_at) -> bool:
        await asyncio.sleep(0)
        alert = self.scheduled.get((organization_id, alert_id))
        if alert is None or not alert.is_active:
            return False
        alert.is_active = False
        alert.processed_at = processed_at
        return True

    async def set_processed_alert_id(self, organization_id, alert_id, active_alert_id) -> bool:
        if self.fail_back_reference:
            raise ConnectionError("back-reference write failed")
        alert = self.scheduled.get((organization_id, alert_id))
        if alert is None:
            return False
        alert.processed_alert_id = active_alert_id
        return True

    async def create(self, alert: ScheduledAlert) -> ScheduledAlert:
        self.scheduled[(alert.organization_id, alert.id)] = replace(alert)
        return replace(alert)

    async def get(self, organization_id, alert_id):
        alert = self.scheduled.get((organization_id, alert_id))
        return replace(alert) if alert else None

    async def update(self, organization_id, alert_id, changes):
        illegal = set(changes) - EDITABLE_FIELDS
        if illegal:
            raise ValueError(f"Fields not editable: {sorted(illegal)}")
        alert = self.scheduled.get((organization_id, alert_id))
        if alert is None:
            return None
        for name, value in changes.items():
            setattr(alert, name, value)
        alert.updated_at = datetime.now(timezone.utc)
        return replace(alert)

    # ── ActiveAlertRepository ──

    async def create_global(self, alert: ActiveAlert) -> str:
        if self.fail_global_write:
            raise ConnectionError("global feed write failed")
        self.global_feed.append(replace(alert))
        return alert.id

    async def create_for_organization(self, alert: ActiveAlert) -> str:
        if self.fail_org_feed_write:
            raise ConnectionError("organization feed write failed")
        copy = replace(alert, id=str(uuid.uuid4()))
        self.org_feed.append(copy)
        return copy.id


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def config() -> ScheduledAlertConfig:
    return ScheduledAlertConfig(scan_timeout_seconds=5.0, org_scan_concurrency=4)


@pytest.fixture
def mock_fanout():
    fanout = AsyncMock(spec=NotificationFanout)
    fanout.notify = AsyncMock(return_value=None)
    return fanout


@pytest.fixture
def mock_publisher():
    publisher = AsyncMock(spec=RunCompletedPublisher)
    publisher.publish = AsyncMock(return_value=True)
    return publisher


@pytest.fixture
def make_processor(store, mock_fanout, mock_publisher, config):
    """Build processors sharing the same store, like separate runner instances."""

    def _make(**overrides) -> ScheduledAlertProcessor:
        return ScheduledAlertProcessor(
            scheduled_repo=overrides.get("scheduled_repo", store),
            active_repo=overrides.get("active_repo", store),
            fanout=overrides.get("fanout", mock_fanout),
            config=overrides.get("config", config),
            publisher=overrides.get("publisher", mock_publisher),
        )

    return _make


@pytest.fixture
def make_alert():
    """Factory for ScheduledAlerts relative to the current time."""

    def _make(
        title: str = "Water outage",
        organization_id: str = "springfield_water",
        offset: timedelta = timedelta(minutes=-1),
        **kwargs,
    ) -> ScheduledAlert:
        return ScheduledAlert(
            organization_id=organization_id,
            title=title,
            description=kwargs.pop("description", f"{title} details"),
            type=kwargs.pop("type", "utility"),
            severity=kwargs.pop("severity", "high"),
            scheduled_date=kwargs.pop(
                "scheduled_date", datetime.now(timezone.utc) + offset
            ),
            **kwargs,
        )

    return _make
