"""Scheduled alert delivery pipeline.

Components:
- ScheduledAlert / ActiveAlert: Dataclasses for pending and delivered alerts
- ScheduledAlertConfig: Pydantic settings for intervals, timeouts and limits
- ScheduledAlertRepository / ActiveAlertRepository: Alert store access
- DeviceRegistry: Push token lookup
- PushGateway / FCMGateway / LoggingGateway: Push delivery
- DueAlertScanner: Finds due alerts across organizations
- ScheduledAlertProcessor / ProcessingRun: Claim, materialize and fan out
- NotificationFanout: One multicast per materialized alert
- RunCompletedPublisher: Run-completed signal over Redis pub/sub
- PeriodicRunner / ClientPoller / on_scheduled_alert_created: Triggers
- ScheduledAlertService: Create, edit and duplicate scheduled alerts
"""

from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.devices import DeviceRegistry
from src.scheduled_alerts.duplication import duplicate_to_dates, expand_occurrences
from src.scheduled_alerts.events import RunCompletedPublisher
from src.scheduled_alerts.exceptions import (
    MaterializationError,
    OrganizationNotFoundError,
    ScanError,
    ScheduledAlertError,
)
from src.scheduled_alerts.fanout import NotificationFanout
from src.scheduled_alerts.gateway import (
    FCMGateway,
    LoggingGateway,
    MulticastResult,
    PushGateway,
)
from src.scheduled_alerts.processor import ProcessingRun, ScheduledAlertProcessor
from src.scheduled_alerts.repository import (
    ActiveAlertRepository,
    ScheduledAlertRepository,
)
from src.scheduled_alerts.scanner import DueAlertScanner, ScanReport, is_due
from src.scheduled_alerts.schemas import (
    SEVERITY_ORDER,
    VALID_SEVERITIES,
    ActiveAlert,
    Location,
    Organization,
    RecurrencePattern,
    ScheduledAlert,
    build_active_alert,
)
from src.scheduled_alerts.service import ScheduledAlertService
from src.scheduled_alerts.triggers import (
    ClientPoller,
    PeriodicRunner,
    on_scheduled_alert_created,
)

__all__ = [
    "ActiveAlert",
    "ActiveAlertRepository",
    "ClientPoller",
    "DeviceRegistry",
    "DueAlertScanner",
    "FCMGateway",
    "Location",
    "LoggingGateway",
    "MaterializationError",
    "MulticastResult",
    "NotificationFanout",
    "Organization",
    "OrganizationNotFoundError",
    "PeriodicRunner",
    "ProcessingRun",
    "PushGateway",
    "RecurrencePattern",
    "RunCompletedPublisher",
    "SEVERITY_ORDER",
    "ScanError",
    "ScanReport",
    "ScheduledAlert",
    "ScheduledAlertConfig",
    "ScheduledAlertError",
    "ScheduledAlertProcessor",
    "ScheduledAlertRepository",
    "ScheduledAlertService",
    "VALID_SEVERITIES",
    "build_active_alert",
    "duplicate_to_dates",
    "expand_occurrences",
    "is_due",
    "on_scheduled_alert_created",
]
