"""Wiring helpers shared by the API dependencies and the CLI."""

import structlog

from src.config.settings import get_settings
from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.devices import DeviceRegistry
from src.scheduled_alerts.events import RunCompletedPublisher
from src.scheduled_alerts.fanout import NotificationFanout
from src.scheduled_alerts.gateway import FCMGateway, LoggingGateway, PushGateway
from src.scheduled_alerts.processor import ScheduledAlertProcessor
from src.scheduled_alerts.repository import (
    ActiveAlertRepository,
    ScheduledAlertRepository,
)
from src.storage.database import Database

logger = structlog.get_logger(__name__)


def build_push_gateway(config: ScheduledAlertConfig | None = None) -> PushGateway:
    """FCM when credentials are configured, otherwise a dry-run gateway."""
    settings = get_settings()
    config = config or ScheduledAlertConfig()

    if not settings.fcm_configured:
        logger.warning("FCM credentials not configured, push runs in dry-run mode")
        return LoggingGateway()

    return FCMGateway(
        project_id=settings.fcm_project_id,
        access_token=settings.fcm_access_token,
        timeout=config.fcm_timeout_seconds,
        max_concurrency=config.fcm_max_concurrency,
    )


def build_processor(
    database: Database,
    gateway: PushGateway,
    publisher: RunCompletedPublisher | None = None,
    config: ScheduledAlertConfig | None = None,
) -> ScheduledAlertProcessor:
    """Wire a processor and its collaborators over one database."""
    config = config or ScheduledAlertConfig()
    return ScheduledAlertProcessor(
        scheduled_repo=ScheduledAlertRepository(database),
        active_repo=ActiveAlertRepository(database),
        fanout=NotificationFanout(DeviceRegistry(database), gateway),
        config=config,
        publisher=publisher,
    )
