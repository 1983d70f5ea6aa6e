"""
Dependency injection for FastAPI endpoints.
"""

import redis.asyncio as redis

from src.config.settings import get_settings
from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.events import RunCompletedPublisher
from src.scheduled_alerts.factory import build_processor, build_push_gateway
from src.scheduled_alerts.gateway import FCMGateway, PushGateway
from src.scheduled_alerts.processor import ScheduledAlertProcessor
from src.scheduled_alerts.repository import ScheduledAlertRepository
from src.scheduled_alerts.service import ScheduledAlertService
from src.storage.database import Database, close_database
from src.storage.database import get_database as get_shared_database

# Global instances (initialized on first request)
_redis_client: redis.Redis | None = None
_gateway: PushGateway | None = None
_publisher: RunCompletedPublisher | None = None
_processor: ScheduledAlertProcessor | None = None
_service: ScheduledAlertService | None = None


def _get_or_create_redis() -> redis.Redis:
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def get_database() -> Database:
    """Get the shared, connected Database."""
    return await get_shared_database()


async def get_scheduled_alert_repository() -> ScheduledAlertRepository:
    return ScheduledAlertRepository(await get_database())


async def get_run_publisher() -> RunCompletedPublisher:
    global _publisher

    if _publisher is None:
        config = ScheduledAlertConfig()
        _publisher = RunCompletedPublisher(
            redis_client=_get_or_create_redis(),
            channel=config.broadcast_channel,
        )

    return _publisher


async def get_processor() -> ScheduledAlertProcessor:
    """
    Get the scheduled alert processor.

    Creates a singleton wired to the shared database, push gateway and
    run-completed publisher.
    """
    global _processor, _gateway

    if _processor is None:
        config = ScheduledAlertConfig()
        if _gateway is None:
            _gateway = build_push_gateway(config)
        _processor = build_processor(
            await get_database(),
            _gateway,
            publisher=await get_run_publisher(),
            config=config,
        )

    return _processor


async def get_scheduled_alert_service() -> ScheduledAlertService:
    global _service

    if _service is None:
        processor = await get_processor()
        _service = ScheduledAlertService(
            repository=await get_scheduled_alert_repository(),
            processor=processor,
            config=processor.config,
        )

    return _service


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _redis_client, _gateway, _publisher, _processor, _service

    if _processor is not None:
        await _processor.drain()

    _service = None
    _processor = None
    _publisher = None

    if isinstance(_gateway, FCMGateway):
        await _gateway.close()
    _gateway = None

    await close_database()

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
