"""Shared fixtures for API tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.auth import verify_api_key
from src.api.dependencies import get_processor, get_scheduled_alert_service
from src.scheduled_alerts.config import ScheduledAlertConfig
from src.scheduled_alerts.processor import ProcessingRun, ScheduledAlertProcessor
from src.scheduled_alerts.schemas import ScheduledAlert
from src.scheduled_alerts.service import ScheduledAlertService


def _make_scheduled_alert(
    alert_id: str = "sched_001",
    title: str = "Water outage",
    **kwargs,
) -> ScheduledAlert:
    """Helper to create a ScheduledAlert with sensible defaults."""
    return ScheduledAlert(
        id=alert_id,
        organization_id=kwargs.pop("organization_id", "springfield_water"),
        organization_name=kwargs.pop("organization_name", "Springfield Water"),
        title=title,
        description=kwargs.pop("description", "Elm St water off until 3pm"),
        type=kwargs.pop("type", "utility"),
        severity=kwargs.pop("severity", "high"),
        scheduled_date=kwargs.pop(
            "scheduled_date", datetime(2026, 3, 14, 9, 30, 0, tzinfo=timezone.utc)
        ),
        **kwargs,
    )


@pytest.fixture
def mock_processor():
    """Mock ScheduledAlertProcessor."""
    processor = AsyncMock(spec=ScheduledAlertProcessor)
    processor.config = ScheduledAlertConfig()
    processor.run = AsyncMock(
        return_value=ProcessingRun(trigger="manual", processed_alerts=["Water outage"])
    )
    processor.get_due_alerts = AsyncMock(return_value=[])
    return processor


@pytest.fixture
def mock_service():
    """Mock ScheduledAlertService."""
    service = AsyncMock(spec=ScheduledAlertService)
    service.create = AsyncMock(return_value=[_make_scheduled_alert()])
    service.duplicate = AsyncMock(return_value=[_make_scheduled_alert()])
    service.update = AsyncMock(return_value=None)
    return service


@pytest.fixture
def client(mock_processor, mock_service):
    """FastAPI TestClient with dependency overrides."""
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_processor] = lambda: mock_processor
    app.dependency_overrides[get_scheduled_alert_service] = lambda: mock_service

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
