"""Scheduled alert endpoints: manual processing, due listing and authoring."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from src.api.auth import verify_api_key
from src.api.dependencies import get_processor, get_scheduled_alert_service
from src.api.models import (
    ErrorResponse,
    ProcessErrorResponse,
    ProcessResponse,
    ScheduledAlertCreateRequest,
    ScheduledAlertDuplicateRequest,
    ScheduledAlertItem,
    ScheduledAlertsResponse,
    ScheduledAlertUpdateRequest,
)
from src.scheduled_alerts.exceptions import OrganizationNotFoundError
from src.scheduled_alerts.processor import ScheduledAlertProcessor
from src.scheduled_alerts.schemas import (
    VALID_SEVERITIES,
    Location,
    RecurrencePattern,
    ScheduledAlert,
)
from src.scheduled_alerts.service import ScheduledAlertService

logger = structlog.get_logger(__name__)
router = APIRouter()


def _to_item(alert: ScheduledAlert) -> ScheduledAlertItem:
    return ScheduledAlertItem(**alert.to_dict())


def _to_scheduled_alert(request: ScheduledAlertCreateRequest) -> ScheduledAlert:
    """Build the domain object. Raises ValueError on invalid field values."""
    pattern = None
    if request.is_recurring and request.recurrence_pattern is not None:
        pattern = RecurrencePattern(
            frequency=request.recurrence_pattern.frequency,
            interval=request.recurrence_pattern.interval,
            end_date=request.recurrence_pattern.end_date,
        )

    return ScheduledAlert(
        organization_id=request.organization_id,
        organization_name=request.organization_name,
        title=request.title,
        description=request.description,
        type=request.type,
        severity=request.severity,
        scheduled_date=request.scheduled_date,
        expires_at=request.expires_at,
        group_id=request.group_id,
        group_name=request.group_name,
        location=Location.from_dict(request.location.model_dump()) if request.location else None,
        image_urls=list(request.image_urls),
        is_recurring=pattern is not None,
        recurrence_pattern=pattern,
        posted_by=request.posted_by,
        posted_by_user_id=request.posted_by_user_id,
    )


async def _run_processing(
    processor: ScheduledAlertProcessor,
    trigger: str,
    organization_id: str | None = None,
) -> ProcessResponse | JSONResponse:
    try:
        run = await processor.run(organization_id=organization_id, trigger=trigger)
    except OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error("Scheduled alert processing failed", trigger=trigger, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ProcessErrorResponse(error=str(e)).model_dump(),
        )

    return ProcessResponse(
        success=True,
        message=f"Processed {run.processed_count} scheduled alerts",
        processed_count=run.processed_count,
        processed_alerts=run.processed_alerts,
    )


@router.post(
    "/scheduled-alerts/process",
    response_model=ProcessResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Organization not found"},
        500: {"model": ProcessErrorResponse, "description": "Run failed"},
    },
    summary="Process due scheduled alerts",
    description=(
        "Run the scan/claim/fanout pipeline once, for all organizations or "
        "for one. Safe to call concurrently with any other trigger."
    ),
)
async def process_scheduled_alerts(
    organization_id: str | None = Query(
        default=None,
        description="Limit the run to one organization",
    ),
    api_key: str = Depends(verify_api_key),
    processor: ScheduledAlertProcessor = Depends(get_processor),
):
    return await _run_processing(processor, "manual", organization_id)


@router.post(
    "/scheduled-alerts/cron",
    response_model=ProcessResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ProcessErrorResponse, "description": "Run failed"},
    },
    summary="Process due scheduled alerts (external cron)",
    description="Same as /scheduled-alerts/process for all organizations.",
)
async def cron_process_scheduled_alerts(
    api_key: str = Depends(verify_api_key),
    processor: ScheduledAlertProcessor = Depends(get_processor),
):
    return await _run_processing(processor, "cron")


@router.get(
    "/scheduled-alerts/due",
    response_model=ScheduledAlertsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Organization not found"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List due scheduled alerts",
    description="Alerts that the next run would process. Nothing is claimed.",
)
async def list_due_scheduled_alerts(
    organization_id: str | None = Query(default=None, description="Limit to one organization"),
    api_key: str = Depends(verify_api_key),
    processor: ScheduledAlertProcessor = Depends(get_processor),
) -> ScheduledAlertsResponse:
    start_time = time.perf_counter()

    try:
        alerts = await processor.get_due_alerts(organization_id)
    except OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list due alerts: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list due alerts: {str(e)}",
        )

    latency_ms = (time.perf_counter() - start_time) * 1000
    return ScheduledAlertsResponse(
        alerts=[_to_item(a) for a in alerts],
        total=len(alerts),
        latency_ms=round(latency_ms, 2),
    )


def _validate_severity(severity: str | None) -> None:
    if severity is not None and severity not in VALID_SEVERITIES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Invalid severity {severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            ),
        )


@router.post(
    "/scheduled-alerts",
    response_model=ScheduledAlertsResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Organization not found"},
        422: {"model": ErrorResponse, "description": "Invalid alert"},
    },
    summary="Create a scheduled alert",
    description=(
        "Create a scheduled alert. Repeating alerts create their future "
        "occurrences up front. Alerts due within the lookahead window are "
        "processed immediately."
    ),
)
async def create_scheduled_alert(
    request: ScheduledAlertCreateRequest,
    api_key: str = Depends(verify_api_key),
    service: ScheduledAlertService = Depends(get_scheduled_alert_service),
) -> ScheduledAlertsResponse:
    start_time = time.perf_counter()
    _validate_severity(request.severity)

    try:
        created = await service.create(_to_scheduled_alert(request))
    except OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    latency_ms = (time.perf_counter() - start_time) * 1000
    return ScheduledAlertsResponse(
        alerts=[_to_item(a) for a in created],
        total=len(created),
        latency_ms=round(latency_ms, 2),
    )


@router.post(
    "/scheduled-alerts/duplicate",
    response_model=ScheduledAlertsResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Organization not found"},
        422: {"model": ErrorResponse, "description": "Invalid alert"},
    },
    summary="Create a scheduled alert on several days",
    description="Create the alert plus one copy per selected day at the same time.",
)
async def duplicate_scheduled_alert(
    request: ScheduledAlertDuplicateRequest,
    api_key: str = Depends(verify_api_key),
    service: ScheduledAlertService = Depends(get_scheduled_alert_service),
) -> ScheduledAlertsResponse:
    start_time = time.perf_counter()
    _validate_severity(request.severity)

    try:
        created = await service.duplicate(_to_scheduled_alert(request), request.dates)
    except OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    latency_ms = (time.perf_counter() - start_time) * 1000
    return ScheduledAlertsResponse(
        alerts=[_to_item(a) for a in created],
        total=len(created),
        latency_ms=round(latency_ms, 2),
    )


@router.patch(
    "/scheduled-alerts/{organization_id}/{alert_id}",
    response_model=ScheduledAlertItem,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Scheduled alert not found"},
        422: {"model": ErrorResponse, "description": "Invalid change"},
    },
    summary="Edit a scheduled alert",
    description="Edit content or timing. A processed alert stays processed.",
)
async def update_scheduled_alert(
    organization_id: str,
    alert_id: str,
    request: ScheduledAlertUpdateRequest,
    api_key: str = Depends(verify_api_key),
    service: ScheduledAlertService = Depends(get_scheduled_alert_service),
) -> ScheduledAlertItem:
    changes = request.model_dump(exclude_unset=True)
    _validate_severity(changes.get("severity"))
    if "location" in changes and changes["location"] is not None:
        changes["location"] = Location.from_dict(changes["location"])

    try:
        updated = await service.update(organization_id, alert_id, changes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scheduled alert {alert_id} not found",
        )
    return _to_item(updated)
