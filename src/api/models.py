"""
Pydantic models for API request/response validation.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class ComponentHealth(BaseModel):
    """Health status of a single infrastructure component."""

    status: str = Field(..., description="Component status: healthy or unhealthy")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict | None = Field(default=None, description="Additional details (e.g. error)")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    timestamp: str = Field(..., description="Check time (ISO format)")
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-dependency health",
    )
    triggers: dict[str, str] = Field(
        default_factory=dict,
        description="Registered trigger adapters, by role",
    )
    version: str = Field(default="0.1.0", description="Service version")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error category",
    )


# Scheduled alert models


class LocationModel(BaseModel):
    """Optional geographic location of an alert."""

    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class RecurrencePatternModel(BaseModel):
    """Simple periodic repetition, expanded into sibling alerts at creation."""

    frequency: str = Field(..., description="daily, weekly, monthly or yearly")
    interval: int = Field(default=1, ge=1, le=365, description="Every N periods")
    end_date: datetime | None = Field(default=None, description="Last day (inclusive)")


class ScheduledAlertCreateRequest(BaseModel):
    """Request model for creating a scheduled alert."""

    organization_id: str = Field(..., min_length=1, description="Owning organization")
    organization_name: str = Field(default="", description="Display name (defaults to the organization's)")
    title: str = Field(..., min_length=1, max_length=200, description="Alert title")
    description: str = Field(default="", max_length=5000, description="Notification body")
    type: str = Field(default="", description="Free-form category (weather, utility, ...)")
    severity: str = Field(..., description="low, medium, high or critical")
    scheduled_date: datetime = Field(..., description="When the alert becomes due")
    expires_at: datetime | None = Field(default=None, description="When the delivered alert expires")
    group_id: str | None = Field(default=None, description="Target group (None = whole organization)")
    group_name: str | None = None
    location: LocationModel | None = None
    image_urls: list[str] = Field(default_factory=list)
    is_recurring: bool = False
    recurrence_pattern: RecurrencePatternModel | None = None
    posted_by: str = ""
    posted_by_user_id: str = ""


class ScheduledAlertDuplicateRequest(ScheduledAlertCreateRequest):
    """Request model for creating an alert plus copies on selected days."""

    dates: list[date] = Field(..., min_length=1, description="Days to copy the alert to")


class ScheduledAlertUpdateRequest(BaseModel):
    """Partial edit of content or timing. Unset fields are left alone."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    type: str | None = None
    severity: str | None = None
    scheduled_date: datetime | None = None
    expires_at: datetime | None = None
    group_id: str | None = None
    group_name: str | None = None
    location: LocationModel | None = None
    image_urls: list[str] | None = None


class ScheduledAlertItem(BaseModel):
    """Single scheduled alert record."""

    id: str = Field(..., description="Scheduled alert identifier")
    organization_id: str
    organization_name: str = ""
    group_id: str | None = None
    group_name: str | None = None
    title: str
    description: str = ""
    type: str = ""
    severity: str
    location: dict | None = None
    image_urls: list[str] = Field(default_factory=list)
    scheduled_date: str | None = Field(default=None, description="ISO format")
    expires_at: str | None = None
    is_recurring: bool = False
    recurrence_pattern: dict | None = None
    is_active: bool = Field(..., description="True while pending")
    processed_at: str | None = None
    processed_alert_id: str | None = None
    posted_by: str = ""
    posted_by_user_id: str = ""
    created_at: str | None = None
    updated_at: str | None = None


class ScheduledAlertsResponse(BaseModel):
    """Response model for listing or creating scheduled alerts."""

    alerts: list[ScheduledAlertItem] = Field(..., description="Scheduled alerts")
    total: int = Field(..., description="Number of alerts returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class ProcessResponse(BaseModel):
    """Response of the manual and cron processing endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(..., description="Whether the run completed")
    message: str = Field(default="", description="Human-readable summary")
    processed_count: int = Field(..., alias="processedCount")
    processed_alerts: list[str] = Field(
        default_factory=list,
        alias="processedAlerts",
        description="Titles of alerts materialized by this run",
    )


class ProcessErrorResponse(BaseModel):
    """Error body of the processing endpoints."""

    success: bool = False
    error: str = Field(..., description="Error message")
