"""Schema definitions for scheduled and materialized alerts.

``ScheduledAlert`` maps 1:1 to the ``scheduled_alerts`` table: a
time-deferred alert definition owned by one organization. Once claimed it
is materialized into an ``ActiveAlert``, which is written twice: to the
global ``organization_alerts`` feed and to the per-organization
``organization_alert_feed``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

AlertSeverity = Literal["low", "medium", "high", "critical"]

SEVERITY_ORDER: dict[str, int] = {
    "low": 0,
    "medium": 1,
    "high": 2,
    "critical": 3,
}

VALID_SEVERITIES: frozenset[str] = frozenset(SEVERITY_ORDER)

RecurrenceFrequency = Literal["daily", "weekly", "monthly", "yearly"]

VALID_FREQUENCIES: frozenset[str] = frozenset({
    "daily",
    "weekly",
    "monthly",
    "yearly",
})

ACTIVE_ALERT_SOURCE = "scheduled"
UNKNOWN_ORGANIZATION = "Unknown Organization"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; leave aware ones untouched."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return ensure_utc(value)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class Organization:
    """Tenant that owns scheduled alerts. Opaque beyond id and name."""

    id: str
    name: str = ""


@dataclass
class Location:
    """Structured street address attached to an alert."""

    latitude: float = 0.0
    longitude: float = 0.0
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Location | None":
        if not data:
            return None
        return cls(
            latitude=float(data.get("latitude") or 0.0),
            longitude=float(data.get("longitude") or 0.0),
            address=data.get("address") or "",
            city=data.get("city") or "",
            state=data.get("state") or "",
            zip_code=data.get("zip_code") or data.get("zipCode") or "",
        )


@dataclass
class RecurrencePattern:
    """Simple periodic repetition: every ``interval`` units of ``frequency``.

    Occurrences are expanded into sibling ScheduledAlert rows at creation
    time (see ``duplication.expand_occurrences``); nothing downstream of
    the store interprets the pattern.
    """

    frequency: str
    interval: int = 1
    end_date: datetime | None = None

    def __post_init__(self) -> None:
        if self.frequency not in VALID_FREQUENCIES:
            raise ValueError(
                f"Invalid frequency {self.frequency!r}. "
                f"Must be one of: {sorted(VALID_FREQUENCIES)}"
            )
        if self.interval < 1:
            raise ValueError(f"interval must be >= 1, got {self.interval}")
        self.end_date = ensure_utc(self.end_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency": self.frequency,
            "interval": self.interval,
            "end_date": _isoformat(self.end_date),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RecurrencePattern | None":
        # Empty dicts are what older clients stored for "no pattern"
        if not data or not data.get("frequency"):
            return None
        return cls(
            frequency=data["frequency"],
            interval=int(data.get("interval") or 1),
            end_date=_parse_datetime(data.get("end_date") or data.get("endDate")),
        )


@dataclass
class ScheduledAlert:
    """A time-deferred alert definition awaiting materialization.

    Attributes:
        organization_id: Owning organization.
        title: Short human-readable summary.
        description: Notification body.
        type: Free-form category tag (weather, utility, ...).
        severity: One of low, medium, high, critical.
        scheduled_date: When the alert becomes due. ``None`` is treated
            as "due now" by the scanner.
        id: UUID4 identifier, unique within the organization.
        is_active: True until claimed; flips to False exactly once.
        processed_at: Set by the claim.
        processed_alert_id: Global ActiveAlert id, set after materialization.
    """

    organization_id: str
    title: str
    description: str
    type: str
    severity: str
    scheduled_date: datetime | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    organization_name: str = ""
    group_id: str | None = None
    group_name: str | None = None
    location: Location | None = None
    image_urls: list[str] = field(default_factory=list)
    expires_at: datetime | None = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    is_active: bool = True
    processed_at: datetime | None = None
    processed_alert_id: str | None = None
    posted_by: str = ""
    posted_by_user_id: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )
        self.scheduled_date = ensure_utc(self.scheduled_date)
        self.expires_at = ensure_utc(self.expires_at)
        self.processed_at = ensure_utc(self.processed_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def time_until_scheduled(self, now: datetime | None = None) -> timedelta:
        """Signed time until ``scheduled_date`` (negative once overdue)."""
        now = now or _utcnow()
        if self.scheduled_date is None:
            return timedelta(0)
        return self.scheduled_date - now

    def is_upcoming(self, now: datetime | None = None) -> bool:
        return self.time_until_scheduled(now) > timedelta(0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
            "group_id": self.group_id,
            "group_name": self.group_name,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "severity": self.severity,
            "location": self.location.to_dict() if self.location else None,
            "image_urls": list(self.image_urls),
            "scheduled_date": _isoformat(self.scheduled_date),
            "expires_at": _isoformat(self.expires_at),
            "is_recurring": self.is_recurring,
            "recurrence_pattern": (
                self.recurrence_pattern.to_dict() if self.recurrence_pattern else None
            ),
            "is_active": self.is_active,
            "processed_at": _isoformat(self.processed_at),
            "processed_alert_id": self.processed_alert_id,
            "posted_by": self.posted_by,
            "posted_by_user_id": self.posted_by_user_id,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledAlert":
        """Create a ScheduledAlert from a dictionary or DB row mapping.

        Args:
            data: Mapping with alert fields.

        Returns:
            ScheduledAlert instance.
        """
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            organization_id=data["organization_id"],
            organization_name=data.get("organization_name") or "",
            group_id=data.get("group_id") or None,
            group_name=data.get("group_name") or None,
            title=data["title"],
            description=data.get("description") or "",
            type=data.get("type") or "",
            severity=data["severity"],
            location=Location.from_dict(data.get("location")),
            image_urls=list(data.get("image_urls") or []),
            scheduled_date=_parse_datetime(data.get("scheduled_date")),
            expires_at=_parse_datetime(data.get("expires_at")),
            is_recurring=bool(data.get("is_recurring", False)),
            recurrence_pattern=RecurrencePattern.from_dict(data.get("recurrence_pattern")),
            is_active=bool(data.get("is_active", True)),
            processed_at=_parse_datetime(data.get("processed_at")),
            processed_alert_id=data.get("processed_alert_id") or None,
            posted_by=data.get("posted_by") or "",
            posted_by_user_id=data.get("posted_by_user_id") or "",
            created_at=_parse_datetime(data.get("created_at")) or _utcnow(),
            updated_at=_parse_datetime(data.get("updated_at")) or _utcnow(),
        )


@dataclass
class ActiveAlert:
    """A delivered alert produced from exactly one claimed ScheduledAlert.

    ``is_active`` here means "currently visible", not "pending".
    """

    organization_id: str
    title: str
    description: str
    type: str
    severity: str
    original_scheduled_alert_id: str
    processed_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    organization_name: str = UNKNOWN_ORGANIZATION
    group_id: str | None = None
    group_name: str | None = None
    location: Location | None = None
    image_urls: list[str] = field(default_factory=list)
    expires_at: datetime | None = None
    posted_by: str = ""
    posted_by_user_id: str = ""
    source: str = ACTIVE_ALERT_SOURCE
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
            "group_id": self.group_id,
            "group_name": self.group_name,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "severity": self.severity,
            "location": self.location.to_dict() if self.location else None,
            "image_urls": list(self.image_urls),
            "expires_at": _isoformat(self.expires_at),
            "posted_by": self.posted_by,
            "posted_by_user_id": self.posted_by_user_id,
            "source": self.source,
            "original_scheduled_alert_id": self.original_scheduled_alert_id,
            "is_active": self.is_active,
            "processed_at": _isoformat(self.processed_at),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


def build_active_alert(
    scheduled: ScheduledAlert,
    organization_name: str | None = None,
    processed_at: datetime | None = None,
) -> ActiveAlert:
    """Map a claimed ScheduledAlert onto its ActiveAlert payload.

    Pure function: no I/O. Missing location and expiry stay ``None``,
    missing images become an empty list, and a blank organization name
    falls back to ``UNKNOWN_ORGANIZATION``.
    """
    processed_at = ensure_utc(processed_at) or _utcnow()
    return ActiveAlert(
        organization_id=scheduled.organization_id,
        organization_name=(
            organization_name or scheduled.organization_name or UNKNOWN_ORGANIZATION
        ),
        group_id=scheduled.group_id or None,
        group_name=scheduled.group_name or None,
        title=scheduled.title,
        description=scheduled.description,
        type=scheduled.type,
        severity=scheduled.severity,
        location=scheduled.location or None,
        image_urls=list(scheduled.image_urls or []),
        expires_at=scheduled.expires_at or None,
        posted_by=scheduled.posted_by,
        posted_by_user_id=scheduled.posted_by_user_id,
        original_scheduled_alert_id=scheduled.id,
        processed_at=processed_at,
        created_at=processed_at,
        updated_at=processed_at,
    )
