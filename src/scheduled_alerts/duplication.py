"""Sibling generation for duplicated and repeating scheduled alerts.

Neither mechanism is a recurrence engine. Every sibling is an ordinary,
independent ScheduledAlert written up front; processing one never
schedules another.
"""

import calendar
import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from src.scheduled_alerts.schemas import RecurrencePattern, ScheduledAlert


def _add_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _occurrence(start: datetime, frequency: str, steps: int) -> datetime:
    if frequency == "daily":
        return start + timedelta(days=steps)
    if frequency == "weekly":
        return start + timedelta(weeks=steps)
    if frequency == "monthly":
        return _add_months(start, steps)
    if frequency == "yearly":
        return _add_months(start, 12 * steps)
    raise ValueError(f"Unsupported frequency: {frequency}")


def expand_occurrences(
    scheduled_date: datetime,
    pattern: RecurrencePattern,
    limit: int,
) -> list[datetime]:
    """
    Compute the sibling dates of a repeating alert.

    The first occurrence (``scheduled_date`` itself) is not included.
    Monthly and yearly steps are always taken from ``scheduled_date``,
    so a Jan 31 series runs Feb 28/29, Mar 31, Apr 30, ...

    Args:
        scheduled_date: First occurrence.
        pattern: Frequency, interval and optional end date.
        limit: Maximum number of siblings returned.

    Returns:
        Ascending sibling datetimes. With an ``end_date`` the last one
        falls on or before that calendar day.
    """
    end_day = pattern.end_date.date() if pattern.end_date else None
    occurrences: list[datetime] = []
    k = 1
    while len(occurrences) < limit:
        candidate = _occurrence(scheduled_date, pattern.frequency, k * pattern.interval)
        if end_day is not None and candidate.date() > end_day:
            break
        occurrences.append(candidate)
        k += 1
    return occurrences


def _sibling(alert: ScheduledAlert, scheduled_date: datetime) -> ScheduledAlert:
    expires_at = None
    if alert.expires_at is not None and alert.scheduled_date is not None:
        expires_at = alert.expires_at + (scheduled_date - alert.scheduled_date)

    now = datetime.now(timezone.utc)
    return replace(
        alert,
        id=str(uuid.uuid4()),
        scheduled_date=scheduled_date,
        expires_at=expires_at,
        is_recurring=False,
        recurrence_pattern=None,
        is_active=True,
        processed_at=None,
        processed_alert_id=None,
        image_urls=list(alert.image_urls),
        created_at=now,
        updated_at=now,
    )


def duplicate_to_dates(
    alert: ScheduledAlert,
    dates: Iterable[date],
) -> list[ScheduledAlert]:
    """
    Build one copy of ``alert`` per calendar day in ``dates``.

    Each copy keeps the original's hour and minute in the original's own
    timezone and shifts any ``expires_at`` by the same amount. Repeated days
    are collapsed.
    """
    if alert.scheduled_date is None:
        raise ValueError("Cannot duplicate an alert without a scheduled_date")

    start = alert.scheduled_date
    seen: set[date] = set()
    siblings: list[ScheduledAlert] = []
    for day in dates:
        if isinstance(day, datetime):
            day = day.date()
        if day in seen:
            continue
        seen.add(day)
        scheduled = start.replace(
            year=day.year,
            month=day.month,
            day=day.day,
            second=0,
            microsecond=0,
        )
        siblings.append(_sibling(alert, scheduled))
    return siblings


def build_recurrence_siblings(
    alert: ScheduledAlert,
    limit: int,
) -> list[ScheduledAlert]:
    """Independent copies of a repeating alert, one per future occurrence."""
    if not alert.is_recurring or alert.recurrence_pattern is None:
        return []
    if alert.scheduled_date is None:
        return []
    return [
        _sibling(alert, when)
        for when in expand_occurrences(alert.scheduled_date, alert.recurrence_pattern, limit)
    ]
