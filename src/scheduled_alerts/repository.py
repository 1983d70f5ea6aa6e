"""Alert store repositories.

``ScheduledAlertRepository`` owns the ``scheduled_alerts`` table and the
one conditional write the pipeline depends on: :meth:`claim`.
``ActiveAlertRepository`` writes materialized alerts to the global and
per-organization feeds. Both follow the asyncpg repository pattern used
across the project (SQL strings, ``$n`` params, ``_row_to_*`` helpers).
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from src.scheduled_alerts.schemas import (
    ActiveAlert,
    Location,
    Organization,
    RecurrencePattern,
    ScheduledAlert,
)
from src.storage.database import Database

logger = logging.getLogger(__name__)

# Columns an edit may touch. Lifecycle columns (is_active, processed_at,
# processed_alert_id) are only written by claim/set_processed_alert_id.
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "description",
    "type",
    "severity",
    "location",
    "image_urls",
    "group_id",
    "group_name",
    "scheduled_date",
    "expires_at",
    "is_recurring",
    "recurrence_pattern",
})

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS organizations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    display_name TEXT,
    fcm_token TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS scheduled_alerts (
    organization_id TEXT NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
    id TEXT NOT NULL,
    organization_name TEXT NOT NULL DEFAULT '',
    group_id TEXT,
    group_name TEXT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT '',
    severity TEXT NOT NULL,
    location JSONB,
    image_urls JSONB NOT NULL DEFAULT '[]',
    scheduled_date TIMESTAMPTZ NOT NULL,
    expires_at TIMESTAMPTZ,
    is_recurring BOOLEAN NOT NULL DEFAULT FALSE,
    recurrence_pattern JSONB,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    processed_at TIMESTAMPTZ,
    processed_alert_id TEXT,
    posted_by TEXT NOT NULL DEFAULT '',
    posted_by_user_id TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (organization_id, id)
);

CREATE INDEX IF NOT EXISTS idx_scheduled_alerts_pending
    ON scheduled_alerts (organization_id, scheduled_date)
    WHERE is_active;

CREATE TABLE IF NOT EXISTS organization_alerts (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    organization_name TEXT NOT NULL,
    group_id TEXT,
    group_name TEXT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT '',
    severity TEXT NOT NULL,
    location JSONB,
    image_urls JSONB NOT NULL DEFAULT '[]',
    expires_at TIMESTAMPTZ,
    posted_by TEXT NOT NULL DEFAULT '',
    posted_by_user_id TEXT NOT NULL DEFAULT '',
    source TEXT NOT NULL,
    original_scheduled_alert_id TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    processed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS organization_alert_feed (
    LIKE organization_alerts INCLUDING DEFAULTS,
    PRIMARY KEY (organization_id, id)
);

CREATE INDEX IF NOT EXISTS idx_organization_alerts_created
    ON organization_alerts (created_at DESC);
"""

_ACTIVE_ALERT_COLUMNS = (
    "id, organization_id, organization_name, group_id, group_name, "
    "title, description, type, severity, location, image_urls, expires_at, "
    "posted_by, posted_by_user_id, source, original_scheduled_alert_id, "
    "is_active, processed_at, created_at, updated_at"
)


def _jsonable(value: Any) -> Any:
    """Convert schema objects to plain dicts for JSONB columns."""
    if isinstance(value, (Location, RecurrencePattern)):
        return value.to_dict()
    return value


class ScheduledAlertRepository:
    """Repository for scheduled alert definitions and the claim primitive."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_tables(self) -> None:
        """Create the alert store schema if it doesn't exist."""
        async with self._db.transaction() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Alert store schema ensured")

    # ── Organizations ────────────────────────────────────

    async def list_organizations(self) -> list[Organization]:
        rows = await self._db.fetch("SELECT id, name FROM organizations ORDER BY id")
        return [Organization(id=row["id"], name=row["name"] or "") for row in rows]

    async def get_organization(self, organization_id: str) -> Organization | None:
        row = await self._db.fetchrow(
            "SELECT id, name FROM organizations WHERE id = $1", organization_id,
        )
        if row is None:
            return None
        return Organization(id=row["id"], name=row["name"] or "")

    # ── Scheduled alerts ─────────────────────────────────

    async def create(self, alert: ScheduledAlert) -> ScheduledAlert:
        """Insert a new scheduled alert.

        Args:
            alert: Alert to persist.

        Returns:
            The stored alert as read back from the DB.
        """
        sql = """
            INSERT INTO scheduled_alerts (
                organization_id, id, organization_name, group_id, group_name,
                title, description, type, severity, location, image_urls,
                scheduled_date, expires_at, is_recurring, recurrence_pattern,
                is_active, posted_by, posted_by_user_id, created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                $11, $12, $13, $14, $15, $16, $17, $18, $19, $20
            )
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            alert.organization_id,
            alert.id,
            alert.organization_name,
            alert.group_id,
            alert.group_name,
            alert.title,
            alert.description,
            alert.type,
            alert.severity,
            _jsonable(alert.location),
            list(alert.image_urls),
            alert.scheduled_date or datetime.now(timezone.utc),
            alert.expires_at,
            alert.is_recurring,
            _jsonable(alert.recurrence_pattern),
            alert.is_active,
            alert.posted_by,
            alert.posted_by_user_id,
            alert.created_at,
            alert.updated_at,
        )
        return _row_to_scheduled_alert(row)

    async def get(self, organization_id: str, alert_id: str) -> ScheduledAlert | None:
        row = await self._db.fetchrow(
            "SELECT * FROM scheduled_alerts WHERE organization_id = $1 AND id = $2",
            organization_id,
            alert_id,
        )
        if row is None:
            return None
        return _row_to_scheduled_alert(row)

    async def list_active(
        self,
        organization_id: str,
        due_before: datetime | None = None,
    ) -> list[ScheduledAlert]:
        """List pending alerts for one organization.

        ``due_before`` is a pre-filter only; callers must still check
        ``scheduled_date`` themselves.

        Args:
            organization_id: Organization to read.
            due_before: Optional upper bound on ``scheduled_date``.

        Returns:
            Alerts with ``is_active = TRUE`` ordered by scheduled_date.
        """
        if due_before is None:
            sql = """
                SELECT * FROM scheduled_alerts
                WHERE organization_id = $1 AND is_active = TRUE
                ORDER BY scheduled_date
            """
            rows = await self._db.fetch(sql, organization_id)
        else:
            sql = """
                SELECT * FROM scheduled_alerts
                WHERE organization_id = $1 AND is_active = TRUE
                  AND scheduled_date <= $2
                ORDER BY scheduled_date
            """
            rows = await self._db.fetch(sql, organization_id, due_before)
        return [_row_to_scheduled_alert(row) for row in rows]

    async def update(
        self,
        organization_id: str,
        alert_id: str,
        changes: dict[str, Any],
    ) -> ScheduledAlert | None:
        """Edit content and timing fields of a scheduled alert.

        Uses the dynamic SQL builder with incremental param_idx. Lifecycle
        fields are rejected so an edit can never re-arm a processed alert.

        Args:
            organization_id: Owning organization.
            alert_id: Alert to edit.
            changes: Column → new value, restricted to ``EDITABLE_FIELDS``.

        Returns:
            Updated alert, or None if not found.

        Raises:
            ValueError: If ``changes`` names a non-editable column.
        """
        illegal = set(changes) - EDITABLE_FIELDS
        if illegal:
            raise ValueError(f"Fields not editable: {sorted(illegal)}")
        if not changes:
            return await self.get(organization_id, alert_id)

        assignments: list[str] = []
        params: list[Any] = []
        param_idx = 1
        for column in sorted(changes):
            assignments.append(f"{column} = ${param_idx}")
            params.append(_jsonable(changes[column]))
            param_idx += 1

        sql = f"""
            UPDATE scheduled_alerts
            SET {", ".join(assignments)}, updated_at = NOW()
            WHERE organization_id = ${param_idx} AND id = ${param_idx + 1}
            RETURNING *
        """
        params.extend([organization_id, alert_id])

        row = await self._db.fetchrow(sql, *params)
        if row is None:
            return None
        return _row_to_scheduled_alert(row)

    async def claim(
        self,
        organization_id: str,
        alert_id: str,
        processed_at: datetime,
    ) -> bool:
        """Atomically move a scheduled alert from pending to processed.

        A single conditional UPDATE: the row only changes if ``is_active``
        is still TRUE, so of any number of concurrent callers exactly one
        gets a row back.

        Args:
            organization_id: Owning organization.
            alert_id: Alert to claim.
            processed_at: Timestamp written to ``processed_at``.

        Returns:
            True if this caller won the claim, False if it was already taken.
        """
        sql = """
            UPDATE scheduled_alerts
            SET is_active = FALSE, processed_at = $3
            WHERE organization_id = $1 AND id = $2 AND is_active = TRUE
            RETURNING id
        """
        result = await self._db.fetchval(sql, organization_id, alert_id, processed_at)
        return result is not None

    async def set_processed_alert_id(
        self,
        organization_id: str,
        alert_id: str,
        active_alert_id: str,
    ) -> bool:
        """Store the back-reference to the global ActiveAlert.

        Returns:
            True if updated, False if the alert no longer exists.
        """
        sql = """
            UPDATE scheduled_alerts
            SET processed_alert_id = $3, updated_at = NOW()
            WHERE organization_id = $1 AND id = $2
            RETURNING id
        """
        result = await self._db.fetchval(sql, organization_id, alert_id, active_alert_id)
        return result is not None


class ActiveAlertRepository:
    """Writes materialized alerts to both read paths.

    The two inserts are independent statements. A failure between them
    leaves the alert visible in the global feed only.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def _insert(self, table: str, alert: ActiveAlert, alert_id: str) -> str:
        sql = f"""
            INSERT INTO {table} ({_ACTIVE_ALERT_COLUMNS})
            VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                $11, $12, $13, $14, $15, $16, $17, $18, $19, $20
            )
            RETURNING id
        """
        return await self._db.fetchval(
            sql,
            alert_id,
            alert.organization_id,
            alert.organization_name,
            alert.group_id,
            alert.group_name,
            alert.title,
            alert.description,
            alert.type,
            alert.severity,
            _jsonable(alert.location),
            list(alert.image_urls),
            alert.expires_at,
            alert.posted_by,
            alert.posted_by_user_id,
            alert.source,
            alert.original_scheduled_alert_id,
            alert.is_active,
            alert.processed_at,
            alert.created_at,
            alert.updated_at,
        )

    async def create_global(self, alert: ActiveAlert) -> str:
        """Insert into the cross-organization feed. Returns the row id."""
        return await self._insert("organization_alerts", alert, alert.id)

    async def create_for_organization(self, alert: ActiveAlert) -> str:
        """Insert the org-scoped copy under its own id. Returns that id."""
        return await self._insert("organization_alert_feed", alert, str(uuid.uuid4()))


def _row_to_scheduled_alert(row: Any) -> ScheduledAlert:
    """Convert an asyncpg Record to a ScheduledAlert."""
    data = dict(row)
    for column in ("location", "recurrence_pattern", "image_urls"):
        if isinstance(data.get(column), str):
            data[column] = json.loads(data[column])
    return ScheduledAlert.from_dict(data)
