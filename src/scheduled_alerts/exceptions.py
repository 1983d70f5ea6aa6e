"""Exceptions raised by the scheduled alert pipeline.

Claim races are deliberately absent: losing a claim is an expected
outcome, reported as ``None`` rather than raised.
"""


class ScheduledAlertError(Exception):
    """Base class for pipeline errors."""


class OrganizationNotFoundError(ScheduledAlertError):
    """An organization-scoped run named an organization that does not exist."""

    def __init__(self, organization_id: str) -> None:
        super().__init__(f"Organization not found: {organization_id}")
        self.organization_id = organization_id


class ScanError(ScheduledAlertError):
    """The scan could not start (e.g. the organization list was unreadable)."""


class MaterializationError(ScheduledAlertError):
    """The global ActiveAlert write failed after a successful claim.

    The ScheduledAlert stays claimed; it is not re-queued.
    """

    def __init__(self, scheduled_alert_id: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to materialize scheduled alert {scheduled_alert_id}: {cause}"
        )
        self.scheduled_alert_id = scheduled_alert_id
        self.cause = cause
