"""Notification fanout for newly materialized alerts.

Broadcasts to every registered device token, not only followers of the
alert's organization or group. This mirrors how delivery has always
behaved; narrowing it would change who gets notified.

Delivery problems are logged and counted, never retried, and never
propagate into the processed state of the alert.
"""

import structlog

from src.observability.metrics import get_metrics
from src.scheduled_alerts.devices import DeviceRegistry
from src.scheduled_alerts.gateway import MulticastResult, PushGateway
from src.scheduled_alerts.schemas import ActiveAlert

logger = structlog.get_logger(__name__)


def build_push_data(alert: ActiveAlert) -> dict[str, str]:
    """Data payload attached to the push. Values must all be strings."""
    return {
        "alertId": alert.id or "",
        "organizationId": alert.organization_id,
        "type": alert.type or "",
        "severity": alert.severity or "",
    }


class NotificationFanout:
    """Collects device tokens and sends one multicast per alert."""

    def __init__(self, devices: DeviceRegistry, gateway: PushGateway) -> None:
        self._devices = devices
        self._gateway = gateway

    async def notify(self, alert: ActiveAlert) -> MulticastResult | None:
        """Deliver a push notification for ``alert`` to every device.

        Args:
            alert: Materialized alert (its ``id`` is the global feed id).

        Returns:
            Gateway result, or None when there was nobody to notify.
        """
        tokens = await self._devices.list_tokens()
        if not tokens:
            logger.info("No device tokens registered, skipping push", alert_id=alert.id)
            return None

        result = await self._gateway.send_multicast(
            tokens,
            title=alert.title,
            body=alert.description,
            data=build_push_data(alert),
        )

        get_metrics().record_push_result(result.success_count, result.failure_count)

        if result.failure_count > 0:
            logger.warning(
                "Push partially failed",
                alert_id=alert.id,
                gateway=self._gateway.name,
                success_count=result.success_count,
                failure_count=result.failure_count,
            )
        else:
            logger.info(
                "Push delivered",
                alert_id=alert.id,
                gateway=self._gateway.name,
                success_count=result.success_count,
            )
        return result
