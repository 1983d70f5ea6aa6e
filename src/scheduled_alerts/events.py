"""Run-completed signal.

After a pipeline run that materialized at least one alert, a
``scheduled_alerts_processed`` event is published on a Redis pub/sub
channel (so any API worker can tell its clients to refresh) and handed
to in-process listeners. Runs that processed nothing stay silent.
"""

import inspect
import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

EVENT_TYPE = "scheduled_alerts_processed"

RunListener = Callable[[dict[str, Any]], Awaitable[None] | None]


def build_event(processed_alerts: list[str]) -> dict[str, Any]:
    return {
        "type": EVENT_TYPE,
        "processedAlerts": list(processed_alerts),
        "processedCount": len(processed_alerts),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class RunCompletedPublisher:
    """Publishes run-completed events to Redis and local listeners."""

    def __init__(
        self,
        redis_client: Any | None = None,
        channel: str = "scheduled_alerts:processed",
    ) -> None:
        self._redis = redis_client
        self._channel = channel
        self._listeners: list[RunListener] = []

    @property
    def channel(self) -> str:
        return self._channel

    def add_listener(self, listener: RunListener) -> None:
        """Register a callable invoked with each event payload."""
        self._listeners.append(listener)

    def remove_listener(self, listener: RunListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, processed_alerts: list[str]) -> bool:
        """Emit the event if anything was processed.

        Listener and Redis failures are logged and do not propagate.

        Args:
            processed_alerts: Titles processed by the run.

        Returns:
            True if the event was emitted.
        """
        if not processed_alerts:
            return False

        event = build_event(processed_alerts)

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning("Run-completed listener failed", error=str(e))

        if self._redis is not None:
            try:
                await self._redis.publish(self._channel, json.dumps(event))
            except Exception as e:
                logger.warning(
                    "Failed to publish run-completed event",
                    channel=self._channel,
                    error=str(e),
                )

        logger.info("Run-completed event emitted", processed_count=len(processed_alerts))
        return True
