"""Push gateway implementations for alert fan-out.

Provides an ABC for multicast push delivery plus a Firebase Cloud
Messaging implementation over the FCM HTTP v1 API. FCM v1 has no
multicast endpoint, so ``FCMGateway`` sends one request per token
concurrently and folds the outcomes into a ``MulticastResult``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


@dataclass
class MulticastResult:
    """Outcome of one multicast send as reported by the gateway."""

    success_count: int = 0
    failure_count: int = 0
    failed_tokens: list[str] = field(default_factory=list)


class PushGateway(ABC):
    """Abstract base for push notification fan-out."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this gateway (e.g. 'fcm')."""

    @abstractmethod
    async def send_multicast(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> MulticastResult:
        """Send one notification to every token.

        Args:
            tokens: Device tokens to deliver to.
            title: Notification title.
            body: Notification body.
            data: String-valued data payload.

        Returns:
            Success/failure counts. Per-token failures never raise.
        """


class FCMGateway(PushGateway):
    """Delivers notifications through the FCM HTTP v1 API.

    Holds a long-lived ``httpx.AsyncClient``; call :meth:`close` on
    shutdown. The OAuth2 access token is supplied by configuration.
    """

    def __init__(
        self,
        project_id: str,
        access_token: str,
        timeout: float = 10.0,
        max_concurrency: int = 20,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = FCM_SEND_URL.format(project_id=project_id)
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        return "fcm"

    @staticmethod
    def _build_message(
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> dict:
        return {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": data,
            }
        }

    async def _send_one(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> bool:
        payload = self._build_message(token, title, body, data)
        async with self._semaphore:
            try:
                resp = await self._client.post(
                    self._url, json=payload, headers=self._headers,
                )
            except httpx.TimeoutException:
                logger.warning("FCM send timed out for token %s...", token[:12])
                return False
            except httpx.HTTPError as e:
                logger.warning("FCM send failed for token %s...: %s", token[:12], e)
                return False

        if resp.is_success:
            return True
        logger.warning(
            "FCM returned %d for token %s...", resp.status_code, token[:12],
        )
        return False

    async def send_multicast(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> MulticastResult:
        outcomes = await asyncio.gather(
            *(self._send_one(token, title, body, data) for token in tokens)
        )
        result = MulticastResult()
        for token, ok in zip(tokens, outcomes):
            if ok:
                result.success_count += 1
            else:
                result.failure_count += 1
                result.failed_tokens.append(token)
        return result

    async def close(self) -> None:
        await self._client.aclose()


class LoggingGateway(PushGateway):
    """Dry-run gateway used when FCM credentials are not configured."""

    @property
    def name(self) -> str:
        return "log"

    async def send_multicast(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> MulticastResult:
        logger.info(
            "[DRY RUN] Push to %d devices: %s (alertId=%s)",
            len(tokens), title, data.get("alertId", ""),
        )
        return MulticastResult(success_count=len(tokens))
