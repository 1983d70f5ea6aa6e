"""Device registry: read access to users' push tokens.

Each user row carries at most one ``fcm_token``. It is overwritten on
refresh elsewhere; this module only lists them.
"""

import logging

from src.storage.database import Database

logger = logging.getLogger(__name__)


def normalize_tokens(raw_tokens: list[str | None]) -> list[str]:
    """Drop null and blank tokens and de-duplicate, keeping first-seen order."""
    seen: set[str] = set()
    tokens: list[str] = []
    for token in raw_tokens:
        if token is None:
            continue
        token = token.strip()
        if not token or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


class DeviceRegistry:
    """Lists every registered push token across all users."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_tokens(self) -> list[str]:
        """Return all non-empty device tokens.

        Returns:
            Stripped, de-duplicated tokens in user id order.
        """
        rows = await self._db.fetch(
            "SELECT id, fcm_token FROM users ORDER BY id"
        )
        tokens = normalize_tokens([row["fcm_token"] for row in rows])
        logger.debug(
            "Device registry: %d users, %d usable tokens", len(rows), len(tokens),
        )
        return tokens
