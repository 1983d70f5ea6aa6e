"""
API authentication using X-API-KEY header.

The manual and cron processing endpoints are meant to be called by
operators and external schedulers, so they share the same key check.
"""

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.config.settings import get_settings

# API key header scheme
api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


def parse_api_keys(raw: str | None) -> list[str]:
    """Split the comma-separated API_KEYS setting, dropping blanks."""
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify API key from X-API-KEY header.

    With no keys configured every request is allowed (dev mode).

    Raises:
        HTTPException: 401 if the key is missing or unknown.
    """
    valid_keys = parse_api_keys(get_settings().api_keys)
    if not valid_keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )

    if not any(secrets.compare_digest(api_key, key) for key in valid_keys):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key
