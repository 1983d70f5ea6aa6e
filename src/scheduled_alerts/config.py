"""Scheduled alert pipeline configuration.

Controls trigger intervals, the creation-hook lookahead window, the
per-run timeout and push gateway limits. All settings can be overridden
via ``SCHEDULED_ALERTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScheduledAlertConfig(BaseSettings):
    """Configuration for scanning, claiming and delivering scheduled alerts."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULED_ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Trigger adapters
    runner_interval_seconds: float = Field(
        default=60.0,
        ge=1.0,
        description="Seconds between periodic runner ticks",
    )
    poller_interval_seconds: float = Field(
        default=120.0,
        ge=1.0,
        description="Seconds between client poller timer ticks",
    )
    creation_lookahead_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Creation hook processes a new alert only if due within this window",
    )
    scan_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Upper bound on one full scan/claim/fanout run",
    )

    # Scanner
    org_scan_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Organizations read in parallel during a scan",
    )

    # Push gateway
    fcm_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="HTTP timeout for a single push send",
    )
    fcm_max_concurrency: int = Field(
        default=20,
        ge=1,
        description="Concurrent per-token sends in one multicast",
    )

    # Run-completed signal
    broadcast_channel: str = Field(
        default="scheduled_alerts:processed",
        description="Redis pub/sub channel for run-completed events",
    )

    # Repetition
    max_occurrences: int = Field(
        default=52,
        ge=1,
        le=366,
        description="Cap on sibling rows created for one recurring alert",
    )
