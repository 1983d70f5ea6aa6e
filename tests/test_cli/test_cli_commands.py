"""Tests for alert-scheduler CLI commands."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from src.cli import main
from src.scheduled_alerts.exceptions import OrganizationNotFoundError, ScanError
from src.scheduled_alerts.gateway import LoggingGateway
from src.scheduled_alerts.processor import ProcessingRun


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


def _mock_db(healthy: bool = True):
    """Create a mock Database."""
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    db.health_check = AsyncMock(return_value=healthy)
    return db


def _mock_processor(run: ProcessingRun | None = None, error: Exception | None = None):
    processor = AsyncMock()
    if error is not None:
        processor.run = AsyncMock(side_effect=error)
    else:
        processor.run = AsyncMock(return_value=run or ProcessingRun(trigger="manual"))
    return processor


def _make_due_alert(title="Water outage", severity="high"):
    return MagicMock(
        title=title,
        severity=severity,
        organization_id="springfield_water",
        scheduled_date=datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc),
        created_at=datetime(2026, 3, 13, 8, 0, tzinfo=timezone.utc),
    )


# ── process-once ─────────────────────────────────────────


class TestProcessOnce:
    """Tests for `process-once` command."""

    def test_prints_results(self, runner):
        run = ProcessingRun(
            trigger="manual",
            processed_alerts=["Water outage", "Road closure"],
            organizations_scanned=3,
            claims_lost=1,
        )
        processor = _mock_processor(run)

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.factory.build_push_gateway", return_value=LoggingGateway()), \
             patch("src.scheduled_alerts.factory.build_processor", return_value=processor):
            result = runner.invoke(main, ["process-once"])

        assert result.exit_code == 0
        assert "Processing Results (all):" in result.output
        assert "Processed:              2" in result.output
        assert "Organizations scanned:  3" in result.output
        assert "Claims lost:            1" in result.output
        assert "- Water outage" in result.output
        processor.run.assert_awaited_once_with(
            organization_id=None, trigger="manual", timeout=None,
        )
        processor.drain.assert_awaited_once()

    def test_organization_and_timeout(self, runner):
        run = ProcessingRun(trigger="manual", scope="organization", organization_id="springfield_water")
        processor = _mock_processor(run)

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.factory.build_push_gateway", return_value=LoggingGateway()), \
             patch("src.scheduled_alerts.factory.build_processor", return_value=processor):
            result = runner.invoke(
                main,
                ["process-once", "--organization", "springfield_water", "--timeout", "5"],
            )

        assert result.exit_code == 0
        assert "Processing Results (organization):" in result.output
        processor.run.assert_awaited_once_with(
            organization_id="springfield_water", trigger="manual", timeout=5.0,
        )

    def test_errors_listed(self, runner):
        run = ProcessingRun(trigger="manual", errors=["sched_9: global feed write failed"])

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.factory.build_push_gateway", return_value=LoggingGateway()), \
             patch("src.scheduled_alerts.factory.build_processor", return_value=_mock_processor(run)):
            result = runner.invoke(main, ["process-once"])

        assert result.exit_code == 0
        assert "sched_9: global feed write failed" in result.output

    def test_unknown_organization_exits_1(self, runner):
        db = _mock_db()
        processor = _mock_processor(error=OrganizationNotFoundError("ghost_town"))

        with patch("src.storage.database.Database", return_value=db), \
             patch("src.scheduled_alerts.factory.build_push_gateway", return_value=LoggingGateway()), \
             patch("src.scheduled_alerts.factory.build_processor", return_value=processor):
            result = runner.invoke(main, ["process-once", "--organization", "ghost_town"])

        assert result.exit_code == 1
        assert "Run failed: Organization not found: ghost_town" in result.output
        processor.drain.assert_awaited_once()
        db.close.assert_awaited_once()


# ── due ──────────────────────────────────────────────────


class TestDue:
    """Tests for `due` command."""

    def test_no_due_alerts(self, runner):
        scanner = AsyncMock()
        scanner.scan = AsyncMock(return_value=[])

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.scanner.DueAlertScanner", return_value=scanner):
            result = runner.invoke(main, ["due"])

        assert result.exit_code == 0
        assert "No due scheduled alerts" in result.output

    def test_lists_due_alerts(self, runner):
        scanner = AsyncMock()
        scanner.scan = AsyncMock(return_value=[_make_due_alert()])

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.scanner.DueAlertScanner", return_value=scanner):
            result = runner.invoke(main, ["due", "--organization", "springfield_water"])

        assert result.exit_code == 0
        assert "Due scheduled alerts: 1" in result.output
        assert "[high] Water outage (springfield_water) due 2026-03-14T09:30:00+00:00" in result.output
        scanner.scan.assert_awaited_once_with("springfield_water")

    def test_scan_failure_exits_1(self, runner):
        scanner = AsyncMock()
        scanner.scan = AsyncMock(side_effect=ScanError("Failed to list organizations: down"))

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.scanner.DueAlertScanner", return_value=scanner):
            result = runner.invoke(main, ["due"])

        assert result.exit_code == 1
        assert "Scan failed" in result.output


# ── init-db / health ─────────────────────────────────────


class TestInitDb:

    def test_creates_tables(self, runner):
        repo = AsyncMock()

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.scheduled_alerts.repository.ScheduledAlertRepository", return_value=repo):
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "Database initialized successfully" in result.output
        repo.create_tables.assert_awaited_once()


class TestHealth:

    def _redis(self, healthy: bool = True):
        client = AsyncMock()
        if healthy:
            client.ping = AsyncMock(return_value=True)
        else:
            client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        client.aclose = AsyncMock()
        return client

    def test_all_healthy(self, runner):
        with patch("redis.asyncio.from_url", return_value=self._redis()), \
             patch("src.storage.database.Database", return_value=_mock_db()):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "postgres: True" in result.output
        assert "push mode:" in result.output

    def test_redis_down_is_not_fatal(self, runner):
        with patch("redis.asyncio.from_url", return_value=self._redis(healthy=False)), \
             patch("src.storage.database.Database", return_value=_mock_db()):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "redis: False" in result.output

    def test_postgres_down_exits_1(self, runner):
        with patch("redis.asyncio.from_url", return_value=self._redis()), \
             patch("src.storage.database.Database", return_value=_mock_db(healthy=False)):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "Some services unhealthy!" in result.output
