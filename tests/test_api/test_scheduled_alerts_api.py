"""Tests for scheduled alert endpoints."""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.dependencies import get_processor
from src.scheduled_alerts.exceptions import OrganizationNotFoundError, ScanError
from src.scheduled_alerts.processor import ProcessingRun
from tests.test_api.conftest import _make_scheduled_alert

CREATE_BODY = {
    "organization_id": "springfield_water",
    "title": "Water outage",
    "description": "Elm St water off until 3pm",
    "type": "utility",
    "severity": "high",
    "scheduled_date": "2026-03-14T09:30:00Z",
}


# ── Processing ───────────────────────────────────────────


class TestProcessEndpoint:
    """Test POST /scheduled-alerts/process."""

    def test_success_payload(self, client, mock_processor):
        resp = client.post("/scheduled-alerts/process")

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["processedCount"] == 1
        assert data["processedAlerts"] == ["Water outage"]
        assert data["message"] == "Processed 1 scheduled alerts"
        mock_processor.run.assert_awaited_once_with(organization_id=None, trigger="manual")

    def test_organization_scope(self, client, mock_processor):
        client.post("/scheduled-alerts/process", params={"organization_id": "springfield_water"})

        mock_processor.run.assert_awaited_once_with(
            organization_id="springfield_water", trigger="manual",
        )

    def test_nothing_due(self, client, mock_processor):
        mock_processor.run.return_value = ProcessingRun(trigger="manual")

        data = client.post("/scheduled-alerts/process").json()

        assert data["processedCount"] == 0
        assert data["processedAlerts"] == []

    def test_unknown_organization_404(self, client, mock_processor):
        mock_processor.run.side_effect = OrganizationNotFoundError("ghost_town")

        resp = client.post("/scheduled-alerts/process", params={"organization_id": "ghost_town"})

        assert resp.status_code == 404
        assert "ghost_town" in resp.json()["detail"]

    def test_run_failure_500(self, client, mock_processor):
        mock_processor.run.side_effect = ScanError("Failed to list organizations: timeout")

        resp = client.post("/scheduled-alerts/process")

        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "Failed to list organizations: timeout",
        }


class TestCronEndpoint:

    def test_runs_with_cron_trigger(self, client, mock_processor):
        resp = client.post("/scheduled-alerts/cron")

        assert resp.status_code == 200
        assert resp.json()["processedCount"] == 1
        mock_processor.run.assert_awaited_once_with(organization_id=None, trigger="cron")


class TestDueEndpoint:

    def test_lists_due_alerts(self, client, mock_processor):
        mock_processor.get_due_alerts.return_value = [_make_scheduled_alert()]

        resp = client.get("/scheduled-alerts/due")

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        item = data["alerts"][0]
        assert item["id"] == "sched_001"
        assert item["is_active"] is True
        assert item["scheduled_date"] == "2026-03-14T09:30:00+00:00"
        mock_processor.run.assert_not_awaited()

    def test_unknown_organization_404(self, client, mock_processor):
        mock_processor.get_due_alerts.side_effect = OrganizationNotFoundError("ghost_town")

        resp = client.get("/scheduled-alerts/due", params={"organization_id": "ghost_town"})

        assert resp.status_code == 404


# ── Authoring ────────────────────────────────────────────


class TestCreateEndpoint:
    """Test POST /scheduled-alerts."""

    def test_create(self, client, mock_service):
        resp = client.post("/scheduled-alerts", json=CREATE_BODY)

        assert resp.status_code == 201
        assert resp.json()["total"] == 1
        alert = mock_service.create.await_args.args[0]
        assert alert.organization_id == "springfield_water"
        assert alert.severity == "high"
        assert alert.is_recurring is False

    def test_recurrence_mapped(self, client, mock_service):
        body = {
            **CREATE_BODY,
            "is_recurring": True,
            "recurrence_pattern": {"frequency": "weekly", "interval": 2},
        }

        client.post("/scheduled-alerts", json=body)

        alert = mock_service.create.await_args.args[0]
        assert alert.is_recurring is True
        assert alert.recurrence_pattern.frequency == "weekly"
        assert alert.recurrence_pattern.interval == 2

    def test_invalid_severity_422(self, client, mock_service):
        resp = client.post("/scheduled-alerts", json={**CREATE_BODY, "severity": "urgent"})

        assert resp.status_code == 422
        mock_service.create.assert_not_awaited()

    def test_invalid_frequency_422(self, client, mock_service):
        body = {
            **CREATE_BODY,
            "is_recurring": True,
            "recurrence_pattern": {"frequency": "hourly"},
        }

        resp = client.post("/scheduled-alerts", json=body)

        assert resp.status_code == 422

    def test_unknown_organization_404(self, client, mock_service):
        mock_service.create.side_effect = OrganizationNotFoundError("springfield_water")

        resp = client.post("/scheduled-alerts", json=CREATE_BODY)

        assert resp.status_code == 404

    def test_domain_error_500_body(self, client, mock_service):
        mock_service.create.side_effect = ScanError("alert store unavailable")

        resp = client.post("/scheduled-alerts", json=CREATE_BODY)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "alert store unavailable"}

    def test_missing_title_422(self, client):
        body = {k: v for k, v in CREATE_BODY.items() if k != "title"}
        assert client.post("/scheduled-alerts", json=body).status_code == 422


class TestDuplicateEndpoint:

    def test_duplicate(self, client, mock_service):
        mock_service.duplicate.return_value = [
            _make_scheduled_alert("a"),
            _make_scheduled_alert("b"),
            _make_scheduled_alert("c"),
        ]
        body = {**CREATE_BODY, "dates": ["2026-03-20", "2026-03-27"]}

        resp = client.post("/scheduled-alerts/duplicate", json=body)

        assert resp.status_code == 201
        assert resp.json()["total"] == 3
        dates = mock_service.duplicate.await_args.args[1]
        assert [d.isoformat() for d in dates] == ["2026-03-20", "2026-03-27"]

    def test_no_dates_422(self, client):
        body = {**CREATE_BODY, "dates": []}
        assert client.post("/scheduled-alerts/duplicate", json=body).status_code == 422


class TestUpdateEndpoint:

    def test_update(self, client, mock_service):
        mock_service.update.return_value = _make_scheduled_alert(title="Water restored")

        resp = client.patch(
            "/scheduled-alerts/springfield_water/sched_001",
            json={"title": "Water restored", "location": {"city": "Springfield"}},
        )

        assert resp.status_code == 200
        assert resp.json()["title"] == "Water restored"
        org_id, alert_id, changes = mock_service.update.await_args.args
        assert (org_id, alert_id) == ("springfield_water", "sched_001")
        assert set(changes) == {"title", "location"}
        assert changes["location"].city == "Springfield"

    def test_not_found(self, client):
        resp = client.patch("/scheduled-alerts/springfield_water/missing", json={"title": "x"})
        assert resp.status_code == 404

    def test_invalid_severity(self, client, mock_service):
        resp = client.patch(
            "/scheduled-alerts/springfield_water/sched_001", json={"severity": "urgent"},
        )
        assert resp.status_code == 422
        mock_service.update.assert_not_awaited()


# ── Authentication ───────────────────────────────────────


class TestAuthentication:
    """Test X-API-KEY enforcement when keys are configured."""

    def _client(self, mock_processor):
        app = create_app()
        app.dependency_overrides[get_processor] = lambda: mock_processor
        return TestClient(app)

    def test_missing_key_401(self, mock_processor):
        settings = MagicMock(api_keys="key-one,key-two")
        with patch("src.api.auth.get_settings", return_value=settings):
            resp = self._client(mock_processor).post("/scheduled-alerts/cron")

        assert resp.status_code == 401
        mock_processor.run.assert_not_awaited()

    def test_wrong_key_401(self, mock_processor):
        settings = MagicMock(api_keys="key-one,key-two")
        with patch("src.api.auth.get_settings", return_value=settings):
            resp = self._client(mock_processor).post(
                "/scheduled-alerts/cron", headers={"X-API-KEY": "nope"},
            )

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid API key"

    def test_valid_key(self, mock_processor):
        settings = MagicMock(api_keys="key-one,key-two")
        with patch("src.api.auth.get_settings", return_value=settings):
            resp = self._client(mock_processor).post(
                "/scheduled-alerts/cron", headers={"X-API-KEY": "key-two"},
            )

        assert resp.status_code == 200

    def test_dev_mode_without_keys(self, mock_processor):
        settings = MagicMock(api_keys=None)
        with patch("src.api.auth.get_settings", return_value=settings):
            resp = self._client(mock_processor).post("/scheduled-alerts/cron")

        assert resp.status_code == 200
