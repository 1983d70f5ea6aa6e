"""Tests for push gateways: FCM over HTTP and the dry-run gateway."""

import json

import httpx
import pytest
import respx

from src.scheduled_alerts.gateway import FCM_SEND_URL, FCMGateway, LoggingGateway

SEND_URL = FCM_SEND_URL.format(project_id="alerts-test")


@pytest.fixture
def gateway():
    return FCMGateway(project_id="alerts-test", access_token="test-token", max_concurrency=2)


class TestFCMGateway:
    """Test per-token sends folded into a multicast result."""

    def test_name(self, gateway):
        assert gateway.name == "fcm"

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_delivered(self, gateway):
        route = respx.post(SEND_URL).mock(return_value=httpx.Response(200, json={}))

        result = await gateway.send_multicast(
            ["tok_a", "tok_b"], "Water outage", "Elm St", {"alertId": "a1"},
        )

        assert result.success_count == 2
        assert result.failure_count == 0
        assert route.call_count == 2
        request = route.calls[0].request
        assert request.headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    @respx.mock
    async def test_payload_shape(self, gateway):
        route = respx.post(SEND_URL).mock(return_value=httpx.Response(200, json={}))

        await gateway.send_multicast(["tok_a"], "Title", "Body", {"alertId": "a1"})

        payload = json.loads(route.calls[0].request.content)
        assert payload == {
            "message": {
                "token": "tok_a",
                "notification": {"title": "Title", "body": "Body"},
                "data": {"alertId": "a1"},
            }
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_partial_failure_counted(self, gateway):
        def respond(request):
            body = request.content.decode()
            if "tok_stale" in body:
                return httpx.Response(404, json={"error": "UNREGISTERED"})
            return httpx.Response(200, json={})

        respx.post(SEND_URL).mock(side_effect=respond)

        result = await gateway.send_multicast(
            ["tok_a", "tok_stale", "tok_b"], "T", "B", {},
        )

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.failed_tokens == ["tok_stale"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_errors_never_raise(self, gateway):
        respx.post(SEND_URL).mock(side_effect=httpx.ConnectError("refused"))

        result = await gateway.send_multicast(["tok_a"], "T", "B", {})

        assert result.failure_count == 1
        assert result.success_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_counted_as_failure(self, gateway):
        respx.post(SEND_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        result = await gateway.send_multicast(["tok_a"], "T", "B", {})

        assert result.failed_tokens == ["tok_a"]

    @pytest.mark.asyncio
    async def test_close(self, gateway):
        await gateway.close()
        assert gateway._client.is_closed


class TestLoggingGateway:

    @pytest.mark.asyncio
    async def test_reports_all_delivered(self):
        gateway = LoggingGateway()

        result = await gateway.send_multicast(["a", "b", "c"], "T", "B", {"alertId": "x"})

        assert gateway.name == "log"
        assert result.success_count == 3
        assert result.failure_count == 0
