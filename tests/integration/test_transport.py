"""Integration tests for HttpTransport against the local provider sandbox."""

import pytest

from paygate.errors import NetworkError, ProviderRejectedError
from paygate.transport import CallLog, HttpTransport


pytestmark = pytest.mark.integration


@pytest.fixture
def call_log():
    return CallLog()


@pytest.fixture
def transport(call_log):
    transport = HttpTransport(gateway="acme", timeout=2, call_log=call_log)
    yield transport
    transport.close()


class TestSuccessfulCalls:
    """2xx replies are decoded and returned."""

    def test_json_body_is_returned(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/1", body={"id": "1", "status": "PAID"})
        assert transport.request("GET", f"{provider_sandbox.base_url}/orders/1") == {"id": "1", "status": "PAID"}

    def test_request_body_and_headers_reach_provider(self, transport, provider_sandbox):
        provider_sandbox.route("POST", "/orders", status=201, body={"id": "1"})
        transport.request(
            "POST", f"{provider_sandbox.base_url}/orders",
            json={"amount": 100}, headers={"X-Api-Version": "2023-08-01"},
        )
        sent = provider_sandbox.get_requests("POST", "/orders")[0]
        assert sent["json"] == {"amount": 100}
        assert sent["headers"]["X-Api-Version"] == "2023-08-01"
        assert sent["headers"]["Accept"] == "application/json"

    def test_empty_body_returns_empty_dict(self, transport, provider_sandbox):
        provider_sandbox.route("POST", "/ping", status=204)
        assert transport.request("POST", f"{provider_sandbox.base_url}/ping") == {}

    def test_list_body_is_wrapped(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders", body=[{"id": "1"}])
        assert transport.request("GET", f"{provider_sandbox.base_url}/orders") == {"data": [{"id": "1"}]}

    def test_exactly_one_request_per_call(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/1", body={"id": "1"})
        transport.request("GET", f"{provider_sandbox.base_url}/orders/1")
        assert provider_sandbox.request_count() == 1


class TestFailures:
    """Non-2xx replies and transport failures map onto the error taxonomy."""

    def test_timeout_is_network_error(self, call_log, provider_sandbox):
        provider_sandbox.route("GET", "/slow", body={"ok": True})
        provider_sandbox.set_response_delay(1.5)
        transport = HttpTransport(gateway="acme", timeout=0.3, call_log=call_log)

        with pytest.raises(NetworkError, match="timeout"):
            transport.request("GET", f"{provider_sandbox.base_url}/slow")
        call = call_log.get_calls()[0]
        assert call.error == "timeout"
        assert call.status_code is None

    def test_connection_refused_is_network_error(self, transport):
        with pytest.raises(NetworkError, match="connection_error"):
            transport.request("GET", "http://127.0.0.1:1/unreachable")

    def test_client_error_with_body_is_rejection(self, transport, provider_sandbox):
        provider_sandbox.route(
            "POST", "/orders", status=402,
            body={"error": {"code": "card_declined", "message": "Do not honor"}},
        )
        with pytest.raises(ProviderRejectedError) as exc_info:
            transport.request("POST", f"{provider_sandbox.base_url}/orders", json={})
        error = exc_info.value
        assert error.status_code == 402
        assert error.data["provider_code"] == "card_declined"
        assert error.data["provider_message"] == "Do not honor"
        assert error.gateway == "acme"

    def test_flat_error_body_is_rejection(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/x", status=404, body={"code": "not_found", "message": "No order"})
        with pytest.raises(ProviderRejectedError, match="No order"):
            transport.request("GET", f"{provider_sandbox.base_url}/orders/x")

    def test_server_error_is_network_error(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/1", status=503, body={"message": "maintenance"})
        with pytest.raises(NetworkError) as exc_info:
            transport.request("GET", f"{provider_sandbox.base_url}/orders/1")
        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True

    def test_client_error_without_body_is_network_error(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/1", status=401)
        with pytest.raises(NetworkError):
            transport.request("GET", f"{provider_sandbox.base_url}/orders/1")

    def test_non_json_success_is_network_error(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/1", body="<html>gateway</html>")
        with pytest.raises(NetworkError, match="non-JSON"):
            transport.request("GET", f"{provider_sandbox.base_url}/orders/1")

    def test_failures_are_not_retried(self, transport, provider_sandbox):
        provider_sandbox.route("GET", "/orders/1", status=500, body={"message": "boom"})
        with pytest.raises(NetworkError):
            transport.request("GET", f"{provider_sandbox.base_url}/orders/1")
        assert provider_sandbox.request_count() == 1


class TestCallLog:
    """Every outbound call is recorded."""

    def test_calls_are_logged(self, transport, call_log, provider_sandbox):
        provider_sandbox.route("GET", "/a", body={})
        provider_sandbox.route("GET", "/b", status=500, body={"message": "boom"})
        transport.request("GET", f"{provider_sandbox.base_url}/a")
        with pytest.raises(NetworkError):
            transport.request("GET", f"{provider_sandbox.base_url}/b")

        assert len(call_log) == 2
        assert [c.status_code for c in call_log.get_calls("acme")] == [200, 500]
        assert len(call_log.get_failed_calls()) == 1
        assert call_log.get_calls("other") == []

    def test_log_is_bounded(self):
        from datetime import datetime, timezone

        from paygate.models import ProviderCall

        log = CallLog(max_entries=2)
        for i in range(3):
            log.log(ProviderCall(
                call_id=f"call_{i}", gateway="acme", method="GET", url="http://x",
                status_code=200, timestamp=datetime.now(timezone.utc), response_time_ms=1.0,
            ))
        assert [c.call_id for c in log.get_calls()] == ["call_1", "call_2"]
