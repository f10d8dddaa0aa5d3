import logging
import time
from decimal import Decimal

import pytest

from paygate.errors import (
    RefundNotEligibleError,
    ReplayError,
    UnsupportedCurrencyError,
    ValidationError,
    WebhookAuthError,
)
from paygate.models import WebhookRequest
from paygate.sandbox import SandboxGateway, sandbox_signature
from paygate.status import CanonicalStatus


@pytest.fixture
def gateway(config_factory, recording_transport, monitor):
    return SandboxGateway(config_factory.create("sandbox"), transport=recording_transport, monitor=monitor)


def signed(body: bytes, secret="whsec_test", timestamp=None) -> WebhookRequest:
    timestamp = str(int(time.time())) if timestamp is None else str(timestamp)
    headers = sandbox_signature().sign(body, secret, timestamp=timestamp)
    return WebhookRequest(body=body, headers=headers)


class TestPay:
    """Tests for the provider-independent part of Gateway.pay()."""

    @pytest.mark.unit
    def test_unsupported_currency_makes_no_call(self, gateway, recording_transport, payment_factory):
        request = payment_factory.create(currency="JPY", amount=Decimal("500"))
        with pytest.raises(UnsupportedCurrencyError) as exc_info:
            gateway.pay(request)
        assert exc_info.value.currency == "JPY"
        assert exc_info.value.gateway == "sandbox"
        assert recording_transport.call_count == 0

    @pytest.mark.unit
    def test_rejects_non_request_input(self, gateway, recording_transport):
        with pytest.raises(ValidationError):
            gateway.pay({"amount": "10", "currency": "USD"})
        assert recording_transport.call_count == 0

    @pytest.mark.unit
    def test_single_outbound_call(self, gateway, recording_transport, payment_factory):
        recording_transport.respond("POST", "/payments", {"id": "pay_1", "status": "SUCCEEDED"})
        response = gateway.pay(payment_factory.create(transaction_id="T1"))
        assert response.status == CanonicalStatus.COMPLETED
        assert recording_transport.call_count == 1
        call = recording_transport.calls[0]
        assert call["json"] == {"amount": "100.00", "currency": "USD", "reference": "T1"}
        assert call["headers"]["Authorization"] == "Bearer sk_sandbox_key"

    @pytest.mark.unit
    def test_supports_currency(self, gateway):
        assert gateway.supports_currency("eur")
        assert not gateway.supports_currency("NGN")
        assert not gateway.supports_currency(None)


class TestVerify:
    """Tests for Gateway.verify() identifier handling."""

    @pytest.mark.unit
    def test_identifier_from_callback_payload(self, gateway, recording_transport):
        recording_transport.respond("GET", "/payments/pay_1", {"id": "pay_1", "status": "PENDING"})
        response = gateway.verify({"payment_id": "pay_1", "status": "SUCCEEDED"})
        # Status comes from the provider, not from the browser payload.
        assert response.status == CanonicalStatus.PENDING
        assert recording_transport.calls[0]["url"].endswith("/payments/pay_1")

    @pytest.mark.unit
    @pytest.mark.parametrize("identifier", ["", "   ", {}, {"other": "x"}, None])
    def test_missing_identifier(self, gateway, recording_transport, identifier):
        with pytest.raises(ValidationError):
            gateway.verify(identifier)
        assert recording_transport.call_count == 0

    @pytest.mark.unit
    def test_unmapped_provider_status_is_unknown(self, gateway, recording_transport):
        recording_transport.respond("GET", "/payments/pay_1", {"id": "pay_1", "status": "ON_HOLD"})
        response = gateway.verify("pay_1")
        assert response.status == CanonicalStatus.UNKNOWN
        assert response.data["raw_status"] == "ON_HOLD"


class TestRefund:
    """Tests for Gateway.refund() eligibility and amount checks."""

    @pytest.mark.unit
    @pytest.mark.parametrize("raw_status", ["PENDING", "DECLINED", "REFUNDED", "CANCELED"])
    def test_non_completed_payment_is_not_refundable(self, gateway, recording_transport, raw_status):
        recording_transport.respond("GET", "/payments/T1", {"id": "T1", "status": raw_status})
        with pytest.raises(RefundNotEligibleError):
            gateway.refund("T1")
        assert all(call["method"] == "GET" for call in recording_transport.calls)

    @pytest.mark.unit
    def test_full_refund(self, gateway, recording_transport):
        recording_transport.respond("GET", "/payments/T1", {"id": "T1", "status": "SUCCEEDED", "amount": "100.00"})
        recording_transport.respond("POST", "/payments/T1/refunds", {"id": "re_1", "amount": "100.00"})
        response = gateway.refund("T1")
        assert response.status == CanonicalStatus.REFUNDED
        assert recording_transport.calls[-1]["json"] == {}

    @pytest.mark.unit
    def test_partial_refund(self, gateway, recording_transport):
        recording_transport.respond("GET", "/payments/T1", {"id": "T1", "status": "SUCCEEDED", "amount": "100.00"})
        recording_transport.respond("POST", "/payments/T1/refunds", {"id": "re_1", "amount": "40.00"})
        response = gateway.refund("T1", Decimal("40.00"))
        assert response.data["refund_id"] == "re_1"
        assert recording_transport.calls[-1]["json"] == {"amount": "40.00"}

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), "abc", Decimal("100.01")])
    def test_bad_refund_amount(self, gateway, recording_transport, amount):
        recording_transport.respond("GET", "/payments/T1", {"id": "T1", "status": "SUCCEEDED", "amount": "100.00"})
        with pytest.raises(ValidationError):
            gateway.refund("T1", amount)
        assert recording_transport.call_count == 1


class TestProcessWebhook:
    """Tests for Gateway.process_webhook()."""

    @pytest.mark.unit
    def test_valid_webhook_is_accepted(self, gateway, webhook_factory, monitor):
        response = gateway.process_webhook(webhook_factory.sandbox(transaction_id="T1"))
        assert response.success is True
        assert response.status == CanonicalStatus.COMPLETED
        assert response.transaction_id == "T1"
        assert response.data["event_type"] == "payment.updated"
        assert monitor.accepted_count_in_window() == 1

    @pytest.mark.unit
    def test_failed_payment_webhook_is_still_accepted(self, gateway, webhook_factory):
        response = gateway.process_webhook(webhook_factory.sandbox(raw_status="DECLINED"))
        assert response.success is True
        assert response.status == CanonicalStatus.FAILED

    @pytest.mark.unit
    def test_unmapped_status_is_unknown(self, gateway, webhook_factory):
        response = gateway.process_webhook(webhook_factory.sandbox(raw_status="ON_HOLD"))
        assert response.status == CanonicalStatus.UNKNOWN

    @pytest.mark.unit
    def test_bad_signature_is_rejected_and_logged(self, gateway, webhook_factory, monitor, caplog):
        request = webhook_factory.sandbox(secret="wrong")
        with caplog.at_level(logging.WARNING, logger="paygate.security"):
            with pytest.raises(WebhookAuthError):
                gateway.process_webhook(request)
        assert monitor.rejection_reasons() == {"signature": 1}
        assert any(r.name == "paygate.security" for r in caplog.records)

    @pytest.mark.unit
    def test_tampered_body_is_rejected(self, gateway, webhook_factory):
        request = webhook_factory.sandbox(raw_status="DECLINED")
        tampered = WebhookRequest(
            body=request.body.replace(b"DECLINED", b"SUCCEEDED"), headers=request.headers,
        )
        with pytest.raises(WebhookAuthError):
            gateway.process_webhook(tampered)

    @pytest.mark.unit
    def test_stale_webhook_is_replay(self, gateway, webhook_factory, monitor):
        request = webhook_factory.sandbox(timestamp=int(time.time()) - 600)
        with pytest.raises(ReplayError) as exc_info:
            gateway.process_webhook(request)
        assert exc_info.value.transaction_id == "T1"
        assert monitor.rejection_reasons() == {"replay": 1}

    @pytest.mark.unit
    def test_duplicate_event_gives_same_response(self, gateway, webhook_factory, monitor):
        request = webhook_factory.sandbox(event_id="evt_dup")
        first = gateway.process_webhook(request)
        second = gateway.process_webhook(request)

        assert (second.status, second.transaction_id) == (first.status, first.transaction_id)
        assert second.data["duplicate"] is True
        assert monitor.rejection_reasons() == {}
        assert monitor.accepted_count_in_window() == 2

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b'{"id": "evt_1"}'])
    def test_malformed_payload(self, gateway, monitor, body):
        with pytest.raises(ValidationError):
            gateway.process_webhook(signed(body))
        assert monitor.rejection_reasons() == {"malformed": 1}

    @pytest.mark.unit
    def test_rejects_non_request_input(self, gateway):
        with pytest.raises(ValidationError):
            gateway.process_webhook(b"{}")
