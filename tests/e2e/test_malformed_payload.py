"""E2E tests for authentic but malformed webhook payloads."""

import time

import pytest

from paygate.errors import ValidationError
from paygate.models import WebhookRequest
from paygate.sandbox import sandbox_signature


pytestmark = pytest.mark.e2e


def signed_request(body: bytes, secret: str) -> WebhookRequest:
    headers = sandbox_signature().sign(body, secret, timestamp=str(int(time.time())))
    return WebhookRequest(body=body, headers=headers)


class TestMalformedPayload:
    """Payloads that pass the signature check but cannot be decoded."""

    @pytest.mark.parametrize("body", [
        b"",
        b"{truncated",
        b"null",
        b'"just a string"',
        b'{"id": "evt_1", "type": "payment.updated"}',
        b'{"id": "evt_1", "data": "not an object"}',
    ])
    def test_rejected_as_validation_error(self, manager, webhook_secret, monitor, body):
        outcome = manager.process_webhook("sandbox", signed_request(body, webhook_secret))

        assert not outcome.ok
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.gateway == "sandbox"
        assert monitor.rejection_reasons("sandbox") == {"malformed": 1}

    def test_non_utf8_body(self, manager, webhook_secret):
        outcome = manager.process_webhook("sandbox", signed_request(b"\xff\xfe\x00", webhook_secret))
        assert isinstance(outcome.error, ValidationError)

    def test_malformed_payload_does_not_consume_event_id(self, manager, webhook_secret, webhook_factory):
        manager.process_webhook("sandbox", signed_request(b'{"id": "evt_fix"}', webhook_secret))
        assert manager.process_webhook("sandbox", webhook_factory.sandbox(event_id="evt_fix")).ok
