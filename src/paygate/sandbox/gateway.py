"""Gateway adapter for the ``ProviderSandbox`` payments API.

Exercises the full contract against a local server, with a provider
vocabulary of its own (``SUCCEEDED``, ``DECLINED``, ...). Webhooks are
signed with HMAC-SHA256 over ``"<timestamp>.<body>"``.

Credentials: ``api_key``. Set ``options.base_url`` to the sandbox URL.
"""

from collections.abc import Mapping
from typing import Any

from paygate.gateway.base import Gateway
from paygate.models.payment import PaymentRequest, PaymentResponse
from paygate.models.webhook import WebhookEvent, WebhookRequest
from paygate.replay.guard import parse_timestamp
from paygate.signing.strategies import HmacBodySignature
from paygate.status import CanonicalStatus, StatusMap

SIGNATURE_HEADER = "X-Sandbox-Signature"
TIMESTAMP_HEADER = "X-Sandbox-Timestamp"

STATUS_MAP = StatusMap("sandbox", {
    "CREATED": CanonicalStatus.CREATED,
    "PENDING": CanonicalStatus.PENDING,
    "PROCESSING": CanonicalStatus.PROCESSING,
    "SUCCEEDED": CanonicalStatus.COMPLETED,
    "DECLINED": CanonicalStatus.FAILED,
    "CANCELED": CanonicalStatus.CANCELLED,
    "REFUNDED": CanonicalStatus.REFUNDED,
    "DISPUTED": CanonicalStatus.DISPUTED,
})


def sandbox_signature() -> HmacBodySignature:
    return HmacBodySignature(
        header=SIGNATURE_HEADER,
        algorithm="sha256",
        timestamp_header=TIMESTAMP_HEADER,
        timestamp_separator=".",
    )


class SandboxGateway(Gateway):
    name = "sandbox"
    display_name = "Sandbox"
    supported_currencies = frozenset({"USD", "EUR", "GBP"})
    sandbox_url = "http://127.0.0.1"
    live_url = "http://127.0.0.1"
    status_map = STATUS_MAP

    def build_signature(self):
        return sandbox_signature()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.credential('api_key')}"}

    def _response(self, payment: Mapping[str, Any], identifier: str | None) -> PaymentResponse:
        return PaymentResponse.from_status(
            self.status_map.normalize(payment.get("status")),
            payment.get("id") or identifier,
            data={
                "raw_status": payment.get("status"),
                "amount": payment.get("amount"),
                "currency": payment.get("currency"),
                "reference": payment.get("reference"),
            },
            redirect_url=payment.get("redirect_url"),
        )

    def _pay(self, request: PaymentRequest) -> PaymentResponse:
        payment = self.transport.request(
            "POST",
            self.url("/payments"),
            json={
                "amount": request.formatted_amount(),
                "currency": request.currency,
                "reference": request.transaction_id,
            },
            headers=self._headers(),
        )
        return self._response(payment, None)

    def _verify(self, identifier: str) -> PaymentResponse:
        payment = self.transport.request("GET", self.url(f"/payments/{identifier}"), headers=self._headers())
        return self._response(payment, identifier)

    def _refund(self, transaction_id, amount, current) -> PaymentResponse:
        payload = {"amount": f"{amount:f}"} if amount is not None else {}
        refund = self.transport.request(
            "POST", self.url(f"/payments/{transaction_id}/refunds"), json=payload, headers=self._headers(),
        )
        return PaymentResponse.from_status(
            CanonicalStatus.REFUNDED,
            transaction_id,
            data={"refund_id": refund.get("id"), "amount": refund.get("amount")},
        )

    def parse_webhook(self, request: WebhookRequest) -> WebhookEvent:
        payload = request.json()
        data = payload["data"]
        return WebhookEvent(
            event_type=payload.get("type", "payment.updated"),
            raw_payload=payload,
            event_id=payload.get("id"),
            transaction_id=data.get("transactionId"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def webhook_status(self, event: WebhookEvent) -> CanonicalStatus:
        return self.status_map.normalize(event.raw_payload["data"].get("rawStatus"))

    def extract_identifier(self, payload: Mapping[str, Any]) -> str | None:
        return payload.get("payment_id") or payload.get("id")
