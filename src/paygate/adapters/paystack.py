"""Paystack adapter.

Metadata keys read from ``PaymentRequest.metadata``:

- ``email``: payer email when ``customer.email`` is not set (Paystack requires one)
- ``channels``: list of allowed payment channels (``card``, ``bank``, ...)

Everything else in ``metadata`` is forwarded as Paystack transaction metadata.
"""

from collections.abc import Mapping
from typing import Any

from paygate.errors import ProviderRejectedError, ValidationError
from paygate.gateway.base import Gateway
from paygate.models.payment import (
    PaymentRequest,
    PaymentResponse,
    from_minor_units,
    to_minor_units,
)
from paygate.models.webhook import WebhookEvent, WebhookRequest
from paygate.signing.strategies import HmacBodySignature
from paygate.status import CanonicalStatus, StatusMap

_ADAPTER_KEYS = ("email", "channels")

STATUS_MAP = StatusMap("paystack", {
    "success": CanonicalStatus.COMPLETED,
    "failed": CanonicalStatus.FAILED,
    "abandoned": CanonicalStatus.CANCELLED,
    "reversed": CanonicalStatus.REFUNDED,
    "ongoing": CanonicalStatus.PROCESSING,
    "processing": CanonicalStatus.PROCESSING,
    "queued": CanonicalStatus.PENDING,
    "pending": CanonicalStatus.PENDING,
})

# Used when an event's data carries no status field.
EVENT_MAP = StatusMap("paystack", {
    "charge.success": CanonicalStatus.COMPLETED,
    "charge.failed": CanonicalStatus.FAILED,
    "refund.processed": CanonicalStatus.REFUNDED,
    "refund.pending": CanonicalStatus.COMPLETED,
    "charge.dispute.create": CanonicalStatus.DISPUTED,
    "charge.dispute.resolve": CanonicalStatus.COMPLETED,
})


class PaystackGateway(Gateway):
    name = "paystack"
    display_name = "Paystack"
    supported_currencies = frozenset({"NGN", "GHS", "ZAR", "KES", "USD", "XOF", "EGP"})
    sandbox_url = "https://api.paystack.co"
    live_url = "https://api.paystack.co"
    status_map = STATUS_MAP
    event_map = EVENT_MAP

    def build_signature(self):
        return HmacBodySignature(header="X-Paystack-Signature", algorithm="sha512")

    def webhook_secret(self) -> bytes | None:
        # Paystack signs webhooks with the API secret key.
        secret = self.config.webhook_secret or self.config.credentials.get("secret_key")
        return secret.encode("utf-8") if secret else None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.credential('secret_key')}"}

    def _call(self, method: str, path: str, **kwargs) -> dict:
        body = self.transport.request(method, self.url(path), headers=self._headers(), **kwargs)
        if body.get("status") is False:
            message = body.get("message") or "Paystack rejected the request"
            raise ProviderRejectedError(
                message, provider_message=message, gateway=self.name,
            )
        return body.get("data") or {}

    def _pay(self, request: PaymentRequest) -> PaymentResponse:
        email = (request.customer.email if request.customer else None) or request.metadata.get("email")
        if not email:
            raise ValidationError(
                "Paystack requires a customer email",
                gateway=self.name,
                transaction_id=request.transaction_id,
                errors={"customer.email": "required"},
            )
        payload: dict[str, Any] = {
            "email": email,
            "amount": request.amount_in_minor_units(),
            "currency": request.currency,
            "reference": request.transaction_id,
            "metadata": {k: v for k, v in request.metadata.items() if k not in _ADAPTER_KEYS},
        }
        callback_url = request.return_url or self.config.return_url
        if callback_url:
            payload["callback_url"] = callback_url
        if request.metadata.get("channels"):
            payload["channels"] = list(request.metadata["channels"])

        data = self._call("POST", "/transaction/initialize", json=payload)
        reference = data.get("reference") or request.transaction_id
        return PaymentResponse.redirect(
            data["authorization_url"],
            reference,
            data={"access_code": data.get("access_code"), "reference": reference},
            status=CanonicalStatus.CREATED,
        )

    def _verify(self, identifier: str) -> PaymentResponse:
        data = self._call("GET", f"/transaction/verify/{identifier}")
        status = self.status_map.normalize(data.get("status"))
        currency = data.get("currency") or "NGN"
        amount = data.get("amount")
        return PaymentResponse.from_status(
            status,
            data.get("reference") or identifier,
            data={
                "raw_status": data.get("status"),
                "amount": str(from_minor_units(amount, currency)) if amount is not None else None,
                "currency": currency,
                "provider_id": data.get("id"),
                "gateway_response": data.get("gateway_response"),
            },
        )

    def _refund(self, transaction_id, amount, current) -> PaymentResponse:
        currency = current.data.get("currency") or "NGN"
        payload: dict[str, Any] = {"transaction": transaction_id}
        if amount is not None:
            payload["amount"] = to_minor_units(amount, currency)
        data = self._call("POST", "/refund", json=payload)
        if data.get("amount") is not None:
            refunded = str(from_minor_units(data["amount"], currency))
        else:
            refunded = str(amount) if amount is not None else current.data.get("amount")
        return PaymentResponse.from_status(
            CanonicalStatus.REFUNDED,
            transaction_id,
            data={
                "refund_id": data.get("id"),
                "refund_status": data.get("status"),
                "amount": refunded,
                "currency": currency,
            },
        )

    def parse_webhook(self, request: WebhookRequest) -> WebhookEvent:
        payload = request.json()
        data = payload.get("data") or {}
        return WebhookEvent(
            event_type=payload["event"],
            raw_payload=payload,
            event_id=f"{payload['event']}:{data['id']}" if data.get("id") is not None else None,
            transaction_id=data.get("reference"),
            # Paystack does not sign a send time; paid_at is informational.
            timestamp=None,
        )

    def webhook_status(self, event: WebhookEvent) -> CanonicalStatus:
        data = event.raw_payload.get("data") or {}
        if event.event_type.startswith("charge.") and "dispute" not in event.event_type and data.get("status"):
            return self.status_map.normalize(data["status"])
        return self.event_map.normalize(event.event_type)

    def extract_identifier(self, payload: Mapping[str, Any]) -> str | None:
        return payload.get("reference") or payload.get("trxref")

