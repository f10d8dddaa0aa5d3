"""Cashfree Payment Gateway (PG API) adapter.

Metadata keys read from ``PaymentRequest.metadata``:

- ``customer_id``: Cashfree customer id, defaults to the transaction id
- ``phone``: customer phone when ``customer.phone`` is not set (required by Cashfree)
- ``order_tags``: mapping forwarded as Cashfree order tags
"""

import uuid
from collections.abc import Mapping
from typing import Any

from paygate.errors import ValidationError
from paygate.gateway.base import Gateway
from paygate.models.payment import PaymentRequest, PaymentResponse
from paygate.models.webhook import WebhookEvent, WebhookRequest
from paygate.signing.strategies import HmacBodySignature
from paygate.status import CanonicalStatus, StatusMap

DEFAULT_API_VERSION = "2023-08-01"

ORDER_STATUS_MAP = StatusMap("cashfree", {
    "ACTIVE": CanonicalStatus.PENDING,
    "PAID": CanonicalStatus.COMPLETED,
    "EXPIRED": CanonicalStatus.CANCELLED,
    "TERMINATED": CanonicalStatus.CANCELLED,
    "TERMINATION_REQUESTED": CanonicalStatus.PROCESSING,
})

PAYMENT_STATUS_MAP = StatusMap("cashfree", {
    "SUCCESS": CanonicalStatus.COMPLETED,
    "FAILED": CanonicalStatus.FAILED,
    "PENDING": CanonicalStatus.PENDING,
    "USER_DROPPED": CanonicalStatus.CANCELLED,
    "CANCELLED": CanonicalStatus.CANCELLED,
    "VOID": CanonicalStatus.CANCELLED,
    "FLAGGED": CanonicalStatus.PROCESSING,
    "NOT_ATTEMPTED": CanonicalStatus.PENDING,
})

REFUND_STATUS_MAP = StatusMap("cashfree", {
    "SUCCESS": CanonicalStatus.REFUNDED,
    "PENDING": CanonicalStatus.COMPLETED,
    "ONHOLD": CanonicalStatus.COMPLETED,
    "CANCELLED": CanonicalStatus.COMPLETED,
})


class CashfreeGateway(Gateway):
    name = "cashfree"
    display_name = "Cashfree"
    supported_currencies = frozenset({"INR", "USD", "EUR", "GBP", "AED", "SGD", "CAD", "AUD"})
    sandbox_url = "https://sandbox.cashfree.com/pg"
    live_url = "https://api.cashfree.com/pg"
    status_map = ORDER_STATUS_MAP
    payment_status_map = PAYMENT_STATUS_MAP
    refund_status_map = REFUND_STATUS_MAP

    def build_signature(self):
        return HmacBodySignature(
            header="x-webhook-signature",
            algorithm="sha256",
            encoding="base64",
            timestamp_header="x-webhook-timestamp",
        )

    def webhook_secret(self) -> bytes | None:
        secret = self.config.webhook_secret or self.config.credentials.get("secret_key")
        return secret.encode("utf-8") if secret else None

    def _headers(self) -> dict[str, str]:
        return {
            "x-client-id": self.config.credential("app_id"),
            "x-client-secret": self.config.credential("secret_key"),
            "x-api-version": self.config.option("api_version", DEFAULT_API_VERSION),
        }

    def _pay(self, request: PaymentRequest) -> PaymentResponse:
        customer = request.customer
        phone = (customer.phone if customer else None) or request.metadata.get("phone")
        if not phone:
            raise ValidationError(
                "Cashfree requires a customer phone number",
                gateway=self.name,
                transaction_id=request.transaction_id,
                errors={"customer.phone": "required"},
            )
        customer_details = {
            "customer_id": request.metadata.get("customer_id") or request.transaction_id,
            "customer_phone": phone,
        }
        if customer and customer.email:
            customer_details["customer_email"] = customer.email
        if customer and customer.name:
            customer_details["customer_name"] = customer.name

        order_meta = {}
        return_url = request.return_url or self.config.return_url
        if return_url:
            order_meta["return_url"] = return_url
        notify_url = request.notify_url or self.config.webhook_url
        if notify_url:
            order_meta["notify_url"] = notify_url

        payload: dict[str, Any] = {
            "order_id": request.transaction_id,
            "order_amount": float(request.formatted_amount()),
            "order_currency": request.currency,
            "customer_details": customer_details,
            "order_meta": order_meta,
        }
        if request.description:
            payload["order_note"] = request.description
        if request.metadata.get("order_tags"):
            payload["order_tags"] = dict(request.metadata["order_tags"])

        data = self.transport.request("POST", self.url("/orders"), json=payload, headers=self._headers())
        order_id = data.get("order_id") or request.transaction_id
        details = {
            "cf_order_id": data.get("cf_order_id"),
            "payment_session_id": data.get("payment_session_id"),
            "order_status": data.get("order_status"),
        }
        if data.get("payment_link"):
            return PaymentResponse.redirect(
                data["payment_link"], order_id, data=details, status=CanonicalStatus.CREATED,
            )
        # No hosted link: the host opens checkout with payment_session_id.
        return PaymentResponse.from_status(CanonicalStatus.CREATED, order_id, data=details)

    def _verify(self, identifier: str) -> PaymentResponse:
        data = self.transport.request("GET", self.url(f"/orders/{identifier}"), headers=self._headers())
        amount = data.get("order_amount")
        return PaymentResponse.from_status(
            self.status_map.normalize(data.get("order_status")),
            data.get("order_id") or identifier,
            data={
                "raw_status": data.get("order_status"),
                "amount": str(amount) if amount is not None else None,
                "currency": data.get("order_currency"),
                "cf_order_id": data.get("cf_order_id"),
            },
        )

    def _refund(self, transaction_id, amount, current) -> PaymentResponse:
        refund_amount = amount if amount is not None else self.captured_amount(current)
        if refund_amount is None:
            raise ValidationError(
                "Cashfree did not report the order amount, pass an explicit refund amount",
                gateway=self.name,
                transaction_id=transaction_id,
                errors={"amount": "required"},
            )
        if refund_amount.normalize().as_tuple().exponent < -2:
            raise ValidationError(
                f"Refund amount {refund_amount} has more than 2 decimal places",
                gateway=self.name,
                transaction_id=transaction_id,
                errors={"amount": "INR allows at most 2 decimal places"},
            )
        payload = {
            # Cashfree takes a JSON number; two-place text keeps the float exact on the wire.
            "refund_amount": float(f"{refund_amount:.2f}"),
            "refund_id": f"refund_{uuid.uuid4().hex[:16]}",
        }
        data = self.transport.request(
            "POST", self.url(f"/orders/{transaction_id}/refunds"), json=payload, headers=self._headers(),
        )
        return PaymentResponse.from_status(
            CanonicalStatus.REFUNDED,
            transaction_id,
            data={
                "refund_id": data.get("refund_id") or payload["refund_id"],
                "cf_refund_id": data.get("cf_refund_id"),
                "refund_status": data.get("refund_status"),
                "amount": str(refund_amount),
                "currency": current.data.get("currency"),
            },
        )

    def parse_webhook(self, request: WebhookRequest) -> WebhookEvent:
        payload = request.json()
        data = payload.get("data") or {}
        order = data.get("order") or {}
        payment = data.get("payment") or {}
        refund = data.get("refund") or {}
        if refund:
            event_id = f"refund:{refund.get('cf_refund_id') or refund.get('refund_id')}"
            transaction_id = refund.get("order_id") or order.get("order_id")
        else:
            event_id = f"{payload['type']}:{payment['cf_payment_id']}" if payment.get("cf_payment_id") else None
            transaction_id = order.get("order_id")
        return WebhookEvent(
            event_type=payload["type"],
            raw_payload=payload,
            event_id=event_id,
            transaction_id=transaction_id,
        )

    def webhook_status(self, event: WebhookEvent) -> CanonicalStatus:
        data = event.raw_payload.get("data") or {}
        if data.get("refund"):
            return self.refund_status_map.normalize(data["refund"].get("refund_status"))
        payment = data.get("payment") or {}
        return self.payment_status_map.normalize(payment.get("payment_status"))

    def extract_identifier(self, payload: Mapping[str, Any]) -> str | None:
        return payload.get("order_id")
