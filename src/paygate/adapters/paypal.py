"""PayPal Orders v2 adapter.

API calls authenticate with an OAuth2 client-credentials token held in an
``OAuthTokenCache``. Webhooks carry no shared-secret signature PayPal lets
merchants check locally, so authenticity is established by asking PayPal's
``verify-webhook-signature`` endpoint, and ``paypal-transmission-time``
feeds the replay guard.

Credentials: ``client_id``, ``client_secret``, ``webhook_id``.

Metadata keys read from ``PaymentRequest.metadata``:

- ``brand_name``: merchant name shown on the PayPal approval page
- ``invoice_id``: forwarded as the purchase unit's invoice id
"""

import json
import logging
from collections.abc import Mapping
from typing import Any

from paygate.errors import NetworkError, ProviderRejectedError, RefundNotEligibleError
from paygate.gateway.auth import OAuthTokenCache
from paygate.gateway.base import Gateway
from paygate.models.payment import PaymentRequest, PaymentResponse
from paygate.models.webhook import WebhookEvent, WebhookRequest
from paygate.replay.guard import parse_timestamp
from paygate.signing.strategies import BearerIntrospection
from paygate.status import CanonicalStatus, StatusMap

logger = logging.getLogger(__name__)

_TRANSMISSION_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}

STATUS_MAP = StatusMap("paypal", {
    "CREATED": CanonicalStatus.CREATED,
    "SAVED": CanonicalStatus.PENDING,
    "APPROVED": CanonicalStatus.PROCESSING,
    "VOIDED": CanonicalStatus.CANCELLED,
    "COMPLETED": CanonicalStatus.COMPLETED,
    "PAYER_ACTION_REQUIRED": CanonicalStatus.PENDING,
})

EVENT_MAP = StatusMap("paypal", {
    "CHECKOUT.ORDER.APPROVED": CanonicalStatus.PROCESSING,
    "CHECKOUT.ORDER.COMPLETED": CanonicalStatus.COMPLETED,
    "CHECKOUT.ORDER.VOIDED": CanonicalStatus.CANCELLED,
    "CHECKOUT.PAYMENT-APPROVAL.REVERSED": CanonicalStatus.CANCELLED,
    "PAYMENT.CAPTURE.COMPLETED": CanonicalStatus.COMPLETED,
    "PAYMENT.CAPTURE.PENDING": CanonicalStatus.PENDING,
    "PAYMENT.CAPTURE.DENIED": CanonicalStatus.FAILED,
    "PAYMENT.CAPTURE.DECLINED": CanonicalStatus.FAILED,
    "PAYMENT.CAPTURE.REFUNDED": CanonicalStatus.REFUNDED,
    "PAYMENT.CAPTURE.REVERSED": CanonicalStatus.REFUNDED,
    "CUSTOMER.DISPUTE.CREATED": CanonicalStatus.DISPUTED,
})


class PaypalGateway(Gateway):
    name = "paypal"
    display_name = "PayPal"
    supported_currencies = frozenset({
        "AUD", "BRL", "CAD", "CHF", "CZK", "DKK", "EUR", "GBP", "HKD", "HUF", "ILS",
        "JPY", "MXN", "MYR", "NOK", "NZD", "PHP", "PLN", "SEK", "SGD", "THB", "TWD", "USD",
    })
    sandbox_url = "https://api-m.sandbox.paypal.com"
    live_url = "https://api-m.paypal.com"
    status_map = STATUS_MAP
    event_map = EVENT_MAP

    def __init__(self, config, transport=None, monitor=None, replay_guard=None):
        super().__init__(config, transport=transport, monitor=monitor, replay_guard=replay_guard)
        self.tokens = OAuthTokenCache(self._fetch_token, gateway=self.name)

    def build_signature(self):
        return BearerIntrospection(self._introspect, timestamp_header="paypal-transmission-time")

    def _fetch_token(self) -> tuple[str, float]:
        body = self.transport.request(
            "POST",
            self.url("/v1/oauth2/token"),
            data={"grant_type": "client_credentials"},
            auth=(self.config.credential("client_id"), self.config.credential("client_secret")),
        )
        return body["access_token"], float(body.get("expires_in", 0))

    def _headers(self, request_id: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.tokens.get()}",
            "Prefer": "return=representation",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        return headers

    def _api(self, method: str, path: str, request_id: str | None = None, **kwargs) -> dict:
        """Call the REST API with the cached token.

        A 401 means PayPal revoked the token before its stated expiry: the
        token is dropped and the call is sent once more with a fresh one.
        """
        try:
            return self.transport.request(method, self.url(path), headers=self._headers(request_id), **kwargs)
        except (ProviderRejectedError, NetworkError) as e:
            if e.status_code != 401:
                raise
            logger.warning("Access token rejected, refreshing once", extra={"gateway": self.name, "path": path})
            self.tokens.invalidate()
        return self.transport.request(method, self.url(path), headers=self._headers(request_id), **kwargs)

    def _introspect(self, body: bytes, headers: Mapping[str, str]) -> bool:
        transmission = {key: headers.get(header) for key, header in _TRANSMISSION_HEADERS.items()}
        if not all(transmission.values()):
            return False
        try:
            event = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return False
        result = self._api(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json={
                **transmission,
                "webhook_id": self.config.credential("webhook_id"),
                "webhook_event": event,
            },
        )
        return result.get("verification_status") == "SUCCESS"

    def _pay(self, request: PaymentRequest) -> PaymentResponse:
        purchase_unit: dict[str, Any] = {
            "reference_id": request.transaction_id,
            "custom_id": request.transaction_id,
            "amount": {"currency_code": request.currency, "value": request.formatted_amount()},
        }
        if request.description:
            purchase_unit["description"] = request.description[:127]
        if request.metadata.get("invoice_id"):
            purchase_unit["invoice_id"] = request.metadata["invoice_id"]

        context: dict[str, Any] = {"user_action": "PAY_NOW", "shipping_preference": "NO_SHIPPING"}
        return_url = request.return_url or self.config.return_url
        if return_url:
            context["return_url"] = return_url
        if request.cancel_url:
            context["cancel_url"] = request.cancel_url
        if request.metadata.get("brand_name"):
            context["brand_name"] = request.metadata["brand_name"]

        order = self._api(
            "POST",
            "/v2/checkout/orders",
            request_id=request.transaction_id,
            json={"intent": "CAPTURE", "purchase_units": [purchase_unit], "application_context": context},
        )
        approve = _link(order, "approve") or _link(order, "payer-action")
        details = {"order_id": order.get("id"), "order_status": order.get("status")}
        status = self.status_map.normalize(order.get("status"))
        if approve:
            return PaymentResponse.redirect(approve, order.get("id"), data=details, status=status)
        return PaymentResponse.from_status(status, order.get("id"), data=details)

    def _verify(self, identifier: str) -> PaymentResponse:
        order = self._api("GET", f"/v2/checkout/orders/{identifier}")
        return self._order_response(order, identifier)

    def capture(self, order_id: str) -> PaymentResponse:
        """Capture an approved order. PayPal answers COMPLETED once funds move."""
        logger.info("Capturing order", extra={"gateway": self.name, "order_id": order_id})
        order = self._api(
            "POST", f"/v2/checkout/orders/{order_id}/capture", request_id=f"capture-{order_id}", json={},
        )
        return self._order_response(order, order_id)

    def _order_response(self, order: Mapping[str, Any], identifier: str) -> PaymentResponse:
        unit = (order.get("purchase_units") or [{}])[0]
        amount = unit.get("amount") or {}
        captures = (unit.get("payments") or {}).get("captures") or []
        return PaymentResponse.from_status(
            self.status_map.normalize(order.get("status")),
            order.get("id") or identifier,
            data={
                "raw_status": order.get("status"),
                "amount": amount.get("value"),
                "currency": amount.get("currency_code"),
                "capture_id": captures[0].get("id") if captures else None,
                "reference_id": unit.get("reference_id"),
            },
        )

    def _refund(self, transaction_id, amount, current) -> PaymentResponse:
        capture_id = current.data.get("capture_id")
        if not capture_id:
            raise RefundNotEligibleError(transaction_id, "not captured", gateway=self.name)
        payload: dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = {"value": f"{amount:f}", "currency_code": current.data.get("currency")}
        refund = self._api("POST", f"/v2/payments/captures/{capture_id}/refund", json=payload)
        refunded = (refund.get("amount") or {}).get("value")
        return PaymentResponse.from_status(
            CanonicalStatus.REFUNDED,
            transaction_id,
            data={
                "refund_id": refund.get("id"),
                "refund_status": refund.get("status"),
                "capture_id": capture_id,
                "amount": refunded or (str(amount) if amount is not None else current.data.get("amount")),
                "currency": current.data.get("currency"),
            },
        )

    def parse_webhook(self, request: WebhookRequest) -> WebhookEvent:
        payload = request.json()
        resource = payload.get("resource") or {}
        related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
        return WebhookEvent(
            event_type=payload["event_type"],
            raw_payload=payload,
            event_id=payload.get("id"),
            transaction_id=related.get("order_id") or resource.get("id"),
            timestamp=parse_timestamp(payload.get("create_time")),
        )

    def webhook_status(self, event: WebhookEvent) -> CanonicalStatus:
        return self.event_map.normalize(event.event_type)

    def extract_identifier(self, payload: Mapping[str, Any]) -> str | None:
        return payload.get("token") or payload.get("order_id")


def _link(resource: Mapping[str, Any], rel: str) -> str | None:
    for link in resource.get("links") or []:
        if link.get("rel") == rel:
            return link.get("href")
    return None
