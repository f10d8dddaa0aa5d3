"""PayFast adapter (South Africa, ZAR only).

``pay`` needs no provider call: it signs the checkout fields and returns
the hosted payment page URL. ITN (instant transaction notification)
webhooks must carry a valid field signature *and* come from one of
PayFast's published networks.

Metadata keys read from ``PaymentRequest.metadata``:

- ``item_name``: line shown on the payment page, defaults to the description
- ``item_description``: longer description
- ``custom_str1`` .. ``custom_str5``: passed through and echoed back in the ITN
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from paygate.errors import ValidationError
from paygate.gateway.base import Gateway
from paygate.models.payment import PaymentRequest, PaymentResponse, from_minor_units, to_minor_units
from paygate.models.webhook import WebhookEvent, WebhookRequest
from paygate.signing.strategies import AllOf, AllowListTrust, CanonicalFieldSignature
from paygate.status import CanonicalStatus, StatusMap

PAYFAST_NETWORKS = (
    "197.97.145.144/28",
    "41.74.179.192/27",
    "102.216.36.0/28",
    "102.216.36.128/28",
    "144.126.193.139/32",
)

SANDBOX_PROCESS_URL = "https://sandbox.payfast.co.za/eng/process"
LIVE_PROCESS_URL = "https://www.payfast.co.za/eng/process"

STATUS_MAP = StatusMap("payfast", {
    "COMPLETE": CanonicalStatus.COMPLETED,
    "PENDING": CanonicalStatus.PENDING,
    "FAILED": CanonicalStatus.FAILED,
    "CANCELLED": CanonicalStatus.CANCELLED,
})

_PASSTHROUGH_KEYS = ("item_description", "custom_str1", "custom_str2", "custom_str3", "custom_str4", "custom_str5")


class PayfastGateway(Gateway):
    name = "payfast"
    display_name = "PayFast"
    supported_currencies = frozenset({"ZAR"})
    sandbox_url = "https://api.payfast.co.za"
    live_url = "https://api.payfast.co.za"
    status_map = STATUS_MAP

    def build_signature(self):
        return AllOf(
            CanonicalFieldSignature(algorithm="md5", field="signature"),
            AllowListTrust(self.config.option("allowed_networks", PAYFAST_NETWORKS)),
        )

    @property
    def field_signer(self) -> CanonicalFieldSignature:
        return self.signature.strategies[0]

    def webhook_secret(self) -> bytes | None:
        passphrase = self.config.credentials.get("passphrase")
        return passphrase.encode("utf-8") if passphrase else None

    @property
    def process_url(self) -> str:
        return self.config.option("process_url") or (
            SANDBOX_PROCESS_URL if self.is_sandbox else LIVE_PROCESS_URL
        )

    def checkout_fields(self, request: PaymentRequest) -> dict[str, str]:
        """Signed form fields for the hosted payment page."""
        fields: dict[str, Any] = {
            "merchant_id": self.config.credential("merchant_id"),
            "merchant_key": self.config.credential("merchant_key"),
            "return_url": request.return_url or self.config.return_url,
            "cancel_url": request.cancel_url,
            "notify_url": request.notify_url or self.config.webhook_url,
        }
        customer = request.customer
        if customer and customer.name:
            first, _, last = customer.name.partition(" ")
            fields["name_first"] = first
            fields["name_last"] = last
        if customer and customer.email:
            fields["email_address"] = customer.email
        fields["m_payment_id"] = request.transaction_id
        fields["amount"] = request.formatted_amount()
        fields["item_name"] = request.metadata.get("item_name") or request.description or "Payment"
        for key in _PASSTHROUGH_KEYS:
            if request.metadata.get(key):
                fields[key] = request.metadata[key]

        fields = {k: str(v) for k, v in fields.items() if v not in (None, "")}
        fields["signature"] = self.field_signer.sign_fields(fields, self.webhook_secret())
        return fields

    def _pay(self, request: PaymentRequest) -> PaymentResponse:
        fields = self.checkout_fields(request)
        return PaymentResponse.redirect(
            f"{self.process_url}?{urlencode(fields)}",
            request.transaction_id,
            data={"fields": fields},
            status=CanonicalStatus.CREATED,
        )

    def _api_headers(self, params: Mapping[str, Any] | None = None) -> dict[str, str]:
        headers = {
            "merchant-id": str(self.config.credential("merchant_id")),
            "version": "v1",
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00"),
        }
        signed = {**headers, **(params or {})}
        headers["signature"] = self.field_signer.sign_fields(signed, self.webhook_secret())
        return headers

    def _api(self, method: str, path: str, json=None) -> dict:
        params = {"testing": "true"} if self.is_sandbox else None
        body = self.transport.request(
            method, self.url(path), json=json, params=params, headers=self._api_headers(json),
        )
        data = body.get("data") or {}
        response = data.get("response", data)
        return response if isinstance(response, dict) else {"response": response}

    def _verify(self, identifier: str) -> PaymentResponse:
        info = self._api("GET", f"/process/query/{identifier}")
        raw_status = info.get("payment_status") or info.get("status")
        return PaymentResponse.from_status(
            self.status_map.normalize(raw_status),
            info.get("m_payment_id") or identifier,
            data={
                "raw_status": raw_status,
                "amount": info.get("amount_gross") or info.get("amount"),
                "currency": "ZAR",
                "pf_payment_id": info.get("pf_payment_id"),
                "amount_fee": info.get("amount_fee"),
                "amount_net": info.get("amount_net"),
            },
        )

    def _refund(self, transaction_id, amount, current) -> PaymentResponse:
        pf_payment_id = current.data.get("pf_payment_id")
        if not pf_payment_id:
            raise ValidationError(
                "PayFast did not report a pf_payment_id for this transaction",
                gateway=self.name,
                transaction_id=transaction_id,
                errors={"pf_payment_id": "missing"},
            )
        refund_amount = amount if amount is not None else self.captured_amount(current)
        payload = {}
        if refund_amount is not None:
            payload["amount"] = to_minor_units(refund_amount, "ZAR")
        info = self._api("POST", f"/refunds/{pf_payment_id}", json=payload)
        refunded = refund_amount
        if info.get("amount") is not None:
            refunded = from_minor_units(info["amount"], "ZAR")
        return PaymentResponse.from_status(
            CanonicalStatus.REFUNDED,
            transaction_id,
            data={
                "pf_payment_id": pf_payment_id,
                "refund_id": info.get("refund_id"),
                "amount": str(refunded) if refunded is not None else None,
                "currency": "ZAR",
            },
        )

    def parse_webhook(self, request: WebhookRequest) -> WebhookEvent:
        fields = request.form()
        status = fields["payment_status"]
        pf_payment_id = fields.get("pf_payment_id")
        return WebhookEvent(
            event_type=f"itn.{status.lower()}",
            raw_payload=fields,
            event_id=f"itn:{pf_payment_id}:{status}" if pf_payment_id else None,
            transaction_id=fields.get("m_payment_id"),
        )

    def webhook_status(self, event: WebhookEvent) -> CanonicalStatus:
        return self.status_map.normalize(event.raw_payload.get("payment_status"))

    def extract_identifier(self, payload: Mapping[str, Any]) -> str | None:
        return payload.get("m_payment_id")
