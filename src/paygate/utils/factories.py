import json
import threading
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from urllib.parse import urlencode

from paygate.models.config import GatewayConfig
from paygate.models.payment import Customer, PaymentRequest
from paygate.models.webhook import WebhookRequest
from paygate.sandbox.gateway import sandbox_signature
from paygate.signing.strategies import CanonicalFieldSignature, HmacBodySignature


class PaymentRequestFactory:
    """Factory for creating PaymentRequest instances with sensible defaults."""

    @staticmethod
    def create(**overrides) -> PaymentRequest:
        defaults = {
            "amount": Decimal("100.00"),
            "currency": "USD",
            "transaction_id": f"txn_{uuid.uuid4().hex[:16]}",
            "description": "Test order",
            "customer": Customer(name="Ada Lovelace", email="ada@example.com", phone="+15550100"),
            "return_url": "https://shop.example/return",
        }
        defaults.update(overrides)
        return PaymentRequest(**defaults)


class GatewayConfigFactory:
    """Factory for GatewayConfig, with per-gateway sandbox credentials."""

    CREDENTIALS = {
        "sandbox": {"api_key": "sk_sandbox_key"},
        "paystack": {"secret_key": "sk_test_paystack"},
        "cashfree": {"app_id": "cf_app_id", "secret_key": "cf_secret_key"},
        "payfast": {"merchant_id": "10000100", "merchant_key": "46f0cd694581a", "passphrase": "jt7NOE43FZPn"},
        "paypal": {"client_id": "pp_client", "client_secret": "pp_secret", "webhook_id": "WH-123"},
    }

    @classmethod
    def create(cls, name: str = "sandbox", **overrides) -> GatewayConfig:
        defaults = {
            "name": name,
            "mode": "sandbox",
            "credentials": dict(cls.CREDENTIALS.get(name, {})),
            "webhook_secret": "whsec_test" if name == "sandbox" else None,
            "return_url": "https://shop.example/return",
            "webhook_url": f"https://shop.example/hooks/{name}",
            "timeout": 5,
        }
        options = overrides.pop("options", {})
        base_url = overrides.pop("base_url", None)
        if base_url:
            options = {**options, "base_url": base_url}
        defaults.update(overrides)
        return GatewayConfig(options=options, **defaults)


class WebhookFactory:
    """Builds correctly signed inbound webhook calls, one builder per provider."""

    @staticmethod
    def _json(payload: dict) -> bytes:
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def sandbox(
        transaction_id: str = "T1",
        raw_status: str = "SUCCEEDED",
        secret: str = "whsec_test",
        timestamp: int | None = None,
        event_id: str | None = None,
    ) -> WebhookRequest:
        timestamp = int(time.time()) if timestamp is None else timestamp
        body = WebhookFactory._json({
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "type": "payment.updated",
            "data": {"transactionId": transaction_id, "rawStatus": raw_status, "timestamp": timestamp},
        })
        headers = sandbox_signature().sign(body, secret, timestamp=str(timestamp))
        headers["Content-Type"] = "application/json"
        return WebhookRequest(body=body, headers=headers, remote_addr="127.0.0.1")

    @staticmethod
    def paystack(
        event: str = "charge.success",
        reference: str = "T1",
        status: str = "success",
        secret: str = "sk_test_paystack",
        amount: int = 10000,
        provider_id: int | None = None,
    ) -> WebhookRequest:
        body = WebhookFactory._json({
            "event": event,
            "data": {
                "id": provider_id if provider_id is not None else int(uuid.uuid4().int % 10**9),
                "reference": reference,
                "status": status,
                "amount": amount,
                "currency": "NGN",
                "paid_at": datetime.now(timezone.utc).isoformat(),
            },
        })
        headers = HmacBodySignature(header="X-Paystack-Signature", algorithm="sha512").sign(body, secret)
        headers["Content-Type"] = "application/json"
        return WebhookRequest(body=body, headers=headers, remote_addr="52.31.139.75")

    @staticmethod
    def cashfree(
        order_id: str = "T1",
        payment_status: str = "SUCCESS",
        secret: str = "cf_secret_key",
        timestamp: int | None = None,
        cf_payment_id: str | None = None,
    ) -> WebhookRequest:
        body = WebhookFactory._json({
            "data": {
                "order": {"order_id": order_id, "order_amount": 100.0, "order_currency": "INR"},
                "payment": {
                    "cf_payment_id": cf_payment_id or uuid.uuid4().hex[:12],
                    "payment_status": payment_status,
                    "payment_amount": 100.0,
                },
            },
            "event_time": datetime.now(timezone.utc).isoformat(),
            "type": "PAYMENT_SUCCESS_WEBHOOK" if payment_status == "SUCCESS" else "PAYMENT_FAILED_WEBHOOK",
        })
        # Cashfree sends epoch milliseconds.
        timestamp = int(time.time() * 1000) if timestamp is None else timestamp
        headers = HmacBodySignature(
            header="x-webhook-signature",
            encoding="base64",
            timestamp_header="x-webhook-timestamp",
        ).sign(body, secret, timestamp=str(timestamp))
        headers["Content-Type"] = "application/json"
        return WebhookRequest(body=body, headers=headers)

    @staticmethod
    def payfast(
        m_payment_id: str = "T1",
        payment_status: str = "COMPLETE",
        passphrase: str | None = "jt7NOE43FZPn",
        remote_addr: str = "197.97.145.145",
        pf_payment_id: str | None = None,
        amount_gross: str = "100.00",
    ) -> WebhookRequest:
        fields = {
            "m_payment_id": m_payment_id,
            "pf_payment_id": pf_payment_id or str(uuid.uuid4().int % 10**7),
            "payment_status": payment_status,
            "item_name": "Test order",
            "amount_gross": amount_gross,
            "amount_fee": "-2.30",
            "amount_net": "97.70",
            "name_first": "Ada",
            "email_address": "ada@example.com",
            "merchant_id": "10000100",
        }
        fields["signature"] = CanonicalFieldSignature().sign_fields(fields, passphrase)
        return WebhookRequest(
            body=urlencode(fields).encode("utf-8"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            remote_addr=remote_addr,
        )

    @staticmethod
    def paypal(
        event_type: str = "PAYMENT.CAPTURE.COMPLETED",
        order_id: str = "5O190127TN364715T",
        transmission_time: str | None = None,
        event_id: str | None = None,
    ) -> WebhookRequest:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = WebhookFactory._json({
            "id": event_id or f"WH-{uuid.uuid4().hex[:16].upper()}",
            "event_type": event_type,
            "create_time": now,
            "resource": {
                "id": uuid.uuid4().hex[:17].upper(),
                "status": "COMPLETED",
                "supplementary_data": {"related_ids": {"order_id": order_id}},
            },
        })
        headers = {
            "Content-Type": "application/json",
            "paypal-auth-algo": "SHA256withRSA",
            "paypal-cert-url": "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-1",
            "paypal-transmission-id": str(uuid.uuid4()),
            "paypal-transmission-sig": "c2lnbmF0dXJl",
            "paypal-transmission-time": transmission_time or now,
        }
        return WebhookRequest(body=body, headers=headers)


class RecordingTransport:
    """Transport spy: records every call and answers from a script.

    ``respond(method, path_suffix, result)`` queues ``result`` (a dict, or
    an exception instance to raise) for the next call whose URL ends with
    ``path_suffix``. Unscripted calls answer ``{}``.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self._script: list[tuple[str, str, object]] = []
        self._lock = threading.Lock()

    def respond(self, method: str, path_suffix: str, result) -> "RecordingTransport":
        with self._lock:
            self._script.append((method.upper(), path_suffix, result))
        return self

    def request(self, method, url, json=None, data=None, params=None, headers=None, auth=None) -> dict:
        method = method.upper()
        with self._lock:
            self.calls.append({
                "method": method, "url": url, "json": json, "data": data,
                "params": params, "headers": dict(headers or {}), "auth": auth,
            })
            result = {}
            for i, (m, suffix, scripted) in enumerate(self._script):
                if m == method and url.endswith(suffix):
                    result = self._script.pop(i)[2]
                    break
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)
