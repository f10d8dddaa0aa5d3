from typing import Any


class PaymentError(Exception):
    """Base class for every failure surfaced by a gateway.

    Callers branch on the subclass, never on the message text.
    """

    code = "payment_error"

    def __init__(
        self,
        message: str,
        gateway: str | None = None,
        transaction_id: str | None = None,
        data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.gateway = gateway
        self.transaction_id = transaction_id
        self.data = dict(data or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "gateway": self.gateway,
            "transaction_id": self.transaction_id,
            "data": dict(self.data),
        }


class ValidationError(PaymentError):
    """Malformed or out-of-range request fields. Raised before any network call."""

    code = "validation_error"

    def __init__(self, message: str, errors: dict[str, str] | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = dict(errors or {})

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["errors"] = dict(self.errors)
        return result


class UnsupportedCurrencyError(PaymentError):
    code = "unsupported_currency"

    def __init__(self, currency: str, gateway: str | None = None, **kwargs):
        super().__init__(
            f"Currency {currency} is not supported by {gateway or 'this gateway'}",
            gateway=gateway,
            **kwargs,
        )
        self.currency = currency


class GatewayNotFoundError(PaymentError):
    code = "gateway_not_found"

    def __init__(self, name: str, available: list[str] | None = None):
        message = f"Payment gateway '{name}' is not registered"
        if available:
            message += f". Registered gateways: {', '.join(available)}"
        super().__init__(message, gateway=name)
        self.available = list(available or [])


class ConfigurationError(PaymentError):
    """Required configuration (credential, mode section) is missing or invalid."""

    code = "configuration_error"


class NetworkError(PaymentError):
    """Timeout, connection failure, or a non-2xx reply with no usable error body.

    Safe to retry with backoff at the caller's discretion.
    """

    code = "network_error"
    retryable = True

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ProviderRejectedError(PaymentError):
    """The provider answered with a well-formed error (declined card, bad amount...).

    Not retryable with the same parameters. The provider's raw code and
    message are kept in ``data`` for diagnostics.
    """

    code = "provider_rejected"
    retryable = False

    def __init__(
        self,
        message: str,
        provider_code: str | None = None,
        provider_message: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.provider_code = provider_code
        self.provider_message = provider_message
        self.status_code = status_code
        self.data.setdefault("provider_code", provider_code)
        self.data.setdefault("provider_message", provider_message)


class WebhookAuthError(PaymentError):
    """Webhook authenticity could not be established.

    This marks the message as untrusted; it says nothing about the payment.
    """

    code = "webhook_auth_failed"


class ReplayError(PaymentError):
    """Webhook timestamp outside the freshness window, or event first accepted before the window."""

    code = "webhook_replayed"


class RefundNotEligibleError(PaymentError):
    code = "refund_not_eligible"

    def __init__(self, transaction_id: str, status, gateway: str | None = None):
        value = getattr(status, "value", status)
        super().__init__(
            f"Transaction {transaction_id} cannot be refunded while {value}",
            gateway=gateway,
            transaction_id=transaction_id,
            data={"status": value},
        )
        self.status = status
