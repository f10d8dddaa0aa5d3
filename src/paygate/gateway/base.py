"""The contract every payment gateway adapter implements.

``Gateway`` owns the provider-independent steps of each operation.
Adapters fill in the provider calls through the ``_pay``, ``_verify``,
``_refund`` and ``parse_webhook`` hooks.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from paygate.errors import (
    PaymentError,
    RefundNotEligibleError,
    ReplayError,
    UnsupportedCurrencyError,
    ValidationError,
    WebhookAuthError,
)
from paygate.models.config import GatewayConfig, Mode
from paygate.models.payment import PaymentRequest, PaymentResponse
from paygate.models.webhook import WebhookEvent, WebhookRequest
from paygate.observability.monitor import RejectionMonitor
from paygate.replay.guard import ReplayGuard
from paygate.signing.strategies import SignatureStrategy
from paygate.status import CanonicalStatus, StatusMap, is_refundable
from paygate.transport.http import HttpTransport

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("paygate.security")


class Gateway(ABC):
    """Base class for payment gateway adapters.

    Subclasses set the class attributes below and implement the
    abstract hooks. Instances are built from one ``GatewayConfig`` and are
    safe to share between threads.
    """

    name: str = ""
    display_name: str = ""
    supported_currencies: frozenset[str] = frozenset()
    supports_refund: bool = True
    sandbox_url: str = ""
    live_url: str = ""
    status_map: StatusMap

    def __init__(
        self,
        config: GatewayConfig,
        transport=None,
        monitor: RejectionMonitor | None = None,
        replay_guard: ReplayGuard | None = None,
    ):
        self.config = config
        self.transport = transport if transport is not None else self.build_transport()
        self.monitor = monitor
        self.replay_guard = replay_guard or ReplayGuard(config.replay_window, gateway=self.name)
        self.signature = self.build_signature()

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name!r}, mode={self.mode.value!r})>"

    # -- properties -------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self.config.mode

    @property
    def is_sandbox(self) -> bool:
        return self.config.is_sandbox

    @property
    def base_url(self) -> str:
        """Provider API root for the active mode, overridable via ``options.base_url``."""
        override = self.config.option("base_url")
        if override:
            return str(override).rstrip("/")
        return self.sandbox_url if self.is_sandbox else self.live_url

    def supports_currency(self, currency: str) -> bool:
        return isinstance(currency, str) and currency.strip().upper() in self.supported_currencies

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # -- construction hooks -----------------------------------------------

    def build_transport(self) -> HttpTransport:
        return HttpTransport(gateway=self.name, timeout=self.config.timeout)

    @abstractmethod
    def build_signature(self) -> SignatureStrategy:
        """Webhook authenticity strategy for this provider."""

    def webhook_secret(self) -> bytes | None:
        """Key material passed to the signature strategy."""
        secret = self.config.webhook_secret
        return secret.encode("utf-8") if secret else None

    # -- operations -------------------------------------------------------

    def pay(self, request: PaymentRequest) -> PaymentResponse:
        """Start a payment. One outbound call at most.

        Raises:
            ValidationError: ``request`` is not a PaymentRequest.
            UnsupportedCurrencyError: before any network call.
            NetworkError, ProviderRejectedError: from the provider call.
        """
        if not isinstance(request, PaymentRequest):
            raise ValidationError(
                "pay() expects a PaymentRequest", gateway=self.name,
                errors={"request": f"got {type(request).__name__}"},
            )
        if not self.supports_currency(request.currency):
            raise UnsupportedCurrencyError(
                request.currency, gateway=self.name, transaction_id=request.transaction_id,
            )
        logger.info(
            "Starting payment",
            extra={
                "gateway": self.name,
                "transaction_id": request.transaction_id,
                "amount": str(request.amount),
                "currency": request.currency,
            },
        )
        return self._pay(request)

    def verify(self, identifier: str | Mapping[str, Any]) -> PaymentResponse:
        """Poll the provider for the current status of a payment.

        ``identifier`` is either the provider-side id or the payload the
        customer's browser brought back after the redirect. In the latter
        case only the identifier is taken from it; the status always comes
        from the provider. Safe to call any number of times.
        """
        if isinstance(identifier, Mapping):
            extracted = self.extract_identifier(identifier)
            if not extracted:
                raise ValidationError(
                    f"No {self.name} transaction identifier in callback payload",
                    gateway=self.name,
                    errors={"identifier": "missing"},
                )
            identifier = extracted
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError(
                "Transaction identifier must be a non-empty string",
                gateway=self.name,
                errors={"identifier": "empty"},
            )
        return self._verify(identifier.strip())

    def refund(self, transaction_id: str, amount=None) -> PaymentResponse:
        """Refund a completed payment, fully when ``amount`` is None.

        Raises:
            RefundNotEligibleError: the payment is not completed.
            ValidationError: ``amount`` is not positive or exceeds the captured total.
        """
        if not self.supports_refund:
            raise RefundNotEligibleError(transaction_id, "unsupported", gateway=self.name)

        current = self.verify(transaction_id)
        if not is_refundable(current.status):
            raise RefundNotEligibleError(transaction_id, current.status, gateway=self.name)

        total = self.captured_amount(current)
        if amount is not None:
            amount = self._refund_amount(amount, total, transaction_id)

        logger.info(
            "Refunding payment",
            extra={
                "gateway": self.name,
                "transaction_id": transaction_id,
                "amount": str(amount) if amount is not None else "full",
            },
        )
        return self._refund(transaction_id, amount, current)

    def _refund_amount(self, amount, total: Decimal | None, transaction_id: str) -> Decimal:
        try:
            amount = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(
                f"Refund amount is not a number: {amount!r}",
                gateway=self.name, transaction_id=transaction_id,
                errors={"amount": "not a number"},
            ) from None
        if not amount.is_finite() or amount <= 0:
            raise ValidationError(
                "Refund amount must be greater than 0",
                gateway=self.name, transaction_id=transaction_id,
                errors={"amount": "must be greater than 0"},
            )
        if total is not None and amount > total:
            raise ValidationError(
                f"Refund amount {amount} exceeds captured total {total}",
                gateway=self.name, transaction_id=transaction_id,
                errors={"amount": f"exceeds captured total {total}"},
            )
        return amount

    def process_webhook(self, request: WebhookRequest) -> PaymentResponse:
        """Authenticate, de-duplicate and normalize an inbound webhook.

        Authenticity is checked on the raw body before anything is parsed.
        The response is ``success=True`` whenever the webhook was accepted,
        even when it reports a failed payment; ``status`` carries the
        payment outcome. A redelivery of an event accepted less than one
        replay window ago gives the same response with
        ``data["duplicate"]`` set, so hosts can skip re-applying it.
        """
        if not isinstance(request, WebhookRequest):
            raise ValidationError(
                "process_webhook() expects a WebhookRequest", gateway=self.name,
                errors={"request": f"got {type(request).__name__}"},
            )

        if self.signature.out_of_band:
            security_logger.warning(
                "Webhook has no body-level signature, relying on out-of-band trust",
                extra={"gateway": self.name, "strategy": self.signature.name},
            )

        secret = self.webhook_secret()
        if not self.signature.verify(
            request.body, request.headers, secret, remote_addr=request.remote_addr,
        ):
            security_logger.warning(
                "Webhook signature verification failed",
                extra={
                    "gateway": self.name,
                    "strategy": self.signature.name,
                    "remote_addr": request.remote_addr,
                },
            )
            self._record_rejection("signature")
            raise WebhookAuthError(
                f"{self.name} webhook failed {self.signature.name} verification",
                gateway=self.name,
            )

        try:
            event = self.parse_webhook(request)
        except PaymentError:
            self._record_rejection("malformed")
            raise
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self._record_rejection("malformed")
            raise ValidationError(
                f"Malformed {self.name} webhook payload: {e}", gateway=self.name,
            ) from e
        event.signature_valid = True

        timestamp = self.signature.timestamp(request.body, request.headers)
        if timestamp is None:
            timestamp = event.timestamp
        try:
            replay = self.replay_guard.check(timestamp, event.event_id)
        except ReplayError as e:
            e.transaction_id = event.transaction_id
            security_logger.warning(
                "Webhook replay rejected",
                extra={"gateway": self.name, "event_id": event.event_id, "reason": e.message},
            )
            self._record_rejection("replay")
            raise

        status = self.webhook_status(event)
        if self.monitor is not None:
            self.monitor.record_accepted(self.name)
        logger.info(
            "Webhook accepted",
            extra={
                "gateway": self.name,
                "event_type": event.event_type,
                "event_id": event.event_id,
                "transaction_id": event.transaction_id,
                "status": status.value,
                "duplicate": replay.duplicate,
            },
        )
        return PaymentResponse(
            success=True,
            status=status,
            transaction_id=event.transaction_id,
            data={
                "event_type": event.event_type,
                "event_id": event.event_id,
                "duplicate": replay.duplicate,
                "payload": event.raw_payload,
            },
        )

    def _record_rejection(self, reason: str) -> None:
        if self.monitor is not None:
            self.monitor.record_rejected(self.name, reason)

    # -- adapter hooks ----------------------------------------------------

    @abstractmethod
    def _pay(self, request: PaymentRequest) -> PaymentResponse:
        ...

    @abstractmethod
    def _verify(self, identifier: str) -> PaymentResponse:
        ...

    @abstractmethod
    def _refund(
        self, transaction_id: str, amount: Decimal | None, current: PaymentResponse,
    ) -> PaymentResponse:
        ...

    @abstractmethod
    def parse_webhook(self, request: WebhookRequest) -> WebhookEvent:
        """Decode an authenticated webhook body into a WebhookEvent."""

    @abstractmethod
    def extract_identifier(self, payload: Mapping[str, Any]) -> str | None:
        """Provider transaction id carried by a post-redirect callback payload."""

    def webhook_status(self, event: WebhookEvent) -> CanonicalStatus:
        status = event.raw_payload.get("status") if isinstance(event.raw_payload, Mapping) else None
        return self.status_map.normalize(status)

    def captured_amount(self, response: PaymentResponse) -> Decimal | None:
        """Captured total of a verified payment, None when the provider did not say."""
        amount = response.data.get("amount")
        if amount is None:
            return None
        try:
            return Decimal(str(amount))
        except InvalidOperation:
            return None
