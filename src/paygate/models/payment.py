import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from dataclasses import fields as dataclass_fields
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse

from paygate.errors import ValidationError
from paygate.status import CanonicalStatus

ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"})


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places the currency's minor unit allows."""
    code = currency.upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_minor_units(amount: Decimal, currency: str) -> int:
    """``amount`` as an integer count of the currency's minor units."""
    return int(Decimal(amount).scaleb(minor_unit_exponent(currency)))


def from_minor_units(value, currency: str) -> Decimal:
    """Inverse of ``to_minor_units``."""
    return Decimal(int(value)).scaleb(-minor_unit_exponent(currency))


def _generate_transaction_id() -> str:
    return f"txn_{uuid.uuid4().hex[:16]}"


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass(frozen=True)
class Customer:
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: Mapping[str, Any] | None = None
    identification: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": dict(self.address) if self.address else None,
            "identification": self.identification,
        }


@dataclass(frozen=True)
class PaymentRequest:
    """Immutable request handed to ``Gateway.pay``.

    Validation runs on construction, so an instance that exists is always
    well formed. Every problem found is reported in ``ValidationError.errors``.
    Whether the gateway supports ``currency`` is checked later by the
    gateway itself, since it depends on which gateway is resolved.
    """

    amount: Decimal
    currency: str
    transaction_id: str = field(default_factory=_generate_transaction_id)
    description: str | None = None
    customer: Customer | None = None
    return_url: str | None = None
    cancel_url: str | None = None
    notify_url: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        errors: dict[str, str] = {}

        amount = self.amount
        if isinstance(amount, float):
            amount = str(amount)
        try:
            amount = Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            errors["amount"] = f"not a number: {self.amount!r}"
            amount = None

        currency = self.currency.strip().upper() if isinstance(self.currency, str) else ""
        if len(currency) != 3 or not currency.isalpha():
            errors["currency"] = f"not an ISO-4217 code: {self.currency!r}"

        if amount is not None:
            if not amount.is_finite() or amount <= 0:
                errors["amount"] = "must be greater than 0"
            elif "currency" not in errors:
                places = minor_unit_exponent(currency)
                # Trailing zeros do not count: 10.500 USD is 10.50.
                if amount.normalize().as_tuple().exponent < -places:
                    errors["amount"] = f"{currency} allows at most {places} decimal places"

        if not isinstance(self.transaction_id, str) or not self.transaction_id.strip():
            errors["transaction_id"] = "must be a non-empty string"

        for name in ("return_url", "cancel_url", "notify_url"):
            value = getattr(self, name)
            if value is not None and not _is_absolute_url(value):
                errors[name] = f"not an absolute http(s) URL: {value!r}"

        if self.customer is not None and not isinstance(self.customer, Customer):
            errors["customer"] = "must be a Customer"

        if not isinstance(self.metadata, Mapping):
            errors["metadata"] = "must be a mapping"

        if errors:
            raise ValidationError(
                "Invalid payment request: " + ", ".join(sorted(errors)),
                errors=errors,
                transaction_id=self.transaction_id if isinstance(self.transaction_id, str) else None,
            )

        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "currency", currency)
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def create(cls, **fields) -> "PaymentRequest":
        """Validate ``fields`` and build a request, or raise ValidationError."""
        return cls.from_mapping(fields)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PaymentRequest":
        fields = dict(data)
        unknown = sorted(set(fields) - {f.name for f in dataclass_fields(cls)})
        if unknown:
            raise ValidationError(
                "Unknown payment request fields: " + ", ".join(unknown),
                errors={name: "unknown field" for name in unknown},
            )
        missing = [name for name in ("amount", "currency") if fields.get(name) is None]
        if missing:
            raise ValidationError(
                "Missing payment request fields: " + ", ".join(missing),
                errors={name: "required" for name in missing},
            )
        customer = fields.pop("customer", None)
        if isinstance(customer, Mapping):
            customer = Customer(**customer)
        if fields.get("transaction_id") is None:
            fields.pop("transaction_id", None)
        if fields.get("metadata") is None:
            fields.pop("metadata", None)
        return cls(customer=customer, **fields)

    def amount_in_minor_units(self) -> int:
        """Amount as an integer count of minor units (cents, kobo, paise...)."""
        return to_minor_units(self.amount, self.currency)

    def formatted_amount(self) -> str:
        """Amount as a fixed-point string with the currency's precision."""
        places = minor_unit_exponent(self.currency)
        return f"{self.amount:.{places}f}"

    def to_dict(self) -> dict:
        return {
            "amount": str(self.amount),
            "currency": self.currency,
            "transaction_id": self.transaction_id,
            "description": self.description,
            "customer": self.customer.to_dict() if self.customer else None,
            "return_url": self.return_url,
            "cancel_url": self.cancel_url,
            "notify_url": self.notify_url,
            "metadata": dict(self.metadata),
        }


_UNSUCCESSFUL = frozenset({CanonicalStatus.FAILED, CanonicalStatus.CANCELLED})


@dataclass(frozen=True)
class PaymentResponse:
    """Immutable result of any gateway operation."""

    success: bool
    status: CanonicalStatus
    transaction_id: str | None = None
    redirect_url: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)
    error_code: str | None = None
    error_message: str | None = None

    def __post_init__(self):
        if not isinstance(self.status, CanonicalStatus):
            raise TypeError(f"status must be a CanonicalStatus, got {self.status!r}")
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @classmethod
    def from_status(
        cls,
        status: CanonicalStatus,
        transaction_id: str | None,
        data: Mapping[str, Any] | None = None,
        redirect_url: str | None = None,
    ) -> "PaymentResponse":
        """Build a response whose ``success`` follows the payment's status.

        Failed and cancelled payments are reported with ``success=False``.
        """
        return cls(
            success=status not in _UNSUCCESSFUL,
            status=status,
            transaction_id=transaction_id,
            redirect_url=redirect_url,
            data=data or {},
        )

    @classmethod
    def completed(cls, transaction_id: str | None, data: Mapping[str, Any] | None = None) -> "PaymentResponse":
        return cls.from_status(CanonicalStatus.COMPLETED, transaction_id, data)

    @classmethod
    def pending(cls, transaction_id: str | None, data: Mapping[str, Any] | None = None) -> "PaymentResponse":
        return cls.from_status(CanonicalStatus.PENDING, transaction_id, data)

    @classmethod
    def redirect(
        cls,
        url: str,
        transaction_id: str | None,
        data: Mapping[str, Any] | None = None,
        status: CanonicalStatus = CanonicalStatus.PENDING,
    ) -> "PaymentResponse":
        return cls(
            success=True,
            status=status,
            transaction_id=transaction_id,
            redirect_url=url,
            data=data or {},
        )

    @classmethod
    def failure(
        cls,
        error_code: str,
        error_message: str,
        transaction_id: str | None = None,
        status: CanonicalStatus = CanonicalStatus.FAILED,
        data: Mapping[str, Any] | None = None,
    ) -> "PaymentResponse":
        return cls(
            success=False,
            status=status,
            transaction_id=transaction_id,
            data=data or {},
            error_code=error_code,
            error_message=error_message,
        )

    @property
    def requires_redirect(self) -> bool:
        return self.success and bool(self.redirect_url)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "status": self.status.value,
            "redirect_url": self.redirect_url,
            "data": dict(self.data),
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
