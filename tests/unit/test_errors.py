import pytest

from paygate.errors import (
    ConfigurationError,
    GatewayNotFoundError,
    NetworkError,
    PaymentError,
    ProviderRejectedError,
    RefundNotEligibleError,
    ReplayError,
    UnsupportedCurrencyError,
    ValidationError,
    WebhookAuthError,
)
from paygate.result import Err, Ok
from paygate.status import CanonicalStatus


class TestTaxonomy:
    """Tests for the error taxonomy."""

    @pytest.mark.unit
    @pytest.mark.parametrize("error_class", [
        ValidationError, UnsupportedCurrencyError, GatewayNotFoundError, ConfigurationError,
        NetworkError, ProviderRejectedError, WebhookAuthError, ReplayError, RefundNotEligibleError,
    ])
    def test_every_kind_is_a_payment_error(self, error_class):
        assert issubclass(error_class, PaymentError)

    @pytest.mark.unit
    def test_codes_are_distinct(self):
        kinds = PaymentError.__subclasses__()
        codes = [k.code for k in kinds]
        assert len(codes) == len(set(codes))

    @pytest.mark.unit
    def test_network_error_is_retryable(self):
        assert NetworkError("timeout").retryable is True
        assert ProviderRejectedError("declined").retryable is False

    @pytest.mark.unit
    def test_provider_rejection_keeps_raw_code_and_message(self):
        error = ProviderRejectedError(
            "Card declined", provider_code="card_declined", provider_message="Do not honor",
            status_code=402, gateway="acme",
        )
        assert error.data["provider_code"] == "card_declined"
        assert error.data["provider_message"] == "Do not honor"
        assert error.status_code == 402

    @pytest.mark.unit
    def test_validation_error_lists_fields(self):
        error = ValidationError("bad", errors={"amount": "must be greater than 0"})
        assert error.to_dict()["errors"] == {"amount": "must be greater than 0"}

    @pytest.mark.unit
    def test_unsupported_currency_names_currency_and_gateway(self):
        error = UnsupportedCurrencyError("JPY", gateway="payfast")
        assert error.currency == "JPY"
        assert "JPY" in str(error) and "payfast" in str(error)

    @pytest.mark.unit
    def test_gateway_not_found_lists_available(self):
        error = GatewayNotFoundError("stripe", ["paypal", "paystack"])
        assert "paypal, paystack" in str(error)

    @pytest.mark.unit
    def test_refund_not_eligible_carries_status_value(self):
        error = RefundNotEligibleError("T1", CanonicalStatus.PENDING, gateway="acme")
        assert error.status == CanonicalStatus.PENDING
        assert error.data == {"status": "pending"}
        assert "pending" in str(error)

    @pytest.mark.unit
    def test_to_dict_shape(self):
        error = WebhookAuthError("bad signature", gateway="paystack", transaction_id="T1")
        assert error.to_dict() == {
            "error": "webhook_auth_failed",
            "message": "bad signature",
            "gateway": "paystack",
            "transaction_id": "T1",
            "data": {},
        }


class TestOutcome:
    """Tests for the Ok / Err result values."""

    @pytest.mark.unit
    def test_ok_unwraps(self):
        result = Ok(42)
        assert result.ok and result.error is None
        assert result.unwrap() == 42

    @pytest.mark.unit
    def test_err_unwrap_reraises(self):
        error = NetworkError("down")
        result = Err(error)
        assert not result.ok and result.value is None
        with pytest.raises(NetworkError):
            result.unwrap()

    @pytest.mark.unit
    def test_pattern_matching_on_kind(self):
        def describe(outcome):
            match outcome:
                case Ok(value):
                    return f"ok:{value}"
                case Err(UnsupportedCurrencyError(currency=currency)):
                    return f"currency:{currency}"
                case Err(error):
                    return f"error:{error.code}"

        assert describe(Ok("x")) == "ok:x"
        assert describe(Err(UnsupportedCurrencyError("JPY"))) == "currency:JPY"
        assert describe(Err(ReplayError("old"))) == "error:webhook_replayed"
