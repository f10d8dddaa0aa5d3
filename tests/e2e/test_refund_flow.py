"""E2E tests for refund eligibility and amounts."""

from decimal import Decimal

import pytest

from paygate.errors import ProviderRejectedError, RefundNotEligibleError, ValidationError
from paygate.status import CanonicalStatus


pytestmark = pytest.mark.e2e


class TestRefundFlow:
    """Refunds against the stateful sandbox payments API."""

    @pytest.fixture
    def paid(self, manager, payments_sandbox, payment_factory):
        return manager.pay("sandbox", payment_factory.create(amount=Decimal("100.00"))).unwrap()

    def test_full_refund(self, manager, payments_sandbox, paid):
        response = manager.refund("sandbox", paid.transaction_id).unwrap()
        assert response.status == CanonicalStatus.REFUNDED
        assert response.data["amount"] == "100.00"
        assert manager.verify("sandbox", paid.transaction_id).unwrap().status == CanonicalStatus.REFUNDED

    def test_partial_refunds_until_exhausted(self, manager, payments_sandbox, paid):
        assert manager.refund("sandbox", paid.transaction_id, Decimal("30.00")).ok
        assert manager.verify("sandbox", paid.transaction_id).unwrap().status == CanonicalStatus.COMPLETED
        assert manager.refund("sandbox", paid.transaction_id, Decimal("70.00")).ok
        assert manager.verify("sandbox", paid.transaction_id).unwrap().status == CanonicalStatus.REFUNDED

    def test_refunded_payment_cannot_be_refunded_again(self, manager, payments_sandbox, paid):
        manager.refund("sandbox", paid.transaction_id)
        outcome = manager.refund("sandbox", paid.transaction_id)
        assert isinstance(outcome.error, RefundNotEligibleError)
        assert outcome.error.status == CanonicalStatus.REFUNDED

    def test_pending_payment_is_not_eligible(self, manager, payments_sandbox, paid):
        payments_sandbox.set_payment_status(paid.transaction_id, "PENDING")
        outcome = manager.refund("sandbox", paid.transaction_id)

        assert isinstance(outcome.error, RefundNotEligibleError)
        assert outcome.error.data == {"status": "pending"}
        assert payments_sandbox.get_requests("POST", f"/payments/{paid.transaction_id}/refunds") == []

    def test_amount_above_capture_is_refused_locally(self, manager, payments_sandbox, paid):
        outcome = manager.refund("sandbox", paid.transaction_id, Decimal("100.01"))
        assert isinstance(outcome.error, ValidationError)
        assert payments_sandbox.get_requests("POST", f"/payments/{paid.transaction_id}/refunds") == []

    def test_provider_refusal_is_reported(self, manager, payments_sandbox, paid):
        manager.refund("sandbox", paid.transaction_id, Decimal("60.00"))
        outcome = manager.refund("sandbox", paid.transaction_id, Decimal("60.00"))
        assert isinstance(outcome.error, ProviderRejectedError)
        assert outcome.error.data["provider_code"] == "amount_too_large"
