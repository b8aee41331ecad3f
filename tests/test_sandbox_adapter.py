"""
Tests for the in-process sandbox adapter.
"""

import pytest

from paygate.adapters.sandbox import TRANSACTION_TOKEN, VAULT_TOKEN, SandboxAdapter
from paygate.exceptions import DecodeError, TransportFault
from paygate.models import AddressCheck, CreditCard, CvcCheck, StandardErrorCode, StoredToken


@pytest.fixture
def adapter():
    return SandboxAdapter()


@pytest.fixture
def good_card():
    return CreditCard(number="4111111111111111", month=9, year=2030, verification_value="123")


@pytest.fixture
def bad_card():
    return CreditCard(number="4111111111111112", month=9, year=2030)


@pytest.fixture
def error_card():
    return CreditCard(number="4111111111111113", month=9, year=2030)


class TestSandboxAdapter:
    """Test SandboxAdapter implementation."""

    def test_purchase_success(self, adapter, good_card):
        outcome = adapter.purchase(1000, good_card)
        assert outcome.succeeded is True
        assert outcome.message == "Sandbox success"
        assert outcome.test_mode is True
        assert outcome.address_check is AddressCheck.Y
        assert outcome.cvc_check is CvcCheck.M

        token = TRANSACTION_TOKEN.decode(outcome.reference)
        assert token.kind == "purchase"
        assert token.amount == "1000"

    def test_purchase_decline(self, adapter, bad_card):
        outcome = adapter.purchase(1000, bad_card)
        assert outcome.succeeded is False
        assert outcome.standard_error is StandardErrorCode.CARD_DECLINED
        assert outcome.error_code == "05"
        assert outcome.reference is None

    def test_transport_fault_propagates(self, adapter, error_card):
        with pytest.raises(TransportFault):
            adapter.authorize(1000, error_card)

    def test_authorize_capture_refund(self, adapter, good_card):
        auth = adapter.authorize(1000, good_card)
        capture = adapter.capture(None, auth.reference)
        assert capture.succeeded is True
        assert TRANSACTION_TOKEN.decode(capture.reference).amount == "1000"

        refund = adapter.refund(500, capture.reference)
        assert refund.succeeded is True
        assert TRANSACTION_TOKEN.decode(refund.reference).amount == "500"

    def test_capture_of_purchase_is_declined(self, adapter, good_card):
        purchase = adapter.purchase(1000, good_card)
        outcome = adapter.capture(None, purchase.reference)
        assert outcome.succeeded is False

    def test_refund_of_authorization_is_declined(self, adapter, good_card):
        auth = adapter.authorize(1000, good_card)
        assert adapter.refund(None, auth.reference).succeeded is False

    def test_void(self, adapter, good_card):
        auth = adapter.authorize(1000, good_card)
        void = adapter.void(auth.reference)
        assert void.succeeded is True
        assert adapter.void(void.reference).succeeded is False

    def test_malformed_reference(self, adapter):
        with pytest.raises(DecodeError):
            adapter.capture(100, "not-a-valid-token")

    def test_verify(self, adapter, good_card, bad_card):
        assert adapter.verify(good_card).succeeded is True
        assert adapter.verify(bad_card).succeeded is False

    def test_verify_amount_follows_brand(self, adapter, good_card):
        visa = adapter.verify(good_card)
        assert TRANSACTION_TOKEN.decode(visa.reference).amount == "0"

        amex = adapter.verify(CreditCard(number="371449635398431", month=9, year=2030))
        assert amex.succeeded is True
        assert TRANSACTION_TOKEN.decode(amex.reference).amount == "100"

    def test_verify_contains_transport_fault(self, adapter, error_card):
        outcome = adapter.verify(error_card)
        assert outcome.succeeded is False
        assert outcome.standard_error is StandardErrorCode.PROCESSING_ERROR

    def test_credit(self, adapter, good_card):
        outcome = adapter.credit(1000, good_card)
        assert TRANSACTION_TOKEN.decode(outcome.reference).kind == "credit"

    def test_store_and_use_stored_token(self, adapter, good_card):
        stored = adapter.store(good_card, customer="cus_42")
        assert stored.succeeded is True
        token = VAULT_TOKEN.decode(stored.reference)
        assert token.customer_id == "cus_42"

        assert adapter.unstore(stored.reference).succeeded is True

    def test_store_rejects_customer_with_delimiter(self, adapter, good_card):
        outcome = adapter.store(good_card, customer="cus|42")

        assert outcome.succeeded is False
        assert outcome.standard_error is StandardErrorCode.PROCESSING_ERROR
        assert outcome.reference is None

    def test_store_decline(self, adapter, bad_card):
        outcome = adapter.store(bad_card)
        assert outcome.standard_error is StandardErrorCode.INCORRECT_NUMBER

    def test_stored_token_payment(self, adapter):
        assert adapter.purchase(100, StoredToken(value="tok_1")).succeeded is True

    def test_bank_account(self, adapter, bank_account):
        # account number ends in 9
        assert adapter.purchase(100, bank_account).succeeded is False
