"""
Tests for build_outcome.
"""

from paygate.models import AddressCheck, CvcCheck, StandardErrorCode
from paygate.outcome import build_outcome


class TestBuildOutcome:
    """Test normalization of parsed processor responses."""

    def test_success(self):
        raw = {"id": "ch_1", "status": "succeeded"}
        outcome = build_outcome(
            raw,
            True,
            "Transaction approved",
            reference="ch_1",
            address_signal=("pass", "pass"),
            address_vocabulary="stripe",
            cvc_signal="pass",
            cvc_vocabulary="stripe",
            error_code="card_declined",
            error_vocabulary="stripe",
            test_mode=True,
        )
        assert outcome.succeeded is True
        assert outcome.message == "Transaction approved"
        assert outcome.reference == "ch_1"
        assert outcome.address_check is AddressCheck.Y
        assert outcome.cvc_check is CvcCheck.M
        assert outcome.standard_error is None
        assert outcome.error_code is None
        assert outcome.test_mode is True
        assert outcome.raw_fields == raw

    def test_failure_with_mapped_code(self):
        outcome = build_outcome({}, False, "Do Not Honor", error_code="05", error_vocabulary="iso8583")
        assert outcome.standard_error is StandardErrorCode.CARD_DECLINED
        assert outcome.error_code == "05"

    def test_failure_with_unknown_code(self):
        outcome = build_outcome({}, False, "??", error_code="ZZ", error_vocabulary="iso8583")
        assert outcome.standard_error is StandardErrorCode.PROCESSING_ERROR
        assert outcome.error_code == "ZZ"

    def test_failure_without_code(self):
        outcome = build_outcome({}, False, None)
        assert outcome.standard_error is StandardErrorCode.PROCESSING_ERROR
        assert outcome.message == ""
        assert outcome.error_code is None

    def test_message_heuristic_is_opt_in(self):
        plain = build_outcome({}, False, "Card expired")
        assert plain.standard_error is StandardErrorCode.PROCESSING_ERROR

        guessed = build_outcome({}, False, "Card expired", message_heuristic=True)
        assert guessed.standard_error is StandardErrorCode.EXPIRED_CARD

    def test_mapped_code_wins_over_heuristic(self):
        outcome = build_outcome(
            {}, False, "Card expired", error_code="51", error_vocabulary="iso8583", message_heuristic=True
        )
        assert outcome.standard_error is StandardErrorCode.INSUFFICIENT_FUNDS

    def test_absent_and_unknown_checks(self):
        outcome = build_outcome({}, True, address_signal=None, cvc_signal="Q")
        assert outcome.address_check is None
        assert outcome.cvc_check is CvcCheck.UNSUPPORTED

    def test_empty_reference_becomes_none(self):
        assert build_outcome({}, True, reference="").reference is None

    def test_raw_fields_are_copied(self):
        raw = {"a": 1}
        outcome = build_outcome(raw, True)
        raw["a"] = 2
        assert outcome.raw_fields == {"a": 1}
