"""Outcome record builder."""

from typing import Any, Mapping, Optional

from .models import Outcome, StandardErrorCode
from .normalization import (
    Signal,
    address_check_for,
    cvc_check_for,
    standard_error_for,
    standard_error_from_message,
)


def build_outcome(
    raw_fields: Mapping[str, Any],
    succeeded: bool,
    message: Optional[str] = None,
    *,
    reference: Optional[str] = None,
    address_signal: Optional[Signal] = None,
    address_vocabulary: str = "standard",
    cvc_signal: Optional[str] = None,
    cvc_vocabulary: str = "standard",
    error_code: Optional[object] = None,
    error_vocabulary: Optional[str] = None,
    message_heuristic: bool = False,
    test_mode: bool = False,
    network_transaction_id: Optional[str] = None,
    emv_authorization: Optional[str] = None,
) -> Outcome:
    """Normalize one parsed processor response into an :class:`Outcome`.

    Args:
        raw_fields: Parsed processor response, kept verbatim for diagnostics
        succeeded: Success as already decided by the adapter
        message: Human-readable status or decline reason
        reference: Encoded authorization token, if any
        address_signal: Raw address-verification code or pair
        cvc_signal: Raw card-verification code
        error_code: Processor decline code; only used on failure
        error_vocabulary: Which standard error vocabulary ``error_code`` belongs to
        message_heuristic: Classify ``message`` when the processor gave no code
        test_mode: Whether the processor reported (or was reached as) a sandbox

    Returns:
        The outcome record. ``standard_error`` is set exactly when the
        operation failed.
    """
    standard_error = None
    code = None
    if not succeeded:
        code = None if error_code is None or not str(error_code).strip() else str(error_code)
        if code is not None and error_vocabulary is not None:
            standard_error = standard_error_for(code, error_vocabulary)
        elif message_heuristic:
            standard_error = standard_error_from_message(message)
        if standard_error is None:
            standard_error = StandardErrorCode.PROCESSING_ERROR

    return Outcome(
        succeeded=succeeded,
        message=message or "",
        raw_fields=dict(raw_fields),
        reference=reference or None,
        address_check=address_check_for(address_signal, address_vocabulary),
        cvc_check=cvc_check_for(cvc_signal, cvc_vocabulary),
        standard_error=standard_error,
        error_code=code,
        test_mode=test_mode,
        network_transaction_id=network_transaction_id,
        emv_authorization=emv_authorization,
    )
