"""Lookup tables from processor vocabularies to the canonical enumerations.

Every table is total: an unknown address or CVC signal resolves to
``UNSUPPORTED`` and an unknown decline code resolves to ``processing_error``.
The ``lookup_strict`` variants raise :class:`UnmappedSignal` instead, which
the lenient lookups log at DEBUG before falling back to the default.

Decline vocabularies live here rather than in each adapter because several
processors share them (ISO 8583 issuer codes in particular).
"""

import logging
import re
from typing import Dict, Generic, Hashable, Mapping, Optional, Tuple, TypeVar, Union

from .exceptions import UnmappedSignal
from .models import AddressCheck, CvcCheck, StandardErrorCode as E

logger = logging.getLogger(__name__)

T = TypeVar("T")

Signal = Union[str, Tuple[Optional[str], ...]]


class NormalizationTable(Generic[T]):
    """A set of named vocabularies mapping raw processor signals to one enum."""

    def __init__(self, name: str, vocabularies: Mapping[str, Mapping[Hashable, T]], default: T) -> None:
        self.name = name
        self.default = default
        self._vocabularies: Dict[str, Dict[Hashable, T]] = {
            vocabulary: dict(entries) for vocabulary, entries in vocabularies.items()
        }

    @property
    def vocabularies(self) -> Tuple[str, ...]:
        return tuple(self._vocabularies)

    def known_signals(self, vocabulary: str) -> Tuple[Hashable, ...]:
        return tuple(self._vocabulary(vocabulary))

    def _vocabulary(self, vocabulary: str) -> Dict[Hashable, T]:
        try:
            return self._vocabularies[vocabulary]
        except KeyError:
            raise ValueError(f"Unknown {self.name} vocabulary: {vocabulary}") from None

    def lookup_strict(self, signal: Hashable, vocabulary: str) -> T:
        entries = self._vocabulary(vocabulary)
        try:
            return entries[signal]
        except KeyError:
            raise UnmappedSignal(self.name, vocabulary, signal) from None

    def lookup(self, signal: Hashable, vocabulary: str) -> T:
        try:
            return self.lookup_strict(signal, vocabulary)
        except UnmappedSignal as exc:
            logger.debug("%s; using %s", exc, self.default.value)
            return self.default


def _is_blank(signal: Optional[Signal]) -> bool:
    if signal is None:
        return True
    if isinstance(signal, tuple):
        return all(_is_blank(part) for part in signal)
    return not str(signal).strip()


# ==================== Address verification ====================

_STANDARD_AVS = {code.value: code for code in AddressCheck if code is not AddressCheck.UNSUPPORTED}

ADDRESS_CHECKS: NormalizationTable[AddressCheck] = NormalizationTable(
    "address_check",
    {
        "standard": _STANDARD_AVS,
        # (line1 check, zip check)
        "stripe": {
            ("pass", "fail"): AddressCheck.A,
            ("pass", "unchecked"): AddressCheck.B,
            ("unchecked", "unchecked"): AddressCheck.I,
            ("fail", "fail"): AddressCheck.N,
            ("unchecked", "pass"): AddressCheck.P,
            ("pass", "pass"): AddressCheck.Y,
            ("fail", "pass"): AddressCheck.Z,
        },
        "litle": {
            "00": AddressCheck.Y,
            "01": AddressCheck.X,
            "02": AddressCheck.D,
            "10": AddressCheck.Z,
            "11": AddressCheck.W,
            "12": AddressCheck.A,
            "13": AddressCheck.A,
            "14": AddressCheck.P,
            "20": AddressCheck.N,
            "30": AddressCheck.S,
            "31": AddressCheck.R,
            "32": AddressCheck.U,
            "33": AddressCheck.R,
            "34": AddressCheck.I,
            "40": AddressCheck.E,
        },
    },
    default=AddressCheck.UNSUPPORTED,
)


def address_check_for(signal: Optional[Signal], vocabulary: str = "standard") -> Optional[AddressCheck]:
    """Map a processor address signal, or ``None`` when the processor sent none."""
    if _is_blank(signal):
        return None
    if isinstance(signal, str):
        signal = signal.strip().upper() if vocabulary == "standard" else signal.strip()
    return ADDRESS_CHECKS.lookup(signal, vocabulary)


# ==================== Card verification code ====================

CVC_CHECKS: NormalizationTable[CvcCheck] = NormalizationTable(
    "cvc_check",
    {
        "standard": {
            "M": CvcCheck.M,
            "N": CvcCheck.N,
            "P": CvcCheck.P,
            # Heartland reports a CVV mismatch through its issuer code
            "N7": CvcCheck.N,
        },
        "stripe": {
            "pass": CvcCheck.M,
            "fail": CvcCheck.N,
            "unchecked": CvcCheck.P,
        },
    },
    default=CvcCheck.UNSUPPORTED,
)


def cvc_check_for(signal: Optional[str], vocabulary: str = "standard") -> Optional[CvcCheck]:
    """Map a processor CVC signal, or ``None`` when the processor sent none."""
    if _is_blank(signal):
        return None
    signal = signal.strip()
    if vocabulary == "standard":
        signal = signal.upper()
    return CVC_CHECKS.lookup(signal, vocabulary)


# ==================== Standard errors ====================

_ISO8583 = {
    "01": E.CALL_ISSUER,
    "02": E.CALL_ISSUER,
    "03": E.CONFIG_ERROR,
    "04": E.PICKUP_CARD,
    "05": E.CARD_DECLINED,
    "06": E.PROCESSING_ERROR,
    "07": E.PICKUP_CARD,
    "12": E.PROCESSING_ERROR,
    "13": E.INVALID_AMOUNT,
    "14": E.INCORRECT_NUMBER,
    "15": E.INVALID_NUMBER,
    "19": E.PROCESSING_ERROR,
    "41": E.PICKUP_CARD,
    "43": E.PICKUP_CARD,
    "44": E.CARD_DECLINED,
    "51": E.INSUFFICIENT_FUNDS,
    "52": E.PROCESSING_ERROR,
    "53": E.PROCESSING_ERROR,
    "54": E.EXPIRED_CARD,
    "55": E.INCORRECT_PIN,
    "56": E.CARD_DECLINED,
    "57": E.CARD_DECLINED,
    "58": E.PROCESSING_ERROR,
    "61": E.CARD_DECLINED,
    "62": E.CARD_DECLINED,
    "63": E.CARD_DECLINED,
    "65": E.CARD_DECLINED,
    "75": E.INCORRECT_PIN,
    "76": E.PROCESSING_ERROR,
    "77": E.PROCESSING_ERROR,
    "78": E.CARD_DECLINED,
    "80": E.INVALID_EXPIRY_DATE,
    "86": E.INCORRECT_PIN,
    "91": E.PROCESSING_ERROR,
    "94": E.DUPLICATE_TRANSACTION,
    "96": E.PROCESSING_ERROR,
    "EB": E.INCORRECT_CVC,
    "EC": E.PROCESSING_ERROR,
    "N7": E.INCORRECT_CVC,
}

STANDARD_ERRORS: NormalizationTable[E] = NormalizationTable(
    "standard_error",
    {
        "stripe": {
            "incorrect_number": E.INCORRECT_NUMBER,
            "invalid_number": E.INVALID_NUMBER,
            "invalid_expiry_month": E.INVALID_EXPIRY_DATE,
            "invalid_expiry_year": E.INVALID_EXPIRY_DATE,
            "invalid_cvc": E.INVALID_CVC,
            "expired_card": E.EXPIRED_CARD,
            "incorrect_cvc": E.INCORRECT_CVC,
            "incorrect_zip": E.INCORRECT_ZIP,
            "card_declined": E.CARD_DECLINED,
            "call_issuer": E.CALL_ISSUER,
            "processing_error": E.PROCESSING_ERROR,
            "incorrect_pin": E.INCORRECT_PIN,
            "test_mode_live_card": E.TEST_MODE_LIVE_CARD,
            "pickup_card": E.PICKUP_CARD,
            "amount_too_small": E.INVALID_AMOUNT,
            "insufficient_funds": E.INSUFFICIENT_FUNDS,
            "duplicate_transaction": E.DUPLICATE_TRANSACTION,
        },
        "iso8583": _ISO8583,
        "litle": {
            "100": E.PROCESSING_ERROR,
            "101": E.PROCESSING_ERROR,
            "110": E.INSUFFICIENT_FUNDS,
            "120": E.CALL_ISSUER,
            "121": E.CALL_ISSUER,
            "123": E.CALL_ISSUER,
            "301": E.INVALID_NUMBER,
            "302": E.INVALID_AMOUNT,
            "303": E.PICKUP_CARD,
            "304": E.PICKUP_CARD,
            "305": E.EXPIRED_CARD,
            "306": E.CARD_DECLINED,
            "307": E.INCORRECT_PIN,
            "320": E.INVALID_EXPIRY_DATE,
            "321": E.INVALID_NUMBER,
            "322": E.INVALID_AMOUNT,
            "349": E.CARD_DECLINED,
            "350": E.CARD_DECLINED,
            "352": E.INCORRECT_CVC,
            "358": E.INCORRECT_CVC,
        },
        # Heartland gateway-level codes, reported when the issuer was never reached
        "hps_gateway": {
            "-2": E.CONFIG_ERROR,
            "12": E.PROCESSING_ERROR,
            "13": E.INVALID_NUMBER,
            "14": E.INVALID_NUMBER,
            "30": E.PROCESSING_ERROR,
        },
        "dlocal": {
            "300": E.CARD_DECLINED,
            "301": E.CARD_DECLINED,
            "302": E.INSUFFICIENT_FUNDS,
            "303": E.CARD_DECLINED,
            "304": E.CARD_DECLINED,
            "305": E.CARD_DECLINED,
            "306": E.CARD_DECLINED,
            "307": E.DUPLICATE_TRANSACTION,
            "308": E.INVALID_AMOUNT,
            "309": E.EXPIRED_CARD,
            "310": E.INVALID_NUMBER,
            "311": E.CALL_ISSUER,
            "312": E.INVALID_CVC,
            "313": E.CARD_DECLINED,
            "314": E.CARD_DECLINED,
            "315": E.INCORRECT_CVC,
            "316": E.CARD_DECLINED,
            "5000": E.PROCESSING_ERROR,
            "5001": E.INVALID_AMOUNT,
            "5002": E.INVALID_COUNTRY,
            "5003": E.CONFIG_ERROR,
            "5004": E.CONFIG_ERROR,
            "5007": E.INVALID_AMOUNT,
            "5008": E.INVALID_NUMBER,
            "5014": E.CONFIG_ERROR,
        },
    },
    default=E.PROCESSING_ERROR,
)


def standard_error_for(code: Optional[object], vocabulary: str) -> E:
    """Map a processor decline code to the canonical error, never ``None``."""
    if code is None or not str(code).strip():
        return STANDARD_ERRORS.default
    return STANDARD_ERRORS.lookup(str(code).strip(), vocabulary)


# Checked in order, so the more specific phrases come first.
_MESSAGE_HEURISTICS = (
    (re.compile(r"expired", re.I), E.EXPIRED_CARD),
    (re.compile(r"insufficient funds|not sufficient funds", re.I), E.INSUFFICIENT_FUNDS),
    (re.compile(r"(security code|cvv|cvc|cvv2).*(incorrect|invalid|mismatch|does not match)", re.I), E.INCORRECT_CVC),
    (re.compile(r"(expiration|expiry) date.*invalid|invalid.*(expiration|expiry)", re.I), E.INVALID_EXPIRY_DATE),
    (re.compile(r"(card number|account number).*(incorrect|invalid)|invalid.*card number", re.I), E.INVALID_NUMBER),
    (re.compile(r"\bpin\b", re.I), E.INCORRECT_PIN),
    (re.compile(r"pick ?up", re.I), E.PICKUP_CARD),
    (re.compile(r"call (the )?issuer|refer to (card )?issuer", re.I), E.CALL_ISSUER),
    (re.compile(r"duplicate", re.I), E.DUPLICATE_TRANSACTION),
    (re.compile(r"invalid amount|amount.*(too small|too large|invalid)", re.I), E.INVALID_AMOUNT),
    (re.compile(r"declined|do not honou?r|not approved", re.I), E.CARD_DECLINED),
)


def standard_error_from_message(message: Optional[str]) -> Optional[E]:
    """Best-effort classification of a free-text decline message.

    Some processors send no stable code at all. This is a keyword heuristic,
    not a guaranteed classification; ``None`` means nothing matched.
    """
    if not message:
        return None
    for pattern, code in _MESSAGE_HEURISTICS:
        if pattern.search(message):
            return code
    return None
