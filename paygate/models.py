"""Canonical value objects shared by every adapter."""

import re
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ==================== Canonical enumerations ====================

class AddressCheck(str, Enum):
    """Normalized address-verification outcome."""

    Y = "Y"
    N = "N"
    A = "A"
    B = "B"
    D = "D"
    E = "E"
    I = "I"  # noqa: E741
    P = "P"
    R = "R"
    S = "S"
    U = "U"
    W = "W"
    X = "X"
    Z = "Z"
    UNSUPPORTED = "Unsupported"

    @property
    def message(self) -> str:
        return _AVS_MESSAGES[self]

    @property
    def street_match(self) -> Optional[str]:
        """``"Y"``, ``"N"`` or ``None`` when the street was not compared."""
        return _AVS_MATCHES[self][0]

    @property
    def postal_match(self) -> Optional[str]:
        """``"Y"``, ``"N"`` or ``None`` when the postal code was not compared."""
        return _AVS_MATCHES[self][1]


_AVS_MESSAGES = {
    AddressCheck.A: "Street address matches, but postal code does not match.",
    AddressCheck.B: "Street address matches, but postal code not verified.",
    AddressCheck.D: "Street address and postal code match.",
    AddressCheck.E: "AVS data is invalid or AVS is not allowed for this card type.",
    AddressCheck.I: "Address not verified.",
    AddressCheck.N: "Street address and postal code do not match.",
    AddressCheck.P: "Postal code matches, but street address not verified.",
    AddressCheck.R: "System unavailable.",
    AddressCheck.S: "U.S.-issuing bank does not support AVS.",
    AddressCheck.U: "Address information unavailable.",
    AddressCheck.W: "Street address does not match, but 9-digit postal code matches.",
    AddressCheck.X: "Street address and 9-digit postal code match.",
    AddressCheck.Y: "Street address and 5-digit postal code match.",
    AddressCheck.Z: "Street address does not match, but 5-digit postal code matches.",
    AddressCheck.UNSUPPORTED: "Address verification result not recognized.",
}

# (street_match, postal_match)
_AVS_MATCHES = {
    AddressCheck.A: ("Y", "N"),
    AddressCheck.B: ("Y", None),
    AddressCheck.D: ("Y", "Y"),
    AddressCheck.E: (None, None),
    AddressCheck.I: (None, None),
    AddressCheck.N: ("N", "N"),
    AddressCheck.P: (None, "Y"),
    AddressCheck.R: (None, None),
    AddressCheck.S: (None, None),
    AddressCheck.U: (None, None),
    AddressCheck.W: ("N", "Y"),
    AddressCheck.X: ("Y", "Y"),
    AddressCheck.Y: ("Y", "Y"),
    AddressCheck.Z: ("N", "Y"),
    AddressCheck.UNSUPPORTED: (None, None),
}


class CvcCheck(str, Enum):
    """Normalized card-verification-code outcome."""

    M = "M"
    N = "N"
    P = "P"
    UNSUPPORTED = "Unsupported"

    @property
    def message(self) -> str:
        return {
            CvcCheck.M: "CVV matches",
            CvcCheck.N: "CVV does not match",
            CvcCheck.P: "Not processed",
            CvcCheck.UNSUPPORTED: "CVV result not recognized",
        }[self]


class StandardErrorCode(str, Enum):
    """Cross-processor classification of a declined or failed operation."""

    INCORRECT_NUMBER = "incorrect_number"
    INVALID_NUMBER = "invalid_number"
    INVALID_EXPIRY_DATE = "invalid_expiry_date"
    INVALID_CVC = "invalid_cvc"
    EXPIRED_CARD = "expired_card"
    INCORRECT_CVC = "incorrect_cvc"
    INCORRECT_ZIP = "incorrect_zip"
    INCORRECT_ADDRESS = "incorrect_address"
    INCORRECT_PIN = "incorrect_pin"
    CARD_DECLINED = "card_declined"
    PROCESSING_ERROR = "processing_error"
    CALL_ISSUER = "call_issuer"
    PICKUP_CARD = "pickup_card"
    CONFIG_ERROR = "config_error"
    TEST_MODE_LIVE_CARD = "test_mode_live_card"
    UNSUPPORTED_FEATURE = "unsupported_feature"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_COUNTRY = "invalid_country"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    DUPLICATE_TRANSACTION = "duplicate_transaction"


# ==================== Outcome Record ====================

class Outcome(BaseModel):
    """The canonical result of every adapter operation.

    ``standard_error`` is present exactly when ``succeeded`` is false. The
    check fields stay ``None`` when the processor sent no signal for them.
    """

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    message: str = ""
    raw_fields: Dict[str, Any] = Field(default_factory=dict)
    reference: Optional[str] = None
    address_check: Optional[AddressCheck] = None
    cvc_check: Optional[CvcCheck] = None
    standard_error: Optional[StandardErrorCode] = None
    error_code: Optional[str] = None
    test_mode: bool = False
    network_transaction_id: Optional[str] = None
    emv_authorization: Optional[str] = None

    @model_validator(mode="after")
    def _error_only_on_failure(self) -> "Outcome":
        if self.succeeded and self.standard_error is not None:
            raise ValueError("a successful outcome cannot carry a standard_error")
        if not self.succeeded and self.standard_error is None:
            raise ValueError("a failed outcome must carry a standard_error")
        return self

    @classmethod
    def failure(
        cls,
        message: str,
        standard_error: StandardErrorCode = StandardErrorCode.PROCESSING_ERROR,
        raw_fields: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> "Outcome":
        """Build a failed outcome that was decided locally, without a processor response."""
        return cls(
            succeeded=False,
            message=message,
            raw_fields=raw_fields or {},
            standard_error=standard_error,
            **fields,
        )

    def __bool__(self) -> bool:
        return self.succeeded


# ==================== Payment instruments ====================

CARD_BRANDS = {
    "visa": r"^4\d{12}(\d{3})?(\d{3})?$",
    "master": r"^(5[1-5]\d{4}|677189|222[1-9]\d{2}|22[3-9]\d{3}|2[3-6]\d{4}|27[01]\d{3}|2720\d{2})\d{10}$",
    "american_express": r"^3[47]\d{13}$",
    "discover": r"^(6011|65\d{2}|64[4-9]\d)\d{12,15}$",
    "diners_club": r"^3(0[0-5]|[68]\d)\d{11,16}$",
    "jcb": r"^35(28|29|[3-8]\d)\d{12}$",
}


def card_brand_for(number: str) -> Optional[str]:
    """Guess the card brand from its number."""
    for brand, pattern in CARD_BRANDS.items():
        if re.match(pattern, number or ""):
            return brand
    return None


class CreditCard(BaseModel):
    """A card entered or swiped by the customer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["card"] = "card"
    number: str = ""
    month: Optional[int] = None
    year: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    verification_value: Optional[str] = None
    brand: Optional[str] = None
    track_data: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _detect_brand(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("brand") and data.get("number"):
            data = {**data, "brand": card_brand_for(data["number"])}
        return data

    @property
    def name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def display_number(self) -> str:
        """Card number with everything but the last four digits masked."""
        return "*" * max(len(self.number) - 4, 0) + self.number[-4:]

    def __repr__(self) -> str:
        return f"<CreditCard {self.brand} {self.display_number} {self.month}/{self.year}>"


class NetworkTokenCard(CreditCard):
    """A wallet or network token presented with its cryptogram."""

    kind: Literal["network_token"] = "network_token"  # type: ignore[assignment]
    payment_cryptogram: str
    eci: Optional[str] = None
    source: Literal["apple_pay", "google_pay", "network_token"] = "network_token"

    @property
    def mobile_wallet(self) -> bool:
        return self.source in ("apple_pay", "google_pay")


class BankAccount(BaseModel):
    """A check / ACH account."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bank_account"] = "bank_account"
    routing_number: str
    account_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    account_type: Optional[str] = None
    account_holder_type: Optional[str] = None
    number: Optional[str] = None

    @property
    def name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<BankAccount ****{self.account_number[-4:]}>"


class StoredToken(BaseModel):
    """An opaque processor-side token, e.g. a stored card."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["stored_token"] = "stored_token"
    value: str


PaymentInstrument = Union[NetworkTokenCard, CreditCard, BankAccount, StoredToken]
