"""Processor-independent card payment core."""

import logging
from typing import Optional, Union

from .composition import Policy, SequentialComposition, Step
from .config import get_settings
from .exceptions import (
    AuthenticationError,
    CompositionError,
    ConfigurationError,
    DecodeError,
    PaymentError,
    TransportFault,
    UnmappedSignal,
    ValidationError,
)
from .models import (
    AddressCheck,
    BankAccount,
    CreditCard,
    CvcCheck,
    NetworkTokenCard,
    Outcome,
    PaymentInstrument,
    StandardErrorCode,
    StoredToken,
)
from .outcome import build_outcome
from .tokens import TokenSchema

__version__ = "0.1.0"


def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """Send paygate log records to stderr at ``level``, or at the ``LOG_LEVEL`` setting."""
    if level is None:
        level = get_settings().LOG_LEVEL
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level)
    logging.getLogger("paygate").setLevel(level)


__all__ = [
    "AddressCheck",
    "AuthenticationError",
    "BankAccount",
    "CompositionError",
    "ConfigurationError",
    "CreditCard",
    "CvcCheck",
    "DecodeError",
    "NetworkTokenCard",
    "Outcome",
    "PaymentError",
    "PaymentInstrument",
    "Policy",
    "SequentialComposition",
    "StandardErrorCode",
    "Step",
    "StoredToken",
    "TokenSchema",
    "TransportFault",
    "UnmappedSignal",
    "ValidationError",
    "build_outcome",
    "configure_logging",
]
