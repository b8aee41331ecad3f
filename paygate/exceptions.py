"""Exceptions for payment processing."""

from typing import Optional


class PaymentError(Exception):
    """Base exception for payment-related errors."""
    pass


class ValidationError(PaymentError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(PaymentError):
    """Raised when an adapter is built without the settings it needs."""
    pass


class AuthenticationError(ConfigurationError):
    """Raised when credentials are missing or malformed."""
    pass


class DecodeError(PaymentError):
    """Raised when an authorization token is malformed or was produced by another schema."""

    def __init__(self, message: str, schema: Optional[str] = None, token: object = None) -> None:
        super().__init__(message)
        self.schema = schema
        self.token = token


class UnmappedSignal(PaymentError):
    """Raised by strict normalization lookups for a code with no table entry.

    The lenient lookups resolve this to a safe default, so it never reaches
    callers of an adapter.
    """

    def __init__(self, table: str, vocabulary: str, signal: object) -> None:
        super().__init__(f"No {table} mapping for {signal!r} in vocabulary {vocabulary!r}")
        self.table = table
        self.vocabulary = vocabulary
        self.signal = signal


class TransportFault(PaymentError):
    """Raised when the transport could not deliver a request or read its response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CompositionError(PaymentError):
    """Raised when a finished composition is asked to run more steps."""
    pass
