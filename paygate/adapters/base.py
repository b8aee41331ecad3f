"""Base class for payment processor adapters."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Tuple

from ..composition import Policy, SequentialComposition
from ..models import Outcome, PaymentInstrument, StandardErrorCode


class PaymentAdapter(ABC):
    """Abstract base class for payment processor adapters.

    Every operation returns exactly one :class:`Outcome`. Amounts are integer
    minor units (cents); references are the authorization tokens previously
    returned in ``Outcome.reference``.
    """

    display_name: ClassVar[str] = ""
    homepage_url: ClassVar[str] = ""
    supported_countries: ClassVar[Tuple[str, ...]] = ()
    supported_cardtypes: ClassVar[Tuple[str, ...]] = ()
    default_currency: ClassVar[str] = "USD"

    # Smallest amount a processor accepts for an authorize-then-void verify.
    verify_amount: ClassVar[int] = 100
    # Brands whose verify is a single zero-amount authorization with no void.
    zero_amount_verify_brands: ClassVar[Tuple[str, ...]] = ()

    @abstractmethod
    def authorize(
        self,
        money: int,
        payment: PaymentInstrument,
        **options: Any
    ) -> Outcome:
        """Reserve funds without capturing them.

        Args:
            money: Amount in the smallest currency unit
            payment: Card, network token, bank account or stored token
            **options: Additional processor-specific parameters

        Returns:
            Outcome whose reference can be captured or voided
        """
        pass

    @abstractmethod
    def purchase(
        self,
        money: int,
        payment: PaymentInstrument,
        **options: Any
    ) -> Outcome:
        """Authorize and capture in one step.

        Args:
            money: Amount in the smallest currency unit
            payment: Card, network token, bank account or stored token
            **options: Additional processor-specific parameters

        Returns:
            Outcome whose reference can be refunded or voided
        """
        pass

    @abstractmethod
    def capture(
        self,
        money: Optional[int],
        reference: str,
        **options: Any
    ) -> Outcome:
        """Capture a previously authorized payment.

        Args:
            money: Amount to capture, or ``None`` for the authorized amount
            reference: Token returned by ``authorize``
            **options: Additional processor-specific parameters

        Returns:
            Capture outcome

        Raises:
            DecodeError: If ``reference`` is not a token of this adapter
        """
        pass

    @abstractmethod
    def refund(
        self,
        money: Optional[int],
        reference: str,
        **options: Any
    ) -> Outcome:
        """Refund a settled payment (full or partial).

        Args:
            money: Amount to refund, or ``None`` for the full amount
            reference: Token returned by ``purchase`` or ``capture``
            **options: Additional processor-specific parameters

        Returns:
            Refund outcome

        Raises:
            DecodeError: If ``reference`` is not a token of this adapter
        """
        pass

    @abstractmethod
    def void(
        self,
        reference: str,
        **options: Any
    ) -> Outcome:
        """Cancel an authorization or an unsettled payment.

        Args:
            reference: Token returned by an earlier operation
            **options: Additional processor-specific parameters

        Returns:
            Void outcome

        Raises:
            DecodeError: If ``reference`` is not a token of this adapter
        """
        pass

    def verify(
        self,
        payment: PaymentInstrument,
        **options: Any
    ) -> Outcome:
        """Check that a payment instrument is usable.

        Authorizes a minimal amount and voids it again; the authorization
        outcome is reported. Cards of a brand in
        ``zero_amount_verify_brands`` are only authorized for 0.
        """
        composition = SequentialComposition(Policy.USE_FIRST_RESPONSE)
        if getattr(payment, "brand", None) in self.zero_amount_verify_brands:
            composition.process(lambda run: self.authorize(0, payment, **options))
            return composition.result()
        composition.process(lambda run: self.authorize(self.verify_amount, payment, **options))
        composition.process(lambda run: self.void(run.reference, **options), ignore_result=True)
        return composition.result()

    def store(
        self,
        payment: PaymentInstrument,
        **options: Any
    ) -> Outcome:
        """Vault a payment instrument for later use."""
        return self.unsupported("store")

    def unstore(
        self,
        reference: str,
        **options: Any
    ) -> Outcome:
        """Remove a vaulted payment instrument."""
        return self.unsupported("unstore")

    def credit(
        self,
        money: int,
        payment: PaymentInstrument,
        **options: Any
    ) -> Outcome:
        """Send money to a payment instrument without a prior purchase."""
        return self.unsupported("credit")

    def supports_scrubbing(self) -> bool:
        return False

    def scrub(self, transcript: str) -> str:
        """Remove card data and credentials from a wire transcript."""
        return transcript

    def unsupported(self, operation: str, detail: str = "") -> Outcome:
        message = f"{self.display_name or self.__class__.__name__} does not support {operation}"
        if detail:
            message = f"{message}: {detail}"
        return Outcome.failure(message, standard_error=StandardErrorCode.UNSUPPORTED_FEATURE)

    def currency(self, options: dict) -> str:
        return (options.get("currency") or self.default_currency).upper()
