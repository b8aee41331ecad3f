"""In-process sandbox payment processor adapter."""

import logging
import uuid
from typing import Any, Optional

from ...exceptions import TransportFault
from ...models import BankAccount, Outcome, PaymentInstrument, StandardErrorCode, StoredToken
from ...outcome import build_outcome
from ...tokens import TokenSchema
from ..base import PaymentAdapter

logger = logging.getLogger(__name__)

TRANSACTION_TOKEN = TokenSchema(
    "sandbox", ("transaction_id", "kind", "amount"), delimiter=";", optional=("amount",)
)
VAULT_TOKEN = TokenSchema("sandbox_vault", ("customer_id", "card_id"))

SUCCESS_MESSAGE = "Sandbox success"
FAILURE_MESSAGE = "Sandbox failure"
ERROR_MESSAGE = "Sandbox error"


class SandboxAdapter(PaymentAdapter):
    """Deterministic processor that never leaves the process.

    The last digit of the card number (account number for bank accounts,
    token value for stored tokens) decides the result: ``1`` succeeds,
    ``2`` declines and ``3`` raises a transport fault. It implements the
    full operation set and is the fallback when no processor is configured.
    """

    display_name = "Sandbox"
    supported_countries = ("US",)
    supported_cardtypes = ("visa", "master", "american_express", "discover")
    zero_amount_verify_brands = ("visa", "master")

    def authorize(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        return self._charge("authorize", money, payment)

    def purchase(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        return self._charge("purchase", money, payment)

    def capture(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        if token.kind != "authorize":
            return self._decline("capture", f"Cannot capture a {token.kind}", "05")
        amount = money if money is not None else token.amount
        return self._approve("capture", amount)

    def refund(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        if token.kind not in ("purchase", "capture"):
            return self._decline("refund", f"Cannot refund a {token.kind}", "12")
        amount = money if money is not None else token.amount
        return self._approve("refund", amount)

    def void(self, reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        if token.kind in ("void", "refund"):
            return self._decline("void", f"Cannot void a {token.kind}", "12")
        return self._approve("void", None)

    def credit(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        return self._charge("credit", money, payment)

    def store(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        if not VAULT_TOKEN.fits(options.get("customer")):
            return Outcome.failure(
                f"customer may not contain {VAULT_TOKEN.delimiter!r}",
                standard_error=StandardErrorCode.PROCESSING_ERROR,
                test_mode=True,
            )
        result = self._result_for(payment)
        if result is not True:
            return self._decline("store", FAILURE_MESSAGE, "14")
        customer_id = options.get("customer") or f"cus_{uuid.uuid4().hex[:12]}"
        reference = VAULT_TOKEN.encode(customer_id, f"card_{uuid.uuid4().hex[:12]}")
        logger.info("Sandbox store succeeded: %s", reference)
        return build_outcome(
            {"customer": customer_id, "action": "store"},
            True,
            SUCCESS_MESSAGE,
            reference=reference,
            test_mode=True,
        )

    def unstore(self, reference: str, **options: Any) -> Outcome:
        token = VAULT_TOKEN.decode(reference)
        return build_outcome(
            {"customer": token.customer_id, "card": token.card_id, "deleted": True},
            True,
            SUCCESS_MESSAGE,
            test_mode=True,
        )

    def _charge(self, action: str, money: int, payment: PaymentInstrument) -> Outcome:
        result = self._result_for(payment)
        if result is True:
            cvc = getattr(payment, "verification_value", None)
            return self._approve(action, money, address="Y", cvc="M" if cvc else None)
        return self._decline(action, FAILURE_MESSAGE, "05")

    @staticmethod
    def _result_for(payment: PaymentInstrument) -> Optional[bool]:
        if isinstance(payment, BankAccount):
            identifier = payment.account_number
        elif isinstance(payment, StoredToken):
            identifier = payment.value
        else:
            identifier = payment.number

        if identifier.endswith("1"):
            return True
        if identifier.endswith("2"):
            return False
        if identifier.endswith("3"):
            raise TransportFault(ERROR_MESSAGE)
        return False

    def _approve(
        self,
        action: str,
        money: Optional[object],
        address: Optional[str] = None,
        cvc: Optional[str] = None,
    ) -> Outcome:
        transaction_id = uuid.uuid4().hex[:16]
        reference = TRANSACTION_TOKEN.encode(transaction_id, action, money)
        logger.info("Sandbox %s approved: %s", action, transaction_id)
        return build_outcome(
            {"id": transaction_id, "action": action, "amount": money, "status": "approved"},
            True,
            SUCCESS_MESSAGE,
            reference=reference,
            address_signal=address,
            cvc_signal=cvc,
            test_mode=True,
        )

    def _decline(self, action: str, message: str, code: str) -> Outcome:
        logger.info("Sandbox %s declined: %s", action, message)
        return build_outcome(
            {"action": action, "status": "declined", "response_code": code},
            False,
            message,
            error_code=code,
            error_vocabulary="iso8583",
            test_mode=True,
        )


__all__ = ["SandboxAdapter", "TRANSACTION_TOKEN", "VAULT_TOKEN"]
