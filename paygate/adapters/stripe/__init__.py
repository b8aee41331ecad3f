"""Stripe payment processor adapter."""

import logging
import re
from typing import Any, Callable, Dict, Mapping, Optional

import stripe

from ...composition import Policy, SequentialComposition
from ...config import StripeConfig
from ...exceptions import AuthenticationError, TransportFault
from ...formatting import localized_amount
from ...models import (
    BankAccount,
    CreditCard,
    NetworkTokenCard,
    Outcome,
    PaymentInstrument,
    StandardErrorCode,
    StoredToken,
)
from ...normalization import STANDARD_ERRORS
from ...outcome import build_outcome
from ...tokens import TokenSchema
from ..base import PaymentAdapter

logger = logging.getLogger(__name__)

CHARGE_TOKEN = TokenSchema("stripe_charge", ("charge_id",))
CUSTOMER_CARD_TOKEN = TokenSchema(
    "stripe_customer_card", ("customer_id", "card_id"), optional=("card_id",)
)

MINIMUM_AUTHORIZE_AMOUNTS = {
    "USD": 100,
    "CAD": 100,
    "GBP": 60,
    "EUR": 100,
    "DKK": 500,
    "NOK": 600,
    "SEK": 600,
    "CHF": 100,
    "AUD": 100,
    "JPY": 100,
    "MXN": 2000,
    "SGD": 100,
    "HKD": 800,
}

BANK_ACCOUNT_HOLDER_TYPES = {
    "personal": "individual",
    "business": "company",
}

JSON_ERROR_MESSAGE = (
    "Invalid response received from the Stripe API.  Please contact "
    "support@stripe.com if you continue to receive this message."
)

_SCRUB_PATTERNS = (
    (re.compile(r"(Authorization: Basic )\w+"), r"\1[FILTERED]"),
    (re.compile(r"(Authorization: Bearer )\w+"), r"\1[FILTERED]"),
    (re.compile(r"((\[card\]|card)\[cryptogram\]=)[^&]+(&?)"), r"\1[FILTERED]\3"),
    (re.compile(r"((\[card\]|card)\[cvc\]=)\d+"), r"\1[FILTERED]"),
    (re.compile(r"((\[card\]|card)\[emv_auth_data\]=)[^&]+(&?)"), r"\1[FILTERED]\3"),
    (re.compile(r"((\[card\]|card)\[number\]=)\d+"), r"\1[FILTERED]"),
    (re.compile(r"((\[card\]|card)\[swipe_data\]=)[^&]+(&?)"), r"\1[FILTERED]\3"),
    (re.compile(r"((\[source\]|source)\[(number|cvc)\]=)\d+"), r"\1[FILTERED]"),
    (re.compile(r"((\[bank_account\]|bank_account)\[account_number\]=)\d+"), r"\1[FILTERED]"),
)


def _plain(value: Any) -> Any:
    """Convert Stripe objects into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _compact(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None and value != {}}


class StripeAdapter(PaymentAdapter):
    """Stripe integration on the Charges, Refunds and Customers APIs.

    Requests go through the official ``stripe`` package with the API key
    passed per request, so adapters with different keys can coexist.
    """

    display_name = "Stripe"
    homepage_url = "https://stripe.com/"
    supported_countries = tuple(
        "AE AT AU BE BG BR CA CH CY CZ DE DK EE ES FI FR GB GR HK HU IE IN IT JP LT "
        "LU LV MT MX MY NL NO NZ PL PT RO SE SG SI SK US".split()
    )
    supported_cardtypes = (
        "visa", "master", "american_express", "discover", "jcb", "diners_club", "maestro", "unionpay",
    )

    def __init__(self, config: StripeConfig) -> None:
        if not config.api_key:
            raise AuthenticationError("Stripe API key is required")
        self.config = config

    @property
    def test_mode(self) -> bool:
        return self.config.test_mode

    # ==================== Operations ====================

    def authorize(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported(
                "authorize", "Direct bank account transactions are not supported for authorize."
            )
        params = self._charge_params(money, payment, options)
        params["capture"] = False
        return self._commit("charge", lambda request: stripe.Charge.create(**params, **request), options)

    def purchase(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported(
                "purchase",
                "Direct bank account transactions are not supported. "
                "Bank accounts must be stored and verified before use.",
            )
        params = self._charge_params(money, payment, options)
        return self._commit("charge", lambda request: stripe.Charge.create(**params, **request), options)

    def capture(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        charge_id = CHARGE_TOKEN.decode(reference).charge_id
        params: Dict[str, Any] = {
            "application_fee_amount": options.get("application_fee"),
            "exchange_rate": options.get("exchange_rate"),
        }
        if money is not None:
            params["amount"] = localized_amount(money, self.currency(options))
        params = _compact(params)
        return self._commit(
            "capture", lambda request: stripe.Charge.capture(charge_id, **params, **request), options
        )

    def void(self, reference: str, **options: Any) -> Outcome:
        charge_id = CHARGE_TOKEN.decode(reference).charge_id
        params = self._refund_params(charge_id, None, options)
        return self._commit("refund", lambda request: stripe.Refund.create(**params, **request), options)

    def refund(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        charge_id = CHARGE_TOKEN.decode(reference).charge_id
        params = self._refund_params(charge_id, money, options)
        if options.get("refund_application_fee"):
            params["refund_application_fee"] = True

        composition = SequentialComposition(Policy.USE_FIRST_RESPONSE)
        refunded = composition.process(
            lambda run: self._commit("refund", lambda request: stripe.Refund.create(**params, **request), options)
        )
        fee_amount = options.get("refund_fee_amount")
        if refunded.succeeded and fee_amount and str(fee_amount) != "0":
            composition.process(
                lambda run: self._refund_application_fee(int(fee_amount), charge_id, options),
                ignore_result=True,
            )
        return composition.result()

    def verify(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        amount = MINIMUM_AUTHORIZE_AMOUNTS.get(self.currency(options), 100)
        void_options = {**options, "idempotency_key": None}
        composition = SequentialComposition(Policy.USE_FIRST_RESPONSE)
        composition.process(lambda run: self.authorize(amount, payment, **options))
        composition.process(lambda run: self.void(run.reference, **void_options), ignore_result=True)
        return composition.result()

    def store(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        """Vault a card or bank account on a new or existing customer.

        Adding a card to an existing customer does not make it the default
        unless ``set_default=True`` is passed.
        """
        if isinstance(payment, BankAccount):
            tokenized = self._tokenize_bank_account(payment, options)
            if not tokenized.succeeded:
                return tokenized
            source: Any = tokenized.raw_fields["id"]
        else:
            source = self._source(payment, options)

        post = _compact({
            "validate": options.get("validate"),
            "description": options.get("description"),
            "email": options.get("email"),
        })

        customer = options.get("customer")
        if not customer:
            return self._commit(
                "customer",
                lambda request: stripe.Customer.create(source=source, expand=["sources"], **post, **request),
                options,
            )

        composition = SequentialComposition(Policy.FIRST)
        added = composition.process(
            lambda run: self._commit(
                "card",
                lambda request: stripe.Customer.create_source(customer, source=source, **request),
                options,
            )
        )
        if added is not None and added.succeeded and options.get("set_default") and added.raw_fields.get("id"):
            post["default_source"] = added.raw_fields["id"]
        post.pop("validate", None)
        if post:
            composition.process(
                lambda run: self._commit(
                    "update_customer",
                    lambda request: stripe.Customer.modify(customer, expand=["sources"], **post, **request),
                    options,
                )
            )
        result = composition.result()
        if result.succeeded and added is not None:
            # the customer update answers with the customer id; callers need the card
            result = result.model_copy(update={"reference": added.reference})
        return result

    def unstore(self, reference: str, **options: Any) -> Outcome:
        token = CUSTOMER_CARD_TOKEN.decode(reference)
        if not token.card_id:
            return Outcome.failure(
                "Stored reference has no card to remove",
                standard_error=StandardErrorCode.INVALID_NUMBER,
            )
        return self._commit(
            "unstore",
            lambda request: stripe.Customer.delete_source(token.customer_id, token.card_id, **request),
            options,
        )

    def supports_scrubbing(self) -> bool:
        return True

    def scrub(self, transcript: str) -> str:
        for pattern, replacement in _SCRUB_PATTERNS:
            transcript = pattern.sub(replacement, transcript)
        return transcript

    # ==================== Request building ====================

    def _charge_params(self, money: int, payment: PaymentInstrument, options: Dict[str, Any]) -> Dict[str, Any]:
        currency = self.currency(options)
        params: Dict[str, Any] = {
            "amount": localized_amount(money, currency),
            "currency": currency.lower(),
            "description": options.get("description"),
            "statement_descriptor": options.get("statement_description"),
            "statement_descriptor_suffix": options.get("statement_descriptor_suffix"),
            "receipt_email": options.get("receipt_email"),
            "application_fee_amount": options.get("application_fee"),
            "on_behalf_of": options.get("on_behalf_of"),
            "transfer_group": options.get("transfer_group"),
            "metadata": self._metadata(options),
            "shipping": self._shipping(options),
        }

        if isinstance(payment, StoredToken) and "|" in payment.value:
            token = CUSTOMER_CARD_TOKEN.decode(payment.value)
            params["customer"] = token.customer_id
            params["source"] = token.card_id or None
        else:
            params["source"] = self._source(payment, options)
            if isinstance(payment, StoredToken) and options.get("customer"):
                params["customer"] = options["customer"]

        if options.get("transfer_destination"):
            params["transfer_data"] = _compact({
                "destination": options["transfer_destination"],
                "amount": options.get("transfer_amount"),
            })
        if options.get("radar_session_id"):
            params["radar_options"] = {"session": options["radar_session_id"]}
        return _compact(params)

    def _source(self, payment: PaymentInstrument, options: Dict[str, Any]) -> Any:
        if isinstance(payment, StoredToken):
            return payment.value

        if payment.track_data:
            return {"object": "card", "swipe_data": payment.track_data}

        card: Dict[str, Any] = {
            "object": "card",
            "number": payment.number,
            "exp_month": payment.month,
            "exp_year": payment.year,
            "cvc": payment.verification_value,
            "name": payment.name or None,
        }
        if isinstance(payment, NetworkTokenCard):
            card["cryptogram"] = payment.payment_cryptogram
            if payment.eci and payment.eci.isdigit():
                card["eci"] = payment.eci.rjust(2, "0")
            card["tokenization_method"] = "android_pay" if payment.source == "google_pay" else payment.source

        address = options.get("billing_address") or options.get("address")
        if address:
            card.update({
                "address_line1": address.get("address1"),
                "address_line2": address.get("address2"),
                "address_country": address.get("country"),
                "address_zip": address.get("zip"),
                "address_state": address.get("state"),
                "address_city": address.get("city"),
            })
        return _compact(card)

    def _refund_params(self, charge_id: str, money: Optional[int], options: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "charge": charge_id,
            "reverse_transfer": options.get("reverse_transfer"),
            "reason": options.get("reason"),
            "metadata": self._metadata(options),
            "expand": ["charge"],
        }
        if money is not None:
            params["amount"] = localized_amount(money, self.currency(options))
        return _compact(params)

    @staticmethod
    def _metadata(options: Dict[str, Any]) -> Dict[str, Any]:
        metadata = dict(options.get("metadata") or {})
        if options.get("email"):
            metadata["email"] = options["email"]
        if options.get("order_id"):
            metadata["order_id"] = options["order_id"]
        return metadata

    @staticmethod
    def _shipping(options: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        shipping = options.get("shipping_address")
        if not shipping or not shipping.get("name"):
            return None
        return _compact({
            "name": shipping["name"],
            "phone": shipping.get("phone_number"),
            "address": _compact({
                "line1": shipping.get("address1"),
                "line2": shipping.get("address2"),
                "city": shipping.get("city"),
                "country": shipping.get("country"),
                "state": shipping.get("state"),
                "postal_code": shipping.get("zip"),
            }),
        })

    def _tokenize_bank_account(self, account: BankAccount, options: Dict[str, Any]) -> Outcome:
        bank_account = _compact({
            "account_number": account.account_number,
            "country": "US",
            "currency": "usd",
            "routing_number": account.routing_number,
            "account_holder_name": account.name or None,
            "account_holder_type": BANK_ACCOUNT_HOLDER_TYPES.get(account.account_holder_type or ""),
        })
        return self._commit(
            "token",
            lambda request: stripe.Token.create(bank_account=bank_account, **request),
            options,
        )

    def _refund_application_fee(self, money: int, charge_id: str, options: Dict[str, Any]) -> Outcome:
        charge = self._call(lambda request: stripe.Charge.retrieve(charge_id, **request), options)
        fee = charge.get("application_fee")
        if not fee:
            return build_outcome(charge, True, "No application fee to refund", test_mode=self._response_is_test(charge))
        fee_id = fee["id"] if isinstance(fee, Mapping) else fee
        fee_options = {"key": self.config.fee_refund_api_key}
        return self._commit(
            "fee_refund",
            lambda request: stripe.ApplicationFee.create_refund(fee_id, amount=money, **request),
            fee_options,
        )

    def _request_options(self, options: Dict[str, Any]) -> Dict[str, Any]:
        return _compact({
            "api_key": options.get("key") or self.config.api_key,
            "stripe_version": options.get("version") or self.config.api_version,
            "stripe_account": options.get("stripe_account"),
            "idempotency_key": options.get("idempotency_key"),
        })

    # ==================== Response handling ====================

    def _key_valid(self, options: Dict[str, Any]) -> bool:
        if not self.config.test_mode:
            return True
        key = options.get("key") or self.config.api_key
        for prefix in ("sk", "rk"):
            if key.startswith(prefix) and not key.startswith(f"{prefix}_test"):
                return False
        return True

    def _call(self, call: Callable[[Dict[str, Any]], Any], options: Dict[str, Any]) -> Dict[str, Any]:
        request = self._request_options(options)
        try:
            return _plain(call(request))
        except stripe.APIConnectionError as exc:
            logger.error("Stripe connection failed: %s", exc)
            raise TransportFault(f"Stripe connection failed: {exc}") from exc
        except stripe.StripeError as exc:
            body = exc.json_body
            if isinstance(body, Mapping) and "error" in body:
                return _plain(body)
            message = f"{JSON_ERROR_MESSAGE}  (The raw response returned by the API was {exc.http_body!r})"
            return {"error": {"message": message}}

    def _commit(self, action: str, call: Callable[[Dict[str, Any]], Any], options: Dict[str, Any]) -> Outcome:
        if not self._key_valid(options):
            return Outcome.failure("Invalid API Key provided", standard_error=StandardErrorCode.CONFIG_ERROR)

        response = self._call(call, options)
        success = "error" not in response and response.get("status") != "failed"
        card = self._card_from_response(response)

        outcome = build_outcome(
            response,
            success,
            "Transaction approved" if success else response.get("error", {}).get("message", "No error details"),
            reference=self._authorization_from(success, action, response),
            address_signal=(
                card.get("address_line1_check"),
                card.get("address_zip_check") or card.get("address_postal_code_check"),
            ),
            address_vocabulary="stripe",
            cvc_signal=card.get("cvc_check"),
            cvc_vocabulary="stripe",
            error_code=None if success else self._error_code_from(response),
            error_vocabulary="stripe",
            test_mode=self._response_is_test(response),
            emv_authorization=(response.get("error") or card).get("emv_auth_data"),
        )
        logger.info("Stripe %s %s", action, "succeeded" if outcome.succeeded else f"failed: {outcome.message}")
        return outcome

    @staticmethod
    def _authorization_from(success: bool, action: str, response: Dict[str, Any]) -> Optional[str]:
        if not success:
            error = response.get("error", {})
            return error.get("charge") or (error.get("setup_intent") or {}).get("id") or response.get("id")

        if action == "customer":
            sources = (response.get("sources") or {}).get("data") or [{}]
            return CUSTOMER_CARD_TOKEN.encode(response["id"], sources[0].get("id"))
        if action == "card":
            return CUSTOMER_CARD_TOKEN.encode(response.get("customer"), response.get("id"))
        return response.get("id")

    @staticmethod
    def _card_from_response(response: Dict[str, Any]) -> Dict[str, Any]:
        card = response.get("card") or response.get("active_card") or response.get("source")
        if not card:
            card = dict((response.get("payment_method_details") or {}).get("card") or {})
            card.update(card.pop("checks", None) or {})
        return card if isinstance(card, dict) else {}

    @staticmethod
    def _error_code_from(response: Dict[str, Any]) -> str:
        error = response.get("error")
        if not error:
            return "processing_error"
        code = error.get("code")
        if code == "card_declined":
            decline_code = error.get("decline_code")
            if decline_code in STANDARD_ERRORS.known_signals("stripe"):
                return decline_code
        return code or "processing_error"

    @staticmethod
    def _response_is_test(response: Dict[str, Any]) -> bool:
        if "livemode" in response:
            return not response["livemode"]
        charge = response.get("charge")
        if isinstance(charge, dict) and "livemode" in charge:
            return not charge["livemode"]
        return False


__all__ = ["StripeAdapter", "CHARGE_TOKEN", "CUSTOMER_CARD_TOKEN", "MINIMUM_AUTHORIZE_AMOUNTS"]
