"""Fiserv CommerceHub JSON adapter."""

import base64
import hashlib
import hmac
import json
import logging
import re
import time
import uuid
from typing import Any, Dict, Optional

from ...config import CommerceHubConfig
from ...exceptions import TransportFault
from ...formatting import amount_in_dollars, format_number
from ...models import BankAccount, NetworkTokenCard, Outcome, PaymentInstrument, StandardErrorCode, StoredToken
from ...outcome import build_outcome
from ...tokens import TokenSchema
from ...transport import HttpTransport
from ..base import PaymentAdapter

logger = logging.getLogger(__name__)

TRANSACTION_TOKEN = TokenSchema(
    "commerce_hub", ("order_id", "transaction_id"), optional=("order_id",)
)

VERSION = "v1"
TEST_URL = "https://connect-cert.fiservapps.com/ch"
LIVE_URL = "https://connect.fiservapis.com/ch"

ENDPOINTS = {
    "sale": f"/payments/{VERSION}/charges",
    "void": f"/payments/{VERSION}/cancels",
    "refund": f"/payments/{VERSION}/refunds",
    "vault": f"/payments-vas/{VERSION}/tokens",
    "verify": f"/payments-vas/{VERSION}/accounts/verification",
}

# Error bodies worth parsing; anything else is a transport fault.
ACCEPTED_ERROR_STATUSES = (400, 401, 429)

SCHEDULED_REASON_TYPES = frozenset(("recurring", "installment"))

_SCRUB_PATTERNS = (
    (re.compile(r"(Authorization: )[a-zA-Z0-9+./=]+"), r"\1[FILTERED]"),
    (re.compile(r"(Api-Key: )\w+"), r"\1[FILTERED]"),
    (re.compile(r'("apiKey\\?":\s*\\?")\w+'), r"\1[FILTERED]"),
    (re.compile(r'("cardData\\?":\s*\\?")\d+'), r"\1[FILTERED]"),
    (re.compile(r'("securityCode\\?":\s*\\?")\d+'), r"\1[FILTERED]"),
    (re.compile(r'("cavv\\?":\s*\\?")\w+'), r"\1[FILTERED]"),
)


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int):
            data = data[key] if -len(data) <= key < len(data) else None
        else:
            return None
    return data


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class CommerceHubAdapter(PaymentAdapter):
    """Fiserv CommerceHub REST API.

    Charges answer with ``order_id|transaction_id`` references (the order id
    may be empty); vault tokens are returned bare. CommerceHub sends no
    stable decline codes, so failures are classified from their message.
    """

    display_name = "CommerceHub"
    homepage_url = "https://developer.fiserv.com/product/CommerceHub"
    supported_countries = ("US",)
    supported_cardtypes = ("visa", "master", "american_express", "discover")

    def __init__(self, config: CommerceHubConfig, transport: Optional[HttpTransport] = None) -> None:
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.timeout)

    @property
    def base_url(self) -> str:
        return TEST_URL if self.config.test_mode else LIVE_URL

    # ==================== Operations ====================

    def purchase(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("purchase", "bank accounts are not supported")
        rejected = self._reject_order_id(options)
        if rejected:
            return rejected
        post: Dict[str, Any] = {}
        self._add_transaction_details(post, options, "sale", capture=True, create_token=False)
        self._build_purchase_and_auth_request(post, money, payment, options)
        return self._commit("sale", post, options)

    def authorize(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("authorize", "bank accounts are not supported")
        rejected = self._reject_order_id(options)
        if rejected:
            return rejected
        post: Dict[str, Any] = {}
        self._add_transaction_details(post, options, "sale", capture=False, create_token=False)
        self._build_purchase_and_auth_request(post, money, payment, options)
        return self._commit("sale", post, options)

    def capture(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        rejected = self._reject_order_id(options)
        if rejected:
            return rejected
        post: Dict[str, Any] = {}
        if money is not None:
            self._add_invoice(post, money, options)
        self._add_transaction_details(post, options, "capture", capture=True)
        post["referenceTransactionDetails"] = {"referenceTransactionId": token.transaction_id}
        self._add_dynamic_descriptors(post, options)
        return self._commit("sale", post, {**options, "order_id": options.get("order_id") or token.order_id})

    def refund(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        post: Dict[str, Any] = {}
        if money is not None:
            self._add_invoice(post, money, options)
        self._add_transaction_details(post, options)
        self._add_reference_details(post, token.transaction_id, options)
        return self._commit("refund", post, options)

    def void(self, reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        post: Dict[str, Any] = {}
        self._add_transaction_details(post, options)
        self._add_reference_details(post, token.transaction_id, options)
        return self._commit("void", post, options)

    def credit(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("credit", "bank accounts are not supported")
        post: Dict[str, Any] = {}
        self._add_invoice(post, money, options)
        self._add_transaction_details(post, options)
        self._add_transaction_interaction(post, options)
        self._add_payment(post, payment, options)
        return self._commit("refund", post, options)

    def store(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("store", "bank accounts are not supported")
        post: Dict[str, Any] = {}
        self._add_payment(post, payment, options)
        self._add_billing_address(post, payment, options)
        self._add_transaction_details(post, options)
        self._add_transaction_interaction(post, options)
        return self._commit("vault", post, options)

    def verify(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        """Native account verification; succeeds when the account is ``VERIFIED``."""
        if isinstance(payment, BankAccount):
            return self.unsupported("verify", "bank accounts are not supported")
        post: Dict[str, Any] = {}
        self._add_payment(post, payment, options)
        self._add_billing_address(post, payment, options)
        self._add_transaction_details(post, options, "verify")
        return self._commit("verify", post, options)

    def supports_scrubbing(self) -> bool:
        return True

    def scrub(self, transcript: str) -> str:
        for pattern, replacement in _SCRUB_PATTERNS:
            transcript = pattern.sub(replacement, transcript)
        return transcript

    @staticmethod
    def _reject_order_id(options: Dict[str, Any]) -> Optional[Outcome]:
        order_id = options.get("order_id")
        if TRANSACTION_TOKEN.fits(order_id):
            return None
        return Outcome.failure(
            f"order_id may not contain {TRANSACTION_TOKEN.delimiter!r}",
            standard_error=StandardErrorCode.PROCESSING_ERROR,
        )

    # ==================== Request building ====================

    def _build_purchase_and_auth_request(
        self, post: Dict[str, Any], money: int, payment: PaymentInstrument, options: Dict[str, Any]
    ) -> None:
        self._add_three_d_secure(post, options)
        self._add_invoice(post, money, options)
        self._add_payment(post, payment, options)
        self._add_stored_credentials(post, options)
        self._add_transaction_interaction(post, options)
        self._add_billing_address(post, payment, options)
        self._add_shipping_address(post, options)
        self._add_dynamic_descriptors(post, options)

    def _add_invoice(self, post: Dict[str, Any], money: int, options: Dict[str, Any]) -> None:
        post["amount"] = {"total": float(amount_in_dollars(money)), "currency": self.currency(options)}

    @staticmethod
    def _add_transaction_details(
        post: Dict[str, Any],
        options: Dict[str, Any],
        action: Optional[str] = None,
        capture: Optional[bool] = None,
        create_token: Optional[bool] = None,
    ) -> None:
        details: Dict[str, Any] = {
            "captureFlag": capture,
            "createToken": create_token,
            "physicalGoodsIndicator": options.get("physical_goods_indicator") in (True, "true"),
        }
        if action in ("sale", "verify"):
            details["merchantOrderId"] = options.get("order_id")
            details["merchantTransactionId"] = str(uuid.uuid4().int)[:12]
        if action != "capture":
            details["merchantInvoiceNumber"] = options.get("order_id")
        post["transactionDetails"] = _compact(details)

    @staticmethod
    def _add_reference_details(post: Dict[str, Any], transaction_id: str, options: Dict[str, Any]) -> None:
        post["referenceTransactionDetails"] = {
            "referenceTransactionId": transaction_id,
            "referenceTransactionType": options.get("reference_transaction_type") or "CHARGES",
        }

    @staticmethod
    def _add_transaction_interaction(post: Dict[str, Any], options: Dict[str, Any]) -> None:
        interaction: Dict[str, Any] = {
            "origin": options.get("origin") or "ECOM",
            "eciIndicator": _ecommerce_indicator(options),
            "posConditionCode": options.get("pos_condition_code") or "CARD_NOT_PRESENT_ECOM",
        }
        if not options.get("encryption_data"):
            interaction["posEntryMode"] = options.get("pos_entry_mode") or "MANUAL"
        interaction["additionalPosInformation"] = {
            "dataEntrySource": options.get("data_entry_source") or "UNSPECIFIED"
        }
        post["transactionInteraction"] = interaction

    @staticmethod
    def _add_three_d_secure(post: Dict[str, Any], options: Dict[str, Any]) -> None:
        three_d_secure = options.get("three_d_secure")
        if not three_d_secure:
            return
        post["additionalData3DS"] = _compact({
            "dsTransactionId": three_d_secure.get("ds_transaction_id"),
            "authenticationStatus": three_d_secure.get("authentication_response_status"),
            "serverTransactionId": three_d_secure.get("three_ds_server_trans_id"),
            "acsTransactionId": three_d_secure.get("acs_transaction_id"),
            "mpiData": _compact({
                "cavv": three_d_secure.get("cavv"),
                "eci": three_d_secure.get("eci"),
                "xid": three_d_secure.get("xid"),
            }),
            "versionData": {"recommendedVersion": three_d_secure.get("version")},
        })

    @staticmethod
    def _add_stored_credentials(post: Dict[str, Any], options: Dict[str, Any]) -> None:
        stored_credential = options.get("stored_credential")
        if not stored_credential:
            return
        post["storedCredentials"] = {
            "sequence": "FIRST" if stored_credential.get("initial_transaction") else "SUBSEQUENT",
            "initiator": "MERCHANT" if stored_credential.get("initiator") == "merchant" else "CARD_HOLDER",
            "scheduled": stored_credential.get("reason_type") in SCHEDULED_REASON_TYPES,
            "schemeReferenceTransactionId": (
                options.get("scheme_reference_transaction_id") or stored_credential.get("network_transaction_id")
            ),
        }

    @staticmethod
    def _add_payment(post: Dict[str, Any], payment: PaymentInstrument, options: Dict[str, Any]) -> None:
        source: Dict[str, Any] = {}
        if isinstance(payment, StoredToken):
            source["sourceType"] = "PaymentToken"
            source["tokenData"] = payment.value
            if options.get("token_source"):
                source["tokenSource"] = options["token_source"]
            month, year = options.get("card_expiration_month"), options.get("card_expiration_year")
            if month or year:
                source["card"] = _compact({"expirationMonth": month, "expirationYear": year})
        elif isinstance(payment, NetworkTokenCard) and payment.mobile_wallet:
            source["sourceType"] = "DecryptedWallet"
            source["card"] = {
                "cardData": payment.number,
                "expirationMonth": format_number(payment.month, "two_digits"),
                "expirationYear": format_number(payment.year, "four_digits"),
            }
            source["cavv"] = payment.payment_cryptogram
            source["walletType"] = payment.source.upper()
        elif isinstance(payment, NetworkTokenCard):
            source["sourceType"] = "PaymentToken"
            source["tokenData"] = payment.number
            source["tokenSource"] = "NETWORK_TOKEN"
            source["cryptogram"] = payment.payment_cryptogram
            source["card"] = {
                "expirationMonth": format_number(payment.month, "two_digits"),
                "expirationYear": format_number(payment.year, "four_digits"),
            }
        elif options.get("encryption_data"):
            source["sourceType"] = "PaymentCard"
            source["encryptionData"] = options["encryption_data"]
        else:
            card: Dict[str, Any] = {"cardData": payment.number}
            if payment.month:
                card["expirationMonth"] = format_number(payment.month, "two_digits")
            if payment.year:
                card["expirationYear"] = format_number(payment.year, "four_digits")
            if payment.verification_value:
                card["securityCode"] = payment.verification_value
                card["securityCodeIndicator"] = "PROVIDED"
            source["sourceType"] = "PaymentCard"
            source["card"] = card
        post["source"] = source

    @staticmethod
    def _address(address: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        fields = (
            ("street", "address1"),
            ("houseNumberOrName", "address2"),
            ("recipientNameOrAddress", "name"),
            ("city", "city"),
            ("stateOrProvince", "state"),
            ("postalCode", "zip"),
            ("country", "country"),
        )
        for key, field in fields:
            if address.get(field):
                result[key] = address[field]
        return result

    def _add_billing_address(self, post: Dict[str, Any], payment: PaymentInstrument, options: Dict[str, Any]) -> None:
        billing = options.get("billing_address")
        if not billing:
            return
        billing_address: Dict[str, Any] = {}
        if billing.get("name"):
            first_name, _, last_name = billing["name"].strip().rpartition(" ")
            if not first_name:
                first_name, last_name = last_name, ""
            billing_address["firstName"] = first_name
            if last_name:
                billing_address["lastName"] = last_name
        elif not isinstance(payment, StoredToken):
            if payment.first_name:
                billing_address["firstName"] = payment.first_name
            if payment.last_name:
                billing_address["lastName"] = payment.last_name
        address = self._address(billing)
        if address:
            billing_address["address"] = address
        if billing.get("phone_number"):
            billing_address["phone"] = {"phoneNumber": billing["phone_number"]}
        post["billingAddress"] = billing_address

    def _add_shipping_address(self, post: Dict[str, Any], options: Dict[str, Any]) -> None:
        shipping = options.get("shipping_address")
        if not shipping:
            return
        shipping_address: Dict[str, Any] = {}
        address = self._address(shipping)
        if address:
            shipping_address["address"] = address
        if shipping.get("phone_number"):
            shipping_address["phone"] = {"phoneNumber": shipping["phone_number"]}
        post["shippingAddress"] = shipping_address

    @staticmethod
    def _add_dynamic_descriptors(post: Dict[str, Any], options: Dict[str, Any]) -> None:
        fields = (
            ("mcc", "mcc"),
            ("merchantName", "merchant_name"),
            ("customerServiceNumber", "customer_service_number"),
            ("serviceEntitlement", "service_entitlement"),
            ("address", "dynamic_descriptors_address"),
        )
        if not any(option in options for _, option in fields):
            return
        post["dynamicDescriptors"] = {key: options[option] for key, option in fields if options.get(option)}

    # ==================== Transport ====================

    def _headers(self, body: str, options: Dict[str, Any]) -> Dict[str, str]:
        timestamp = str(int(time.time() * 1000))
        client_request_id = str(options.get("client_request_id") or uuid.uuid4())
        raw_signature = f"{self.config.api_key}{client_request_id}{timestamp}{body}"
        digest = hmac.new(self.config.api_secret.encode(), raw_signature.encode(), hashlib.sha256).digest()
        headers = {
            "Client-Request-Id": client_request_id,
            "Api-Key": self.config.api_key,
            "Timestamp": timestamp,
            "Accept-Language": "application/json",
            "Auth-Token-Type": "HMAC",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": base64.b64encode(digest).decode(),
        }
        headers.update(options.get("headers_identifiers") or {})
        return headers

    def _commit(self, action: str, post: Dict[str, Any], options: Dict[str, Any]) -> Outcome:
        post["merchantDetails"] = {
            "terminalId": self.config.terminal_id,
            "merchantId": self.config.merchant_id,
        }
        body = json.dumps(post)
        http_response = self.transport.post(
            self.base_url + ENDPOINTS[action],
            body,
            headers=self._headers(body, options),
            accept_statuses=ACCEPTED_ERROR_STATUSES,
        )
        try:
            response = http_response.json()
        except ValueError as exc:
            logger.error("Unreadable CommerceHub %s response (HTTP %s)", action, http_response.status_code)
            raise TransportFault(
                f"Unreadable CommerceHub response: {exc}", status_code=http_response.status_code
            ) from exc
        if not isinstance(response, dict):
            response = {"data": response}

        success = self._success_from(response, action)
        association = _dig(
            response,
            "paymentReceipt", "processorResponseDetails", "bankAssociationDetails",
            "avsSecurityCodeResponse", "association",
        ) or {}
        outcome = build_outcome(
            response,
            success,
            self._message_from(response, action),
            reference=self._authorization_from(action, response, options),
            address_signal=association.get("avsCode"),
            cvc_signal=association.get("securityCodeResponse"),
            error_code=None if success else _dig(response, "error", 0, "code"),
            message_heuristic=True,
            test_mode=self.config.test_mode,
            network_transaction_id=_dig(
                response, "paymentReceipt", "processorResponseDetails", "networkTransactionId"
            ),
        )
        logger.info("CommerceHub %s %s", action, "succeeded" if success else f"failed: {outcome.message}")
        return outcome

    def _success_from(self, response: Dict[str, Any], action: str) -> bool:
        if action == "verify":
            return self._message_from(response, action) == "VERIFIED"
        code = _dig(response, "paymentReceipt", "processorResponseDetails", "responseCode") or _dig(
            response, "paymentTokens", 0, "tokenResponseCode"
        )
        return code == "000"

    @staticmethod
    def _message_from(response: Dict[str, Any], action: str) -> Optional[str]:
        if response.get("error"):
            return _dig(response, "error", 0, "message")
        if action == "verify":
            return _dig(response, "gatewayResponse", "transactionState")
        return _dig(response, "paymentReceipt", "processorResponseDetails", "responseMessage") or _dig(
            response, "gatewayResponse", "transactionType"
        )

    @staticmethod
    def _authorization_from(action: str, response: Dict[str, Any], options: Dict[str, Any]) -> Optional[str]:
        if action == "vault":
            return _dig(response, "paymentTokens", 0, "tokenData")
        transaction_id = _dig(response, "gatewayResponse", "transactionProcessingDetails", "transactionId")
        if not transaction_id:
            return None
        order_id = options.get("order_id") if action == "sale" else None
        return TRANSACTION_TOKEN.encode(order_id, transaction_id)


def _ecommerce_indicator(options: Dict[str, Any]) -> str:
    if options.get("eci_indicator"):
        return options["eci_indicator"]
    three_d_secure = options.get("three_d_secure")
    if not three_d_secure:
        return "CHANNEL_ENCRYPTED"
    eci = three_d_secure.get("eci")
    if eci in ("2", "02", "5", "05"):
        return "SECURE_ECOM"
    if eci in ("1", "01", "6", "06"):
        return "NON_AUTH_ECOM"
    return "CHANNEL_ENCRYPTED"


__all__ = ["CommerceHubAdapter", "TRANSACTION_TOKEN"]
