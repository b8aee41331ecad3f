"""Vantiv eCommerce (Litle) XML adapter."""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

from ...config import LitleConfig
from ...exceptions import TransportFault
from ...formatting import format_number, truncate
from ...models import BankAccount, CreditCard, NetworkTokenCard, Outcome, PaymentInstrument, StoredToken
from ...outcome import build_outcome
from ...tokens import TokenSchema
from ...transport import HttpTransport
from ..base import PaymentAdapter

logger = logging.getLogger(__name__)

TRANSACTION_TOKEN = TokenSchema(
    "litle", ("transaction_id", "kind", "amount"), delimiter=";", optional=("amount",)
)

VERSION = "9.14"
NAMESPACE = "http://www.litle.com/schema"

TEST_URL = "https://www.testvantivcnp.com/sandbox/communicator/online"
PRELIVE_URL = "https://payments.vantivprelive.com/vap/communicator/online"
POSTLIVE_URL = "https://payments.vantivpostlive.com/vap/communicator/online"
LIVE_URL = "https://payments.vantivcnp.com/vap/communicator/online"

CARD_TYPES = {
    "visa": "VI",
    "master": "MC",
    "american_express": "AX",
    "discover": "DI",
    "jcb": "JC",
    "diners_club": "DC",
}

SUCCESS_CODES = frozenset(("000", "001", "010", "136", "470", "473"))
TOKEN_SUCCESS_CODES = frozenset(("000", "801", "802"))

_STORED_CREDENTIAL_SOURCES = {
    "unscheduled": "ecommerce",
    "installment": "installment",
    "recurring": "recurring",
}
_INITIAL_PROCESSING_TYPES = {
    "unscheduled": "initialCOF",
    "installment": "initialInstallment",
    "recurring": "initialRecurring",
}

_SCRUB_TAGS = (
    "user", "password", "number", "accNum", "routingNum", "cardValidationNum",
    "accountNumber", "paypageRegistrationId", "authenticationValue",
)


def _add(parent: ET.Element, tag: str, value: Any = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if value is not None:
        element.text = str(value).lower() if isinstance(value, bool) else str(value)
    return element


def _add_if(parent: ET.Element, tag: str, value: Any) -> None:
    if value is not None and value != "":
        _add(parent, tag, value)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


class LitleAdapter(PaymentAdapter):
    """Vantiv eCommerce (formerly Litle & Co.) online XML API.

    References have the form ``litleTxnId;kind;amount`` so that ``void``
    can pick the matching reversal message. Stored cards are referenced by
    the bare Litle token returned from ``store``.
    """

    display_name = "Vantiv eCommerce"
    homepage_url = "https://www.fisglobal.com/"
    supported_countries = ("US",)
    supported_cardtypes = ("visa", "master", "american_express", "discover", "diners_club", "jcb")
    verify_amount = 0

    def __init__(self, config: LitleConfig, transport: Optional[HttpTransport] = None) -> None:
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.timeout)

    @property
    def url(self) -> str:
        if self.config.url_override == "postlive":
            return POSTLIVE_URL
        if self.config.url_override == "prelive":
            return PRELIVE_URL
        return TEST_URL if self.config.test_mode else LIVE_URL

    # ==================== Operations ====================

    def purchase(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        root = self._request()
        if isinstance(payment, BankAccount):
            sale = ET.SubElement(root, "echeckSale", self._transaction_attributes(options))
            self._add_echeck_params(sale, money, payment, options)
            return self._commit("echeckSales", root, money)

        sale = ET.SubElement(root, "sale", self._transaction_attributes(options))
        self._add_auth_purchase_params(sale, money, payment, options)
        return self._commit("sale", root, money)

    def authorize(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        root = self._request()
        if isinstance(payment, BankAccount):
            verification = ET.SubElement(root, "echeckVerification", self._transaction_attributes(options))
            self._add_echeck_params(verification, money, payment, options)
            return self._commit("echeckVerification", root, money)

        authorization = ET.SubElement(root, "authorization", self._transaction_attributes(options))
        self._add_auth_purchase_params(authorization, money, payment, options)
        return self._commit("authorization", root, money)

    def capture(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        root = self._request()
        self._add_descriptor(root, options)
        capture = ET.SubElement(root, "capture", self._transaction_attributes(options))
        _add(capture, "litleTxnId", token.transaction_id)
        _add_if(capture, "amount", money)
        return self._commit("capture", root, money)

    def refund(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        kind = "echeckCredit" if token.kind == "echeckSales" else "credit"
        root = self._request()
        self._add_descriptor(root, options)
        credit = ET.SubElement(root, kind, self._transaction_attributes(options))
        _add(credit, "litleTxnId", token.transaction_id)
        _add_if(credit, "amount", money)
        return self._commit(kind, root)

    def credit(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        """Unreferenced credit to a card or bank account."""
        root = self._request()
        self._add_descriptor(root, options)
        if isinstance(payment, BankAccount):
            credit = ET.SubElement(root, "echeckCredit", self._transaction_attributes(options))
            self._add_echeck_params(credit, money, payment, options)
            return self._commit("echeckCredit", root)

        credit = ET.SubElement(root, "credit", self._transaction_attributes(options))
        _add(credit, "orderId", truncate(options.get("order_id"), 24))
        _add(credit, "amount", money)
        self._add_order_source(credit, payment, options)
        self._add_billing_address(credit, payment, options)
        self._add_payment_method(credit, payment, options)
        self._add_pos(credit, payment)
        self._add_merchant_data(credit, options)
        return self._commit("credit", root)

    def void(self, reference: str, **options: Any) -> Outcome:
        token = TRANSACTION_TOKEN.decode(reference)
        kind = self._void_type(token.kind)
        root = self._request()
        void = ET.SubElement(root, kind, self._transaction_attributes(options))
        _add(void, "litleTxnId", token.transaction_id)
        if kind == "authReversal":
            _add_if(void, "amount", token.amount)
        return self._commit(kind, root)

    def store(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        root = self._request()
        register = ET.SubElement(root, "registerTokenRequest", self._transaction_attributes(options))
        _add(register, "orderId", truncate(options.get("order_id"), 24))
        if isinstance(payment, StoredToken):
            _add(register, "paypageRegistrationId", payment.value)
        elif isinstance(payment, BankAccount):
            echeck = _add(register, "echeckForToken")
            _add(echeck, "accNum", payment.account_number)
            _add(echeck, "routingNum", payment.routing_number)
        else:
            _add(register, "accountNumber", payment.number)
            _add_if(register, "cardValidationNum", payment.verification_value)
        return self._commit("registerToken", root)

    def supports_scrubbing(self) -> bool:
        return True

    def scrub(self, transcript: str) -> str:
        for tag in _SCRUB_TAGS:
            transcript = re.sub(rf"(<{tag}>).+?(</{tag}>)", r"\1[FILTERED]\2", transcript)
        return transcript

    # ==================== Request building ====================

    def _request(self) -> ET.Element:
        root = ET.Element(
            "litleOnlineRequest",
            {"merchantId": self.config.merchant_id, "version": VERSION, "xmlns": NAMESPACE},
        )
        authentication = _add(root, "authentication")
        _add(authentication, "user", self.config.login)
        _add(authentication, "password", self.config.password)
        return root

    @staticmethod
    def _transaction_attributes(options: Dict[str, Any]) -> Dict[str, str]:
        attributes = {
            "id": truncate(options.get("id") or options.get("order_id"), 24),
            "reportGroup": options.get("merchant") or "Default Report Group",
            "customerId": options.get("customer_id"),
        }
        return {key: str(value) for key, value in attributes.items() if value is not None}

    @staticmethod
    def _void_type(kind: str) -> str:
        if kind == "authorization":
            return "authReversal"
        if kind == "echeckSales":
            return "echeckVoid"
        return "void"

    def _add_auth_purchase_params(
        self, parent: ET.Element, money: int, payment: PaymentInstrument, options: Dict[str, Any]
    ) -> None:
        _add(parent, "orderId", truncate(options.get("order_id"), 24))
        _add(parent, "amount", money)

        stored_credential = options.get("stored_credential") or {}
        if stored_credential and stored_credential.get("initial_transaction") is False:
            # subsequent stored-credential payments replace the order source
            _add_if(parent, "orderSource", _STORED_CREDENTIAL_SOURCES.get(stored_credential.get("reason_type")))
        else:
            self._add_order_source(parent, payment, options)

        self._add_billing_address(parent, payment, options)
        if not isinstance(payment, StoredToken):
            self._add_address(_add(parent, "shipToAddress"), options.get("shipping_address"))
        self._add_payment_method(parent, payment, options)
        self._add_pos(parent, payment)
        self._add_descriptor(parent, options)
        self._add_merchant_data(parent, options)
        if options.get("debt_repayment") is True:
            _add(parent, "debtRepayment", True)
        self._add_stored_credential(parent, stored_credential)
        _add_if(parent, "fraudFilterOverride", options.get("fraud_filter_override"))

    def _add_echeck_params(
        self, parent: ET.Element, money: int, payment: BankAccount, options: Dict[str, Any]
    ) -> None:
        _add(parent, "orderId", truncate(options.get("order_id"), 24))
        _add(parent, "amount", money)
        self._add_order_source(parent, payment, options)
        self._add_billing_address(parent, payment, options)
        self._add_payment_method(parent, payment, options)
        self._add_descriptor(parent, options)

    @staticmethod
    def _add_order_source(parent: ET.Element, payment: PaymentInstrument, options: Dict[str, Any]) -> None:
        if options.get("order_source"):
            source = options["order_source"]
        elif isinstance(payment, NetworkTokenCard) and payment.source == "apple_pay":
            source = "applepay"
        elif isinstance(payment, NetworkTokenCard) and payment.source == "google_pay":
            source = "androidpay"
        elif isinstance(payment, CreditCard) and payment.track_data:
            source = "retail"
        else:
            source = "ecommerce"
        _add(parent, "orderSource", source)

    def _add_billing_address(self, parent: ET.Element, payment: PaymentInstrument, options: Dict[str, Any]) -> None:
        if isinstance(payment, StoredToken):
            return
        bill_to = _add(parent, "billToAddress")
        _add_if(bill_to, "name", payment.name)
        if isinstance(payment, BankAccount):
            _add_if(bill_to, "firstName", payment.first_name)
            _add_if(bill_to, "lastName", payment.last_name)
        _add_if(bill_to, "email", options.get("email"))
        self._add_address(bill_to, options.get("billing_address"))

    @staticmethod
    def _add_address(parent: ET.Element, address: Optional[Dict[str, Any]]) -> None:
        if not address:
            return
        _add_if(parent, "companyName", address.get("company"))
        _add_if(parent, "addressLine1", truncate(address.get("address1"), 35))
        _add_if(parent, "addressLine2", truncate(address.get("address2"), 35))
        _add_if(parent, "city", truncate(address.get("city"), 35))
        _add_if(parent, "state", address.get("state"))
        _add_if(parent, "zip", address.get("zip"))
        _add_if(parent, "country", address.get("country"))
        _add_if(parent, "phone", address.get("phone"))

    @staticmethod
    def _add_payment_method(parent: ET.Element, payment: PaymentInstrument, options: Dict[str, Any]) -> None:
        if isinstance(payment, StoredToken):
            token = _add(parent, "token")
            _add(token, "litleToken", payment.value)
            month, year = options.get("basis_expiration_month"), options.get("basis_expiration_year")
            if month and year:
                _add(token, "expDate", format_number(month, "two_digits") + format_number(year, "two_digits"))
            return

        if isinstance(payment, BankAccount):
            account_type = payment.account_type or payment.account_holder_type
            echeck = _add(parent, "echeck")
            _add(echeck, "accType", account_type.capitalize() if account_type else None)
            _add(echeck, "accNum", payment.account_number)
            _add(echeck, "routingNum", payment.routing_number)
            _add_if(echeck, "checkNum", payment.number)
            return

        card = _add(parent, "card")
        if payment.track_data:
            _add(card, "track", payment.track_data)
            return

        _add(card, "type", CARD_TYPES.get(payment.brand or ""))
        _add(card, "number", payment.number)
        _add(card, "expDate", format_number(payment.month, "two_digits") + format_number(payment.year, "two_digits"))
        _add(card, "cardValidationNum", payment.verification_value)

        if isinstance(payment, NetworkTokenCard):
            authentication = _add(parent, "cardholderAuthentication")
            _add(authentication, "authenticationValue", payment.payment_cryptogram)
        elif str(options.get("order_source") or "").startswith("3ds"):
            authentication = _add(parent, "cardholderAuthentication")
            _add_if(authentication, "authenticationValue", options.get("cavv"))
            _add_if(authentication, "authenticationTransactionId", options.get("xid"))

    @staticmethod
    def _add_pos(parent: ET.Element, payment: PaymentInstrument) -> None:
        if not isinstance(payment, CreditCard) or not payment.track_data:
            return
        pos = _add(parent, "pos")
        _add(pos, "capability", "magstripe")
        _add(pos, "entryMode", "completeread")
        _add(pos, "cardholderId", "signature")

    @staticmethod
    def _add_descriptor(parent: ET.Element, options: Dict[str, Any]) -> None:
        if not (options.get("descriptor_name") or options.get("descriptor_phone")):
            return
        billing = _add(parent, "customBilling")
        _add_if(billing, "phone", options.get("descriptor_phone"))
        _add_if(billing, "descriptor", options.get("descriptor_name"))

    @staticmethod
    def _add_merchant_data(parent: ET.Element, options: Dict[str, Any]) -> None:
        keys = ("affiliate", "campaign", "merchant_grouping_id")
        if not any(options.get(key) for key in keys):
            return
        data = _add(parent, "merchantData")
        _add_if(data, "affiliate", options.get("affiliate"))
        _add_if(data, "campaign", options.get("campaign"))
        _add_if(data, "merchantGroupingId", options.get("merchant_grouping_id"))

    @staticmethod
    def _add_stored_credential(parent: ET.Element, stored_credential: Dict[str, Any]) -> None:
        if not stored_credential:
            return
        reason = stored_credential.get("reason_type")
        if stored_credential.get("initial_transaction"):
            _add_if(parent, "processingType", _INITIAL_PROCESSING_TYPES.get(reason))
            return
        if reason == "unscheduled":
            _add(parent, "processingType", f"{stored_credential.get('initiator')}InitiatedCOF")
        if stored_credential.get("initiator") == "merchant":
            _add_if(parent, "originalNetworkTransactionId", stored_credential.get("network_transaction_id"))

    # ==================== Response handling ====================

    def _parse(self, kind: str, body: bytes) -> Dict[str, Any]:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            logger.error("Unreadable Litle %s response: %s", kind, exc)
            raise TransportFault(f"Unreadable Litle response: {exc}") from exc

        parsed: Dict[str, Any] = {}
        for response in root:
            if _local_name(response.tag) != f"{kind}Response":
                continue
            if kind == "sale":
                parsed["duplicate"] = response.get("duplicate") == "true"
            for node in response:
                name = _local_name(node.tag)
                children = list(node)
                if not children:
                    parsed[name] = node.text or ""
                for child in children:
                    parsed[f"{name}_{_local_name(child.tag)}"] = child.text or ""
            break

        if not parsed or set(parsed) == {"duplicate"}:
            parsed["response"] = root.get("response")
            parsed["message"] = root.get("message")
        return parsed

    def _commit(self, kind: str, root: ET.Element, money: Optional[int] = None) -> Outcome:
        request = ET.tostring(root, encoding="unicode")
        response = self.transport.post(self.url, request, headers={"Content-Type": "text/xml"})
        parsed = self._parse(kind, response.content)

        code = parsed.get("response")
        if kind == "registerToken":
            success = code in TOKEN_SUCCESS_CODES
            reference = parsed.get("litleToken")
        else:
            success = code in SUCCESS_CODES
            reference = None
            if parsed.get("litleTxnId"):
                reference = TRANSACTION_TOKEN.encode(parsed["litleTxnId"], kind, money)

        outcome = build_outcome(
            parsed,
            success,
            self._message_from(parsed),
            reference=reference,
            address_signal=parsed.get("fraudResult_avsResult"),
            address_vocabulary="litle",
            cvc_signal=parsed.get("fraudResult_cardValidationResult"),
            error_code=code,
            error_vocabulary="litle",
            test_mode=self.config.test_mode,
            network_transaction_id=parsed.get("networkTransactionId"),
        )
        logger.info("Litle %s %s (response %s)", kind, "succeeded" if success else "failed", code)
        return outcome

    @staticmethod
    def _message_from(parsed: Dict[str, Any]) -> Optional[str]:
        code, message = parsed.get("response"), parsed.get("message")
        if code == "010":
            return f"{message}: The authorized amount is less than the requested amount."
        if code == "001":
            return f"{message}: This is sent to acknowledge that the submitted transaction has been received."
        return message


__all__ = ["LitleAdapter", "TRANSACTION_TOKEN"]
