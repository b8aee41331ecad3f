"""Heartland Payment Systems (Portico) SOAP adapter."""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterator, Optional

from ...config import HpsConfig
from ...exceptions import TransportFault
from ...formatting import amount_in_dollars, truncate
from ...models import BankAccount, CreditCard, NetworkTokenCard, Outcome, PaymentInstrument, StoredToken
from ...outcome import build_outcome
from ...tokens import TokenSchema
from ...transport import HttpTransport
from ..base import PaymentAdapter

logger = logging.getLogger(__name__)

TRANSACTION_TOKEN = TokenSchema(
    "hps", ("transaction_id", "follow_up_id"), optional=("follow_up_id",)
)

VERSION = "1.0"
LIVE_URL = "https://api2.heartlandportico.com/hps.exchange.posgateway/posgatewayservice.asmx"
TEST_URL = "https://cert.api2.heartlandportico.com/Hps.Exchange.PosGateway/PosGatewayService.asmx"

SOAP_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"
HPS_NAMESPACE = "http://Hps.Exchange.PosGateway"

SUCCESSFUL_RESPONSE_CODES = frozenset(("0", "00", "85"))

PAYMENT_DATA_SOURCES = {
    "apple_pay": "ApplePay",
    "google_pay": "GooglePayApp",
}

# Transactions that carry their fields directly instead of inside Block1
UNBLOCKED_ACTIONS = frozenset(("CreditVoid", "CreditAddToBatch"))

ISSUER_MESSAGES = {
    "13": "Must be greater than or equal 0.",
    "14": "The card number is incorrect.",
    "54": "The card has expired.",
    "55": "The 4-digit pin is invalid.",
    "75": "Maximum number of pin retries exceeded.",
    "80": "Card expiration date is invalid.",
    "86": "Can't verify card pin number.",
}
ISSUER_DECLINE_CODES = frozenset(
    "02 03 04 05 41 43 44 51 56 61 62 63 65 78".split()
)
ISSUER_ERROR_CODES = frozenset(
    "06 07 12 15 19 52 53 57 58 76 77 91 96 EC".split()
)
ISSUER_CVC_CODES = frozenset(("EB", "N7"))

GATEWAY_MESSAGES = {
    "-2": "Authentication error. Please double check your service configuration.",
    "12": "Invalid CPC data.",
    "13": "Invalid card data.",
    "14": "The card number is not a valid credit card number.",
    "30": "Gateway timed out.",
}

_SCRUB_TAGS = ("CardNbr", "CVV2", "SecretAPIKey", "PaymentData", "RoutingNumber", "AccountNumber", "Cryptogram")


def _hps(parent: ET.Element, tag: str, value: Any = None, **attributes: str) -> ET.Element:
    element = ET.SubElement(parent, f"hps:{tag}", attributes)
    if value is not None:
        element.text = str(value)
    return element


def _hps_if(parent: ET.Element, tag: str, value: Any) -> None:
    if value is not None and value != "":
        _hps(parent, tag, value)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find(root: ET.Element, name: str) -> Optional[ET.Element]:
    return next(_find_all(root, name), None)


def _find_all(root: ET.Element, name: str) -> Iterator[ET.Element]:
    return (element for element in root.iter() if _local_name(element.tag) == name)


def issuer_message(code: Optional[str]) -> Optional[str]:
    if code in ISSUER_DECLINE_CODES:
        return "The card was declined."
    if code in ISSUER_ERROR_CODES:
        return "An error occurred while processing the card."
    if code in ISSUER_CVC_CODES:
        return "The card's security code is incorrect."
    return ISSUER_MESSAGES.get(code or "")


class HpsAdapter(PaymentAdapter):
    """Heartland Portico gateway over SOAP.

    Captures answer with ``original|capture`` references; every follow-up
    call sends only the first (gateway transaction) id.
    """

    display_name = "Heartland Payment Systems"
    homepage_url = "http://developer.heartlandpaymentsystems.com/SecureSubmit/"
    supported_countries = ("US",)
    supported_cardtypes = ("visa", "master", "american_express", "discover", "jcb", "diners_club")

    def __init__(self, config: HpsConfig, transport: Optional[HttpTransport] = None) -> None:
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.timeout)

    @property
    def test_mode(self) -> bool:
        """Certification keys contain ``_cert_``; everything else is live."""
        return "_cert_" in self.config.secret_api_key

    @property
    def url(self) -> str:
        return TEST_URL if self.test_mode else LIVE_URL

    # ==================== Operations ====================

    def authorize(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        def body(block: ET.Element) -> None:
            self._add_card_sale_fields(block, money, payment, options)

        return self._commit("CreditAuth", body)

    def purchase(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self._commit("CheckSale", lambda block: self._add_check_sale_fields(block, money, payment, options))

        stored_credential = options.get("stored_credential") or {}
        if stored_credential.get("reason_type") == "recurring":
            def recurring(block: ET.Element) -> None:
                self._add_card_sale_fields(block, money, payment, options)
                data = _hps(block, "RecurringData")
                _hps(data, "OneTime", "N")

            return self._commit("RecurringBilling", recurring)

        return self._commit("CreditSale", lambda block: self._add_card_sale_fields(block, money, payment, options))

    def capture(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        transaction_id = TRANSACTION_TOKEN.decode(reference).transaction_id

        def body(block: ET.Element) -> None:
            self._add_amount(block, money)
            _hps(block, "GatewayTxnId", transaction_id)

        return self._commit("CreditAddToBatch", body, reference=transaction_id)

    def refund(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        transaction_id = TRANSACTION_TOKEN.decode(reference).transaction_id

        def body(block: ET.Element) -> None:
            self._add_amount(block, money)
            _hps(block, "AllowDup", "Y")
            _hps(block, "GatewayTxnId", transaction_id)
            self._add_customer_data(block, None, options)
            self._add_details(block, options)

        return self._commit("CreditReturn", body)

    def credit(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("credit", "bank accounts cannot be credited")

        def body(block: ET.Element) -> None:
            self._add_amount(block, money)
            _hps(block, "AllowDup", "Y")
            self._add_card_or_token(block, payment, options)
            self._add_details(block, options)

        return self._commit("CreditReturn", body)

    def void(self, reference: str, **options: Any) -> Outcome:
        transaction_id = TRANSACTION_TOKEN.decode(reference).transaction_id
        action = "CheckVoid" if options.get("check_void") else "CreditVoid"
        return self._commit(action, lambda block: _hps(block, "GatewayTxnId", transaction_id))

    def verify(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        """Native zero-dollar account verification."""
        if isinstance(payment, BankAccount):
            return self.unsupported("verify", "bank accounts cannot be verified")

        def body(block: ET.Element) -> None:
            self._add_customer_data(block, payment, options)
            _hps_if(block, "TxnDescriptor", options.get("descriptor_name"))
            self._add_card_or_token(block, payment, options)

        return self._commit("CreditAccountVerify", body)

    def supports_scrubbing(self) -> bool:
        return True

    def scrub(self, transcript: str) -> str:
        for tag in _SCRUB_TAGS:
            transcript = re.sub(
                rf"(<hps:{tag}>)[^<]*(</hps:{tag}>)", r"\1[FILTERED]\2", transcript, flags=re.I
            )
        return transcript

    # ==================== Request building ====================

    def _build_request(self, action: str, body) -> str:
        envelope = ET.Element(
            "SOAP:Envelope", {"xmlns:SOAP": SOAP_NAMESPACE, "xmlns:hps": HPS_NAMESPACE}
        )
        soap_body = ET.SubElement(envelope, "SOAP:Body")
        version = _hps(_hps(soap_body, "PosRequest"), f"Ver{VERSION}")

        header = _hps(version, "Header")
        _hps(header, "SecretAPIKey", self.config.secret_api_key)
        _hps_if(header, "DeveloperID", self.config.developer_id)
        _hps_if(header, "VersionNbr", self.config.version_number)
        _hps_if(header, "SiteTrace", self.config.site_trace)

        transaction = _hps(_hps(version, "Transaction"), action)
        body(transaction if action in UNBLOCKED_ACTIONS else _hps(transaction, "Block1"))
        return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(envelope, encoding="unicode")

    def _add_card_sale_fields(
        self, block: ET.Element, money: int, payment: PaymentInstrument, options: Dict[str, Any]
    ) -> None:
        self._add_amount(block, money)
        _hps(block, "AllowDup", "Y")
        self._add_customer_data(block, payment, options)
        self._add_details(block, options)
        _hps_if(block, "TxnDescriptor", options.get("descriptor_name"))
        self._add_card_or_token(block, payment, options)
        self._add_wallet_data(block, payment)
        self._add_three_d_secure(block, options)
        self._add_stored_credential(block, options)

    def _add_check_sale_fields(
        self, block: ET.Element, money: int, account: BankAccount, options: Dict[str, Any]
    ) -> None:
        _hps(block, "CheckAction", "SALE")
        info = _hps(block, "AccountInfo")
        _hps(info, "RoutingNumber", account.routing_number)
        _hps(info, "AccountNumber", account.account_number)
        _hps_if(info, "CheckNumber", account.number)
        _hps_if(info, "AccountType", (account.account_type or "").upper())
        _hps_if(block, "CheckType", (account.account_holder_type or "").upper())
        self._add_amount(block, money)
        _hps(block, "SECCode", options.get("sec_code") or "WEB")
        consumer = _hps(block, "ConsumerInfo")
        _hps_if(consumer, "FirstName", account.first_name)
        _hps_if(consumer, "LastName", account.last_name)
        _hps_if(consumer, "CheckName", options.get("company_name"))
        self._add_details(block, options)

    @staticmethod
    def _add_amount(block: ET.Element, money: Optional[int]) -> None:
        if money is not None:
            _hps(block, "Amt", amount_in_dollars(money))

    @staticmethod
    def _add_customer_data(
        block: ET.Element, payment: Optional[PaymentInstrument], options: Dict[str, Any]
    ) -> None:
        holder = _hps(block, "CardHolderData")
        if isinstance(payment, CreditCard):
            _hps_if(holder, "CardHolderFirstName", payment.first_name)
            _hps_if(holder, "CardHolderLastName", payment.last_name)
        _hps_if(holder, "CardHolderEmail", options.get("email"))
        _hps_if(holder, "CardHolderPhone", options.get("phone"))
        address = options.get("billing_address") or options.get("address")
        if address:
            _hps_if(holder, "CardHolderAddr", address.get("address1"))
            _hps_if(holder, "CardHolderCity", address.get("city"))
            _hps_if(holder, "CardHolderState", address.get("state"))
            if address.get("zip"):
                _hps(holder, "CardHolderZip", re.sub(r"[^0-9a-z]", "", address["zip"], flags=re.I))

    @staticmethod
    def _add_card_or_token(block: ET.Element, payment: PaymentInstrument, options: Dict[str, Any]) -> None:
        card_data = _hps(block, "CardData")
        if isinstance(payment, StoredToken):
            _hps(_hps(card_data, "TokenData"), "TokenValue", payment.value)
        elif payment.track_data:
            _hps(card_data, "TrackData", payment.track_data, method="swipe")
            encryption_type = options.get("encryption_type")
            if encryption_type:
                encryption = _hps(card_data, "EncryptionData")
                _hps(encryption, "Version", encryption_type)
                if encryption_type == "02":
                    _hps(encryption, "EncryptedTrackNumber", options.get("encrypted_track_number"))
                    _hps(encryption, "KTB", options.get("ktb"))
        else:
            manual = _hps(card_data, "ManualEntry")
            _hps(manual, "CardNbr", payment.number)
            _hps(manual, "ExpMonth", payment.month)
            _hps(manual, "ExpYear", payment.year)
            _hps_if(manual, "CVV2", payment.verification_value)
            _hps(manual, "CardPresent", "N")
            _hps(manual, "ReaderPresent", "N")
        _hps(card_data, "TokenRequest", "Y" if options.get("store") else "N")

    @staticmethod
    def _add_details(block: ET.Element, options: Dict[str, Any]) -> None:
        details = _hps(block, "AdditionalTxnFields")
        _hps_if(details, "Description", options.get("description"))
        _hps_if(details, "InvoiceNbr", truncate(options.get("order_id"), 60))
        _hps_if(details, "CustomerID", options.get("customer_id"))

    @staticmethod
    def _add_wallet_data(block: ET.Element, payment: PaymentInstrument) -> None:
        if not isinstance(payment, NetworkTokenCard):
            return
        wallet = _hps(block, "WalletData")
        _hps_if(wallet, "PaymentSource", PAYMENT_DATA_SOURCES.get(payment.source))
        _hps(wallet, "Cryptogram", payment.payment_cryptogram)
        _hps_if(wallet, "ECI", _strip_leading_zero(payment.eci))

    @staticmethod
    def _add_three_d_secure(block: ET.Element, options: Dict[str, Any]) -> None:
        three_d_secure = options.get("three_d_secure")
        if not three_d_secure:
            return
        secure = _hps(block, "Secure3D")
        _hps(secure, "Version", three_d_secure.get("version"))
        _hps_if(secure, "AuthenticationValue", three_d_secure.get("cavv"))
        _hps_if(secure, "ECI", _strip_leading_zero(three_d_secure.get("eci")))
        _hps_if(secure, "DirectoryServerTxnId", three_d_secure.get("ds_transaction_id"))

    @staticmethod
    def _add_stored_credential(block: ET.Element, options: Dict[str, Any]) -> None:
        stored_credential = options.get("stored_credential")
        if not stored_credential:
            return
        on_file = {"customer": "C", "merchant": "M"}.get(stored_credential.get("initiator"))
        data = _hps(block, "CardOnFileData")
        if on_file is None:
            return
        _hps(data, "CardOnFile", on_file)
        _hps_if(data, "CardBrandTxnId", stored_credential.get("network_transaction_id"))

    # ==================== Response handling ====================

    @staticmethod
    def _parse(body: bytes) -> Dict[str, Any]:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            logger.error("Unreadable Heartland response: %s", exc)
            raise TransportFault(f"Unreadable Heartland response: {exc}") from exc

        response: Dict[str, Any] = {}
        header = _find(root, "Header")
        if header is not None:
            for node in header:
                children = list(node)
                if not children:
                    response[_local_name(node.tag)] = node.text or ""
                for child in children:
                    response[_local_name(child.tag)] = child.text or ""

        transaction = _find(root, "Transaction")
        if transaction is not None and len(transaction):
            for node in transaction[0]:
                response[_local_name(node.tag)] = node.text or ""

        fault = _find(root, "Fault")
        if fault is not None:
            text = _find(fault, "Text")
            if text is None:
                text = _find(fault, "faultstring")
            if text is not None:
                response["Fault"] = text.text or ""
        return response

    def _commit(self, action: str, body, reference: Optional[str] = None) -> Outcome:
        request = self._build_request(action, body)
        http_response = self.transport.post(self.url, request, headers={"Content-Type": "text/xml"})
        response = self._parse(http_response.content)

        gateway_code = response.get("GatewayRspCode")
        issuer_code = response.get("RspCode")
        success = gateway_code == "0" and (not issuer_code or issuer_code in SUCCESSFUL_RESPONSE_CODES)

        if gateway_code == "0":
            error_code, error_vocabulary = issuer_code, "iso8583"
        else:
            error_code, error_vocabulary = gateway_code, "hps_gateway"

        transaction_id = response.get("GatewayTxnId")
        if reference and transaction_id:
            token = TRANSACTION_TOKEN.encode(reference, transaction_id)
        elif transaction_id:
            token = TRANSACTION_TOKEN.encode(transaction_id, None)
        else:
            token = None

        outcome = build_outcome(
            response,
            success,
            self._message_from(response),
            reference=token,
            address_signal=response.get("AVSRsltCode"),
            cvc_signal=response.get("CVVRsltCode"),
            error_code=error_code,
            error_vocabulary=error_vocabulary,
            test_mode=self.test_mode,
            network_transaction_id=response.get("CardBrandTxnId"),
        )
        logger.info(
            "Heartland %s %s (gateway %s, issuer %s)",
            action,
            "succeeded" if success else "failed",
            gateway_code,
            issuer_code,
        )
        return outcome

    @staticmethod
    def _message_from(response: Dict[str, Any]) -> Optional[str]:
        if response.get("Fault"):
            return response["Fault"]
        if response.get("GatewayRspCode") == "0":
            if not response.get("RspCode") or response["RspCode"] in SUCCESSFUL_RESPONSE_CODES:
                return response.get("GatewayRspMsg")
            return issuer_message(response.get("RspCode")) or response.get("RspText")
        return GATEWAY_MESSAGES.get(response.get("GatewayRspCode") or "") or response.get("GatewayRspMsg")


def _strip_leading_zero(value: Optional[str]) -> Optional[str]:
    if not value or value[0] != "0":
        return value
    return value[1:2]


__all__ = ["HpsAdapter", "TRANSACTION_TOKEN", "issuer_message"]
