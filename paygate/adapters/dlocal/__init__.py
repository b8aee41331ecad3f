"""dLocal JSON adapter."""

import hashlib
import hmac
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ...config import DLocalConfig
from ...exceptions import TransportFault
from ...formatting import amount_in_dollars
from ...models import BankAccount, NetworkTokenCard, Outcome, PaymentInstrument, StandardErrorCode, StoredToken
from ...outcome import build_outcome
from ...tokens import TokenSchema
from ...transport import HttpTransport
from ..base import PaymentAdapter

logger = logging.getLogger(__name__)

PAYMENT_TOKEN = TokenSchema("dlocal", ("payment_id",))

TEST_URL = "https://sandbox.dlocal.com"
LIVE_URL = "https://api.dlocal.com"
API_VERSION = "2.1"

# A refund may stay pending (100) and settle later; it still counts as success.
SUCCESS_STATUS_CODES = frozenset(("100", "200", "400", "600", "700"))

THREE_DS_VERSIONS = frozenset(("1.0", "2.0", "2.1.0", "2.2.0"))
THREE_DS_FLAGS = frozenset(("Y", "N", "U", None))

_SCRUB_PATTERNS = (
    (re.compile(r"(X-Trans-Key: )\w+"), r"\1[FILTERED]"),
    (re.compile(r'("number\\?":\s*\\?")\d+'), r"\1[FILTERED]"),
    (re.compile(r'("cvv\\?":\s*\\?")\d+'), r"\1[FILTERED]"),
)


class DLocalAdapter(PaymentAdapter):
    """dLocal cross-border card payments.

    Every request is signed with HMAC-SHA256 over login, timestamp and body.
    References are bare dLocal payment ids.
    """

    display_name = "dLocal"
    homepage_url = "https://dlocal.com/"
    supported_countries = tuple(
        "AR BD BO BR CL CM CN CO CR DO EC EG GH GT IN ID JP KE MY MX MA NG PA PY PE PH SN SV "
        "TH TR TZ UG UY VN ZA".split()
    )
    supported_cardtypes = (
        "visa", "master", "american_express", "discover", "jcb", "diners_club", "maestro",
        "naranja", "cabal", "elo", "alia", "carnet",
    )

    def __init__(self, config: DLocalConfig, transport: Optional[HttpTransport] = None) -> None:
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.timeout)

    @property
    def base_url(self) -> str:
        return TEST_URL if self.config.test_mode else LIVE_URL

    # ==================== Operations ====================

    def purchase(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("purchase", "bank accounts are not supported")
        post: Dict[str, Any] = {}
        self._add_auth_purchase_params(post, money, payment, "purchase", options)
        self._add_three_ds(post, options)
        return self._commit("purchase", post, options)

    def authorize(self, money: int, payment: PaymentInstrument, **options: Any) -> Outcome:
        if isinstance(payment, BankAccount):
            return self.unsupported("authorize", "bank accounts are not supported")
        post: Dict[str, Any] = {}
        self._add_auth_purchase_params(post, money, payment, "authorize", options)
        self._add_three_ds(post, options)
        if str(options.get("verify")).lower() == "true":
            post["card"]["verify"] = True
        return self._commit("authorize", post, options)

    def capture(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        post: Dict[str, Any] = {"authorization_id": PAYMENT_TOKEN.decode(reference).payment_id}
        if money is not None:
            self._add_invoice(post, money, options)
        return self._commit("capture", post, options)

    def refund(self, money: Optional[int], reference: str, **options: Any) -> Outcome:
        post: Dict[str, Any] = {"payment_id": PAYMENT_TOKEN.decode(reference).payment_id}
        if options.get("description"):
            post["description"] = options["description"]
        post["notification_url"] = options.get("notification_url")
        if money is not None:
            self._add_invoice(post, money, options)
        return self._commit("refund", post, options)

    def void(self, reference: str, **options: Any) -> Outcome:
        post = {"authorization_id": PAYMENT_TOKEN.decode(reference).payment_id}
        return self._commit("void", post, options)

    def verify(self, payment: PaymentInstrument, **options: Any) -> Outcome:
        """Zero-amount authorization flagged as a card verification."""
        return self.authorize(0, payment, **{**options, "verify": "true"})

    def inquire(self, reference: Optional[str] = None, **options: Any) -> Outcome:
        """Look up the current status of a payment, or of an order by ``order_id``."""
        if reference is None:
            return self._commit("orders", {}, options)
        return self._commit("status", {"payment_id": PAYMENT_TOKEN.decode(reference).payment_id}, options)

    def supports_scrubbing(self) -> bool:
        return True

    def scrub(self, transcript: str) -> str:
        for pattern, replacement in _SCRUB_PATTERNS:
            transcript = pattern.sub(replacement, transcript)
        return transcript

    # ==================== Request building ====================

    def _add_auth_purchase_params(
        self, post: Dict[str, Any], money: int, payment: PaymentInstrument, action: str, options: Dict[str, Any]
    ) -> None:
        self._add_invoice(post, money, options)
        post["payment_method_id"] = "CARD"
        post["payment_method_flow"] = "DIRECT"
        country = self._country(options)
        if country:
            post["country"] = country
        post["payer"] = self._payer(payment, options)
        post["card"] = self._card(payment, action, options)
        post["additional_risk_data"] = options.get("additional_data")
        if options.get("description"):
            post["description"] = options["description"]
        post["order_id"] = options.get("order_id") or uuid.uuid4().hex
        if options.get("original_order_id"):
            post["original_order_id"] = options["original_order_id"]

    def _add_invoice(self, post: Dict[str, Any], money: int, options: Dict[str, Any]) -> None:
        post["amount"] = amount_in_dollars(money)
        post["currency"] = self.currency(options)

    @staticmethod
    def _country(options: Dict[str, Any]) -> Optional[str]:
        address = options.get("billing_address") or options.get("address") or {}
        country = options.get("country") or address.get("country")
        if not country:
            return None
        country = str(country).strip()
        if len(country) != 2 or not country.isalpha():
            logger.debug("Ignoring country %r; dLocal expects an ISO 3166 alpha-2 code", country)
            return None
        return country.upper()

    def _payer(self, payment: PaymentInstrument, options: Dict[str, Any]) -> Dict[str, Any]:
        address = options.get("billing_address") or options.get("address")
        payer: Dict[str, Any] = {"name": getattr(payment, "name", None) or options.get("name")}
        for key, option in (
            ("email", "email"),
            ("birth_date", "birth_date"),
            ("document", "document"),
            ("document2", "document2"),
            ("user_reference", "user_reference"),
            ("event_uuid", "device_id"),
            ("ip", "ip"),
        ):
            if options.get(option):
                payer[key] = options[option]
        if address:
            phone = address.get("phone") or address.get("phone_number")
            if phone:
                payer["phone"] = phone
        payer["address"] = self._address(address)
        return payer

    @staticmethod
    def _address(address: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not address:
            return None
        result: Dict[str, Any] = {}
        for key, field in (("state", "state"), ("city", "city"), ("zip_code", "zip")):
            if address.get(field):
                result[key] = address[field]
        words = (address.get("address1") or "").split()
        street = " ".join(word for word in words if not re.search(r"\d", word))
        number = " ".join(word for word in words if re.search(r"\d", word))
        if address.get("street") or street:
            result["street"] = address.get("street") or street
        if address.get("number") or number:
            result["number"] = address.get("number") or number
        return result

    @staticmethod
    def _card(payment: PaymentInstrument, action: str, options: Dict[str, Any]) -> Dict[str, Any]:
        card: Dict[str, Any] = {}
        if isinstance(payment, StoredToken):
            card["card_id"] = payment.value
        elif isinstance(payment, NetworkTokenCard):
            card["network_token"] = payment.number
            card["cryptogram"] = payment.payment_cryptogram
            card["eci"] = payment.eci
            if options.get("issuer_identification_number"):
                card["bin"] = options["issuer_identification_number"]
        else:
            card["number"] = payment.number
            card["cvv"] = payment.verification_value

        stored_credential = options.get("stored_credential")
        if stored_credential:
            card["stored_credential_usage"] = "FIRST" if stored_credential.get("initial_transaction") else "USED"
            if stored_credential.get("network_transaction_id"):
                card["network_payment_reference"] = stored_credential["network_transaction_id"]
            if stored_credential.get("reason_type") == "unscheduled":
                merchant = stored_credential.get("initiator") == "merchant"
                card["stored_credential_type"] = "UNSCHEDULED_CARD_ON_FILE" if merchant else "CARD_ON_FILE"
            else:
                card["stored_credential_type"] = "SUBSCRIPTION"

        if not isinstance(payment, StoredToken):
            card["holder_name"] = payment.name
            card["expiration_month"] = payment.month
            card["expiration_year"] = payment.year
        if options.get("dynamic_descriptor"):
            card["descriptor"] = options["dynamic_descriptor"]
        card["capture"] = action == "purchase"
        for key in ("installments", "installments_id", "save"):
            if options.get(key):
                card[key] = options[key]
        if options.get("force_type"):
            card["force_type"] = str(options["force_type"]).upper()
        return card

    @staticmethod
    def _add_three_ds(post: Dict[str, Any], options: Dict[str, Any]) -> None:
        three_d_secure = options.get("three_d_secure")
        if not three_d_secure:
            return
        enrolled = three_d_secure.get("enrolled")
        enrollment = {True: "Y", "true": "Y", False: "N", "false": "N"}.get(enrolled, enrolled)
        data = {
            "mpi": True,
            "three_dsecure_version": three_d_secure.get("version"),
            "cavv": three_d_secure.get("cavv"),
            "eci": three_d_secure.get("eci"),
            "enrollment_response": enrollment if enrollment in THREE_DS_FLAGS else None,
            "authentication_response": three_d_secure.get("authentication_response_status"),
        }
        version = str(three_d_secure.get("version") or "0")
        if float(version.split(".")[0] or 0) >= 2:
            data["ds_transaction_id"] = three_d_secure.get("ds_transaction_id")
        else:
            data["xid"] = three_d_secure.get("xid")
        post["three_dsecure"] = data

    @staticmethod
    def _three_ds_errors(three_ds: Dict[str, Any]) -> Dict[str, str]:
        errors = {}
        if three_ds.get("three_dsecure_version") not in THREE_DS_VERSIONS:
            errors["three_ds_version"] = "ThreeDs version not supported"
        if three_ds.get("enrollment_response") not in THREE_DS_FLAGS:
            errors["enrollment"] = "Enrollment value not supported"
        if three_ds.get("authentication_response") not in THREE_DS_FLAGS:
            errors["auth_response"] = "Authentication response value not supported"
        return errors

    # ==================== Transport ====================

    def _endpoint(self, action: str, post: Dict[str, Any], options: Dict[str, Any]) -> str:
        if action in ("purchase", "authorize"):
            return "secure_payments"
        if action == "refund":
            return "refunds"
        if action == "capture":
            return "payments"
        if action == "void":
            return f"payments/{post['authorization_id']}/cancel"
        if action == "status":
            return f"payments/{post['payment_id']}/status"
        return f"orders/{options.get('order_id')}"

    def signature(self, body: str, timestamp: str) -> str:
        content = f"{self.config.login}{timestamp}{body}"
        digest = hmac.new(self.config.secret_key.encode(), content.encode(), hashlib.sha256).hexdigest()
        return f"V2-HMAC-SHA256, Signature: {digest}"

    def _headers(self, body: str, options: Dict[str, Any]) -> Dict[str, str]:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        headers = {
            "Content-Type": "application/json",
            "X-Date": timestamp,
            "X-Login": self.config.login,
            "X-Trans-Key": self.config.trans_key,
            "X-Version": API_VERSION,
            "Authorization": self.signature(body, timestamp),
        }
        if options.get("idempotency_key"):
            headers["X-Idempotency-Key"] = options["idempotency_key"]
        if self.config.application_id:
            headers["X-Dlocal-Payment-Source"] = self.config.application_id
        return headers

    def _commit(self, action: str, post: Dict[str, Any], options: Dict[str, Any]) -> Outcome:
        if post.get("three_dsecure"):
            errors = self._three_ds_errors(post["three_dsecure"])
            if errors:
                return Outcome.failure(
                    "ThreeDs data is invalid",
                    standard_error=StandardErrorCode.PROCESSING_ERROR,
                    raw_fields=errors,
                )

        url = f"{self.base_url}/{self._endpoint(action, post, options)}/"
        if action in ("status", "orders"):
            http_response = self.transport.get(url, headers=self._headers("", options))
        else:
            body = json.dumps(post)
            http_response = self.transport.post(url, body, headers=self._headers(body, options))

        try:
            response = http_response.json()
        except ValueError as exc:
            logger.error("Unreadable dLocal %s response (HTTP %s)", action, http_response.status_code)
            raise TransportFault(
                f"Unreadable dLocal response: {exc}", status_code=http_response.status_code
            ) from exc
        if not isinstance(response, dict):
            response = {"data": response}

        success = self._success_from(action, response)
        outcome = build_outcome(
            response,
            success,
            response.get("status_detail") or response.get("message"),
            reference=PAYMENT_TOKEN.encode(response["id"]) if response.get("id") else None,
            error_code=response.get("status_code") or response.get("code"),
            error_vocabulary="dlocal",
            test_mode=self.config.test_mode,
            network_transaction_id=(response.get("card") or {}).get("network_tx_reference"),
        )
        logger.info(
            "dLocal %s %s (status %s)", action, "succeeded" if success else "failed", response.get("status_code")
        )
        return outcome

    @staticmethod
    def _success_from(action: str, response: Dict[str, Any]) -> bool:
        status_code = response.get("status_code")
        if not status_code:
            return False
        if action == "void":
            return str(status_code) == "400" and response.get("status") == "CANCELLED"
        return str(status_code) in SUCCESS_STATUS_CODES


__all__ = ["DLocalAdapter", "PAYMENT_TOKEN"]
