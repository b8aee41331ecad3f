"""
Tests for the Heartland Portico SOAP adapter.
"""

import pytest

from paygate.adapters.hps import LIVE_URL, TEST_URL, HpsAdapter, issuer_message
from paygate.config import HpsConfig
from paygate.exceptions import DecodeError, TransportFault
from paygate.models import AddressCheck, CvcCheck, StandardErrorCode, StoredToken


def portico_response(action, transaction="", gateway_code="0", gateway_message="Success", txn_id="1410000001"):
    txn = f"<GatewayTxnId>{txn_id}</GatewayTxnId>" if txn_id else ""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body>"
        '<PosResponse rootUrl="https://cert.api2.heartlandportico.com/Hps.Exchange.PosGateway" '
        'xmlns="http://Hps.Exchange.PosGateway">'
        "<Ver1.0>"
        "<Header>"
        "<LicenseId>95878</LicenseId><SiteId>95881</SiteId><DeviceId>2409000</DeviceId>"
        f"{txn}"
        f"<GatewayRspCode>{gateway_code}</GatewayRspCode>"
        f"<GatewayRspMsg>{gateway_message}</GatewayRspMsg>"
        "</Header>"
        f"<Transaction><{action}>{transaction}</{action}></Transaction>"
        "</Ver1.0>"
        "</PosResponse>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


def issuer_response(action, code="00", text="APPROVAL", extra=""):
    return portico_response(action, f"<RspCode>{code}</RspCode><RspText>{text}</RspText>{extra}")


SUCCESSFUL_SALE = issuer_response(
    "CreditSale",
    extra=(
        "<AuthCode>36987A</AuthCode>"
        "<AVSRsltCode>Z</AVSRsltCode>"
        "<CVVRsltCode>M</CVVRsltCode>"
        "<CardBrandTxnId>301193456789012</CardBrandTxnId>"
    ),
)

SOAP_FAULT = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
    "<soap:Body><soap:Fault>"
    "<faultcode>soap:Client</faultcode>"
    "<faultstring>Server was unable to read request.</faultstring>"
    "</soap:Fault></soap:Body></soap:Envelope>"
)


@pytest.fixture
def adapter(recorder):
    return HpsAdapter(HpsConfig(secret_api_key="skapi_cert_fake", developer_id="000000"), transport=recorder.transport())


class TestHpsPayments:
    """Test card sale, authorization and check sale."""

    def test_purchase_success(self, adapter, recorder, credit_card, billing_address):
        recorder.add_xml(SUCCESSFUL_SALE)

        outcome = adapter.purchase(1000, credit_card, billing_address=billing_address, order_id="INV-1")

        assert outcome.succeeded is True
        assert outcome.message == "Success"
        assert outcome.reference == "1410000001|"
        assert outcome.address_check is AddressCheck.Z
        assert outcome.cvc_check is CvcCheck.M
        assert outcome.network_transaction_id == "301193456789012"
        assert outcome.test_mode is True

        assert str(recorder.last_request.url) == TEST_URL
        body = recorder.body()
        assert body.startswith('<?xml version="1.0" encoding="UTF-8"?><SOAP:Envelope')
        assert "<hps:SecretAPIKey>skapi_cert_fake</hps:SecretAPIKey>" in body
        assert "<hps:DeveloperID>000000</hps:DeveloperID>" in body
        assert "<hps:CreditSale><hps:Block1>" in body
        assert "<hps:Amt>10.00</hps:Amt>" in body
        assert "<hps:CardNbr>4242424242424242</hps:CardNbr>" in body
        assert "<hps:CVV2>123</hps:CVV2>" in body
        assert "<hps:CardHolderZip>K1C2N6</hps:CardHolderZip>" in body
        assert "<hps:InvoiceNbr>INV-1</hps:InvoiceNbr>" in body

    def test_issuer_decline(self, adapter, recorder, declined_card):
        recorder.add_xml(issuer_response("CreditSale", code="51", text="DECLINE"))

        outcome = adapter.purchase(1000, declined_card)

        assert outcome.succeeded is False
        assert outcome.message == "The card was declined."
        assert outcome.standard_error is StandardErrorCode.INSUFFICIENT_FUNDS
        assert outcome.error_code == "51"

    def test_cvv_mismatch(self, adapter, recorder, credit_card):
        recorder.add_xml(issuer_response("CreditAuth", code="N7", text="CVV2 MISMATCH", extra="<CVVRsltCode>N</CVVRsltCode>"))

        outcome = adapter.authorize(1000, credit_card)

        assert outcome.standard_error is StandardErrorCode.INCORRECT_CVC
        assert outcome.cvc_check is CvcCheck.N
        assert outcome.message == "The card's security code is incorrect."

    def test_gateway_error(self, adapter, recorder, credit_card):
        recorder.add_xml(portico_response("CreditSale", gateway_code="-2", gateway_message="Authentication Error", txn_id=None))

        outcome = adapter.purchase(1000, credit_card)

        assert outcome.succeeded is False
        assert outcome.standard_error is StandardErrorCode.CONFIG_ERROR
        assert outcome.message == "Authentication error. Please double check your service configuration."
        assert outcome.reference is None

    def test_soap_fault(self, adapter, recorder, credit_card):
        recorder.add_xml(SOAP_FAULT, status_code=500)

        outcome = adapter.purchase(1000, credit_card)

        assert outcome.succeeded is False
        assert outcome.message == "Server was unable to read request."
        assert outcome.standard_error is StandardErrorCode.PROCESSING_ERROR

    def test_unreadable_response(self, adapter, recorder, credit_card):
        recorder.add("Bad Gateway", status_code=502, content_type="text/plain")

        with pytest.raises(TransportFault):
            adapter.purchase(1000, credit_card)

    def test_recurring_purchase(self, adapter, recorder, credit_card):
        recorder.add_xml(issuer_response("RecurringBilling"))

        adapter.purchase(1000, credit_card, stored_credential={"reason_type": "recurring", "initiator": "merchant"})

        body = recorder.body()
        assert "<hps:RecurringBilling>" in body
        assert "<hps:OneTime>N</hps:OneTime>" in body
        assert "<hps:CardOnFile>M</hps:CardOnFile>" in body

    def test_check_sale(self, adapter, recorder, bank_account):
        recorder.add_xml(issuer_response("CheckSale", code="0", text="Transaction Approved"))

        outcome = adapter.purchase(2000, bank_account)

        assert outcome.succeeded is True
        body = recorder.body()
        assert "<hps:CheckAction>SALE</hps:CheckAction>" in body
        assert "<hps:RoutingNumber>011000015</hps:RoutingNumber>" in body
        assert "<hps:AccountType>CHECKING</hps:AccountType>" in body
        assert "<hps:SECCode>WEB</hps:SECCode>" in body

    def test_wallet_payment(self, adapter, recorder, network_token_card):
        recorder.add_xml(issuer_response("CreditSale"))

        adapter.purchase(1000, network_token_card)

        body = recorder.body()
        assert "<hps:PaymentSource>ApplePay</hps:PaymentSource>" in body
        assert "<hps:Cryptogram>EHuWW9PiBkWvqE5juRwDzAUFBAk=</hps:Cryptogram>" in body
        assert "<hps:ECI>5</hps:ECI>" in body

    def test_stored_token(self, adapter, recorder):
        recorder.add_xml(issuer_response("CreditSale"))

        adapter.purchase(1000, StoredToken(value="supt_abc"))

        assert "<hps:TokenValue>supt_abc</hps:TokenValue>" in recorder.body()


class TestHpsFollowUps:
    """Test capture, refund, void and verify."""

    def test_capture_keeps_original_id(self, adapter, recorder):
        recorder.add_xml(portico_response("CreditAddToBatch", txn_id="1410000002"))

        outcome = adapter.capture(500, "1410000001|")

        assert outcome.succeeded is True
        assert outcome.reference == "1410000001|1410000002"
        body = recorder.body()
        assert "<hps:CreditAddToBatch><hps:Amt>5.00</hps:Amt>" in body
        assert "<hps:GatewayTxnId>1410000001</hps:GatewayTxnId>" in body
        assert "Block1" not in body

    def test_refund_uses_original_id(self, adapter, recorder):
        recorder.add_xml(issuer_response("CreditReturn"))

        outcome = adapter.refund(500, "1410000001|1410000002")

        assert outcome.succeeded is True
        body = recorder.body()
        assert "<hps:CreditReturn><hps:Block1>" in body
        assert "<hps:GatewayTxnId>1410000001</hps:GatewayTxnId>" in body

    def test_void(self, adapter, recorder):
        recorder.add_xml(portico_response("CreditVoid", txn_id="1410000003"))

        outcome = adapter.void("1410000001|")

        assert outcome.succeeded is True
        assert outcome.message == "Success"
        assert "<hps:CreditVoid><hps:GatewayTxnId>1410000001</hps:GatewayTxnId>" in recorder.body()

    def test_check_void(self, adapter, recorder):
        recorder.add_xml(portico_response("CheckVoid"))

        adapter.void("1410000001|", check_void=True)

        assert "<hps:CheckVoid><hps:Block1>" in recorder.body()

    def test_malformed_reference(self, adapter):
        with pytest.raises(DecodeError):
            adapter.void("1410000001;sale;100")

    def test_verify(self, adapter, recorder, credit_card):
        recorder.add_xml(issuer_response("CreditAccountVerify", code="85", text="CARD OK"))

        outcome = adapter.verify(credit_card)

        assert outcome.succeeded is True
        assert len(recorder.requests) == 1
        assert "<hps:CreditAccountVerify>" in recorder.body()

    def test_credit(self, adapter, recorder, credit_card):
        recorder.add_xml(issuer_response("CreditReturn"))

        outcome = adapter.credit(1000, credit_card)

        assert outcome.succeeded is True
        assert "<hps:CardNbr>4242424242424242</hps:CardNbr>" in recorder.body()

    def test_store_is_unsupported(self, adapter, credit_card):
        assert adapter.store(credit_card).standard_error is StandardErrorCode.UNSUPPORTED_FEATURE


class TestHpsHelpers:

    def test_live_key_selects_live_url(self, recorder):
        adapter = HpsAdapter(HpsConfig(secret_api_key="skapi_prod_fake"), transport=recorder.transport())
        assert adapter.test_mode is False
        assert adapter.url == LIVE_URL

    @pytest.mark.parametrize(
        "code,message",
        [
            ("05", "The card was declined."),
            ("96", "An error occurred while processing the card."),
            ("EB", "The card's security code is incorrect."),
            ("54", "The card has expired."),
            ("99", None),
        ],
    )
    def test_issuer_message(self, code, message):
        assert issuer_message(code) == message

    def test_scrub(self, adapter):
        transcript = (
            "<hps:SecretAPIKey>skapi_cert_fake</hps:SecretAPIKey>"
            "<hps:CardNbr>4242424242424242</hps:CardNbr><hps:CVV2>123</hps:CVV2>"
        )
        scrubbed = adapter.scrub(transcript)
        assert "skapi_cert_fake" not in scrubbed
        assert "4242424242424242" not in scrubbed
        assert "<hps:CVV2>[FILTERED]</hps:CVV2>" in scrubbed
