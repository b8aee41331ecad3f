"""
Pytest configuration and fixtures for paygate tests.
"""

import json
from typing import Callable, List

import httpx
import pytest

from paygate.config import get_settings
from paygate.models import BankAccount, CreditCard, NetworkTokenCard
from paygate.registry import get_provider
from paygate.transport import HttpTransport


@pytest.fixture(autouse=True)
def clear_cached_settings():
    """Settings and the provider are cached per process; reset them around each test."""
    get_settings.cache_clear()
    get_provider.cache_clear()
    yield
    get_settings.cache_clear()
    get_provider.cache_clear()


@pytest.fixture
def credit_card():
    """A Visa test card with CVV."""
    return CreditCard(
        number="4242424242424242",
        month=9,
        year=2030,
        first_name="Longbob",
        last_name="Longsen",
        verification_value="123",
    )


@pytest.fixture
def declined_card():
    return CreditCard(number="4000300011112222", month=9, year=2030, first_name="Longbob", last_name="Longsen")


@pytest.fixture
def network_token_card():
    return NetworkTokenCard(
        number="4111111111111111",
        month=9,
        year=2030,
        first_name="Longbob",
        last_name="Longsen",
        payment_cryptogram="EHuWW9PiBkWvqE5juRwDzAUFBAk=",
        eci="05",
        source="apple_pay",
    )


@pytest.fixture
def bank_account():
    return BankAccount(
        routing_number="011000015",
        account_number="1099999999",
        first_name="Jim",
        last_name="Smith",
        account_type="checking",
        account_holder_type="personal",
    )


@pytest.fixture
def billing_address():
    return {
        "name": "Jim Smith",
        "address1": "456 My Street",
        "address2": "Apt 1",
        "city": "Ottawa",
        "state": "ON",
        "zip": "K1C2N6",
        "country": "CA",
        "phone": "(555)555-5555",
    }


class RecordingTransport:
    """Queue of canned responses served through ``httpx.MockTransport``.

    Every request is recorded so tests can assert on the wire format.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._responses: List[Callable[[httpx.Request], httpx.Response]] = []

    def add(self, body, status_code: int = 200, content_type: str = "application/json") -> "RecordingTransport":
        if not isinstance(body, (str, bytes)):
            body = json.dumps(body)
        self._responses.append(
            lambda request: httpx.Response(status_code, content=body, headers={"Content-Type": content_type})
        )
        return self

    def add_xml(self, body: str, status_code: int = 200) -> "RecordingTransport":
        return self.add(body, status_code=status_code, content_type="text/xml")

    def fail(self, exc: Exception) -> "RecordingTransport":
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise exc

        self._responses.append(raise_error)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        return self._responses.pop(0)(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def body(self, index: int = -1) -> str:
        return self.requests[index].content.decode()

    def json(self, index: int = -1):
        return json.loads(self.body(index))

    def transport(self) -> HttpTransport:
        return HttpTransport(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def recorder():
    """Canned HTTP responses for the XML and JSON adapters."""
    return RecordingTransport()
