"""HTTP transport used by the XML, SOAP and JSON adapters."""

import logging
from typing import Iterable, Mapping, Optional

import httpx

from .exceptions import TransportFault

logger = logging.getLogger(__name__)


class HttpTransport:
    """Blocking HTTPS client.

    Network failures surface as :class:`TransportFault`. Non-2xx responses
    are returned as-is unless the caller restricts the accepted statuses,
    because most processors put their decline details in error bodies.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout, transport=transport)

    def request(
        self,
        method: str,
        url: str,
        content: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        accept_statuses: Optional[Iterable[int]] = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, url, content=content, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise TransportFault(f"{method} {url} failed: {exc}") from exc

        if accept_statuses is not None:
            accepted = set(accept_statuses)
            if response.status_code not in accepted and not response.is_success:
                logger.error("%s %s returned HTTP %s", method, url, response.status_code)
                raise TransportFault(
                    f"{method} {url} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
        return response

    def post(self, url: str, content: str, headers: Optional[Mapping[str, str]] = None, **kwargs) -> httpx.Response:
        return self.request("POST", url, content=content, headers=headers, **kwargs)

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None, **kwargs) -> httpx.Response:
        return self.request("GET", url, headers=headers, **kwargs)

    def close(self) -> None:
        self._client.close()
