"""
HTTP transport for the ConsumerView API.

The API client only needs one operation: POST a JSON body to a path and get
back the status code and raw body. Anything implementing `post(path, body)`
with that contract can be passed in, which is how the tests drive the client
without a network.
"""

import json
from typing import Any, Optional, Protocol, Tuple

import requests

from .errors import ConsumerViewError
from .logger import get_logger

logger = get_logger()

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class Transport(Protocol):
    """Sends one JSON request and returns `(http_status, raw_body)`."""

    def post(self, path: str, json_body: Any) -> Tuple[int, Optional[str]]:
        ...


class TransportError(ConsumerViewError):
    """Raised when the request never produced an HTTP response."""
    pass


class RequestsTransport:
    """
    Transport backed by a `requests.Session`.

    Connection pooling and TLS are handled by requests. Nothing is retried at
    this layer; a failed exchange surfaces as TransportError.
    """

    def __init__(self, base_url: str, timeout: float = 30, session: Optional[requests.Session] = None):
        """
        Args:
            base_url: Scheme and host, e.g. https://neartime.experian.co.uk
            timeout: Seconds to wait for connect and read
            session: Optional pre-configured session (proxies, adapters)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(JSON_HEADERS)

    def post(self, path: str, json_body: Any) -> Tuple[int, Optional[str]]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.post(url, data=json.dumps(json_body), timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning("ConsumerView request timed out", url=url, timeout=self.timeout)
            raise TransportError(f"ConsumerView request timed out after {self.timeout}s: {url}")
        except requests.exceptions.RequestException as e:
            logger.error("ConsumerView request error", url=url, error=str(e))
            raise TransportError(f"ConsumerView request error: {e}") from e
        return resp.status_code, resp.text

    def close(self) -> None:
        self.session.close()
