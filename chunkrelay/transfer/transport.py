"""
HTTP Transport

Posts chunk bytes to the remote endpoint.

Design Decision: HTTP Client
============================

Options Considered:
1. urllib.request - No connection reuse between requests
2. requests - Session keep-alive, sync only
3. httpx - Client keep-alive, sync and async, same library FastAPI's
   TestClient is built on

Decision: httpx.Client
- One client per transfer, reused across chunks and attempts
- Timeouts raise, and are reported as TransportError so the retry
  policy counts them like any other failed attempt
"""

import logging
from typing import Dict, Optional, Protocol

import httpx

from ..errors import TransportError

logger = logging.getLogger(__name__)

OCTET_STREAM = 'application/octet-stream'


class Transport(Protocol):
    """What the Transmitter needs from a transport."""

    def open(self) -> None: ...

    def close(self) -> None: ...

    def post(self, data: bytes, headers: Optional[Dict[str, str]] = None) -> int: ...


class HttpTransport:
    """
    Keep-alive HTTP(S) transport.

    The underlying client is created by open() and released by close();
    post() opens it lazily if needed.
    """

    def __init__(self, endpoint: str, timeout: float = 60.0,
                 headers: Optional[Dict[str, str]] = None, verify: bool = True):
        self.endpoint = endpoint
        self.timeout = timeout
        self.headers = {'Content-Type': OCTET_STREAM, **(headers or {})}
        self.verify = verify
        self._client: Optional[httpx.Client] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self):
        if self._client is None:
            self._client = httpx.Client(
                headers=self.headers,
                timeout=self.timeout,
                verify=self.verify,
            )
            logger.debug(f"Opened HTTP session to {self.endpoint}")

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug(f"Closed HTTP session to {self.endpoint}")

    def post(self, data: bytes, headers: Optional[Dict[str, str]] = None) -> int:
        """
        POST one chunk.

        Returns:
            HTTP status code

        Raises:
            TransportError: connection, protocol or timeout failure
        """
        self.open()
        try:
            response = self._client.post(self.endpoint, content=data, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out posting to {self.endpoint}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Error posting to {self.endpoint}: {e}") from e

        return response.status_code

    def __enter__(self) -> 'HttpTransport':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
