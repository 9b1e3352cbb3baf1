"""
Chunk Transmitter

Sends one chunk to the endpoint under a bounded retry policy.

Send Flow:
1. Post the whole chunk (attempts never resume a partial chunk)
2. 2xx status -> Ack
3. Anything else (other status, connection error, timeout) -> wait per
   policy and try again
4. After max_retries failed attempts -> RetryExhausted

The transport session is opened once and reused for every chunk and
attempt; entering the Transmitter as a context manager guarantees it is
closed again on success, exhaustion, or any other error.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import RejectedStatus, RetryExhausted, TransportError
from .retry import RetryPolicy
from .transport import Transport

logger = logging.getLogger(__name__)


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


@dataclass
class Ack:
    """Positive acknowledgement of one chunk."""
    status_code: int
    attempts: int


class Transmitter:
    """Bounded-retry chunk sender."""

    def __init__(self, transport: Transport, policy: Optional[RetryPolicy] = None):
        self.transport = transport
        self.policy = policy or RetryPolicy()

        # Statistics
        self.chunks_sent = 0
        self.bytes_sent = 0
        self.failed_attempts = 0

    def __enter__(self) -> 'Transmitter':
        self.transport.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.transport.close()

    def _attempt(self, data: bytes, headers: Optional[Dict[str, str]]) -> int:
        status_code = self.transport.post(data, headers)
        if not is_success(status_code):
            raise RejectedStatus(status_code)
        return status_code

    def send(self, data: bytes, headers: Optional[Dict[str, str]] = None) -> Ack:
        """
        Deliver one chunk.

        Returns:
            Ack on the first successful attempt

        Raises:
            RetryExhausted: every attempt failed
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.policy.max_retries + 1):
            try:
                status_code = self._attempt(data, headers)
            except TransportError as e:
                last_error = e
                self.failed_attempts += 1
                logger.warning(f"Attempt {attempt}/{self.policy.max_retries} failed: {e}")
                if attempt < self.policy.max_retries:
                    self.policy.wait(attempt)
                continue

            self.chunks_sent += 1
            self.bytes_sent += len(data)
            logger.debug(f"Chunk of {len(data):,} bytes acknowledged "
                         f"with {status_code} after {attempt} attempt(s)")
            return Ack(status_code=status_code, attempts=attempt)

        logger.error(f"Giving up after {self.policy.max_retries} attempts: {last_error}")
        raise RetryExhausted(self.policy.max_retries, last_error)

    def get_stats(self) -> dict:
        """Get transmitter statistics."""
        return {
            'chunks_sent': self.chunks_sent,
            'bytes_sent': self.bytes_sent,
            'failed_attempts': self.failed_attempts,
        }
