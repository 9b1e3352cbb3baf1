"""Test bounded-retry sending"""

import httpx
import pytest

from chunkrelay.errors import RetryExhausted, TransportError
from chunkrelay.transfer.retry import (
    RetryPolicy, constant_delay, exponential_backoff,
)
from chunkrelay.transfer.transmitter import Transmitter
from chunkrelay.transfer.transport import HttpTransport

from .conftest import FakeTransport


class TestTransmitter:
    """Retry policy applied to one chunk"""

    def test_first_attempt_success(self):
        transport = FakeTransport()
        ack = Transmitter(transport).send(b"data")

        assert ack.status_code == 200
        assert ack.attempts == 1
        assert len(transport.delivered) == 1

    def test_failures_within_limit_then_success(self):
        transport = FakeTransport([500, TransportError("reset")])
        transmitter = Transmitter(transport, RetryPolicy(max_retries=3))

        ack = transmitter.send(b"data")

        assert ack.attempts == 3
        assert len(transport.attempts) == 3
        assert len(transport.delivered) == 1
        assert transmitter.get_stats() == {
            'chunks_sent': 1, 'bytes_sent': 4, 'failed_attempts': 2,
        }

    def test_exhaustion(self):
        transport = FakeTransport([503, 503, 404])
        transmitter = Transmitter(transport, RetryPolicy(max_retries=3))

        with pytest.raises(RetryExhausted) as exc_info:
            transmitter.send(b"data")

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error.status_code == 404
        assert len(transport.attempts) == 3
        assert transport.delivered == []

    def test_non_2xx_success_codes_are_failures(self):
        transport = FakeTransport([302, 100, 201])
        ack = Transmitter(transport, RetryPolicy(max_retries=3)).send(b"x")
        assert ack.status_code == 201

    def test_waits_between_attempts_but_not_after_last(self):
        slept = []
        policy = RetryPolicy(max_retries=3, delay=constant_delay(0.5), sleep=slept.append)
        transport = FakeTransport([500, 500, 500])

        with pytest.raises(RetryExhausted):
            Transmitter(transport, policy).send(b"x")

        assert slept == [0.5, 0.5]

    def test_context_manager_releases_transport_on_error(self):
        transport = FakeTransport([500])
        transmitter = Transmitter(transport, RetryPolicy(max_retries=1))

        with pytest.raises(RetryExhausted):
            with transmitter:
                assert transport.is_open
                transmitter.send(b"x")

        assert not transport.is_open
        assert transport.close_count == 1

    def test_policy_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=0)


class TestRetryDelays:

    def test_exponential_backoff_without_jitter(self):
        delay = exponential_backoff(base=1.0, factor=2.0, max_delay=5.0, jitter=0)
        assert [delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_in_bounds(self):
        delay = exponential_backoff(base=10.0, factor=1.0, jitter=0.1)
        for _ in range(50):
            assert 9.0 <= delay(1) <= 11.0


class TestHttpTransport:
    """httpx-backed transport"""

    def _transport(self, handler) -> HttpTransport:
        transport = HttpTransport("https://upload.example/chunks")
        transport._client = httpx.Client(transport=httpx.MockTransport(handler))
        return transport

    def test_posts_octet_stream_and_returns_status(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen['body'] = request.content
            seen['url'] = str(request.url)
            return httpx.Response(204)

        transport = self._transport(handler)
        status = transport.post(b"payload", {'Content-Type': 'application/octet-stream'})

        assert status == 204
        assert seen == {'body': b"payload", 'url': "https://upload.example/chunks"}
        transport.close()
        assert not transport.is_open

    def test_connection_errors_become_transport_errors(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            self._transport(handler).post(b"x")

    def test_timeouts_become_transport_errors(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransportError):
            self._transport(handler).post(b"x")
