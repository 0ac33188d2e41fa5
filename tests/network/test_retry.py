"""Tests for retry classification and the tenacity controller."""

from __future__ import annotations

import itertools
import ssl

import httpx
import pytest

from SacloudHTTP.cancellation import CancellationToken
from SacloudHTTP.errors import Cancelled, DeadlineExceeded
from SacloudHTTP.network.retry import (
    RETRY,
    STOP,
    Attempt,
    DefaultRetryPolicy,
    RetryDecision,
    build_retrying,
    default_connectivity_check,
)

URL = "https://api.example.test/cloud/1.1/server"


def _response_attempt(status: int) -> Attempt:
    request = httpx.Request("GET", URL)
    return Attempt(number=1, request=request, response=httpx.Response(status, request=request))


def _streamed(status: int, request: httpx.Request) -> httpx.Response:
    return httpx.Response(status, request=request, stream=httpx.ByteStream(b"{}"))


def _error_attempt(error: httpx.TransportError) -> Attempt:
    return Attempt(number=1, request=httpx.Request("GET", URL), error=error)


def _certificate_error() -> httpx.ConnectError:
    try:
        try:
            raise ssl.SSLCertVerificationError("certificate verify failed")
        except ssl.SSLCertVerificationError as cause:
            raise httpx.ConnectError("TLS handshake failed") from cause
    except httpx.ConnectError as exc:
        return exc


class TestDefaultRetryPolicy:
    """Decision order: cancellation, connectivity, status."""

    def setup_method(self):
        self.policy = DefaultRetryPolicy()
        self.token = CancellationToken()

    @pytest.mark.parametrize("status", [0, 423, 503])
    def test_retries_retriable_statuses(self, status):
        assert self.policy.decide(_response_attempt(status), self.token) == RETRY

    @pytest.mark.parametrize("status", [200, 201, 204, 301, 400, 404, 409, 429, 500, 502, 504])
    def test_stops_on_other_statuses(self, status):
        assert self.policy.decide(_response_attempt(status), self.token) == STOP

    def test_cancellation_wins_over_retriable_status(self):
        self.token.cancel()
        decision = self.policy.decide(_response_attempt(503), self.token)
        assert decision.retry is False
        assert isinstance(decision.error, Cancelled)

    def test_expired_deadline_stops_with_deadline_error(self):
        token = CancellationToken(deadline=0.0)
        decision = self.policy.decide(_error_attempt(httpx.ConnectError("refused")), token)
        assert decision.retry is False
        assert isinstance(decision.error, DeadlineExceeded)

    def test_transient_transport_error_is_retried(self):
        decision = self.policy.decide(_error_attempt(httpx.ReadTimeout("slow")), self.token)
        assert decision == RETRY

    def test_permanent_transport_error_stops_without_error(self):
        decision = self.policy.decide(
            _error_attempt(httpx.UnsupportedProtocol("ftp")), self.token
        )
        assert decision == STOP
        assert decision.error is None

    def test_connectivity_check_is_pluggable(self):
        policy = DefaultRetryPolicy(connectivity=lambda exc: False)
        decision = policy.decide(_error_attempt(httpx.ConnectError("refused")), self.token)
        assert decision == STOP

    def test_statuses_are_pluggable(self):
        policy = DefaultRetryPolicy(statuses={500})
        assert policy.decide(_response_attempt(500), self.token) == RETRY
        assert policy.decide(_response_attempt(503), self.token) == STOP


class TestConnectivityCheck:
    """Which transport failures are worth another attempt."""

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("refused"),
            httpx.ConnectTimeout("slow connect"),
            httpx.ReadError("reset"),
            httpx.WriteTimeout("slow write"),
            httpx.PoolTimeout("pool"),
            httpx.RemoteProtocolError("server disconnected"),
        ],
    )
    def test_transient(self, error):
        assert default_connectivity_check(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            httpx.UnsupportedProtocol("ftp"),
            httpx.LocalProtocolError("bad header"),
            httpx.ProxyError("proxy refused"),
        ],
    )
    def test_permanent(self, error):
        assert default_connectivity_check(error) is False

    def test_certificate_failure_is_permanent(self):
        assert default_connectivity_check(_certificate_error()) is False


class TestRetryDecision:
    def test_stop_carries_error(self):
        error = Cancelled()
        decision = RetryDecision.stop(error)
        assert decision.retry is False
        assert decision.error is error

    def test_constants(self):
        assert RETRY.retry is True and RETRY.error is None
        assert STOP.retry is False and STOP.error is None


class TestBuildRetrying:
    """The controller drives attempts until the decision says stop."""

    def _run(self, decisions, max_attempts, token=None):
        counter = itertools.count(1)
        request = httpx.Request("GET", URL)

        def attempt() -> Attempt:
            number = next(counter)
            decision = decisions[min(number, len(decisions)) - 1]
            response = _streamed(503 if decision.retry else 200, request)
            return Attempt(number=number, request=request, response=response, decision=decision)

        retrying = build_retrying(
            max_attempts=max_attempts,
            min_wait=0.0,
            max_wait=0.0,
            cancellation=token or CancellationToken(),
        )
        return retrying(attempt)

    def test_stops_on_first_stop_decision(self):
        result = self._run([RETRY, RETRY, STOP], max_attempts=5)
        assert result.number == 3
        assert result.status_code == 200

    def test_returns_last_attempt_when_exhausted(self):
        result = self._run([RETRY], max_attempts=4)
        assert result.number == 4
        assert result.status_code == 503
        assert not result.response.is_closed

    def test_single_attempt_budget(self):
        result = self._run([RETRY], max_attempts=1)
        assert result.number == 1

    def test_cancelled_token_interrupts_backoff(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(Cancelled):
            self._run([RETRY], max_attempts=3, token=token)

    def test_retried_responses_are_closed(self):
        request = httpx.Request("GET", URL)
        responses = []

        def attempt() -> Attempt:
            response = _streamed(503, request)
            responses.append(response)
            decision = RETRY if len(responses) < 3 else STOP
            return Attempt(
                number=len(responses), request=request, response=response, decision=decision
            )

        retrying = build_retrying(
            max_attempts=5, min_wait=0.0, max_wait=0.0, cancellation=CancellationToken()
        )
        retrying(attempt)
        assert [r.is_closed for r in responses] == [True, True, False]

    def test_logs_each_retry(self, caplog):
        with caplog.at_level("WARNING", logger="SacloudHTTP.network.retry"):
            self._run([RETRY, RETRY, STOP], max_attempts=5)
        messages = [r.getMessage() for r in caplog.records if r.name == "SacloudHTTP.network.retry"]
        assert len(messages) == 2
        assert messages[0].startswith("retry attempt=1 reason=503")
