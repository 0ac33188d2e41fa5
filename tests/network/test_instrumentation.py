"""Tests for the per-attempt HTTP trace transport."""

from __future__ import annotations

import logging

import httpx
import pytest

from SacloudHTTP.logging_config import MASKED
from SacloudHTTP.network.auth import basic_auth_header
from SacloudHTTP.network.instrumentation import (
    TRACE_LOGGER_NAME,
    TracingTransport,
    dump_request,
    dump_response,
    is_error_status,
)

URL = "http://api.example.test/"


def _trace_messages(caplog) -> list[str]:
    return [r.getMessage() for r in caplog.records if r.name == TRACE_LOGGER_NAME]


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, stream=httpx.ByteStream(b"ok\n"))


@pytest.fixture
def trace_logs(caplog):
    caplog.set_level(logging.INFO, logger=TRACE_LOGGER_NAME)
    return caplog


class TestTracingTransport:
    @pytest.mark.parametrize("output_only_error", [False, True])
    def test_successful_exchange(self, trace_logs, output_only_error):
        transport = TracingTransport(httpx.MockTransport(_ok), output_only_error=output_only_error)
        response = transport.handle_request(httpx.Request("GET", URL))

        output = "\n".join(_trace_messages(trace_logs))
        if output_only_error:
            assert output == ""
        else:
            assert "GET / HTTP/1.1" in output
            assert "HTTP/1.1 200 OK" in output
        assert response.read() == b"ok\n"

    def test_error_status_is_traced_in_error_only_mode(self, trace_logs):
        transport = TracingTransport(
            httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
            output_only_error=True,
        )
        response = transport.handle_request(httpx.Request("DELETE", "http://api.example.test/server/1"))

        messages = _trace_messages(trace_logs)
        assert len(messages) == 2
        assert "DELETE /server/1 HTTP/1.1" in messages[0]
        assert "HTTP/1.1 500 Internal Server Error" in messages[1]
        assert response.read() == b"boom"

    def test_transport_error_is_traced_and_reraised(self, trace_logs):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        transport = TracingTransport(httpx.MockTransport(refuse), output_only_error=True)
        with pytest.raises(httpx.ConnectError):
            transport.handle_request(httpx.Request("GET", URL))

        messages = _trace_messages(trace_logs)
        assert "GET / HTTP/1.1" in messages[0]
        assert "HTTP Error" in messages[1]
        assert "connection refused" in messages[1]

    def test_body_read_error_is_traced_and_reraised(self, trace_logs):
        class ResetStream(httpx.SyncByteStream):
            def __iter__(self):
                yield b"partial"
                raise httpx.ReadError("connection reset")

        transport = TracingTransport(
            httpx.MockTransport(lambda request: httpx.Response(200, stream=ResetStream())),
            output_only_error=True,
        )
        with pytest.raises(httpx.ReadError):
            transport.handle_request(httpx.Request("GET", URL))

        messages = _trace_messages(trace_logs)
        assert len(messages) == 2
        assert "GET / HTTP/1.1" in messages[0]
        assert "HTTP Error" in messages[1]
        assert "connection reset" in messages[1]

    def test_response_keeps_raw_headers_and_body(self):
        body = b"\x1f\x8bnot-decoded"

        def handler(request):
            return httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(body)
            )

        transport = TracingTransport(httpx.MockTransport(handler))
        response = transport.handle_request(httpx.Request("GET", URL))
        assert response.headers["Content-Encoding"] == "gzip"
        assert b"".join(response.iter_raw()) == body

    def test_custom_logger(self, caplog):
        logger = logging.getLogger("tests.trace")
        caplog.set_level(logging.INFO, logger="tests.trace")
        TracingTransport(httpx.MockTransport(_ok), logger=logger).handle_request(
            httpx.Request("GET", URL)
        )
        assert any(r.name == "tests.trace" for r in caplog.records)

    def test_close_closes_inner(self):
        closed = []

        class Inner(httpx.BaseTransport):
            def close(self):
                closed.append(True)

        transport = TracingTransport(Inner())
        transport.close()
        assert closed == [True]


class TestDumps:
    def test_request_dump_masks_credentials_and_keeps_body(self):
        request = httpx.Request(
            "POST",
            "https://api.example.test/cloud/1.1/server?From=0",
            headers={"Authorization": basic_auth_header("token", "secret")},
            content=b'{"Server": {}}',
        )
        dump = dump_request(request)
        assert dump.startswith("POST /cloud/1.1/server?From=0 HTTP/1.1")
        assert f"authorization: {MASKED}" in dump.lower()
        assert "secret" not in dump
        assert dump.endswith('{"Server": {}}')

    def test_response_dump_uses_reason_phrase_extension(self):
        response = httpx.Response(
            423,
            extensions={"reason_phrase": b"Locked Resource", "http_version": b"HTTP/1.0"},
            stream=httpx.ByteStream(b""),
        )
        assert dump_response(response, b"").startswith("HTTP/1.0 423 Locked Resource")

    @pytest.mark.parametrize(
        "status, expected", [(200, False), (304, False), (199, True), (404, True), (503, True)]
    )
    def test_is_error_status(self, status, expected):
        assert is_error_status(status) is expected
