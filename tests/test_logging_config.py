"""Tests for structured logging helpers."""

from __future__ import annotations

import io
import json
import logging

from SacloudHTTP.logging_config import (
    MASKED,
    JSONFormatter,
    mask_sensitive_data,
    setup_logging,
)


def test_mask_sensitive_data():
    masked = mask_sensitive_data(
        {
            "Authorization": "Basic dG9rZW46c2VjcmV0",
            "access_token_secret": "s3cr3t",
            "header": "Basic abc",
            "status": 503,
        }
    )
    assert masked == {
        "Authorization": MASKED,
        "access_token_secret": MASKED,
        "header": MASKED,
        "status": 503,
    }


def test_json_formatter_includes_extra_fields():
    record = logging.makeLogRecord(
        {"name": "SacloudHTTP.client", "levelname": "WARNING", "msg": "retry %d", "args": (2,)}
    )
    record.status = 503
    record.authorization = "Basic abc"

    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "retry 2"
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "SacloudHTTP.client"
    assert payload["status"] == 503
    assert payload["authorization"] == MASKED
    assert payload["timestamp"].endswith("Z")


def test_setup_logging_plain_text():
    stream = io.StringIO()
    logger = setup_logging("DEBUG", stream=stream)
    logging.getLogger("SacloudHTTP.network.retry").debug("hello from retry")

    assert logger.level == logging.DEBUG
    assert "hello from retry" in stream.getvalue()


def test_setup_logging_json():
    stream = io.StringIO()
    setup_logging("INFO", json_output=True, stream=stream)
    logging.getLogger("SacloudHTTP.settings").info("configured", extra={"stage": "config"})

    line = json.loads(stream.getvalue().splitlines()[-1])
    assert line["message"] == "configured"
    assert line["stage"] == "config"


def test_setup_logging_replaces_previous_handler():
    first, second = io.StringIO(), io.StringIO()
    setup_logging(stream=first)
    logger = setup_logging(stream=second)
    logger.info("only once")

    managed = [h for h in logger.handlers if getattr(h, "_sacloud_managed", False)]
    assert len(managed) == 1
    assert first.getvalue() == ""
    assert "only once" in second.getvalue()
