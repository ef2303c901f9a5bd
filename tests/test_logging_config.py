"""Tests for logging configuration module.

Verifies that logging configuration:
1. Filters out credentials (BLOCKED_FIELDS)
2. Replaces bulky order-book fields with placeholders
3. Reduces URLs to their path
4. Produces one valid JSON object per line
"""

from __future__ import annotations

import io
import logging
import sys
from collections.abc import Iterator
from decimal import Decimal

import orjson
import pytest

from tradesim.logging_config import (
    BLOCKED_FIELDS,
    JsonFormatter,
    SimpleFormatter,
    _filter_log_record,
    _normalize_url,
    _sanitize_text,
    get_logger,
    setup_logging,
)


def _record(msg: str = "hello", level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("tradesim.test", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestBlockedFields:
    """Credential fields are dropped."""

    def test_blocked_fields_contents(self) -> None:
        assert {"api_key", "secret", "token", "password", "passphrase"} <= BLOCKED_FIELDS

    def test_filter_removes_blocked(self) -> None:
        filtered = _filter_log_record({"api_key": "x", "passphrase": "y", "attempt": 2})
        assert filtered == {"attempt": 2}

    def test_filter_removes_partial_matches_case_insensitive(self) -> None:
        filtered = _filter_log_record({"OKX_SECRET_KEY": "x", "user_token": "y", "keep": "z"})
        assert filtered == {"keep": "z"}


class TestBulkyFields:
    """Order-book payloads never reach the log line."""

    def test_sides_replaced(self) -> None:
        filtered = _filter_log_record({"asks": [["100", "2"]] * 500, "bids": []})
        assert filtered == {"asks": "[ASKS]", "bids": "[BIDS]"}

    def test_raw_and_payload_replaced(self) -> None:
        filtered = _filter_log_record({"raw": "{...}", "payload": {"a": 1}})
        assert filtered == {"raw": "[RAW]", "payload": "[PAYLOAD]"}

    def test_long_list_summarized(self) -> None:
        filtered = _filter_log_record({"levels": list(range(50))})
        assert filtered["levels"] == "[list:50 items]"

    def test_short_list_kept(self) -> None:
        assert _filter_log_record({"codes": [1000, 1006]}) == {"codes": [1000, 1006]}

    def test_decimal_stringified(self) -> None:
        assert _filter_log_record({"quantity": Decimal("100.5")}) == {"quantity": "100.5"}

    def test_nested_depth_limited(self) -> None:
        nested: dict[str, object] = {"v": 1}
        for _ in range(6):
            nested = {"inner": nested}
        filtered = _filter_log_record(nested)
        cursor: object = filtered
        for _ in range(4):
            assert isinstance(cursor, dict)
            cursor = cursor["inner"]
        assert cursor == {"_truncated": "max depth exceeded"}


class TestUrlNormalization:
    def test_normalize_ws_url(self) -> None:
        url = "wss://ws.example.com/ws/l2-orderbook/okx/BTC-USDT-SWAP?token=abc"
        assert _normalize_url(url) == "/ws/l2-orderbook/okx/BTC-USDT-SWAP"

    def test_url_field_becomes_endpoint(self) -> None:
        filtered = _filter_log_record({"url": "ws://127.0.0.1:8765/ws"})
        assert filtered == {"endpoint": "/ws"}

    def test_url_in_text(self) -> None:
        text = _sanitize_text("Connecting to wss://host.example/ws/feed?apikey=1")
        assert text == "Connecting to /ws/feed"

    def test_credentials_in_text(self) -> None:
        assert "hunter2" not in _sanitize_text("login password=hunter2 failed")
        assert "abc123" not in _sanitize_text("Bearer abc123")


class TestJsonFormatter:
    def test_valid_json_line(self) -> None:
        line = JsonFormatter().format(_record("Feed connected", url="ws://h/ws", attempt=1))
        data = orjson.loads(line)
        assert data["level"] == "INFO"
        assert data["logger"] == "tradesim.test"
        assert data["msg"] == "Feed connected"
        assert data["endpoint"] == "/ws"
        assert data["attempt"] == 1
        assert "\n" not in line

    def test_warning_has_location(self) -> None:
        data = orjson.loads(JsonFormatter().format(_record(level=logging.WARNING)))
        assert data["file"] == "test_logging_config.py"
        assert data["line"] == 10

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "tradesim.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )
        data = orjson.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in data["exc"]


class TestSimpleFormatter:
    def test_extras_appended(self) -> None:
        line = SimpleFormatter().format(_record("Reconnecting", delay_ms=1000, token="x"))
        assert line.startswith("INFO     tradesim.test: Reconnecting")
        assert "delay_ms=1000" in line
        assert "token" not in line

    def test_no_extras(self) -> None:
        assert SimpleFormatter().format(_record("plain")) == "INFO     tradesim.test: plain"


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self) -> Iterator[None]:
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_output(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.INFO, json_format=True, stream=stream)
        get_logger("tradesim.sample").info("hello", extra={"asks": [1, 2, 3]})
        data = orjson.loads(stream.getvalue().strip())
        assert data["msg"] == "hello"
        assert data["asks"] == "[ASKS]"

    def test_level_respected(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.WARNING, json_format=False, stream=stream)
        get_logger("tradesim.sample").info("hidden")
        assert stream.getvalue() == ""

    def test_noisy_loggers_quieted(self) -> None:
        setup_logging(stream=io.StringIO())
        assert logging.getLogger("aiohttp").level == logging.WARNING
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_single_handler(self) -> None:
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO())
        assert len(logging.getLogger().handlers) == 1
