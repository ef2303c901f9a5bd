"""
Structured logging configuration for the trade simulator.

Provides JSON-formatted structured logging with:
- Credential filtering (no keys/tokens/passwords in logs)
- Bounded lines (order-book sides and raw frames are never dumped)
- URLs reduced to their path

Usage:
    from tradesim.logging_config import setup_logging, get_logger

    setup_logging()  # Call once at startup
    logger = get_logger(__name__)
    logger.info("message", extra={"key": "value"})
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

import orjson

# Matches ws/http URLs in free-form text.
_URL_PATTERN = re.compile(r"((?:wss?|https?)://[^\s\"'<>]+)")

_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(api[_-]?key|apikey)[=:]\s*['\"]?[\w\-]+['\"]?", re.I), "[API_KEY]"),
    (re.compile(r"\b(bearer|token)[=:\s]+['\"]?[\w\-\.]+['\"]?", re.I), "[TOKEN]"),
    (re.compile(r"\b(passphrase|password)[=:]\s*['\"]?\S+['\"]?", re.I), "[SECRET]"),
]

# Fields that must never appear in logs (matched as substrings of the key).
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "api_key",
        "secret",
        "token",
        "password",
        "passphrase",
        "authorization",
        "credential",
        "signature",
    }
)

# Fields replaced by a placeholder; url is reduced to its path instead.
BULKY_FIELDS: dict[str, str] = {
    "asks": "[ASKS]",
    "bids": "[BIDS]",
    "payload": "[PAYLOAD]",
    "raw": "[RAW]",
}

_MAX_LIST_ITEMS = 10

# LogRecord attributes that are not user extras.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _normalize_url(url: str) -> str:
    """Extract the path from a URL."""
    return urlsplit(url).path or "/"


def _sanitize_url_in_text(match: re.Match[str]) -> str:
    path = _normalize_url(match.group(1))
    return path if path != "/" else "[URL]"


def _sanitize_text(text: str) -> str:
    """Sanitize free-form text (msg, exc): URLs to paths, credentials redacted."""
    if not text:
        return text

    result = _URL_PATTERN.sub(_sanitize_url_in_text, text)
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _filter_log_record(record: dict[str, Any], *, _depth: int = 0) -> dict[str, Any]:
    """Filter credential and bulky fields from log extras.

    Recursively filters nested dicts up to depth 3.
    """
    if _depth > 3:
        return {"_truncated": "max depth exceeded"}

    filtered: dict[str, Any] = {}

    for key, value in record.items():
        key_lower = key.lower()

        if any(blocked in key_lower for blocked in BLOCKED_FIELDS):
            continue

        if key_lower == "url" and isinstance(value, str):
            filtered["endpoint"] = _normalize_url(value)
            continue
        if key_lower in BULKY_FIELDS:
            filtered[key] = BULKY_FIELDS[key_lower]
            continue

        if isinstance(value, (int, float, bool, type(None))):
            filtered[key] = value
        elif isinstance(value, str):
            filtered[key] = _sanitize_text(value)
        elif isinstance(value, (list, tuple)):
            if len(value) <= _MAX_LIST_ITEMS:
                filtered[key] = [v if isinstance(v, (int, float, bool)) else str(v) for v in value]
            else:
                filtered[key] = f"[list:{len(value)} items]"
        elif isinstance(value, dict):
            filtered[key] = _filter_log_record(value, _depth=_depth + 1)
        else:
            # Decimal, enums, exceptions
            filtered[key] = _sanitize_text(str(value))

    return filtered


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JsonFormatter(logging.Formatter):
    """JSON log formatter, one object per line.

    Output format:
    {"ts":"2024-01-01T00:00:00.000+00:00","level":"INFO","logger":"module","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }

        if record.levelno >= logging.WARNING:
            log_dict["file"] = record.filename
            log_dict["line"] = record.lineno

        if record.exc_info:
            log_dict["exc"] = _sanitize_text(self.formatException(record.exc_info))

        extra = _extra_fields(record)
        if extra:
            log_dict.update(_filter_log_record(extra))

        return orjson.dumps(log_dict, default=str).decode()


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for development and tests."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a single readable line."""
        base = f"{record.levelname:8s} {record.name}: {_sanitize_text(record.getMessage())}"

        extra = _extra_fields(record)
        if extra:
            filtered = _filter_log_record(extra)
            if filtered:
                extra_str = " ".join(f"{k}={v}" for k, v in filtered.items())
                base = f"{base} | {extra_str}"

        return base


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: Any = None,
) -> None:
    """Configure logging for the application. Call once at startup.

    Args:
        level: Log level (default INFO).
        json_format: Use JSON formatter (default True).
        stream: Output stream (default stderr; stdout carries simulation output).
    """
    if stream is None:
        stream = sys.stderr

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for __name__)."""
    return logging.getLogger(name)
