# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Vouch Contributors

"""Logging setup for Vouch.

Every public service operation runs under a correlation ID, so the
call line, the component commit lines and the result line of one
operation can be grouped. Two output shapes are supported: one JSON
object per line, or a plain text line with the correlation ID in
brackets. Operation arguments pass through OperationLogger, which never
writes post content or media references.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("vouch_correlation_id", default=None)

# Marks handlers installed by configure_logging so a second call replaces
# them without touching handlers the host application added.
_HANDLER_MARK = "_vouch_handler"


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Run the block under a correlation ID.

    An explicit ID wins. Otherwise an enclosing operation's ID is kept,
    so nested service calls log under the outermost operation, and a
    fresh ID is generated only at the top level.
    """
    cid = correlation_id or _correlation_id.get() or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            entry["correlation_id"] = cid
        extra = getattr(record, "extra_data", None)
        if extra is not None:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text: time, level, logger, [correlation id], message.

    Records logged outside any operation show ``[-]``.
    """

    FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(correlation_id)s] %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self.FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = (get_correlation_id() or "-")[:8]
        return super().format(record)


def _wants_json(log_format: str) -> bool:
    choice = log_format.strip().lower()
    if choice in ("json", "text"):
        return choice == "json"
    # Unset: JSON when nobody is watching the terminal
    return not sys.stderr.isatty()


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install Vouch's handlers on the root logger.

    Unset arguments come from CoreSettings (VOUCH_LOG_LEVEL,
    VOUCH_LOG_FORMAT, VOUCH_LOG_FILE). The file handler always writes
    JSON. Calling again replaces the handlers from the previous call.
    """
    from .config import get_config

    config = get_config()
    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = _wants_json(config.log_format)
    if log_file is None:
        log_file = config.log_file

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    handlers[0].setFormatter(JSONFormatter() if json_format else TextFormatter())
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    root = logging.getLogger()
    for old in [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]:
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class OperationLogger:
    """Logger for public service operations.

    Logs calls with sanitized arguments. Post content and media
    references are opaque user data and are always redacted.
    """

    REDACTED_PARAMS = {
        "encrypted_content",
        "content",
        "media_reference",
        "media_ref",
    }
    MAX_STRING_LENGTH = 200

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("vouch.operations")

    def log_call(
        self,
        operation: str,
        arguments: dict[str, Any],
        level: int = logging.DEBUG,
    ) -> None:
        """Log an operation call with sanitized arguments."""
        sanitized = self._sanitize(arguments)
        self.logger.log(
            level,
            f"Operation call: {operation}",
            extra={
                "extra_data": {
                    "operation": operation,
                    "arguments": sanitized,
                }
            },
        )

    def log_result(
        self,
        operation: str,
        success: bool,
        error: str | None = None,
        level: int = logging.DEBUG,
    ) -> None:
        """Log an operation outcome."""
        status = "success" if success else f"failure ({error})"
        self.logger.log(
            level,
            f"Operation result: {operation} -> {status}",
            extra={
                "extra_data": {
                    "operation": operation,
                    "success": success,
                    "error": error,
                }
            },
        )

    def _sanitize(self, data: Any) -> Any:
        if isinstance(data, dict):
            result = {}
            for key, value in data.items():
                if key.lower() in self.REDACTED_PARAMS:
                    result[key] = "[REDACTED]"
                else:
                    result[key] = self._sanitize(value)
            return result
        elif isinstance(data, list | tuple):
            return [self._sanitize(item) for item in data]
        elif isinstance(data, Decimal):
            return str(data)
        elif isinstance(data, str) and len(data) > self.MAX_STRING_LENGTH:
            return data[: self.MAX_STRING_LENGTH] + "..."
        else:
            return data


# Default operation logger
operation_logger = OperationLogger()
