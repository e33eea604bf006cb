"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    SELECTOR_QUERY_FAILED = "SELECTOR_QUERY_FAILED"
    CONTAINER_NOT_FOUND = "CONTAINER_NOT_FOUND"
    EVENT_SUBSCRIBER_FAILURE = "EVENT_SUBSCRIBER_FAILURE"
    API_WEBSOCKET_SEND_FAILED = "API_WEBSOCKET_SEND_FAILED"
    BROWSER_CAPTURE_FAILED = "BROWSER_CAPTURE_FAILED"
    RECORD_STORE_WRITE_FAILED = "RECORD_STORE_WRITE_FAILED"
    EXTERNAL_SOURCE_FAILED = "EXTERNAL_SOURCE_FAILED"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    page_url: str | None = None,
    field_kind: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging.

    Suppressed errors are diagnostics only and are logged at WARNING;
    anything that propagates to the caller is logged at ERROR.
    """
    level = logging.WARNING if suppressed else logging.ERROR
    logger.log(
        level,
        "pagepick_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "page_url": page_url,
            "field_kind": field_kind,
            "details": details or {},
        },
    )


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log format once."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    else:
        root.setLevel(level.upper())
