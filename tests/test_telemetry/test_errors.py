"""Tests for structured error telemetry."""

import logging

from pagepick.telemetry.errors import ErrorCode, emit_structured_error


def test_suppressed_errors_log_as_warning(caplog):
    logger = logging.getLogger("pagepick.test")
    with caplog.at_level(logging.WARNING):
        emit_structured_error(
            logger,
            code=ErrorCode.SELECTOR_QUERY_FAILED,
            message="bad selector",
            suppressed=True,
            page_url="https://x/",
            field_kind="price",
            details={"selector": "a[["},
        )

    record = caplog.records[0]
    assert record.levelno == logging.WARNING
    assert record.getMessage() == "pagepick_error"
    assert record.error_code == ErrorCode.SELECTOR_QUERY_FAILED
    assert record.field_kind == "price"
    assert record.details == {"selector": "a[["}


def test_propagated_errors_log_as_error(caplog):
    logger = logging.getLogger("pagepick.test")
    emit_structured_error(
        logger,
        code=ErrorCode.RECORD_STORE_WRITE_FAILED,
        message="disk full",
        suppressed=False,
    )
    record = caplog.records[0]
    assert record.levelno == logging.ERROR
    assert record.details == {}
    assert record.page_url is None
