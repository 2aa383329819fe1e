"""Tests for structured logging (pricing_kernel/logging_config.py)."""

import asyncio
import json
import logging
import sys
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from pricing_kernel.domain.billing import BillingMethod
from pricing_kernel.domain.values import Money
from pricing_kernel.exceptions import RateLockedError, StepNavigationError
from pricing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    """Each test configures its own handler; the suite default comes back after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emit():
    """Configure a capturing handler; returns (logger, read_records)."""
    stream = StringIO()
    configure_logging(handler=logging.StreamHandler(stream), level=logging.DEBUG)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return get_logger("test"), _records


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_base_keys(self, emit):
        logger, records = emit
        logger.info("hello")
        (record,) = records()
        assert list(record)[:4] == ["ts", "level", "logger", "message"]
        assert record["level"] == "INFO"
        assert record["logger"] == "pricing.test"
        assert record["message"] == "hello"

    def test_extra_fields(self, emit):
        logger, records = emit
        logger.info("totals", extra={"item_count": 3, "grand_total": "1280.00"})
        record = records()[0]
        assert record["item_count"] == 3
        assert record["grand_total"] == "1280.00"

    def test_domain_values_serialized(self, emit):
        logger, records = emit
        logger.info("values", extra={
            "rate": Decimal("180.00"),
            "method": BillingMethod.HOURLY,
            "issue_date": date(2026, 3, 1),
            "steps": ("billing", "payment"),
            "total": Money.of("12.50", "EUR"),
        })
        record = records()[0]
        assert record["rate"] == "180.00"
        assert record["method"] == "HOURLY"
        assert record["issue_date"] == "2026-03-01"
        assert record["steps"] == ["billing", "payment"]
        assert record["total"]["amount"] == "12.50"

    def test_exception_fields(self, emit):
        logger, records = emit
        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("failed")
        record = records()[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_pricing_error_attributes(self, emit):
        logger, records = emit
        try:
            raise StepNavigationError("billing", 3, "complete billing first")
        except StepNavigationError:
            logger.error("navigation_error", exc_info=True)
        record = records()[0]
        assert record["exc_code"] == "STEP_NAVIGATION_DENIED"
        assert record["exc_current_step"] == "billing"
        assert record["exc_requested_index"] == 3
        assert record["exc_reason"] == "complete billing first"

    def test_traceback_can_be_omitted(self):
        formatter = StructuredFormatter(include_traceback=False)
        try:
            raise RateLockedError(0, "150")
        except RateLockedError:
            record = logging.LogRecord(
                "pricing.test", logging.WARNING, __file__, 1, "locked", (), sys.exc_info()
            )
        payload = json.loads(formatter.format(record))
        assert payload["exc_code"] == "RATE_LOCKED"
        assert payload["exc_blended_rate"] == "150"
        assert "traceback" not in payload

    def test_debug_dropped_at_info(self):
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream))
        logger = get_logger("test")
        logger.debug("hidden")
        logger.warning("shown")
        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["shown"]


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_context_in_records(self, emit):
        logger, records = emit
        LogContext.set(correlation_id="abc-123", proposal_id="prop-9")
        logger.info("with_context")
        record = records()[0]
        assert record["correlation_id"] == "abc-123"
        assert record["proposal_id"] == "prop-9"

    def test_absent_fields_not_emitted(self, emit):
        logger, records = emit
        logger.info("bare")
        assert not set(LogContext.FIELDS) & set(records()[0])

    def test_set_is_additive_and_skips_none(self):
        LogContext.set(correlation_id="a")
        LogContext.set(session_id="b", correlation_id=None)
        assert LogContext.get_all() == {"correlation_id": "a", "session_id": "b"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="client_id"):
            LogContext.set(client_id="client-1")

    def test_bind_restores_previous_values(self):
        LogContext.set(step_id="billing")
        with LogContext.bind(step_id="payment", proposal_id="temp"):
            assert LogContext.get_all() == {"step_id": "payment", "proposal_id": "temp"}
            with LogContext.bind(step_id="items"):
                assert LogContext.get_all()["step_id"] == "items"
            assert LogContext.get_all()["step_id"] == "payment"
        assert LogContext.get_all() == {"step_id": "billing"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="user-1"):
                raise RuntimeError
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="x", step_id="review")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_tasks_do_not_share_context(self):
        async def session(name):
            with LogContext.bind(session_id=name):
                await asyncio.sleep(0)
                return LogContext.get_all()["session_id"]

        async def main():
            return await asyncio.gather(session("s1"), session("s2"))

        assert asyncio.run(main()) == ["s1", "s2"]


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("pricing").handlers) == 1

    def test_does_not_propagate(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("pricing").propagate is False

    def test_get_logger_namespacing(self):
        assert get_logger("engines.totals").name == "pricing.engines.totals"
        assert get_logger("pricing.engines.totals").name == "pricing.engines.totals"

    def test_child_loggers_use_namespace_handler(self, emit):
        _, records = emit
        get_logger("deep.nested.module").debug("hierarchy_test")
        record = records()[0]
        assert record["logger"] == "pricing.deep.nested.module"
