"""
Structured logging.

Verifies:
- One JSON object per record, with Decimal/date/UUID/Enum values rendered
- LogContext fields merged into every line and restored after bind()
- Engine exception attributes exposed as exc_* fields
- configure_logging attaches exactly one handler until reset
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from itc_kernel.domain.records import ItcCategory
from itc_kernel.exceptions import InsufficientBalanceError
from itc_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def json_lines():
    """Route itc_kernel logs into a buffer; calling the fixture parses it."""
    buffer = StringIO()
    configure_logging(handler=logging.StreamHandler(buffer), level=logging.INFO)

    def read() -> list[dict]:
        return [json.loads(raw) for raw in buffer.getvalue().splitlines() if raw]

    return read


class TestStructuredFormatter:
    def test_envelope(self, json_lines):
        get_logger("test").info("hello")

        (line,) = json_lines()
        assert (line["level"], line["message"]) == ("INFO", "hello")
        assert line["logger"] == "itc_kernel.test"
        assert line["ts"].endswith("+00:00")

    def test_domain_values_rendered(self, json_lines):
        ref = uuid4()
        get_logger("test").info(
            "invoice_created",
            extra={
                "invoice_ref": ref,
                "itc_claimed": Decimal("1800.00"),
                "invoice_date": date(2024, 4, 10),
                "category": ItcCategory.INPUTS,
                "line_count": 2,
            },
        )

        (line,) = json_lines()
        assert line["invoice_ref"] == str(ref)
        assert line["itc_claimed"] == "1800.00"
        assert line["invoice_date"] == "2024-04-10"
        assert line["category"] == "INPUTS"
        assert line["line_count"] == 2

    def test_context_merged(self, json_lines):
        LogContext.set(owner_id="owner-1", period="04-2024")
        get_logger("test").info("register_initialized")

        (line,) = json_lines()
        assert line["owner_id"] == "owner-1"
        assert line["period"] == "04-2024"

    def test_empty_context_adds_nothing(self, json_lines):
        get_logger("test").info("bare")

        (line,) = json_lines()
        assert "owner_id" not in line
        assert "period" not in line

    def test_engine_exception_attributes(self, json_lines):
        try:
            raise InsufficientBalanceError("04-2024", Decimal("100"), Decimal("250"))
        except InsufficientBalanceError:
            get_logger("test").error("utilization_rejected", exc_info=True)

        (line,) = json_lines()
        assert line["exc_type"] == "InsufficientBalanceError"
        assert line["exc_code"] == "INSUFFICIENT_BALANCE"
        assert line["exc_period"] == "04-2024"
        assert line["exc_available"] == "100"
        assert line["exc_requested"] == "250"
        assert "InsufficientBalanceError" in line["traceback"]

    def test_below_level_dropped(self, json_lines):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [line["message"] for line in json_lines()] == ["first", "second"]


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(owner_id="x", invoice_id="y")
        assert LogContext.get_all() == {"owner_id": "x", "invoice_id": "y"}

    def test_none_leaves_field(self):
        LogContext.set(owner_id="x")
        LogContext.set(owner_id=None, period="04-2024")
        assert LogContext.get_all() == {"owner_id": "x", "period": "04-2024"}

    def test_clear(self):
        LogContext.set(owner_id="x")
        LogContext.clear()
        assert not LogContext.get_all()

    def test_bind_nests(self):
        LogContext.set(owner_id="outer")
        with LogContext.bind(owner_id="inner", period="05-2024"):
            assert LogContext.get_all() == {"owner_id": "inner", "period": "05-2024"}
        assert LogContext.get_all() == {"owner_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(owner_id="temp"):
                raise RuntimeError("fail")
        assert "owner_id" not in LogContext.get_all()

    def test_unknown_fields_ignored(self):
        with LogContext.bind(owner_id="o", unknown_field="u"):
            assert LogContext.get_all() == {"owner_id": "o"}
        LogContext.set(colour="blue")
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_only_first_call_applies(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))

        handlers = logging.getLogger("itc_kernel").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, StructuredFormatter)

    def test_namespaced_loggers(self):
        assert get_logger("services.register").name == "itc_kernel.services.register"

    def test_children_reach_handler(self):
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer), level=logging.DEBUG)
        get_logger("engines.matching").debug("hierarchy_test")

        line = json.loads(buffer.getvalue().splitlines()[0])
        assert line["logger"] == "itc_kernel.engines.matching"
