"""
Pytest fixtures for the ITC engine test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- Deterministic clock, configuration and in-memory repository
- Sample vendors and service instances wired to them
- SQLite-backed SqlItcRepository sessions for persistence tests
"""

import json
import logging
from datetime import date
from io import StringIO

import pytest

from itc_config import get_active_config
from itc_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from itc_kernel.domain.clock import DeterministicClock
from itc_kernel.domain.records import Vendor, VendorType
from itc_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from itc_services.ingestion import PurchaseInvoiceService
from itc_services.ports import InMemoryItcRepository
from itc_services.reconciliation import ReconciliationService
from itc_services.register import ItcRegisterService
from itc_services.sql_repository import SqlItcRepository
from tests.helpers import VENDOR_GSTIN


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture itc_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ingestion):
            ingestion.create_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("itc_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def clock():
    return DeterministicClock.on(date(2024, 10, 27))


@pytest.fixture
def repo():
    return InMemoryItcRepository()


@pytest.fixture
def regular_vendor(repo):
    return repo.save_vendor(
        Vendor(
            vendor_id="vendor-regular",
            name="Karnataka Steel Traders",
            gstin=VENDOR_GSTIN,
        )
    )


@pytest.fixture
def composition_vendor(repo):
    return repo.save_vendor(
        Vendor(
            vendor_id="vendor-composition",
            name="Corner Stationers",
            gstin="27AAACC1111C1Z1",
            vendor_type=VendorType.COMPOSITION,
        )
    )


@pytest.fixture
def unregistered_vendor(repo):
    return repo.save_vendor(
        Vendor(
            vendor_id="vendor-unregistered",
            name="Local Carpenter",
            gstin=None,
            vendor_type=VendorType.UNREGISTERED,
            is_registered=False,
        )
    )


@pytest.fixture
def inactive_vendor(repo):
    return repo.save_vendor(
        Vendor(
            vendor_id="vendor-inactive",
            name="Closed Supplies",
            gstin="29AAAAA0000A1Z0",
            is_active=False,
        )
    )


@pytest.fixture
def ingestion(repo, clock, config):
    return PurchaseInvoiceService(repo, clock, config)


@pytest.fixture
def register(repo, clock, config):
    return ItcRegisterService(repo, clock, config)


@pytest.fixture
def reconciliation(repo, clock, config, register):
    return ReconciliationService(repo, clock, register, config)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine):
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def sql_repo(session, clock):
    return SqlItcRepository(session, clock)
