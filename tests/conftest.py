"""
Pytest fixtures for the fiscal import test suite.

Provides:
- One in-memory SQLite engine per test session (tables created once)
- Per-test sessions rolled back at teardown
- Deterministic clock, actor id, policy and captured structured logs

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL).
  Defaults to in-memory SQLite.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from fiscal_config import ImportPolicy
from fiscal_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from fiscal_kernel.domain.clock import DeterministicClock
from fiscal_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fiscal_modules.inventory.orm import ProductModel

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


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
    Capture fiscal_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, import_service):
            import_service.import_xml_bytes(...)
            logs = captured_logs()
            assert any(r["message"] == "import_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fiscal_kernel")
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
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    create_tables()
    yield
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; any
    ``session.commit()`` inside a test only releases a savepoint.  At
    teardown the outer transaction is rolled back, undoing all changes.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Common fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock(datetime(2024, 3, 20, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> ImportPolicy:
    """Default import policy without touching the YAML file."""
    return ImportPolicy()


@pytest.fixture
def make_product(session, test_actor_id):
    """Factory for catalog products."""

    def _make(
        name: str,
        sku: str | None = None,
        barcode: str | None = None,
        unit: str | None = "UN",
        stock: Decimal = Decimal("0"),
    ) -> ProductModel:
        product = ProductModel(
            sku=sku,
            barcode=barcode,
            name=name,
            unit=unit,
            stock_quantity=stock,
            active=True,
            created_by_id=test_actor_id,
        )
        session.add(product)
        session.flush()
        return product

    return _make
