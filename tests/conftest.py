"""
Pytest fixtures for the workshop inventory test suite.

Provides:
- A file-backed SQLite database per test (under ``tmp_path``)
- DeterministicClock, TransactionRunner and engine fixtures
- Inventory record factory
- Log capture as parsed JSON dicts
- A deterministic conflict injector for retry tests

Environment Variables:
- DATABASE_URL: PostgreSQL URL for the ``postgres``-marked race suite.
  Tests marked ``postgres`` are skipped unless it names a PostgreSQL database.
"""

import json
import logging
import os
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import event, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from workshop_kernel.db.base import Base
from workshop_kernel.db.engine import make_engine
from workshop_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from workshop_kernel.db.transaction import TransactionRunner
from workshop_kernel.domain.clock import DeterministicClock
from workshop_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workshop_kernel.models.inventory import InventoryRecord
from workshop_modules._orm_registry import import_all_orm_models
from workshop_modules.checkout.config import CheckoutConfig
from workshop_modules.checkout.service import CheckoutEngine
from workshop_modules.receiving.service import ReceivingEngine
from workshop_modules.transfers.service import TransferEngine

STORE_A = UUID("00000000-0000-4000-a000-00000000000a")
STORE_B = UUID("00000000-0000-4000-a000-00000000000b")
WORKSHOP = UUID("00000000-0000-4000-a000-00000000000c")

FIXED_NOW = datetime(2024, 6, 1, 9, 0, 0, tzinfo=UTC)


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
    Capture ``workshop`` logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, transfers):
            transfers.create(...)
            logs = captured_logs()
            assert any(r["message"] == "transfer_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workshop")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_collection_modifyitems(config, items):
    """Skip ``postgres`` tests unless DATABASE_URL points at PostgreSQL."""
    url = os.environ.get("DATABASE_URL", "")
    if url.startswith("postgresql"):
        return
    skip = pytest.mark.skip(reason="DATABASE_URL does not name a PostgreSQL database")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path) -> Generator[Engine, None, None]:
    """Fresh SQLite file database with the full schema."""
    engine = make_engine(f"sqlite:///{tmp_path / 'workshop.db'}")
    import_all_orm_models()
    Base.metadata.create_all(engine)
    register_immutability_listeners()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A plain session for arranging and inspecting rows."""
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def no_immutability():
    """Disable the immutability listeners for one test."""
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the runner (nothing actually sleeps)."""
    return []


@pytest.fixture
def runner(session_factory, sleeps) -> TransactionRunner:
    return TransactionRunner(
        session_factory, max_attempts=5, backoff_seconds=0.01, sleep=sleeps.append,
    )


# =============================================================================
# Engines
# =============================================================================


@pytest.fixture
def receiving(runner, clock) -> ReceivingEngine:
    return ReceivingEngine(runner, clock)


@pytest.fixture
def transfers(runner, clock) -> TransferEngine:
    return TransferEngine(runner, clock)


@pytest.fixture
def checkout_config() -> CheckoutConfig:
    return CheckoutConfig(default_tax_rate=Decimal("0.08"))


@pytest.fixture
def checkout(runner, clock, checkout_config) -> CheckoutEngine:
    return CheckoutEngine(runner, clock, config=checkout_config)


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def make_record(session_factory, clock):
    """
    Insert an InventoryRecord and return its id.

    Usage::

        thread_id = make_record("Thread", stock=10, sku="TH-01")
    """

    def _make(
        name: str = "Thread",
        *,
        stock: int = 0,
        location_id: UUID = STORE_A,
        sku: str | None = None,
        category: str | None = "Supplies",
        supplier: str | None = "Acme",
        cost_price: Decimal | str = Decimal("2.50"),
        retail_price: Decimal | str = Decimal("5.00"),
        reorder_level: int = 0,
    ) -> UUID:
        now = clock.now()
        with session_factory() as s:
            record = InventoryRecord(
                id=uuid4(),
                location_id=location_id,
                sku=sku,
                name=name,
                category=category,
                supplier=supplier,
                stock=stock,
                cost_price=Decimal(str(cost_price)),
                retail_price=Decimal(str(retail_price)),
                reorder_level=reorder_level,
                created_at=now,
                updated_at=now,
            )
            s.add(record)
            s.commit()
            return record.id

    return _make


@pytest.fixture
def stock_of(session_factory):
    """Read the committed stock of a record (None if it does not exist)."""

    def _stock(record_id: UUID) -> int | None:
        with session_factory() as s:
            record = s.get(InventoryRecord, record_id)
            return record.stock if record is not None else None

    return _stock


@pytest.fixture
def inject_conflict(session_factory, db_engine):
    """
    Commit a competing stock change just before the next flush.

    The change goes through a separate connection and bumps the record's
    version, so the transaction that is about to flush loses the race and
    is retried by the runner.  Fires once.

    Usage::

        fired = inject_conflict(record_id, stock_delta=5)
        engine.do_something(...)
        assert fired == [record_id]
    """
    installed = []

    def _inject(record_id: UUID, stock_delta: int = 1) -> list[UUID]:
        fired: list[UUID] = []

        def _before_flush(flush_session, flush_context, instances):
            if fired:
                return
            fired.append(record_id)
            table = InventoryRecord.__table__
            with db_engine.begin() as conn:
                conn.execute(
                    update(table)
                    .where(table.c.id == record_id)
                    .values(
                        stock=table.c.stock + stock_delta,
                        version=table.c.version + 1,
                    )
                )

        event.listen(session_factory, "before_flush", _before_flush)
        installed.append(_before_flush)
        return fired

    yield _inject

    for fn in installed:
        if event.contains(session_factory, "before_flush", fn):
            event.remove(session_factory, "before_flush", fn)
