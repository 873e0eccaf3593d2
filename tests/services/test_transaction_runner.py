"""
Tests for TransactionRunner.

Conflicts are produced deterministically: the body reads a row, a second
connection commits a change to it, and the body's flush then matches zero
rows on the version column.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from workshop_kernel.db.transaction import TransactionRunner, is_conflict
from workshop_kernel.exceptions import InsufficientStockError, TransactionConflictError
from workshop_kernel.models.inventory import InventoryRecord


def _bump_elsewhere(db_engine, record_id, delta=1):
    table = InventoryRecord.__table__
    with db_engine.begin() as conn:
        conn.execute(
            update(table)
            .where(table.c.id == record_id)
            .values(stock=table.c.stock + delta, version=table.c.version + 1)
        )


class _FakeOrig(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


class TestIsConflict:

    def test_stale_data(self):
        assert is_conflict(StaleDataError("stale"))

    def test_unique_violation_sqlite(self):
        err = IntegrityError("INSERT", {}, _FakeOrig("UNIQUE constraint failed: t.c"))
        assert is_conflict(err)

    def test_unique_violation_pgcode(self):
        err = IntegrityError("INSERT", {}, _FakeOrig("whatever", pgcode="23505"))
        assert is_conflict(err)

    def test_serialization_failure(self):
        err = OperationalError("UPDATE", {}, _FakeOrig("x", pgcode="40001"))
        assert is_conflict(err)

    def test_database_locked(self):
        err = OperationalError("UPDATE", {}, _FakeOrig("database is locked"))
        assert is_conflict(err)

    def test_check_constraint_is_not_conflict(self):
        err = IntegrityError("UPDATE", {}, _FakeOrig("CHECK constraint failed: stock"))
        assert not is_conflict(err)

    def test_domain_error_is_not_conflict(self):
        assert not is_conflict(InsufficientStockError("r", "Thread", 2, 1))


class TestConstruction:

    def test_rejects_zero_attempts(self, session_factory):
        with pytest.raises(ValueError):
            TransactionRunner(session_factory, max_attempts=0)

    def test_rejects_negative_backoff(self, session_factory):
        with pytest.raises(ValueError):
            TransactionRunner(session_factory, backoff_seconds=-1)


class TestRun:

    def test_commits_and_returns_result(self, runner, make_record, stock_of):
        record_id = make_record(stock=3)

        def body(session):
            record = session.get(InventoryRecord, record_id)
            record.stock = 10
            return record.name

        assert runner.run(body, operation="test_set_stock") == "Thread"
        assert stock_of(record_id) == 10

    def test_retries_after_stale_write(
        self, runner, db_engine, make_record, stock_of, sleeps, captured_logs,
    ):
        record_id = make_record(stock=5)
        attempts = []

        def body(session):
            attempts.append(1)
            record = session.get(InventoryRecord, record_id)
            if len(attempts) == 1:
                _bump_elsewhere(db_engine, record_id, delta=2)
            record.stock = record.stock + 1
            session.flush()
            return record.stock

        result = runner.run(body, operation="test_increment")

        assert len(attempts) == 2
        # Second attempt re-read the competing write
        assert result == 8
        assert stock_of(record_id) == 8
        assert sleeps == [0.01]
        messages = [r["message"] for r in captured_logs()]
        assert "transaction_conflict_retry" in messages
        assert "transaction_committed_after_retry" in messages

    def test_exhaustion_raises_conflict_error(
        self, runner, db_engine, make_record, stock_of, sleeps,
    ):
        record_id = make_record(stock=5)
        attempts = []

        def body(session):
            attempts.append(1)
            record = session.get(InventoryRecord, record_id)
            _bump_elsewhere(db_engine, record_id)
            record.stock = 0
            session.flush()

        with pytest.raises(TransactionConflictError) as exc_info:
            runner.run(body, operation="always_loses")

        assert exc_info.value.attempts == 5
        assert exc_info.value.operation == "always_loses"
        assert isinstance(exc_info.value.__cause__, StaleDataError)
        assert len(attempts) == 5
        # Linear backoff between attempts, none after the last
        assert sleeps == pytest.approx([0.01, 0.02, 0.03, 0.04])
        # Only the competing writes landed
        assert stock_of(record_id) == 10

    def test_non_conflict_propagates_without_retry(self, runner, make_record, stock_of):
        record_id = make_record(stock=5)
        attempts = []

        def body(session):
            attempts.append(1)
            record = session.get(InventoryRecord, record_id)
            record.stock = 1
            session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            runner.run(body, operation="fails")

        assert len(attempts) == 1
        assert stock_of(record_id) == 5

    def test_zero_backoff_never_sleeps(self, session_factory, db_engine, make_record):
        record_id = make_record(stock=1)
        sleeps = []
        runner = TransactionRunner(
            session_factory, max_attempts=2, backoff_seconds=0, sleep=sleeps.append,
        )

        def body(session):
            record = session.get(InventoryRecord, record_id)
            _bump_elsewhere(db_engine, record_id)
            record.stock = 0
            session.flush()

        with pytest.raises(TransactionConflictError):
            runner.run(body, operation="no_sleep")
        assert sleeps == []

    def test_operation_bound_in_log_context(self, runner, captured_logs):
        from workshop_kernel.logging_config import get_logger

        def body(session):
            get_logger("test").info("inside_body")

        runner.run(body, operation="context_check")

        inside = [r for r in captured_logs() if r["message"] == "inside_body"]
        assert inside[0]["operation"] == "context_check"
