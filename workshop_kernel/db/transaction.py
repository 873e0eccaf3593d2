"""
TransactionRunner -- optimistic transactions with bounded retry-on-conflict.

Responsibility:
    Runs a unit of work against a fresh Session, commits it, and re-runs the
    whole unit when the commit lost a race with another writer.

Architecture position:
    Kernel > DB -- imperative shell.  Every multi-document write in the
    operations modules (receive, transfer, checkout) goes through a runner.

Invariants enforced:
    - Atomicity: a body either commits in full or leaves no trace.
    - No lost updates: every mutable document carries a version column; a
      concurrent change makes the UPDATE match zero rows (StaleDataError)
      and the body is re-run against the new state.
    - Bounded retries: after ``max_attempts`` conflicts the caller gets
      TransactionConflictError instead of an endless loop.
    - Re-runnable bodies: the body receives a new Session on every attempt
      and must re-read everything it depends on.  Side effects outside
      the session (logging aside) are not allowed inside a body.

Failure modes:
    - TransactionConflictError: conflicts on every attempt.
    - Any other exception from the body propagates unchanged after rollback.

Conflict detection:
    StaleDataError                 version column mismatch on UPDATE/DELETE
    IntegrityError (unique)        two writers created the same row
    OperationalError               serialization failure, deadlock, or
                                   SQLite "database is locked"
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from workshop_kernel.exceptions import TransactionConflictError
from workshop_kernel.logging_config import LogContext, get_logger

logger = get_logger("db.transaction")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_SECONDS = 0.05

# SQLSTATE codes: unique_violation, serialization_failure, deadlock_detected
_RETRYABLE_PGCODES = frozenset({"23505", "40001", "40P01"})

_RETRYABLE_MESSAGES = (
    "unique constraint failed",
    "duplicate key value",
    "could not serialize access",
    "deadlock detected",
    "database is locked",
)


def is_conflict(exc: BaseException) -> bool:
    """Return True if ``exc`` means another writer won the race."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, (IntegrityError, OperationalError)):
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode in _RETRYABLE_PGCODES:
            return True
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in _RETRYABLE_MESSAGES)
    return False


class TransactionRunner:
    """
    Runs ``fn(session)`` in its own transaction, retrying on conflict.

    Contract:
        ``run`` opens a session, calls the body, commits, and returns the
        body's result.  On a conflict it rolls back, sleeps
        ``backoff_seconds * attempt`` and starts again with a new session.

    Guarantees:
        - At most ``max_attempts`` bodies are executed.
        - The session is closed on every path.
        - Objects returned by the body stay readable after commit
          (the factory is expected to use ``expire_on_commit=False``);
          bodies should still prefer returning DTOs.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def run(self, fn: Callable[[Session], T], *, operation: str) -> T:
        last_conflict: BaseException | None = None

        with LogContext.bind(operation=operation):
            for attempt in range(1, self._max_attempts + 1):
                session = self._session_factory()
                try:
                    result = fn(session)
                    session.commit()
                except Exception as exc:
                    session.rollback()
                    if not is_conflict(exc):
                        raise
                    last_conflict = exc
                    logger.warning(
                        "transaction_conflict_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": self._max_attempts,
                            "conflict_type": type(exc).__name__,
                        },
                    )
                else:
                    if attempt > 1:
                        logger.info(
                            "transaction_committed_after_retry",
                            extra={"attempt": attempt},
                        )
                    return result
                finally:
                    session.close()

                if attempt < self._max_attempts and self._backoff_seconds:
                    self._sleep(self._backoff_seconds * attempt)

            logger.error(
                "transaction_retries_exhausted",
                extra={"attempts": self._max_attempts},
            )
            raise TransactionConflictError(
                operation, self._max_attempts
            ) from last_conflict
