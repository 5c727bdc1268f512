# Overview: Transaction scope, row locking and retry for every multi-step operation.

"""
Transaction Scope

WHY: Each engine operation (checkout, receive, void, drawer open/close,
payment, return) must commit every row it touches together or not at all,
and two concurrent operations on the same stock row, drawer or customer
must serialize instead of interleaving.

DESIGN PRINCIPLES:
- unit_of_work() opens the write transaction once; nested scopes share it
  and only the outermost scope commits or rolls back
- SQLite: BEGIN IMMEDIATE takes the write lock up front (busy timeout from
  TRANSACTION_TIMEOUT_SECONDS); PostgreSQL: SET LOCAL lock_timeout
- run_in_transaction() retries the whole unit on lock contention and then
  surfaces SerializationConflictError, the one retryable error kind
- No in-process locks; the database transaction is the only boundary
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import SerializationConflictError
from ..extensions import db

logger = logging.getLogger(__name__)

_DEPTH_KEY = "unit_of_work_depth"

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_PGCODES = {"40001", "40P01", "55P03"}
_CONTENTION_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "lock timeout",
    "could not serialize",
    "could not obtain lock",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there BEGIN IMMEDIATE already
    serializes writers for the whole transaction.
    """
    return query.with_for_update()


def in_unit_of_work() -> bool:
    return db.session.info.get(_DEPTH_KEY, 0) > 0


def is_lock_contention(exc: Exception) -> bool:
    """True when an OperationalError means "someone else holds the lock"."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


def _begin_write_transaction() -> None:
    conn = db.session.connection()
    dialect = conn.dialect.name
    if dialect == "sqlite":
        # pysqlite defers BEGIN until the first DML; take the write lock now
        # unless the connection already holds an open transaction.
        dbapi_conn = conn.connection.dbapi_connection
        if not dbapi_conn.in_transaction:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    elif dialect == "postgresql":
        timeout_s = current_app.config.get("TRANSACTION_TIMEOUT_SECONDS", 15)
        conn.exec_driver_sql(f"SET LOCAL lock_timeout = '{int(timeout_s * 1000)}ms'")


@contextmanager
def unit_of_work():
    """
    Transaction scope shared by everything called inside it.

    The outermost scope begins the write transaction and commits exactly
    once on success; any exception rolls the whole unit back and propagates.
    """
    info = db.session.info
    depth = info.get(_DEPTH_KEY, 0)
    info[_DEPTH_KEY] = depth + 1
    try:
        if depth == 0:
            _begin_write_transaction()
        yield db.session
        if depth == 0:
            db.session.commit()
    except Exception:
        if depth == 0:
            db.session.rollback()
        raise
    finally:
        info[_DEPTH_KEY] = depth


def run_with_retry(func, *, attempts: int = 2, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on lock contention (OperationalError), StaleDataError (optimistic
    locking conflicts) and SerializationConflictError (lost conditional
    update or concurrent first insert). Other errors propagate untouched.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, SerializationConflictError) as exc:
            db.session.rollback()
            if isinstance(exc, OperationalError) and not is_lock_contention(exc):
                raise
            if attempt >= attempts - 1:
                logger.warning("Giving up after %s attempts: %s", attempts, exc.__class__.__name__)
                if isinstance(exc, SerializationConflictError):
                    raise
                raise SerializationConflictError(
                    "The operation conflicted with a concurrent change; retry the request"
                ) from exc
            logger.warning(
                "Concurrent conflict (%s), retrying attempt %s of %s",
                exc.__class__.__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    raise SerializationConflictError("The operation could not be completed; retry the request")


def run_in_transaction(func, *, attempts: int | None = None):
    """
    Run `func` inside a unit of work, retrying the whole unit on contention.

    When already inside a unit of work, `func` simply joins it; the outer
    caller owns commit, rollback and retry.
    """
    if in_unit_of_work():
        return func()
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 2)

    def _op():
        with unit_of_work():
            return func()

    return run_with_retry(_op, attempts=max(1, attempts))
