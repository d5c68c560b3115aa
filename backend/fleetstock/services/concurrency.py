# Overview: Transaction scoping, row locking, and bounded retry for ledger mutations.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db
from ..logging_config import get_logger


logger = get_logger("concurrency")

RETRYABLE_ERRORS = (OperationalError, StaleDataError)
# Racing inserts of the same unique key (vehicle stock entry, document sequence)
RETRYABLE_WITH_INSERT = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction() covers it.
    """
    return query.with_for_update()


def begin_write_transaction():
    """
    On SQLite, take the database write lock up front (BEGIN IMMEDIATE) so
    read-check-write sequences serialize. No-op on other backends and when the
    connection is already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "transaction_retry",
                extra={"attempt": attempt + 1, "attempts": attempts, "exc_type": type(exc).__name__},
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def _retry_settings() -> tuple[int, float]:
    if has_app_context():
        return (
            int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)),
            float(current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)),
        )
    return 3, 0.1


def run_atomic(func, *, retry_on=RETRYABLE_ERRORS, lock_database: bool = True):
    """
    Run func() as one committed transaction.

    Any exception rolls the whole transaction back, so multi-row work inside
    func is all-or-nothing. Retryable failures are retried with backoff; once
    the budget is spent they surface as PersistenceError.
    """
    attempts, backoff_base = _retry_settings()

    def _op():
        try:
            if lock_database:
                begin_write_transaction()
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base, retry_on=retry_on)
    except retry_on as exc:
        logger.error("transaction_failed", exc_info=True, extra={"attempts": attempts})
        raise PersistenceError(
            f"Transaction failed after {attempts} attempts: {type(exc).__name__}",
            attempts=attempts,
        ) from exc
