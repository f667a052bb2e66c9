# Overview: Unit-of-work, row locking and retry helpers shared by the settlement services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; run_in_transaction opens
    SQLite transactions with BEGIN IMMEDIATE instead, which serializes writers.
    """
    return query.with_for_update()


def begin_write() -> None:
    """Take the database write lock up front on SQLite."""
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors propagate immediately.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Transaction conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, **retry_kwargs):
    """
    Run func() as one atomic unit of work and return its result.

    Commits when func returns, rolls back on any exception raised inside it
    (or by the commit itself). Concurrency conflicts re-run the whole unit.
    """
    def _op():
        begin_write()
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, **retry_kwargs)


def best_effort(description: str, func, *args, **kwargs) -> None:
    """
    Post-commit side effect: committed on its own, failures logged and swallowed.

    Never call this from inside run_in_transaction.
    """
    try:
        func(*args, **kwargs)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Post-commit side effect failed: %s", description)
