# Overview: Service-layer transaction helpers; row locking, write serialization and retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientStoreError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() serializes
    writers there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start the write transaction for the current unit of work.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE),
    so the read-check-write sequence of a concurrent writer observes our
    committed result instead of a stale snapshot. Other backends rely on
    lock_for_update() row locks and need nothing here.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB unit of work, retrying on concurrency-related failures.

    - OperationalError (deadlock, lock timeout, lost connection) and
      StaleDataError are retried with exponential backoff; once attempts are
      exhausted a TransientStoreError is raised.
    - IntegrityError is not retried and surfaces as TransientStoreError.
    - Any other exception (including LedgerError) is re-raised unchanged.

    The session is rolled back on every failure path, so a failed unit of
    work never leaks partial writes into the next one.
    """
    if attempts is None:
        attempts = current_app.config.get("TILLBOOK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TILLBOOK_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise TransientStoreError(
                    "Store aborted the transaction; retry the operation",
                    details={"attempts": attempts, "reason": exc.__class__.__name__},
                ) from exc
            current_app.logger.warning(
                "Retrying unit of work after %s (attempt %d/%d)",
                exc.__class__.__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            raise TransientStoreError(
                "Store rejected the write; retry the operation",
                details={"reason": "IntegrityError"},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
    raise TransientStoreError("Store aborted the transaction; retry the operation")
