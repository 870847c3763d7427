# Overview: Write-path helpers for row locking, SQLite write serialization, and retry.

from __future__ import annotations

import random
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StockError, StorageError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it there, and version_id columns catch anything that slips through.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    On SQLite, take the database write lock up front (BEGIN IMMEDIATE).

    Without it two writers can both read the same counters before either
    writes. Other dialects rely on lock_for_update().
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def _backoff_delay(attempt: int, backoff_base: float) -> float:
    # capped exponential with jitter so racing writers do not retry in lockstep
    delay = min(backoff_base * (2 ** attempt), 1.0)
    return delay + random.uniform(0, backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB write operation, retrying on concurrency-related failures.

    - OperationalError (deadlocks, lock timeouts, "database is locked") and
      StaleDataError (lost optimistic version check) roll back and retry.
    - StockError subclasses are business outcomes: roll back, re-raise as-is.
    - Any other SQLAlchemy failure, or exhausted retries, rolls back and
      raises StorageError so callers see one retryable error kind.
    """
    cfg = current_app.config
    if attempts is None:
        attempts = int(cfg.get("STOCK_WRITE_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(cfg.get("STOCK_WRITE_RETRY_BACKOFF", 0.1))
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except StockError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "Stock write failed after %d attempts: %s", attempts, exc
                )
                raise StorageError(f"storage conflict after {attempts} attempts") from exc
            current_app.logger.warning(
                "Stock write conflict (attempt %d/%d): %s", attempt + 1, attempts, exc.__class__.__name__
            )
            time.sleep(_backoff_delay(attempt, backoff_base))
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Stock write failed")
            raise StorageError("storage failure") from exc
        except Exception:
            db.session.rollback()
            raise
