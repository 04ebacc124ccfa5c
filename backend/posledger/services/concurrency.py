# Overview: Transaction scopes, row locking and optimistic-lock retry shared by every mutating service.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..validation import ConflictError, EngineError, StorageError

"""
Concurrency rules (authoritative)

- Every read-modify-write on a shared aggregate (stock family total, product
  stock, customer balance, shift) runs inside ONE atomic scope.
- Aggregates carry a version_id column; a concurrent writer that lost the race
  gets StaleDataError at flush and the whole operation is re-run against
  fresh state (bounded attempts). Last-writer-wins never happens.
- Where the backend honors it, the aggregate row is also locked with
  SELECT ... FOR UPDATE for the duration of the scope.
"""

DEFAULT_ATTEMPTS = 3


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id check still catches lost races there.
    """
    return query.with_for_update()


@contextmanager
def atomic(session, *, commit: bool = True):
    """
    One all-or-nothing unit of work.

    Commits on success and rolls back on any exception. Engine errors pass
    through unchanged; concurrency failures are left for run_with_retry; any
    other SQLAlchemy failure surfaces as StorageError.

    commit=False flushes instead, leaving the transaction to an enclosing scope.
    """
    try:
        yield session
        if commit:
            session.commit()
        else:
            session.flush()
    except (StaleDataError, OperationalError):
        session.rollback()
        raise
    except EngineError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("Write conflicts with existing data") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError("Storage failure; no changes were applied") from exc
    except Exception:
        session.rollback()
        raise


def run_with_retry(session, func, *, attempts: int = DEFAULT_ATTEMPTS, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). ``func`` must re-read everything it needs:
    each attempt starts from a rolled-back session. When every attempt loses
    the race, ConflictError is raised so the caller can decide to retry or abort.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError("Concurrent update conflict; please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))
