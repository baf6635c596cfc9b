# Overview: Concurrency helpers shared by the document store and the command dispatcher.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionConflict


# Raised at flush/commit when another writer got there first:
# - StaleDataError: version_id_col mismatch (optimistic locking)
# - OperationalError: database locked / deadlock
# - IntegrityError: unique-key race (e.g. two first stockings of a product)
CONFLICT_ERRORS = (StaleDataError, OperationalError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version counter on every mutable document still catches conflicts.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 2, backoff_base: float = 0.05):
    """
    Execute a unit of work, retrying on TransactionConflict.

    Each attempt must start from fresh reads; the document store rolls the
    session back before raising, which expires every loaded row.
    """
    for attempt in range(attempts):
        try:
            return func()
        except TransactionConflict:
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Write conflict, retrying with fresh reads (attempt %d of %d)",
                attempt + 2,
                attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    raise TransactionConflict()
