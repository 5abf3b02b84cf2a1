# Overview: Runs multi-row writes (document saves, product deletes) as one committed unit with bounded retry.

"""
Unit of Work

A document save touches the document, its lines, inventory rows, the stock
audit trail, financial transactions and account balances. run_atomic runs
such a write so that it either commits once as a whole or leaves nothing
behind:

- op() performs the writes without committing; run_atomic commits after it
- any exception rolls the session back and propagates unchanged
- OperationalError ("database is locked" under SQLite) and StaleDataError
  restart op() from scratch after an exponential backoff, so op() must
  re-read the rows it changes on every attempt
"""

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 0.1


def run_atomic(op, *, label: str, attempts: int = DEFAULT_ATTEMPTS, backoff: float = DEFAULT_BACKOFF_SECONDS):
    """Run op() and commit; roll back on failure, retrying transient lock errors."""
    for attempt in range(1, attempts + 1):
        try:
            result = op()
            db.session.commit()
            return result
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.error("%s gave up after %d attempts: %s", label, attempts, exc)
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning("%s hit %s, retrying in %.2fs (%d/%d)",
                           label, type(exc).__name__, delay, attempt, attempts - 1)
            time.sleep(delay)
        except Exception:
            db.session.rollback()
            raise
