"""Cancellation signal for generation runs, keyed by book id.

A flag is held in-process and, when a database is given, mirrored to
``generation_runs.cancel_requested`` so another process can cancel.
Runs observe the signal between steps only; in-flight provider calls
are allowed to finish.
"""

import logging
import threading
from typing import Optional

from config.exceptions import RunCancelledError
from models.database import Database

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_requested: set[int] = set()


def request_cancellation(book_id: int, db: Optional[Database] = None) -> bool:
    """Raise the cancel flag for a book.

    Returns True when a persisted run row was flagged (always False
    without a database).
    """
    with _lock:
        _requested.add(book_id)
    persisted = db.set_cancel_requested(book_id, True) if db is not None else False
    logger.info("Cancellation requested for book %d (persisted=%s)", book_id, persisted)
    return persisted


def is_cancel_requested(book_id: int, db: Optional[Database] = None) -> bool:
    with _lock:
        if book_id in _requested:
            return True
    return db.is_cancel_requested(book_id) if db is not None else False


def clear_cancellation(book_id: int, db: Optional[Database] = None) -> None:
    """Drop the in-process flag, and the persisted one when a database is given.

    Finished runs call this without a database, leaving the persisted
    flag as the record of the request.
    """
    with _lock:
        _requested.discard(book_id)
    if db is not None:
        db.set_cancel_requested(book_id, False)


def raise_if_cancelled(book_id: int, db: Optional[Database] = None) -> None:
    """Raise RunCancelledError if the book's run should stop."""
    if is_cancel_requested(book_id, db):
        raise RunCancelledError(book_id)
