# Overview: Row locking and retry helpers shared by the order and payment services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Turn a read of an order or payment row into SELECT ... FOR UPDATE.

    On SQLite the clause is dropped. Writers there are serialized by the
    database write lock, the stock and status guards in the WHERE clauses,
    and uq_payments_order_active.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func() up to `attempts` times, rolling the session back between tries.

    Only lock contention (OperationalError) and a lost version_id race
    (StaleDataError) are retried; the sleep doubles each round starting at
    backoff_base seconds. Other errors, and the last failed try, propagate.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
