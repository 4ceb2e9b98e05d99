"""Unit-of-work helper with bounded retries on transient contention.

Stock reservations take row locks, so two writers can deadlock or hit a
serialization failure. Those errors are safe to retry because the whole
unit of work was rolled back. Retrying only makes sense when this helper
owns the outermost transaction; inside a caller's ``atomic`` block the
error propagates and the caller's transaction is the one to roll back.
"""

import logging
import time
from typing import Callable, TypeVar

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction

from .errors import PersistenceFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization failure / deadlock detected
PG_RETRY_ERRCODES = {"40001", "40P01"}


def _pgcode_from(exc: BaseException):
    cause = getattr(exc, "__cause__", None)
    return getattr(exc, "pgcode", None) or getattr(cause, "pgcode", None) or getattr(cause, "sqlstate", None)


def is_retryable(exc: BaseException) -> bool:
    """True for deadlocks, serialization failures and a locked SQLite file."""
    if isinstance(exc, IntegrityError):
        return False
    code = _pgcode_from(exc)
    if code and code in PG_RETRY_ERRCODES:
        return True
    msg = str(exc).lower()
    return any(k in msg for k in ("deadlock detected", "could not serialize access", "database is locked"))


def after_commit(fn: Callable[[], None], *, label: str) -> None:
    """Run ``fn`` once the current transaction commits, never raising.

    Post-commit work (cache invalidation, event publishing) is a derivative
    of the committed state; its failure is logged and otherwise ignored.
    Outside a transaction ``fn`` runs immediately.
    """

    def _run():
        try:
            fn()
        except Exception:
            logger.exception("post-commit side effects failed", extra={"label": label})

    transaction.on_commit(_run)


def run_in_transaction(fn: Callable[[], T], *, label: str = "unit of work") -> T:
    """Run ``fn`` inside ``transaction.atomic()`` and return its result.

    Domain errors raised by ``fn`` propagate untouched. Database errors are
    retried up to ``STOCK_TX_RETRY_MAX`` attempts when retryable and when no
    outer transaction is open; anything else surfaces as
    ``PersistenceFailure``.

    Raises:
        PersistenceFailure: The store rejected or aborted the unit of work.
    """
    max_attempts = max(1, getattr(settings, "STOCK_TX_RETRY_MAX", 3))
    backoff = getattr(settings, "STOCK_TX_RETRY_BACKOFF", 0.05)
    owns_transaction = not transaction.get_connection().in_atomic_block

    attempt = 0
    while True:
        attempt += 1
        try:
            with transaction.atomic():
                return fn()
        except DatabaseError as exc:
            if owns_transaction and attempt < max_attempts and is_retryable(exc):
                logger.warning(
                    "%s hit transient contention, retrying",
                    label,
                    extra={"attempt": attempt, "error": str(exc)},
                )
                time.sleep(backoff * attempt)
                continue
            logger.error("%s aborted", label, extra={"attempt": attempt, "error": str(exc)})
            raise PersistenceFailure(f"{label} aborted: {exc}") from exc
