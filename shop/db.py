"""Database helpers shared by the reports and the services.

- ``statement_timeout`` runs a block in one transaction with a deadline the
  database enforces (a progress handler on SQLite, ``statement_timeout`` on
  PostgreSQL).
- ``translate_db_errors`` maps Django database errors onto the shop taxonomy.
- ``retry_on_unavailable`` retries a callable while the storage is unavailable.
"""
import logging
import time
from contextlib import contextmanager
from functools import wraps

from django.db import (
    DEFAULT_DB_ALIAS,
    IntegrityError,
    InterfaceError,
    OperationalError,
    connections,
    transaction,
)

from .conf import report_setting
from .exceptions import (
    ConstraintViolationError,
    QueryTimeoutError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

# PostgreSQL: query_canceled, raised when statement_timeout expires
PG_QUERY_CANCELED = '57014'

# SQLite VM instructions between two deadline checks
SQLITE_PROGRESS_STEPS = 1000

ENFORCING_VENDORS = ('sqlite', 'postgresql')


def _sqlstate_from(exc):
    cause = getattr(exc, '__cause__', None)
    return getattr(cause, 'sqlstate', None) or getattr(cause, 'pgcode', None)


def is_statement_timeout(exc):
    """True when a database error reports a statement cancelled by its deadline."""
    if _sqlstate_from(exc) == PG_QUERY_CANCELED:
        return True
    msg = str(exc).lower()
    return 'interrupted' in msg or 'statement timeout' in msg


@contextmanager
def translate_db_errors():
    try:
        yield
    except IntegrityError as exc:
        # Surfaced verbatim: the caller sees the engine's own message
        raise ConstraintViolationError(str(exc)) from exc
    except (OperationalError, InterfaceError) as exc:
        raise StorageUnavailableError(str(exc)) from exc


def _arm(connection, deadline, seconds):
    if connection.vendor == 'sqlite':
        connection.connection.set_progress_handler(
            lambda: time.monotonic() >= deadline, SQLITE_PROGRESS_STEPS
        )
    elif connection.vendor == 'postgresql':
        with connection.cursor() as cursor:
            # SET does not take bind parameters
            cursor.execute(f"SET LOCAL statement_timeout = {max(int(seconds * 1000), 1)}")
    else:
        logger.debug("No statement deadline support for %s; checking elapsed time only", connection.vendor)


@contextmanager
def statement_timeout(seconds, using=DEFAULT_DB_ALIAS):
    """
    Runs the enclosed block in a single transaction that is cancelled after ``seconds``.

    Raises QueryTimeoutError when the deadline is hit and StorageUnavailableError for
    any other operational failure. Querysets must be evaluated inside the block.
    """
    if seconds is None or seconds <= 0:
        raise ValueError(f"timeout must be a positive number of seconds, got {seconds!r}")

    connection = connections[using]
    started = time.monotonic()
    deadline = started + seconds
    try:
        with transaction.atomic(using=using):
            _arm(connection, deadline, seconds)
            try:
                yield
            finally:
                if connection.vendor == 'sqlite' and connection.connection is not None:
                    connection.connection.set_progress_handler(None, 0)
            if connection.vendor == 'postgresql':
                with connection.cursor() as cursor:
                    cursor.execute("SET LOCAL statement_timeout = DEFAULT")
    except OperationalError as exc:
        elapsed = time.monotonic() - started
        if is_statement_timeout(exc) or elapsed >= seconds:
            logger.warning("Statement cancelled after %.3fs (timeout %.3fs)", elapsed, seconds)
            raise QueryTimeoutError(
                f"Query exceeded its {seconds}s timeout and was cancelled.", timeout=seconds
            ) from exc
        raise StorageUnavailableError(str(exc)) from exc
    except InterfaceError as exc:
        raise StorageUnavailableError(str(exc)) from exc

    elapsed = time.monotonic() - started
    if connection.vendor not in ENFORCING_VENDORS and elapsed > seconds:
        logger.warning("Statement finished after %.3fs, past its %.3fs timeout", elapsed, seconds)
        raise QueryTimeoutError(f"Query exceeded its {seconds}s timeout.", timeout=seconds)


def retry_on_unavailable(max_attempts=None, backoff=None):
    """
    Retries the decorated callable on StorageUnavailableError with linear backoff.

    Only wrap idempotent calls (the reports are). Timeouts are not retried here;
    the caller decides whether to retry with a narrower window.
    """
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            attempts = max_attempts or report_setting('RETRY_ATTEMPTS')
            delay = report_setting('RETRY_BACKOFF') if backoff is None else backoff
            attempt = 0
            while True:
                attempt += 1
                try:
                    return fn(*args, **kwargs)
                except StorageUnavailableError as exc:
                    if attempt >= attempts:
                        raise
                    logger.warning(
                        "%s failed (%d/%d), retrying: %s", fn.__name__, attempt, attempts, exc
                    )
                    time.sleep(delay * attempt)
        return wrapper
    return deco
