import pytest
from django.db import IntegrityError, OperationalError, connection

from . import db
from .exceptions import (
    ConstraintViolationError,
    QueryTimeoutError,
    StorageUnavailableError,
)

ENDLESS_COUNT = (
    "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) "
    "SELECT count(*) FROM (SELECT x FROM c LIMIT 1000000000)"
)


@pytest.mark.django_db
def test_long_statement_is_cancelled():
    with pytest.raises(QueryTimeoutError) as excinfo:
        with db.statement_timeout(0.05):
            with connection.cursor() as cursor:
                cursor.execute(ENDLESS_COUNT)
                cursor.fetchone()

    assert excinfo.value.timeout == 0.05
    assert isinstance(excinfo.value.__cause__, OperationalError)


@pytest.mark.django_db
def test_fast_statement_completes():
    with db.statement_timeout(5):
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            assert cursor.fetchone() == (1,)


@pytest.mark.django_db
def test_other_operational_errors_mean_storage_unavailable():
    with pytest.raises(StorageUnavailableError):
        with db.statement_timeout(5):
            with connection.cursor() as cursor:
                cursor.execute("SELECT * FROM table_that_does_not_exist")


@pytest.mark.parametrize('seconds', [None, 0, -1])
def test_timeout_must_be_positive(seconds):
    with pytest.raises(ValueError):
        with db.statement_timeout(seconds):
            pass


def test_integrity_errors_surface_verbatim():
    with pytest.raises(ConstraintViolationError, match='UNIQUE constraint failed: shop_customer.email'):
        with db.translate_db_errors():
            raise IntegrityError('UNIQUE constraint failed: shop_customer.email')


def test_operational_errors_become_unavailable():
    with pytest.raises(StorageUnavailableError) as excinfo:
        with db.translate_db_errors():
            raise OperationalError('database is locked')
    assert excinfo.value.retryable


def test_statement_timeout_detection():
    assert db.is_statement_timeout(OperationalError('interrupted'))
    assert db.is_statement_timeout(OperationalError('canceling statement due to statement timeout'))
    assert not db.is_statement_timeout(OperationalError('database is locked'))


def test_retry_until_storage_comes_back(monkeypatch):
    sleeps = []
    monkeypatch.setattr(db.time, 'sleep', sleeps.append)
    calls = []

    @db.retry_on_unavailable(max_attempts=3, backoff=0.5)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise StorageUnavailableError('connection refused')
        return 'ok'

    assert flaky() == 'ok'
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_retry_gives_up(monkeypatch):
    monkeypatch.setattr(db.time, 'sleep', lambda seconds: None)

    @db.retry_on_unavailable(max_attempts=2, backoff=0)
    def down():
        raise StorageUnavailableError('connection refused')

    with pytest.raises(StorageUnavailableError):
        down()


def test_timeouts_are_not_retried(monkeypatch):
    monkeypatch.setattr(db.time, 'sleep', lambda seconds: None)
    calls = []

    @db.retry_on_unavailable(max_attempts=5, backoff=0)
    def slow():
        calls.append(1)
        raise QueryTimeoutError('too slow', timeout=1)

    with pytest.raises(QueryTimeoutError):
        slow()
    assert len(calls) == 1
