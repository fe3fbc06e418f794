"""Shop error taxonomy.

Raised by the services, the reports and the database helpers. The GraphQL
layer translates them into errors carrying an ``extensions.code``.
"""


class ShopError(Exception):
    """Base class for every error raised by the shop app."""

    code = "SHOP_ERROR"
    retryable = False


class ConstraintViolationError(ShopError):
    """A uniqueness, referential or check constraint rejected a write."""

    code = "CONSTRAINT_VIOLATION"


class InsufficientStockError(ConstraintViolationError):
    """An order asked for more units than a product has in stock."""


class ImmutableRecordError(ConstraintViolationError):
    """An append-only record (order, captured item price) was modified."""


class NotFoundError(ShopError):
    """A record referenced by id does not exist."""

    code = "NOT_FOUND"


class StorageUnavailableError(ShopError):
    """The database could not be reached or failed the statement. Retry with backoff."""

    code = "STORAGE_UNAVAILABLE"
    retryable = True


class QueryTimeoutError(ShopError):
    """A statement ran past its deadline and was cancelled."""

    code = "QUERY_TIMEOUT"
    retryable = True

    def __init__(self, message, timeout=None):
        super().__init__(message)
        self.timeout = timeout
