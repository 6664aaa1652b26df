"""
Error taxonomy for the warehouse mutation/query layer.

Every error carries an HTTP status and a short public message. The public
message is the only text a client ever sees; internal detail stays in the
exception arguments and goes to the operational log.
"""
from typing import Optional

from django.utils.translation import gettext_lazy as _


class WarehouseError(Exception):
    status_code = 500
    code = 'internal_error'
    public_message = _('The request could not be completed. Please try again later.')

    def user_message(self) -> str:
        return str(self.public_message)


class ValidationError(WarehouseError):
    """Malformed or out-of-range input; the user can correct it."""

    status_code = 400
    code = 'validation_error'
    public_message = _('The submitted data is invalid.')

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def user_message(self) -> str:
        # Messages are composed by the validators themselves, never from
        # driver or exception text, so they are safe to show.
        return self.message


class CsrfError(WarehouseError):
    status_code = 403
    code = 'csrf_failed'
    public_message = _('Your session token is invalid or has expired. Please reload the page and try again.')


class RateLimitExceeded(WarehouseError):
    status_code = 429
    code = 'rate_limited'
    public_message = _('Too many requests. Please wait before trying again.')

    def __init__(self, key: str, limit: int, window_seconds: int, retry_after: int = 0):
        super().__init__(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
        self.key = key
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = max(0, int(retry_after))


class QueryBindingError(WarehouseError):
    """Parameter/placeholder mismatch or a non allow-listed table/column.

    Always a programming defect, never triggered by user input.
    """

    code = 'internal_error'


class StorageError(WarehouseError):
    """Database unavailable or constraint violation."""

    code = 'storage_error'


class TransactionError(WarehouseError):
    """Commit or rollback failed; nothing in the unit of work is durable."""

    code = 'transaction_failed'
    public_message = _('The operation failed and no changes were saved. Please try again later.')
