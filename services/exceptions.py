"""
CRM Service Exceptions

Custom exceptions raised by the service layer and translated to
JSON error responses by the routes.
"""

from sqlalchemy.exc import IntegrityError

# SQLSTATE for unique_violation on Postgres
UNIQUE_VIOLATION = '23505'


class CrmError(Exception):
    """Base exception for all CRM service errors."""
    pass


class ValidationError(CrmError):
    """
    Raised when a request payload fails validation.

    ``code`` is the machine-readable error returned to the client.
    """
    def __init__(self, code: str, message: str = None, field: str = None):
        self.code = code
        self.field = field
        super().__init__(message or code)


class LookupTableError(CrmError):
    """
    Raised when the location or label lookup tables cannot be loaded.

    This is fatal for a whole import batch.
    """
    pass


class SpreadsheetError(CrmError):
    """Raised when an uploaded file cannot be read as a spreadsheet."""
    def __init__(self, message: str, details: dict = None):
        self.details = details or {}
        super().__init__(message)


def error_code(exc) -> str:
    """Extract the driver error code (SQLSTATE on Postgres) if there is one."""
    orig = getattr(exc, 'orig', None)
    for attr in ('pgcode', 'sqlstate', 'sqlite_errorname'):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def serialize_db_error(exc) -> dict:
    """Turn a storage exception into the ``{message, code}`` shape the API returns."""
    orig = getattr(exc, 'orig', None)
    message = str(orig) if orig is not None else str(exc)
    return {
        'message': message,
        'code': error_code(exc),
    }


def is_unique_violation(exc) -> bool:
    """True when the storage error is a unique constraint violation."""
    if not isinstance(exc, IntegrityError):
        return False
    code = error_code(exc)
    if code in (UNIQUE_VIOLATION, 'SQLITE_CONSTRAINT_UNIQUE'):
        return True
    return 'unique' in str(exc.orig).lower()
