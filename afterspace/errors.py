"""Exception types raised by the data-access layer.

Lookups that find nothing return ``None`` or an empty list; nothing here is
used for "not found".
"""


class AfterspaceError(Exception):
    pass


class ConfigurationError(AfterspaceError):
    """Raised when settings are missing or invalid."""


class InvalidInputError(AfterspaceError):
    """Rejected before any store call was made."""


class ForbiddenError(AfterspaceError):
    """The principal is neither owner nor member of the target entity."""


class EntityDeletedError(AfterspaceError):
    """Mutation attempted on a soft-deleted entity."""


class ConflictError(AfterspaceError):
    """A conditional write found the record changed since it was read."""


class StoreUnavailableError(AfterspaceError):
    """The table could not serve the request."""

    def __init__(self, operation, cause=None):
        self.operation = operation
        self.cause = cause
        code = _error_code(cause)
        message = f"{operation} failed"
        if code:
            message += f" ({code})"
        super().__init__(message)

    @property
    def code(self):
        return _error_code(self.cause)


class IndexUnavailableError(StoreUnavailableError):
    """A secondary index query failed (index missing, still backfilling, ...)."""

    def __init__(self, index_name, cause=None):
        self.index_name = index_name
        super().__init__(f"query on index {index_name}", cause)


def _error_code(cause):
    response = getattr(cause, "response", None)
    if not isinstance(response, dict):
        return None
    return response.get("Error", {}).get("Code")
