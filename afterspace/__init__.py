from afterspace.backend import Backend
from afterspace.config import QueryStrategy, Settings
from afterspace.errors import (
    AfterspaceError,
    ConfigurationError,
    ConflictError,
    EntityDeletedError,
    ForbiddenError,
    IndexUnavailableError,
    InvalidInputError,
    StoreUnavailableError,
)
from afterspace.logs import configure_logging, trace_context

__all__ = [
    "AfterspaceError",
    "Backend",
    "ConfigurationError",
    "ConflictError",
    "EntityDeletedError",
    "ForbiddenError",
    "IndexUnavailableError",
    "InvalidInputError",
    "QueryStrategy",
    "Settings",
    "StoreUnavailableError",
    "configure_logging",
    "trace_context",
]
