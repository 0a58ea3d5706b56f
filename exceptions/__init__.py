"""
Exceptions Package for Probemon

Provides the exception hierarchy used throughout the daemon.
"""

from exceptions.base import (
    ProbemonException,
    ConfigurationError,
    InternalInvariantError,
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
)

from exceptions.validation import (
    ValidationException,
    MissingFieldError,
    InvalidFieldError,
    UnknownFieldError,
    UnknownKindError,
)

from exceptions.monitoring import (
    MonitoringException,
    ProbeTransportError,
    NotifierDeliveryError,
)

__all__ = [
    # Base exceptions
    "ProbemonException",
    "ConfigurationError",
    "InternalInvariantError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",

    # Validation exceptions
    "ValidationException",
    "MissingFieldError",
    "InvalidFieldError",
    "UnknownFieldError",
    "UnknownKindError",

    # Monitoring exceptions
    "MonitoringException",
    "ProbeTransportError",
    "NotifierDeliveryError",
]
