"""
Base Exception Classes for Probemon

Every error the daemon raises on purpose derives from ProbemonException,
so callers can catch the whole family at one seam and log it with its
code and details.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type


class ProbemonException(Exception):
    """
    Base Exception Class

    Attributes:
        message: Human-readable error message
        error_code: Numeric code; ranges are grouped per subsystem
        details: Structured context (item index, probe, target, ...)
        cause: Underlying exception, when one was wrapped
        recoverable: False for errors that must stop the daemon or startup
        timestamp: When the error was raised (UTC)
    """

    default_error_code: int = 1000
    default_recoverable: bool = True

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize for JSON responses and structured logs.

        Returns:
            Dictionary with type, message, code and details
        """
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }

    def log_format(self) -> str:
        """One-line rendering for log records."""
        line = f"{self.__class__.__name__} [{self.error_code}] {self.message}"
        if self.details:
            line += f" | details={self.details}"
        if self.cause:
            line += f" | cause={self.cause!r}"
        return line

    def with_details(self, **kwargs: Any) -> "ProbemonException":
        """Merge extra context into ``details`` and return self for re-raising."""
        self.details.update(kwargs)
        return self

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, error_code={self.error_code})"


class ConfigurationError(ProbemonException):
    """
    Configuration Error

    Raised when a probe or notifier record, the checks file, or the
    application settings are malformed. Always fatal to startup.
    """

    default_error_code = 1100
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[Type] = None,
        **kwargs: Any
    ) -> None:
        """
        Args:
            message: Error message
            config_key: Offending key in the record or settings
            expected_type: Type the value should have had
            **kwargs: Passed to ProbemonException
        """
        super().__init__(message, **kwargs)

        if config_key:
            self.details["config_key"] = config_key
        if expected_type:
            self.details["expected_type"] = expected_type.__name__


class InternalInvariantError(ProbemonException):
    """
    Internal Invariant Error

    Raised on programmer errors such as releasing a probe guard that was
    never taken. Never converted into a check failure; it stops the daemon.
    """

    default_error_code = 1900
    default_recoverable = False

    def __init__(self, message: str, component: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)

        if component:
            self.details["component"] = component
