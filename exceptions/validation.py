"""
Validation Exception Classes for Probemon

Provides specialized exceptions for configuration record validation:
missing mandatory keys, values of the wrong type, leftover keys nobody
consumed and unknown probe or notifier kinds.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional
from exceptions.base import ConfigurationError


class ValidationException(ConfigurationError):
    """
    Base Validation Exception

    Parent class for all record validation exceptions.
    """

    default_error_code = 3000

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: The field that failed validation
            value: The invalid value (sanitized)
            **kwargs: Additional arguments
        """
        super().__init__(message, config_key=field, **kwargs)

        if field:
            self.details["field"] = field

        if value is not None:
            self.details["value"] = self._sanitize_value(value)

    @staticmethod
    def _sanitize_value(value: Any) -> str:
        """
        Sanitize value for logging.

        Args:
            value: The value to sanitize

        Returns:
            Sanitized string representation
        """
        str_value = str(value)

        # Truncate long values
        if len(str_value) > 100:
            str_value = str_value[:100] + "..."

        return str_value


class MissingFieldError(ValidationException):
    """
    Missing Field Error

    Raised when mandatory keys are absent from a configuration record.
    """

    default_error_code = 3001

    def __init__(
        self,
        missing: Iterable[str],
        kind: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        missing_list: List[str] = sorted(missing)
        where = f" for '{kind}'" if kind else ""
        super().__init__(
            f"Missing mandatory option(s){where}: {', '.join(missing_list)}",
            field=missing_list[0] if missing_list else None,
            **kwargs
        )
        self.details["missing"] = missing_list
        if kind:
            self.details["kind"] = kind


class InvalidFieldError(ValidationException):
    """
    Invalid Field Error

    Raised when a recognized key carries a value of the wrong type or
    outside its allowed range.
    """

    default_error_code = 3002

    def __init__(
        self,
        message: str = "Invalid option value",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        kind: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field=field, value=value, **kwargs)
        if kind:
            self.details["kind"] = kind


class UnknownFieldError(ValidationException):
    """
    Unknown Field Error

    Raised by the loader when keys remain in a record after construction
    consumed every recognized option.
    """

    default_error_code = 3003

    def __init__(
        self,
        leftover: Iterable[str],
        kind: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        leftover_list: List[str] = sorted(leftover)
        where = f" for '{kind}'" if kind else ""
        super().__init__(
            f"Unknown option(s){where}: {', '.join(leftover_list)}",
            field=leftover_list[0] if leftover_list else None,
            **kwargs
        )
        self.details["unknown"] = leftover_list
        if kind:
            self.details["kind"] = kind


class UnknownKindError(ValidationException):
    """
    Unknown Kind Error

    Raised when a record names a probe or notifier kind that is not
    registered.
    """

    default_error_code = 3004

    def __init__(
        self,
        kind: str,
        known: Optional[Iterable[str]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(f"Unknown kind '{kind}'", field="kind", value=kind, **kwargs)
        if known is not None:
            self.details["known"] = sorted(known)
