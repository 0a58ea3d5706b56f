"""
Monitoring Exception Classes for Probemon

Exceptions raised around probe execution and alert delivery. None of
these ever leaves a probe's perform(): transport problems are turned into
a failing CheckResult, and delivery problems are isolated per notifier.
"""

from __future__ import annotations

from typing import Any, Optional
from exceptions.base import ProbemonException


class MonitoringException(ProbemonException):
    """
    Base Monitoring Exception

    Parent class for all monitoring-related exceptions.
    """

    default_error_code = 4000
    default_recoverable = True


class ProbeTransportError(MonitoringException):
    """
    Probe Transport Error

    Timeout, refused connection or protocol error met while a probe
    talks to its target.
    """

    default_error_code = 4001

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if target:
            self.details["target"] = target


class NotifierDeliveryError(MonitoringException):
    """
    Notifier Delivery Error

    Raised by a notifier when a message could not be delivered.
    """

    default_error_code = 4100

    def __init__(
        self,
        message: str,
        notifier: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize delivery error.

        Args:
            message: Error message
            notifier: Description of the failing notifier
            status_code: HTTP status returned by the transport, if any
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if notifier:
            self.details["notifier"] = notifier

        if status_code is not None:
            self.details["status_code"] = status_code
