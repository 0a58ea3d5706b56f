"""
Constants Module for Probemon

Contains constant values, enumerations and message templates
used throughout the application.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, FrozenSet


class ProbeKind(str, Enum):
    """
    Probe Kind Enumeration

    Short, stable category tags. Used as the key of a probe entry in the
    checks file, for grouping on the status surface and as the kind
    column of persisted results.
    """

    DNS = "dns"
    RRSIG = "rrsig"
    DNSSOA = "dnssoa"
    TCP_PORT_CLOSED = "tcpportclosed"
    PING = "ping"
    HTTPS = "https"
    HTTP_REDIRECT = "httpredir"


class NotifierKind(str, Enum):
    """Notifier Kind Enumeration"""

    TELEGRAM = "telegram"
    NTFY = "ntfy"
    PUSHOVER = "pushover"
    LOG = "log"


class AlertEventType(str, Enum):
    """Kinds of alert events recorded in the results database."""

    ALERT = "alert"
    RECOVERY = "recovery"


class Defaults:
    """Default values for probe options."""

    MIN_FAILURES: Final[int] = 1
    FAILURE_WINDOW: Final[int] = 120

    DNS_TIMEOUT: Final[float] = 5.0
    DNS_PORT: Final[int] = 53
    RRSIG_MIN_DAYS: Final[int] = 7
    TCP_TIMEOUT: Final[float] = 3.0
    PING_TIMEOUT: Final[float] = 2.0
    HTTP_TIMEOUT: Final[float] = 10.0
    HTTPS_MIN_CERT_DAYS: Final[int] = 14
    HTTPS_PORT: Final[int] = 443

    USER_AGENT: Final[str] = "Probemon/1.0 (+infrastructure monitoring)"


REDIRECT_STATUS_CODES: Final[FrozenSet[int]] = frozenset({301, 302, 303, 307, 308})

SECONDS_PER_DAY: Final[int] = 86400


class MessageTemplates:
    """Notification templates. Plain text; every transport accepts it."""

    ALERT_BODY: Final[str] = (
        "{reason}\n"
        "{count} failure(s) in the last {window} (threshold {threshold})"
    )
    RECOVERY_SUBJECT: Final[str] = "Resolved: {description}"
    RECOVERY_BODY: Final[str] = "No longer failing: {reason}"
