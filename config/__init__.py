"""
Configuration Package for Probemon

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
- The checks file loader building probes and notifiers
"""

from config.settings import (
    Settings,
    MonitoringSettings,
    DatabaseSettings,
    WebSettings,
    LoggingSettings,
    NotifierSettings,
    get_settings,
)

from config.constants import (
    ProbeKind,
    NotifierKind,
    AlertEventType,
    Defaults,
    MessageTemplates,
)

__all__ = [
    # Settings
    "Settings",
    "MonitoringSettings",
    "DatabaseSettings",
    "WebSettings",
    "LoggingSettings",
    "NotifierSettings",
    "get_settings",

    # Constants
    "ProbeKind",
    "NotifierKind",
    "AlertEventType",
    "Defaults",
    "MessageTemplates",
]
