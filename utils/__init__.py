"""
Utilities Package for Probemon

Logging setup, small helpers and validators.
"""

from utils.logger import get_logger, setup_logging
from utils.helpers import TimeHelper, StringHelper
from utils.validators import URLValidator, DataValidator, split_host_port

__all__ = [
    "get_logger",
    "setup_logging",
    "TimeHelper",
    "StringHelper",
    "URLValidator",
    "DataValidator",
    "split_host_port",
]
