"""
Database Package for Probemon

Provides the results database: connection management, ORM models and
the repository used by the monitoring engine and the status server.
"""

from database.connection import DatabaseManager
from database.models import AlertEvent, Base, ProbeResult
from database.repository import ResultRepository

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "ProbeResult",
    "AlertEvent",

    # Repositories
    "ResultRepository",
]
