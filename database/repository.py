"""
============================================================================
PROBEMON - RESULTS REPOSITORY
============================================================================
Writes probe results and alert events to the results database and reads
them back for the status surface.

Every method raises DatabaseException subclasses on failure; callers in
the monitoring path log them and carry on.

License: MIT
============================================================================
"""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import delete, select

from config.constants import AlertEventType
from database.connection import DatabaseManager
from database.models import AlertEvent, ProbeResult
from utils.logger import get_logger

if TYPE_CHECKING:
    from monitoring.probe import Probe


STATUS_ROW = "status"


class ResultRepository:
    """
    Repository for probe results and alert events.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    @staticmethod
    def build_rows(probe: "Probe") -> List[ProbeResult]:
        """
        ORM rows for the probe's latest status and sub-results.
        """
        status = probe.get_status()
        common = {
            "kind": probe.kind(),
            "description": probe.describe(),
            "ok": status.ok,
            "reason": status.reason or None,
            "attributes": dict(probe.attributes),
        }

        results = dict(probe.results)
        if not results:
            return [ProbeResult(name=STATUS_ROW, values={}, **common)]

        return [
            ProbeResult(name=str(name), values=dict(values), **common)
            for name, values in results.items()
        ]

    async def record_results(self, probe: "Probe") -> int:
        """
        Persist the probe's current status and structured sub-results.

        Returns:
            Number of rows written
        """
        rows = self.build_rows(probe)
        async with self.db.session() as session:
            session.add_all(rows)
        return len(rows)

    async def record_alert(
        self,
        event: AlertEventType,
        probe: "Probe",
        reason: str,
        count: int = 0,
        notifiers: int = 0,
        delivered: int = 0,
    ) -> None:
        """
        Persist one alert or recovery notice.

        Args:
            event: alert or recovery
            probe: Probe the notice is about
            reason: Failure reason
            count: In-window failure count at dispatch time
            notifiers: Notifiers the notice was handed to
            delivered: Notifiers that accepted it
        """
        async with self.db.session() as session:
            session.add(AlertEvent(
                event=event,
                kind=probe.kind(),
                description=probe.describe(),
                reason=reason,
                count=count,
                window=probe.failure_window,
                notifiers=notifiers,
                delivered=delivered,
            ))

    async def recent_results(self, limit: int = 50, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        """Latest probe result rows, newest first."""
        query = select(ProbeResult).order_by(ProbeResult.id.desc()).limit(limit)
        if kind:
            query = query.where(ProbeResult.kind == kind)

        async with self.db.session() as session:
            result = await session.execute(query)
            return [row.to_dict() for row in result.scalars().all()]

    async def recent_alerts(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Latest alert events, newest first."""
        query = select(AlertEvent).order_by(AlertEvent.id.desc()).limit(limit)

        async with self.db.session() as session:
            result = await session.execute(query)
            return [row.to_dict() for row in result.scalars().all()]

    async def purge_older_than(self, days: int) -> int:
        """
        Delete results and alert events older than ``days`` days.

        Returns:
            Number of deleted rows
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        async with self.db.session() as session:
            deleted = 0
            for model in (ProbeResult, AlertEvent):
                result = await session.execute(
                    delete(model).where(model.created_at < cutoff)
                )
                deleted += result.rowcount or 0

        if deleted:
            self.logger.info(f"[Repository] Purged {deleted} rows older than {days} days")
        return deleted
