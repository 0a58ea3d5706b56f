"""
============================================================================
PROBEMON - DATABASE MODELS
============================================================================
SQLAlchemy ORM models of the results database.

    probe_results   one row per probe sub-result per check
    alert_events    every escalation or recovery notice sent

License: MIT
============================================================================
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import declarative_base

from config.constants import AlertEventType


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Creation timestamp, indexed for retention cleanup."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True
    )


# ============================================================================
# PROBE RESULTS
# ============================================================================

class ProbeResult(TimestampMixin, Base):
    """
    Structured outcome of one probe execution.

    ``name`` is the sub-result name (``answers``, ``http``, ``cert``,
    a server address ...). A check that produced no sub-results is
    stored as a single ``status`` row.
    """

    __tablename__ = "probe_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(32), nullable=False, index=True)
    description = Column(Text, nullable=False)
    name = Column(String(255), nullable=False)
    ok = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    attributes = Column(JSON, nullable=False, default=dict)
    values = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_probe_results_kind_created", "kind", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "kind": self.kind,
            "description": self.description,
            "name": self.name,
            "ok": self.ok,
            "reason": self.reason,
            "attributes": self.attributes,
            "values": self.values,
        }

    def __repr__(self) -> str:
        return f"<ProbeResult {self.kind}:{self.name} ok={self.ok}>"


# ============================================================================
# ALERT EVENTS
# ============================================================================

class AlertEvent(TimestampMixin, Base):
    """An escalation or recovery notice handed to the notifiers."""

    __tablename__ = "alert_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event = Column(
        Enum(AlertEventType, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False,
        index=True
    )
    kind = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    window = Column(Integer, nullable=False, default=0)
    notifiers = Column(Integer, nullable=False, default=0)
    delivered = Column(Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "event": self.event.value if self.event else None,
            "kind": self.kind,
            "description": self.description,
            "reason": self.reason,
            "count": self.count,
            "window": self.window,
            "notifiers": self.notifiers,
            "delivered": self.delivered,
        }

    def __repr__(self) -> str:
        return f"<AlertEvent {self.event} {self.kind}: {self.reason[:40]}>"
