"""
============================================================================
PROBEMON - STATUS BOARD
============================================================================
Read-only view of the daemon's state for the status server: the latest
CheckResult of every probe and the escalated set of the last cycle.

License: MIT
============================================================================
"""

import threading
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from utils.helpers import TimeHelper

if TYPE_CHECKING:
    from monitoring.context import MonitorContext
    from monitoring.probe import Probe


Key = Tuple["Probe", str]


class StatusBoard:
    """
    Thread-safe holder of the last escalated set.

    Probe status itself is read live through each probe's locked status
    cell; only the escalations are copied here by the engine.
    """

    def __init__(self, context: "MonitorContext"):
        self._context = context
        self._lock = threading.Lock()
        self._escalated: List[Dict[str, Any]] = []
        self._updated_at: Optional[float] = None

    def update(self, escalated: Dict[Key, int], now: Optional[float] = None) -> None:
        """Replace the escalated set with the one from the latest cycle."""
        rows = [
            {
                "kind": probe.kind(),
                "description": probe.describe(),
                "reason": reason,
                "count": count,
                "min_failures": probe.min_failures,
                "failure_window": probe.failure_window,
            }
            for (probe, reason), count in escalated.items()
        ]
        rows.sort(key=lambda row: (row["kind"], row["description"], row["reason"]))

        with self._lock:
            self._escalated = rows
            self._updated_at = now if now is not None else time.time()

    def probes(self) -> List[Dict[str, Any]]:
        snapshots = []
        for probe in self._context.probes:
            snapshot = probe.snapshot()
            snapshot["last_checked"] = TimeHelper.from_timestamp(snapshot["last_checked"])
            snapshots.append(snapshot)
        return snapshots

    def escalations(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "updated_at": TimeHelper.from_timestamp(self._updated_at),
                "escalated": list(self._escalated),
            }

    def summary(self) -> Dict[str, Any]:
        probes = self._context.probes
        never_checked = sum(1 for probe in probes if probe.last_checked is None)
        failing = sum(
            1 for probe in probes
            if probe.last_checked is not None and not probe.get_status().ok
        )
        with self._lock:
            escalated = len(self._escalated)
            updated_at = self._updated_at

        return {
            "probes": len(probes),
            "passing": len(probes) - failing - never_checked,
            "failing": failing,
            "never_checked": never_checked,
            "escalated": escalated,
            "updated_at": TimeHelper.from_timestamp(updated_at),
        }
