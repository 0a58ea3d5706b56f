"""
============================================================================
PROBEMON - FAILURE WINDOW
============================================================================
Sliding-window failure tracking and escalation.

Every failing check is reported as (probe, reason, timestamp). Distinct
reasons from the same probe are tracked separately. Before each decision
the timestamps older than the probe's own ``failure_window`` are pruned
(a timestamp exactly ``failure_window`` seconds old is still inside), and
a pair escalates once at least ``min_failures`` timestamps remain.

Nothing is cached between evaluations: escalation is recomputed from the
pruned sets on every call, so aging alone can de-escalate a pair.

License: MIT
============================================================================
"""

import threading
import time
from typing import TYPE_CHECKING, Dict, Optional, Set, Tuple

from utils.logger import get_logger

if TYPE_CHECKING:
    from monitoring.probe import Probe


logger = get_logger("FailureWindow")

Key = Tuple["Probe", str]


class FailureWindow:
    """
    Thread-safe map of (probe, reason) to failure timestamps.

    ``report()`` is called from probe worker threads; ``evaluate()`` from
    the engine. One lock covers both.
    """

    def __init__(self):
        self._failures: Dict[Key, Set[float]] = {}
        self._lock = threading.Lock()

    def report(self, probe: "Probe", reason: str, timestamp: Optional[float] = None) -> None:
        """
        Record one failure occurrence.

        Parameters
        ----------
        probe : Probe
            Probe that failed; keyed by identity.
        reason : str
            Non-empty failure reason.
        timestamp : float, optional
            Epoch seconds of the failure; defaults to now.
        """
        if timestamp is None:
            timestamp = time.time()

        with self._lock:
            self._failures.setdefault((probe, reason), set()).add(timestamp)

    def evaluate_counts(self, now: Optional[float] = None) -> Dict[Key, int]:
        """
        Prune expired timestamps and return escalated pairs with their
        in-window occurrence counts.

        Parameters
        ----------
        now : float, optional
            Evaluation time in epoch seconds; defaults to now.

        Returns
        -------
        dict
            (probe, reason) -> number of failures still inside the window,
            only for pairs at or above the probe's ``min_failures``.
        """
        if now is None:
            now = time.time()

        escalated: Dict[Key, int] = {}

        with self._lock:
            for key in list(self._failures):
                probe, _ = key
                threshold = now - probe.failure_window
                kept = {ts for ts in self._failures[key] if ts >= threshold}

                if not kept:
                    del self._failures[key]
                    continue

                self._failures[key] = kept
                if len(kept) >= probe.min_failures:
                    escalated[key] = len(kept)

        return escalated

    def evaluate(self, now: Optional[float] = None) -> Set[Key]:
        """Escalated (probe, reason) pairs at ``now``."""
        return set(self.evaluate_counts(now))

    def pending(self) -> int:
        """Number of tracked (probe, reason) pairs, escalated or not."""
        with self._lock:
            return len(self._failures)
