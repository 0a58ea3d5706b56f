"""
============================================================================
PROBEMON - ALERT MANAGER
============================================================================
Turns the escalated set of a check cycle into notifications.

Design
------
For every escalated (probe, reason) pair the manager formats

    subject = probe description
    body    = reason, in-window failure count, window and threshold

and delivers it to every notifier bound to that probe, concurrently via
``asyncio.gather(..., return_exceptions=True)``. A failing notifier is
logged and never affects delivery to the others.

Cooldown Logic
--------------
A pair is delivered when it newly escalates. While it stays escalated it
is delivered again only after ``alert_cooldown`` seconds. When a delivered
pair drops out of the escalated set a recovery notice goes to the same
notifiers (if ``recovery_alert`` is on). Recovery notices are never
subject to cooldown.

Every alert and recovery is also recorded in the results database when a
repository is configured.

License: MIT
============================================================================
"""

import asyncio
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from config.constants import AlertEventType, MessageTemplates
from config.settings import MonitoringSettings
from exceptions import DatabaseException, NotifierDeliveryError
from utils.helpers import TimeHelper
from utils.logger import get_logger

if TYPE_CHECKING:
    from database.repository import ResultRepository
    from monitoring.notifiers import Notifier
    from monitoring.probe import Probe


logger = get_logger("AlertManager")


Key = Tuple["Probe", str]


# ============================================================================
# MESSAGE FORMATTING
# ============================================================================

def format_alert(probe: "Probe", reason: str, count: int) -> Tuple[str, str]:
    """Subject and body of an escalation notice."""
    body = MessageTemplates.ALERT_BODY.format(
        reason=reason,
        count=count,
        window=TimeHelper.seconds_to_human_readable(probe.failure_window),
        threshold=probe.min_failures,
    )
    return probe.describe(), body


def format_recovery(probe: "Probe", reason: str) -> Tuple[str, str]:
    """Subject and body of a recovery notice."""
    return (
        MessageTemplates.RECOVERY_SUBJECT.format(description=probe.describe()),
        MessageTemplates.RECOVERY_BODY.format(reason=reason),
    )


# ============================================================================
# ALERT MANAGER
# ============================================================================

class AlertManager:
    """
    Central hub for escalation delivery.

    Parameters
    ----------
    settings : MonitoringSettings
        Supplies ``alert_cooldown`` and ``recovery_alert``.
    repository : ResultRepository, optional
        Where alert events are recorded. None disables recording.
    """

    def __init__(
        self,
        settings: MonitoringSettings,
        repository: Optional["ResultRepository"] = None,
    ):
        self.repository = repository
        self._cooldown_seconds = settings.alert_cooldown
        self._recovery_alert = settings.recovery_alert

        # --- cooldown tracking: (probe, reason) → time of last delivery ---
        self._last_sent: Dict[Key, float] = {}

        # --- counters ---
        self.alerts_sent = 0
        self.recoveries_sent = 0
        self.delivery_failures = 0

        logger.info(
            f"AlertManager created: cooldown={self._cooldown_seconds}s, "
            f"recovery_alert={self._recovery_alert}"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def dispatch(self, escalated: Dict[Key, int], now: Optional[float] = None) -> List[Key]:
        """
        Deliver notices for one cycle's escalated set.

        Parameters
        ----------
        escalated : dict
            (probe, reason) → in-window failure count, as returned by
            ``FailureWindow.evaluate_counts()``.
        now : float, optional
            Current time in epoch seconds.

        Returns
        -------
        list
            Pairs an alert was sent for during this call.
        """
        if now is None:
            now = time.time()

        due = [key for key in escalated if self._check_cooldown(key, now)]
        resolved = [key for key in self._last_sent if key not in escalated]

        jobs = []
        for key in due:
            self._last_sent[key] = now
            jobs.append(self._send_alert(key, escalated[key]))

        for key in resolved:
            del self._last_sent[key]
            if self._recovery_alert:
                jobs.append(self._send_recovery(key))

        if jobs:
            await asyncio.gather(*jobs)

        return due

    def active(self) -> List[Key]:
        """Pairs currently considered alerted (delivered and not resolved)."""
        return list(self._last_sent)

    # ------------------------------------------------------------------
    # COOLDOWN LOGIC
    # ------------------------------------------------------------------

    def _check_cooldown(self, key: Key, now: float) -> bool:
        """True if the pair is new or its cooldown has elapsed."""
        last = self._last_sent.get(key)
        if last is None:
            return True
        return now - last >= self._cooldown_seconds

    # ------------------------------------------------------------------
    # DELIVERY
    # ------------------------------------------------------------------

    async def _send_alert(self, key: Key, count: int) -> None:
        probe, reason = key
        subject, body = format_alert(probe, reason, count)

        logger.warning(f"[AlertManager] Escalated: {subject}: {reason} ({count}x)")
        delivered = await self._deliver(probe.notifiers, subject, body)
        self.alerts_sent += 1

        await self._record(AlertEventType.ALERT, probe, reason, count, len(probe.notifiers), delivered)

    async def _send_recovery(self, key: Key) -> None:
        probe, reason = key
        subject, body = format_recovery(probe, reason)

        logger.info(f"[AlertManager] Recovered: {probe.describe()}: {reason}")
        delivered = await self._deliver(probe.notifiers, subject, body)
        self.recoveries_sent += 1

        await self._record(AlertEventType.RECOVERY, probe, reason, 0, len(probe.notifiers), delivered)

    async def _deliver(self, notifiers: Sequence["Notifier"], subject: str, body: str) -> int:
        """
        Deliver to every notifier concurrently.

        Returns the number of notifiers that accepted the message.
        """
        if not notifiers:
            return 0

        results = await asyncio.gather(
            *(notifier.deliver(subject, body) for notifier in notifiers),
            return_exceptions=True,
        )

        delivered = 0
        for notifier, result in zip(notifiers, results):
            if isinstance(result, NotifierDeliveryError):
                self.delivery_failures += 1
                logger.error(f"[AlertManager] Delivery failed: {result.message}")
            elif isinstance(result, Exception):
                self.delivery_failures += 1
                logger.opt(exception=result).error(
                    f"[AlertManager] Unexpected error delivering via {notifier.describe()}"
                )
            else:
                delivered += 1
                logger.debug(f"[AlertManager] ✓ Delivered via {notifier.describe()}")

        return delivered

    async def _record(
        self,
        event: AlertEventType,
        probe: "Probe",
        reason: str,
        count: int,
        notifiers: int,
        delivered: int,
    ) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.record_alert(
                event, probe, reason, count=count, notifiers=notifiers, delivered=delivered
            )
        except DatabaseException as e:
            logger.error(f"[AlertManager] Failed to record {event.value}: {e.message}")

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Return current state of the alert manager for diagnostics."""
        return {
            "active_alerts": len(self._last_sent),
            "alerts_sent": self.alerts_sent,
            "recoveries_sent": self.recoveries_sent,
            "delivery_failures": self.delivery_failures,
            "cooldown_seconds": self._cooldown_seconds,
        }
