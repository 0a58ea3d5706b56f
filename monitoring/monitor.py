"""
============================================================================
PROBEMON - MONITORING ENGINE
============================================================================
The heart of the daemon. One call to ``run_cycle()`` runs every probe that
is not still busy from an earlier cycle, records the outcomes, feeds the
failure window and hands the escalated set on.

Architecture
------------
MonitoringEngine           ← owns the probe worker pool
├── run_cycle()            ← one tick; called by the check_cycle job
│   ├── _run_probe()       ← asyncio task per probe
│   │   ├── _execute()     ← worker thread: perform() → set_status()
│   │   │                    → FailureWindow.report() on failure
│   │   └── _persist()     ← attributes / sub-results to the results sink
│   ├── FailureWindow.evaluate_counts()
│   ├── StatusBoard.update()
│   └── AlertManager.dispatch()
└── shutdown()             ← waits briefly for in-flight probes

Probes block, so they run in a ThreadPoolExecutor; everything else lives
on the event loop. A probe still running when the cycle timeout expires
stays in flight and is skipped on later cycles until it finishes.

Unexpected exceptions from perform() are logged with traceback and
counted on the probe. They are not failures and never reach the window.
InternalInvariantError is the exception: it stops the daemon.

License: MIT
============================================================================
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from config.settings import MonitoringSettings
from exceptions import DatabaseException, InternalInvariantError
from monitoring.probe import CheckResult, Probe
from monitoring.window import FailureWindow
from utils.logger import get_logger, log_execution_time

if TYPE_CHECKING:
    from database.repository import ResultRepository
    from monitoring.alerts import AlertManager
    from monitoring.context import MonitorContext
    from monitoring.status import StatusBoard


logger = get_logger("MonitoringEngine")

Key = Tuple[Probe, str]


class MonitoringEngine:
    """
    Concurrent probe runner.

    Lifecycle
    ---------
    1.  ``await engine.run_cycle()``  ← once per check interval
    2.  ``await engine.shutdown()``   ← stops the worker pool

    Thread-safety
    -------------
    Engine bookkeeping is only touched from the event loop. Worker threads
    touch the probe (status cell, results) and the FailureWindow, both of
    which carry their own locks.
    """

    def __init__(
        self,
        context: "MonitorContext",
        window: FailureWindow,
        settings: MonitoringSettings,
        alert_manager: Optional["AlertManager"] = None,
        status_board: Optional["StatusBoard"] = None,
        repository: Optional["ResultRepository"] = None,
    ):
        """
        Parameters
        ----------
        context : MonitorContext
            Source of the (fixed) probe list.
        window : FailureWindow
            Receives every failing result.
        settings : MonitoringSettings
            Worker pool size and cycle timeout.
        alert_manager : AlertManager, optional
            Receives the escalated set after each cycle.
        status_board : StatusBoard, optional
            Receives the escalated set after each cycle.
        repository : ResultRepository, optional
            Results sink; None disables persistence.
        """
        self.context = context
        self.window = window
        self.alert_manager = alert_manager
        self.status_board = status_board
        self.repository = repository

        self._cycle_timeout = settings.effective_cycle_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_workers,
            thread_name_prefix="probe",
        )

        self._in_flight: Dict[Probe, asyncio.Task] = {}
        self._fatal: Optional[InternalInvariantError] = None

        # --- counters ---
        self.cycles = 0
        self.checks_run = 0
        self.checks_failed = 0
        self.probe_errors = 0
        self.skipped = 0
        self.last_cycle_at: Optional[float] = None

        logger.info(
            f"MonitoringEngine created: probes={len(context.probes)}, "
            f"max_workers={settings.max_workers}, cycle_timeout={self._cycle_timeout}s"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    @property
    def in_flight_checks(self) -> int:
        return len(self._in_flight)

    async def run_cycle(self, now: Optional[float] = None) -> Dict[Key, int]:
        """
        Run one check cycle.

        Parameters
        ----------
        now : float, optional
            Evaluation time for the failure window; defaults to the time
            the wait for probes ended.

        Returns
        -------
        dict
            Escalated (probe, reason) → in-window failure count.

        Raises
        ------
        InternalInvariantError
            If a probe task violated an internal invariant.
        """
        self._raise_if_fatal()

        started = []
        for probe in self.context.probes:
            if not probe.try_begin():
                self.skipped += 1
                logger.warning(f"[Engine] Skipping {probe.describe()}: previous check still running")
                continue

            task = asyncio.create_task(self._run_probe(probe))
            self._in_flight[probe] = task
            task.add_done_callback(lambda _, probe=probe: self._in_flight.pop(probe, None))
            started.append(task)

        if started:
            _, pending = await asyncio.wait(started, timeout=self._cycle_timeout)
            if pending:
                logger.warning(
                    f"[Engine] {len(pending)} probe(s) still running after "
                    f"{self._cycle_timeout}s; they stay in flight"
                )

        self._raise_if_fatal()

        escalated = self.window.evaluate_counts(now)
        self.cycles += 1
        self.last_cycle_at = time.time()

        if self.status_board is not None:
            self.status_board.update(escalated, now)

        if self.alert_manager is not None:
            await self.alert_manager.dispatch(escalated, now)

        logger.debug(
            f"[Engine] Cycle {self.cycles}: started={len(started)}, "
            f"escalated={len(escalated)}"
        )
        return escalated

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Give in-flight probes ``timeout`` seconds, then stop the pool."""
        pending = list(self._in_flight.values())
        if pending:
            logger.info(f"[Engine] Waiting for {len(pending)} in-flight probe(s)")
            await asyncio.wait(pending, timeout=timeout)

        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("✓ MonitoringEngine stopped")

    # ------------------------------------------------------------------
    # PER-PROBE TASK
    # ------------------------------------------------------------------

    async def _run_probe(self, probe: Probe) -> None:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(self._executor, self._execute, probe)

            if result is None:
                self.probe_errors += 1
                return

            self.checks_run += 1
            if not result.ok:
                self.checks_failed += 1

            await self._persist(probe)

        except InternalInvariantError as e:
            logger.critical(f"[Engine] {e.log_format()}")
            self._fatal = e
        finally:
            probe.finish()

    @log_execution_time("MonitoringEngine")
    def _execute(self, probe: Probe) -> Optional[CheckResult]:
        """
        Worker-thread half of a probe run. Returns None when perform()
        raised something other than InternalInvariantError.
        """
        try:
            result = probe.perform()
        except InternalInvariantError:
            raise
        except Exception:
            probe.error_count += 1
            logger.exception(f"[Engine] Unexpected error in {probe.describe()}")
            return None

        probe.set_status(result)

        if result.ok:
            logger.debug(f"[Engine] ✓ {probe.describe()}")
        else:
            self.window.report(probe, result.reason, time.time())
            logger.warning(f"[Engine] ✗ {probe.describe()}: {result.reason}")

        return result

    async def _persist(self, probe: Probe) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.record_results(probe)
        except DatabaseException as e:
            logger.error(f"[Engine] Failed to persist results of {probe.describe()}: {e.message}")

    def _raise_if_fatal(self) -> None:
        if self._fatal is not None:
            raise self._fatal

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cycles": self.cycles,
            "checks_run": self.checks_run,
            "checks_failed": self.checks_failed,
            "probe_errors": self.probe_errors,
            "skipped": self.skipped,
            "in_flight": self.in_flight_checks,
            "probes": len(self.context.probes),
            "last_cycle_at": self.last_cycle_at,
        }
