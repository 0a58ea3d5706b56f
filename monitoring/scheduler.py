"""
============================================================================
PROBEMON - BACKGROUND TASK SCHEDULER
============================================================================
A lightweight, asyncio-native scheduler that drives the monitoring engine
and its housekeeping jobs. All jobs run as coroutines in the same event
loop; a job is never started again while its previous run is still
active.

Registered Jobs
---------------
1.  check_cycle        (every MONITOR_CHECK_INTERVAL)
    One MonitoringEngine cycle: run probes, evaluate the failure window,
    dispatch alerts.

2.  history_cleanup    (every DB_CLEANUP_INTERVAL)
    Deletes results and alert events older than DB_HISTORY_RETENTION_DAYS.
    Only registered when a results repository is configured.

3.  heartbeat          (every MONITOR_HEARTBEAT_INTERVAL)
    Logs a line with engine counters so operators can see the daemon is
    alive during quiet periods.

An InternalInvariantError escaping a job is fatal: the scheduler hands it
to ``on_fatal`` and the application shuts down.

License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set

from config.settings import Settings
from exceptions import DatabaseException, InternalInvariantError
from utils.helpers import TimeHelper
from utils.logger import get_logger

if TYPE_CHECKING:
    from database.repository import ResultRepository
    from monitoring.alerts import AlertManager
    from monitoring.monitor import MonitoringEngine


logger = get_logger("Scheduler")


# ============================================================================
# JOB DEFINITION
# ============================================================================

@dataclass
class ScheduledJob:
    """
    Describes a single periodic background job.

    Attributes
    ----------
    name : str
        Human-readable identifier (used in logs).
    interval_seconds : float
        How often the job runs.
    coroutine_factory : Callable
        An async callable (no arguments) that performs the work.
    enabled : bool
        Can be toggled at runtime.
    running : bool
        True while an execution is in progress.
    last_run : Optional[float]
        Epoch timestamp of the last successful execution.
    next_run : float
        Epoch timestamp when the job should next execute.
    run_count : int
        Total number of successful executions since startup.
    error_count : int
        Total number of failed executions since startup.
    skip_count : int
        Ticks on which the job was due but still running.
    """
    name: str
    interval_seconds: float
    coroutine_factory: Callable
    enabled: bool = True
    running: bool = False
    last_run: Optional[float] = None
    next_run: float = field(default_factory=time.time)
    run_count: int = 0
    error_count: int = 0
    skip_count: int = 0


# ============================================================================
# SCHEDULER
# ============================================================================

class Scheduler:
    """
    Asyncio-based periodic job scheduler.

    Usage
    -----
        scheduler = Scheduler(settings, engine, repository)
        scheduler.register_job("my_job", 300, my_async_func)
        await scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        settings: Settings,
        engine: "MonitoringEngine",
        repository: Optional["ResultRepository"] = None,
        alert_manager: Optional["AlertManager"] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        tick_interval: float = 1.0,
    ):
        self.settings = settings
        self.engine = engine
        self.repository = repository
        self.alert_manager = alert_manager
        self.on_fatal = on_fatal

        self._jobs: Dict[str, ScheduledJob] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_interval = tick_interval  # how often the main loop wakes up to check jobs

        # Register built-in jobs
        self._register_builtin_jobs()

        logger.info(f"Scheduler created with {len(self._jobs)} built-in jobs")

    # ------------------------------------------------------------------
    # JOB REGISTRATION
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: float,
        coroutine_factory: Callable,
        enabled: bool = True,
    ) -> None:
        """
        Register a new periodic job.

        Parameters
        ----------
        name : str
            Unique job name.
        interval_seconds : float
            Period in seconds.
        coroutine_factory : Callable
            An async callable that takes no arguments.
        enabled : bool
            Whether the job starts enabled.
        """
        if name in self._jobs:
            logger.warning(f"[Scheduler] Job '{name}' already registered, overwriting")

        self._jobs[name] = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
            next_run=time.time(),  # run immediately on first tick
        )
        logger.debug(f"[Scheduler] Registered job '{name}' (interval={interval_seconds}s)")

    def disable_job(self, name: str) -> bool:
        """Disable a job by name. Returns True if found."""
        if name in self._jobs:
            self._jobs[name].enabled = False
            return True
        return False

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self._running:
            logger.warning("Scheduler is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._main_loop())
        logger.info("✓ Scheduler started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the scheduler loop and wait briefly for running jobs."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._tasks:
            _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("✓ Scheduler stopped")

    # ------------------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------------------

    def run_due_jobs(self, now: Optional[float] = None) -> List[str]:
        """
        Launch every enabled job whose next_run has arrived and that is not
        still running. Returns the names of the jobs launched.
        """
        if now is None:
            now = time.time()

        launched = []
        for job in self._jobs.values():
            if not job.enabled or now < job.next_run:
                continue

            # Advance next_run immediately so we don't re-trigger
            job.next_run = now + job.interval_seconds

            if job.running:
                job.skip_count += 1
                logger.warning(f"[Scheduler] Job '{job.name}' still running; skipped this interval")
                continue

            job.running = True
            task = asyncio.create_task(self._execute_job(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            launched.append(job.name)

        return launched

    async def _main_loop(self) -> None:
        """
        Wake up every _tick_interval seconds and launch due jobs.
        """
        logger.info("[Scheduler] Main loop started")
        while self._running:
            self.run_due_jobs()

            try:
                await asyncio.sleep(self._tick_interval)
            except asyncio.CancelledError:
                break

        logger.info("[Scheduler] Main loop exited")

    # ------------------------------------------------------------------
    # JOB EXECUTION
    # ------------------------------------------------------------------

    async def _execute_job(self, job: ScheduledJob) -> None:
        """
        Run a single job, capture timing and errors.
        """
        start_time = time.time()
        try:
            logger.debug(f"[Scheduler] Running job '{job.name}'…")
            await job.coroutine_factory()
            elapsed = time.time() - start_time

            job.run_count += 1
            job.last_run = time.time()
            logger.debug(
                f"[Scheduler] Job '{job.name}' completed in {elapsed:.2f}s "
                f"(run #{job.run_count})"
            )

        except InternalInvariantError as e:
            job.error_count += 1
            logger.critical(f"[Scheduler] Job '{job.name}' hit an internal error: {e.log_format()}")
            self._running = False
            if self.on_fatal is not None:
                self.on_fatal(e)

        except Exception as e:
            job.error_count += 1
            elapsed = time.time() - start_time
            logger.opt(exception=e).error(
                f"[Scheduler] Job '{job.name}' FAILED after {elapsed:.2f}s: {e}"
            )

        finally:
            job.running = False

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Return status of all registered jobs."""
        stats = []
        for job in self._jobs.values():
            stats.append({
                "name": job.name,
                "interval_seconds": job.interval_seconds,
                "enabled": job.enabled,
                "running": job.running,
                "run_count": job.run_count,
                "error_count": job.error_count,
                "skip_count": job.skip_count,
                "last_run": TimeHelper.from_timestamp(job.last_run),
                "next_run": TimeHelper.from_timestamp(job.next_run),
            })
        return stats

    # ==================================================================
    # BUILT-IN JOBS
    # ==================================================================

    def _register_builtin_jobs(self) -> None:
        """Register all built-in periodic jobs."""

        # 1. Check cycle
        self.register_job(
            "check_cycle",
            interval_seconds=self.settings.monitoring.check_interval,
            coroutine_factory=self._job_check_cycle,
        )

        # 2. History cleanup
        if self.repository is not None:
            self.register_job(
                "history_cleanup",
                interval_seconds=self.settings.database.cleanup_interval,
                coroutine_factory=self._job_history_cleanup,
            )

        # 3. Heartbeat
        self.register_job(
            "heartbeat",
            interval_seconds=self.settings.monitoring.heartbeat_interval,
            coroutine_factory=self._job_heartbeat,
        )

    # ------------------------------------------------------------------
    # JOB: Check Cycle
    # ------------------------------------------------------------------

    async def _job_check_cycle(self) -> None:
        await self.engine.run_cycle()

    # ------------------------------------------------------------------
    # JOB: History Cleanup
    # ------------------------------------------------------------------

    async def _job_history_cleanup(self) -> None:
        """
        Delete results and alert events beyond the retention window.
        """
        retention_days = self.settings.database.history_retention_days
        try:
            deleted = await self.repository.purge_older_than(retention_days)
        except DatabaseException as e:
            logger.error(f"[HistoryCleanup] Failed: {e.message}")
            raise
        logger.info(
            f"[HistoryCleanup] Deleted {deleted} rows older than "
            f"{retention_days} days"
        )

    # ------------------------------------------------------------------
    # JOB: Heartbeat
    # ------------------------------------------------------------------

    async def _job_heartbeat(self) -> None:
        """
        Write a heartbeat log entry with the engine counters.
        """
        stats = self.engine.get_stats()
        active = len(self.alert_manager.active()) if self.alert_manager else 0
        logger.info(
            f"[Heartbeat] ✓ Alive: cycles={stats['cycles']}, "
            f"checks={stats['checks_run']}, failed={stats['checks_failed']}, "
            f"errors={stats['probe_errors']}, in_flight={stats['in_flight']}, "
            f"active_alerts={active}"
        )
