"""
============================================================================
PROBEMON - MAIN APPLICATION
============================================================================
Entry point of the monitoring daemon. Wires every layer together:

    Layer 1 - Core
        • Settings (pydantic-settings), logging (loguru)
        • Checks file → MonitorContext (probes + notifiers)

    Layer 2 - Results database
        • DatabaseManager (SQLAlchemy async + aiosqlite)
        • ResultRepository

    Layer 3 - Monitoring
        • FailureWindow, MonitoringEngine, AlertManager
        • StatusBoard + StatusServer (aiohttp)
        • Scheduler (check cycle, history cleanup, heartbeat)

Startup Order
-------------
1.  Load settings & configure logging
2.  Build notifiers from NOTIFY_* settings, then read the checks file
3.  Initialize DatabaseManager (create tables if needed)
4.  Wire up FailureWindow, AlertManager, StatusBoard, MonitoringEngine
5.  Start StatusServer
6.  Start Scheduler (first check cycle runs immediately)

Shutdown Order (reverse)
-------------------------
On SIGINT / SIGTERM, or an internal invariant violation:
    stop scheduler → stop engine → stop status server → close notifiers
    → close DB → exit

Usage
-----
    python main.py                       # run the daemon
    python main.py --checks my.yaml      # use another checks file
    python main.py --check-config        # validate the checks file and exit

License: MIT
============================================================================
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from config.loader import load_checks
from config.settings import Settings, get_settings
from database import DatabaseManager, ResultRepository
from exceptions import ConfigurationError, DatabaseException, InternalInvariantError
from monitoring import (
    AlertManager,
    FailureWindow,
    MonitorContext,
    MonitoringEngine,
    Scheduler,
    StatusBoard,
    StatusServer,
    notifiers_from_settings,
)
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")

EXIT_OK = 0
EXIT_STARTUP_FAILED = 1
EXIT_INTERNAL_ERROR = 2


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class ProbemonApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Subsystems receive their collaborators explicitly;
    only Settings is cached process-wide (via lru_cache).
    """

    def __init__(self, settings: Optional[Settings] = None, checks_file: Optional[Path] = None):
        self.settings = settings or get_settings()
        self.checks_file = checks_file or self.settings.monitoring.checks_file

        # --- subsystems (populated during startup) ---
        self.context: Optional[MonitorContext] = None
        self.db_manager: Optional[DatabaseManager] = None
        self.repository: Optional[ResultRepository] = None
        self.window: Optional[FailureWindow] = None
        self.alert_manager: Optional[AlertManager] = None
        self.status_board: Optional[StatusBoard] = None
        self.engine: Optional[MonitoringEngine] = None
        self.scheduler: Optional[Scheduler] = None
        self.status_server: Optional[StatusServer] = None

        # --- lifecycle ---
        self._stop_event = asyncio.Event()
        self.fatal_error: Optional[BaseException] = None

    # ==================================================================
    # PHASE 1 - CONFIGURATION
    # ==================================================================

    def load_configuration(self) -> MonitorContext:
        """
        Build the context: settings notifiers first, then the checks file.

        Raises:
            ConfigurationError: on any invalid item
        """
        logger.info("── Phase 1: Configuration ────────────────────────")
        context = MonitorContext(notifiers_from_settings(self.settings.notifiers))
        load_checks(self.checks_file, context)
        for probe in context.probes:
            logger.info(f"  • {probe.describe()} ({len(probe.notifiers)} notifier(s))")
        self.context = context
        return context

    # ==================================================================
    # PHASE 2 - DATABASE
    # ==================================================================

    async def _init_database(self) -> None:
        """Initialize the results database, if enabled."""
        logger.info("── Phase 2: Results Database ─────────────────────")
        if not self.settings.database.enabled:
            logger.info("  Results database disabled (DB_ENABLED=false)")
            return

        self.db_manager = DatabaseManager(self.settings.database)
        await self.db_manager.initialize()
        self.repository = ResultRepository(self.db_manager)
        logger.info(f"  ✓ Results database at {self.settings.database.sqlite_path}")

    # ==================================================================
    # PHASE 3 - MONITORING
    # ==================================================================

    def _init_monitoring(self) -> None:
        """Wire up FailureWindow, AlertManager, StatusBoard, engine, scheduler."""
        logger.info("── Phase 3: Monitoring ───────────────────────────")
        monitoring = self.settings.monitoring

        self.window = FailureWindow()
        self.status_board = StatusBoard(self.context)
        self.alert_manager = AlertManager(monitoring, repository=self.repository)
        self.engine = MonitoringEngine(
            self.context,
            self.window,
            monitoring,
            alert_manager=self.alert_manager,
            status_board=self.status_board,
            repository=self.repository,
        )
        self.scheduler = Scheduler(
            self.settings,
            self.engine,
            repository=self.repository,
            alert_manager=self.alert_manager,
            on_fatal=self._on_fatal,
        )
        logger.info("  ✓ FailureWindow, AlertManager, MonitoringEngine, Scheduler created")

    # ==================================================================
    # PHASE 4 - STATUS SERVER
    # ==================================================================

    async def _init_status_server(self) -> None:
        logger.info("── Phase 4: Status Server ────────────────────────")
        if not self.settings.web.enabled:
            logger.info("  Status server disabled (WEB_ENABLED=false)")
            return

        server = StatusServer(
            self.settings,
            self.status_board,
            engine=self.engine,
            alert_manager=self.alert_manager,
            repository=self.repository,
        )
        try:
            await server.start()
        except OSError as e:
            logger.warning(f"  ⚠ Status server could not start ({e}); continuing without it")
            return
        self.status_server = server

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any critical phase fails.
        """
        logger.info("=" * 74)
        logger.info(f"  STARTING {self.settings.app_name} v{self.settings.app_version}")
        logger.info("=" * 74)

        try:
            self.load_configuration()
        except ConfigurationError as e:
            logger.error(f"  ✗ {e.message}")
            return False

        try:
            await self._init_database()
        except DatabaseException as e:
            logger.error(f"  ✗ Database init failed: {e.message}")
            return False

        self._init_monitoring()
        await self._init_status_server()

        await self.scheduler.start()

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info(
            f"  Probes: {len(self.context.probes)}, "
            f"interval: {self.settings.monitoring.check_interval}s, "
            f"workers: {self.settings.monitoring.max_workers}"
        )
        logger.info("=" * 74)
        return True

    # ==================================================================
    # RUN / STOP
    # ==================================================================

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()

    def request_stop(self) -> None:
        self._stop_event.set()

    def _on_fatal(self, error: BaseException) -> None:
        self.fatal_error = error
        self.request_stop()

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        A failure in one subsystem doesn't prevent the others from
        cleaning up.
        """
        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        # 1. Stop scheduler (no new cycles)
        if self.scheduler:
            await self.scheduler.stop()

        # 2. Let in-flight probes finish briefly, stop the worker pool
        if self.engine:
            await self.engine.shutdown()

        # 3. Stop status server
        if self.status_server:
            await self.status_server.stop()

        # 4. Close notifier transports
        if self.context:
            for notifier in self.context.all_notifiers():
                try:
                    await notifier.close()
                except Exception as e:
                    logger.error(f"  ✗ Closing {notifier.describe()} failed: {e}")

        # 5. Close database connections
        if self.db_manager:
            await self.db_manager.close()

        logger.info("  ✓ SHUTDOWN COMPLETE")


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: ProbemonApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so the daemon shuts down gracefully.
    """
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info(f"  ⚡ {sig.name} received, initiating graceful shutdown…")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows; KeyboardInterrupt still works
            pass


# ============================================================================
# COMMAND LINE
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="probemon",
        description="Scriptable infrastructure monitoring daemon",
    )
    parser.add_argument(
        "--checks",
        type=Path,
        default=None,
        help="checks file (default: MONITOR_CHECKS_FILE or checks.yaml)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="validate the checks file, list the probes and exit",
    )
    return parser.parse_args(argv)


def check_config(app: ProbemonApplication) -> int:
    """Validate the checks file without starting anything."""
    try:
        context = app.load_configuration()
    except ConfigurationError as e:
        logger.error(f"✗ {e.message}")
        return EXIT_STARTUP_FAILED

    logger.info(
        f"✓ {app.checks_file}: {len(context.probes)} probe(s), "
        f"{len(context.all_notifiers())} notifier(s)"
    )
    return EXIT_OK


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main(argv: Optional[List[str]] = None) -> int:
    """
    Async main: creates the app, starts it, and runs until shutdown.
    Returns the process exit code.
    """
    args = parse_args(argv)

    settings = get_settings()
    setup_logging(settings)

    app = ProbemonApplication(settings, checks_file=args.checks)

    if args.check_config:
        return check_config(app)

    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed, exiting")
            return EXIT_STARTUP_FAILED

        await app.run()
    finally:
        await app.shutdown()

    if isinstance(app.fatal_error, InternalInvariantError):
        logger.critical(f"Stopped on internal error: {app.fatal_error.log_format()}")
        return EXIT_INTERNAL_ERROR

    return EXIT_OK


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(EXIT_OK)


if __name__ == "__main__":
    run()
