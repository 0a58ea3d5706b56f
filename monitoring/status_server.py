"""
============================================================================
PROBEMON - STATUS SERVER
============================================================================
Read-only aiohttp server exposing the daemon's state as JSON.

    GET /          → 200 "OK"  (basic liveness)
    GET /health    → uptime, cycle counters, requests served
    GET /status    → every probe's latest CheckResult, kind, description
    GET /alerts    → escalated set of the last cycle
    GET /results   → latest persisted probe results (results database)

Nothing here mutates monitoring state.

License: MIT
============================================================================
"""

import time
from typing import TYPE_CHECKING, Optional

from aiohttp import web

from config.settings import Settings
from exceptions import DatabaseException
from utils.helpers import TimeHelper
from utils.logger import get_logger

if TYPE_CHECKING:
    from database.repository import ResultRepository
    from monitoring.alerts import AlertManager
    from monitoring.monitor import MonitoringEngine
    from monitoring.status import StatusBoard


logger = get_logger("StatusServer")

MAX_RESULTS_LIMIT = 500


class StatusServer:
    """
    aiohttp application serving the status board.

    Attributes
    ----------
    app : aiohttp.web.Application
    _runner : aiohttp.web.AppRunner
    _site : aiohttp.web.TCPSite
    _start_time : float          - epoch seconds when the server started
    _request_count : int         - total requests served
    """

    def __init__(
        self,
        settings: Settings,
        board: "StatusBoard",
        engine: Optional["MonitoringEngine"] = None,
        alert_manager: Optional["AlertManager"] = None,
        repository: Optional["ResultRepository"] = None,
    ):
        self.settings = settings
        self.board = board
        self.engine = engine
        self.alert_manager = alert_manager
        self.repository = repository

        self._host = settings.web.host
        self._port = settings.web.port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        # Register routes
        self.app.router.add_get("/", self._handle_root)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/status", self._handle_status)
        self.app.router.add_get("/alerts", self._handle_alerts)
        self.app.router.add_get("/results", self._handle_results)

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info(f"✓ StatusServer listening on {self._host}:{self._port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ StatusServer stopped")

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_root(self, request: web.Request) -> web.Response:
        """GET / - simple liveness probe."""
        self._request_count += 1
        return web.Response(text="OK", status=200)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health - uptime and engine counters."""
        self._request_count += 1
        uptime_seconds = time.time() - self._start_time

        health = {
            "status": "healthy",
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": TimeHelper.seconds_to_human_readable(int(uptime_seconds)),
            "requests_served": self._request_count,
            "timestamp": TimeHelper.get_utc_now().isoformat(),
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
        }
        if self.engine is not None:
            stats = self.engine.get_stats()
            stats["last_cycle_at"] = TimeHelper.from_timestamp(stats["last_cycle_at"])
            health["engine"] = stats
        if self.alert_manager is not None:
            health["alerts"] = self.alert_manager.get_stats()

        return web.json_response(health)

    async def _handle_status(self, request: web.Request) -> web.Response:
        """GET /status - latest result of every probe."""
        self._request_count += 1
        return web.json_response({
            "summary": self.board.summary(),
            "probes": self.board.probes(),
        })

    async def _handle_alerts(self, request: web.Request) -> web.Response:
        """GET /alerts - escalations from the last cycle."""
        self._request_count += 1
        return web.json_response(self.board.escalations())

    async def _handle_results(self, request: web.Request) -> web.Response:
        """GET /results?limit=N&kind=K - persisted results, newest first."""
        self._request_count += 1

        if self.repository is None:
            return web.json_response({"error": "results database disabled"}, status=404)

        try:
            limit = int(request.query.get("limit", 50))
        except ValueError:
            return web.json_response({"error": "limit must be an integer"}, status=400)
        limit = max(1, min(limit, MAX_RESULTS_LIMIT))

        try:
            rows = await self.repository.recent_results(limit=limit, kind=request.query.get("kind"))
        except DatabaseException as e:
            logger.error(f"[StatusServer] Failed to read results: {e.message}")
            return web.json_response({"error": "results database unavailable"}, status=503)

        return web.json_response({"results": rows})
