"""
Tests for MonitoringEngine: one cycle end to end, error isolation, the
re-entry guard and fatal internal errors.
"""

import asyncio
import threading
from unittest.mock import AsyncMock

import pytest

from config.settings import MonitoringSettings
from conftest import FakeProbe
from exceptions import DatabaseQueryError, InternalInvariantError
from monitoring.alerts import AlertManager
from monitoring.context import MonitorContext
from monitoring.monitor import MonitoringEngine
from monitoring.probe import CheckResult
from monitoring.status import StatusBoard
from monitoring.window import FailureWindow


@pytest.fixture
def context():
    return MonitorContext()


@pytest.fixture
async def engine(context, monitoring_settings, recorder):
    context.add_notifier(recorder)
    engine = MonitoringEngine(
        context,
        FailureWindow(),
        monitoring_settings,
        alert_manager=AlertManager(monitoring_settings),
        status_board=StatusBoard(context),
    )
    yield engine
    await engine.shutdown(timeout=1)


# ============================================================================
# CYCLE
# ============================================================================

class TestCycle:
    async def test_failure_escalates_and_alerts(self, context, engine, recorder):
        failing = context.add_probe(FakeProbe("bad", [CheckResult("down")], notifiers=context.notifiers))
        healthy = context.add_probe(FakeProbe("good", notifiers=context.notifiers))

        escalated = await engine.run_cycle()

        assert escalated == {(failing, "down"): 1}
        assert healthy.get_status().ok and healthy.last_checked is not None
        assert failing.get_status() == CheckResult("down")
        assert recorder.messages[0][0] == "fake check bad"
        assert engine.status_board.summary()["failing"] == 1
        assert engine.get_stats()["checks_failed"] == 1

    async def test_threshold_needs_several_cycles(self, context, engine, recorder):
        probe = context.add_probe(FakeProbe(
            "flaky",
            [CheckResult("down")] * 3,
            record={"minFailures": 3, "failureWindow": 3600},
            notifiers=context.notifiers,
        ))

        assert await engine.run_cycle() == {}
        # distinct timestamps per cycle
        await asyncio.sleep(0.01)
        assert await engine.run_cycle() == {}
        await asyncio.sleep(0.01)
        assert await engine.run_cycle() == {(probe, "down"): 3}
        assert len(recorder.messages) == 1

    async def test_unexpected_exception_is_not_a_failure(self, context, engine):
        broken = context.add_probe(FakeProbe("broken", [RuntimeError("bug")]))
        other = context.add_probe(FakeProbe("other", [CheckResult("down")]))

        escalated = await engine.run_cycle()

        assert escalated == {(other, "down"): 1}
        assert broken.error_count == 1
        assert broken.last_checked is None
        assert engine.probe_errors == 1
        assert engine.window.pending() == 1

    async def test_results_persisted(self, context, monitoring_settings):
        repository = AsyncMock()
        probe = context.add_probe(FakeProbe())
        engine = MonitoringEngine(context, FailureWindow(), monitoring_settings, repository=repository)

        await engine.run_cycle()
        await engine.shutdown()

        repository.record_results.assert_awaited_once_with(probe)

    async def test_persist_failure_does_not_break_cycle(self, context, monitoring_settings):
        repository = AsyncMock()
        repository.record_results.side_effect = DatabaseQueryError("locked")
        probe = context.add_probe(FakeProbe(outcomes=[CheckResult("down")]))
        engine = MonitoringEngine(context, FailureWindow(), monitoring_settings, repository=repository)

        assert await engine.run_cycle() == {(probe, "down"): 1}
        assert not probe.in_flight
        await engine.shutdown()


# ============================================================================
# RE-ENTRY GUARD
# ============================================================================

class TestInFlight:
    async def test_slow_probe_skipped_until_finished(self, context):
        settings = MonitoringSettings(cycle_timeout=0.1, max_workers=2)
        engine = MonitoringEngine(context, FailureWindow(), settings)
        slow = context.add_probe(FakeProbe("slow"))
        slow.gate = threading.Event()

        await engine.run_cycle()
        assert slow.in_flight
        assert engine.in_flight_checks == 1

        await engine.run_cycle()
        assert slow.calls == 1
        assert engine.skipped == 1

        slow.gate.set()
        for _ in range(100):
            if not slow.in_flight:
                break
            await asyncio.sleep(0.02)

        assert not slow.in_flight
        assert engine.in_flight_checks == 0

        slow.gate = None
        await engine.run_cycle()
        assert slow.calls == 2
        await engine.shutdown()


# ============================================================================
# FATAL ERRORS
# ============================================================================

class TestFatal:
    async def test_internal_invariant_error_propagates(self, context, engine):
        context.add_probe(FakeProbe("bad", [InternalInvariantError("corrupt state")]))

        with pytest.raises(InternalInvariantError):
            await engine.run_cycle()

        # sticky: the engine refuses to run again
        with pytest.raises(InternalInvariantError):
            await engine.run_cycle()

    async def test_non_check_result_is_fatal(self, context, engine):
        context.add_probe(FakeProbe("wrong", ["not a result"]))

        with pytest.raises(InternalInvariantError):
            await engine.run_cycle()
