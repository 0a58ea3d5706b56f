"""Shared test fixtures."""

import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from config.settings import DatabaseSettings, MonitoringSettings, Settings, WebSettings
from exceptions import NotifierDeliveryError
from monitoring.notifiers import Notifier, NotifierConfig
from monitoring.probe import CheckResult, Probe


# ============================================================================
# TEST DOUBLES
# ============================================================================

class FakeProbe(Probe):
    """
    Scripted probe. Each perform() pops the next outcome: a CheckResult is
    returned, an exception is raised. With no outcomes left it passes.
    """

    KIND = "fake"

    def __init__(
        self,
        label: str = "fake",
        outcomes: Iterable[Any] = (),
        record: Optional[Dict[str, Any]] = None,
        notifiers: Sequence[Notifier] = (),
    ):
        super().__init__(dict(record or {}), notifiers)
        self.label = label
        self.outcomes: List[Any] = list(outcomes)
        self.calls = 0
        self.gate: Optional[threading.Event] = None

    def describe(self) -> str:
        return f"fake check {self.label}"

    def perform(self) -> CheckResult:
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        outcome = self.outcomes.pop(0) if self.outcomes else CheckResult()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingNotifier(Notifier):
    KIND = "recording"

    def __init__(self, name: str = "recording"):
        super().__init__(NotifierConfig())
        self.name = name
        self.messages: List[Tuple[str, str]] = []
        self.closed = False

    def describe(self) -> str:
        return f"recording {self.name}"

    async def deliver(self, subject: str, body: str) -> None:
        self.messages.append((subject, body))

    async def close(self) -> None:
        self.closed = True


class FailingNotifier(Notifier):
    KIND = "failing"

    def __init__(self, error: Optional[Exception] = None):
        super().__init__(NotifierConfig())
        self.error = error
        self.attempts = 0

    def describe(self) -> str:
        return "failing"

    async def deliver(self, subject: str, body: str) -> None:
        self.attempts += 1
        raise self.error or NotifierDeliveryError("channel down", notifier=self.describe())


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def monitoring_settings() -> MonitoringSettings:
    return MonitoringSettings(
        check_interval=60,
        cycle_timeout=2.0,
        max_workers=4,
        alert_cooldown=3600,
        recovery_alert=True,
    )


@pytest.fixture
def settings(monitoring_settings, tmp_path) -> Settings:
    return Settings(
        monitoring=monitoring_settings,
        database=DatabaseSettings(enabled=False, sqlite_path=tmp_path / "results.db"),
        web=WebSettings(enabled=False),
    )


@pytest.fixture
def recorder() -> RecordingNotifier:
    return RecordingNotifier()
