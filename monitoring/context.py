"""
============================================================================
PROBEMON - MONITOR CONTEXT
============================================================================
The application's registry of probes and notifiers.

The notifier list is the "current" list while the checks file is read:
every probe copies it at construction. Probes are only added during
startup; the engine treats the probe list as fixed once it runs.

License: MIT
============================================================================
"""

from typing import Any, Dict, Iterable, List, Tuple

from monitoring.notifiers import Notifier
from monitoring.probe import PROBE_REGISTRY, Probe
from exceptions import UnknownKindError
from utils.logger import get_logger


logger = get_logger("MonitorContext")


class MonitorContext:
    """Ordered probes plus the current notifier list."""

    def __init__(self, notifiers: Iterable[Notifier] = ()):
        self.probes: List[Probe] = []
        self.notifiers: List[Notifier] = list(notifiers)

    def add_notifier(self, notifier: Notifier) -> None:
        self.notifiers.append(notifier)
        logger.debug(f"[Context] Notifier added: {notifier.describe()}")

    def clear_notifiers(self) -> None:
        self.notifiers.clear()
        logger.debug("[Context] Notifier list cleared")

    def add_probe(self, probe: Probe) -> Probe:
        self.probes.append(probe)
        return probe

    def build_probe(self, kind: str, record: Dict[str, Any]) -> Probe:
        """
        Construct a probe of ``kind`` bound to the notifiers configured so
        far, and register it.
        """
        cls = PROBE_REGISTRY.get(kind)
        if cls is None:
            raise UnknownKindError(kind, known=PROBE_REGISTRY)
        return self.add_probe(cls(record, self.notifiers))

    def all_notifiers(self) -> Tuple[Notifier, ...]:
        """Every distinct notifier reachable from a probe or the current list."""
        seen: Dict[int, Notifier] = {}
        for notifier in self.notifiers:
            seen.setdefault(id(notifier), notifier)
        for probe in self.probes:
            for notifier in probe.notifiers:
                seen.setdefault(id(notifier), notifier)
        return tuple(seen.values())

    def __len__(self) -> int:
        return len(self.probes)
