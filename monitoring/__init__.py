"""
============================================================================
PROBEMON - MONITORING PACKAGE
============================================================================
All runtime monitoring infrastructure:
    • Probe / CheckResult  - probe contract and outcome value
    • probe kinds          - dns, rrsig, dnssoa, tcpportclosed, ping,
                             https, httpredir
    • FailureWindow        - sliding-window escalation
    • Notifiers            - telegram, ntfy, pushover, log
    • MonitorContext       - registry of probes and notifiers
    • MonitoringEngine     - one concurrent check cycle
    • AlertManager         - escalation / recovery delivery
    • StatusBoard / StatusServer - read-only status surface
    • Scheduler            - periodic job runner

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── probe.py             ← Probe base, CheckResult, record checking
├── dns_probes.py        ← dns, rrsig, dnssoa
├── network_probes.py    ← tcpportclosed, ping
├── http_probes.py       ← https, httpredir
├── window.py            ← FailureWindow
├── notifiers.py         ← Notifier implementations
├── context.py           ← MonitorContext
├── monitor.py           ← MonitoringEngine
├── alerts.py            ← AlertManager
├── status.py            ← StatusBoard
├── status_server.py     ← StatusServer
└── scheduler.py         ← Scheduler + built-in periodic jobs

Importing the package registers every probe kind.
============================================================================
"""

from monitoring.probe import CheckResult, Probe, ProbeConfig, PROBE_REGISTRY, check_record, register_probe
from monitoring.dns_probes import DNSProbe, RRSIGProbe, DNSSOAProbe
from monitoring.network_probes import TCPPortClosedProbe, PingProbe
from monitoring.http_probes import HTTPSProbe, HTTPRedirectProbe
from monitoring.window import FailureWindow
from monitoring.notifiers import (
    Notifier, TelegramNotifier, NtfyNotifier, PushoverNotifier, LogNotifier,
    build_notifier, notifiers_from_settings,
)
from monitoring.context import MonitorContext
from monitoring.monitor import MonitoringEngine
from monitoring.alerts import AlertManager
from monitoring.status import StatusBoard
from monitoring.status_server import StatusServer
from monitoring.scheduler import Scheduler, ScheduledJob

__all__ = [
    # Probes
    "CheckResult",
    "Probe",
    "ProbeConfig",
    "PROBE_REGISTRY",
    "check_record",
    "register_probe",
    "DNSProbe",
    "RRSIGProbe",
    "DNSSOAProbe",
    "TCPPortClosedProbe",
    "PingProbe",
    "HTTPSProbe",
    "HTTPRedirectProbe",

    # Escalation
    "FailureWindow",
    "AlertManager",

    # Notifiers
    "Notifier",
    "TelegramNotifier",
    "NtfyNotifier",
    "PushoverNotifier",
    "LogNotifier",
    "build_notifier",
    "notifiers_from_settings",

    # Engine
    "MonitorContext",
    "MonitoringEngine",
    "Scheduler",
    "ScheduledJob",

    # Status surface
    "StatusBoard",
    "StatusServer",
]
