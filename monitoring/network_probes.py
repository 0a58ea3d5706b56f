"""
============================================================================
PROBEMON - NETWORK PROBES
============================================================================
Plain connectivity probes.

    tcpportclosed   ports that must NOT accept connections
    ping            hosts that must answer an ICMP echo request

The ping probe shells out to the system ``ping`` binary so it needs no
raw-socket privileges. The wait flag differs per platform: seconds on
Linux (iputils, busybox), milliseconds on macOS/BSD and Windows. Both
probes bound every attempt by their own timeout.

License: MIT
============================================================================
"""

import math
import socket
import subprocess
import sys
from typing import Annotated, Any, Dict, List

from pydantic import AfterValidator, Field, field_validator

from config.constants import Defaults, ProbeKind
from monitoring.probe import CheckResult, Probe, ProbeConfig, register_probe
from utils.helpers import StringHelper
from utils.logger import get_logger
from utils.validators import URLValidator


logger = get_logger("NetworkProbe")


def _check_host(value: str) -> str:
    value = value.strip()
    if not URLValidator.is_valid_host(value):
        raise ValueError(f"'{value}' is not a valid hostname or IP address")
    return value


Port = Annotated[int, Field(ge=1, le=65535)]
Host = Annotated[str, AfterValidator(_check_host)]


def _as_list(value: Any) -> Any:
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return [value]
    return value


# ============================================================================
# TCP PORT CLOSED PROBE
# ============================================================================

class TCPPortClosedConfig(ProbeConfig):
    servers: List[Host] = Field(min_length=1)
    ports: List[Port] = Field(min_length=1)
    timeout: float = Field(default=Defaults.TCP_TIMEOUT, gt=0)

    @field_validator("servers", "ports", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        return _as_list(value)


@register_probe
class TCPPortClosedProbe(Probe):
    """
    Connect to every (server, port) pair. The check fails if ANY
    connection succeeds; refused, unreachable and timed-out attempts
    all count as closed.
    """

    KIND = ProbeKind.TCP_PORT_CLOSED.value
    config_model = TCPPortClosedConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        self.servers = list(dict.fromkeys(self.config.servers))
        self.ports = sorted(set(self.config.ports))

    def describe(self) -> str:
        return (
            f"{self._subject_prefix()}TCP closed check, servers {self.servers}, "
            f"ports {self.ports}"
        )

    def _is_open(self, host: str, port: int) -> bool:
        try:
            with socket.create_connection((host, port), timeout=self.config.timeout):
                return True
        except (OSError, UnicodeError):
            # refused, unreachable, timed out, unresolvable
            return False

    def perform(self) -> CheckResult:
        self.results = {}
        open_endpoints: List[str] = []

        for host in self.servers:
            for port in self.ports:
                if self._is_open(host, port):
                    open_endpoints.append(f"{host}:{port}")

        self.results["tcp"] = {
            "checked": len(self.servers) * len(self.ports),
            "open": len(open_endpoints),
        }

        if open_endpoints:
            return CheckResult(f"TCP port(s) open that should be closed: {', '.join(open_endpoints)}")

        return CheckResult()


# ============================================================================
# PING PROBE
# ============================================================================

class PingConfig(ProbeConfig):
    servers: List[Host] = Field(min_length=1)
    timeout: float = Field(default=Defaults.PING_TIMEOUT, gt=0)

    @field_validator("servers", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        return _as_list(value)


@register_probe
class PingProbe(Probe):
    """
    Send one echo request to every host; fails if any host stays silent.
    """

    KIND = ProbeKind.PING.value
    config_model = PingConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        self.servers = list(dict.fromkeys(self.config.servers))

    def describe(self) -> str:
        return f"{self._subject_prefix()}PING check, servers {self.servers}"

    def _command(self, host: str) -> List[str]:
        wait = max(1, math.ceil(self.config.timeout))
        if sys.platform == "darwin" or sys.platform.startswith(("freebsd", "openbsd", "netbsd")):
            return ["ping", "-c", "1", "-W", str(wait * 1000), host]
        if sys.platform == "win32":
            return ["ping", "-n", "1", "-w", str(wait * 1000), host]
        # iputils and busybox take whole seconds
        return ["ping", "-c", "1", "-W", str(wait), host]

    def _ping(self, host: str) -> bool:
        result = subprocess.run(
            self._command(host),
            capture_output=True,
            timeout=math.ceil(self.config.timeout) + 1,
        )
        return result.returncode == 0

    def perform(self) -> CheckResult:
        self.results = {}
        silent: List[str] = []

        for host in self.servers:
            try:
                reachable = self._ping(host)
            except subprocess.TimeoutExpired:
                reachable = False
            except FileNotFoundError:
                return CheckResult("ping binary not available")
            except OSError as e:
                return CheckResult(f"Cannot run ping: {StringHelper.describe_error(e)}")

            self.results[host] = {"reachable": reachable}
            if not reachable:
                silent.append(host)

        if silent:
            return CheckResult(f"No ping reply from {', '.join(silent)}")

        return CheckResult()
