"""
============================================================================
PROBEMON - DNS PROBES
============================================================================
Probes that talk DNS directly to one or more authoritative or recursive
servers through dnspython.

    dns      one query, answer must be in an acceptable set
    rrsig    DNSSEC signature on a record must not expire too soon
    dnssoa   every server reports the same SOA serial for a zone

All queries go over UDP to the configured server (an IP address, as
``ip``, ``ip:port`` or ``[v6]:port``; port 53 by default). A truncated
UDP answer is retried once over TCP.

License: MIT
============================================================================
"""

import time
from typing import Annotated, Any, Dict, List, Optional, Tuple

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.query
import dns.rcode
import dns.rdatatype
from pydantic import AfterValidator, Field, field_validator

from config.constants import Defaults, ProbeKind, SECONDS_PER_DAY
from exceptions import ProbeTransportError
from monitoring.probe import CheckResult, Probe, ProbeConfig, register_probe
from utils.helpers import StringHelper
from utils.logger import get_logger
from utils.validators import URLValidator, split_host_port


logger = get_logger("DNSProbe")


# ============================================================================
# SHARED HELPERS
# ============================================================================

def _check_endpoint(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("server must be a non-empty 'ip' or 'ip:port' string")
    host, _ = split_host_port(value, Defaults.DNS_PORT)
    if not URLValidator.is_valid_ip(host):
        raise ValueError(f"server must be an IP address, got '{host}'")
    return value.strip()


def _check_name(value: str) -> str:
    try:
        dns.name.from_text(value)
    except dns.exception.DNSException as e:
        raise ValueError(f"invalid DNS name '{value}': {e}") from e
    return value


def _check_rdtype(value: str) -> str:
    try:
        return dns.rdatatype.to_text(dns.rdatatype.from_text(str(value).upper()))
    except dns.exception.DNSException as e:
        raise ValueError(f"unknown record type '{value}'") from e


Endpoint = Annotated[str, AfterValidator(_check_endpoint)]
DNSName = Annotated[str, AfterValidator(_check_name)]
RecordType = Annotated[str, AfterValidator(_check_rdtype)]


def exchange(
    query: dns.message.Message,
    endpoint: str,
    timeout: float,
) -> dns.message.Message:
    """
    Send ``query`` to ``endpoint`` and return the response.

    Raises
    ------
    ProbeTransportError
        On timeout, socket errors or malformed responses.
    """
    host, port = split_host_port(endpoint, Defaults.DNS_PORT)

    try:
        response = dns.query.udp(query, host, port=port, timeout=timeout)
        if response.flags & dns.flags.TC:
            response = dns.query.tcp(query, host, port=port, timeout=timeout)
    except dns.exception.Timeout as e:
        raise ProbeTransportError(
            f"Timeout querying {endpoint} after {timeout:g}s", target=endpoint, cause=e
        ) from e
    except (OSError, dns.exception.DNSException) as e:
        raise ProbeTransportError(
            f"Error querying {endpoint}: {StringHelper.describe_error(e)}",
            target=endpoint,
            cause=e,
        ) from e

    return response


def _answer_rrsets(response: dns.message.Message, rdtype: int, covers: int = dns.rdatatype.NONE) -> List[Any]:
    return [
        rrset for rrset in response.answer
        if rrset.rdtype == rdtype and rrset.covers == covers
    ]


def _normalize(text: str) -> str:
    return text.strip().rstrip(".").lower()


# ============================================================================
# DNS ANSWER PROBE
# ============================================================================

class DNSConfig(ProbeConfig):
    server: Endpoint
    name: DNSName
    type: RecordType
    acceptable: List[str] = Field(min_length=1)
    rd: bool = True
    timeout: float = Field(default=Defaults.DNS_TIMEOUT, gt=0)

    @field_validator("acceptable", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value


@register_probe
class DNSProbe(Probe):
    """
    Query one server for ``name``/``type`` and compare the answer records
    against the ``acceptable`` set. Every answer record must be acceptable;
    an empty answer fails.
    """

    KIND = ProbeKind.DNS.value
    config_model = DNSConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        self.acceptable = {_normalize(item) for item in self.config.acceptable}
        self.attributes.update(
            server=self.config.server,
            name=self.config.name,
            type=self.config.type,
        )

    def describe(self) -> str:
        return (
            f"{self._subject_prefix()}DNS check, server {self.config.server}, "
            f"qname {self.config.name}, qtype {self.config.type}, "
            f"acceptable: {sorted(self.config.acceptable)}"
        )

    def perform(self) -> CheckResult:
        self.results = {}
        rdtype = dns.rdatatype.from_text(self.config.type)

        query = dns.message.make_query(self.config.name, rdtype)
        if not self.config.rd:
            query.flags &= ~dns.flags.RD

        try:
            response = exchange(query, self.config.server, self.config.timeout)
        except ProbeTransportError as e:
            return CheckResult(e.message)

        rcode = response.rcode()
        answers = [
            rr.to_text()
            for rrset in _answer_rrsets(response, rdtype)
            for rr in rrset
        ]
        self.results["answers"] = {"count": len(answers), "rcode": dns.rcode.to_text(rcode)}

        if rcode != dns.rcode.NOERROR:
            return CheckResult(
                f"{self.config.name}/{self.config.type} from {self.config.server}: "
                f"rcode {dns.rcode.to_text(rcode)}"
            )

        if not answers:
            return CheckResult(
                f"No {self.config.type} record for {self.config.name} from {self.config.server}"
            )

        for answer in sorted(answers):
            if _normalize(answer) not in self.acceptable:
                return CheckResult(
                    f"Unacceptable answer {answer} for {self.config.name}/{self.config.type} "
                    f"from {self.config.server}"
                )

        logger.debug(f"[DNS] {self.config.name}/{self.config.type} → {answers}")
        return CheckResult()


# ============================================================================
# RRSIG EXPIRY PROBE
# ============================================================================

class RRSIGConfig(ProbeConfig):
    server: Endpoint
    name: DNSName
    type: RecordType = "SOA"
    min_days: int = Field(default=Defaults.RRSIG_MIN_DAYS, ge=0, alias="minDays")
    timeout: float = Field(default=Defaults.DNS_TIMEOUT, gt=0)


@register_probe
class RRSIGProbe(Probe):
    """
    Ask for ``name``/``type`` with the DNSSEC OK bit set and check that
    the earliest covering signature expires at least ``minDays`` from now.
    """

    KIND = ProbeKind.RRSIG.value
    config_model = RRSIGConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        self.attributes.update(
            server=self.config.server,
            name=self.config.name,
            type=self.config.type,
        )

    def describe(self) -> str:
        return (
            f"{self._subject_prefix()}RRSIG check, server {self.config.server}, "
            f"qname {self.config.name}, qtype {self.config.type}, "
            f"minDays: {self.config.min_days}"
        )

    def perform(self) -> CheckResult:
        self.results = {}
        rdtype = dns.rdatatype.from_text(self.config.type)

        query = dns.message.make_query(self.config.name, rdtype, want_dnssec=True)

        try:
            response = exchange(query, self.config.server, self.config.timeout)
        except ProbeTransportError as e:
            return CheckResult(e.message)

        if response.rcode() != dns.rcode.NOERROR:
            return CheckResult(
                f"{self.config.name}/{self.config.type} from {self.config.server}: "
                f"rcode {dns.rcode.to_text(response.rcode())}"
            )

        expirations = [
            rr.expiration
            for rrset in _answer_rrsets(response, dns.rdatatype.RRSIG, covers=rdtype)
            for rr in rrset
        ]
        if not expirations:
            return CheckResult(
                f"No RRSIG covering {self.config.name}/{self.config.type} "
                f"from {self.config.server}"
            )

        days_left = (min(expirations) - time.time()) / SECONDS_PER_DAY
        self.results["rrsig"] = {"days_left": round(days_left, 2)}

        if days_left < self.config.min_days:
            return CheckResult(
                f"RRSIG for {self.config.name}/{self.config.type} expires in "
                f"{days_left:.1f} days (minimum {self.config.min_days})"
            )

        return CheckResult()


# ============================================================================
# SOA CONSISTENCY PROBE
# ============================================================================

class DNSSOAConfig(ProbeConfig):
    servers: List[Endpoint] = Field(min_length=1)
    domain: DNSName
    timeout: float = Field(default=Defaults.DNS_TIMEOUT, gt=0)

    @field_validator("servers", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value


@register_probe
class DNSSOAProbe(Probe):
    """
    Query the SOA of ``domain`` at every server without recursion and
    compare the serials.
    """

    KIND = ProbeKind.DNSSOA.value
    config_model = DNSSOAConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        self.attributes["domain"] = self.config.domain

    def describe(self) -> str:
        return (
            f"{self._subject_prefix()}DNS SOA check, servers {self.config.servers}, "
            f"domain {self.config.domain}"
        )

    def _serial_from(self, server: str) -> Tuple[Optional[int], Optional[str]]:
        query = dns.message.make_query(self.config.domain, dns.rdatatype.SOA)
        query.flags &= ~dns.flags.RD

        try:
            response = exchange(query, server, self.config.timeout)
        except ProbeTransportError as e:
            return None, e.message

        if response.rcode() != dns.rcode.NOERROR:
            return None, f"SOA for {self.config.domain} from {server}: rcode {dns.rcode.to_text(response.rcode())}"

        for rrset in _answer_rrsets(response, dns.rdatatype.SOA):
            for rr in rrset:
                return rr.serial, None

        return None, f"No SOA for {self.config.domain} from {server}"

    def perform(self) -> CheckResult:
        self.results = {}
        serials: Dict[str, int] = {}

        for server in self.config.servers:
            serial, error = self._serial_from(server)
            if error:
                return CheckResult(error)
            serials[server] = serial
            self.results[server] = {"serial": serial}

        if len(set(serials.values())) > 1:
            listing = ", ".join(f"{server}={serial}" for server, serial in serials.items())
            return CheckResult(f"SOA serials for {self.config.domain} disagree: {listing}")

        return CheckResult()
