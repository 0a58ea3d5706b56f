"""
============================================================================
PROBEMON - HTTP PROBES
============================================================================
Web probes built on httpx.

    https       fetch a URL; status, size, freshness and certificate expiry
    httpredir   a URL must redirect to an exact target

TLS is always verified. Certificate expiry is read from a separate TLS
handshake with a verifying context, so a certificate that is valid but
about to expire is still reported with its remaining days.

``serverIP`` pins the first request and the certificate handshake to one
address while Host and SNI keep the URL's hostname, so a single member
behind a load balancer or a not-yet-published server can be checked.
Redirects are followed through normal resolution.

License: MIT
============================================================================
"""

import socket
import ssl
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Annotated, Any, Dict, Literal, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from pydantic import AfterValidator, Field, field_validator

from config.constants import Defaults, ProbeKind, REDIRECT_STATUS_CODES, SECONDS_PER_DAY
from monitoring.probe import CheckResult, Probe, ProbeConfig, register_probe
from utils.helpers import StringHelper
from utils.logger import get_logger
from utils.validators import URLValidator


logger = get_logger("HTTPProbe")


def _check_url(value: str) -> str:
    if not URLValidator.is_valid_url(value):
        raise ValueError(f"not a valid http(s) URL: '{value}'")
    return value


def _check_ip(value: str) -> str:
    if not URLValidator.is_valid_ip(value):
        raise ValueError(f"not an IP address: '{value}'")
    return value


HttpUrl = Annotated[str, AfterValidator(_check_url)]
IPAddress = Annotated[str, AfterValidator(_check_ip)]


# ============================================================================
# SHARED HTTP PLUMBING
# ============================================================================

class HTTPProbeBase(Probe):
    """
    Common client setup for HTTP probes.

    ``transport`` may be replaced (e.g. with ``httpx.MockTransport``) to
    run the probe without a network.
    """

    transport: Optional[httpx.BaseTransport] = None

    def _client(self, follow_redirects: bool) -> httpx.Client:
        return httpx.Client(
            timeout=self.config.timeout,
            verify=True,
            follow_redirects=follow_redirects,
            headers={"User-Agent": Defaults.USER_AGENT},
            transport=self.transport,
        )

    def _fetch(self, method: str, url: str, follow_redirects: bool, server_ip: Optional[str] = None):
        """
        Parameters
        ----------
        server_ip : str, optional
            Connect to this address instead of resolving the URL's host.
            The Host header and TLS SNI still carry the hostname.

        Returns
        -------
        tuple
            (response, elapsed seconds, failure reason). Exactly one of
            response and reason is None.
        """
        target = httpx.URL(url)
        headers: Dict[str, str] = {}
        extensions: Dict[str, Any] = {}
        if server_ip:
            headers["Host"] = target.netloc.decode("ascii")
            extensions["sni_hostname"] = target.raw_host.decode("ascii")
            target = target.copy_with(host=f"[{server_ip}]" if ":" in server_ip else server_ip)

        start_time = time.perf_counter()
        try:
            with self._client(follow_redirects) as client:
                response = client.request(method, target, headers=headers, extensions=extensions)
        except httpx.TimeoutException:
            return None, time.perf_counter() - start_time, (
                f"Timeout fetching {url} after {self.config.timeout:g}s"
            )
        except httpx.HTTPError as e:
            return None, time.perf_counter() - start_time, (
                f"Error fetching {url}: {StringHelper.describe_error(e)}"
            )
        return response, time.perf_counter() - start_time, None


# ============================================================================
# HTTPS PROBE
# ============================================================================

class HTTPSConfig(ProbeConfig):
    url: HttpUrl
    method: Literal["GET", "HEAD"] = "GET"
    min_bytes: int = Field(default=0, ge=0, alias="minBytes")
    max_age_minutes: int = Field(default=0, ge=0, alias="maxAgeMinutes")
    min_cert_days: int = Field(default=Defaults.HTTPS_MIN_CERT_DAYS, ge=0, alias="minCertDays")
    server_ip: Optional[IPAddress] = Field(default=None, alias="serverIP")
    timeout: float = Field(default=Defaults.HTTP_TIMEOUT, gt=0)

    @field_validator("method", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


@register_probe
class HTTPSProbe(HTTPProbeBase):
    """
    Fetch ``url`` and fail on:

    * transport errors and HTTP status >= 400
    * a body smaller than ``minBytes``
    * a ``Last-Modified`` older than ``maxAgeMinutes`` (0 disables)
    * a certificate expiring within ``minCertDays`` days
    """

    KIND = ProbeKind.HTTPS.value
    config_model = HTTPSConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        parts = urlsplit(self.config.url)
        self.host = parts.hostname or ""
        self.port = parts.port or Defaults.HTTPS_PORT
        self.check_certificate = parts.scheme == "https" and self.config.min_cert_days > 0
        self.attributes["url"] = self.config.url
        if self.config.server_ip:
            self.attributes["server_ip"] = self.config.server_ip

    def describe(self) -> str:
        description = f"{self._subject_prefix()}HTTPS check, URL {self.config.url}, method {self.config.method}"
        if self.config.server_ip:
            description += f", server {self.config.server_ip}"
        return description

    def _tls_context(self) -> ssl.SSLContext:
        return ssl.create_default_context()

    def _get_certificate(self) -> datetime:
        """Expiry (notAfter) of the certificate the server presents."""
        context = self._tls_context()
        address = (self.config.server_ip or self.host, self.port)
        with socket.create_connection(address, timeout=self.config.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=self.host) as tls:
                cert = tls.getpeercert()
        return datetime.fromtimestamp(ssl.cert_time_to_seconds(cert["notAfter"]), tz=timezone.utc)

    def _body_size(self, response: httpx.Response) -> int:
        if self.config.method == "HEAD":
            try:
                return int(response.headers.get("content-length", 0))
            except ValueError:
                return 0
        return len(response.content)

    def _check_freshness(self, response: httpx.Response) -> Optional[str]:
        header = response.headers.get("last-modified")
        if not header:
            return f"No Last-Modified header from {self.config.url}"

        try:
            modified = parsedate_to_datetime(header)
        except (TypeError, ValueError):
            return f"Unparseable Last-Modified header from {self.config.url}: {header}"
        if modified.tzinfo is None:
            modified = modified.replace(tzinfo=timezone.utc)

        age_minutes = (datetime.now(timezone.utc) - modified).total_seconds() / 60
        if age_minutes > self.config.max_age_minutes:
            return (
                f"{self.config.url} last modified {age_minutes:.0f} minutes ago "
                f"(maximum {self.config.max_age_minutes})"
            )
        return None

    def _check_certificate(self) -> Optional[str]:
        try:
            expires = self._get_certificate()
        except (OSError, ssl.SSLError, KeyError, ValueError) as e:
            return f"Certificate check for {self.host} failed: {StringHelper.describe_error(e)}"

        days_left = (expires - datetime.now(timezone.utc)).total_seconds() / SECONDS_PER_DAY
        self.results["cert"] = {"days_left": round(days_left, 2)}

        if days_left < self.config.min_cert_days:
            return (
                f"Certificate for {self.host} expires in {days_left:.1f} days "
                f"(minimum {self.config.min_cert_days})"
            )
        return None

    def perform(self) -> CheckResult:
        self.results = {}

        response, elapsed, error = self._fetch(
            self.config.method, self.config.url, follow_redirects=True, server_ip=self.config.server_ip
        )
        if error:
            return CheckResult(error)

        size = self._body_size(response)
        self.results["http"] = {
            "status": response.status_code,
            "bytes": size,
            "elapsed_ms": round(elapsed * 1000, 1),
        }

        if response.status_code >= 400:
            return CheckResult(f"HTTP {response.status_code} from {self.config.url}")

        if size < self.config.min_bytes:
            return CheckResult(
                f"Content from {self.config.url} too small: {size} bytes "
                f"(minimum {self.config.min_bytes})"
            )

        if self.config.max_age_minutes:
            reason = self._check_freshness(response)
            if reason:
                return CheckResult(reason)

        if self.check_certificate:
            reason = self._check_certificate()
            if reason:
                return CheckResult(reason)

        logger.debug(f"[HTTPS] {self.config.url} → {response.status_code} in {elapsed:.3f}s")
        return CheckResult()


# ============================================================================
# HTTP REDIRECT PROBE
# ============================================================================

class HTTPRedirectConfig(ProbeConfig):
    from_url: HttpUrl = Field(alias="fromUrl")
    to_url: HttpUrl = Field(alias="toUrl")
    timeout: float = Field(default=Defaults.HTTP_TIMEOUT, gt=0)


@register_probe
class HTTPRedirectProbe(HTTPProbeBase):
    """
    Request ``fromUrl`` without following redirects; the response must be
    a redirect whose Location, resolved against the request URL, is
    exactly ``toUrl``.
    """

    KIND = ProbeKind.HTTP_REDIRECT.value
    config_model = HTTPRedirectConfig

    def __init__(self, record: Dict[str, Any], notifiers=()):
        super().__init__(record, notifiers)
        self.attributes.update(from_url=self.config.from_url, to_url=self.config.to_url)

    def describe(self) -> str:
        return (
            f"{self._subject_prefix()}HTTP(s) redir check, from {self.config.from_url}, "
            f"to {self.config.to_url}"
        )

    def perform(self) -> CheckResult:
        self.results = {}

        response, _, error = self._fetch("GET", self.config.from_url, follow_redirects=False)
        if error:
            return CheckResult(error)

        if response.status_code not in REDIRECT_STATUS_CODES:
            return CheckResult(
                f"{self.config.from_url} did not redirect (HTTP {response.status_code})"
            )

        location = response.headers.get("location")
        if not location:
            return CheckResult(
                f"Redirect from {self.config.from_url} has no Location header"
            )

        target = urljoin(str(response.request.url), location)
        self.results["redirect"] = {"status": response.status_code, "location": target}

        if target != self.config.to_url:
            return CheckResult(
                f"{self.config.from_url} redirects to {target}, expected {self.config.to_url}"
            )

        return CheckResult()
