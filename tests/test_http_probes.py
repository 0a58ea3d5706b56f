"""
Tests for the https and httpredir probes, run against httpx.MockTransport.
Certificate expiry is read from a stubbed TLS socket and from a local TLS
server presenting a trustme-issued certificate.
"""

import socket
import ssl
import threading
import time
from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest
import trustme

from exceptions import InvalidFieldError
from monitoring import http_probes
from monitoring.http_probes import HTTPRedirectProbe, HTTPSProbe


def https_probe(handler, **options):
    record = {"url": "https://example.com/", "minCertDays": 0}
    record.update(options)
    probe = HTTPSProbe(record)
    probe.transport = httpx.MockTransport(handler)
    return probe


def last_modified(minutes_ago: float) -> str:
    return format_datetime(datetime.now(timezone.utc) - timedelta(minutes=minutes_ago), usegmt=True)


# ============================================================================
# HTTPS PROBE
# ============================================================================

class TestHTTPSProbe:
    def test_success(self):
        probe = https_probe(lambda request: httpx.Response(200, text="hello world"), minBytes=5)

        assert probe.perform().ok
        assert probe.results["http"]["status"] == 200
        assert probe.results["http"]["bytes"] == 11

    def test_sends_user_agent(self):
        seen = []

        def handler(request):
            seen.append(request.headers["user-agent"])
            return httpx.Response(200)

        https_probe(handler).perform()
        assert seen and seen[0].startswith("Probemon/")

    def test_error_status_fails(self):
        result = https_probe(lambda request: httpx.Response(503)).perform()
        assert result.reason == "HTTP 503 from https://example.com/"

    def test_body_too_small(self):
        result = https_probe(lambda request: httpx.Response(200, text="hi"), minBytes=100).perform()
        assert "too small: 2 bytes" in result.reason

    def test_head_uses_content_length(self):
        def handler(request):
            assert request.method == "HEAD"
            return httpx.Response(200, headers={"Content-Length": "4096"})

        probe = https_probe(handler, method="head", minBytes=1000)

        assert probe.perform().ok
        assert probe.results["http"]["bytes"] == 4096

    def test_connect_error_fails(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = https_probe(handler).perform()
        assert result.reason.startswith("Error fetching https://example.com/")

    def test_timeout_fails(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = https_probe(handler, timeout=2).perform()
        assert result.reason == "Timeout fetching https://example.com/ after 2s"

    def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/":
                return httpx.Response(302, headers={"Location": "/home"})
            return httpx.Response(200, text="home")

        assert https_probe(handler).perform().ok

    def test_invalid_url_rejected(self):
        with pytest.raises(InvalidFieldError):
            HTTPSProbe({"url": "ftp://example.com/"})


class TestFreshness:
    def test_fresh_content_passes(self):
        probe = https_probe(
            lambda request: httpx.Response(200, headers={"Last-Modified": last_modified(5)}),
            maxAgeMinutes=60,
        )
        assert probe.perform().ok

    def test_stale_content_fails(self):
        probe = https_probe(
            lambda request: httpx.Response(200, headers={"Last-Modified": last_modified(120)}),
            maxAgeMinutes=60,
        )
        assert "last modified 120 minutes ago" in probe.perform().reason

    def test_missing_header_fails(self):
        probe = https_probe(lambda request: httpx.Response(200), maxAgeMinutes=60)
        assert probe.perform().reason == "No Last-Modified header from https://example.com/"


class TestCertificate:
    def test_certificate_expiring_soon(self, monkeypatch):
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14)
        monkeypatch.setattr(probe, "_get_certificate", lambda: datetime.now(timezone.utc) + timedelta(days=5))

        result = probe.perform()

        assert "Certificate" in result.reason
        assert "expires" in result.reason
        assert "(minimum 14)" in result.reason
        assert 4.9 < probe.results["cert"]["days_left"] < 5.1

    def test_certificate_valid_long_enough(self, monkeypatch):
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14)
        monkeypatch.setattr(probe, "_get_certificate", lambda: datetime.now(timezone.utc) + timedelta(days=60))

        assert probe.perform().ok

    def test_handshake_failure(self, monkeypatch):
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14)

        def refuse():
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(probe, "_get_certificate", refuse)

        assert probe.perform().reason.startswith("Certificate check for example.com failed")

    def test_plain_http_skips_certificate(self):
        probe = https_probe(lambda request: httpx.Response(200), url="http://example.com/", minCertDays=14)

        assert not probe.check_certificate
        assert probe.perform().ok


class TestServerIP:
    def test_request_pinned_to_address_keeps_host_and_sni(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        probe = https_probe(handler, serverIP="192.0.2.10")

        assert probe.perform().ok
        (request,) = seen
        assert request.url.host == "192.0.2.10"
        assert request.headers["host"] == "example.com"
        assert request.extensions["sni_hostname"] == "example.com"
        assert probe.attributes["server_ip"] == "192.0.2.10"

    def test_ipv6_address_and_explicit_port(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        https_probe(handler, url="https://example.com:8443/health", serverIP="2001:db8::10").perform()

        (request,) = seen
        assert request.url.host == "2001:db8::10"
        assert request.url.port == 8443
        assert request.url.path == "/health"
        assert request.headers["host"] == "example.com:8443"

    def test_without_server_ip_the_url_host_is_used(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        https_probe(handler).perform()

        assert seen[0].url.host == "example.com"
        assert "sni_hostname" not in seen[0].extensions

    def test_hostname_is_not_an_address(self):
        with pytest.raises(InvalidFieldError):
            HTTPSProbe({"url": "https://example.com/", "serverIP": "origin.example.com"})

    def test_describe_mentions_address(self):
        probe = https_probe(lambda request: httpx.Response(200), serverIP="192.0.2.10")
        assert probe.describe() == "HTTPS check, URL https://example.com/, method GET, server 192.0.2.10"


# ============================================================================
# CERTIFICATE EXPIRY READ
# ============================================================================

def not_after(days: float) -> str:
    return time.strftime("%b %d %H:%M:%S %Y GMT", time.gmtime(time.time() + days * 86400))


class StubTLSSocket:
    def __init__(self, cert):
        self.cert = cert

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def getpeercert(self):
        return self.cert


class StubContext:
    def __init__(self, cert):
        self.cert = cert
        self.server_hostname = None

    def wrap_socket(self, sock, server_hostname=None):
        self.server_hostname = server_hostname
        return StubTLSSocket(self.cert)


@pytest.fixture
def peer_certificate(monkeypatch):
    """Make ``probe`` see ``cert`` on its handshake; returns (install, addresses)."""
    addresses = []

    def create_connection(address, timeout=None):
        addresses.append(address)
        return nullcontext("raw socket")

    def install(probe, cert):
        context = StubContext(cert)
        monkeypatch.setattr(probe, "_tls_context", lambda: context)
        monkeypatch.setattr(http_probes.socket, "create_connection", create_connection)
        return context

    return install, addresses


class TestCertificateRead:
    def test_not_after_parsed_from_peer_certificate(self, peer_certificate):
        install, addresses = peer_certificate
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14)
        context = install(probe, {"subject": ((("commonName", "example.com"),),), "notAfter": not_after(5)})

        result = probe.perform()

        assert result.reason.startswith("Certificate for example.com expires in")
        assert result.reason.endswith("(minimum 14)")
        assert 4.9 < probe.results["cert"]["days_left"] < 5.1
        assert addresses == [("example.com", 443)]
        assert context.server_hostname == "example.com"

    def test_handshake_pinned_to_server_ip(self, peer_certificate):
        install, addresses = peer_certificate
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14, serverIP="192.0.2.10")
        context = install(probe, {"notAfter": not_after(90)})

        assert probe.perform().ok
        assert addresses == [("192.0.2.10", 443)]
        assert context.server_hostname == "example.com"

    def test_malformed_not_after(self, peer_certificate):
        install, _ = peer_certificate
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14)
        install(probe, {"notAfter": "next tuesday"})

        assert probe.perform().reason.startswith("Certificate check for example.com failed: ValueError")

    def test_missing_not_after(self, peer_certificate):
        install, _ = peer_certificate
        probe = https_probe(lambda request: httpx.Response(200), minCertDays=14)
        install(probe, {})

        assert probe.perform().reason.startswith("Certificate check for example.com failed: KeyError")


@pytest.fixture
def certificate_authority():
    return trustme.CA()


@pytest.fixture
def tls_server(certificate_authority):
    """One-shot local TLS server whose certificate expires in 5 days."""
    issued = certificate_authority.issue_cert(
        "localhost", not_after=datetime.now(timezone.utc) + timedelta(days=5)
    )
    server_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    issued.configure_cert(server_context)

    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    listener.settimeout(5)

    def serve():
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        try:
            with server_context.wrap_socket(conn, server_side=True) as tls:
                tls.recv(1)
        except OSError:
            # client rejected the certificate or hung up
            pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield listener.getsockname()[1]
    listener.close()
    thread.join(timeout=5)


def local_probe(port: int) -> HTTPSProbe:
    return HTTPSProbe({
        "url": f"https://localhost:{port}/",
        "serverIP": "127.0.0.1",
        "minCertDays": 14,
        "timeout": 5,
    })


class TestLocalTLSServer:
    def test_expiry_read_from_real_handshake(self, monkeypatch, certificate_authority, tls_server):
        probe = local_probe(tls_server)
        default_context = probe._tls_context

        def trusting_context():
            context = default_context()
            certificate_authority.configure_trust(context)
            return context

        monkeypatch.setattr(probe, "_tls_context", trusting_context)

        reason = probe._check_certificate()

        assert reason.startswith("Certificate for localhost expires in")
        assert 4.9 < probe.results["cert"]["days_left"] < 5.1

    def test_untrusted_certificate_fails_verification(self, tls_server):
        reason = local_probe(tls_server)._check_certificate()

        assert reason.startswith("Certificate check for localhost failed: SSLCertVerificationError")


# ============================================================================
# HTTP REDIRECT PROBE
# ============================================================================

def redirect_probe(handler, to_url="https://example.com/new"):
    probe = HTTPRedirectProbe({"fromUrl": "https://example.com/old", "toUrl": to_url})
    probe.transport = httpx.MockTransport(handler)
    return probe


class TestHTTPRedirectProbe:
    def test_relative_location_resolved(self):
        requests = []

        def handler(request):
            requests.append(request.url.path)
            return httpx.Response(301, headers={"Location": "/new"})

        probe = redirect_probe(handler)

        assert probe.perform().ok
        assert requests == ["/old"]
        assert probe.results["redirect"] == {"status": 301, "location": "https://example.com/new"}

    def test_wrong_target(self):
        probe = redirect_probe(lambda request: httpx.Response(302, headers={"Location": "https://other.example/"}))

        result = probe.perform()

        assert result.reason == (
            "https://example.com/old redirects to https://other.example/, "
            "expected https://example.com/new"
        )

    def test_no_redirect(self):
        result = redirect_probe(lambda request: httpx.Response(200)).perform()
        assert result.reason == "https://example.com/old did not redirect (HTTP 200)"

    def test_missing_location(self):
        result = redirect_probe(lambda request: httpx.Response(308)).perform()
        assert "no Location header" in result.reason

    def test_describe(self):
        probe = redirect_probe(lambda request: httpx.Response(200))
        assert probe.describe() == (
            "HTTP(s) redir check, from https://example.com/old, to https://example.com/new"
        )
