"""
============================================================================
PROBEMON - VALIDATORS UTILITY
============================================================================
Validation helpers used by the probe configuration models: URLs, IP
addresses, ports and "host:port" endpoint strings.

License: MIT
============================================================================
"""

import ipaddress
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

import validators as external_validators


# ============================================================================
# URL VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL validation and parsing.
    """

    ALLOWED_SCHEMES = ("http", "https")

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Check if URL is valid.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(url, str) or not url:
            return False

        if urlparse(url).scheme.lower() not in URLValidator.ALLOWED_SCHEMES:
            return False

        # simple_host admits single-label hosts such as "localhost"
        return external_validators.url(url, simple_host=True) is True

    @staticmethod
    def is_valid_ip(ip: str) -> bool:
        """
        Check if IP address is valid.

        Args:
            ip: IP address to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            ipaddress.ip_address(ip)
            return True
        except ValueError:
            return False

    @staticmethod
    def is_valid_host(host: str) -> bool:
        """
        Check if host is an IP address or a resolvable-looking hostname.

        Args:
            host: Hostname or IP address, without port

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(host, str) or not host:
            return False

        if URLValidator.is_valid_ip(host):
            return True

        return external_validators.hostname(host, may_have_port=False, maybe_simple=True) is True


# ============================================================================
# DATA VALIDATORS
# ============================================================================

class DataValidator:
    """
    Scalar value validation.
    """

    @staticmethod
    def is_valid_port(port: Any) -> bool:
        """
        Check if port number is valid.

        Args:
            port: Port to validate

        Returns:
            True if valid, False otherwise
        """
        if isinstance(port, bool):
            return False
        try:
            port = int(port)
            return 1 <= port <= 65535
        except (ValueError, TypeError):
            return False


# ============================================================================
# ENDPOINT PARSING
# ============================================================================

def split_host_port(endpoint: str, default_port: Optional[int] = None) -> Tuple[str, Optional[int]]:
    """
    Split "host", "host:port", "[v6]:port" or a bare IPv6 address.

    Raises:
        ValueError: if the port part is not a valid port number
    """
    endpoint = endpoint.strip()

    if endpoint.startswith("["):
        host, _, rest = endpoint[1:].partition("]")
        if rest.startswith(":"):
            port_text = rest[1:]
        elif rest:
            raise ValueError(f"Malformed endpoint '{endpoint}'")
        else:
            return host, default_port
    elif endpoint.count(":") == 1:
        host, port_text = endpoint.split(":")
    else:
        # bare hostname, IPv4 or unbracketed IPv6 address
        return endpoint, default_port

    if not DataValidator.is_valid_port(port_text):
        raise ValueError(f"Invalid port in endpoint '{endpoint}'")
    return host, int(port_text)
