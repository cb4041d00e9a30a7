"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for user inputs.
These functions help prevent security issues and ensure data integrity.

Security Considerations:
- Input validation prevents injection attacks
- Only http/https targets can be shortened (no javascript:, data:, file:)
- Local and private network hosts are rejected (SSRF protection)
- Length limits prevent DoS attacks
"""

import ipaddress
import logging
import re
from typing import Optional
from urllib.parse import urlsplit

import httpx

from urlshortener.core.exceptions import InvalidURLError

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = {"http", "https"}

BLOCKED_SCHEME_PREFIXES = ("javascript:", "data:", "vbscript:", "file:", "ftp:")

LOCAL_HOSTNAMES = {"localhost", "0.0.0.0"}

SQL_INJECTION_PATTERNS = (
    "' or ",
    "\" or ",
    "' and ",
    "\" and ",
    "drop table",
    "delete from",
    "insert into",
    "update set",
    "union select",
    "exec(",
    "execute(",
    "sp_",
    "xp_",
    "--",
    "/*",
    "*/",
)


def sanitize_short_code(short_code: str) -> Optional[str]:
    """
    Sanitize and validate short code format.

    Short codes should only contain base62 characters: [0-9a-zA-Z]
    This prevents injection attacks and ensures consistency.

    Args:
        short_code: The short code to sanitize

    Returns:
        Sanitized short code if valid, None otherwise
    """
    if not short_code or not isinstance(short_code, str):
        return None

    short_code = short_code.strip()

    # Generated codes are 6-11 chars; anything past 20 is not ours
    if len(short_code) > 20:
        return None

    if not re.match(r'^[0-9a-zA-Z]+$', short_code):
        return None

    return short_code


def validate_url_length(url: str, max_length: int = MAX_URL_LENGTH) -> bool:
    """
    Validate URL length to prevent DoS attacks.

    Args:
        url: The URL to validate
        max_length: Maximum allowed length (default: 2048 per RFC 7230)

    Returns:
        True if URL length is valid, False otherwise
    """
    return bool(url) and len(url) <= max_length


def is_local_network_host(host: str) -> bool:
    """Return True for localhost, loopback, private and link-local addresses."""
    if not host:
        return False

    host = host.lower().strip("[]")
    if host in LOCAL_HOSTNAMES:
        return True

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped

    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_unspecified
    )


def contains_sql_injection_patterns(url: str) -> bool:
    url_lower = url.lower()
    return any(pattern in url_lower for pattern in SQL_INJECTION_PATTERNS)


def is_valid_url(url: str) -> bool:
    """
    Validate URL format and security.

    Checks that URL uses http/https, has a host, is not longer than
    2048 characters, does not point into a local network and does not
    carry script schemes or SQL injection fragments.

    Args:
        url: The URL string to validate

    Returns:
        True if valid and safe, False otherwise
    """
    if not url or not isinstance(url, str) or not url.strip():
        return False

    if not validate_url_length(url):
        return False

    url_lower = url.lower()
    if url_lower.startswith(BLOCKED_SCHEME_PREFIXES):
        return False

    try:
        result = urlsplit(url)
        host = result.hostname
        # Accessing .port validates it (raises ValueError when out of range)
        result.port
    except ValueError:
        return False

    if result.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    if not host:
        return False

    if is_local_network_host(host):
        return False

    if contains_sql_injection_patterns(url):
        return False

    return True


class UrlValidator:
    """
    URL validation collaborator used by the link service.

    Format validation is synchronous and cheap. The reachability probe
    performs a live HTTP GET and is not part of link creation by default.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.http_client = http_client
        self.timeout = timeout

    def is_valid_format(self, url: str) -> bool:
        return is_valid_url(url)

    def validate(self, url: str) -> None:
        """Raise InvalidURLError unless the URL passes format validation."""
        if not self.is_valid_format(url):
            raise InvalidURLError(url)

    async def is_reachable(self, url: str) -> bool:
        """
        Probe the URL and accept any response below 400.

        Returns False on invalid format, transport errors and timeouts.
        """
        if not self.is_valid_format(url):
            return False

        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url)
            return response.status_code < 400
        except httpx.TimeoutException:
            logger.warning(f"URL validation timeout for {url}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"URL validation failed for {url}: {e}")
            return False
