"""
URL Normalization

Produces a canonical form of a URL so equivalent inputs deduplicate to the
same stored link:
- scheme and host are lowercased
- default ports (80 for http, 443 for https) are dropped
- a bare "/" path is collapsed to an empty path
- path, query and fragment are preserved as given

Malformed input is returned unchanged; validation is a separate concern.
"""

import logging
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    if not url or not url.strip():
        logger.warning("Attempted to normalize null or empty URL")
        return url

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        logger.warning(f"Invalid URL format during normalization: {url} ({e})")
        return url

    if not parts.scheme or not parts.hostname:
        return url

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if ":" in host:
        # IPv6 literal
        host = f"[{host}]"

    if port is not None and DEFAULT_PORTS.get(scheme) == port:
        port = None

    path = parts.path
    if path == "/":
        path = ""

    normalized = f"{scheme}://{host}"
    if port is not None:
        normalized += f":{port}"
    normalized += path
    if parts.query:
        normalized += f"?{parts.query}"
    if parts.fragment:
        normalized += f"#{parts.fragment}"

    logger.debug(f"Normalized URL from {url} to {normalized}")
    return normalized


class UrlNormalizer:
    """Collaborator wrapper so the link service can take a normalizer instance."""

    def normalize(self, url: str) -> str:
        return normalize_url(url)
