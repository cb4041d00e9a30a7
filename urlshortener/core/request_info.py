"""
Request Metadata Extraction

Resolves client identity and copies request-derived fields into plain
data before any background work starts. Background tasks must never hold
on to the Request object: the server may recycle it once the handler
returns.
"""

from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Handles proxies and load balancers by checking X-Forwarded-For first
    (first entry of the list), then X-Real-IP, then the socket peer.

    Args:
        request: Starlette/FastAPI Request object

    Returns:
        IP address as string, or "unknown" when nothing identifies the client
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


@dataclass(frozen=True)
class ClientMetadata:
    """Plain-data copy of the request fields reported with a click."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ClientMetadata":
        ip_address = get_client_ip(request)
        return cls(
            ip_address=None if ip_address == UNKNOWN_CLIENT else ip_address,
            user_agent=request.headers.get("User-Agent") or None,
            referer=request.headers.get("Referer") or None,
        )
