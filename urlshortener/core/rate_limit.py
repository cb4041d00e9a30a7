"""
Rate Limiting Configuration

Per-route limits for the operator endpoints (maintenance and stats).

Design Decisions:
- Uses slowapi for fixed per-route quotas (lightweight, FastAPI-compatible)
- Keyed on the same client address the sliding-window middleware uses
- Limits are callables, so slowapi re-reads them on every request from the
  settings of the application serving it (bound by RateLimitMiddleware)
- The global per-client sliding window is NOT configured here; it lives in
  SlidingWindowRateLimiter and RateLimitMiddleware and applies to every
  non-exempt path. The limits below are stacked on top of it.
"""

from contextvars import ContextVar
from typing import Optional

from slowapi import Limiter

from urlshortener.core.request_info import get_client_ip
from urlshortener.core.setting import Settings, settings

limiter = Limiter(key_func=get_client_ip)

# Settings of the application handling the current request
request_settings_var: ContextVar[Optional[Settings]] = ContextVar("request_settings", default=None)


def current_settings() -> Settings:
    return request_settings_var.get() or settings


def maintenance_limit() -> str:
    return current_settings().MAINTENANCE_RATE_LIMIT


def stats_limit() -> str:
    return current_settings().STATS_RATE_LIMIT


# Format: "count/period" (e.g., "5/minute" means 5 requests per minute)
RATE_LIMITS = {
    "maintenance": maintenance_limit,  # cleanup trigger and cleanup stats
    "stats": stats_limit,  # per-link analytics stats
}
