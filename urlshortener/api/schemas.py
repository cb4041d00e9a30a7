"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse.

Design Principles:
- Request models: Define input validation
- Response models: Define output structure
- Link responses reuse LinkDTO from the service layer
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from urlshortener.db.models import as_utc
from urlshortener.services.cleanup_service import CleanupReport, CleanupStats


class CreateLinkRequest(BaseModel):
    """Request model for link creation."""
    # Length and format are checked by the link service so that rejects map to 400
    original_url: str = Field(..., description="The long URL to shorten")
    expiration_date: Optional[datetime] = Field(
        default=None,
        description="Optional expiration; timestamps without an offset are taken as UTC"
    )

    @field_validator("expiration_date")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class LinkStatsResponse(BaseModel):
    """Response model for per-link statistics."""
    link_id: str
    short_code: str
    original_url: str
    created_at: str
    expires_at: Optional[str] = None
    analytics: Dict[str, Any]


class CleanupResponse(BaseModel):
    """Response model for a manual cleanup run."""
    expired_removed: int
    inactive_removed: int
    total_removed: int
    cutoff: datetime

    @classmethod
    def from_report(cls, report: CleanupReport) -> "CleanupResponse":
        return cls(
            expired_removed=report.expired_removed,
            inactive_removed=report.inactive_removed,
            total_removed=report.total_removed,
            cutoff=report.cutoff,
        )


class CleanupStatsResponse(BaseModel):
    """Response model for cleanup statistics."""
    total_links: int
    active_links: int
    expired_links: int
    old_inactive_links: int
    candidates_for_cleanup: int
    retention_days: int
    cutoff: datetime
    state: str

    @classmethod
    def from_stats(cls, stats: CleanupStats, state: str) -> "CleanupStatsResponse":
        return cls(
            total_links=stats.total_links,
            active_links=stats.active_links,
            expired_links=stats.expired_links,
            old_inactive_links=stats.old_inactive_links,
            candidates_for_cleanup=stats.candidates_for_cleanup,
            retention_days=stats.retention_days,
            cutoff=stats.cutoff,
            state=state,
        )


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
