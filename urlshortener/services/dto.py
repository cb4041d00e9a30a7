"""
Data Transfer Objects

Plain projections of stored links handed between the link service, the
cache and the API layer. The cache holds LinkDTO instances, never ORM
objects, so a cached entry is independent of any database session.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from urlshortener.db.models import Link

T = TypeVar("T")


class LinkDTO(BaseModel):
    """Public view of a link (also the cache entry)."""
    model_config = ConfigDict(frozen=True)

    id: str
    original_url: str
    short_code: str
    short_url: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool = True

    @classmethod
    def from_link(cls, link: Link, base_url: str) -> "LinkDTO":
        return cls(
            id=link.id,
            original_url=link.original_url,
            short_code=link.short_code,
            short_url=f"{base_url.rstrip('/')}/{link.short_code}",
            created_at=link.created_at,
            expires_at=link.expires_at,
            is_active=link.is_active,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class OperationStatus(str, Enum):
    SUCCESS = "success"
    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    ERROR = "error"


class OperationResult(BaseModel, Generic[T]):
    """Outcome of a link service mutation; never carries an exception."""

    status: OperationStatus
    result: Optional[T] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == OperationStatus.SUCCESS


class ClickEvent(BaseModel):
    """Click registration payload sent to the analytics service."""
    model_config = ConfigDict(frozen=True)

    link_id: str = Field(serialization_alias="linkId")
    original_url: str = Field(exclude=True)
    timestamp: datetime
    ip_address: Optional[str] = Field(default=None, serialization_alias="ipAddress")
    user_agent: Optional[str] = Field(default=None, serialization_alias="userAgent")
    referer: Optional[str] = None
