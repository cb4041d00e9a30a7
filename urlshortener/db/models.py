"""
Database Models for URL Shortener Service

This module defines the SQLModel database schema for:
- Link: Stores the mapping between short codes and original URLs,
  with an optional expiration and a soft-delete flag

Design Decisions:
- UUID string primary key: ids are assigned by the service, not the database
- Unique index on short_code spans active AND inactive rows, so a code is
  never reused while any row holds it
- Composite index on (original_url, is_active) for the deduplication lookup
- Indexes on is_active, expires_at and created_at for the cleanup queries
- Timestamps are timezone-aware UTC in Python and stored as naive UTC
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Tag naive values as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_link_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """
    DateTime column that always hands out timezone-aware UTC values.

    SQLite drops tzinfo on the way in and returns naive values on the way
    out, so values are converted to naive UTC before binding and tagged
    with UTC after loading.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        return as_utc(value)


class Link(SQLModel, table=True):
    """
    Main table storing URL shortening mappings.

    Fields:
    - id: UUID string assigned at creation
    - original_url: Normalized long URL (max 2048 characters)
    - short_code: Unique short code (6-11 characters, base62 alphabet)
    - created_at: Timestamp when the link was created
    - expires_at: Optional expiration; past values make the link "gone"
    - is_active: False once the link is soft-deleted
    """
    __tablename__ = "links"
    __table_args__ = (
        Index("ix_links_original_url_is_active", "original_url", "is_active"),
    )

    id: str = Field(
        default_factory=new_link_id,
        sa_column=Column(String(36), primary_key=True)
    )
    original_url: str = Field(sa_column=Column(String(2048), nullable=False))
    short_code: str = Field(
        sa_column=Column(String(16), nullable=False, unique=True, index=True),
        max_length=16
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), nullable=False, index=True)
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(UTCDateTime(), nullable=True, index=True)
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, default=True, index=True)
    )
