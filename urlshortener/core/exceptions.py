"""
Custom Exceptions

This module defines custom exceptions for better error handling
and more specific error messages.

Benefits:
- More specific error types for different failure scenarios
- Better error messages for API consumers
- Easier error handling and logging
- Type safety with exception handling

Not-found is deliberately absent: lookups return None and service
operations return a NOT_FOUND status instead of raising.
"""

from typing import Optional


class URLShortenerException(Exception):
    """Base exception for URL shortener service."""
    pass


class InvalidURLError(URLShortenerException):
    """Raised when URL validation fails."""

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class DatabaseError(URLShortenerException):
    """Raised when database operations fail."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


class ShortCodeConflictError(DatabaseError):
    """Raised when an insert collides with an existing short code."""

    def __init__(self, short_code: str, original_error: Optional[Exception] = None):
        self.short_code = short_code
        super().__init__(
            f"short code '{short_code}' is already taken",
            original_error=original_error
        )


class AnalyticsUnavailableError(URLShortenerException):
    """Raised when the click analytics service cannot be reached or fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(f"Analytics service unavailable: {message}")
