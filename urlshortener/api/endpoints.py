"""
FastAPI Endpoints for URL Shortener Service

This module defines all REST API endpoints with minimal logic.
Endpoints only handle:
- Request validation (Pydantic models, short code / id format)
- Per-route rate limiting on operator endpoints
- Mapping service results to HTTP responses
- Delegating to the service layer

All business logic is in services; components come from app.state.

The redirect route matches any single path segment, so it is declared last.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse

from urlshortener.api.schemas import (
    CleanupResponse,
    CleanupStatsResponse,
    CreateLinkRequest,
    LinkStatsResponse,
)
from urlshortener.core.components import AppComponents
from urlshortener.core.exceptions import AnalyticsUnavailableError, DatabaseError
from urlshortener.core.rate_limit import RATE_LIMITS, limiter
from urlshortener.core.request_info import ClientMetadata
from urlshortener.core.validators import sanitize_short_code
from urlshortener.services.dto import LinkDTO, OperationStatus
from urlshortener.services.redirect_service import RedirectOutcome

logger = logging.getLogger(__name__)

router = APIRouter()


def get_components(request: Request) -> AppComponents:
    return request.app.state.components


def require_short_code(short_code: str) -> str:
    sanitized_code = sanitize_short_code(short_code)
    if not sanitized_code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid short code format: '{short_code}'. Short codes must contain only alphanumeric characters."
        )
    return sanitized_code


@router.post(
    "/api/links",
    response_model=LinkDTO,
    status_code=status.HTTP_201_CREATED,
    tags=["Links"],
    summary="Create a short link",
    description="Takes a long URL and returns a short link; an active link for the same URL is reused"
)
async def create_link(
    body: CreateLinkRequest,
    components: AppComponents = Depends(get_components)
) -> LinkDTO:
    result = await components.link_service.create_link(body.original_url, body.expiration_date)

    if result.status == OperationStatus.INVALID_FORMAT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result.error_message or "Invalid URL format"
        )
    if not result.succeeded:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create short link"
        )

    return result.result


@router.get(
    "/api/links/{short_code}/stats",
    response_model=LinkStatsResponse,
    tags=["Links"],
    summary="Get link statistics",
    description="Returns click statistics for a short link from the analytics service"
)
@limiter.limit(RATE_LIMITS["stats"])
async def get_link_stats(
    short_code: str,
    request: Request,  # Required for rate limiting (slowapi expects parameter named 'request')
    components: AppComponents = Depends(get_components)
) -> LinkStatsResponse:
    short_code = require_short_code(short_code)

    try:
        stats = await components.stats_service.get_stats(short_code)
    except AnalyticsUnavailableError as e:
        logger.error(f"Stats for {short_code} unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Analytics service unavailable"
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Short code '{short_code}' not found"
        )

    return LinkStatsResponse(**stats)


@router.get(
    "/api/links/{short_code}",
    response_model=LinkDTO,
    tags=["Links"],
    summary="Get a link",
    description="Returns the active link for a short code"
)
async def get_link(
    short_code: str,
    components: AppComponents = Depends(get_components)
) -> LinkDTO:
    short_code = require_short_code(short_code)

    try:
        link = await components.link_service.get_by_short_code(short_code)
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    if link is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Short code '{short_code}' not found"
        )
    return link


@router.delete(
    "/api/links/{link_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Links"],
    summary="Delete a link",
    description="Deactivates a link; the row is removed later by the cleanup service"
)
async def delete_link(
    link_id: str,
    components: AppComponents = Depends(get_components)
) -> Response:
    try:
        link_id = str(uuid.UUID(link_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid link id: '{link_id}'"
        )

    result = await components.link_service.delete_link(link_id)

    if result.status == OperationStatus.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Link '{link_id}' not found"
        )
    if not result.succeeded:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete link"
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/api/maintenance/cleanup",
    response_model=CleanupResponse,
    tags=["Maintenance"],
    summary="Run link cleanup now",
    description="Purges expired links and old deactivated links immediately"
)
@limiter.limit(RATE_LIMITS["maintenance"])
async def trigger_cleanup(
    request: Request,
    components: AppComponents = Depends(get_components)
) -> CleanupResponse:
    try:
        report = await components.cleanup_service.run_cycle()
    except Exception as e:
        logger.error(f"Manual cleanup failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cleanup failed"
        )
    return CleanupResponse.from_report(report)


@router.get(
    "/api/maintenance/stats",
    response_model=CleanupStatsResponse,
    tags=["Maintenance"],
    summary="Get cleanup statistics",
    description="Returns link counts and the number of rows the next cleanup would remove"
)
@limiter.limit(RATE_LIMITS["maintenance"])
async def get_cleanup_stats(
    request: Request,
    components: AppComponents = Depends(get_components)
) -> CleanupStatsResponse:
    cleanup_service = components.cleanup_service
    try:
        stats = await cleanup_service.get_stats()
    except DatabaseError as e:
        logger.error(f"Cleanup stats failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    return CleanupStatsResponse.from_stats(stats, cleanup_service.state.value)


@router.get(
    "/{short_code}",
    status_code=status.HTTP_302_FOUND,
    tags=["Redirect"],
    summary="Redirect to original URL",
    description="Takes a short code and redirects to the original long URL"
)
async def redirect_to_url(
    short_code: str,
    request: Request,
    components: AppComponents = Depends(get_components)
) -> RedirectResponse:
    """
    Redirect to the original URL for a given short code.

    Raises:
        HTTPException 400: If short code format is invalid
        HTTPException 404: If short code not found
        HTTPException 410: If the link has expired
    """
    short_code = require_short_code(short_code)

    # Copied before any background work is scheduled
    client = ClientMetadata.from_request(request)

    try:
        result = await components.redirect_service.resolve(short_code, client)
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    if result.outcome is RedirectOutcome.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Short code '{short_code}' not found"
        )
    if result.outcome is RedirectOutcome.GONE:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail=f"Short code '{short_code}' has expired"
        )

    return RedirectResponse(
        url=result.target_url,
        status_code=status.HTTP_302_FOUND
    )
