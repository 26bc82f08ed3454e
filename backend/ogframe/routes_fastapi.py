"""
OGFrame API Routes

Provides endpoints for:
- Generating / serving OG images
- Health check
- Cache administration (stats, delete, purge)
- Rate-limit reset
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from . import __version__
from .errors import InvalidInputError, NotFoundError
from .image_cache import format_bytes
from .pipeline import ImageRequest

logger = logging.getLogger(__name__)

# Generated images never change for a given URL
IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"

router = APIRouter(tags=["OGFrame"])


def _client_ip(request: Request) -> Optional[str]:
    """Client address, preferring the reverse proxy's headers."""
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return request.client.host if request.client else None


def _admin_secret(request: Request, key: Optional[str]) -> Optional[str]:
    return request.headers.get("authorization") or key


# ============================================
# Image Endpoint
# ============================================

@router.get("/api/image")
async def get_image(
    request: Request,
    key: Optional[str] = Query(None, description="API key"),
    url: Optional[str] = Query(None, description="URL to screenshot"),
):
    """
    Return an OG image for a URL.

    Example:
        GET /api/image?key=pk_live_xxx&url=https://example.com/blog/post
    """
    if not key or not url:
        raise InvalidInputError("Missing required parameters: key and url", code="INVALID_PARAMS")

    state = request.app.state
    principal = state.key_store.authenticate(key)

    result = await state.pipeline.handle(
        ImageRequest(
            principal=principal,
            url=url,
            referer=request.headers.get("referer"),
            client_ip=_client_ip(request),
        )
    )

    headers = {
        "Cache-Control": IMAGE_CACHE_CONTROL,
        "X-Cache-Status": "HIT" if result.is_cache_hit else "MISS",
        "X-Generation-Time": f"{result.generation_time_ms}ms",
        "ETag": f'"{result.cache_key}"',
    }
    if result.cache_error is not None:
        headers["X-Cache-Error"] = result.cache_error.code

    logger.info(
        f"[API] Image served: {result.normalized_url} "
        f"({headers['X-Cache-Status']}, {len(result.data)} bytes)"
    )
    return Response(content=result.data, media_type="image/png", headers=headers)


# ============================================
# Health
# ============================================

@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    state = request.app.state
    stats = state.cache.stats()
    # Cache hits still work without a browser
    browser_available = state.browser_available
    return JSONResponse(content={
        "status": "degraded" if browser_available is False else "healthy",
        "version": __version__,
        "uptime": int(time.monotonic() - state.started_at),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "cache": {
            "enabled": True,
            "entries": stats["total_entries"],
            "size": format_bytes(stats["total_size_bytes"]),
            "hit_rate": stats["hit_rate"],
        },
        "generations": state.coordinator.get_stats(),
        "browser": {"available": browser_available},
    })


# ============================================
# Admin Endpoints
# ============================================

@router.get("/admin/cache/stats")
async def get_cache_stats(request: Request, key: Optional[str] = Query(None)):
    """Cache statistics (admin only)."""
    request.app.state.key_store.require_admin(_admin_secret(request, key))
    return JSONResponse(content=request.app.state.cache.stats())


@router.delete("/admin/cache/{cache_key}")
async def delete_cache_entry(request: Request, cache_key: str, key: Optional[str] = Query(None)):
    """Delete one cached image by cache key (admin only)."""
    request.app.state.key_store.require_admin(_admin_secret(request, key))

    deleted = await request.app.state.cache.delete(cache_key)
    if not deleted:
        raise NotFoundError("Cache entry not found")

    return JSONResponse(content={"success": True, "cache_key": cache_key})


@router.delete("/admin/cache")
async def purge_cache(
    request: Request,
    key: Optional[str] = Query(None),
    all: Optional[str] = Query(None, description="Must be 'true'"),
):
    """
    Purge every cached image (admin only).

    Requires ?all=true as a guard against accidental purges.
    """
    request.app.state.key_store.require_admin(_admin_secret(request, key))

    if all != "true":
        raise InvalidInputError("Must provide ?all=true to purge entire cache", code="INVALID_PARAMS")

    count = await request.app.state.cache.purge()
    logger.info(f"[API] Cache purged by admin: {count} entries")
    return JSONResponse(content={"success": True, "purged_entries": count})


@router.delete("/admin/rate-limits")
async def reset_rate_limits(
    request: Request,
    key: Optional[str] = Query(None),
    pattern: Optional[str] = Query(None, description="Substring of the scopes to reset"),
):
    """Reset rate-limit counters matching a pattern (admin only)."""
    request.app.state.key_store.require_admin(_admin_secret(request, key))

    if not pattern:
        raise InvalidInputError("Missing required parameter: pattern", code="INVALID_PARAMS")

    count = request.app.state.limiter.reset(pattern)
    return JSONResponse(content={"success": True, "reset_counters": count})
