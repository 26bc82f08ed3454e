"""
Request Pipeline

Turns (principal, url) into image bytes:

1. Validate and normalize the URL
2. Look up the cache (decides hit/miss)
3. Enforce rate limits (tiers depend on hit/miss)
4. Hit  -> return cached bytes
   Miss -> capture through the coordinator, cache, return

Every stage fails fast. A failed cache write does not fail the request: the
image is still returned with ``cache_error`` set.

Concurrent misses on the same URL are not collapsed; each one captures and
the last write wins.
"""

from __future__ import annotations

import time
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Set

from .auth.models import Principal
from .errors import InternalError
from .image_cache import ScreenshotCacheManager, generate_cache_key
from .rate_limit import RateLimiter
from .screenshot import GenerationCoordinator
from .url_utils import normalize_url, validate_url

logger = logging.getLogger(__name__)


@dataclass
class ImageRequest:
    """One resolved request."""
    principal: Principal
    url: str
    referer: Optional[str] = None
    client_ip: Optional[str] = None


@dataclass
class ImageResult:
    """What the pipeline hands back to the transport."""
    data: bytes
    cache_key: str
    normalized_url: str
    is_cache_hit: bool
    generation_time_ms: int
    cache_error: Optional[InternalError] = None


class RequestPipeline:
    """Sequences validation, caching, rate limiting and generation."""

    def __init__(
        self,
        cache: ScreenshotCacheManager,
        limiter: RateLimiter,
        coordinator: GenerationCoordinator,
        require_https: bool = False,
        max_url_length: int = 2048,
    ):
        self.cache = cache
        self.limiter = limiter
        self.coordinator = coordinator
        self.require_https = require_https
        self.max_url_length = max_url_length

        # Generations outlive the request that started them
        self._generations: Set[asyncio.Task] = set()

    async def handle(self, request: ImageRequest) -> ImageResult:
        principal = request.principal

        validate_url(
            request.url,
            principal.allowed_domains,
            require_https=self.require_https,
            max_length=self.max_url_length,
            is_admin=principal.is_admin,
        )
        normalized_url = normalize_url(request.url)

        cached = await self.cache.get(normalized_url)
        is_cache_hit = cached is not None

        self.limiter.check_request(principal, request.referer, request.client_ip, is_cache_hit)

        if cached is not None:
            data, entry = cached
            logger.debug(f"[Pipeline] Serving from cache: {normalized_url}")
            return ImageResult(
                data=data,
                cache_key=entry.cache_key,
                normalized_url=normalized_url,
                is_cache_hit=True,
                generation_time_ms=entry.generation_time_ms,
            )

        logger.info(f"[Pipeline] Cache miss, generating screenshot: {request.url}")
        task = asyncio.create_task(self._generate(request.url, normalized_url))
        self._generations.add(task)
        task.add_done_callback(self._on_generation_done)

        # Shielded so an abandoned request still finishes and caches its image
        return await asyncio.shield(task)

    async def _generate(self, url: str, normalized_url: str) -> ImageResult:
        start = time.monotonic()
        data = await self.coordinator.run(url)
        generation_time_ms = int((time.monotonic() - start) * 1000)

        cache_error: Optional[InternalError] = None
        try:
            await self.cache.put(url, normalized_url, data, generation_time_ms)
        except InternalError as e:
            logger.error(f"[Pipeline] Generated image could not be cached: {normalized_url}: {e}")
            cache_error = e

        return ImageResult(
            data=data,
            cache_key=generate_cache_key(normalized_url),
            normalized_url=normalized_url,
            is_cache_hit=False,
            generation_time_ms=generation_time_ms,
            cache_error=cache_error,
        )

    def _on_generation_done(self, task: asyncio.Task) -> None:
        self._generations.discard(task)
        # Mark failures as retrieved when nobody is awaiting anymore; they are logged upstream
        if not task.cancelled():
            task.exception()

    @property
    def pending_generations(self) -> int:
        return len(self._generations)

    async def drain(self) -> None:
        """Wait for in-flight generations to finish (used on shutdown)."""
        if self._generations:
            logger.info(f"[Pipeline] Waiting for {len(self._generations)} in-flight generations")
            await asyncio.gather(*list(self._generations), return_exceptions=True)
