"""
Rate Limiter

Fixed-window counters keyed by scope, plus the two-tier policy the request
pipeline applies:

1. Request tier    - every admitted request, per key
2. Generation tier - cache misses only, per key and per referring domain
3. Client tier     - per client IP, generous for hits, strict for misses
"""

from __future__ import annotations

import math
import time
import asyncio
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit

from ..auth.models import Principal
from ..errors import RateLimitExceeded
from ..url_utils import get_base_domain

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_SWEEP_INTERVAL = 60


@dataclass
class RateCounter:
    """Count of events in the live window of one scope."""
    count: int
    reset_at: float


def domain_from_referer(referer: Optional[str]) -> Optional[str]:
    """Extract the registrable domain of a Referer header, if any."""
    if not referer:
        return None
    try:
        hostname = urlsplit(referer).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return get_base_domain(hostname)


class RateLimiter:
    """
    In-memory rate limiter.

    Counters live in a dict guarded by a lock so concurrent increments on the
    same scope never lose updates. A background task sweeps expired counters.
    """

    def __init__(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        ip_hit_limit: int = 2000,
        ip_miss_limit: int = 50,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.ip_hit_limit = ip_hit_limit
        self.ip_miss_limit = ip_miss_limit
        self.sweep_interval = sweep_interval
        self._clock = clock

        self._counters: Dict[str, RateCounter] = {}
        self._lock = Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    # ============================================
    # Counters
    # ============================================

    def enforce(self, scope: str, limit: int, window_seconds: Optional[int] = None) -> None:
        """
        Count one event against ``scope``.

        Raises:
            RateLimitExceeded: once the count in the live window passes ``limit``
        """
        window = window_seconds or self.window_seconds

        with self._lock:
            now = self._clock()
            counter = self._counters.get(scope)

            if counter is None or now >= counter.reset_at:
                self._counters[scope] = RateCounter(count=1, reset_at=now + window)
                count = 1
                reset_at = now + window
            else:
                # Keeps counting past the limit so retry timing stays accurate
                counter.count += 1
                count = counter.count
                reset_at = counter.reset_at

        if count > limit:
            retry_after = max(1, math.ceil(reset_at - now))
            logger.warning(f"[RateLimit] Exceeded: {scope} ({count}/{limit}), retry after {retry_after}s")
            raise RateLimitExceeded(scope, limit, window, retry_after)

    def status(self, scope: str) -> Optional[RateCounter]:
        """Current counter for a scope, for debugging."""
        with self._lock:
            counter = self._counters.get(scope)
            if counter is None:
                return None
            return RateCounter(count=counter.count, reset_at=counter.reset_at)

    def reset(self, pattern: str) -> int:
        """Drop every counter whose scope contains ``pattern``."""
        with self._lock:
            matched = [key for key in self._counters if pattern in key]
            for key in matched:
                del self._counters[key]
        logger.info(f"[RateLimit] Reset {len(matched)} counters matching '{pattern}'")
        return len(matched)

    def sweep(self) -> int:
        """Remove counters whose window has passed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, c in self._counters.items() if now >= c.reset_at]
            for key in expired:
                del self._counters[key]
        if expired:
            logger.debug(f"[RateLimit] Swept {len(expired)} expired counters")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    # ============================================
    # Request policy
    # ============================================

    def check_request(
        self,
        principal: Principal,
        referer: Optional[str],
        client_ip: Optional[str],
        is_cache_hit: bool,
    ) -> None:
        """Apply every tier to one admitted request."""
        key_id = principal.key_id

        self.enforce(f"req:{key_id}", principal.rate_limit.requests)

        if not is_cache_hit:
            generations = principal.rate_limit.generations
            self.enforce(f"gen:{key_id}", generations)

            # One site must not exhaust a shared key's generation budget
            if not principal.is_admin:
                domain = domain_from_referer(referer)
                if domain:
                    self.enforce(f"gen:{key_id}:{domain}", generations)

        if client_ip:
            if is_cache_hit:
                self.enforce(f"ip:{client_ip}:req", self.ip_hit_limit)
            else:
                self.enforce(f"ip:{client_ip}:gen", self.ip_miss_limit)

    # ============================================
    # Background sweep
    # ============================================

    async def start(self) -> None:
        """Start the periodic sweep task."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"[RateLimit] Sweep task started (every {self.sweep_interval}s)")

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[RateLimit] Sweep failed: {e}")

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            logger.info("[RateLimit] Sweep task stopped")
        self._sweep_task = None
