"""
Generation Coordinator

Bounds the number of concurrent screenshot captures. Callers past the limit
wait on an asyncio.Semaphore, whose waiters are woken in FIFO order. The
permit is released on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from ..errors import CaptureError
from .engine import ScreenshotEngine, classify_failure

logger = logging.getLogger(__name__)


class GenerationCoordinator:
    """
    Runs captures through a fixed-size permit pool.

    Failures are surfaced as CaptureError subclasses and never retried here.
    """

    def __init__(
        self,
        engine: ScreenshotEngine,
        max_concurrent: int = 3,
        width: int = 1200,
        height: int = 630,
        timeout_ms: int = 30000,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.engine = engine
        self.max_concurrent = max_concurrent
        self.width = width
        self.height = height
        self.timeout_ms = timeout_ms

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._in_flight = 0
        self._waiting = 0
        self._stats = {
            "completed": 0,
            "failed": 0,
        }

        logger.info(f"[Screenshot] Coordinator initialized: max_concurrent={max_concurrent}")

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return self._waiting

    async def run(self, url: str) -> bytes:
        """
        Capture ``url`` once a permit is free.

        Raises:
            CaptureError: Timeout, network or engine failure
        """
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._in_flight += 1
        try:
            data = await self.engine.capture(url, self.width, self.height, self.timeout_ms)
        except CaptureError:
            self._stats["failed"] += 1
            raise
        except Exception as e:
            self._stats["failed"] += 1
            logger.error(f"[Screenshot] Engine raised unexpected error for {url}: {e}")
            raise classify_failure(e, self.timeout_ms) from e
        finally:
            self._in_flight -= 1
            self._semaphore.release()

        self._stats["completed"] += 1
        return data

    def get_stats(self) -> Dict[str, int]:
        return {
            "max_concurrent": self.max_concurrent,
            "in_flight": self._in_flight,
            "waiting": self._waiting,
            **self._stats,
        }
