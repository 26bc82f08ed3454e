"""
OGFrame test configuration

Shared fixtures:
- cache: a ScreenshotCacheManager on a temp directory
- engine: a stub screenshot engine (no browser is ever launched)
- clock: a manually advanced clock for the rate limiter
- principals and a keys.json file
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Make the backend directory importable without installing
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from ogframe.auth import Principal, PrincipalKind, RateLimitConfig, hash_key
from ogframe.image_cache import ScreenshotCacheManager
from ogframe.rate_limit import RateLimiter


PNG_HEADER = b"\x89PNG\r\n\x1a\n"

ADMIN_SECRET = "ak_live_test_admin_secret_0000000"
PUBLIC_SECRET = "pk_live_test_public_key_00000000"


# ============================================
# Stubs
# ============================================

class StubEngine:
    """
    Screenshot engine stand-in.

    Records every call, can be slowed down, and tracks the highest number of
    captures running at the same time.
    """

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.delay = delay
        self.error = error
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0
        self.started: List[str] = []
        self.finished: List[str] = []
        self.events: List[tuple] = []

    async def capture(self, url: str, width: int, height: int, timeout_ms: int) -> bytes:
        self.calls.append(url)
        self.started.append(url)
        self.events.append(("start", url))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return PNG_HEADER + url.encode("utf-8")
        finally:
            self.active -= 1
            self.finished.append(url)
            self.events.append(("end", url))


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def cache(tmp_path):
    """A fresh cache in a temp directory."""
    return ScreenshotCacheManager(cache_dir=str(tmp_path / "cache"))


@pytest.fixture
def engine():
    return StubEngine()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(window_seconds=60, ip_hit_limit=2000, ip_miss_limit=50, clock=clock)


@pytest.fixture
def principal():
    """Standard principal scoped to example.com."""
    return Principal(
        key_id=PUBLIC_SECRET,
        kind=PrincipalKind.STANDARD,
        name="Example Site",
        allowed_domains=["example.com"],
        rate_limit=RateLimitConfig(requests=1000, generations=10),
    )


@pytest.fixture
def admin_principal():
    return Principal(
        key_id="admin:abc123",
        kind=PrincipalKind.ADMIN,
        name="Ops",
        rate_limit=RateLimitConfig(requests=10000, generations=1000),
    )


@pytest.fixture
def keys_data():
    return {
        "keys": [
            {
                "keyId": PUBLIC_SECRET,
                "type": "public",
                "name": "Example Site",
                "allowedDomains": ["Example.com", "*.example.com", "localhost:*"],
                "rateLimit": {"requests": 1000, "generations": 10},
                "createdAt": "2025-01-01T00:00:00Z",
                "expiresAt": None,
            },
            {
                "keyId": "pk_live_expired_key_000000000000",
                "type": "public",
                "name": "Old Site",
                "allowedDomains": ["old.example.org"],
                "rateLimit": {"requests": 10, "generations": 1},
                "createdAt": "2020-01-01T00:00:00Z",
                "expiresAt": "2021-01-01T00:00:00Z",
            },
            {
                "keyHash": hash_key(ADMIN_SECRET),
                "type": "admin",
                "name": "Ops",
                "createdAt": "2025-01-01T00:00:00Z",
            },
        ]
    }


@pytest.fixture
def keys_file(tmp_path, keys_data):
    path = tmp_path / "keys.json"
    path.write_text(json.dumps(keys_data), encoding="utf-8")
    return path
