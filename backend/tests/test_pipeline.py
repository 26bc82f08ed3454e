"""
Request pipeline tests

End-to-end scenarios over real cache/limiter/coordinator instances and a
stub screenshot engine.

Run:
    pytest backend/tests/test_pipeline.py -v
"""

import asyncio

import pytest

from conftest import StubEngine
from ogframe.auth import Principal, PrincipalKind, RateLimitConfig
from ogframe.errors import (
    CaptureTimeout,
    DomainNotAllowedError,
    InternalError,
    InvalidInputError,
    RateLimitExceeded,
)
from ogframe.image_cache import generate_cache_key
from ogframe.pipeline import ImageRequest, RequestPipeline
from ogframe.screenshot import GenerationCoordinator


@pytest.fixture
def make_pipeline(cache, limiter):
    def factory(engine, max_concurrent=3, require_https=False):
        coordinator = GenerationCoordinator(engine, max_concurrent=max_concurrent)
        return RequestPipeline(cache, limiter, coordinator, require_https=require_https)
    return factory


@pytest.fixture
def pipeline(make_pipeline, engine):
    return make_pipeline(engine)


def _request(principal, url, **kwargs):
    return ImageRequest(principal=principal, url=url, **kwargs)


# ============================================
# Scenarios
# ============================================

class TestScenarios:

    @pytest.mark.asyncio
    async def test_miss_then_hit_on_equivalent_url(self, pipeline, engine, cache, principal):
        """Scenario A: query strings share one cache entry."""
        first = await pipeline.handle(_request(principal, "https://example.com/a?x=1"))

        assert not first.is_cache_hit
        assert engine.calls == ["https://example.com/a?x=1"]
        assert cache.get_entry("https://example.com/a") is not None
        assert first.cache_key == generate_cache_key("https://example.com/a")

        second = await pipeline.handle(_request(principal, "https://example.com/a?x=2"))

        assert second.is_cache_hit
        assert second.data == first.data
        assert len(engine.calls) == 1
        assert second.generation_time_ms == first.generation_time_ms

    @pytest.mark.asyncio
    async def test_domain_rejected_before_cache_or_generation(self, pipeline, engine, cache, limiter, principal):
        """Scenario B: nothing downstream is touched."""
        with pytest.raises(DomainNotAllowedError):
            await pipeline.handle(_request(principal, "https://other.com/a"))

        assert engine.calls == []
        assert cache.stats()["misses"] == 0
        assert len(limiter) == 0

    @pytest.mark.asyncio
    async def test_generation_limit_across_urls(self, pipeline, engine):
        """Scenario C: second miss in the window is refused."""
        principal = Principal(
            key_id="pk_one_gen",
            kind=PrincipalKind.STANDARD,
            name="one",
            allowed_domains=["example.com"],
            rate_limit=RateLimitConfig(requests=100, generations=1),
        )

        await pipeline.handle(_request(principal, "https://example.com/one"))
        with pytest.raises(RateLimitExceeded) as exc:
            await pipeline.handle(_request(principal, "https://example.com/two"))

        assert exc.value.retry_after > 0
        assert len(engine.calls) == 1

    @pytest.mark.asyncio
    async def test_hit_does_not_use_generation_budget(self, pipeline, engine):
        principal = Principal(
            key_id="pk_one_gen",
            kind=PrincipalKind.STANDARD,
            name="one",
            allowed_domains=["example.com"],
            rate_limit=RateLimitConfig(requests=100, generations=1),
        )
        await pipeline.handle(_request(principal, "https://example.com/one"))
        for _ in range(3):
            result = await pipeline.handle(_request(principal, "https://example.com/one/"))
            assert result.is_cache_hit


class TestValidation:

    @pytest.mark.asyncio
    async def test_malformed_url(self, pipeline, principal):
        with pytest.raises(InvalidInputError):
            await pipeline.handle(_request(principal, "not a url"))

    @pytest.mark.asyncio
    async def test_require_https(self, make_pipeline, engine, principal):
        pipeline = make_pipeline(engine, require_https=True)
        with pytest.raises(InvalidInputError):
            await pipeline.handle(_request(principal, "http://example.com/"))

    @pytest.mark.asyncio
    async def test_admin_any_domain(self, pipeline, admin_principal):
        result = await pipeline.handle(_request(admin_principal, "https://anything.net/page"))
        assert not result.is_cache_hit


class TestFailures:

    @pytest.mark.asyncio
    async def test_capture_failure_is_not_cached(self, make_pipeline, cache, principal):
        pipeline = make_pipeline(StubEngine(error=CaptureTimeout("timed out")))

        with pytest.raises(CaptureTimeout):
            await pipeline.handle(_request(principal, "https://example.com/slow"))

        assert cache.stats()["total_entries"] == 0

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_image(self, pipeline, cache, principal, monkeypatch):
        async def broken_put(*args, **kwargs):
            raise InternalError("Failed to write cache file")

        monkeypatch.setattr(cache, "put", broken_put)

        result = await pipeline.handle(_request(principal, "https://example.com/a"))

        assert result.data
        assert not result.is_cache_hit
        assert isinstance(result.cache_error, InternalError)


class TestConcurrency:

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_concurrent_misses_are_not_collapsed(self, make_pipeline, cache, principal):
        engine = StubEngine(delay=0.02)
        pipeline = make_pipeline(engine)

        results = await asyncio.gather(
            pipeline.handle(_request(principal, "https://example.com/same?a=1")),
            pipeline.handle(_request(principal, "https://example.com/same?a=2")),
        )

        assert len(engine.calls) == 2
        assert all(not r.is_cache_hit for r in results)
        assert cache.stats()["total_entries"] == 1

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_abandoned_request_still_caches(self, make_pipeline, cache, principal):
        engine = StubEngine(delay=0.05)
        pipeline = make_pipeline(engine)

        task = asyncio.create_task(pipeline.handle(_request(principal, "https://example.com/bye")))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await pipeline.drain()
        assert pipeline.pending_generations == 0
        assert cache.get_entry("https://example.com/bye") is not None
