"""
OGFrame Application

Builds the FastAPI app and wires fresh component instances onto app.state.
"""

import sys
import time
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .auth import KeyStore
from .config import Settings
from .errors import OGFrameError, RateLimitExceeded
from .image_cache import ScreenshotCacheManager
from .pipeline import RequestPipeline
from .rate_limit import RateLimiter
from .routes_fastapi import router
from .screenshot import (
    GenerationCoordinator,
    PlaywrightScreenshotEngine,
    ScreenshotEngine,
    check_browser_installed,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Attach one stdout handler to the ``ogframe`` logger."""
    package_logger = logging.getLogger("ogframe")
    package_logger.setLevel(level.upper())

    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        package_logger.addHandler(handler)

    # Avoid duplicate lines through the root logger
    package_logger.propagate = False


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[ScreenshotEngine] = None,
    key_store: Optional[KeyStore] = None,
    browser_check: Optional[Callable[[], Awaitable[bool]]] = None,
) -> FastAPI:
    """
    Build the app. Injected engines skip the browser check unless one is given.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if key_store is None:
        key_store = KeyStore.from_file(settings.api_keys_file)
    if engine is None:
        engine = PlaywrightScreenshotEngine(
            executable_path=settings.chromium_path,
            settle_ms=settings.settle_ms,
        )
        if browser_check is None:
            browser_check = partial(check_browser_installed, settings.chromium_path)

    cache = ScreenshotCacheManager(cache_dir=settings.cache_dir)
    limiter = RateLimiter(
        window_seconds=settings.rate_limit_window,
        ip_hit_limit=settings.ip_hit_limit,
        ip_miss_limit=settings.ip_miss_limit,
        sweep_interval=settings.sweep_interval_seconds,
    )
    coordinator = GenerationCoordinator(
        engine,
        max_concurrent=settings.max_concurrent_screenshots,
        width=settings.screenshot_width,
        height=settings.screenshot_height,
        timeout_ms=settings.screenshot_timeout_ms,
    )
    pipeline = RequestPipeline(
        cache,
        limiter,
        coordinator,
        require_https=settings.require_https,
        max_url_length=settings.max_url_length,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting OGFrame v{__version__} ({settings.environment})")
        if browser_check is not None:
            app.state.browser_available = await browser_check()
            if not app.state.browser_available:
                logger.warning("[Screenshot] Chromium could not be launched; cache misses will fail")
        await limiter.start()
        try:
            yield
        finally:
            logger.info("Shutting down OGFrame...")
            await limiter.stop()
            await pipeline.drain()

    app = FastAPI(title="OGFrame", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[API] {request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)")
        return response

    @app.exception_handler(OGFrameError)
    async def handle_ogframe_error(request: Request, exc: OGFrameError):
        logger.warning(f"[API] Request error: {exc.code} {exc.message}")
        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"[API] Unexpected error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    app.state.settings = settings
    app.state.key_store = key_store
    app.state.cache = cache
    app.state.limiter = limiter
    app.state.coordinator = coordinator
    app.state.pipeline = pipeline
    app.state.started_at = time.monotonic()
    # None until checked at startup
    app.state.browser_available = None

    app.include_router(router)
    return app
