"""
Screenshot Engine

Headless Chromium screenshots via Playwright. A fresh browser is launched for
every capture and always closed afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Protocol

from ..errors import CaptureEngineError, CaptureError, CaptureNetworkError, CaptureTimeout

logger = logging.getLogger(__name__)

USER_AGENT = "OGFrame/2.0 (Screenshot Bot; +https://github.com/eldtechnologies/ogframe)"

CHROMIUM_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--no-first-run",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-component-update",
    "--disable-default-apps",
    "--disable-domain-reliability",
    "--disable-hang-monitor",
    "--disable-notifications",
    "--disable-popup-blocking",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--hide-scrollbars",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-pings",
    "--password-store=basic",
    "--use-mock-keychain",
    # Lets autoplaying hero videos render their first frame
    "--autoplay-policy=no-user-gesture-required",
]


class ScreenshotEngine(Protocol):
    """Anything that can turn a URL into PNG bytes."""

    async def capture(self, url: str, width: int, height: int, timeout_ms: int) -> bytes:
        ...


def classify_failure(error: Exception, timeout_ms: int) -> CaptureError:
    """Map an engine exception onto the capture failure taxonomy."""
    if isinstance(error, CaptureError):
        return error

    message = str(error)
    if isinstance(error, asyncio.TimeoutError) or "timeout" in message.lower():
        return CaptureTimeout(f"Screenshot timed out after {timeout_ms}ms")
    if "net::ERR" in message:
        return CaptureNetworkError(f"Failed to load URL: {message}")
    return CaptureEngineError(
        "Screenshot generation failed",
        details={"original_error": message},
    )


class PlaywrightScreenshotEngine:
    """
    Captures viewport screenshots with Playwright's Chromium.

    Usage:
        engine = PlaywrightScreenshotEngine(settle_ms=1500)
        png = await engine.capture("https://example.com", 1200, 630, 30000)
    """

    def __init__(self, executable_path: Optional[str] = None, settle_ms: int = 1500):
        self.executable_path = executable_path
        self.settle_ms = settle_ms

    async def capture(self, url: str, width: int, height: int, timeout_ms: int) -> bytes:
        from playwright.async_api import async_playwright

        start = time.monotonic()
        browser = None
        page = None

        try:
            async with async_playwright() as p:
                try:
                    logger.debug(f"[Screenshot] Starting capture: {url}")
                    browser = await p.chromium.launch(
                        executable_path=self.executable_path,
                        headless=True,
                        args=CHROMIUM_ARGS,
                        timeout=timeout_ms,
                    )
                    context = await browser.new_context(
                        viewport={"width": width, "height": height},
                        device_scale_factor=1,
                        has_touch=False,
                        java_script_enabled=True,  # SPAs need it
                        bypass_csp=False,
                        ignore_https_errors=False,
                        user_agent=USER_AGENT,
                    )
                    page = await context.new_page()
                    page.set_default_timeout(timeout_ms)
                    page.set_default_navigation_timeout(timeout_ms)

                    await page.goto(url, wait_until="networkidle", timeout=timeout_ms)

                    # Initial render; videos with a poster show the poster
                    if self.settle_ms:
                        await page.wait_for_timeout(self.settle_ms)

                    screenshot = await page.screenshot(
                        type="png",
                        full_page=False,
                        clip={"x": 0, "y": 0, "width": width, "height": height},
                    )
                finally:
                    try:
                        if page is not None:
                            await page.close()
                        if browser is not None:
                            await browser.close()
                    except Exception as cleanup_error:
                        logger.warning(f"[Screenshot] Error during browser cleanup: {cleanup_error}")

        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error(f"[Screenshot] Capture failed for {url} after {duration_ms}ms: {e}")
            raise classify_failure(e, timeout_ms) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[Screenshot] Captured {url} in {duration_ms}ms ({len(screenshot)} bytes)")
        return screenshot


async def check_browser_installed(executable_path: Optional[str] = None) -> bool:
    """Return True if Chromium can be launched."""
    try:
        from playwright.async_api import async_playwright

        async with async_playwright() as p:
            browser = await p.chromium.launch(executable_path=executable_path, headless=True)
            await browser.close()
        return True
    except Exception as e:
        logger.error(f"[Screenshot] Playwright browser not available: {e}")
        return False
