"""
Screenshot Module

Playwright-based capture engine and the bounded-concurrency coordinator that
gates calls into it.
"""

from .engine import (
    ScreenshotEngine,
    PlaywrightScreenshotEngine,
    check_browser_installed,
    classify_failure,
)
from .coordinator import GenerationCoordinator

__all__ = [
    "ScreenshotEngine",
    "PlaywrightScreenshotEngine",
    "check_browser_installed",
    "classify_failure",
    "GenerationCoordinator",
]
