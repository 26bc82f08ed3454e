"""
OGFrame Configuration

Environment-based settings with sensible defaults. Integer values are
clamped into a safe range; bad values fall back to the default.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


def _env_int(key: str, default: int, minimum: int, maximum: int) -> int:
    value = os.getenv(key)
    if not value:
        return default

    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"[Config] Invalid {key}: {value}, using default: {default}")
        return default

    clamped = min(max(parsed, minimum), maximum)
    if clamped != parsed:
        logger.warning(f"[Config] {key} out of range ({minimum}-{maximum}), clamped to: {clamped}")
    return clamped


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """Runtime configuration for the service."""
    # Service
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Cache
    cache_dir: str = "./cache"

    # Screenshot
    screenshot_timeout_ms: int = 30000
    screenshot_width: int = 1200
    screenshot_height: int = 630
    settle_ms: int = 1500
    max_concurrent_screenshots: int = 3
    chromium_path: Optional[str] = None

    # Security
    api_keys_file: str = "./config/keys.json"
    require_https: bool = False
    max_url_length: int = 2048

    # Rate limiting
    rate_limit_window: int = 60
    ip_hit_limit: int = 2000        # Cache hits are cheap
    ip_miss_limit: int = 50         # Generations are not
    sweep_interval_seconds: int = 60

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            environment=os.getenv("OGFRAME_ENV", "development"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000, 1024, 65535),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cache_dir=os.getenv("CACHE_DIR", "./cache"),
            screenshot_timeout_ms=_env_int("SCREENSHOT_TIMEOUT", 30000, 5000, 60000),
            screenshot_width=_env_int("SCREENSHOT_WIDTH", 1200, 100, 2400),
            screenshot_height=_env_int("SCREENSHOT_HEIGHT", 630, 100, 1260),
            settle_ms=_env_int("SCREENSHOT_SETTLE_MS", 1500, 0, 10000),
            max_concurrent_screenshots=_env_int("MAX_CONCURRENT_SCREENSHOTS", 3, 1, 10),
            chromium_path=os.getenv("CHROMIUM_PATH") or None,
            api_keys_file=os.getenv("API_KEYS_FILE", "./config/keys.json"),
            require_https=_env_bool("REQUIRE_HTTPS", False),
            max_url_length=_env_int("MAX_URL_LENGTH", 2048, 100, 4096),
            rate_limit_window=_env_int("RATE_LIMIT_WINDOW", 60, 10, 3600),
            ip_hit_limit=_env_int("IP_HIT_LIMIT", 2000, 1, 100000),
            ip_miss_limit=_env_int("IP_MISS_LIMIT", 50, 1, 10000),
            sweep_interval_seconds=_env_int("RATE_LIMIT_SWEEP_INTERVAL", 60, 1, 3600),
        )
