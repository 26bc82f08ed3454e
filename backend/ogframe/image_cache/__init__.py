"""
Screenshot Cache Module

Content-addressed, file-based cache of generated screenshots:
- SHA-256 cache keys over canonical URLs
- Persistent metadata index with hit/access tracking
- Self-healing on missing image files
"""

from .cache_manager import ScreenshotCacheManager, CacheEntry, generate_cache_key, format_bytes

__all__ = ["ScreenshotCacheManager", "CacheEntry", "generate_cache_key", "format_bytes"]
