"""
Screenshot Cache Manager

Content-addressed, file-based cache for generated screenshots:
- Keyed by SHA-256 of the canonical URL
- Metadata index persisted to disk on every mutation
- No TTL and no eviction: entries leave only via delete/purge
- Self-healing: an index entry whose image file is gone is evicted on read
"""

import os
import json
import time
import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, asdict

from ..errors import InternalError

logger = logging.getLogger(__name__)

TOP_ENTRIES_LIMIT = 10

# Keys hash onto a fixed set of locks so the lock table never grows
LOCK_STRIPES = 256


def generate_cache_key(normalized_url: str) -> str:
    """Derive the storage address of a canonical URL."""
    return hashlib.sha256(normalized_url.encode("utf-8")).hexdigest()


def format_bytes(size: int) -> str:
    """Format a byte count as a human-readable string."""
    if size <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {units[index]}"


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class CacheEntry:
    """Metadata for a cached screenshot."""
    url: str                    # URL as first requested
    normalized_url: str
    cache_key: str
    file_path: str              # Relative to the cache directory
    size_bytes: int
    created_at: float
    last_accessed: float
    access_count: int
    generation_time_ms: int


class ScreenshotCacheManager:
    """
    Manages the on-disk screenshot cache.

    Cache structure:
    cache_dir/
    ├── images/
    │   ├── a1/
    │   │   └── a1b2c3...e5f6.png
    │   └── ...
    └── metadata.json
    """

    def __init__(self, cache_dir: str = "./cache"):
        self.cache_dir = Path(cache_dir)
        self.images_dir = self.cache_dir / "images"
        self.metadata_file = self.cache_dir / "metadata.json"

        # In-memory copy of the index; metadata.json is the source of truth
        self._metadata: Dict[str, CacheEntry] = {}
        self._locks: List[asyncio.Lock] = [asyncio.Lock() for _ in range(LOCK_STRIPES)]

        # Running counters since process start
        self._hits = 0
        self._misses = 0

        self._init_cache_dir()
        self._load_metadata()

    def _init_cache_dir(self) -> None:
        """Create cache directories if they don't exist."""
        self.images_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[ImageCache] Cache directory: {self.cache_dir}")

    def _load_metadata(self) -> None:
        """Load the index from disk, starting empty if it is absent or unreadable."""
        if not self.metadata_file.exists():
            self._metadata = {}
            self._save_metadata()
            logger.info("[ImageCache] Initialized new cache metadata")
            return

        try:
            with open(self.metadata_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"index must be a JSON object, got {type(data).__name__}")
            self._metadata = {k: CacheEntry(**v) for k, v in data.items()}
            logger.info(f"[ImageCache] Loaded {len(self._metadata)} cached entries")
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"[ImageCache] Failed to load metadata: {e}")
            self._metadata = {}

    def _save_metadata(self) -> None:
        """
        Persist the index atomically.

        Written to a temp file, fsynced, then renamed over metadata.json so a
        reader never sees a half-written index.
        """
        data = {k: asdict(v) for k, v in self._metadata.items()}
        tmp_file = self.metadata_file.with_suffix(".json.tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, self.metadata_file)

    def _lock_for(self, cache_key: str) -> asyncio.Lock:
        return self._locks[hash(cache_key) % LOCK_STRIPES]

    def _relative_path(self, cache_key: str) -> str:
        # First two hex chars as a subdirectory to avoid one huge directory
        return f"images/{cache_key[:2]}/{cache_key}.png"

    def _resolve(self, entry: CacheEntry) -> Path:
        return self.cache_dir / entry.file_path

    def _unlink(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.error(f"[ImageCache] Failed to remove file {path}: {e}")

    def _remove_entry(self, cache_key: str) -> Optional[CacheEntry]:
        """Remove an entry's file and index record (caller persists the index)."""
        entry = self._metadata.pop(cache_key, None)
        if entry:
            self._unlink(self._resolve(entry))
        return entry

    def _restore(self, cache_key: str, previous: Optional[CacheEntry]) -> None:
        """Put back the in-memory record that was there before a failed write."""
        if previous is None:
            self._metadata.pop(cache_key, None)
        else:
            self._metadata[cache_key] = previous

    async def get(self, normalized_url: str) -> Optional[Tuple[bytes, CacheEntry]]:
        """
        Get a cached screenshot by canonical URL.

        Returns:
            Tuple of (image_data, entry) on a hit, None on a miss.
            I/O problems are reported as a miss and the stale entry is evicted.
        """
        cache_key = generate_cache_key(normalized_url)

        async with self._lock_for(cache_key):
            entry = self._metadata.get(cache_key)

            if entry is None:
                self._misses += 1
                return None

            cache_path = self._resolve(entry)
            if not cache_path.exists():
                logger.warning(f"[ImageCache] Metadata exists but file missing: {normalized_url} ({cache_key})")
                self._evict(cache_key)
                self._misses += 1
                return None

            try:
                data = cache_path.read_bytes()
            except OSError as e:
                logger.error(f"[ImageCache] Failed to read cached image {cache_key}: {e}")
                self._evict(cache_key)
                self._misses += 1
                return None

            entry.last_accessed = time.time()
            entry.access_count += 1
            try:
                self._save_metadata()
            except OSError as e:
                logger.error(f"[ImageCache] Failed to save metadata after hit: {e}")

            self._hits += 1
            logger.debug(f"[ImageCache] Cache hit: {normalized_url} (access_count={entry.access_count})")
            return data, entry

    def _evict(self, cache_key: str) -> None:
        self._remove_entry(cache_key)
        try:
            self._save_metadata()
        except OSError as e:
            logger.error(f"[ImageCache] Failed to save metadata after eviction: {e}")

    async def put(
        self,
        url: str,
        normalized_url: str,
        data: bytes,
        generation_time_ms: int,
    ) -> CacheEntry:
        """
        Store a screenshot, replacing any previous image for the same key.

        The image is staged in a temp file and only moved into place once the
        index has been saved. On any failure the previous entry and image are
        left as they were.

        Raises:
            InternalError: if the image or the index could not be written
        """
        cache_key = generate_cache_key(normalized_url)
        relative_path = self._relative_path(cache_key)

        async with self._lock_for(cache_key):
            cache_path = self.cache_dir / relative_path
            tmp_path = cache_path.with_suffix(".png.tmp")
            try:
                cache_path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "wb") as f:
                    f.write(data)
            except OSError as e:
                logger.error(f"[ImageCache] Failed to write cache file for {url}: {e}")
                self._unlink(tmp_path)
                raise InternalError("Failed to write cache file") from e

            previous = self._metadata.get(cache_key)
            now = time.time()
            entry = CacheEntry(
                url=url,
                normalized_url=normalized_url,
                cache_key=cache_key,
                file_path=relative_path,
                size_bytes=len(data),
                created_at=now,
                last_accessed=now,
                access_count=1,
                generation_time_ms=generation_time_ms,
            )
            self._metadata[cache_key] = entry

            try:
                self._save_metadata()
            except OSError as e:
                logger.error(f"[ImageCache] Failed to save metadata for {url}: {e}")
                self._restore(cache_key, previous)
                self._unlink(tmp_path)
                raise InternalError("Failed to save cache metadata") from e

            try:
                os.replace(tmp_path, cache_path)
            except OSError as e:
                logger.error(f"[ImageCache] Failed to move cache file into place for {url}: {e}")
                self._restore(cache_key, previous)
                self._unlink(tmp_path)
                try:
                    self._save_metadata()
                except OSError as save_error:
                    logger.error(f"[ImageCache] Failed to roll back metadata for {url}: {save_error}")
                raise InternalError("Failed to write cache file") from e

        logger.info(f"[ImageCache] Saved: {url} ({cache_key[:12]}, {len(data)} bytes, {generation_time_ms}ms)")
        return entry

    def get_entry(self, normalized_url: str) -> Optional[CacheEntry]:
        """Look up metadata without counting an access."""
        return self._metadata.get(generate_cache_key(normalized_url))

    async def delete(self, cache_key: str) -> bool:
        """
        Delete one entry by cache key.

        Returns:
            True if an entry existed.
        """
        async with self._lock_for(cache_key):
            entry = self._metadata.pop(cache_key, None)
            if entry is None:
                return False
            try:
                self._save_metadata()
            except OSError as e:
                logger.error(f"[ImageCache] Failed to save metadata after delete: {e}")
                self._metadata[cache_key] = entry
                raise InternalError("Failed to save cache metadata") from e

            # Only once the index no longer points at it
            self._unlink(self._resolve(entry))

        logger.info(f"[ImageCache] Deleted: {entry.url} ({cache_key[:12]})")
        return True

    async def purge(self) -> int:
        """
        Delete every entry.

        Returns:
            Number of entries removed.

        Raises:
            InternalError: if the emptied index could not be saved; nothing is
                removed in that case
        """
        # No await between swapping and saving, so no put can interleave
        removed = self._metadata
        self._metadata = {}
        try:
            self._save_metadata()
        except OSError as e:
            logger.error(f"[ImageCache] Failed to save metadata after purge: {e}")
            self._metadata = removed
            raise InternalError("Failed to save cache metadata") from e

        for entry in removed.values():
            self._unlink(self._resolve(entry))

        logger.info(f"[ImageCache] Purged {len(removed)} entries")
        return len(removed)

    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    def stats(self) -> dict:
        """Get cache statistics."""
        entries: List[CacheEntry] = list(self._metadata.values())
        total_size = sum(e.size_bytes for e in entries)

        oldest = min((e.created_at for e in entries), default=None)
        newest = max((e.created_at for e in entries), default=None)

        top = sorted(entries, key=lambda e: e.access_count, reverse=True)[:TOP_ENTRIES_LIMIT]

        return {
            "total_entries": len(entries),
            "total_size_bytes": total_size,
            "total_size": format_bytes(total_size),
            "oldest_created_at": _iso(oldest) if oldest is not None else None,
            "newest_created_at": _iso(newest) if newest is not None else None,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self.hit_rate(), 4),
            "top_entries": [
                {
                    "url": e.url,
                    "cache_key": e.cache_key,
                    "hits": e.access_count,
                    "size": format_bytes(e.size_bytes),
                }
                for e in top
            ],
        }
