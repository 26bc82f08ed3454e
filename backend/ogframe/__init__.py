"""
OGFrame

Self-hosted OG image service: screenshot a URL, cache it, serve it.

Modules:
- url_utils:   URL normalization, validation, domain matching
- image_cache: content-addressed on-disk screenshot cache
- rate_limit:  two-tier fixed-window rate limiter
- screenshot:  Playwright engine + bounded-concurrency coordinator
- auth:        API-key store
- pipeline:    request orchestration
"""

__version__ = "2.0.0"
