"""
URL Normalization & Validation

normalize_url() produces the canonical form used as cache-key input:
    https://Example.com/page/?ref=twitter#top  ->  https://example.com/page

validate_url() enforces admission rules against the URL as requested.
"""

import logging
from typing import Iterable, Optional
from urllib.parse import urlsplit, SplitResult

from ..errors import DomainNotAllowedError, InvalidInputError
from .domain_matcher import matches_any

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

DEFAULT_PORTS = {"http": 80, "https": 443}

DEFAULT_MAX_URL_LENGTH = 2048

# SSH, telnet, SMTP, MySQL, Postgres, Redis, MongoDB, Elasticsearch, memcached
BLOCKED_PORTS = frozenset({22, 23, 25, 3306, 5432, 6379, 27017, 9200, 11211})


def _parse(url: str) -> SplitResult:
    """Split a URL, raising InvalidInputError if it has no usable host."""
    if not url or not isinstance(url, str):
        raise InvalidInputError("Missing URL")

    try:
        parsed = urlsplit(url.strip())
        # Accessing .port validates it
        parsed.port
    except ValueError:
        raise InvalidInputError(f"Malformed URL: {url}")

    if not parsed.scheme or not parsed.hostname:
        raise InvalidInputError(f"Malformed URL: {url}")

    return parsed


def normalize_url(url: str) -> str:
    """
    Canonicalize a URL for caching.

    Scheme and host are lower-cased, query string and fragment are dropped,
    trailing slashes are stripped. Path case is kept, and so is a port unless
    it is the default for the scheme.
    """
    parsed = _parse(url)
    scheme = parsed.scheme.lower()

    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    if parsed.port is not None and parsed.port != DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parsed.port}"

    path = parsed.path.rstrip("/")
    return f"{scheme}://{host}{path}"


def validate_url(
    url: str,
    allowed_domains: Iterable[str],
    require_https: bool = False,
    max_length: int = DEFAULT_MAX_URL_LENGTH,
    is_admin: bool = False,
) -> None:
    """
    Check a requested URL against the admission rules.

    Raises:
        InvalidInputError: malformed, wrong scheme, too long or blocked port
        DomainNotAllowedError: host not covered by the caller's allow-list
    """
    parsed = _parse(url)
    scheme = parsed.scheme.lower()

    if scheme not in ALLOWED_SCHEMES:
        raise InvalidInputError("Only HTTP/HTTPS protocols allowed")

    if require_https and scheme != "https":
        raise InvalidInputError("Only HTTPS URLs allowed")

    if len(url) > max_length:
        raise InvalidInputError(f"URL too long (max {max_length} characters)")

    port: Optional[int] = parsed.port
    if port is not None and port in BLOCKED_PORTS:
        raise InvalidInputError(f"Port {port} not allowed")

    if is_admin:
        return

    allowed = list(allowed_domains)
    hostname = parsed.hostname
    if not matches_any(hostname, allowed):
        logger.debug(f"[URL] Domain {hostname} rejected")
        raise DomainNotAllowedError(hostname, allowed)
