"""
URL Utilities

Normalization, admission validation and allow-list domain matching.
"""

from .domain_matcher import match_domain, matches_any, get_base_domain
from .normalizer import normalize_url, validate_url, BLOCKED_PORTS

__all__ = [
    "match_domain",
    "matches_any",
    "get_base_domain",
    "normalize_url",
    "validate_url",
    "BLOCKED_PORTS",
]
