"""
Auth Module

API-key authentication: domain-scoped public keys and hashed admin keys.
"""

from .models import Principal, PrincipalKind, RateLimitConfig, KeyConfig, PublicKeyRecord, AdminKeyRecord
from .key_store import KeyStore
from .crypto import hash_key, timing_safe_compare, generate_api_key

__all__ = [
    "Principal",
    "PrincipalKind",
    "RateLimitConfig",
    "KeyConfig",
    "PublicKeyRecord",
    "AdminKeyRecord",
    "KeyStore",
    "hash_key",
    "timing_safe_compare",
    "generate_api_key",
]
