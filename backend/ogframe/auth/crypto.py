"""
Key hashing, timing-safe comparison and key generation.
"""

import hmac
import hashlib
import secrets

KEY_PREFIXES = {"public": "pk", "admin": "ak"}


def hash_key(key: str) -> str:
    """SHA-256 hex digest of a key (how admin keys are stored)."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def timing_safe_compare(a: str, b: str) -> bool:
    """
    Compare two secrets in constant time.

    Both sides are hashed first so the comparison always runs over two
    32-byte digests, whatever the input lengths.
    """
    digest_a = hashlib.sha256(a.encode("utf-8")).digest()
    digest_b = hashlib.sha256(b.encode("utf-8")).digest()
    return hmac.compare_digest(digest_a, digest_b)


def generate_api_key(kind: str = "public") -> str:
    """Generate a new random key, e.g. ``pk_live_3xS...``."""
    prefix = KEY_PREFIXES[kind]
    return f"{prefix}_live_{secrets.token_urlsafe(24)[:32]}"
