"""
Key Store

Loads keys.json and resolves a presented secret to a Principal.

Public keys are compared in plain text (they are meant to be public and are
scoped by domain). Admin keys are stored as SHA-256 hashes. Every comparison
goes through timing_safe_compare.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from ..errors import ForbiddenError, UnauthorizedError
from .crypto import hash_key, timing_safe_compare
from .models import (
    AdminKeyRecord,
    KeyConfig,
    Principal,
    PrincipalKind,
    PublicKeyRecord,
    RateLimitConfig,
)

logger = logging.getLogger(__name__)

ADMIN_RATE_LIMIT = RateLimitConfig(requests=10000, generations=1000)

BEARER_PREFIX = "Bearer "


class KeyStore:
    """Resolves API keys to principals."""

    def __init__(self, config: KeyConfig):
        self._public: List[PublicKeyRecord] = [
            k for k in config.keys if isinstance(k, PublicKeyRecord)
        ]
        self._admin: List[AdminKeyRecord] = [
            k for k in config.keys if isinstance(k, AdminKeyRecord)
        ]
        logger.info(
            f"[Auth] Key store initialized: {len(self._public)} public, {len(self._admin)} admin keys"
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "KeyStore":
        """
        Load keys from a JSON file.

        Raises:
            RuntimeError: if the file is missing or malformed
        """
        keys_path = Path(path).resolve()
        try:
            with open(keys_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            config = KeyConfig.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"[Auth] Failed to load API keys from {keys_path}: {e}")
            raise RuntimeError(f"Could not load API keys from {path}") from e

        logger.info(f"[Auth] Loaded {len(config.keys)} API keys from {keys_path}")
        return cls(config)

    def authenticate(self, provided: Optional[str]) -> Principal:
        """
        Resolve a secret (optionally ``Bearer``-prefixed) to a principal.

        Raises:
            UnauthorizedError: missing, unknown or expired key
        """
        if not provided:
            raise UnauthorizedError("Missing API key")

        secret = provided[len(BEARER_PREFIX):] if provided.startswith(BEARER_PREFIX) else provided

        # Scan every record so timing does not depend on position
        public_match: Optional[PublicKeyRecord] = None
        for record in self._public:
            if timing_safe_compare(record.key_id, secret) and public_match is None:
                public_match = record

        provided_hash = hash_key(secret)
        admin_match: Optional[AdminKeyRecord] = None
        for record in self._admin:
            if timing_safe_compare(record.key_hash, provided_hash) and admin_match is None:
                admin_match = record

        if public_match is not None:
            principal = Principal(
                key_id=public_match.key_id,
                kind=PrincipalKind.STANDARD,
                name=public_match.name,
                allowed_domains=public_match.allowed_domains,
                rate_limit=public_match.rate_limit,
                expires_at=public_match.expires_at,
            )
            if principal.is_expired():
                logger.warning(f"[Auth] Expired key used: {public_match.name}")
                raise UnauthorizedError("API key expired")
            logger.debug(f"[Auth] Valid public key: {public_match.name}")
            return principal

        if admin_match is not None:
            logger.debug(f"[Auth] Valid admin key: {admin_match.name}")
            return Principal(
                # Never the raw secret: this id ends up in rate-limit scopes and logs
                key_id=f"admin:{admin_match.key_hash[:12]}",
                kind=PrincipalKind.ADMIN,
                name=admin_match.name,
                allowed_domains=[],
                rate_limit=ADMIN_RATE_LIMIT,
            )

        logger.warning(f"[Auth] Invalid API key attempted: {secret[:7]}...")
        raise UnauthorizedError("Invalid API key")

    def require_admin(self, provided: Optional[str]) -> Principal:
        """
        Authenticate and insist on an admin principal.

        Raises:
            UnauthorizedError: as authenticate()
            ForbiddenError: valid key that is not an admin key
        """
        principal = self.authenticate(provided)
        if not principal.is_admin:
            raise ForbiddenError("Admin key required")
        return principal
