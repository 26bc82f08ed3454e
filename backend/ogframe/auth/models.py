"""
Auth Models

Pydantic models for the keys file and the resolved principal.
"""

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================
# Enums
# ============================================

class PrincipalKind(str, Enum):
    """Who is calling"""
    STANDARD = "public"
    ADMIN = "admin"


# ============================================
# Keys File Models
# ============================================

class RateLimitConfig(BaseModel):
    """Per-window thresholds"""
    requests: int = Field(1000, ge=1, description="Total requests per window")
    generations: int = Field(10, ge=1, description="New screenshots per window")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PublicKeyRecord(BaseModel):
    """A domain-scoped key, stored in plain text (it ships in frontend code)"""
    model_config = ConfigDict(populate_by_name=True)

    key_id: str = Field(..., alias="keyId")
    type: Literal["public"]
    name: str
    allowed_domains: List[str] = Field(default_factory=list, alias="allowedDomains")
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig, alias="rateLimit")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    @field_validator("allowed_domains")
    @classmethod
    def _lowercase_domains(cls, value: List[str]) -> List[str]:
        return [pattern.strip().lower() for pattern in value if pattern.strip()]

    @field_validator("created_at", "expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class AdminKeyRecord(BaseModel):
    """An administrative key, stored only as its SHA-256 hash"""
    model_config = ConfigDict(populate_by_name=True)

    key_hash: str = Field(..., alias="keyHash")
    type: Literal["admin"]
    name: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @field_validator("key_hash")
    @classmethod
    def _lowercase_hash(cls, value: str) -> str:
        return value.strip().lower()


KeyRecord = Annotated[Union[PublicKeyRecord, AdminKeyRecord], Field(discriminator="type")]


class KeyConfig(BaseModel):
    """Contents of keys.json"""
    keys: List[KeyRecord] = Field(default_factory=list)


# ============================================
# Principal
# ============================================

class Principal(BaseModel):
    """An authenticated caller"""
    key_id: str
    kind: PrincipalKind
    name: str
    allowed_domains: List[str] = Field(default_factory=list)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.kind == PrincipalKind.ADMIN

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return _as_utc(self.expires_at) < now
