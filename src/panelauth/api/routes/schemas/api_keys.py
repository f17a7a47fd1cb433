# API key schemas.
# Created: 2026-10-19

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CreateKeyRequest(BaseModel):
    """Create a new API key."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    expires_in_days: int | None = Field(
        default=None, alias="expiresInDays", ge=1, le=3650, strict=True
    )


class APIKeyInfo(BaseModel):
    """API key info (no secrets)."""

    api_key_id: str
    key_prefix: str
    name: str
    created_at: datetime
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool = True


class APIKeyCreatedRecord(BaseModel):
    api_key_id: str
    key_prefix: str
    name: str
    created_at: datetime
    expires_at: datetime | None = None
    is_active: bool = True


class APIKeyCreatedResponse(BaseModel):
    """Response when a new API key is created; plaintext shown once."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    api_key: str = Field(..., serialization_alias="apiKey")  # Full plaintext, shown once
    record: APIKeyCreatedRecord


class APIKeyListResponse(BaseModel):
    success: bool = True
    keys: list[APIKeyInfo]


class APIKeyRevokedResponse(BaseModel):
    success: bool = True
    message: str = "API key revoked successfully"
