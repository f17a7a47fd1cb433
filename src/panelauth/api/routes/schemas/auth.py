# Session auth schemas.
# Created: 2026-10-19

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SessionUser(BaseModel):
    user_id: str
    email: str
    created_at: datetime | None = None


class CurrentUserResponse(BaseModel):
    user: SessionUser


class LogoutResponse(BaseModel):
    success: bool = True
