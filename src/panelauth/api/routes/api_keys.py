# API keys router: create, list and revoke the caller's long-lived keys.
# Created: 2026-10-19
#
# All routes sit behind the login session cookie and act on the session user.

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from panelauth.api.deps import require_session
from panelauth.api.oauth2.models import LoginSession
from panelauth.api.routes.schemas.api_keys import (
    APIKeyCreatedRecord,
    APIKeyCreatedResponse,
    APIKeyInfo,
    APIKeyListResponse,
    APIKeyRevokedResponse,
    CreateKeyRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API Keys"])

_FIELD_MESSAGES = {
    "name": "Name is required and must be 100 characters or less",
    "expiresInDays": "Expiration must be between 1 and 3650 days",
}


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _validation_message(exc: ValidationError) -> str:
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else ""
        if field in _FIELD_MESSAGES:
            return _FIELD_MESSAGES[field]
    return "Invalid request body"


@router.post("/api/keys/create", status_code=201, response_model=APIKeyCreatedResponse)
async def create_api_key(request: Request, session: LoginSession = Depends(require_session)):
    """Create a new API key. The plaintext key is returned only once."""
    from panelauth.api.api_keys import APIKeyQuotaError, get_api_key_manager

    try:
        body = CreateKeyRequest.model_validate(await request.json())
    except json.JSONDecodeError:
        return _failure(400, "Invalid JSON body")
    except ValidationError as e:
        return _failure(400, _validation_message(e))

    manager = get_api_key_manager()

    def _create():
        manager.check_quota(session.user_id)
        return manager.create(
            user_id=session.user_id,
            name=body.name,
            expires_in_days=body.expires_in_days,
        )

    try:
        record, plaintext = await asyncio.to_thread(_create)
    except APIKeyQuotaError as e:
        return _failure(400, str(e))
    except Exception:
        logger.exception("Failed to create API key for user %s", session.user_id)
        return _failure(500, "Failed to create API key")

    return APIKeyCreatedResponse(
        api_key=plaintext,
        record=APIKeyCreatedRecord(
            api_key_id=record.api_key_id,
            key_prefix=record.key_prefix,
            name=record.name,
            created_at=record.created_at,
            expires_at=record.expires_at,
            is_active=record.is_active,
        ),
    )


@router.get("/api/keys/list", response_model=APIKeyListResponse)
def list_api_keys(session: LoginSession = Depends(require_session)):
    """List the caller's API keys, newest first (no secrets exposed)."""
    from panelauth.api.api_keys import get_api_key_manager

    try:
        keys = get_api_key_manager().list_keys(session.user_id)
    except Exception:
        logger.exception("Failed to list API keys for user %s", session.user_id)
        return _failure(500, "Failed to list API keys")

    return APIKeyListResponse(
        keys=[
            APIKeyInfo(
                api_key_id=k.api_key_id,
                key_prefix=k.key_prefix,
                name=k.name,
                created_at=k.created_at,
                last_used_at=k.last_used_at,
                expires_at=k.expires_at,
                is_active=k.is_active,
            )
            for k in keys
        ]
    )


@router.delete("/api/keys/{api_key_id}", response_model=APIKeyRevokedResponse)
def revoke_api_key(api_key_id: str, session: LoginSession = Depends(require_session)):
    """Revoke one of the caller's API keys."""
    from panelauth.api.api_keys import get_api_key_manager

    try:
        revoked = get_api_key_manager().revoke(api_key_id, session.user_id)
    except Exception:
        logger.exception("Failed to revoke API key %s", api_key_id)
        return _failure(500, "Failed to revoke API key")

    if not revoked:
        return _failure(404, "API key not found or not owned by you")
    return APIKeyRevokedResponse()
