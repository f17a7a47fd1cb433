# Auth router: current session user and logout.
# Created: 2026-10-19
#
# Login itself belongs to the external login UI, which calls
# SessionManager.create() and sets the cookie.

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from panelauth.api.deps import require_session, session_cookie_value
from panelauth.api.oauth2.models import LoginSession
from panelauth.api.routes.schemas.auth import CurrentUserResponse, LogoutResponse, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.get("/auth/user", response_model=CurrentUserResponse)
async def current_user(session: LoginSession = Depends(require_session)):
    """The user behind the session cookie."""
    from panelauth.users import get_user_directory

    user = get_user_directory().get_active(session.user_id)
    created_at = user.created_at if user else None
    return CurrentUserResponse(
        user=SessionUser(user_id=session.user_id, email=session.email, created_at=created_at)
    )


@router.post("/auth/logout", response_model=LogoutResponse)
async def logout(request: Request):
    """End the session and clear the cookie."""
    from panelauth.api.sessions import get_session_manager
    from panelauth.config import get_settings

    get_session_manager().destroy(session_cookie_value(request))

    response = JSONResponse(LogoutResponse().model_dump())
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    return response
