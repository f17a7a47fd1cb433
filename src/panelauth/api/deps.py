# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-19

from __future__ import annotations

from fastapi import HTTPException, Request

from panelauth.api.gate import Principal
from panelauth.api.oauth2.models import LoginSession


def session_cookie_value(request: Request) -> str | None:
    from panelauth.config import get_settings

    return request.cookies.get(get_settings().session_cookie_name)


def current_session(request: Request) -> LoginSession | None:
    from panelauth.api.sessions import get_session_manager

    return get_session_manager().resolve(session_cookie_value(request))


async def require_session(request: Request) -> LoginSession:
    """FastAPI dependency for routes behind the login cookie.

    Responds 401 (not a login redirect); these routes are called from scripts
    and the settings page alike.
    """
    session = current_session(request)
    if session is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return session


async def require_principal(request: Request) -> Principal:
    """FastAPI dependency for bearer-protected resources.

    Usage::

        @router.get("/things")
        async def things(principal: Principal = Depends(require_principal)): ...

    Accepts an OAuth access token or an API key in ``Authorization: Bearer``.
    """
    from panelauth.api.gate import get_access_gate

    return get_access_gate().authenticate(request.headers.get("Authorization"))
