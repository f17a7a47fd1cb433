# OAuth2 router: authorize, token, userinfo, revoke, discovery.
# Created: 2026-10-19

from __future__ import annotations

import asyncio
import base64
import binascii
import html
import logging
from urllib.parse import unquote_plus, urlencode

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from panelauth.api.oauth2.errors import OAuthError
from panelauth.api.routes.schemas.oauth2 import (
    AuthorizationServerMetadata,
    ProtectedResourceMetadata,
    TokenResponse,
    UserInfoResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}
_PUBLIC_CACHE = {"Cache-Control": "public, max-age=3600"}

_CONSENT_HTML = """<!DOCTYPE html>
<html><head><title>Authorize {client_name}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<style>
body {{ font-family: system-ui; max-width: 480px; margin: 40px auto; padding: 20px; }}
.btn {{ padding: 10px 24px; border: none; border-radius: 6px; cursor: pointer; font-size: 16px; }}
.approve {{ background: #2563eb; color: white; }} .approve:hover {{ background: #1d4ed8; }}
.deny {{ background: #e5e7eb; color: #374151; margin-right: 12px; }}
h2 {{ margin-bottom: 8px; }}
.permissions {{ background: #f3f4f6; padding: 12px; border-radius: 8px; margin: 16px 0; }}
.permission-item {{ padding: 4px 0; }}
.user {{ color: #6b7280; font-size: 14px; }}
</style></head><body>
<h2>{client_name} wants access to your account</h2>
<p class="user">Signed in as {email}</p>
<div class="permissions"><strong>This application will be able to:</strong>{permissions}</div>
<form method="POST" action="{action}">
<button type="submit" name="approved" value="false" class="btn deny">Deny</button>
<button type="submit" name="approved" value="true" class="btn approve">Approve</button>
</form></body></html>"""


def _redirect_with(redirect_uri: str, params: dict[str, str]) -> RedirectResponse:
    separator = "&" if "?" in redirect_uri else "?"
    return RedirectResponse(f"{redirect_uri}{separator}{urlencode(params)}", status_code=302)


def _base_url(request: Request) -> str:
    from panelauth.config import get_settings

    return get_settings().base_url or str(request.base_url).rstrip("/")


def _client_credentials(request: Request, form) -> tuple[str | None, str | None]:
    """client_secret_basic header first, then client_secret_post form fields."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() == "basic" and encoded:
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise OAuthError("invalid_client", "Malformed Basic credentials", status_code=401)
        client_id, sep, client_secret = decoded.partition(":")
        if not sep:
            raise OAuthError("invalid_client", "Malformed Basic credentials", status_code=401)
        return unquote_plus(client_id), unquote_plus(client_secret)

    client_id = form.get("client_id")
    client_secret = form.get("client_secret")
    return (
        str(client_id) if client_id is not None else None,
        str(client_secret) if client_secret is not None else None,
    )


@router.api_route("/oauth/authorize", methods=["GET", "POST"])
async def authorize(request: Request):
    """Consent screen (GET) and code issuance (POST) for the PKCE flow."""
    from panelauth.api.deps import current_session
    from panelauth.api.oauth2.clients import describe_scope
    from panelauth.api.oauth2.server import get_oauth_server
    from panelauth.config import get_settings

    params = request.query_params
    server = get_oauth_server()
    auth_request = server.validate_authorize_request(
        client_id=params.get("client_id"),
        redirect_uri=params.get("redirect_uri"),
        response_type=params.get("response_type"),
        scope=params.get("scope"),
        state=params.get("state"),
        code_challenge=params.get("code_challenge"),
        code_challenge_method=params.get("code_challenge_method"),
    )

    action = request.url.path + (f"?{request.url.query}" if request.url.query else "")

    session = current_session(request)
    if session is None:
        login_url = get_settings().login_url
        separator = "&" if "?" in login_url else "?"
        return RedirectResponse(
            f"{login_url}{separator}{urlencode({'return_to': action})}", status_code=302
        )

    if request.method == "GET":
        permissions = "".join(
            f'<div class="permission-item">{html.escape(describe_scope(s))}</div>'
            for s in auth_request.scopes
        )
        page = _CONSENT_HTML.format(
            client_name=html.escape(auth_request.client.client_name),
            email=html.escape(session.email),
            permissions=permissions,
            action=html.escape(action, quote=True),
        )
        return HTMLResponse(page, headers={"Cache-Control": "no-store"})

    form = await request.form()
    if form.get("approved") != "true":
        denied = {"error": "access_denied", "state": auth_request.state or ""}
        logger.info("User %s denied client %s", session.user_id, auth_request.client.client_id)
        return _redirect_with(auth_request.redirect_uri, denied)

    code = server.issue_code(auth_request, session.user_id)
    return _redirect_with(
        auth_request.redirect_uri, {"code": code, "state": auth_request.state or ""}
    )


@router.post("/oauth/token", response_model=TokenResponse)
async def token_exchange(request: Request):
    """Exchange an authorization code or refresh token for a token pair."""
    from panelauth.api.oauth2.server import get_oauth_server

    form = await request.form()
    grant_type = form.get("grant_type")
    if grant_type not in ("authorization_code", "refresh_token"):
        raise OAuthError(
            "unsupported_grant_type", "grant_type must be authorization_code or refresh_token"
        )

    client_id, client_secret = _client_credentials(request, form)
    server = get_oauth_server()

    if grant_type == "refresh_token":
        token = await asyncio.to_thread(
            server.refresh,
            refresh_token=form.get("refresh_token"),
            client_id=client_id,
            client_secret=client_secret,
        )
    else:
        token = await asyncio.to_thread(
            server.exchange,
            code=form.get("code"),
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=form.get("redirect_uri"),
            code_verifier=form.get("code_verifier"),
        )

    body = TokenResponse.model_validate(token.to_response())
    return JSONResponse(body.model_dump(), headers=_NO_STORE)


@router.get("/oauth/userinfo", response_model=UserInfoResponse)
def userinfo(request: Request):
    """Identity of the bearer (OAuth access token or API key)."""
    from panelauth.api.gate import get_access_gate

    principal = get_access_gate().authenticate(request.headers.get("Authorization"))
    return UserInfoResponse(sub=principal.user_id, email=principal.email)


@router.post("/oauth/revoke")
async def revoke_token(request: Request):
    """RFC 7009 revocation.  200 whether or not the token existed."""
    from sqlalchemy.exc import SQLAlchemyError

    from panelauth.api.oauth2.server import get_oauth_server
    from panelauth.api.oauth2.storage import CredentialStoreError

    form = await request.form()
    token = form.get("token")
    if not token:
        raise OAuthError("invalid_request", "token parameter is required")

    hint = form.get("token_type_hint")
    try:
        await asyncio.to_thread(get_oauth_server().revoke, str(token), str(hint) if hint else None)
    except (CredentialStoreError, SQLAlchemyError):
        logger.exception("Token revocation failed")
        raise OAuthError(
            "temporarily_unavailable", "The server is temporarily unable to handle the request", 503
        )

    return Response(status_code=200, headers=_NO_STORE)


@router.get("/.well-known/oauth-authorization-server")
async def authorization_server_metadata(request: Request):
    """RFC 8414 metadata.  No registration_endpoint: clients are static."""
    from panelauth.api.oauth2.clients import get_client_registry

    base = _base_url(request)
    metadata = AuthorizationServerMetadata(
        issuer=base,
        authorization_endpoint=f"{base}/oauth/authorize",
        token_endpoint=f"{base}/oauth/token",
        userinfo_endpoint=f"{base}/oauth/userinfo",
        revocation_endpoint=f"{base}/oauth/revoke",
        scopes_supported=get_client_registry().supported_scopes(),
    )
    return JSONResponse(metadata.model_dump(), headers=_PUBLIC_CACHE)


@router.get("/.well-known/oauth-protected-resource")
async def protected_resource_metadata(request: Request):
    base = _base_url(request)
    metadata = ProtectedResourceMetadata(resource=base, authorization_servers=[base])
    return JSONResponse(metadata.model_dump(), headers=_PUBLIC_CACHE)
