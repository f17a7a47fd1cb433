# OAuth2 error type and its FastAPI rendering.
# Created: 2026-10-19

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """Protocol error rendered as ``{"error", "error_description"}``."""

    def __init__(self, error: str, description: str = "", status_code: int = 400):
        super().__init__(f"{error}: {description}" if description else error)
        self.error = error
        self.description = description
        self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


def invalid_token(description: str = "The access token is invalid or expired") -> OAuthError:
    return OAuthError("invalid_token", description, status_code=401)


def invalid_grant(description: str) -> OAuthError:
    return OAuthError("invalid_grant", description)


def invalid_client(description: str = "Client authentication failed") -> OAuthError:
    return OAuthError("invalid_client", description, status_code=401)


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    headers = {"Cache-Control": "no-store"}
    if exc.error == "invalid_token":
        headers["WWW-Authenticate"] = 'Bearer error="invalid_token"'
    logger.debug("%s %s -> %s (%s)", request.method, request.url.path, exc.error, exc.description)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
