"""FastAPI application for ``panelauth serve``.

Mounts the OAuth 2.1 endpoints, the well-known discovery documents, the API
key routes and the session routes.  The login UI, consent styling beyond the
built-in page and everything else user-facing live elsewhere and talk to this
app over HTTP or through ``SessionManager``.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def create_app():
    """Build the FastAPI application."""
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from panelauth import __version__
    from panelauth.api.oauth2.errors import OAuthError, oauth_error_handler
    from panelauth.api.routes import mount_routers
    from panelauth.config import get_settings

    settings = get_settings()

    app = FastAPI(
        title="panelauth",
        description="OAuth 2.1 authorization server with PKCE and API keys.",
        version=__version__,
    )

    # --- CORS -----------------------------------------------------------
    if settings.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.add_exception_handler(OAuthError, oauth_error_handler)

    @app.get("/healthz", tags=["Health"])
    async def healthz():
        return {"status": "ok"}

    mount_routers(app)
    return app


def run_api_server(
    host: str = "127.0.0.1",
    port: int = 8787,
    dev: bool = False,
) -> None:
    """Start the server with uvicorn."""
    import uvicorn

    from panelauth.config import get_settings

    settings = get_settings()
    logger.info("panelauth listening on http://%s:%d", host, port)
    if settings.credential_backend == "memory":
        logger.warning(
            "Credential store is in-memory: tokens and sessions are lost on restart "
            "and not shared between workers"
        )

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "panelauth.api.serve:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        uvicorn.run(create_app(), host=host, port=port, log_level=settings.log_level.lower())
