# Router aggregation.
# Created: 2026-10-19
#
# mount_routers(app) registers every domain router at the root: the OAuth
# endpoints and well-known documents have fixed paths that clients expect.

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Domain routers, imported lazily inside mount_routers() to avoid circular imports.
_ROUTERS: list[tuple[str, str, str]] = [
    # (module_path, attr_name, tag)
    ("panelauth.api.routes.oauth2", "router", "OAuth2"),
    ("panelauth.api.routes.api_keys", "router", "API Keys"),
    ("panelauth.api.routes.auth", "router", "Auth"),
]


def mount_routers(app: FastAPI) -> None:
    """Mount all domain routers on *app*.

    Unlike optional feature routers, these are the whole service: an import
    failure propagates.
    """
    for module_path, attr_name, tag in _ROUTERS:
        mod = importlib.import_module(module_path)
        app.include_router(getattr(mod, attr_name))
        logger.debug("Mounted router: %s (%s)", module_path, tag)
