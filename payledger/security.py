# payledger/security.py
"""Security dependency guarding the admin routes with the configured API key."""
from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Header, HTTPException, status

from payledger.config import Settings, get_settings
from payledger.utils.errors import error_response

logger = logging.getLogger(__name__)


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Récupère la clé depuis Authorization: Bearer ... ou X-API-Key."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_api_key(
    token: str | None = Depends(_extract_key),
    settings: Settings = Depends(get_settings),
) -> str:
    """Validate the admin key and return the actor label used in audit fields."""
    expected = settings.ADMIN_API_KEY
    if not expected:
        logger.error("Admin API key is not configured; admin routes are locked")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("ADMIN_KEY_NOT_CONFIGURED", "Admin API key is not configured."),
        )

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_API_KEY", "API key required."),
        )

    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Invalid admin API key presented")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid API key"),
        )
    return "admin"


__all__ = ["require_api_key"]
