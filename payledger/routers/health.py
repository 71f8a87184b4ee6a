"""Health check endpoint."""
from __future__ import annotations

import hashlib
import logging

from fastapi import APIRouter
from sqlalchemy import text

from payledger.config import Settings, get_settings
from payledger.db import get_engine

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _secret_status(primary: str | None, secondary: str | None) -> str:
    if primary and secondary:
        return "ok"
    if primary or secondary:
        return "partial"
    return "missing"


def _db_status() -> str:
    """Return 'ok' if the DB is reachable, 'error' otherwise."""

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("DB health check failed")
        return "error"


def _secret_fingerprints(settings: Settings) -> dict[str, str | None]:
    def _fp(value: str | None) -> str | None:
        if not value:
            return None
        return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]

    return {
        "primary": _fp(settings.webhook_secret),
        "next": _fp(settings.webhook_secret_next),
    }


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    """Return service health plus webhook and refund configuration markers."""

    settings = get_settings()
    db_status = _db_status()
    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "env": settings.app_env,
        "db_status": db_status,
        "webhook_configured": bool(settings.webhook_secrets),
        "webhook_secret_status": _secret_status(settings.webhook_secret, settings.webhook_secret_next),
        "webhook_secret_fingerprints": _secret_fingerprints(settings),
        "refunds": {
            "enabled": settings.refunds_enabled,
            "allow_partial": settings.refunds_allow_partial,
            "auto_creditmemo": settings.refunds_auto_creditmemo,
            "api_key_configured": bool(settings.api_secret),
        },
    }


__all__ = ["router"]
