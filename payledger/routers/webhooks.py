"""Routes for provider webhook handling."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from payledger.config import Settings, get_settings
from payledger.db import get_db
from payledger.services import psp_webhooks
from payledger.utils.errors import PayloadInvalid, PayledgerError, SignatureInvalid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/provider", status_code=status.HTTP_200_OK)
async def provider_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Receive a signed provider notification; no CSRF, the caller is the provider."""

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}

    try:
        result = await run_in_threadpool(psp_webhooks.process_webhook, db, raw_body, headers, settings)
    except (SignatureInvalid, PayloadInvalid) as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.message})
    except PayledgerError as exc:
        db.rollback()
        logger.error("Webhook processing error", extra={"code": exc.code, "error": exc.message})
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": exc.message})
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        logger.exception("Webhook processing error")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})

    return JSONResponse(status_code=status.HTTP_200_OK, content=result)


__all__ = ["router"]
