from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payledger import db
from payledger.config import AppInfo, get_settings
from payledger.core.logging import get_logger, setup_logging
import payledger.models  # noqa: F401  registers the tables
from payledger.routers import get_api_router
from payledger.utils.errors import (
    OrderNotFound,
    PayledgerError,
    RefundApiFailure,
    RefundValidationError,
    TransactionNotFound,
    error_response,
)

logger = get_logger(__name__)
ALLOWED_CREATE_ENV = {"dev", "local", "test"}


def _current_settings():
    return get_settings()


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    """Configure middleware using a fresh snapshot of the settings."""

    runtime_settings = _current_settings()
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime_settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key"],
    )

    if runtime_settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if runtime_settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=runtime_settings.SENTRY_DSN, traces_sample_rate=0.2)


def _assert_webhook_secrets(settings: Any) -> None:
    """Fail-fast when webhook secrets are missing in non-dev environments."""

    secrets_configured = bool(settings.webhook_secrets)
    env_lower = settings.app_env.lower()
    if env_lower != "dev" and not secrets_configured:
        logger.error(
            "Webhook secrets are missing; configure WEBHOOK_SECRET or WEBHOOK_SECRET_NEXT before startup.",
            extra={"env": settings.app_env},
        )
        raise RuntimeError("Missing webhook secrets in non-dev environment.")
    if not secrets_configured:
        logger.warning(
            "Webhook secrets are not configured; every webhook will be rejected.",
            extra={"env": settings.app_env},
        )
    elif settings.webhook_secret is None:
        logger.warning(
            "Primary webhook secret unset; relying on WEBHOOK_SECRET_NEXT only.",
            extra={"env": settings.app_env},
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = _current_settings()
    setup_logging(settings.log_level, log_sensitive_data=settings.log_sensitive_data)
    logger.info("Application startup", extra={"env": settings.app_env})
    _assert_webhook_secrets(settings)
    if settings.refunds_enabled and not settings.api_secret:
        logger.warning("Refunds enabled without API_SECRET; provider calls will be rejected")

    db.init_engine()
    env_lower = settings.app_env.lower()
    if settings.ALLOW_DB_CREATE_ALL and env_lower in ALLOWED_CREATE_ENV:
        logger.warning(
            "Running Base.metadata.create_all() because APP_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info(
            "Skipping create_all(); use Alembic migrations. APP_ENV=%s, ALLOW_DB_CREATE_ALL=%s",
            settings.app_env,
            settings.ALLOW_DB_CREATE_ALL,
        )
    try:
        yield
    finally:
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(get_api_router())


def _status_for(exc: PayledgerError) -> int:
    if isinstance(exc, RefundValidationError):
        return 422
    if isinstance(exc, (OrderNotFound, TransactionNotFound)):
        return 404
    if isinstance(exc, RefundApiFailure):
        return 504 if exc.status_code == 504 else 502
    return 500


@app.exception_handler(PayledgerError)
async def payledger_exception_handler(request: Request, exc: PayledgerError) -> JSONResponse:
    status_code = _status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log("Request rejected", extra={"code": exc.code, "error": exc.message, "path": request.url.path})
    return JSONResponse(status_code=status_code, content=exc.to_response())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
