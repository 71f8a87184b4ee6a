"""Inbound provider webhook pipeline."""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from payledger.config import Settings
from payledger.models import TransactionType
from payledger.services.idempotency import WebhookIdempotencyLedger
from payledger.services.orders import OrderGateway, SqlOrderGateway
from payledger.services.transaction_repository import TransactionRepository
from payledger.services.transactions import TransactionService
from payledger.services.webhook_events import WebhookEvent, parse_webhook_payload
from payledger.services.webhook_handlers import DEFAULT_HANDLERS, HandlerContext
from payledger.services.webhook_router import WebhookRouter
from payledger.services.webhook_signature import verify_header
from payledger.utils.audit import loggable
from payledger.utils.errors import SignatureInvalid

logger = logging.getLogger(__name__)


def _get_header(headers: Mapping[str, str], key: str) -> str | None:
    for h_key, value in headers.items():
        if h_key.lower() == key.lower():
            return value
    return None


def process_webhook(
    db: Session,
    raw_body: bytes,
    headers: Mapping[str, str],
    settings: Settings,
    *,
    orders: OrderGateway | None = None,
    handlers: Mapping[str, Callable[[WebhookEvent, Any], None]] | None = None,
    now: int | None = None,
) -> dict[str, bool]:
    """Verify, normalise, dedup and route one webhook delivery.

    Raises ``SignatureInvalid``/``PayloadInvalid`` before any state is touched;
    handler errors (missing order reference, unknown order) propagate.
    """

    signature = _get_header(headers, settings.webhook_signature_header)
    try:
        verify_header(
            raw_body,
            signature,
            settings.webhook_secrets,
            tolerance=settings.webhook_tolerance_seconds,
            now=now,
        )
    except SignatureInvalid as exc:
        log_extra: dict[str, Any] = {"reason": exc.message, "signature_present": bool(signature)}
        if settings.log_sensitive_data:
            log_extra["signature"] = signature
        logger.warning("Webhook signature rejected", extra=log_extra)
        raise

    event = parse_webhook_payload(raw_body)
    logger.info(
        "Webhook received",
        extra={"event_id": event.event_id, "event_type": event.event_type, "object": event.object_kind},
    )
    logger.debug(
        "Webhook payload",
        extra={"payload": loggable(event.full_payload, log_sensitive_data=settings.log_sensitive_data)},
    )

    ledger = WebhookIdempotencyLedger(db)
    if event.event_id is None:
        logger.info("Webhook has no event id; dedup skipped", extra={"event_type": event.event_type})
    elif ledger.seen(event.event_id):
        marker = TransactionRepository(db).get_by_transaction_id(event.event_id)
        if marker is not None and marker.type != TransactionType.WEBHOOK:
            # Envelopes without a top-level id borrow the object's id, which may be a ledger row.
            logger.warning(
                "Webhook event id matches a %s transaction; treated as duplicate",
                marker.type.value,
                extra={"event_id": event.event_id, "event_type": event.event_type, "status": marker.status.value},
            )
        logger.info(
            "Duplicate webhook ignored",
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        return {"success": True, "duplicate": True}

    router = WebhookRouter(handlers if handlers is not None else DEFAULT_HANDLERS)
    repository = TransactionRepository(db)
    ctx = HandlerContext(
        transactions=TransactionService(repository),
        repository=repository,
        orders=orders if orders is not None else SqlOrderGateway(db),
        settings=settings,
        handlers=router.handlers,
    )
    handled = router.dispatch(event, ctx)

    ledger.mark_seen(event.event_id)
    logger.info(
        "Webhook processed",
        extra={"event_id": event.event_id, "event_type": event.event_type, "handler": handled},
    )
    return {"success": True}


__all__ = ["process_webhook"]
