"""HTTP client for the provider refunds API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol
from urllib.parse import quote

import httpx

from payledger.config import Settings
from payledger.utils.audit import loggable
from payledger.utils.errors import RefundApiFailure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RefundCreated:
    external_id: str
    status: str
    response: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RefundCancellation:
    canceled: bool
    response: dict[str, Any] = field(default_factory=dict)


class RefundsApi(Protocol):
    def create_refund(
        self,
        payment_id: str,
        amount_minor: int | None,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> RefundCreated: ...

    def cancel_refund(self, external_id: str) -> RefundCancellation: ...


def _decode(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text}
    return data if isinstance(data, dict) else {"raw": data}


class RefundsApiClient:
    """Thin synchronous client; every call is bounded by ``http_timeout_seconds``."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self.settings = settings
        self.base_url = (settings.api_base_url or "").rstrip("/")
        self._client = http_client or httpx.Client(timeout=settings.http_timeout_seconds)
        self._owns_client = http_client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RefundsApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {(self.settings.api_secret or '').strip()}",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _post(self, operation: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.post(url, timeout=self.settings.http_timeout_seconds, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Refund API timeout", extra={"operation": operation, "url": url})
            raise RefundApiFailure(
                f"Refund API timeout: {exc}", status_code=504, retryable=True
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Refund API request error", extra={"operation": operation, "url": url})
            raise RefundApiFailure(
                f"Refund API request error: {exc}", status_code=502, retryable=True
            ) from exc

        data = _decode(response)
        if response.status_code >= 400:
            error = data.get("error")
            logger.error(
                "Refund API error",
                extra={
                    "operation": operation,
                    "status": response.status_code,
                    "error": loggable(error, log_sensitive_data=self.settings.log_sensitive_data),
                },
            )
            message = None
            if isinstance(error, Mapping) and error.get("message"):
                message = str(error["message"])
            raise RefundApiFailure(
                message or f"Refund {operation} failed",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        return data

    def create_refund(
        self,
        payment_id: str,
        amount_minor: int | None,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> RefundCreated:
        url = self.base_url + self.settings.refunds_create_path
        payload: dict[str, Any] = {
            "resource_id": payment_id,
            "resource_type": "payment_intent",
            "currency": currency,
        }
        if amount_minor is not None:
            payload["amount"] = amount_minor
        if metadata:
            payload["metadata"] = dict(metadata)

        data = self._post("create", url, json=payload, headers=self._headers(idempotency_key))

        external_id = str(data.get("id") or data.get("refund_id") or "")
        status = str(data.get("status") or "")
        if not external_id and isinstance(data.get("data"), Mapping):
            nested = data["data"]
            external_id = str(nested.get("id") or "")
            status = str(nested.get("status") or status)
        logger.info(
            "Refund created at provider",
            extra={"payment_id": payment_id, "refund_id": external_id, "status": status or "pending"},
        )
        return RefundCreated(external_id=external_id, status=status or "pending", response=data)

    def cancel_refund(self, external_id: str) -> RefundCancellation:
        path = self.settings.refunds_cancel_path.replace("{id}", quote(external_id, safe=""))
        data = self._post("cancel", self.base_url + path, headers=self._headers())

        status = data.get("status")
        if status is None and isinstance(data.get("data"), Mapping):
            status = data["data"].get("status")
        status = str(status or "").lower()
        canceled = status in {"canceled", "cancelled"} or bool(data.get("canceled", False))
        return RefundCancellation(canceled=canceled, response=data)


__all__ = ["RefundCancellation", "RefundCreated", "RefundsApi", "RefundsApiClient"]
