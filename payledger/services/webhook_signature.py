"""HMAC verification of provider webhook signature headers.

Header format: ``t=<unix_ts>,v1=<hex>[,v1=<hex>...]``. The signed message is
``b"{t}." + raw_body``; verification always runs on the untouched request bytes.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Iterable

from payledger.utils.errors import SignatureInvalid

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(secret: str, payload: bytes, timestamp: int | str) -> str:
    """Compute the hex HMAC-SHA256 of ``"{timestamp}." + payload``."""

    message = str(timestamp).encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, payload: bytes, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return f"t={ts},v1={compute_signature(secret, payload, ts)}"


def parse_signature_header(header: str) -> tuple[str | None, list[str]]:
    timestamp: str | None = None
    signatures: list[str] = []
    for part in header.split(","):
        part = part.strip()
        if part.startswith("t="):
            timestamp = part[2:].strip()
        elif part.startswith("v1="):
            candidate = part[3:].strip()
            if candidate:
                signatures.append(candidate)
    return timestamp, signatures


def _as_secrets(secrets: str | Iterable[str] | None) -> list[str]:
    if secrets is None:
        return []
    if isinstance(secrets, str):
        return [secrets] if secrets else []
    return [s for s in secrets if s]


def verify_header(
    payload: bytes,
    header: str | None,
    secrets: str | Iterable[str] | None,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> int:
    """Validate ``header`` against ``payload`` and return the signed timestamp.

    Any configured secret may match any ``v1`` candidate. Raises
    ``SignatureInvalid`` on every failure.
    """

    candidates_secrets = _as_secrets(secrets)
    if not candidates_secrets:
        logger.error("Webhook signing secret is not configured")
        raise SignatureInvalid("Webhook secret is not configured")

    if not header:
        raise SignatureInvalid("The signature header was not found")

    raw_timestamp, signatures = parse_signature_header(header)
    if not raw_timestamp or not signatures:
        raise SignatureInvalid("Invalid signature header")

    try:
        timestamp = int(raw_timestamp)
    except ValueError:
        raise SignatureInvalid("Invalid signature timestamp") from None

    current = int(time.time()) if now is None else int(now)
    if current - timestamp > tolerance:
        raise SignatureInvalid("Timestamp outside the tolerance window")
    if timestamp - current > tolerance:
        raise SignatureInvalid("Timestamp outside the tolerance window")

    for secret in candidates_secrets:
        expected = compute_signature(secret, payload, raw_timestamp)
        for signature in signatures:
            if hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
                return timestamp

    raise SignatureInvalid("Invalid signature")


__all__ = [
    "DEFAULT_TOLERANCE_SECONDS",
    "build_signature_header",
    "compute_signature",
    "parse_signature_header",
    "verify_header",
]
