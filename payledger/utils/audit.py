"""Helpers that keep secrets and card data out of logs and audit blobs."""
from __future__ import annotations

import re
from typing import Any, Mapping

FILTERED = "[FILTERED]"

SENSITIVE_KEYS = {
    "api_secret",
    "apisecret",
    "secret",
    "password",
    "token",
    "authorization",
    "auth",
    "card_number",
    "cardnumber",
    "cvv",
    "cvc",
    "expiry",
    "webhook_secret",
    "webhooksecret",
    "private_key",
    "privatekey",
}

_CARD_NUMBER_RE = re.compile(r"\b(?:\d[ -]*?){13,16}\b")
_KEY_VALUE_RE = re.compile(
    r"([\"']?(?:" + "|".join(sorted(map(re.escape, SENSITIVE_KEYS), key=len, reverse=True)) + r")[\"']?\s*[=:]\s*[\"']?)([^\"'\s,]+)",
    re.IGNORECASE,
)


def _filter_string(text: str) -> str:
    text = _CARD_NUMBER_RE.sub(FILTERED, text)
    return _KEY_VALUE_RE.sub(lambda m: m.group(1) + FILTERED, text)


def filter_sensitive_data(data: Any) -> Any:
    """Return a copy of ``data`` with secrets, tokens and card numbers masked."""

    if isinstance(data, Mapping):
        filtered: dict[str, Any] = {}
        for key, value in data.items():
            if str(key).lower() in SENSITIVE_KEYS:
                filtered[key] = FILTERED
            else:
                filtered[key] = filter_sensitive_data(value)
        return filtered

    if isinstance(data, (list, tuple)):
        return [filter_sensitive_data(item) for item in data]

    if isinstance(data, str):
        return _filter_string(data)

    return data


def loggable(data: Any, *, log_sensitive_data: bool = False) -> Any:
    """Payload as it may appear in log records given the sensitive-data toggle."""

    if log_sensitive_data:
        return data
    return filter_sensitive_data(data)


__all__ = ["FILTERED", "SENSITIVE_KEYS", "filter_sensitive_data", "loggable"]
