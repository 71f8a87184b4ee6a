"""Centralized logging helpers for the payledger service."""
from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

from payledger.utils.audit import SENSITIVE_KEYS, filter_sensitive_data

# Third-party loggers that are too chatty at INFO for webhook traffic.
_NOISY_LOGGERS = ("httpx", "httpcore")


class SensitiveDataFilter(logging.Filter):
    """Mask secrets carried in ``extra=`` fields before they reach the formatter."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in list(record.__dict__.items()):
            if key.lower() in SENSITIVE_KEYS:
                setattr(record, key, "[FILTERED]")
            elif isinstance(value, (dict, list)):
                setattr(record, key, filter_sensitive_data(value))
        return True


def setup_logging(level: str = "INFO", *, log_sensitive_data: bool = False) -> None:
    """Configure root logging with a JSON formatter."""

    root_logger = logging.getLogger()
    # Remove existing handlers to avoid duplicate logs when reloading.
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level.upper())

    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    if not log_sensitive_data:
        handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a logger configured with the shared root settings."""

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger


__all__ = ["SensitiveDataFilter", "setup_logging", "get_logger"]
