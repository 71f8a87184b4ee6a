"""Time utilities."""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def utc_timestamp() -> str:
    """ISO 8601 timestamp (seconds precision) used in ledger audit entries."""

    return utcnow().replace(microsecond=0).isoformat()


__all__ = ["utcnow", "utc_timestamp"]
