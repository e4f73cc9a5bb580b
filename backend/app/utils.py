"""
Shared utility functions.
"""

import logging
from typing import Iterable, Optional, Sequence, TypeVar
import uuid as uuid_mod
from datetime import date, datetime, timezone
from fastapi import HTTPException

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_uuid(value: str, field_name: str = "id") -> uuid_mod.UUID:
    """
    Parse a string as UUID, raising a 400 HTTPException on invalid input
    instead of letting a bare ValueError bubble up as a 500.
    """
    try:
        return uuid_mod.UUID(value)
    except (ValueError, AttributeError):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid UUID for '{field_name}': {value!r}",
        )


def parse_date(value: str, field_name: str = "date") -> date:
    """Parse YYYY-MM-DD, raising a 400 HTTPException on invalid input."""
    try:
        return date.fromisoformat(value)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid date for '{field_name}': {value!r} (expected YYYY-MM-DD)",
        )


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {exc}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split a sequence into consecutive lists of at most ``size`` items."""
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def day_part(value: Optional[str]) -> str:
    """First ten characters of an ISO timestamp ('2024-03-01T10:00:00' -> '2024-03-01')."""
    if not value:
        return ""
    return str(value)[:10]


def unique_ints(values: Iterable) -> list[int]:
    """Order-preserving de-duplication of integer ids, skipping empties."""
    seen: set[int] = set()
    result = []
    for v in values:
        if v is None:
            continue
        v = int(v)
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result
