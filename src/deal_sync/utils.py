"""
Utility helpers for the deal sync engine.

parse_hubspot_timestamp() accepts both shapes HubSpot uses for datetime
properties: ISO-8601 strings ("2024-03-15", "2024-03-15T10:00:00.000Z") and
epoch milliseconds (as int or numeric string). Returns an aware UTC datetime,
or None when the value is absent or unparseable.
"""

import math
from datetime import datetime, timezone
from typing import Any, Iterator, Sequence, TypeVar

T = TypeVar('T')


def parse_hubspot_timestamp(value: Any) -> datetime | None:
    """Parse a HubSpot datetime property into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _from_epoch_ms(value)

    text = str(value).strip()
    if not text:
        return None

    if text.lstrip('-').isdigit():
        return _from_epoch_ms(int(text))

    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch_ms(ms: float) -> datetime | None:
    if not math.isfinite(ms):
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError('chunk size must be >= 1')
    for start in range(0, len(items), size):
        yield items[start:start + size]
