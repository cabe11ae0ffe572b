import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


def parse_date(value: Any) -> int | float | None:
    """
    Date string -> milliseconds since the epoch.
    None stays None and numbers are assumed to already be timestamps.
    Naive datetimes are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, datetime):
        return _to_millis(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.warning(f"Can not parse date '{value}'")
        return None
    return _to_millis(parsed)


def now_millis() -> int:
    return _to_millis(datetime.now(UTC))


def _to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)
