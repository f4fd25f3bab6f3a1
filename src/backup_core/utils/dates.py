from __future__ import annotations

import logging
import re
from datetime import datetime

logger = logging.getLogger(__name__)

SPANISH_MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

# "27 de noviembre 2025, 09:11" as rendered by the platform
_SPANISH_TIMESTAMP_RE = re.compile(
    r"(\d{1,2})\s+de\s+(\w+)\s+(?:de\s+)?(\d{4}),?\s+(\d{1,2}):(\d{2})",
    re.IGNORECASE,
)


def parse_timestamp(value: str | None, *, now: datetime | None = None) -> datetime:
    """Parse a post timestamp into a naive local datetime.

    Tries the platform's Spanish long form first, then ISO 8601. Anything
    unparseable falls back to ``now`` so a unit is never dropped for a bad date.
    """
    fallback = now or datetime.now()
    if not value or not value.strip():
        return fallback

    match = _SPANISH_TIMESTAMP_RE.search(value)
    if match:
        day, month_name, year, hour, minute = match.groups()
        month = SPANISH_MONTHS.get(month_name.lower())
        if month is not None:
            try:
                return datetime(int(year), month, int(day), int(hour), int(minute))
            except ValueError:
                logger.debug("Out-of-range Spanish timestamp %r", value)

    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp %r, using current time", value)
        return fallback
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def timestamp_prefix(moment: datetime) -> str:
    """``MM-DD-HH-MM`` prefix used for every artifact filename."""
    return moment.strftime("%m-%d-%H-%M")
