from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> str:
    """Current UTC time as ``2025-11-27T12:11:00Z``; every manifest timestamp uses this."""
    return datetime.now(timezone.utc).strftime(UTC_FORMAT)


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log ``message | {"k": v, ...}``; ``None`` fields are left out."""
    if not logger.isEnabledFor(level):
        return
    present = {key: value for key, value in fields.items() if value is not None}
    if not present:
        logger.log(level, "%s", message)
        return
    logger.log(level, "%s | %s", message, json.dumps(present, sort_keys=True, ensure_ascii=False, default=str))
