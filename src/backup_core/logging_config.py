"""Log formatting for backup runs.

Every record is redacted before it is written: the browser session carries
Google cookies and OAuth tokens, and download errors often echo request
headers. Fields bound with ``LogContext`` (collection, unit, strategy, ...)
follow each record in a fixed order so one unit's lines can be grepped out
of a long run.
"""

from __future__ import annotations

import contextvars
import copy
import json
import logging
import time
from pathlib import Path
from typing import Any

from backup_core.redaction import redact_string, redact_structure

_CONFIGURED = False

# Rendered first, in this order; anything else follows alphabetically
CONTEXT_FIELD_ORDER = ("command", "collection", "unit_id", "strategy", "status")

# Chatty at INFO during a download-heavy run
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "backup_log_context", default=None
)


def get_log_context() -> dict[str, Any]:
    return dict(_log_context.get() or {})


def set_log_context(**fields: Any) -> None:
    """Replace the bound fields for the current task."""
    _log_context.set(dict(fields))


def clear_log_context() -> None:
    _log_context.set({})


class LogContext:
    """Bind fields for the duration of a ``with`` block; nested blocks merge.

    Each asyncio task runs with a copy of the context it was created in, so
    fields bound inside a concurrent fetch never leak into its siblings.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**get_log_context(), **self.fields})
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def ordered_context(context: dict[str, Any]) -> list[tuple[str, Any]]:
    known = [(key, context[key]) for key in CONTEXT_FIELD_ORDER if key in context]
    rest = sorted((key, value) for key, value in context.items() if key not in CONTEXT_FIELD_ORDER)
    return [(key, value) for key, value in known + rest if value is not None]


def render_message(record: logging.LogRecord) -> str:
    """``record.getMessage()`` with secrets removed from the template and its args."""
    msg = redact_structure(record.msg)
    args = redact_structure(record.args)
    if not args:
        return redact_string(str(msg))
    try:
        return redact_string(str(msg) % args)
    except (TypeError, ValueError):
        return redact_string(f"{msg} {args!r}")


class TextFormatter(logging.Formatter):
    """``time | LEVEL | logger | message [collection=... unit_id=...]`` in UTC."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        safe = copy.copy(record)
        safe.msg = render_message(record)
        safe.args = None
        line = super().format(safe)
        fields = ordered_context(get_log_context())
        if fields:
            line += " [" + " ".join(f"{key}={value}" for key, value in fields) + "]"
        return redact_string(line)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; bound fields go under ``context``."""

    def __init__(self) -> None:
        super().__init__()
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": render_message(record),
        }
        context = get_log_context()
        if context:
            payload["context"] = redact_structure(dict(ordered_context(context)))
        error_code = getattr(record, "error_code", None)
        if error_code:
            payload["error_code"] = error_code
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(str(level or "INFO").upper(), logging.INFO)


def configure_logging(
    *, level: str | int | None = None, fmt: str = "text", log_file: Path | None = None
) -> None:
    """Install one stderr handler (and optionally a file handler) on the root logger, once."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    formatter: logging.Formatter = JsonFormatter() if fmt.lower() == "json" else TextFormatter()

    if not root.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        root.addHandler(stream)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if root.level <= logging.INFO:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    _CONFIGURED = True


def add_logging_args(parser: Any) -> None:
    group = parser.add_argument_group("logging")
    group.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    group.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json"],
        help="Logging format (default: text)",
    )
    group.add_argument("--log-file", default=None, help="Also append log lines to this file")
