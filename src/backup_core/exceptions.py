"""Errors that stop a command, as opposed to per-item failures.

Per-link problems never raise; they come back as failed ``DownloadResult``
values. The classes here cover state the pipeline cannot continue from: a
bad config or units file, an unreadable manifest, a browser that will not
start. Each carries a stable ``code`` and a ``context`` dict that the CLI
logs through ``as_log_fields()``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class BackupError(Exception):
    code: str = "backup_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: Mapping[str, Any] | None = None,
        **context_fields: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context: dict[str, Any] = {**(context or {}), **context_fields}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_message": self.message,
            "error_context": self.context,
        }


class ConfigValidationError(BackupError):
    code = "config_validation_error"


class YamlParseError(BackupError):
    code = "yaml_parse_error"


class ManifestCorruptError(BackupError):
    """The persisted manifest for a collection cannot be trusted.

    Raised instead of silently resetting state; callers skip the affected
    collection and leave the file on disk for inspection.
    """

    code = "manifest_corrupt"

    @property
    def path(self) -> str | None:
        return self.context.get("path")


class SessionUnavailableError(BackupError):
    code = "session_unavailable"
