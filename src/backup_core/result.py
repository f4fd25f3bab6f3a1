"""
backup_core/result.py

Per-artifact outcome of an acquisition attempt.

Error Handling Convention:
--------------------------
1. **Exceptions** are raised for programmer/config errors and for state that
   cannot be trusted:
   - ConfigValidationError / YamlParseError: invalid configuration
   - ManifestCorruptError: persisted manifest unreadable
   - ValueError: invalid arguments (e.g. a success result without a path)

2. **DownloadResult values** (this module) are returned for every per-item
   runtime issue:
   - Network failures, timeouts, retries exhausted
   - Error pages and app landing pages served with HTTP 200
   - Missing or expired browser session

   A strategy never raises for a single item; the orchestrator partitions
   successes from failures and decides the unit status.

Usage:
------
    from backup_core.result import DownloadResult

    result = DownloadResult.success(url, path, content_type="application/pdf")
    failure = DownloadResult.failed(url, "HTTP 404")

    if result.ok:
        print(f"Saved {result.filename}")
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass
class DownloadResult:
    """
    Outcome for one fetched artifact.

    Attributes:
        status: "success" or "failed"
        url: Source URL the artifact was requested from
        local_path: Absolute path of the saved file (success only)
        filename: Basename of ``local_path`` (success only)
        size: Bytes written
        content_type: Declared Content-Type, when known
        extension: Final file extension without the dot
        source_name: Display name reported by the source (enumerated items)
        source_folder: Relative container path for items found inside folders
        error: Human-readable failure reason (failed only)
    """

    status: str
    url: str
    local_path: str | None = None
    filename: str | None = None
    size: int | None = None
    content_type: str | None = None
    extension: str | None = None
    source_name: str | None = None
    source_folder: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.status == STATUS_SUCCESS:
            if not self.local_path or not self.filename:
                raise ValueError("successful DownloadResult requires local_path and filename")
        elif self.status == STATUS_FAILED:
            if not self.error:
                raise ValueError("failed DownloadResult requires an error")
        else:
            raise ValueError(f"unknown DownloadResult status: {self.status!r}")

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def success(cls, url: str, path: Path, **extras: Any) -> DownloadResult:
        if extras.get("size") is None and path.exists():
            extras["size"] = path.stat().st_size
        if extras.get("extension") is None:
            extras["extension"] = path.suffix.lstrip(".").lower() or None
        return cls(
            status=STATUS_SUCCESS,
            url=url,
            local_path=str(path),
            filename=path.name,
            **extras,
        )

    @classmethod
    def failed(cls, url: str, error: str | BaseException, **extras: Any) -> DownloadResult:
        message = error if isinstance(error, str) else (str(error) or type(error).__name__)
        return cls(status=STATUS_FAILED, url=url, error=message, **extras)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for JSON output, dropping unset fields."""
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DownloadResult:
        fields = {key: d.get(key) for key in cls.__dataclass_fields__ if key in d}
        fields.setdefault("status", STATUS_FAILED)
        fields.setdefault("url", "")
        return cls(**fields)
