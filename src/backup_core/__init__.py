"""Resumable media backup for private group/community spaces."""

from backup_core.__version__ import __version__
from backup_core.exceptions import BackupError, ManifestCorruptError
from backup_core.result import DownloadResult

__all__ = [
    "__version__",
    "BackupError",
    "ManifestCorruptError",
    "DownloadResult",
]
