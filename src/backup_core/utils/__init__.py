"""Shared utility functions for the group backup pipeline."""

from backup_core.utils.dates import parse_timestamp, timestamp_prefix
from backup_core.utils.io import (
    read_json,
    iter_jsonl,
    read_jsonl,
    read_jsonl_list,
    write_json,
)
from backup_core.utils.logging import log_event, utc_now
from backup_core.utils.paths import (
    ensure_dir,
    safe_filename,
    sanitize_filename,
    slugify,
    split_extension,
    strip_extension,
)
from backup_core.utils.text import (
    contains_any,
    format_bytes,
    lower,
    normalize_whitespace,
)

__all__ = [
    "utc_now",
    "ensure_dir",
    "normalize_whitespace",
    "lower",
    "read_json",
    "write_json",
    "iter_jsonl",
    "read_jsonl",
    "read_jsonl_list",
    "safe_filename",
    "sanitize_filename",
    "slugify",
    "split_extension",
    "strip_extension",
    "contains_any",
    "format_bytes",
    "parse_timestamp",
    "timestamp_prefix",
    "log_event",
]
