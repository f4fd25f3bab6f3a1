from __future__ import annotations

import gzip
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any

from backup_core.utils.paths import ensure_dir

logger = logging.getLogger(__name__)


def read_json(path: Path) -> dict[str, Any]:
    """Read JSON file and return as dict."""
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, obj: dict[str, Any], *, indent: int = 2) -> None:
    """Write ``obj`` to ``path`` so readers only ever see the old or the new document."""
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, indent=indent, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _open_lines(path: Path) -> IO[str]:
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8", errors="replace")
    return path.open("r", encoding="utf-8", errors="replace")


def iter_jsonl(path: Path) -> Iterator[tuple[int, dict[str, Any]]]:
    """Yield ``(line_number, record)`` for every JSON object line (``.gz`` accepted).

    Blank lines are ignored; malformed lines and non-object values are logged
    and skipped.
    """
    with _open_lines(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("Skipping malformed JSON at %s:%s: %s", path, line_no, exc.msg)
                continue
            if not isinstance(record, dict):
                logger.warning("Skipping non-object JSON at %s:%s", path, line_no)
                continue
            yield line_no, record


def read_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    for _line_no, record in iter_jsonl(path):
        yield record


def read_jsonl_list(path: Path) -> list[dict[str, Any]]:
    """Read JSONL file and return as list."""
    return list(read_jsonl(path))
