"""YAML loading and JSON-schema validation for configuration and extractor output.

Schemas ship inside the package (``backup_core/schemas/<name>.schema.json``)
and are compiled once per process. Validation failures raise
``ConfigValidationError`` whose context lists every offending path, so a bad
config or units file is rejected before the first download starts.
"""

from __future__ import annotations

import json
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker

from backup_core.exceptions import ConfigValidationError, YamlParseError

MAX_REPORTED_ERRORS = 10


@cache
def load_schema(schema_name: str) -> dict[str, Any]:
    resource = resources.files("backup_core.schemas").joinpath(f"{schema_name}.schema.json")
    if not resource.is_file():
        raise FileNotFoundError(f"Schema not found: {schema_name}.schema.json")
    return json.loads(resource.read_text(encoding="utf-8"))


@cache
def _validator(schema_name: str) -> Draft7Validator:
    schema = load_schema(schema_name)
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema, format_checker=FormatChecker())


def schema_errors(data: Any, schema_name: str) -> list[dict[str, str]]:
    """Every violation as ``{"path": "a.b.0", "message": ...}``, ordered by path."""
    found = sorted(_validator(schema_name).iter_errors(data), key=lambda err: [str(p) for p in err.absolute_path])
    return [
        {
            "path": ".".join(str(p) for p in err.absolute_path) or "<root>",
            "message": err.message,
        }
        for err in found
    ]


def validate_config(data: Any, schema_name: str, *, config_path: Path | str | None = None) -> None:
    errors = schema_errors(data, schema_name)
    if not errors:
        return
    location = str(config_path) if config_path else "<config>"
    shown = errors[:MAX_REPORTED_ERRORS]
    lines = [f"{location} does not match {schema_name}.schema.json:"]
    lines.extend(f"  {error['path']}: {error['message']}" for error in shown)
    hidden = len(errors) - len(shown)
    if hidden:
        lines.append(f"  (+{hidden} more)")
    raise ConfigValidationError(
        "\n".join(lines),
        context={
            "path": location,
            "schema": schema_name,
            "errors": shown,
            "truncated": hidden > 0,
        },
    )


def read_yaml(path: Path, schema_name: str | None = None) -> Any:
    """Parse ``path`` with ``yaml.safe_load``; an empty document reads as ``{}``."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        context: dict[str, Any] = {"path": str(path), "error": str(exc)}
        if mark is not None:
            context["line"] = mark.line + 1
            context["column"] = mark.column + 1
        raise YamlParseError(f"Cannot parse YAML in {path}: {exc}", context=context) from exc
    if data is None:
        data = {}
    if schema_name:
        validate_config(data, schema_name, config_path=path)
    return data
