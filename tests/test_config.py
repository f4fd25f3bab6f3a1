"""Tests for configuration loading and schema validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from backup_core.config import BackupConfig, load_config
from backup_core.config_validator import load_schema, read_yaml, validate_config
from backup_core.exceptions import ConfigValidationError, YamlParseError


class TestLoadSchema:
    """Tests for schema loading."""

    def test_packaged_schemas_load(self) -> None:
        for name in ("backup_config", "units"):
            schema = load_schema(name)
            assert schema["$schema"].startswith("http://json-schema.org/draft-07")

    def test_missing_schema(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_schema("nonexistent_schema_xyz123")

    def test_schema_is_cached(self) -> None:
        assert load_schema("backup_config") is load_schema("backup_config")


class TestValidateConfig:
    """Tests for validate_config."""

    def test_valid_config_passes(self) -> None:
        validate_config({"output_root": "out", "acquisition": {"concurrency": 3}}, "backup_config")

    def test_unknown_key_reports_code_and_context(self) -> None:
        with pytest.raises(ConfigValidationError) as excinfo:
            validate_config({"acquisition": {"concurency": 3}}, "backup_config", config_path="cfg.yaml")

        error = excinfo.value
        assert error.code == "config_validation_error"
        assert error.context["path"] == "cfg.yaml"
        assert error.context["schema"] == "backup_config"
        assert error.context["errors"][0]["path"] == "acquisition"
        assert error.context["truncated"] is False

    def test_out_of_range_concurrency(self) -> None:
        with pytest.raises(ConfigValidationError, match="acquisition.concurrency"):
            validate_config({"acquisition": {"concurrency": 0}}, "backup_config")


class TestReadYaml:
    """Tests for read_yaml."""

    def test_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("output_root: [unclosed", encoding="utf-8")
        with pytest.raises(YamlParseError) as excinfo:
            read_yaml(path)
        assert excinfo.value.code == "yaml_parse_error"
        assert excinfo.value.context["path"] == str(path)
        assert excinfo.value.context["line"] == 1

    def test_empty_file_is_empty_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert read_yaml(path, schema_name="backup_config") == {}


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "missing.yaml")
        assert config.acquisition.concurrency == 5
        assert config.acquisition.retry.max_attempts == 3
        assert config.acquisition.timeouts.direct == 40.0
        assert config.acquisition.timeouts.avatar == 15.0
        assert config.enumeration.idle_limit == 25
        assert config.browser.headless is True

    def test_values_and_relative_paths(self, tmp_path: Path) -> None:
        path = tmp_path / "conf" / "backup.yaml"
        path.parent.mkdir()
        path.write_text(
            yaml.safe_dump(
                {
                    "output_root": "archive",
                    "manifests_root": "/var/backup/_manifests",
                    "collections": [{"name": "Curso 2025", "url": "https://groups.example.com/c/1"}],
                    "acquisition": {
                        "concurrency": 8,
                        "enable_galleries": False,
                        "retry": {"max_attempts": 5},
                        "timeouts": {"direct": 20},
                    },
                    "enumeration": {"idle_limit": 10},
                    "browser": {"headless": False, "storage_state": "state.json"},
                }
            ),
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.output_root == path.parent.resolve() / "archive"
        assert config.manifests_root == Path("/var/backup/_manifests")
        assert config.acquisition.concurrency == 8
        assert config.acquisition.enable_galleries is False
        assert config.acquisition.retry.max_attempts == 5
        assert config.acquisition.retry.initial_delay == 1.0
        assert config.acquisition.timeouts.direct == 20
        assert config.acquisition.timeouts.leaf == 90.0
        assert config.enumeration.idle_limit == 10
        assert config.browser.storage_state == path.parent.resolve() / "state.json"
        assert config.collection("Curso 2025").url == "https://groups.example.com/c/1"
        assert config.collection("Otro").url == ""

    def test_invalid_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "backup.yaml"
        path.write_text("acquisition:\n  retries: 3\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            load_config(path)


def test_default_dataclass_is_frozen() -> None:
    config = BackupConfig()
    with pytest.raises(AttributeError):
        config.output_root = Path("elsewhere")  # type: ignore[misc]
