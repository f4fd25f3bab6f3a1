"""Typed run configuration loaded from a validated YAML file."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

from backup_core.config_validator import read_yaml
from backup_core.network_utils import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_SCHEMA = "backup_config"


@dataclasses.dataclass(frozen=True)
class Timeouts:
    direct: float = 40.0
    avatar: float = 15.0
    navigation: float = 60.0
    leaf: float = 90.0
    interstitial: float = 10.0


@dataclasses.dataclass(frozen=True)
class AcquisitionConfig:
    concurrency: int = 5
    enable_galleries: bool = True
    retry: RetryPolicy = dataclasses.field(default_factory=RetryPolicy)
    timeouts: Timeouts = dataclasses.field(default_factory=Timeouts)


@dataclasses.dataclass(frozen=True)
class EnumerationConfig:
    idle_limit: int = 25
    max_iterations: int = 1000
    scroll_delay: float = 2.0
    max_depth: int = 3


@dataclasses.dataclass(frozen=True)
class BrowserConfig:
    headless: bool = True
    user_agent: str | None = None
    storage_state: Path | None = None


@dataclasses.dataclass(frozen=True)
class CollectionConfig:
    name: str
    url: str = ""


@dataclasses.dataclass(frozen=True)
class BackupConfig:
    output_root: Path = Path("backup")
    manifests_root: Path = Path("_manifests")
    collections: tuple[CollectionConfig, ...] = ()
    acquisition: AcquisitionConfig = dataclasses.field(default_factory=AcquisitionConfig)
    enumeration: EnumerationConfig = dataclasses.field(default_factory=EnumerationConfig)
    browser: BrowserConfig = dataclasses.field(default_factory=BrowserConfig)

    def collection(self, name: str) -> CollectionConfig:
        for collection in self.collections:
            if collection.name == name:
                return collection
        return CollectionConfig(name=name)


def _resolve(base: Path, value: str | None) -> Path | None:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def config_from_dict(data: dict[str, Any], *, base_dir: Path | None = None) -> BackupConfig:
    base = base_dir or Path.cwd()
    acquisition = data.get("acquisition") or {}
    enumeration = data.get("enumeration") or {}
    browser = data.get("browser") or {}
    defaults = BackupConfig()
    return BackupConfig(
        output_root=_resolve(base, data.get("output_root")) or base / defaults.output_root,
        manifests_root=_resolve(base, data.get("manifests_root")) or base / defaults.manifests_root,
        collections=tuple(
            CollectionConfig(name=str(c["name"]), url=str(c.get("url") or ""))
            for c in data.get("collections") or []
        ),
        acquisition=AcquisitionConfig(
            concurrency=int(acquisition.get("concurrency", 5)),
            enable_galleries=bool(acquisition.get("enable_galleries", True)),
            retry=RetryPolicy(**(acquisition.get("retry") or {})),
            timeouts=Timeouts(**(acquisition.get("timeouts") or {})),
        ),
        enumeration=EnumerationConfig(**enumeration),
        browser=BrowserConfig(
            headless=bool(browser.get("headless", True)),
            user_agent=browser.get("user_agent"),
            storage_state=_resolve(base, browser.get("storage_state")),
        ),
    )


def load_config(path: Path | None) -> BackupConfig:
    """Load and validate a config file; a missing path yields defaults rooted at cwd."""
    if path is None or not path.exists():
        if path is not None:
            logger.warning("Config %s not found, using defaults", path)
        return config_from_dict({})
    data = read_yaml(path, schema_name=CONFIG_SCHEMA)
    return config_from_dict(data, base_dir=path.resolve().parent)
