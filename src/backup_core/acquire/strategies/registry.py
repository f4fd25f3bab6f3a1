"""Registry for acquisition strategies with lazy loading and priority resolution.

Strategy modules are only imported when a strategy is actually built, so the
browser-backed strategies do not pull in Playwright for direct-only runs.

Usage:
    from backup_core.acquire.strategies.registry import build_default_registry

    registry = build_default_registry(config)
    strategy = registry.resolve("https://drive.google.com/file/d/abc/view")
    if strategy is None:
        ...  # nothing can fetch this URL; record it as unfetchable
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from backup_core.acquire.strategies.base import AcquisitionStrategy

if TYPE_CHECKING:
    from backup_core.config import BackupConfig

logger = logging.getLogger(__name__)

# Module cache for lazy loading
_module_cache: dict[str, Any] = {}


def _lazy_import(module_name: str) -> Any:
    """Lazily import a strategy module.

    Args:
        module_name: Name of the module under acquire.strategies (e.g., "direct")

    Returns:
        The imported module

    Raises:
        ImportError: If the module cannot be imported
    """
    if module_name not in _module_cache:
        full_name = f"backup_core.acquire.strategies.{module_name}"
        _module_cache[module_name] = importlib.import_module(full_name)
    return _module_cache[module_name]


# Strategy name -> (module_name, class_name, default kwargs)
_STRATEGY_LOADERS: dict[str, tuple[str, str, dict[str, Any]]] = {
    "photos_album": ("photos_album", "PhotosAlbumStrategy", {}),
    "drive_folder": ("drive_folder", "DriveFolderStrategy", {}),
    "drive_file": ("drive_file", "DriveFileStrategy", {}),
    "direct": ("direct", "DirectFetchStrategy", {}),
}

# Registration order doubles as the priority tie-break
DEFAULT_STRATEGY_ORDER = ("photos_album", "drive_folder", "drive_file", "direct")
ENUMERATION_STRATEGIES = frozenset({"photos_album", "drive_folder"})


def get_strategy(name: str, **kwargs: Any) -> AcquisitionStrategy:
    """Build a strategy instance by name with lazy loading.

    Args:
        name: Strategy name (e.g., "direct", "drive_file")
        **kwargs: Constructor arguments merged over the registered defaults

    Returns:
        A new strategy instance

    Raises:
        ValueError: If the strategy name is not recognized
        ImportError: If the strategy module fails to import
    """
    if name not in _STRATEGY_LOADERS:
        available = ", ".join(sorted(_STRATEGY_LOADERS.keys()))
        raise ValueError(f"Unknown strategy '{name}'. Available: {available}")

    module_name, class_name, default_kwargs = _STRATEGY_LOADERS[name]
    module = _lazy_import(module_name)
    factory = getattr(module, class_name)
    return factory(**{**default_kwargs, **kwargs})


def list_strategies() -> list[str]:
    return sorted(_STRATEGY_LOADERS.keys())


def is_strategy_available(name: str) -> bool:
    return name in _STRATEGY_LOADERS


def register_strategy_loader(
    name: str,
    module_name: str,
    class_name: str,
    **default_kwargs: Any,
) -> None:
    """Register a custom strategy class.

    Args:
        name: Strategy name for lookups
        module_name: Module name under acquire.strategies
        class_name: AcquisitionStrategy subclass defined in that module
        **default_kwargs: Default constructor arguments
    """
    _STRATEGY_LOADERS[name] = (module_name, class_name, dict(default_kwargs))


def clear_module_cache() -> None:
    """Clear the module cache (useful for testing)."""
    _module_cache.clear()


class StrategyRegistry:
    """Ordered set of strategies; ``resolve`` picks the best one for a URL.

    Among the strategies whose ``can_handle`` accepts the URL, the highest
    ``priority()`` wins and ties go to the strategy registered first, so the
    same registry always resolves the same URL the same way.
    """

    def __init__(self, strategies: list[AcquisitionStrategy] | None = None) -> None:
        self._strategies: list[AcquisitionStrategy] = []
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: AcquisitionStrategy) -> None:
        self._strategies.append(strategy)

    @property
    def strategies(self) -> list[AcquisitionStrategy]:
        return list(self._strategies)

    def get(self, name: str) -> AcquisitionStrategy | None:
        for strategy in self._strategies:
            if strategy.name == name:
                return strategy
        return None

    def candidates(self, url: str) -> list[AcquisitionStrategy]:
        return [strategy for strategy in self._strategies if strategy.can_handle(url)]

    def resolve(self, url: str) -> AcquisitionStrategy | None:
        best: AcquisitionStrategy | None = None
        for strategy in self.candidates(url):
            # strict comparison keeps the earliest registration on ties
            if best is None or strategy.priority() > best.priority():
                best = strategy
        return best


def strategy_kwargs(name: str, config: BackupConfig) -> dict[str, Any]:
    """Constructor arguments for a built-in strategy derived from run configuration."""
    acquisition = config.acquisition
    if name == "direct":
        direct: dict[str, Any] = {
            "timeout": acquisition.timeouts.direct,
            "retry_policy": acquisition.retry,
        }
        if config.browser.user_agent:
            direct["user_agent"] = config.browser.user_agent
        return direct

    from backup_core.acquire.strategies.session_base import SessionTimeouts

    kwargs: dict[str, Any] = {
        "timeouts": SessionTimeouts(
            navigation=acquisition.timeouts.navigation,
            leaf=acquisition.timeouts.leaf,
            interstitial=acquisition.timeouts.interstitial,
        ),
        "retry_policy": acquisition.retry,
    }
    if name in ENUMERATION_STRATEGIES:
        enumeration = config.enumeration
        kwargs.update(
            idle_limit=enumeration.idle_limit,
            max_iterations=enumeration.max_iterations,
            scroll_delay=enumeration.scroll_delay,
        )
        if name == "drive_folder":
            kwargs["max_depth"] = enumeration.max_depth
    return kwargs


def build_default_registry(
    config: BackupConfig | None = None,
    *,
    names: list[str] | None = None,
    extra_strategies: list[str] | None = None,
) -> StrategyRegistry:
    """Build the standard registry.

    Args:
        config: Run configuration; defaults are used when omitted
        names: Strategy names to include, in registration order
            (defaults to DEFAULT_STRATEGY_ORDER)
        extra_strategies: Additional registered loader names appended last

    Returns:
        A StrategyRegistry with the requested strategies
    """
    if config is None:
        from backup_core.config import BackupConfig

        config = BackupConfig()
    selected = list(names or DEFAULT_STRATEGY_ORDER)
    if not config.acquisition.enable_galleries:
        selected = [name for name in selected if name not in ENUMERATION_STRATEGIES]

    registry = StrategyRegistry()
    for name in selected + list(extra_strategies or []):
        if not is_strategy_available(name):
            logger.warning("Unknown strategy requested: %s", name)
            continue
        kwargs = strategy_kwargs(name, config) if name in DEFAULT_STRATEGY_ORDER else {}
        registry.register(get_strategy(name, **kwargs))
    return registry


__all__ = [
    "StrategyRegistry",
    "build_default_registry",
    "get_strategy",
    "list_strategies",
    "is_strategy_available",
    "register_strategy_loader",
    "clear_module_cache",
]
