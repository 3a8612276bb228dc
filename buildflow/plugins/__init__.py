"""Adapter registry.

Built-in adapters register themselves with :func:`register_adapter`. A build
file may also reference any importable callable or adapter class as
``"package.module:attribute"``.
"""

import importlib
import inspect

from buildflow.errors import ConfigError

from .base import AsyncHandle, FunctionAdapter, PluginAdapter, TaskContext, coerce_outcome

_ADAPTERS: dict[str, type[PluginAdapter]] = {}
_builtins_loaded = False


def register_adapter(name: str):
    """Class decorator registering a :class:`PluginAdapter` under ``name``."""

    def decorator(cls: type[PluginAdapter]) -> type[PluginAdapter]:
        if name in _ADAPTERS and _ADAPTERS[name] is not cls:
            raise ValueError(f"Adapter '{name}' is already registered")
        cls.name = name
        _ADAPTERS[name] = cls
        return cls

    return decorator


def _load_builtins() -> None:
    global _builtins_loaded
    if _builtins_loaded:
        return
    from . import clean, command, compress, copy, dev_server, test_harness  # noqa: F401

    _builtins_loaded = True


def available_adapters() -> list[str]:
    _load_builtins()
    return sorted(_ADAPTERS)


def _import_reference(reference: str) -> PluginAdapter:
    module_name, _, attr = reference.partition(":")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot import adapter '{reference}': {e}") from e

    if inspect.isclass(target) and issubclass(target, PluginAdapter):
        return target()
    if isinstance(target, PluginAdapter):
        return target
    if callable(target):
        return FunctionAdapter(target, name=reference)
    raise ConfigError(f"Adapter '{reference}' is neither a PluginAdapter nor a callable")


def get_adapter(reference: str) -> PluginAdapter:
    """Instantiate the adapter registered as ``reference``.

    Raises:
        ConfigError: If no such adapter exists.
    """
    if ":" in reference:
        return _import_reference(reference)

    _load_builtins()
    if reference not in _ADAPTERS:
        raise ConfigError(
            f"Unknown adapter '{reference}'. Available: {', '.join(sorted(_ADAPTERS))}"
        )
    return _ADAPTERS[reference]()


__all__ = [
    "AsyncHandle",
    "FunctionAdapter",
    "PluginAdapter",
    "TaskContext",
    "available_adapters",
    "coerce_outcome",
    "get_adapter",
    "register_adapter",
]
