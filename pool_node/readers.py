"""
Batched reader implementations and loading.

The real batched reader lives outside this package and is plugged in by
import path (`reader.factory: "package.module:callable"` in the config).
StaticReader answers reads from a fixed table of values and backs dry runs
and tests.
"""

from __future__ import annotations

import importlib
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from loguru import logger

from .errors import ConfigError
from .models import Operation, QueryDescriptor, RawResult

Key = tuple[int, str, Operation]


def _key(partition, address, operation) -> Key:
    return (int(partition), str(address).lower(), Operation(operation))


class StaticReader:
    """
    Reader serving fixed values keyed by (partition, address, operation).

    Reads with no matching value come back as failures, which is how an
    unavailable field looks to the decoder.
    """

    def __init__(self, values: Optional[Mapping[Key, Any]] = None):
        self.values: dict[Key, Any] = {}
        self.calls = 0
        for (partition, address, operation), value in (values or {}).items():
            self.set(partition, address, operation, value)

    @classmethod
    def from_entries(cls, entries: Iterable[Mapping]) -> "StaticReader":
        reader = cls()
        for entry in entries:
            try:
                reader.set(entry["partition"], entry["address"], entry["operation"], entry.get("value"))
            except (KeyError, ValueError) as e:
                raise ConfigError(f"Invalid static reader entry {dict(entry)}: {e}")
        return reader

    def set(self, partition, address, operation, value) -> None:
        self.values[_key(partition, address, operation)] = value

    def __call__(self, descriptors: Sequence[QueryDescriptor]) -> list[RawResult]:
        self.calls += 1
        results = []
        for d in descriptors:
            value = self.values.get(_key(d.partition, d.address, d.operation))
            if value is None:
                results.append(RawResult.failure(f"no value for {d.operation.value} on {d.partition}"))
            else:
                results.append(RawResult.success(value))
        return results


def import_callable(path: str) -> Callable:
    """Resolve "package.module:attribute" to a callable."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Expected 'module:callable', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import {module_name}: {e}")
    target = getattr(module, attr, None)
    if not callable(target):
        raise ConfigError(f"{path} is not callable")
    return target


def load_reader(section: Mapping) -> Callable[[Sequence[QueryDescriptor]], Sequence[RawResult]]:
    """
    Build a batched reader from the `reader` section of the config.

    Supported forms:
        {kind: static, values: [{partition, address, operation, value}, ...]}
        {factory: "module:callable", options: {...}}
    """
    if not section:
        raise ConfigError("No reader configured")

    if "factory" in section:
        factory = import_callable(section["factory"])
        reader = factory(**dict(section.get("options") or {}))
        logger.info(f"Reader built from factory {section['factory']}")
        return reader

    kind = section.get("kind", "static")
    if kind == "static":
        reader = StaticReader.from_entries(section.get("values") or [])
        logger.info(f"Static reader loaded with {len(reader.values)} values")
        return reader

    raise ConfigError(f"Unknown reader kind: {kind}")
