"""Immutable views and explicit update builders for nested state.

State is held as plain nested ``dict``/``list`` values. Readers get frozen
views (``MappingProxyType`` over fresh dicts, tuples for sequences) so a
returned snapshot can never reach back into the owning store. Writers go
through ``thaw``/``set_path``/``deep_merge`` which always copy.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any


def freeze(value: Any) -> Any:
    """Return a deep, read-only copy of ``value``.

    Mappings become ``MappingProxyType`` over a new dict and lists/tuples
    become tuples. Scalars are returned as-is.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, list | tuple):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Return a deep, mutable copy of ``value`` (inverse of :func:`freeze`)."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [thaw(v) for v in value]
    return value


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``source`` into a copy of ``target``.

    Nested mappings merge recursively; sequences and scalars replace the
    target value wholesale. Neither argument is modified.
    """
    result = thaw(target)
    for key, value in source.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = thaw(value)
    return result


def split_path(path: object) -> list[str] | None:
    """Split a dotted path into segments, or return None when malformed."""
    if not isinstance(path, str) or not path:
        return None
    keys = path.split(".")
    if any(not k for k in keys):
        return None
    return keys


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path from nested mappings, returning ``default`` on a miss."""
    keys = split_path(path)
    if keys is None:
        return default
    current = data
    for key in keys:
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return current


def set_path(data: dict[str, Any], keys: list[str], value: Any) -> None:
    """Set a leaf in place, replacing non-mapping intermediates with dicts."""
    *parents, last = keys
    target = data
    for key in parents:
        child = target.get(key)
        if not isinstance(child, dict):
            child = {}
            target[key] = child
        target = child
    target[last] = thaw(value)
