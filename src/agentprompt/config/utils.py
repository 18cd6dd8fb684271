# src/agentprompt/config/utils.py

"""Configuration constants and path helpers.

Pure helpers that can be imported from both the resolver and the loaders
without creating import cycles.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Callable

# --- Constants ---

CONFIG_TOOL_NAME = "agentprompt"

ENV_PREFIX = "AGENTPROMPT_"

PYPROJECT_PATH_VAR = "AGENTPROMPT_PYPROJECT_PATH"
DEBUG_CONFIG_VAR = "AGENTPROMPT_DEBUG_CONFIG"

# --- Path Utilities ---


def get_config_path(path_type: Literal["project", "storage"]) -> Path:
    """Get a default file path with environment override support.

    Falls back to a cwd-based path for ``storage`` when the home directory
    cannot be resolved (restricted environments).
    """
    specs: dict[str, tuple[str | None, Callable[[], Path]]] = {
        "project": (
            PYPROJECT_PATH_VAR,
            lambda: Path.cwd() / "pyproject.toml",
        ),
        "storage": (
            None,
            lambda: Path.home() / ".config" / CONFIG_TOOL_NAME / "state.json",
        ),
    }
    env_var, default_factory = specs[path_type]
    if env_var and (override := os.environ.get(env_var)):
        return Path(override)
    try:
        return default_factory()
    except RuntimeError:
        if path_type == "storage":
            return Path.cwd() / f".{CONFIG_TOOL_NAME}-state.json"
        raise


def get_pyproject_path() -> Path:
    """Return the path of the project ``pyproject.toml``."""
    return get_config_path("project")


def get_default_storage_path() -> Path:
    """Return the default JSON file used to persist owner and token."""
    return get_config_path("storage")


def field_spec_hint(field: str) -> str:
    """Return a compact hint for setting a settings field via env or file."""
    env_key = f"{ENV_PREFIX}{field.upper()}"
    return f"Set {env_key} or [tool.{CONFIG_TOOL_NAME}] {field} in pyproject.toml."


def should_emit_debug() -> bool:
    """Return True when the settings audit should be emitted as a warning."""
    return os.environ.get(DEBUG_CONFIG_VAR, "").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }
