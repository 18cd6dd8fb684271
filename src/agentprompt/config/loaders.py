# src/agentprompt/config/loaders.py

"""Settings loaders for environment variables and ``pyproject.toml``.

Each loader returns a plain dictionary; validation and merging happen in
``core``. Loaders never raise on unreadable input.
"""

from __future__ import annotations

import os
import tomllib
from typing import TYPE_CHECKING, Any

from . import utils

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

# Meta/control variables that steer resolution but aren't settings fields
META_ENV_FIELDS = {"pyproject_path", "debug_config"}


def load_env() -> Mapping[str, Any]:
    """Load settings from ``AGENTPROMPT_*`` environment variables.

    Unknown names are kept; the pydantic schema decides what to do with
    them. ``.env`` loading happens in the resolver, not here.
    """
    config: dict[str, Any] = {}
    prefix = utils.ENV_PREFIX
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        field_name = key[len(prefix) :].lower()
        if not field_name or field_name in META_ENV_FIELDS:
            continue
        config[field_name] = value
    return config


def _read_toml(path: Path) -> dict[str, Any]:
    """Read a TOML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def load_pyproject(path: Path | None = None) -> Mapping[str, Any]:
    """Load the ``[tool.agentprompt]`` table from ``pyproject.toml``.

    Args:
        path: Explicit file to read. Defaults to ``pyproject.toml`` in the
            current directory (or ``AGENTPROMPT_PYPROJECT_PATH``).

    Returns:
        The table as a dict, or an empty dict when absent.
    """
    data = _read_toml(path or utils.get_pyproject_path())
    section = data.get("tool", {}).get(utils.CONFIG_TOOL_NAME, {})
    return dict(section) if isinstance(section, dict) else {}
