# src/agentprompt/config/__init__.py

"""Settings management for agentprompt.

Resolve once, freeze, then pass explicitly: ``resolve_settings`` merges
defaults, ``[tool.agentprompt]`` in ``pyproject.toml``, ``AGENTPROMPT_*``
environment variables and programmatic overrides into an immutable
``ResolvedSettings``.
"""

# ruff: noqa: I001

from .core import (
    Origin,
    ResolvedSettings,
    Settings,
    SourceMap,
    audit_lines,
    audit_text,
    resolve_settings,
)
from .utils import field_spec_hint

__all__ = [  # noqa: RUF022
    "resolve_settings",
    "ResolvedSettings",
    "Settings",
    "Origin",
    "SourceMap",
    "audit_lines",
    "audit_text",
    "field_spec_hint",
]
