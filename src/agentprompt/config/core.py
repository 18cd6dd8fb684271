# src/agentprompt/config/core.py

"""Settings schema and resolution.

- ``Settings``: pydantic schema, the single source of truth for field names,
  types, defaults and validation.
- ``ResolvedSettings``: immutable runtime payload handed to the store,
  the serializer and the CLI.
- ``SourceMap``: per-field origin audit for ``resolve_settings(explain=True)``.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from functools import cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, overload
import warnings

from pydantic import BaseModel, Field, ValidationError, field_validator

from agentprompt.errors import ConfigurationError

from .utils import field_spec_hint, get_default_storage_path, should_emit_debug

if TYPE_CHECKING:
    from collections.abc import Mapping

# --- Schema (Pydantic wall) ---


class Settings(BaseModel):
    """Pydantic schema for settings validation and defaults."""

    #: File every prompt starts by reading (rendered as ``Read: @<file>``).
    reference_file: str = Field(default="claude.md", min_length=1)
    #: Branch named in the prompt when the configuration leaves it empty.
    default_branch: str = Field(default="main", min_length=1)
    #: YAML flow file; ``None`` uses the bundled flows.
    flows_path: Path | None = Field(default=None)
    #: JSON file for owner/token persistence; ``None`` uses the default path.
    storage_path: Path | None = Field(default=None)
    #: Namespaced key of the persisted record inside ``storage_path``.
    storage_key: str = Field(default="agent_prompt_state", min_length=1)

    model_config = {"extra": "ignore", "frozen": True}

    @field_validator(
        "reference_file", "default_branch", "storage_key", mode="before"
    )
    @classmethod
    def strip_strings(cls, v: Any) -> Any:
        """Trim surrounding whitespace on string fields."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("flows_path", "storage_path", mode="before")
    @classmethod
    def empty_path_is_none(cls, v: Any) -> Any:
        """Map empty or blank path strings to None (use the default)."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


@cache
def _default_settings() -> dict[str, Any]:
    return Settings().model_dump()


# --- Immutable runtime payload ---


@dataclass(frozen=True)
class ResolvedSettings:
    """Validated settings with defaults applied to optional paths."""

    reference_file: str
    default_branch: str
    flows_path: Path | None
    storage_path: Path
    storage_key: str


# --- Audit types ---


class Origin(str, Enum):
    """Source origin for a settings field value."""

    DEFAULT = "default"
    PROJECT = "project"
    ENV = "env"
    OVERRIDES = "overrides"


SourceMap = dict[str, Origin]


_DOTENV_LOADED: bool = False


def _try_load_dotenv() -> None:
    """Load a ``.env`` file once per process before reading the environment."""
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    from dotenv import load_dotenv

    load_dotenv()
    _DOTENV_LOADED = True


# --- Public resolution API ---


@overload
def resolve_settings(
    overrides: Mapping[str, Any] | None = ...,
    *,
    explain: Literal[True],
) -> tuple[ResolvedSettings, SourceMap]: ...


@overload
def resolve_settings(
    overrides: Mapping[str, Any] | None = ...,
    *,
    explain: Literal[False] = ...,
) -> ResolvedSettings: ...


def resolve_settings(
    overrides: Mapping[str, Any] | None = None,
    *,
    explain: bool = False,
) -> ResolvedSettings | tuple[ResolvedSettings, SourceMap]:
    """Resolve settings from all layers into a ResolvedSettings.

    Precedence (last wins): defaults < pyproject < env < overrides.

    Args:
        overrides: Programmatic overrides.
        explain: If True, also return the per-field SourceMap.

    Returns:
        ResolvedSettings, or ``(ResolvedSettings, SourceMap)`` with ``explain``.

    Raises:
        ConfigurationError: If a layer supplies an invalid value.
    """
    _try_load_dotenv()

    from .loaders import load_env, load_pyproject

    merged, sources = _resolve_layers(
        overrides=overrides or {},
        env=load_env(),
        project=load_pyproject(),
    )

    try:
        settings = Settings.model_validate(merged)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err.get("loc", ())) or "settings"
        msg = err.get("msg") or "invalid value"
        if msg.startswith("Value error, "):
            msg = msg[13:]
        raise ConfigurationError(
            f"Invalid setting {field!r}: {msg}",
            hint=field_spec_hint(field),
        ) from e

    unknown = sorted(k for k in merged if k not in Settings.model_fields)
    if unknown:
        warnings.warn(
            f"Ignoring unknown settings: {', '.join(unknown)}",
            UserWarning,
            stacklevel=2,
        )

    resolved = _freeze(settings)
    if not explain and should_emit_debug():
        with suppress(Exception):
            warnings.warn(
                "Settings audit\n" + audit_text(sources),
                stacklevel=2,
            )

    return (resolved, sources) if explain else resolved


# --- Internal helpers ---


def _freeze(settings: Settings) -> ResolvedSettings:
    return ResolvedSettings(
        reference_file=settings.reference_file,
        default_branch=settings.default_branch,
        flows_path=settings.flows_path,
        storage_path=settings.storage_path or get_default_storage_path(),
        storage_key=settings.storage_key,
    )


def _resolve_layers(
    *,
    overrides: Mapping[str, Any],
    env: Mapping[str, Any],
    project: Mapping[str, Any],
) -> tuple[dict[str, Any], SourceMap]:
    """Merge layers with last-wins precedence, recording each field's origin."""
    layers = [
        (Origin.PROJECT, project),
        (Origin.ENV, env),
        (Origin.OVERRIDES, overrides),
    ]

    out: dict[str, Any] = dict(_default_settings())
    src: SourceMap = dict.fromkeys(out, Origin.DEFAULT)

    for origin, payload in layers:
        for k, v in payload.items():
            out[k] = v
            src[k] = origin

    return out, src


def audit_lines(sources: SourceMap) -> list[str]:
    """Produce one ``field: origin`` line per known settings field."""
    return [
        f"{field}: {sources[field].value}"
        for field in Settings.model_fields
        if field in sources
    ]


def audit_text(sources: SourceMap) -> str:
    """Format the audit as a single string suitable for logging."""
    return "\n".join(audit_lines(sources))
