"""agentprompt: compile guided task answers into a structured agent prompt.

Public API:
    - load_flows(): Flow templates from the bundled or a custom YAML file
    - StateStore: Canonical state with synchronous prompt recompute
    - build_prompt(): Serialize state into prompt text
    - calculate_score() / threshold_for(): Completeness meter
    - generate_steps() / reconcile_steps(): Step list maintenance
"""

from __future__ import annotations

import logging

from agentprompt.config import ResolvedSettings, resolve_settings
from agentprompt.errors import (
    AgentPromptError,
    ConfigurationError,
    FlowError,
    StateError,
)
from agentprompt.flows import FlowCatalog, load_flows, parse_flows
from agentprompt.persistence import JSONFileStore, MemoryStore, PersistenceBackend
from agentprompt.prompt import build_prompt, escape_xml, format_step
from agentprompt.quality import Threshold, calculate_score, threshold_for, total_weight
from agentprompt.session import (
    StepRegenerator,
    remove_file_from_step,
    remove_step,
    select_flow,
    set_step_name,
    toggle_lens,
    toggle_output,
)
from agentprompt.state import DEFAULT_STATE, PERSISTENT_PATHS, StateStore
from agentprompt.steps import Step, generate_steps, is_source_filled, reconcile_steps

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("agentprompt")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("agentprompt").addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Pipeline
    "generate_steps",
    "reconcile_steps",
    "is_source_filled",
    "build_prompt",
    "escape_xml",
    "format_step",
    "calculate_score",
    "total_weight",
    "threshold_for",
    # State
    "StateStore",
    "DEFAULT_STATE",
    "PERSISTENT_PATHS",
    "StepRegenerator",
    "select_flow",
    "remove_step",
    "remove_file_from_step",
    "toggle_lens",
    "toggle_output",
    "set_step_name",
    # Flows and persistence
    "FlowCatalog",
    "load_flows",
    "parse_flows",
    "PersistenceBackend",
    "JSONFileStore",
    "MemoryStore",
    # Types
    "Step",
    "Threshold",
    "ResolvedSettings",
    "resolve_settings",
    # Errors
    "AgentPromptError",
    "ConfigurationError",
    "FlowError",
    "StateError",
]
