"""Exception hierarchy for agentprompt.

The compilation core (step generation, reconciliation, serialization and
scoring) never raises on malformed input. These exceptions cover the edges:
configuration resolution, flow file loading, and misuse of a closed store.
"""

from __future__ import annotations


class AgentPromptError(Exception):
    """Base exception for all agentprompt errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        """Return the message followed by the hint, when one is attached."""
        msg = super().__str__()
        return f"{msg}. {self.hint}" if self.hint else msg


class ConfigurationError(AgentPromptError):
    """Settings validation or resolution failed."""


class FlowError(AgentPromptError):
    """A flow file could not be read or has no ``flows`` mapping."""


class StateError(AgentPromptError):
    """A state store was used outside its lifecycle."""


# --- Actionable hints ---

HINTS = {
    "flows_root": (
        "The flow file must be a YAML mapping with a top-level 'flows:' key "
        "mapping flow ids to flow definitions."
    ),
    "flows_path": (
        "Set AGENTPROMPT_FLOWS_PATH or [tool.agentprompt] flows_path to an "
        "existing YAML file, or unset it to use the bundled flows."
    ),
    "unknown_flow": "Run 'agentprompt --list-flows' to see the available flow ids.",
    "store_closed": "Create a new StateStore; a closed store cannot be reopened.",
}
