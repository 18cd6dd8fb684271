"""Completeness scoring for the active flow.

Each flow lists the fields that count toward completeness; each field type
carries a weight. The score is the filled share of the total weight, as an
integer percentage rounded half up.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from agentprompt._frozen import get_path

WEIGHTS: dict[str, int] = {
    "pr_picker": 20,
    "file_picker_multi": 10,
    "text": 10,
    "notes": 10,
    "lens_picker": 5,
    "issue_picker": 5,
}

FLOW_FIELDS: dict[str, tuple[tuple[str, str], ...]] = {
    "fix": (
        ("panel_a.description", "text"),
        ("panel_a.issue_number", "issue_picker"),
        ("panel_a.files", "file_picker_multi"),
        ("panel_b.description", "text"),
        ("panel_b.spec_files", "file_picker_multi"),
        ("panel_b.guideline_files", "file_picker_multi"),
        ("notes.user_text", "notes"),
    ),
    "review": (
        ("panel_a.description", "text"),
        ("panel_a.pr_number", "pr_picker"),
        ("panel_a.files", "file_picker_multi"),
        ("panel_b.lenses", "lens_picker"),
        ("panel_b.spec_files", "file_picker_multi"),
        ("panel_b.guideline_files", "file_picker_multi"),
        ("notes.user_text", "notes"),
    ),
    "implement": (
        ("panel_a.description", "text"),
        ("panel_a.files", "file_picker_multi"),
        ("panel_b.description", "text"),
        ("panel_b.spec_files", "file_picker_multi"),
        ("panel_b.acceptance_criteria", "text"),
        ("notes.user_text", "notes"),
    ),
    "improve": (
        ("panel_a.description", "text"),
        ("panel_a.issue_number", "issue_picker"),
        ("panel_a.files", "file_picker_multi"),
        ("panel_b.lenses", "lens_picker"),
        ("panel_b.description", "text"),
        ("panel_b.issue_number", "issue_picker"),
        ("panel_b.guideline_files", "file_picker_multi"),
        ("notes.user_text", "notes"),
    ),
}


@dataclass(frozen=True)
class Threshold:
    """A score band: lower bound, display color and label."""

    min: int
    color: str
    label: str


# Highest band first.
THRESHOLDS: tuple[Threshold, ...] = (
    Threshold(91, "#4a8c6f", "Excellent"),
    Threshold(81, "#6aaa7a", "Strong"),
    Threshold(71, "#a8c042", "Good"),
    Threshold(61, "#c8a830", "Basic"),
    Threshold(51, "#d07820", "Minimal"),
    Threshold(0, "#c2553a", "Poor"),
)


def is_field_filled(value: Any, field_type: str) -> bool:
    """Return True when ``value`` counts as filled for ``field_type``."""
    if value is None:
        return False
    if field_type in ("file_picker_multi", "lens_picker"):
        return isinstance(value, list | tuple) and len(value) > 0
    if field_type in ("issue_picker", "pr_picker"):
        return value != 0 and value != "" and value is not False
    return isinstance(value, str) and value.strip() != ""


def total_weight(flow_id: str | None) -> int:
    """Return the total attainable weight for a flow (0 when unknown)."""
    fields = FLOW_FIELDS.get(flow_id or "")
    if not fields:
        return 0
    return sum(WEIGHTS.get(field_type, 0) for _, field_type in fields)


def calculate_score(state: Mapping[str, Any] | None) -> int:
    """Return the completeness score (0-100) for the state's active flow."""
    if not isinstance(state, Mapping):
        return 0
    flow_id = get_path(state, "task.flow_id")
    if not isinstance(flow_id, str):
        return 0
    total = total_weight(flow_id)
    if total == 0:
        return 0

    filled = sum(
        WEIGHTS.get(field_type, 0)
        for path, field_type in FLOW_FIELDS[flow_id]
        if is_field_filled(get_path(state, path), field_type)
    )
    # Integer round-half-up of 100 * filled / total.
    return (200 * filled + total) // (2 * total)


def threshold_for(score: int) -> Threshold:
    """Return the highest band whose lower bound ``score`` reaches."""
    for threshold in THRESHOLDS:
        if score >= threshold.min:
            return threshold
    return THRESHOLDS[-1]
