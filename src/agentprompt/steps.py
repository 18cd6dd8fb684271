"""Step generation and reconciliation.

Pure functions:

- ``generate_steps(flow, panel_a, panel_b)``: ordered steps for the current
  panel values; conditional templates are skipped while their source field
  is empty.
- ``reconcile_steps(generated, current_steps, removed_ids)``: merge fresh
  steps with the user's edits and deletions.

None of these raise on malformed input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, TypedDict

from agentprompt._frozen import thaw


class Step(TypedDict, total=False):
    """A concrete, user-editable step."""

    # Template-derived
    id: str
    operation: str
    object: str
    source: str
    params: dict[str, Any]
    lenses: list[str]
    output: list[str]
    branch_name: Any
    pr_name: Any
    file_name: Any
    # User-owned
    name_provided: str
    output_selected: str
    outputs_selected: list[str]


#: Keys reconciliation carries over from an existing step when present.
USER_OWNED_KEYS = ("name_provided", "output_selected", "outputs_selected")

_CONTAINER_KEYS = ("lenses", "params", "output")
_MARKER_KEYS = ("branch_name", "pr_name", "file_name")


def is_source_filled(
    source: str | None,
    panel_a: Mapping[str, Any] | None,
    panel_b: Mapping[str, Any] | None,
) -> bool:
    """Return True when the field referenced by ``source`` has a value.

    ``source`` reads ``"panel_a.<field>"`` or ``"panel_b.<field>"``. A missing
    source means the step is unconditional.
    """
    if not source:
        return True
    if not isinstance(source, str):
        return False

    parts = source.split(".")
    if len(parts) != 2:
        return False

    panel, field = parts
    data = panel_a if panel == "panel_a" else panel_b
    value = data.get(field) if isinstance(data, Mapping) else None

    if value is None:
        return False
    if isinstance(value, list | tuple):
        return len(value) > 0
    if isinstance(value, bool):
        return False
    if isinstance(value, int | float):
        return True
    if isinstance(value, str):
        return value.strip() != ""
    return False


def generate_steps(
    flow: Mapping[str, Any] | None,
    panel_a: Mapping[str, Any] | None,
    panel_b: Mapping[str, Any] | None,
) -> list[Step]:
    """Expand a flow's step templates against the current panel values.

    Template order is preserved. Containers are copied so a generated step
    never shares a list or dict with the flow template.
    """
    if not isinstance(flow, Mapping):
        return []
    templates = flow.get("steps")
    if not isinstance(templates, Iterable) or isinstance(templates, str | Mapping):
        return []

    steps: list[Step] = []
    for template in templates:
        if not isinstance(template, Mapping):
            continue
        source = template.get("source")
        if source and not is_source_filled(source, panel_a, panel_b):
            continue

        step: Step = {
            "id": template.get("id"),
            "operation": template.get("operation"),
            "object": template.get("object"),
        }
        for key in _CONTAINER_KEYS:
            # An empty lens list still marks the step as lens-capable.
            if template.get(key) is not None:
                step[key] = thaw(template[key])
        if source:
            step["source"] = source
        for key in _MARKER_KEYS:
            if key in template:
                step[key] = template[key]

        steps.append(step)

    return steps


def reconcile_steps(
    generated: Iterable[Mapping[str, Any]] | None,
    current_steps: Iterable[Mapping[str, Any]] | None,
    removed_ids: Iterable[str] | None,
) -> list[Step]:
    """Merge freshly generated steps with the user's current steps.

    - Steps whose id is in ``removed_ids`` are dropped.
    - A generated step with a matching current step keeps its template fields
      and takes the user's ``lenses`` (when the current step has a non-null
      value, including an explicit empty list), ``name_provided``,
      ``output_selected`` and ``outputs_selected``.
    - Output order is the order of ``generated``.
    """
    current_map: dict[Any, Mapping[str, Any]] = {}
    for step in current_steps or ():
        if isinstance(step, Mapping):
            current_map[step.get("id")] = step
    removed = set(removed_ids or ())

    result: list[Step] = []
    for step in generated or ():
        if not isinstance(step, Mapping) or step.get("id") in removed:
            continue
        merged: Step = thaw(step)
        existing = current_map.get(step.get("id"))
        if existing is not None:
            if existing.get("lenses") is not None:
                merged["lenses"] = thaw(existing["lenses"])
            for key in USER_OWNED_KEYS:
                if key in existing:
                    merged[key] = thaw(existing[key])
        result.append(merged)

    return result
