"""Store-bound step editing.

These helpers are what an interactive host calls when the user picks a flow
or edits the step list. Each one reads a snapshot, builds the new value with
plain copies and commits it with a single ``StateStore.write``.

`StepRegenerator` is the observer that keeps ``steps.enabled_steps`` in sync
with the panels: when the flow or either panel changes it regenerates the
steps, reconciles them with the user's edits and writes them back only if
they differ.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import TYPE_CHECKING, Any

from agentprompt._frozen import get_path, thaw
from agentprompt.errors import HINTS, FlowError
from agentprompt.state import ENABLED_STEPS_PATH, FLOW_ID_PATH, REMOVED_STEP_IDS_PATH
from agentprompt.steps import generate_steps, reconcile_steps

if TYPE_CHECKING:
    from agentprompt.flows import FlowCatalog
    from agentprompt.state import StateStore

log = logging.getLogger(__name__)


class StepRegenerator:
    """Observer that regenerates steps when the flow or a panel changes."""

    def __init__(self, store: StateStore, catalog: FlowCatalog) -> None:
        self._store = store
        self._catalog = catalog
        self._last: tuple[Any, Any, Any] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self) -> StepRegenerator:
        """Subscribe to the store and regenerate once for the current state."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self)
        self(self._store.read())
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __call__(self, snapshot: Mapping[str, Any]) -> None:
        flow_id = get_path(snapshot, FLOW_ID_PATH)
        if not flow_id:
            return

        key = (flow_id, thaw(snapshot.get("panel_a")), thaw(snapshot.get("panel_b")))
        if key == self._last:
            return
        self._last = key

        flow = self._catalog.get(flow_id)
        if flow is None:
            log.debug("No flow %r in catalog; steps left as-is", flow_id)
            return

        current = get_path(snapshot, ENABLED_STEPS_PATH)
        reconciled = reconcile_steps(
            generate_steps(flow, snapshot.get("panel_a"), snapshot.get("panel_b")),
            current,
            get_path(snapshot, REMOVED_STEP_IDS_PATH),
        )
        if reconciled != thaw(current):
            log.debug("Regenerated %d steps for flow %r", len(reconciled), flow_id)
            self._store.write(ENABLED_STEPS_PATH, reconciled)


def select_flow(store: StateStore, catalog: FlowCatalog, flow_id: str) -> None:
    """Switch the store to ``flow_id`` with that flow's defaults.

    Raises:
        FlowError: If the catalog has no flow with that id.
    """
    flow = catalog.get(flow_id)
    if flow is None:
        raise FlowError(f"Unknown flow '{flow_id}'", hint=HINTS["unknown_flow"])
    store.apply_flow_defaults(flow_id, flow)


def remove_step(store: StateStore, step_id: str) -> None:
    """Delete a step and remember its id so regeneration keeps it out."""

    def updater(state: dict[str, Any]) -> dict[str, Any]:
        steps = state.get("steps") if isinstance(state.get("steps"), dict) else {}
        removed = list(steps.get("removed_step_ids") or [])
        if step_id not in removed:
            removed.append(step_id)
        return {
            "steps": {
                "enabled_steps": [
                    s
                    for s in steps.get("enabled_steps") or []
                    if not (isinstance(s, Mapping) and s.get("id") == step_id)
                ],
                "removed_step_ids": removed,
            }
        }

    store.write(updater)


def toggle_lens(store: StateStore, step_id: str, lens: str) -> None:
    """Add ``lens`` to a step's lenses, or remove it when already present."""

    def edit(step: dict[str, Any]) -> None:
        current = list(step.get("lenses") or [])
        step["lenses"] = [x for x in current if x != lens] if lens in current else [*current, lens]

    _edit_step(store, step_id, edit)


def toggle_output(store: StateStore, step_id: str, mode: str) -> None:
    """Toggle a delivery mode in the step's ``outputs_selected``.

    A step without ``outputs_selected`` starts from its ``output_selected``
    value, else from the first template ``output`` mode.
    """

    def edit(step: dict[str, Any]) -> None:
        current = step.get("outputs_selected")
        if current is None:
            if step.get("output_selected"):
                current = [step["output_selected"]]
            else:
                current = [m for m in (step.get("output") or [])[:1] if m]
        current = list(current)
        step["outputs_selected"] = (
            [m for m in current if m != mode] if mode in current else [*current, mode]
        )

    _edit_step(store, step_id, edit)


def set_step_name(store: StateStore, step_id: str, name: str | None) -> None:
    """Set a step's optional name; an empty name removes it."""

    def edit(step: dict[str, Any]) -> None:
        if name:
            step["name_provided"] = name
        else:
            step.pop("name_provided", None)

    _edit_step(store, step_id, edit)


def remove_file_from_step(store: StateStore, step_id: str, path: str) -> None:
    """Remove ``path`` from the panel field a conditional step is sourced from.

    The step itself disappears on the next regeneration once the field is
    empty.
    """
    step = _find_step(store.read(), step_id)
    source = step.get("source") if step is not None else None
    if not isinstance(source, str) or source.count(".") != 1:
        log.debug("Step %r has no panel source; nothing to remove", step_id)
        return
    files = get_path(store.read(), source)
    if not isinstance(files, list | tuple):
        return
    store.write(source, [f for f in files if f != path])


def _find_step(snapshot: Mapping[str, Any], step_id: str) -> Mapping[str, Any] | None:
    for step in get_path(snapshot, ENABLED_STEPS_PATH) or ():
        if isinstance(step, Mapping) and step.get("id") == step_id:
            return step
    return None


def _edit_step(
    store: StateStore, step_id: str, edit: Callable[[dict[str, Any]], None]
) -> None:
    steps = thaw(get_path(store.read(), ENABLED_STEPS_PATH)) or []
    for step in steps:
        if isinstance(step, dict) and step.get("id") == step_id:
            edit(step)
            store.write(ENABLED_STEPS_PATH, steps)
            return
    log.debug("No enabled step %r; edit ignored", step_id)
