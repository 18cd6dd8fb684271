"""Session helpers: flow selection, regeneration and step edits through the store."""

from __future__ import annotations

import pytest

from agentprompt._frozen import thaw
from agentprompt.errors import FlowError
from agentprompt.session import (
    StepRegenerator,
    remove_file_from_step,
    remove_step,
    select_flow,
    set_step_name,
    toggle_lens,
    toggle_output,
)
from agentprompt.state import StateStore

pytestmark = pytest.mark.integration


def _ids(store: StateStore) -> list[str]:
    return [s["id"] for s in store.read()["steps"]["enabled_steps"]]


def _step(store: StateStore, step_id: str):
    return next(s for s in store.read()["steps"]["enabled_steps"] if s["id"] == step_id)


@pytest.fixture
def session(store: StateStore, catalog):
    """A store with an attached regenerator, on the fix flow."""
    regenerator = StepRegenerator(store, catalog).attach()
    select_flow(store, catalog, "fix")
    yield store
    regenerator.detach()


def test_select_flow_seeds_and_regenerates(session: StateStore) -> None:
    """Conditional steps disappear until their source field is filled."""
    assert _ids(session) == [
        "read-claude",
        "identify-cause",
        "create-branch",
        "implement-fix",
        "run-tests",
        "commit-pr",
    ]


def test_select_unknown_flow_raises(store: StateStore, catalog) -> None:
    with pytest.raises(FlowError) as exc:
        select_flow(store, catalog, "nope")

    assert "--list-flows" in str(exc.value)


def test_select_flow_applies_default_lenses(store: StateStore, catalog) -> None:
    select_flow(store, catalog, "review")

    assert store.read()["panel_b"]["lenses"] == ("semantics", "structure")


def test_filling_a_panel_field_adds_its_step(session: StateStore) -> None:
    session.write("panel_a.files", ["src/login.py"])

    assert _ids(session)[:2] == ["read-claude", "read-location"]

    session.write("panel_a.files", [])

    assert "read-location" not in _ids(session)


def test_removed_step_stays_removed_across_regeneration(session: StateStore) -> None:
    remove_step(session, "create-branch")
    session.write("panel_a.description", "Login fails")
    session.write("panel_a.files", ["a.py"])

    snap = session.read()
    assert "create-branch" not in _ids(session)
    assert snap["steps"]["removed_step_ids"] == ("create-branch",)


def test_remove_step_twice_records_id_once(session: StateStore) -> None:
    remove_step(session, "run-tests")
    remove_step(session, "run-tests")

    assert session.read()["steps"]["removed_step_ids"] == ("run-tests",)


def test_flow_switch_clears_removed_steps(session: StateStore, catalog) -> None:
    remove_step(session, "create-branch")

    select_flow(session, catalog, "implement")

    assert session.read()["steps"]["removed_step_ids"] == ()
    assert "create-branch" in _ids(session)


def test_reselecting_same_flow_keeps_unfilled_steps_out(session: StateStore, catalog) -> None:
    select_flow(session, catalog, "fix")

    ids = _ids(session)
    for step_id in ("read-location", "read-issue", "read-specs", "read-guidelines"):
        assert step_id not in ids
    assert ids[0] == "read-claude"


def test_reselecting_same_flow_restores_removed_step(session: StateStore, catalog) -> None:
    remove_step(session, "create-branch")

    select_flow(session, catalog, "fix")

    assert "create-branch" in _ids(session)
    assert "read-location" not in _ids(session)


def test_later_observer_ends_on_regenerated_steps(store: StateStore, catalog, recorder) -> None:
    """Observers registered after the regenerator see its write last."""
    regenerator = StepRegenerator(store, catalog).attach()
    store.subscribe(recorder)

    select_flow(store, catalog, "fix")
    store.write("panel_a.issue_number", 7)

    now = store.read()
    assert thaw(recorder.last["steps"]) == thaw(now["steps"])
    assert recorder.last["prompt"] == now["prompt"]
    regenerator.detach()


def test_lens_edits_survive_panel_changes(session: StateStore) -> None:
    toggle_lens(session, "identify-cause", "security")
    toggle_lens(session, "identify-cause", "performance")
    session.write("panel_a.issue_number", 12)

    assert "read-issue" in _ids(session)
    assert _step(session, "identify-cause")["lenses"] == ("security", "performance")

    toggle_lens(session, "identify-cause", "security")

    assert _step(session, "identify-cause")["lenses"] == ("performance",)


def test_cleared_lenses_stay_cleared(store: StateStore, catalog) -> None:
    StepRegenerator(store, catalog).attach()
    select_flow(store, catalog, "review")
    store.write("panel_a.pr_number", 42)
    assert _step(store, "review-pr")["lenses"] == ("semantics", "structure")

    toggle_lens(store, "review-pr", "semantics")
    toggle_lens(store, "review-pr", "structure")
    store.write("panel_b.spec_files", ["SPEC.md"])

    assert _step(store, "review-pr")["lenses"] == ()


def test_toggle_output_migrates_from_template_default(store: StateStore, catalog) -> None:
    StepRegenerator(store, catalog).attach()
    select_flow(store, catalog, "review")
    store.write("configuration.owner", "alice")
    store.write("configuration.repo", "wonderland")
    store.write("panel_a.pr_number", 42)

    toggle_output(store, "provide-feedback-pr", "pr_comment")

    assert _step(store, "provide-feedback-pr")["outputs_selected"] == ("here", "pr_comment")
    assert "Provide feedback here (in this interface) AND as a PR comment" in store.prompt

    toggle_output(store, "provide-feedback-pr", "here")

    assert _step(store, "provide-feedback-pr")["outputs_selected"] == ("pr_comment",)


def test_toggle_output_starts_from_single_selection(session: StateStore) -> None:
    session.write(
        "steps.enabled_steps",
        [{"id": "feedback", "object": "review_feedback", "output_selected": "report_file"}],
    )

    toggle_output(session, "feedback", "issue_comment")

    assert _step(session, "feedback")["outputs_selected"] == ("report_file", "issue_comment")


def test_set_step_name_and_clear(session: StateStore) -> None:
    session.write("configuration.owner", "alice")
    session.write("configuration.repo", "wonderland")

    set_step_name(session, "create-branch", "fix/login")
    session.write("panel_a.description", "still here after regeneration")

    assert _step(session, "create-branch")["name_provided"] == "fix/login"
    assert "Create branch — name it fix/login" in session.prompt

    set_step_name(session, "create-branch", "")

    assert "name_provided" not in _step(session, "create-branch")


def test_edits_to_unknown_step_are_ignored(session: StateStore, recorder) -> None:
    session.subscribe(recorder)

    toggle_lens(session, "missing", "security")
    set_step_name(session, "missing", "x")
    toggle_output(session, "missing", "here")

    assert recorder.snapshots == []


def test_remove_file_from_step_drops_conditional_step(session: StateStore) -> None:
    session.write("panel_a.files", ["a.py", "b.py"])

    remove_file_from_step(session, "read-location", "a.py")
    assert session.read()["panel_a"]["files"] == ("b.py",)
    assert "read-location" in _ids(session)

    remove_file_from_step(session, "read-location", "b.py")
    assert "read-location" not in _ids(session)


def test_regenerator_skips_unchanged_panels(store: StateStore, catalog, recorder) -> None:
    StepRegenerator(store, catalog).attach()
    select_flow(store, catalog, "fix")
    store.subscribe(recorder)

    store.write("notes.user_text", "no panel change")

    # One notification for the notes write; no follow-up step write.
    assert len(recorder.snapshots) == 1


def test_detached_regenerator_stops_updating(store: StateStore, catalog) -> None:
    regenerator = StepRegenerator(store, catalog).attach()
    select_flow(store, catalog, "fix")
    regenerator.detach()

    store.write("panel_a.files", ["a.py"])

    assert "read-location" not in _ids(store)
