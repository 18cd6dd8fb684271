"""Prompt serializer: canonical state to prompt text.

Overview
--------
``build_prompt`` is a pure function. Identical state yields byte-identical
text. The output has a fixed shape::

    <prompt>
      <context>  repository, branch, optional PAT line  </context>
      <todo>
        Step 1: Read: @claude.md
        Step 2: flow-specific understanding step (when there is panel input)
        Step 3..: one line per enabled step, in list order
        Step n: flow-specific feedback step (known flows only)
      </todo>
    </prompt>
    <notes> ... </notes>   (only for non-blank notes)

Every piece of user text goes through ``escape_xml``; the structural tags
themselves are emitted verbatim.

Sharp edge: the reference file
------------------------------
Item 1 always reads the reference file. An enabled step whose id is
``REFERENCE_STEP_ID`` is folded into item 1 instead of being rendered
again, so removing that step does not change the output.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

DEFAULT_REFERENCE_FILE = "claude.md"
DEFAULT_BRANCH = "main"
REFERENCE_STEP_ID = "read-claude"

FLOW_LABELS = {
    "fix": "Fix / Debug",
    "review": "Review / Analyze",
    "implement": "Implement / Build",
    "improve": "Improve / Modify",
}

# Value of the task="..." attribute; the fix flow is announced as a debug task.
TASK_IDS = {
    "fix": "debug",
    "review": "review",
    "implement": "implement",
    "improve": "improve",
}

FEEDBACK_STEP_IDS = frozenset({"provide-feedback-pr", "provide-feedback-files"})

OUTPUT_MODE_PHRASES = {
    "here": "here (in this interface)",
    "pr_comment": "as a PR comment",
    "pr_inline_comments": "via PR inline comments at relevant line numbers",
    "issue_comment": "as a GitHub issue comment",
    "report_file": "as a committed report file in the repository",
}

_STEP_INDENT = "    "
_BODY_INDENT = " " * 14
_DETAIL_INDENT = " " * 16

_HUMAN = "HUMAN (me) here (in this interface)"
_STOP_CLAUSE = (
    "STOP and DO NOT proceed to next steps, share your interpretation with "
    "HUMAN and ask for confirmation or clarification, and await HUMAN feedback."
)


def build_prompt(
    state: Mapping[str, Any] | None,
    *,
    reference_file: str = DEFAULT_REFERENCE_FILE,
    default_branch: str = DEFAULT_BRANCH,
) -> str:
    """Serialize canonical state into prompt text.

    Args:
        state: Canonical state mapping (plain dicts or a frozen snapshot).
        reference_file: File read by the first to-do item.
        default_branch: Branch named when ``configuration.branch`` is empty.

    Returns:
        The prompt, or ``""`` when no target repository is identified.
    """
    if not isinstance(state, Mapping):
        return ""

    configuration = _mapping(state.get("configuration"))
    owner = configuration.get("owner")
    repo = configuration.get("repo")
    if not owner or not repo:
        return ""

    flow_id = _mapping(state.get("task")).get("flow_id") or ""
    panel_a = _mapping(state.get("panel_a"))
    panel_b = _mapping(state.get("panel_b"))
    enabled_steps = _sequence(_mapping(state.get("steps")).get("enabled_steps"))

    lines = ["<prompt>"]
    lines.extend(
        context_lines(
            flow_id,
            owner=owner,
            repo=repo,
            branch=configuration.get("branch") or default_branch,
            token=configuration.get("access_token"),
        )
    )

    items = [f"Read: @{escape_xml(reference_file)}"]
    task_step = build_task_step(flow_id, panel_a, panel_b, state.get("improve_scope"))
    if task_step:
        items.append(task_step)
    for step in enabled_steps:
        if not isinstance(step, Mapping) or step.get("id") == REFERENCE_STEP_ID:
            continue
        items.extend(step_items(step))
    feedback = build_feedback_step(flow_id, enabled_steps)
    if feedback:
        items.append(feedback)

    lines.append("  <todo>")
    lines.extend(
        f"{_STEP_INDENT}Step {number}: {item}"
        for number, item in enumerate(items, start=1)
    )
    lines.append("  </todo>")
    lines.append("</prompt>")

    notes = _mapping(state.get("notes")).get("user_text")
    if isinstance(notes, str) and notes.strip():
        lines.append("<notes>")
        lines.append(f"  Critical note: {escape_xml(notes.strip())}")
        lines.append("</notes>")

    return "\n".join(lines)


# --- Sections ---


def context_lines(
    flow_id: str, *, owner: str, repo: str, branch: str, token: str | None
) -> list[str]:
    """Render the ``<context>`` block naming the repository and branch."""
    label = FLOW_LABELS.get(flow_id) or flow_id or "task"
    task_id = TASK_IDS.get(flow_id) or flow_id or "task"
    lines = [
        "  <context>",
        f'    Please help <task="{escape_xml(task_id)}"> {escape_xml(label)} </task> '
        "by executing below 'todo' steps",
        f"    for <repository> https://github.com/{escape_xml(owner)}/{escape_xml(repo)} "
        "</repository>",
        f"    on <branch> {escape_xml(branch)} </branch>.",
    ]
    if token:
        lines.append(f"    Authenticate using PAT: <PAT> {escape_xml(token)} </PAT>.")
    lines.append(
        f"    Please provide one sentence feedback to {_HUMAN} after each step "
        "(except step 1), and proceed to next step."
    )
    lines.append("  </context>")
    return lines


def step_items(step: Mapping[str, Any]) -> list[str]:
    """Render one enabled step as zero or more to-do items.

    A ``read`` step carrying ``params.files`` becomes one item per file.
    """
    files = _sequence(_mapping(step.get("params")).get("files"))
    if step.get("operation") == "read" and files:
        return [f"Read @{escape_xml(path)}" for path in files]

    text = format_step(step)
    return [text] if text else []


def format_step(step: Mapping[str, Any] | None) -> str:
    """Format a step as ``<Operation> <object> [params] [— focus on [...]]``."""
    if not isinstance(step, Mapping):
        return ""

    parts = [
        f"{_capitalize(escape_xml(step.get('operation')))} "
        f"{escape_xml(step.get('object'))}".strip()
    ]

    param_parts = []
    for key, value in _mapping(step.get("params")).items():
        if value is None or value == "":
            continue
        text = escape_xml(_scalar_text(value))
        param_parts.append(f"@{text}" if key == "file" else text)
    if param_parts:
        parts.append(", ".join(param_parts))

    lenses = _sequence(step.get("lenses"))
    if lenses:
        parts.append(f"— focus on [{', '.join(escape_xml(lens) for lens in lenses)}]")

    if step.get("name_provided"):
        parts.append(f"— name it {escape_xml(step['name_provided'])}")

    return " ".join(part for part in parts if part)


def build_task_step(
    flow_id: str,
    panel_a: Mapping[str, Any],
    panel_b: Mapping[str, Any],
    improve_scope: str | None = None,
) -> str | None:
    """Build the flow-specific understanding step from panel input."""
    match flow_id:
        case "fix":
            return _fix_task(panel_a, panel_b)
        case "review":
            return _review_task(panel_a, panel_b)
        case "implement":
            return _implement_task(panel_a, panel_b)
        case "improve":
            return _improve_task(panel_a, panel_b, improve_scope)
        case _:
            return _generic_task(panel_a, panel_b)


def build_feedback_step(
    flow_id: str, enabled_steps: Sequence[Mapping[str, Any]]
) -> str | None:
    """Build the closing feedback step; None for unknown flows."""
    match flow_id:
        case "fix":
            return _bullets(
                f"Provide concise feedback to {_HUMAN} include:",
                "Your understanding of the issue in one sentence.",
                "The root cause you identified.",
                "The action you took: create branch (incl name and link), implemented "
                "fix by editing files (incl file names), ran tests (incl which ones), "
                "verified issue is solved, committed PR (incl PR name and link)",
            )
        case "review":
            return _review_feedback(selected_output_modes(enabled_steps))
        case "implement":
            return _bullets(
                f"Provide concise feedback to {_HUMAN} include:",
                "Summary of what you implemented in one sentence.",
                "Files created or modified with brief description of changes.",
                "Tests run and results.",
                "PR link.",
            )
        case "improve":
            return _bullets(
                f"Provide concise feedback to {_HUMAN} include:",
                "Summary of improvements made, one sentence each improvement type.",
                "Files modified with brief description of changes.",
                "How the improvements address the desired outcome.",
                "PR link.",
            )
        case _:
            return None


def selected_output_modes(enabled_steps: Sequence[Mapping[str, Any]]) -> list[str]:
    """Return the delivery modes chosen on the first feedback-type step.

    Preference: ``outputs_selected``, then ``output_selected``, then the
    template's first ``output``; ``["here"]`` when nothing applies.
    """
    for step in enabled_steps:
        if not isinstance(step, Mapping):
            continue
        if step.get("id") not in FEEDBACK_STEP_IDS and step.get("object") != "review_feedback":
            continue
        selected = _sequence(step.get("outputs_selected"))
        if selected:
            return [str(mode) for mode in selected]
        if step.get("output_selected"):
            return [str(step["output_selected"])]
        output = _sequence(step.get("output"))
        if output and output[0]:
            return [str(output[0])]
        break
    return ["here"]


# --- Flow-specific task steps ---


def _fix_task(panel_a: Mapping[str, Any], panel_b: Mapping[str, Any]) -> str:
    lines = [
        "Read and investigate the 'undesired_behavior' and 'expected_behavior' "
        "to understand the issue:"
    ]
    lines.append(f"{_BODY_INDENT}<undesired_behavior>")
    if panel_a.get("description"):
        lines.append(
            f"{_DETAIL_INDENT}Undesired behavior observed by user is: "
            f"{escape_xml(panel_a['description'])}."
        )
    if panel_a.get("issue_number"):
        lines.append(
            f"{_DETAIL_INDENT}Attempt to learn more regarding the undesired behavior "
            f"by reading issue #{escape_xml(panel_a['issue_number'])}."
        )
    if _sequence(panel_a.get("files")):
        lines.append(
            f"{_DETAIL_INDENT}Attempt to learn more regarding the undesired behavior "
            f"by reading files {format_file_list(panel_a['files'])}."
        )
    lines.append(f"{_BODY_INDENT}</undesired_behavior>")

    lines.append(f"{_BODY_INDENT}<expected_behavior>")
    if panel_b.get("description"):
        lines.append(
            f"{_DETAIL_INDENT}Expected behavior after the fix: "
            f"{escape_xml(panel_b['description'])}."
        )
    if _sequence(panel_b.get("spec_files")):
        lines.append(
            f"{_DETAIL_INDENT}Reference specifications: "
            f"{format_file_list(panel_b['spec_files'])}."
        )
    if _sequence(panel_b.get("guideline_files")):
        lines.append(
            f"{_DETAIL_INDENT}Follow guidelines: {format_file_list(panel_b['guideline_files'])}."
        )
    lines.append(f"{_BODY_INDENT}</expected_behavior>")
    lines.append(f"{_BODY_INDENT}If unclear or high ambiguity, {_STOP_CLAUSE}")
    return "\n".join(lines)


def _review_task(panel_a: Mapping[str, Any], panel_b: Mapping[str, Any]) -> str:
    lines = [
        "Read and investigate the 'review_subject' and 'review_criteria' "
        "to understand what to review:"
    ]
    lines.append(f"{_BODY_INDENT}<review_subject>")
    if panel_a.get("pr_number"):
        lines.append(
            f"{_DETAIL_INDENT}Review PR #{escape_xml(panel_a['pr_number'])}. "
            "Fetch and examine the PR diff."
        )
    if _sequence(panel_a.get("files")):
        lines.append(
            f"{_DETAIL_INDENT}Review files: {format_file_list(panel_a['files'])}. "
            "Read and examine each file."
        )
    if panel_a.get("description"):
        lines.append(
            f"{_DETAIL_INDENT}Context provided by user: {escape_xml(panel_a['description'])}."
        )
    lines.append(f"{_BODY_INDENT}</review_subject>")

    lines.append(f"{_BODY_INDENT}<review_criteria>")
    if _sequence(panel_b.get("lenses")):
        lines.append(f"{_DETAIL_INDENT}Focus on: [{_lens_list(panel_b['lenses'])}].")
    if _sequence(panel_b.get("spec_files")):
        lines.append(
            f"{_DETAIL_INDENT}Evaluate against specifications: "
            f"{format_file_list(panel_b['spec_files'])}."
        )
    if _sequence(panel_b.get("guideline_files")):
        lines.append(
            f"{_DETAIL_INDENT}Evaluate against guidelines: "
            f"{format_file_list(panel_b['guideline_files'])}."
        )
    lines.append(f"{_BODY_INDENT}</review_criteria>")
    lines.append(
        f"{_BODY_INDENT}If unclear or high ambiguity about what to review or the "
        f"criteria, {_STOP_CLAUSE}"
    )
    return "\n".join(lines)


def _implement_task(panel_a: Mapping[str, Any], panel_b: Mapping[str, Any]) -> str:
    lines = [
        "Read and investigate the 'existing_context' and 'requirements' "
        "to understand what to build:"
    ]
    lines.append(f"{_BODY_INDENT}<existing_context>")
    if panel_a.get("description"):
        lines.append(
            f"{_DETAIL_INDENT}Context provided by user: {escape_xml(panel_a['description'])}."
        )
    if _sequence(panel_a.get("files")):
        lines.append(
            f"{_DETAIL_INDENT}Build upon existing files: {format_file_list(panel_a['files'])}."
        )
    lines.append(f"{_BODY_INDENT}</existing_context>")

    lines.append(f"{_BODY_INDENT}<requirements>")
    if panel_b.get("description"):
        lines.append(f"{_DETAIL_INDENT}{escape_xml(panel_b['description'])}")
    if _sequence(panel_b.get("spec_files")):
        lines.append(
            f"{_DETAIL_INDENT}Specifications to follow: "
            f"{format_file_list(panel_b['spec_files'])}."
        )
    if panel_b.get("acceptance_criteria"):
        lines.append(
            f"{_DETAIL_INDENT}Acceptance criteria: "
            f"{escape_xml(panel_b['acceptance_criteria'])}."
        )
    lines.append(f"{_BODY_INDENT}</requirements>")
    lines.append(
        f"{_BODY_INDENT}If unclear or high ambiguity about what to build, {_STOP_CLAUSE}"
    )
    return "\n".join(lines)


def _improve_task(
    panel_a: Mapping[str, Any], panel_b: Mapping[str, Any], improve_scope: str | None
) -> str:
    lines = [
        "Read and investigate the 'current_state' and 'desired_outcome' "
        "to understand what to improve:"
    ]
    lines.append(f"{_BODY_INDENT}<current_state>")
    if panel_a.get("description"):
        lines.append(f"{_DETAIL_INDENT}{escape_xml(panel_a['description'])}")
    if panel_a.get("issue_number"):
        lines.append(
            f"{_DETAIL_INDENT}Related issue describing current state: "
            f"#{escape_xml(panel_a['issue_number'])}. Read this issue for context."
        )
    if _sequence(panel_a.get("files")):
        lines.append(
            f"{_DETAIL_INDENT}Files to improve: {format_file_list(panel_a['files'])}."
        )
    lines.append(f"{_BODY_INDENT}</current_state>")

    lines.append(f"{_BODY_INDENT}<desired_outcome>")
    if panel_b.get("description"):
        lines.append(
            f"{_DETAIL_INDENT}Desired improvements: {escape_xml(panel_b['description'])}."
        )
    if panel_b.get("issue_number"):
        lines.append(
            f"{_DETAIL_INDENT}Desired state per issue: "
            f"#{escape_xml(panel_b['issue_number'])}. Read this issue for target state."
        )
    if _sequence(panel_b.get("guideline_files")):
        lines.append(
            f"{_DETAIL_INDENT}Reference files for target style: "
            f"{format_file_list(panel_b['guideline_files'])}."
        )
    if _sequence(panel_b.get("lenses")):
        lines.append(f"{_DETAIL_INDENT}Focus on: [{_lens_list(panel_b['lenses'])}].")
    lines.append(f"{_BODY_INDENT}</desired_outcome>")

    if improve_scope == "across_files":
        lines.append(
            f"{_BODY_INDENT}<scope>Apply improvements across all files as a unified "
            "change, considering relationships between files.</scope>"
        )
    elif improve_scope == "each_file":
        lines.append(
            f"{_BODY_INDENT}<scope>Apply improvements to each file independently.</scope>"
        )

    lines.append(
        f"{_BODY_INDENT}If unclear or high ambiguity about what improvements to make, "
        f"{_STOP_CLAUSE}"
    )
    return "\n".join(lines)


def _generic_task(panel_a: Mapping[str, Any], panel_b: Mapping[str, Any]) -> str | None:
    has_content = (
        panel_a.get("description")
        or _sequence(panel_a.get("files"))
        or panel_b.get("description")
        or _sequence(panel_b.get("spec_files"))
    )
    if not has_content:
        return None

    lines = ["Understand the task:"]
    if panel_a.get("description"):
        lines.append(f"{_BODY_INDENT}Context: {escape_xml(panel_a['description'])}.")
    if _sequence(panel_a.get("files")):
        lines.append(f"{_BODY_INDENT}Files: {format_file_list(panel_a['files'])}.")
    if panel_b.get("description"):
        lines.append(f"{_BODY_INDENT}Goal: {escape_xml(panel_b['description'])}.")
    if _sequence(panel_b.get("spec_files")):
        lines.append(f"{_BODY_INDENT}Specs: {format_file_list(panel_b['spec_files'])}.")
    return "\n".join(lines)


def _review_feedback(modes: list[str]) -> str:
    phrases = [OUTPUT_MODE_PHRASES.get(mode, mode) for mode in modes]
    if len(phrases) == 1:
        delivery = phrases[0]
    else:
        delivery = ", ".join(phrases[:-1]) + " AND " + phrases[-1]

    bullets = []
    if "pr_inline_comments" in modes:
        bullets.append(
            "For inline comments: note the issue, severity label, and suggested fix "
            "at the relevant line."
        )
    if any(mode in ("pr_comment", "issue_comment") for mode in modes):
        bullets.append(f"Provide a link to the comment to {_HUMAN}.")
    if "report_file" in modes:
        bullets.append(f"Commit the report file and provide the file link to {_HUMAN}.")
    bullets.extend(
        [
            "Summary of what you reviewed in one sentence.",
            "Number of issues found by severity.",
            "Top 3 most important findings with file/line references.",
        ]
    )
    return _bullets(f"Provide feedback {delivery} include:", *bullets)


# --- Helpers ---


def escape_xml(value: Any) -> str:
    """Escape ``&``, ``<`` and ``>`` in user-supplied text."""
    if value is None:
        return ""
    return str(value).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def format_file_list(files: Sequence[Any] | None) -> str:
    """Format file paths as ``@``-prefixed, comma-joined references."""
    return ", ".join(f"@{escape_xml(path)}" for path in _sequence(files))


def _lens_list(lenses: Sequence[Any]) -> str:
    return ", ".join(escape_xml(lens) for lens in lenses)


def _bullets(head: str, *items: str) -> str:
    return "\n".join([head, *(f"{_BODY_INDENT}- {item}" for item in items)])


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list | tuple):
        return ", ".join(_scalar_text(v) for v in value)
    return str(value)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _sequence(value: Any) -> Sequence[Any]:
    if isinstance(value, list | tuple):
        return value
    return ()
