"""Command line entry point: ``python -m agentprompt`` / ``agentprompt``."""

from __future__ import annotations

import argparse
from collections.abc import Mapping
import logging
from pathlib import Path
import sys
from typing import TYPE_CHECKING, Any

import yaml

from agentprompt.config import resolve_settings
from agentprompt.errors import AgentPromptError
from agentprompt.flows import load_flows
from agentprompt.persistence import JSONFileStore
from agentprompt.quality import calculate_score, threshold_for
from agentprompt.session import StepRegenerator, remove_step, select_flow
from agentprompt.state import StateStore

if TYPE_CHECKING:
    from collections.abc import Sequence

_PANELS = ("panel_a", "panel_b")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        "agentprompt", description="Compile task answers into an agent prompt"
    )
    parser.add_argument("--flow", help="Flow id (see --list-flows)")
    parser.add_argument("--owner", help="Repository owner")
    parser.add_argument("--repo", help="Repository name")
    parser.add_argument("--branch", help="Branch to work on")
    parser.add_argument(
        "--answers",
        type=Path,
        help="YAML file with panel_a, panel_b, notes and improve_scope",
    )
    parser.add_argument(
        "--remove-step",
        action="append",
        default=[],
        metavar="ID",
        help="Drop a step by id (repeatable)",
    )
    parser.add_argument("--flows", type=Path, help="Custom flow YAML file")
    parser.add_argument(
        "--score", action="store_true", help="Also print the completeness score"
    )
    parser.add_argument(
        "--list-flows", action="store_true", help="List flow ids and exit"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry: print the compiled prompt for one flow."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s: %(message)s",
    )

    try:
        return _run(args)
    except AgentPromptError as e:
        sys.stderr.write(f"error: {e}\n")
        return 2


def _run(args: argparse.Namespace) -> int:
    overrides = {"flows_path": args.flows} if args.flows else None
    settings = resolve_settings(overrides)
    catalog = load_flows(settings.flows_path)

    if args.list_flows:
        for flow_id in catalog.ids():
            label = catalog.get(flow_id).get("label", "")
            sys.stdout.write(f"{flow_id}\t{label}\n")
        return 0

    if not args.flow:
        sys.stderr.write("error: --flow is required (or use --list-flows)\n")
        return 2

    answers = _load_answers(args.answers) if args.answers else {}
    persistence = JSONFileStore(settings.storage_path, settings.storage_key)

    with StateStore(persistence=persistence, settings=settings) as store:
        regenerator = StepRegenerator(store, catalog).attach()
        select_flow(store, catalog, args.flow)

        for option, path in (
            (args.owner, "configuration.owner"),
            (args.repo, "configuration.repo"),
            (args.branch, "configuration.branch"),
        ):
            if option:
                store.write(path, option)
        _apply_answers(store, answers)
        for step_id in args.remove_step:
            remove_step(store, step_id)
        regenerator.detach()

        snapshot = store.read()
        if not snapshot["prompt"]:
            sys.stderr.write("error: --owner and --repo are required\n")
            return 2

        sys.stdout.write(snapshot["prompt"] + "\n")
        if args.score:
            score = calculate_score(snapshot)
            sys.stdout.write(f"score: {score} ({threshold_for(score).label})\n")
    return 0


def _load_answers(path: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise AgentPromptError(
            f"Failed to read answers file '{path}': {e}",
            hint="Pass a YAML mapping with panel_a, panel_b, notes and improve_scope.",
        ) from e
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise AgentPromptError(
            f"Answers file '{path}' must contain a mapping",
            hint="Pass a YAML mapping with panel_a, panel_b, notes and improve_scope.",
        )
    return data


def _apply_answers(store: StateStore, answers: Mapping[str, Any]) -> None:
    for panel in _PANELS:
        fields = answers.get(panel)
        if isinstance(fields, Mapping):
            for field, value in fields.items():
                store.write(f"{panel}.{field}", value)
    notes = answers.get("notes")
    if isinstance(notes, str):
        store.write("notes.user_text", notes)
    if answers.get("improve_scope") in ("each_file", "across_files"):
        store.write("improve_scope", answers["improve_scope"])


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
