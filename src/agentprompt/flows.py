"""Flow catalog: read-only flow templates loaded from YAML.

A flow file is a mapping with a top-level ``flows`` key::

    flows:
      fix:
        label: Fix / Debug
        panel_a: {label: ..., subtitle: ..., fields: {...}}
        panel_b: {label: ..., subtitle: ..., fields: {...}}
        steps:
          - {id: read-claude, operation: read, object: file, params: {file: claude.md}}

Shape validation of individual flows is a build-time concern and is not
performed here; only the envelope is checked. Loaded flows are frozen so
callers cannot mutate a template through the catalog.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from agentprompt._frozen import freeze
from agentprompt.errors import HINTS, FlowError

if TYPE_CHECKING:
    import os

log = logging.getLogger(__name__)

BUNDLED_FLOWS = "flows.yaml"


@dataclass(frozen=True)
class FlowCatalog:
    """Immutable mapping of flow id to flow template."""

    flows: Mapping[str, Mapping[str, Any]]
    origin: str = BUNDLED_FLOWS

    def get(self, flow_id: str | None) -> Mapping[str, Any] | None:
        """Return the flow template for ``flow_id``, or None when unknown."""
        if not flow_id:
            return None
        return self.flows.get(flow_id)

    def ids(self) -> tuple[str, ...]:
        """Return flow ids in file order."""
        return tuple(self.flows)

    def __contains__(self, flow_id: object) -> bool:
        return isinstance(flow_id, str) and flow_id in self.flows

    def __len__(self) -> int:
        return len(self.flows)


def load_flows(path: str | os.PathLike[str] | None = None) -> FlowCatalog:
    """Load a flow catalog from ``path`` or from the bundled flow file.

    Raises:
        FlowError: If the file cannot be read, is not valid YAML, or lacks a
            ``flows`` mapping.
    """
    if path is None:
        text = resources.files("agentprompt").joinpath(BUNDLED_FLOWS).read_text(
            encoding="utf-8"
        )
        origin = BUNDLED_FLOWS
    else:
        file_path = Path(path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise FlowError(
                f"Flow file '{file_path}' not found", hint=HINTS["flows_path"]
            ) from None
        except OSError as e:
            raise FlowError(
                f"Failed to read flow file '{file_path}': {e}",
                hint=HINTS["flows_path"],
            ) from e
        origin = str(file_path)

    return parse_flows(text, origin=origin)


def parse_flows(text: str, *, origin: str = "<string>") -> FlowCatalog:
    """Parse YAML text into a FlowCatalog.

    Raises:
        FlowError: If the text is not YAML or has no ``flows`` mapping.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise FlowError(f"Invalid YAML in {origin}: {e}", hint=HINTS["flows_root"]) from e

    if not isinstance(data, Mapping) or not isinstance(data.get("flows"), Mapping):
        raise FlowError(f"{origin}: missing 'flows' mapping", hint=HINTS["flows_root"])

    flows = {
        str(flow_id): flow
        for flow_id, flow in data["flows"].items()
        if isinstance(flow, Mapping)
    }
    skipped = len(data["flows"]) - len(flows)
    if skipped:
        log.warning("Skipped %d non-mapping flow entries in %s", skipped, origin)
    log.debug("Loaded %d flows from %s", len(flows), origin)
    return FlowCatalog(flows=freeze(flows), origin=origin)
