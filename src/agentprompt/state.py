"""Canonical state store.

A `StateStore` owns the canonical state as plain nested dicts. Every
committed mutation runs one cycle under a re-entrant lock::

    mutate -> recompute prompt -> persist (eligible writes) -> notify

Readers only ever see frozen snapshots (see ``agentprompt._frozen``) that
carry the derived ``prompt`` next to the canonical fields. Only
``configuration.owner`` and ``configuration.access_token`` are persisted;
everything else is session-scoped.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import copy
import logging
import threading
from typing import TYPE_CHECKING, Any

from agentprompt._frozen import deep_merge, freeze, get_path, set_path, split_path, thaw
from agentprompt.errors import HINTS, StateError
from agentprompt.prompt import DEFAULT_BRANCH, DEFAULT_REFERENCE_FILE, build_prompt
from agentprompt.steps import generate_steps

if TYPE_CHECKING:
    from agentprompt.config import ResolvedSettings
    from agentprompt.persistence import PersistenceBackend

log = logging.getLogger(__name__)

CURRENT_VERSION = "1.0"

OWNER_PATH = "configuration.owner"
TOKEN_PATH = "configuration.access_token"
FLOW_ID_PATH = "task.flow_id"
ENABLED_STEPS_PATH = "steps.enabled_steps"
REMOVED_STEP_IDS_PATH = "steps.removed_step_ids"

PERSISTENT_PATHS: frozenset[str] = frozenset({OWNER_PATH, TOKEN_PATH})

#: Snapshot key holding the derived prompt.
PROMPT_KEY = "prompt"

DEFAULT_STATE: Mapping[str, Any] = freeze(
    {
        "version": CURRENT_VERSION,
        "configuration": {
            "owner": "",
            "repo": "",
            "branch": "",
            "access_token": "",
        },
        "task": {"flow_id": ""},
        "panel_a": {
            "description": "",
            "issue_number": None,
            "pr_number": None,
            "files": [],
        },
        "panel_b": {
            "description": "",
            "issue_number": None,
            "spec_files": [],
            "guideline_files": [],
            "acceptance_criteria": "",
            "lenses": [],
        },
        "steps": {"enabled_steps": [], "removed_step_ids": []},
        "improve_scope": None,
        "notes": {"user_text": ""},
        "output": {"destination": "clipboard"},
    }
)

Observer = Callable[[Mapping[str, Any]], None]
Updater = Callable[[dict[str, Any]], Mapping[str, Any] | None]

_UNSET: Any = object()


class StateStore:
    """Explicit, lockable owner of the canonical prompt state.

    Example:
        >>> store = StateStore()
        >>> store.write("configuration.repo", "wonderland")
        >>> store.read()["configuration"]["repo"]
        'wonderland'
    """

    def __init__(
        self,
        *,
        persistence: PersistenceBackend | None = None,
        settings: ResolvedSettings | None = None,
    ) -> None:
        """Create a store from defaults plus hydrated persistent fields."""
        self._persistence = persistence
        self._reference_file = (
            settings.reference_file if settings is not None else DEFAULT_REFERENCE_FILE
        )
        self._default_branch = (
            settings.default_branch if settings is not None else DEFAULT_BRANCH
        )
        self._lock = threading.RLock()
        self._observers: list[Observer] = []
        self._closed = False
        self._revision = 0
        self._state: dict[str, Any] = thaw(DEFAULT_STATE)
        self._hydrate()
        self._prompt = self._build()

    # --- Reading ---

    def read(self) -> Mapping[str, Any]:
        """Return a frozen snapshot of the state plus the derived prompt."""
        with self._lock:
            return self._snapshot()

    @property
    def prompt(self) -> str:
        """The prompt derived from the current state."""
        with self._lock:
            return self._prompt

    @property
    def closed(self) -> bool:
        """True once `close` has run; later mutations raise StateError."""
        return self._closed

    # --- Writing ---

    def write(self, path_or_updater: str | Updater, value: Any = _UNSET) -> None:
        """Apply one mutation and run the recompute/persist/notify cycle.

        Args:
            path_or_updater: A dotted path such as ``"panel_a.description"``
                (with ``value``), or a callable that receives a deep copy of
                the state and returns a partial mapping to deep-merge.
            value: New leaf value for a path write. Defaults to None.

        Raises:
            StateError: If the store has been closed.

        Malformed paths and unsupported argument types are logged and ignored.
        """
        with self._lock:
            self._ensure_open()
            if isinstance(path_or_updater, str):
                keys = split_path(path_or_updater)
                if keys is None:
                    log.warning("Ignoring write to invalid path %r", path_or_updater)
                    return
                set_path(self._state, keys, None if value is _UNSET else value)
                persist = path_or_updater in PERSISTENT_PATHS
            elif callable(path_or_updater):
                updates = path_or_updater(thaw(self._state))
                if isinstance(updates, Mapping):
                    self._state = deep_merge(self._state, updates)
                else:
                    log.debug("Updater returned %s; nothing merged", type(updates).__name__)
                # An updater may touch persistent fields.
                persist = True
            else:
                log.warning(
                    "Ignoring write with unsupported target of type %s",
                    type(path_or_updater).__name__,
                )
                return
            self._commit(persist=persist)

    def reset_session(self) -> None:
        """Restore defaults, keeping the persistent configuration fields."""
        with self._lock:
            self._ensure_open()
            configuration = self._state.get("configuration")
            kept = configuration if isinstance(configuration, dict) else {}
            self._state = thaw(DEFAULT_STATE)
            self._state["configuration"]["owner"] = kept.get("owner", "")
            self._state["configuration"]["access_token"] = kept.get("access_token", "")
            self._commit(persist=False)

    def apply_flow_defaults(self, flow_id: str, flow: Mapping[str, Any] | None) -> None:
        """Switch to ``flow_id``, discarding panel input and step edits.

        ``steps.enabled_steps`` is seeded with the steps generated for the
        default panels and ``removed_step_ids`` is cleared.
        """
        with self._lock:
            self._ensure_open()
            flow = flow if isinstance(flow, Mapping) else {}
            self._state["task"] = {"flow_id": flow_id}
            self._state["panel_a"] = thaw(DEFAULT_STATE["panel_a"])
            self._state["panel_b"] = thaw(DEFAULT_STATE["panel_b"])
            self._state["improve_scope"] = None

            lenses = _default_lenses(flow)
            if lenses:
                self._state["panel_b"]["lenses"] = thaw(lenses)

            self._state["steps"] = {
                "enabled_steps": generate_steps(
                    flow, self._state["panel_a"], self._state["panel_b"]
                ),
                "removed_step_ids": [],
            }
            self._commit(persist=False)

    # --- Observers ---

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` for every committed write.

        Returns:
            A function that removes the observer. Subscribing the same
            callable twice registers it once.
        """
        with self._lock:
            self._ensure_open()
            if observer not in self._observers:
                self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    # --- Lifecycle ---

    def close(self) -> None:
        """Drop observers; later mutations raise StateError."""
        with self._lock:
            self._observers.clear()
            self._closed = True

    def __enter__(self) -> StateStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        flow_id = get_path(self._state, FLOW_ID_PATH) or None
        return f"StateStore(flow_id={flow_id!r}, closed={self._closed})"

    # --- Internals ---

    def _commit(self, *, persist: bool) -> None:
        self._prompt = self._build()
        if persist:
            self._save()
        self._revision += 1
        revision = self._revision
        snapshot = self._snapshot()
        log.debug("Notifying %d observers", len(self._observers))
        for observer in list(self._observers):
            observer(snapshot)
            if self._revision != revision:
                # A nested write already notified every observer with newer state.
                log.debug("Observer committed a newer revision; stopping fan-out")
                break

    def _build(self) -> str:
        return build_prompt(
            self._state,
            reference_file=self._reference_file,
            default_branch=self._default_branch,
        )

    def _snapshot(self) -> Mapping[str, Any]:
        data = copy.copy(self._state)
        data[PROMPT_KEY] = self._prompt
        return freeze(data)

    def _ensure_open(self) -> None:
        if self._closed:
            raise StateError("State store is closed", hint=HINTS["store_closed"])

    def _hydrate(self) -> None:
        if self._persistence is None:
            return
        try:
            record = self._persistence.load()
        except Exception as e:
            log.warning("Ignoring persisted state: load failed (%s)", e)
            return
        if record is None:
            return
        if not isinstance(record, Mapping):
            log.warning("Ignoring persisted state: expected a mapping")
            return
        configuration = self._state["configuration"]
        for field in ("owner", "access_token"):
            if isinstance(record.get(field), str):
                configuration[field] = record[field]
        log.debug("Hydrated persistent configuration fields")

    def _save(self) -> None:
        if self._persistence is None:
            return
        configuration = self._state.get("configuration")
        configuration = configuration if isinstance(configuration, Mapping) else {}
        record = {
            "owner": configuration.get("owner", ""),
            "access_token": configuration.get("access_token", ""),
        }
        try:
            self._persistence.save(record)
        except Exception as e:
            log.warning("Failed to persist configuration: %s", e)


def _default_lenses(flow: Mapping[str, Any]) -> Any:
    panel_b = flow.get("panel_b")
    fields = panel_b.get("fields") if isinstance(panel_b, Mapping) else None
    lenses = fields.get("lenses") if isinstance(fields, Mapping) else None
    return lenses.get("default") if isinstance(lenses, Mapping) else None
