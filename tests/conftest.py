"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and shared test
doubles. Fixtures marked autouse apply to every test.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os
from typing import Any

import pytest

from agentprompt.flows import FlowCatalog, load_flows
from agentprompt.persistence import MemoryStore
from agentprompt.state import StateStore

# =============================================================================
# Test Doubles
# =============================================================================


class FailingStore:
    """Persistence double whose load and save always raise."""

    def __init__(self) -> None:
        self.save_attempts = 0

    def load(self) -> Any:
        raise OSError("disk unavailable")

    def save(self, record: Any) -> None:
        del record
        self.save_attempts += 1
        raise OSError("disk full")


class Recorder:
    """Observer that records every snapshot it receives."""

    def __init__(self) -> None:
        self.snapshots: list[Any] = []

    def __call__(self, snapshot: Any) -> None:
        self.snapshots.append(snapshot)

    @property
    def last(self) -> Any:
        return self.snapshots[-1]


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_settings_env(request, monkeypatch, tmp_path):
    """Clear AGENTPROMPT_* variables and point pyproject lookup at tmp_path.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("AGENTPROMPT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("AGENTPROMPT_PYPROJECT_PATH", str(tmp_path / "pyproject.toml"))


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True)
def agentprompt_debug_logs(caplog):
    """Capture agentprompt records at DEBUG for assertions."""
    caplog.set_level(logging.DEBUG, logger="agentprompt")


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def catalog() -> FlowCatalog:
    """The bundled flow catalog."""
    return load_flows()


@pytest.fixture
def memory() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def store(memory: MemoryStore):
    """A store backed by in-memory persistence, closed after the test."""
    with StateStore(persistence=memory) as s:
        yield s


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def base_state() -> dict[str, Any]:
    """Canonical state with a repository and nothing else filled."""
    return {
        "version": "1.0",
        "configuration": {
            "owner": "alice",
            "repo": "wonderland",
            "branch": "main",
            "access_token": "",
        },
        "task": {"flow_id": ""},
        "panel_a": {},
        "panel_b": {},
        "steps": {"enabled_steps": [], "removed_step_ids": []},
        "notes": {"user_text": ""},
    }


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()
