"""Settings resolution: layer precedence, validation errors and audit."""

from __future__ import annotations

from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from agentprompt.config import Origin, audit_text, field_spec_hint, resolve_settings
from agentprompt.config.loaders import load_env, load_pyproject
from agentprompt.errors import ConfigurationError

pytestmark = pytest.mark.unit


def _write_pyproject(path: Path, body: str) -> None:
    path.write_text(f"[tool.agentprompt]\n{body}\n", encoding="utf-8")


class TestDefaults:
    """Defaults apply when no layer supplies a value."""

    def test_defaults(self) -> None:
        cfg, sources = resolve_settings(explain=True)

        assert cfg.reference_file == "claude.md"
        assert cfg.default_branch == "main"
        assert cfg.flows_path is None
        assert cfg.storage_path.name == "state.json"
        assert cfg.storage_key == "agent_prompt_state"
        assert set(sources.values()) == {Origin.DEFAULT}

    def test_resolved_settings_are_frozen(self) -> None:
        cfg = resolve_settings()

        with pytest.raises(AttributeError):
            cfg.reference_file = "x"  # type: ignore[misc]


class TestPrecedence:
    """defaults < pyproject < env < overrides."""

    def test_pyproject_layer(self, tmp_path: Path) -> None:
        _write_pyproject(tmp_path / "pyproject.toml", 'default_branch = "develop"')

        cfg, sources = resolve_settings(explain=True)

        assert cfg.default_branch == "develop"
        assert sources["default_branch"] is Origin.PROJECT

    def test_env_beats_pyproject(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_pyproject(tmp_path / "pyproject.toml", 'default_branch = "develop"')
        monkeypatch.setenv("AGENTPROMPT_DEFAULT_BRANCH", "trunk")

        cfg, sources = resolve_settings(explain=True)

        assert cfg.default_branch == "trunk"
        assert sources["default_branch"] is Origin.ENV

    def test_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTPROMPT_REFERENCE_FILE", "ENV.md")

        cfg, sources = resolve_settings({"reference_file": "OVERRIDE.md"}, explain=True)

        assert cfg.reference_file == "OVERRIDE.md"
        assert sources["reference_file"] is Origin.OVERRIDES

    @given(
        layers=st.lists(
            st.sampled_from(["project", "env", "overrides"]), unique=True, max_size=3
        )
    )
    @settings(max_examples=8, deadline=None, derandomize=True)
    def test_last_layer_wins(self, layers: list[str], tmp_path_factory) -> None:
        """Property: the highest-precedence layer present decides the value."""
        rank = ["project", "env", "overrides"]
        root = tmp_path_factory.mktemp("precedence")
        pyproject = root / "pyproject.toml"
        env = {"AGENTPROMPT_PYPROJECT_PATH": str(pyproject)}
        overrides = {}
        if "project" in layers:
            _write_pyproject(pyproject, 'storage_key = "project"')
        if "env" in layers:
            env["AGENTPROMPT_STORAGE_KEY"] = "env"
        if "overrides" in layers:
            overrides["storage_key"] = "overrides"

        with pytest.MonkeyPatch.context() as mp:
            for key, value in env.items():
                mp.setenv(key, value)
            cfg = resolve_settings(overrides)

        expected = max(layers, key=rank.index) if layers else "agent_prompt_state"
        assert cfg.storage_key == expected


class TestValidation:
    """Invalid values raise ConfigurationError with a field hint."""

    def test_blank_reference_file_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc:
            resolve_settings({"reference_file": "   "})

        assert "reference_file" in str(exc.value)
        assert exc.value.hint == field_spec_hint("reference_file")

    def test_blank_path_means_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTPROMPT_FLOWS_PATH", "  ")

        assert resolve_settings().flows_path is None

    def test_path_strings_become_paths(self, tmp_path: Path) -> None:
        cfg = resolve_settings({"storage_path": str(tmp_path / "s.json")})

        assert cfg.storage_path == tmp_path / "s.json"

    def test_unknown_keys_warn(self) -> None:
        with pytest.warns(UserWarning, match="unknown settings: bogus"):
            resolve_settings({"bogus": 1})


class TestLoaders:
    """Loaders return plain dicts and never raise on bad input."""

    def test_env_loader_skips_meta_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTPROMPT_STORAGE_KEY", "k")
        monkeypatch.setenv("AGENTPROMPT_DEBUG_CONFIG", "1")

        env = load_env()

        assert env["storage_key"] == "k"
        assert "debug_config" not in env
        assert "pyproject_path" not in env

    def test_invalid_toml_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("[tool.agentprompt\n", encoding="utf-8")

        assert load_pyproject(path) == {}

    def test_missing_pyproject_is_empty(self, tmp_path: Path) -> None:
        assert load_pyproject(tmp_path / "absent.toml") == {}


class TestAudit:
    def test_audit_text_lists_every_field(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTPROMPT_STORAGE_KEY", "k")

        _, sources = resolve_settings(explain=True)
        text = audit_text(sources)

        assert "storage_key: env" in text
        assert "reference_file: default" in text
        assert len(text.splitlines()) == 5

    def test_debug_env_emits_audit_warning(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTPROMPT_DEBUG_CONFIG", "1")

        with pytest.warns(UserWarning, match="Settings audit"):
            resolve_settings()
