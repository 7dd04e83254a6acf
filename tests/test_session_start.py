"""Tests for the session-start hook entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from peerstate.config import PeerStateConfig, StoreConfig
from peerstate.state.session_start import (
    EXIT_OK,
    EXIT_UNAVAILABLE,
    HookInput,
    main,
    parse_hook_input,
)
from peerstate.state.store import RecordStore


@pytest.fixture
def config(tmp_path: Path) -> PeerStateConfig:
    return PeerStateConfig(store=StoreConfig(root=tmp_path / "sessions"))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "work" / "webapp"
    path.mkdir(parents=True)
    return path


def _run(payload, config: PeerStateConfig, overrides: HookInput | None = None) -> tuple[int, str]:
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    out = io.StringIO()
    code = main(stdin=io.StringIO(raw), stdout=out, overrides=overrides, config=config)
    return code, out.getvalue()


class TestParseHookInput:
    def test_full_payload(self):
        hook = parse_hook_input(
            json.dumps({"session_id": "abc", "cwd": "/tmp/x", "source": "compact", "extra": 1})
        )
        assert hook == HookInput(session_id="abc", cwd="/tmp/x", source="compact")

    @pytest.mark.parametrize("raw", ["", "   ", "not json", "[1, 2]", "null"])
    def test_garbage_is_empty(self, raw):
        assert parse_hook_input(raw) == HookInput()

    def test_non_string_fields_ignored(self):
        hook = parse_hook_input(json.dumps({"session_id": 42, "cwd": "", "source": None}))
        assert hook == HookInput()


class TestSessionStartHook:
    def test_missing_session_id_no_output(self, config, project):
        RecordStore(config.store.root).put("webapp", "peer", "## Current Task\nx\n")
        code, out = _run({"cwd": str(project), "source": "startup"}, config)
        assert code == EXIT_OK
        assert out == ""

    def test_empty_stdin_no_output(self, config):
        code, out = _run("", config)
        assert code == EXIT_OK
        assert out == ""

    def test_awareness_shows_peers(self, config, project):
        store = RecordStore(config.store.root)
        store.put("webapp", "peer-1", "## Current Task\nbuilding the importer\nBranch: import\n")
        code, out = _run({"session_id": "me", "cwd": str(project), "source": "startup"}, config)
        assert code == EXIT_OK
        assert "## Other active sessions (webapp)" in out
        assert "building the importer" in out
        assert "[branch: import]" in out

    def test_recovery_shows_only_own(self, config, project):
        store = RecordStore(config.store.root)
        store.put("webapp", "me", "## Current Task\nmy half-done migration\n")
        store.put("webapp", "peer-1", "## Current Task\nsomeone else\n")
        code, out = _run({"session_id": "me", "cwd": str(project), "source": "compact"}, config)
        assert code == EXIT_OK
        assert "my half-done migration" in out
        assert "someone else" not in out

    def test_unknown_source_is_awareness(self, config, project):
        RecordStore(config.store.root).put("webapp", "peer-1", "## Now\npeer task\n")
        code, out = _run({"session_id": "me", "cwd": str(project), "source": "??"}, config)
        assert "peer task" in out

    def test_missing_cwd_uses_process_cwd(self, config, project, monkeypatch):
        monkeypatch.chdir(project)
        RecordStore(config.store.root).put("webapp", "peer-1", "## Now\npeer task\n")
        code, out = _run({"session_id": "me"}, config)
        assert "peer task" in out

    def test_overrides_win_over_stdin(self, config, project):
        RecordStore(config.store.root).put("webapp", "me", "mine")
        RecordStore(config.store.root).put("webapp", "peer-1", "## Now\npeer task\n")
        overrides = HookInput(session_id="me", cwd=str(project), source="compact")
        code, out = _run({"session_id": "someone", "source": "startup"}, config, overrides)
        assert "mine" in out
        assert "peer task" not in out

    def test_nothing_stored_no_output(self, config, project):
        code, out = _run({"session_id": "me", "cwd": str(project)}, config)
        assert code == EXIT_OK
        assert out == ""

    def test_unsafe_session_id_no_output(self, config, project):
        code, out = _run({"session_id": "../../etc", "cwd": str(project)}, config)
        assert code == EXIT_OK
        assert out == ""

    def test_unavailable_root(self, tmp_path: Path, project):
        root = tmp_path / "sessions"
        root.write_text("not a directory")
        config = PeerStateConfig(store=StoreConfig(root=root))
        code, out = _run({"session_id": "me", "cwd": str(project)}, config)
        assert code == EXIT_UNAVAILABLE
        assert out == ""

    def test_hashed_namespace_mode(self, tmp_path: Path, project):
        config = PeerStateConfig(
            store=StoreConfig(root=tmp_path / "sessions", namespace_mode="hashed")
        )
        RecordStore(config.store.root).put("webapp", "peer-1", "## Now\nplain basename\n")
        code, out = _run({"session_id": "me", "cwd": str(project)}, config)
        assert out == ""

    def test_overlong_session_id_no_output(self, config, project):
        RecordStore(config.store.root).put("webapp", "peer-1", "## Now\npeer task\n")
        code, out = _run({"session_id": "k" * 300, "cwd": str(project)}, config)
        assert code == EXIT_OK
        assert out == ""


class TestStandaloneEntry:
    """main() without a config loads its own and sets up logging."""

    @pytest.fixture
    def env(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for key in [
            "PEERSTATE_DIR",
            "PEERSTATE_TTL_HOURS",
            "PEERSTATE_PEER_LIMIT",
            "PEERSTATE_NAMESPACE_MODE",
            "PEERSTATE_LOG_LEVEL",
        ]:
            monkeypatch.delenv(key, raising=False)
        monkeypatch.setenv("PEERSTATE_DIR", str(tmp_path / "sessions"))
        levels: list[str] = []
        monkeypatch.setattr(
            "peerstate.state.session_start.setup_logging", lambda level: levels.append(level)
        )
        return levels

    def _main(self, payload: dict) -> tuple[int, str]:
        out = io.StringIO()
        code = main(stdin=io.StringIO(json.dumps(payload)), stdout=out)
        return code, out.getvalue()

    def test_configures_logging_from_config(self, env, project, monkeypatch):
        monkeypatch.setenv("PEERSTATE_LOG_LEVEL", "DEBUG")
        code, _ = self._main({"session_id": "me", "cwd": str(project)})
        assert code == EXIT_OK
        assert env == ["DEBUG"]

    def test_loads_config_from_env(self, env, project, tmp_path: Path):
        RecordStore(tmp_path / "sessions").put("webapp", "peer-1", "## Now\npeer task\n")
        code, out = self._main({"session_id": "me", "cwd": str(project)})
        assert code == EXIT_OK
        assert "peer task" in out

    def test_bad_namespace_mode_no_output(self, env, project, monkeypatch):
        monkeypatch.setenv("PEERSTATE_NAMESPACE_MODE", "bogus")
        code, out = self._main({"session_id": "me", "cwd": str(project)})
        assert code == EXIT_OK
        assert out == ""
        assert env == ["WARNING"]

    def test_non_integer_peer_limit_no_output(self, env, project, monkeypatch):
        monkeypatch.setenv("PEERSTATE_PEER_LIMIT", "three")
        code, out = self._main({"session_id": "me", "cwd": str(project)})
        assert code == EXIT_OK
        assert out == ""

    def test_malformed_toml_no_output(self, env, project, tmp_path: Path):
        (tmp_path / "peerstate.toml").write_text("[store\nroot = ")
        code, out = self._main({"session_id": "me", "cwd": str(project)})
        assert code == EXIT_OK
        assert out == ""
