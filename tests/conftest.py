"""
Shared test fixtures and configuration for panessh tests.

This module provides common fixtures used across all test types:
- An in-memory tmux server (FakeTmux) tracking windows and panes
- Isolated config/state/log directories
- Click CliRunner
"""

import os
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from panessh.config_manager import PanesshConfig
from panessh.tmux import TmuxCommandError

# ============================================================================
# FAKE TMUX SERVER
# ============================================================================


class FakeTmux:
    """In-memory stand-in for TmuxClient.

    Windows hold ordered pane ids; pane indices are base_index + position,
    renumbered contiguously after kill-pane like tmux does.
    """

    def __init__(self, binary: str = "tmux", socket_path: Path | None = None, base_index: int = 0):
        self.binary = binary
        self.socket_path = socket_path
        self.base_index = base_index
        self.windows: dict[str, list[int]] = {}
        self.active: dict[str, int] = {}
        self.layouts: dict[str, list[str]] = {}
        self.options: dict[str, dict[str, str]] = {}
        self.pipes: dict[int, str] = {}
        self.keys: dict[int, list[str]] = {}
        self.sessions: dict[str, dict] = {}
        self.attached: list[str] = []
        self.attach_returncode = 0
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.on_new_session = None
        self._next_id = 0

    # Helpers

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise TmuxCommandError([name, *map(str, args)], 1, "simulated failure")

    def _new_pane(self) -> int:
        self._next_id += 1
        self.keys[self._next_id] = []
        return self._next_id

    def _require_window(self, target: str) -> None:
        if target not in self.windows:
            raise TmuxCommandError(["-t", target], 1, f"can't find window: {target}")

    def _resolve_pane(self, target: str) -> tuple[str, int]:
        window, _, index = target.rpartition(".")
        self._require_window(window)
        position = int(index) - self.base_index
        if not 0 <= position < len(self.windows[window]):
            raise TmuxCommandError(["-t", target], 1, f"can't find pane: {target}")
        return window, position

    def _add_window(self, name: str) -> None:
        self.windows[name] = [self._new_pane()]
        self.active[name] = 0
        self.layouts[name] = []
        self.options[name] = {}

    def pane_count(self, window: str) -> int:
        return len(self.windows[window])

    def keys_at(self, window: str, position: int) -> list[str]:
        return self.keys[self.windows[window][position]]

    def pipe_at(self, window: str, position: int) -> str | None:
        return self.pipes.get(self.windows[window][position])

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    # TmuxClient interface

    def new_session(self, session, window_name, command, width=None, height=None, remain_on_exit=False):
        self._record("new_session", session, window_name, command)
        key = f"{session}:{window_name}"
        self._add_window(key)
        self.sessions[session] = {"command": command, "size": (width, height)}
        if remain_on_exit:
            self.options[key]["remain-on-exit"] = "on"
        if self.on_new_session is not None:
            self.on_new_session(command)

    def new_window(self, name):
        self._record("new_window", name)
        self._add_window(name)

    def kill_window(self, target):
        self._record("kill_window", target)
        self._require_window(target)
        for pane_id in self.windows.pop(target):
            self.pipes.pop(pane_id, None)

    def kill_session(self, session):
        self._record("kill_session", session)
        if session not in self.sessions:
            raise TmuxCommandError(["kill-session"], 1, f"can't find session: {session}")
        del self.sessions[session]
        for name in [w for w in self.windows if w.startswith(f"{session}:")]:
            del self.windows[name]

    def set_window_option(self, target, option, value):
        self._record("set_window_option", target, option, value)
        self._require_window(target)
        self.options[target][option] = value

    def display(self, target, fmt):
        self._record("display", target, fmt)
        self._require_window(target)
        return str(self.base_index + self.active[target])

    def attach(self, session):
        self._record("attach", session)
        self.attached.append(session)
        return self.attach_returncode

    def list_panes(self, window):
        self._record("list_panes", window)
        self._require_window(window)
        return [str(self.base_index + i) for i in range(len(self.windows[window]))]

    def select_pane(self, target):
        self._record("select_pane", target)
        window, position = self._resolve_pane(target)
        self.active[window] = position

    def split_window(self, target):
        self._record("split_window", target)
        self._require_window(target)
        position = self.active[target] + 1
        self.windows[target].insert(position, self._new_pane())
        self.active[target] = position

    def select_layout(self, window, layout):
        self._record("select_layout", window, layout)
        self._require_window(window)
        self.layouts[window].append(layout)

    def kill_pane(self, target):
        self._record("kill_pane", target)
        window, position = self._resolve_pane(target)
        self.windows[window].pop(position)
        self.active[window] = max(0, min(self.active[window], len(self.windows[window]) - 1))

    def pipe_pane(self, target, shell_command):
        self._record("pipe_pane", target, shell_command)
        window, position = self._resolve_pane(target)
        self.pipes[self.windows[window][position]] = shell_command

    def send_keys(self, target, keys, enter=True):
        self._record("send_keys", target, keys)
        window, position = self._resolve_pane(target)
        self.keys[self.windows[window][position]].append(keys)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def no_ambient_tmux(monkeypatch):
    """Never let a test see the developer's own tmux session."""
    monkeypatch.delenv("TMUX", raising=False)
    monkeypatch.delenv("TMUX_PANE", raising=False)


@pytest.fixture
def fake_tmux():
    """Fresh in-memory tmux server."""
    return FakeTmux()


@pytest.fixture
def tmux_factory(fake_tmux):
    """TmuxClient-compatible factory returning fake_tmux and recording the socket."""

    def factory(binary="tmux", socket_path=None):
        fake_tmux.binary = binary
        fake_tmux.socket_path = socket_path
        return fake_tmux

    return factory


@pytest.fixture
def panessh_config(tmp_path):
    """Config pointing every path into tmp_path, with short timeouts."""
    return PanesshConfig(
        log_dir=tmp_path / "logs",
        state_dir=tmp_path / "state",
        handoff_timeout=2.0,
        lock_timeout=1.0,
    )


@pytest.fixture
def isolated_config(tmp_path):
    """Directory for test config files.

    Example:
        def test_something(isolated_config):
            config_path = isolated_config / "config.toml"
    """
    config_dir = tmp_path / ".panessh"
    config_dir.mkdir(parents=True)
    return config_dir


@pytest.fixture
def cli_runner():
    """Provide a Click CliRunner for testing the CLI."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def mock_subprocess_success():
    """Mock subprocess.run for successful command execution."""
    with patch("panessh.tmux.subprocess.run") as mock:
        mock.return_value = Mock(returncode=0, stdout="", stderr="")
        yield mock


@pytest.fixture
def posix_only():
    if os.name != "posix":
        pytest.skip("named pipes and flock are POSIX only")
