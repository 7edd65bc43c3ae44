"""tmux client module.

Thin wrapper around the tmux binary. Every call is fail-fast: a non-zero
exit raises TmuxCommandError and the caller aborts its remaining sequence.

Security:
- Argument lists only, no shell=True
- Shell snippets passed to tmux (pipe-pane, new-session) are built with shlex
"""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

# Substrings tmux prints when a target does not exist
_NOT_FOUND_MARKERS = ("can't find", "not found", "no such", "no server running")


class TmuxCommandError(Exception):
    """Raised when a tmux command exits non-zero or cannot be run."""

    def __init__(self, args: list[str], returncode: int, stderr: str = ""):
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"tmux {' '.join(self.command)} failed (exit {returncode}){detail}")

    @property
    def is_not_found(self) -> bool:
        """True if tmux reported a missing session/window/pane."""
        lowered = self.stderr.lower()
        return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


class TmuxClient:
    """Issue tmux commands, optionally against a dedicated server socket.

    Example:
        >>> client = TmuxClient(socket_path=Path("~/.panessh/tmux.sock"))
        >>> client.new_window("web1-4242")
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        binary: str = "tmux",
        socket_path: Path | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.binary = binary
        self.socket_path = socket_path
        self.timeout = timeout

    def _base_args(self) -> list[str]:
        args = [self.binary]
        if self.socket_path is not None:
            args.extend(["-S", str(self.socket_path)])
        return args

    def run(self, *args: str) -> str:
        """Run a tmux command and return its stripped stdout.

        Args:
            *args: tmux subcommand and arguments

        Returns:
            str: command stdout

        Raises:
            TmuxCommandError: If tmux is missing, times out or exits non-zero
        """
        cmd = [*self._base_args(), *args]
        logger.debug(f"tmux: {' '.join(args)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise TmuxCommandError(list(args), 127, f"{self.binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise TmuxCommandError(
                list(args), -1, f"timed out after {self.timeout}s"
            ) from e

        if result.returncode != 0:
            raise TmuxCommandError(list(args), result.returncode, result.stderr)

        return result.stdout.strip()

    # Sessions and windows

    def new_session(
        self,
        session: str,
        window_name: str,
        command: str,
        width: int | None = None,
        height: int | None = None,
        remain_on_exit: bool = False,
    ) -> None:
        """Create a detached session whose first window runs command.

        remain_on_exit is chained into the same tmux invocation so it is set
        before command can finish.
        """
        args = ["new-session", "-d", "-s", session, "-n", window_name]
        if width and height:
            args.extend(["-x", str(width), "-y", str(height)])
        args.append(command)
        if remain_on_exit:
            args.extend(
                [";", "set-window-option", "-t", f"{session}:{window_name}", "remain-on-exit", "on"]
            )
        self.run(*args)

    def new_window(self, name: str) -> None:
        """Create a window in the current session."""
        self.run("new-window", "-n", name)

    def kill_window(self, target: str) -> None:
        self.run("kill-window", "-t", target)

    def kill_session(self, session: str) -> None:
        self.run("kill-session", "-t", session)

    def set_window_option(self, target: str, option: str, value: str) -> None:
        self.run("set-window-option", "-t", target, option, value)

    def display(self, target: str, fmt: str) -> str:
        """Expand a tmux format string against target."""
        return self.run("display-message", "-p", "-t", target, fmt)

    def attach(self, session: str) -> int:
        """Attach the invoking terminal to session (blocks until detach).

        Returns:
            int: tmux exit code
        """
        cmd = [*self._base_args(), "attach-session", "-t", session]
        logger.debug(f"tmux: attach-session -t {session}")
        try:
            return subprocess.run(cmd).returncode
        except FileNotFoundError as e:
            raise TmuxCommandError(["attach-session"], 127, f"{self.binary} not found") from e

    # Panes

    def list_panes(self, window: str) -> list[str]:
        """Return pane indices of window in tmux order."""
        output = self.run("list-panes", "-t", window, "-F", "#{pane_index}")
        return [line for line in output.splitlines() if line]

    def select_pane(self, target: str) -> None:
        self.run("select-pane", "-t", target)

    def split_window(self, target: str) -> None:
        """Split target horizontally (side by side)."""
        self.run("split-window", "-h", "-t", target)

    def select_layout(self, window: str, layout: str) -> None:
        self.run("select-layout", "-t", window, layout)

    def kill_pane(self, target: str) -> None:
        self.run("kill-pane", "-t", target)

    def pipe_pane(self, target: str, shell_command: str) -> None:
        """Pipe pane output to shell_command (-o: only if not already piped)."""
        self.run("pipe-pane", "-o", "-t", target, shell_command)

    def send_keys(self, target: str, keys: str, enter: bool = True) -> None:
        args = ["send-keys", "-t", target, keys]
        if enter:
            args.append("Enter")
        self.run(*args)


__all__ = ["TmuxClient", "TmuxCommandError"]
