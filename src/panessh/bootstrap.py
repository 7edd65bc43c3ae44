"""Session bootstrap.

Decides where the panes are created:

- Attached (running inside tmux): create a window in the current session,
  lay it out and dispatch the connections there.
- Unattached: spawn a detached session on the shared per-user socket whose
  placeholder window re-runs panessh (now attached). That inner run reports
  back through a FIFO once its window is ready or has failed. Only a
  successful report destroys the placeholder and attaches this terminal;
  anything else discards the session.

Unattached flow as a phase machine:
    UNATTACHED -> SPAWN_SESSION -> AWAIT_HANDOFF -> ATTACH_AND_DELEGATE -> DONE
Attached flow:
    ATTACHED -> DONE
"""

import logging
import os
import shlex
import shutil
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from panessh.config_manager import ConfigManager, PanesshConfig
from panessh.context import ExecutionContext
from panessh.dispatcher import dispatch
from panessh.handoff import HandoffChannel, HandoffError, HandoffMessage, send_message
from panessh.layout import LayoutPolicy, layout
from panessh.log_names import DEFAULT_LOG_FORMAT, build_log_plan
from panessh.session_lock import acquire_session_lock
from panessh.tmux import TmuxClient, TmuxCommandError

logger = logging.getLogger(__name__)

PLACEHOLDER_WINDOW = "placeholder"


class BootstrapError(Exception):
    """Raised when the session cannot be started or attached."""

    pass


class BootstrapPhase(Enum):
    UNATTACHED = "unattached"
    SPAWN_SESSION = "spawn-session"
    AWAIT_HANDOFF = "await-handoff"
    ATTACH_AND_DELEGATE = "attach-and-delegate"
    ATTACHED = "attached"
    DONE = "done"


@dataclass
class BootstrapRequest:
    """Validated input handed over by the CLI.

    Attributes:
        targets: [user@]host strings in pane order
        log_dir: validated log directory, None when logging is off
        log_format: log name template
        handoff_pipe: FIFO to report completion through (inner run only)
        config_path: explicit config file to forward to the inner run
        verbose: forward --verbose to the inner run
    """

    targets: list[str]
    log_dir: Path | None = None
    log_format: str = ""
    handoff_pipe: Path | None = None
    config_path: str | None = None
    verbose: bool = False
    share: bool = False


@dataclass
class BootstrapOutcome:
    """What a bootstrap run created (used for reporting and tests)."""

    window: str | None = None
    session: str | None = None
    log_files: list[Path] = field(default_factory=list)
    placeholder_destroyed: bool = False


def window_name(target: str, pid: int) -> str:
    """Window name from the first target's leading host segment plus pid.

    Example:
        >>> window_name("admin@web1.example.com", 4242)
        'web1-4242'
    """
    host = target.rsplit("@", 1)[-1]
    segment = host.split(".", 1)[0] or host
    # tmux treats ':' and '.' in targets as separators
    segment = segment.replace(":", "_")
    return f"{segment}-{pid}"


def session_name(pid: int) -> str:
    return f"panessh-{pid}"


def destroy_placeholder(tmux: TmuxClient, token: str) -> bool:
    """Kill the placeholder window named by token.

    Returns:
        True if killed, False if it was already gone

    Raises:
        TmuxCommandError: For any failure other than "not found"
    """
    try:
        tmux.kill_window(token)
    except TmuxCommandError as e:
        if e.is_not_found:
            logger.warning(f"Placeholder window {token} not found; already removed")
            return False
        raise
    logger.debug(f"Destroyed placeholder window {token}")
    return True


class SessionBootstrap:
    """Run one panessh invocation from the context it was started in.

    Example:
        >>> context = ExecutionContext.from_environ()
        >>> SessionBootstrap(PanesshConfig(), context).run(
        ...     BootstrapRequest(targets=["web1", "web2"])
        ... )
    """

    def __init__(
        self,
        config: PanesshConfig,
        context: ExecutionContext,
        tmux_factory: Callable[..., TmuxClient] = TmuxClient,
    ):
        self.config = config
        self.context = context
        self.tmux_factory = tmux_factory
        self.phase = BootstrapPhase.ATTACHED if context.attached else BootstrapPhase.UNATTACHED
        self.history = [self.phase]

    def _enter(self, phase: BootstrapPhase) -> None:
        logger.debug(f"Bootstrap phase: {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.history.append(phase)

    def run(self, request: BootstrapRequest) -> BootstrapOutcome:
        """Open the panes for request.targets.

        Raises:
            ValueError: If no targets are given
            TmuxCommandError: If any tmux command fails
            HandoffError: If the handoff times out or fails
            LockTimeoutError: If another bootstrap holds the lock
            BootstrapError: If the spawned run reports failure or attaching fails
        """
        if not request.targets:
            raise ValueError("At least one target is required")

        if self.context.attached:
            outcome = self._run_attached(request)
        else:
            outcome = self._run_unattached(request)

        self._enter(BootstrapPhase.DONE)
        return outcome

    # Attached

    def _run_attached(self, request: BootstrapRequest) -> BootstrapOutcome:
        tmux = self.tmux_factory(self.config.tmux_command)
        window = window_name(request.targets[0], self.context.pid)
        outcome = BootstrapOutcome(window=window)

        try:
            log_plan = None
            if request.log_dir is not None:
                log_plan = build_log_plan(
                    request.targets,
                    request.log_dir,
                    request.log_format or DEFAULT_LOG_FORMAT,
                    pid=self.context.bootstrap_pid,
                )
                outcome.log_files = list(log_plan)

            tmux.new_window(window)
            panes = layout(
                tmux, window, len(request.targets), LayoutPolicy.from_name(self.config.layout)
            )
            dispatch(tmux, panes, request.targets, log_plan, self.config.ssh_command)
        except Exception as e:
            if request.handoff_pipe is not None:
                self._report_failure(request.handoff_pipe, e)
            raise

        logger.info(f"Opened {panes.count} panes in window {window}")

        if request.handoff_pipe is not None:
            send_message(
                request.handoff_pipe,
                HandoffMessage.success(window),
                self.config.handoff_timeout,
            )

        return outcome

    def _report_failure(self, handoff_pipe: Path, error: Exception) -> None:
        # Best effort; the caller re-raises error
        try:
            send_message(
                handoff_pipe,
                HandoffMessage.failure(str(error)),
                self.config.handoff_timeout,
            )
        except HandoffError as e:
            logger.warning(f"Could not report failure to the spawning process: {e}")

    # Unattached

    def reexec_command(self, request: BootstrapRequest, handoff_pipe: Path) -> list[str]:
        """argv that re-runs panessh inside the new session."""
        args = [sys.executable, "-m", "panessh"]
        if request.log_dir is not None:
            args.append(f"--log={request.log_dir}")
        if request.log_format:
            args.append(f"--log-format={request.log_format}")
        if request.config_path:
            args.extend(["--config", request.config_path])
        if request.verbose:
            args.append("--verbose")
        args.extend(
            [
                "--handoff-pipe",
                str(handoff_pipe),
                "--origin-pid",
                str(self.context.bootstrap_pid),
                "--",
                *request.targets,
            ]
        )
        return args

    def _run_unattached(self, request: BootstrapRequest) -> BootstrapOutcome:
        ConfigManager.ensure_state_dir(self.config)

        pid = self.context.bootstrap_pid
        session = session_name(pid)
        placeholder = f"{session}:{PLACEHOLDER_WINDOW}"
        fifo = self.config.handoff_path(pid)
        tmux = self.tmux_factory(self.config.tmux_command, socket_path=self.config.socket_path)
        outcome = BootstrapOutcome(session=session)

        self._enter(BootstrapPhase.SPAWN_SESSION)
        with (
            acquire_session_lock(self.config.lock_path, timeout=self.config.lock_timeout),
            HandoffChannel(fifo) as channel,
        ):
            command = shlex.join(self.reexec_command(request, fifo))
            size = shutil.get_terminal_size()
            tmux.new_session(
                session,
                PLACEHOLDER_WINDOW,
                command,
                width=size.columns,
                height=size.lines,
                remain_on_exit=True,
            )

            self._enter(BootstrapPhase.AWAIT_HANDOFF)
            try:
                message = channel.receive(self.config.handoff_timeout)
            except HandoffError:
                logger.error(f"Session {session} never reported back; removing it")
                self._kill_session_quietly(tmux, session)
                raise

        if not message.ok:
            self._kill_session_quietly(tmux, session)
            raise BootstrapError(f"Setting up session {session} failed: {message.detail}")

        outcome.window = message.detail
        try:
            outcome.placeholder_destroyed = destroy_placeholder(tmux, placeholder)
        except TmuxCommandError:
            self._kill_session_quietly(tmux, session)
            raise

        if request.share:
            self._share_socket(session)

        self._enter(BootstrapPhase.ATTACH_AND_DELEGATE)
        returncode = tmux.attach(session)
        if returncode != 0:
            raise BootstrapError(f"tmux attach to {session} exited with code {returncode}")

        return outcome

    def _kill_session_quietly(self, tmux: TmuxClient, session: str) -> None:
        try:
            tmux.kill_session(session)
        except TmuxCommandError as e:
            logger.debug(f"Could not kill session {session}: {e}")

    def _share_socket(self, session: str) -> None:
        socket_path = self.config.socket_path
        try:
            # Others need to traverse the state directory to reach the socket
            os.chmod(self.config.state_dir, 0o711)
            os.chmod(socket_path, 0o777)
        except OSError as e:
            raise BootstrapError(f"Cannot share socket {socket_path}: {e}") from e
        attach_cmd = shlex.join(
            [self.config.tmux_command, "-S", str(socket_path), "attach", "-t", session]
        )
        logger.info(f"Session shared. Other users can attach with: {attach_cmd}")


__all__ = [
    "PLACEHOLDER_WINDOW",
    "BootstrapError",
    "BootstrapOutcome",
    "BootstrapPhase",
    "BootstrapRequest",
    "SessionBootstrap",
    "destroy_placeholder",
    "session_name",
    "window_name",
]
