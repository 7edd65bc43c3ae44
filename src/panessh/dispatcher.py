"""Pane command dispatcher.

For every pane: attach pipe-pane logging first (so no output is lost), then
type the SSH command into the pane. Finally turn on synchronize-panes so
keystrokes reach every host at once.
"""

import logging
import shlex
from collections.abc import Sequence
from pathlib import Path

from panessh.layout import PaneSet
from panessh.tmux import TmuxClient

logger = logging.getLogger(__name__)

DEFAULT_SSH_COMMAND = (
    "ssh",
    "-o",
    "StrictHostKeyChecking=no",
    "-o",
    "UserKnownHostsFile=/dev/null",
)


def build_login_command(target: str, ssh_command: Sequence[str] = DEFAULT_SSH_COMMAND) -> str:
    """Build the shell line typed into a pane.

    Example:
        >>> build_login_command("admin@web1", ["ssh"])
        'ssh admin@web1'
    """
    return shlex.join([*ssh_command, target])


def build_pipe_command(log_path: Path) -> str:
    """Shell command that appends pane output to log_path."""
    return f"cat >> {shlex.quote(str(log_path))}"


def dispatch(
    tmux: TmuxClient,
    panes: PaneSet,
    targets: Sequence[str],
    log_plan: Sequence[Path] | None = None,
    ssh_command: Sequence[str] = DEFAULT_SSH_COMMAND,
) -> None:
    """Wire logging and send login commands into each pane.

    Args:
        tmux: tmux client
        panes: panes produced by layout()
        targets: targets, index-for-index with panes
        log_plan: log paths, index-for-index with targets (None: no logging)
        ssh_command: login tool argv prefix

    Raises:
        ValueError: If targets/log_plan do not match the pane count
        TmuxCommandError: On the first failing tmux command (earlier panes
            are left as they are)
    """
    if len(targets) != panes.count:
        raise ValueError(f"{len(targets)} targets for {panes.count} panes")
    if log_plan is not None and len(log_plan) != len(targets):
        raise ValueError(f"{len(log_plan)} log paths for {len(targets)} targets")

    for position, target in enumerate(targets):
        pane = panes.target(position)

        if log_plan is not None:
            logger.debug(f"Logging {pane} to {log_plan[position]}")
            tmux.pipe_pane(pane, build_pipe_command(log_plan[position]))

        tmux.send_keys(pane, build_login_command(target, ssh_command))

    tmux.set_window_option(panes.window, "synchronize-panes", "on")
    logger.debug(f"Dispatched {len(targets)} connections in {panes.window}")


__all__ = ["DEFAULT_SSH_COMMAND", "build_login_command", "build_pipe_command", "dispatch"]
