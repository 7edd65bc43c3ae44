"""Execution context detection.

The bootstrap never reads process globals itself; the CLI builds an
ExecutionContext once and hands it down.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class ExecutionContext:
    """Where this invocation runs.

    Attributes:
        attached: True when running inside a tmux client session
        session_id: tmux session index taken from $TMUX, if attached
        pid: process id of this invocation
        origin_pid: process id of the invocation that started the whole run
            (differs from pid inside a re-executed session)
    """

    attached: bool
    session_id: str | None = None
    pid: int = 0
    origin_pid: int = 0

    @property
    def bootstrap_pid(self) -> int:
        """Process id used for naming (log files, sessions, windows)."""
        return self.origin_pid or self.pid

    @classmethod
    def from_environ(
        cls, environ: Mapping[str, str] | None = None, origin_pid: int | None = None
    ) -> "ExecutionContext":
        """Build context from an environment mapping.

        $TMUX looks like ``/tmp/tmux-1000/default,4242,3``; the last field is
        the session index.

        Args:
            environ: Environment to inspect (default: os.environ)
            origin_pid: Pid forwarded by an outer invocation

        Returns:
            ExecutionContext
        """
        env = os.environ if environ is None else environ
        tmux_value = env.get("TMUX", "")
        pid = os.getpid()

        session_id = None
        if tmux_value:
            parts = tmux_value.split(",")
            if len(parts) >= 3 and parts[-1]:
                session_id = parts[-1]

        return cls(
            attached=bool(tmux_value),
            session_id=session_id,
            pid=pid,
            origin_pid=origin_pid or pid,
        )


__all__ = ["ExecutionContext"]
