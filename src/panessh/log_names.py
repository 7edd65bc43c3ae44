"""Log file naming.

Template mini-language:
    [:ARG:]  -> "<target>-<occurrence>" (occurrence counts repeats of a target)
    [:PID:]  -> bootstrap process id
    anything else -> strftime pattern, expanded once per invocation

Example:
    >>> allocate(["a", "b", "a"], "[:ARG:]_[:PID:].log", pid=1234)
    ['a-1_1234.log', 'b-1_1234.log', 'a-2_1234.log']
"""

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

ARG_TOKEN = "[:ARG:]"
PID_TOKEN = "[:PID:]"

DEFAULT_LOG_FORMAT = f"{ARG_TOKEN}_%Y-%m-%d_%H-%M-%S.log"
DEFAULT_LOG_DIR = Path.home() / ".panessh" / "logs"


class LogDirectoryError(Exception):
    """Raised when the log directory cannot be created or written."""

    pass


@dataclass(frozen=True)
class TemplateContext:
    """Values substituted into a log name template."""

    arg: str
    pid: int


def expand_time(template: str, now: datetime | None = None) -> str:
    """Expand strftime directives once; placeholder tokens contain no '%'."""
    return (now or datetime.now()).strftime(template)


def render_template(template: str, context: TemplateContext) -> str:
    """Substitute placeholder tokens. Pure, no I/O, no clock.

    Without an [:ARG:] token the target label is prefixed so names stay
    unique per host.
    """
    rendered = template.replace(PID_TOKEN, str(context.pid))
    if ARG_TOKEN in rendered:
        return rendered.replace(ARG_TOKEN, context.arg)
    return f"{context.arg}{rendered}"


def allocate(
    targets: Sequence[str],
    template: str = DEFAULT_LOG_FORMAT,
    pid: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Produce one unique file name per target occurrence.

    Args:
        targets: target strings in pane order (duplicates allowed)
        template: log name template
        pid: value for [:PID:] (default: current pid)
        now: timestamp for strftime expansion (default: now)

    Returns:
        list of file names, index-for-index with targets
    """
    pid = os.getpid() if pid is None else pid
    expanded = expand_time(template, now)

    counters: dict[str, int] = {}
    names = []
    for target in targets:
        counters[target] = counters.get(target, 0) + 1
        label = f"{target}-{counters[target]}"
        names.append(render_template(expanded, TemplateContext(arg=label, pid=pid)))

    return names


def build_log_plan(
    targets: Sequence[str],
    log_dir: Path,
    template: str = DEFAULT_LOG_FORMAT,
    pid: int | None = None,
    now: datetime | None = None,
) -> list[Path]:
    """Resolve allocate() names to absolute paths inside log_dir."""
    base = log_dir.expanduser().resolve()
    return [base / name for name in allocate(targets, template, pid=pid, now=now)]


def ensure_log_dir(log_dir: Path) -> Path:
    """Create log_dir if missing and check it is writable.

    Args:
        log_dir: requested log directory

    Returns:
        Path: resolved directory

    Raises:
        LogDirectoryError: If the directory cannot be created or written
    """
    path = log_dir.expanduser().resolve()

    if path.exists() and not path.is_dir():
        raise LogDirectoryError(f"Log path is not a directory: {path}")

    if not path.exists():
        try:
            path.mkdir(parents=True, mode=0o700)
            logger.debug(f"Created log directory {path}")
        except OSError as e:
            raise LogDirectoryError(f"Cannot create log directory {path}: {e}") from e

    if not os.access(path, os.W_OK | os.X_OK):
        raise LogDirectoryError(f"Log directory is not writable: {path}")

    return path


__all__ = [
    "ARG_TOKEN",
    "DEFAULT_LOG_DIR",
    "DEFAULT_LOG_FORMAT",
    "PID_TOKEN",
    "LogDirectoryError",
    "TemplateContext",
    "allocate",
    "build_log_plan",
    "ensure_log_dir",
    "expand_time",
    "render_template",
]
