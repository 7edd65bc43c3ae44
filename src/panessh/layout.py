"""Layout engine.

Turns a freshly created window (one placeholder pane) into exactly N panes,
one per target host.

Sequence (order matters, every step depends on tmux state left by the
previous one):
1. Query the base pane index once
2. Select the base pane
3. N times: split horizontally, then re-apply a layout so panes never
   shrink below tmux's minimum width
4. Kill the placeholder pane, select the first real pane
5. Final layout pass chosen by LayoutPolicy
"""

import logging
from dataclasses import dataclass

from panessh.tmux import TmuxClient

logger = logging.getLogger(__name__)

EVEN_HORIZONTAL = "even-horizontal"
TILED = "tiled"

KNOWN_LAYOUTS = frozenset(
    {"even-horizontal", "even-vertical", "main-horizontal", "main-vertical", "tiled"}
)


class LayoutError(Exception):
    """Raised when the window does not end up with one pane per host."""

    pass


@dataclass(frozen=True)
class LayoutPolicy:
    """Which tmux layouts to apply while splitting and at the end.

    Attributes:
        tiled_threshold: pane count from which tiled replaces even-horizontal
        fixed_layout: if set, used for the final pass whenever 2+ panes exist
    """

    tiled_threshold: int = 3
    fixed_layout: str | None = None

    @classmethod
    def from_name(cls, name: str | None) -> "LayoutPolicy":
        """Build a policy from a config value ("auto" or a tmux layout name)."""
        if not name or name == "auto":
            return cls()
        if name not in KNOWN_LAYOUTS:
            raise ValueError(f"Unknown layout: {name}")
        return cls(fixed_layout=name)

    def splitting_layout(self, pane_count: int) -> str:
        """Layout to re-apply after a split that left pane_count panes."""
        return TILED if pane_count >= self.tiled_threshold else EVEN_HORIZONTAL

    def final_layout(self, host_count: int) -> str | None:
        """Layout for the final pass, or None when one pane fills the window."""
        if host_count <= 1:
            return None
        if self.fixed_layout:
            return self.fixed_layout
        return TILED if host_count >= self.tiled_threshold else EVEN_HORIZONTAL


@dataclass(frozen=True)
class PaneSet:
    """Panes of one window, indexed base_index .. base_index + count - 1."""

    window: str
    base_index: int
    count: int

    def target(self, position: int) -> str:
        """tmux target for the pane at 0-based position."""
        if not 0 <= position < self.count:
            raise IndexError(f"Pane position {position} out of range (0..{self.count - 1})")
        return f"{self.window}.{self.base_index + position}"


def query_base_index(tmux: TmuxClient, window: str) -> int:
    """Return the index of the only pane of a fresh window.

    tmux numbers panes from pane-base-index, which users commonly set to 1.
    """
    value = tmux.display(window, "#{pane_index}")
    try:
        return int(value)
    except ValueError as e:
        raise LayoutError(f"Unexpected pane index for {window}: {value!r}") from e


def layout(
    tmux: TmuxClient, window: str, host_count: int, policy: LayoutPolicy | None = None
) -> PaneSet:
    """Split window into host_count panes.

    Args:
        tmux: tmux client
        window: target window (must hold exactly one placeholder pane)
        host_count: number of target hosts (>= 1)
        policy: layout policy (default: LayoutPolicy())

    Returns:
        PaneSet addressing the resulting panes

    Raises:
        ValueError: If host_count < 1
        TmuxCommandError: If any tmux step fails
        LayoutError: If the final pane count is not host_count
    """
    if host_count < 1:
        raise ValueError("host_count must be at least 1")

    policy = policy or LayoutPolicy()
    base_index = query_base_index(tmux, window)
    placeholder = f"{window}.{base_index}"

    logger.debug(f"Laying out {host_count} panes in {window} (base index {base_index})")

    tmux.select_pane(placeholder)
    for split in range(1, host_count + 1):
        tmux.split_window(window)
        tmux.select_layout(window, policy.splitting_layout(split + 1))

    # Remaining panes are renumbered contiguously from base_index
    tmux.kill_pane(placeholder)
    tmux.select_pane(placeholder)

    final = policy.final_layout(host_count)
    if final:
        tmux.select_layout(window, final)

    panes = tmux.list_panes(window)
    if len(panes) != host_count:
        raise LayoutError(f"Expected {host_count} panes in {window}, found {len(panes)}")

    return PaneSet(window=window, base_index=base_index, count=host_count)


__all__ = [
    "EVEN_HORIZONTAL",
    "KNOWN_LAYOUTS",
    "TILED",
    "LayoutError",
    "LayoutPolicy",
    "PaneSet",
    "layout",
    "query_base_index",
]
