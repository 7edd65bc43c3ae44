"""panessh - open one SSH connection per tmux pane

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Fail fast with helpful guidance

panessh splits a single tmux window into one pane per target host, sends an
SSH command into every pane, optionally records each pane to a log file and
synchronizes keystrokes across all of them. When started outside tmux it
creates a detached session on a shared socket, re-runs itself inside it and
attaches, so other users can co-attach to the same session.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
