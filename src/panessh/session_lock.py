"""Per-user bootstrap lock.

Two detached bootstraps by the same user share one state directory and one
tmux server socket. The lock serializes the window between spawning a
session and delivering its handoff token; a second invocation waits with
exponential backoff and then fails instead of racing.

Philosophy:
- Standard library only (fcntl)
- Exponential backoff for contention handling
- Context manager for automatic cleanup

Public API:
    acquire_session_lock: Context manager holding the lock
    LockTimeoutError: Raised when the lock stays busy past the timeout

Example:
    >>> with acquire_session_lock(Path("~/.panessh/bootstrap.lock").expanduser()):
    ...     pass  # spawn session, deliver handoff

Backoff: 0.1s -> 0.2s -> 0.4s -> 0.8s -> 1.6s -> 2.0s (capped)
"""

import fcntl
import logging
import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)

__all__ = ["LockTimeoutError", "acquire_session_lock"]


class LockTimeoutError(Exception):
    """Raised when the bootstrap lock cannot be acquired within timeout."""


@contextmanager
def acquire_session_lock(
    lock_path: Path,
    timeout: float = 5.0,
    operation: str = "session bootstrap",
) -> Generator[None, None, None]:
    """Hold an exclusive flock on lock_path.

    The lock file is created if missing and never deleted; deleting it
    while another process waits would let two holders exist.

    Args:
        lock_path: Lock file path (parent directory must exist)
        timeout: Maximum seconds to wait (default: 5.0)
        operation: Description used in error messages

    Yields:
        None (lock is held within context)

    Raises:
        LockTimeoutError: If another invocation holds the lock past timeout
    """
    with open(lock_path, "a") as file_handle:
        try:
            _acquire_with_backoff(file_handle, lock_path, timeout, operation)
            # Record holder for anyone inspecting a stuck lock
            file_handle.truncate(0)
            file_handle.write(f"{os.getpid()}\n")
            file_handle.flush()
            yield
        finally:
            _release(file_handle)


def _acquire_with_backoff(
    file_handle: TextIO, lock_path: Path, timeout: float, operation: str
) -> None:
    start_time = time.time()
    delay = 0.1
    attempt = 0

    while True:
        try:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            if attempt:
                logger.debug(f"Acquired {lock_path} after {attempt} retries")
            return
        except BlockingIOError:
            pass

        elapsed = time.time() - start_time
        if elapsed >= timeout:
            raise LockTimeoutError(
                f"Failed to acquire lock for {operation} after {timeout} seconds. "
                f"File: {lock_path}. Another panessh invocation is starting a session."
            )

        if attempt == 0:
            logger.info("Waiting for another panessh invocation to finish starting...")

        time.sleep(min(delay, timeout - elapsed))
        delay = min(delay * 2, 2.0)
        attempt += 1


def _release(file_handle: TextIO) -> None:
    try:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        logger.debug(f"Error during lock cleanup: {e}")
