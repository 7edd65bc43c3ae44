"""Handoff channel.

Single-use named pipe between the outer invocation and the invocation
re-executed inside the new session. The inner run reports back once its
window is laid out and dispatched (or once it failed), so the outer only
attaches the terminal to a finished session.

Message format (one line):
    ok <window>        inner run finished; window holds the panes
    error <reason>     inner run failed; the session must be discarded

Philosophy:
- Standard library only (os.mkfifo, non-blocking file descriptors)
- Both ends have a deadline; nothing blocks forever
- The FIFO is created and removed by the same context manager

Public API:
    HandoffChannel: owns the FIFO on disk and receives the report (outer side)
    send_message: write the report with a deadline (inner side)
    HandoffMessage: parsed report
"""

import errno
import logging
import os
import stat
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05

STATUS_OK = "ok"
STATUS_ERROR = "error"


class HandoffError(Exception):
    """Raised when the handoff channel cannot be created, written or read."""

    pass


class HandoffTimeoutError(HandoffError):
    """Raised when the other end does not show up before the deadline."""

    pass


@dataclass(frozen=True)
class HandoffMessage:
    """Completion report sent by the inner run."""

    ok: bool
    detail: str = ""

    @classmethod
    def success(cls, window: str) -> "HandoffMessage":
        return cls(ok=True, detail=window)

    @classmethod
    def failure(cls, reason: str) -> "HandoffMessage":
        return cls(ok=False, detail=reason)

    def encode(self) -> str:
        # One message per line
        detail = " ".join(self.detail.split())
        return f"{STATUS_OK if self.ok else STATUS_ERROR} {detail}".rstrip()

    @classmethod
    def decode(cls, line: str) -> "HandoffMessage":
        """Parse a report line.

        Raises:
            HandoffError: If the status word is unknown
        """
        status, _, detail = line.strip().partition(" ")
        if status == STATUS_OK:
            return cls.success(detail)
        if status == STATUS_ERROR:
            return cls.failure(detail)
        raise HandoffError(f"Malformed handoff message: {line!r}")


class HandoffChannel:
    """Named pipe owned by one invocation.

    Example:
        >>> with HandoffChannel(Path("/tmp/handoff-4242.fifo")) as channel:
        ...     message = channel.receive(timeout=10)
    """

    def __init__(self, path: Path):
        self.path = path
        self._created = False

    def create(self) -> Path:
        """Create the FIFO (mode 0600).

        Raises:
            HandoffError: If the path exists or mkfifo fails
        """
        try:
            os.mkfifo(self.path, 0o600)
        except FileExistsError as e:
            raise HandoffError(
                f"Handoff pipe already exists: {self.path}. "
                "A previous run may have crashed; remove it and retry."
            ) from e
        except OSError as e:
            raise HandoffError(f"Cannot create handoff pipe {self.path}: {e}") from e

        self._created = True
        logger.debug(f"Created handoff pipe {self.path}")
        return self.path

    def remove(self) -> None:
        """Remove the FIFO if this channel created it. Safe to call twice."""
        if not self._created:
            return
        try:
            self.path.unlink()
            logger.debug(f"Removed handoff pipe {self.path}")
        except FileNotFoundError:
            pass
        self._created = False

    def receive(self, timeout: float) -> HandoffMessage:
        """Wait for the inner run's report.

        Raises:
            HandoffTimeoutError: If nothing arrives before the deadline
            HandoffError: If the report is empty or malformed
        """
        return HandoffMessage.decode(read_token(self.path, timeout))

    def __enter__(self) -> "HandoffChannel":
        self.create()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.remove()


def _open_with_deadline(path: Path, flags: int, timeout: float) -> int:
    # Opening a FIFO for writing fails with ENXIO until a reader has it open
    deadline = time.monotonic() + timeout
    while True:
        try:
            return os.open(path, flags)
        except OSError as e:
            if e.errno != errno.ENXIO:
                raise
        if time.monotonic() >= deadline:
            raise HandoffTimeoutError(f"No reader on handoff pipe {path} after {timeout}s")
        time.sleep(POLL_INTERVAL)


def write_token(path: Path, token: str, timeout: float) -> None:
    """Write one line into the FIFO at path.

    Raises:
        HandoffTimeoutError: If no reader opens the pipe in time
        HandoffError: If the pipe cannot be written
    """
    try:
        fd = _open_with_deadline(path, os.O_WRONLY | os.O_NONBLOCK, timeout)
        try:
            os.set_blocking(fd, True)
            os.write(fd, f"{token}\n".encode())
        finally:
            os.close(fd)
    except HandoffError:
        raise
    except OSError as e:
        raise HandoffError(f"Cannot write handoff pipe {path}: {e}") from e
    logger.debug(f"Handoff message written to {path}")


def send_message(path: Path, message: HandoffMessage, timeout: float) -> None:
    """Send the inner run's report to the outer invocation."""
    write_token(path, message.encode(), timeout)


def read_token(path: Path, timeout: float) -> str:
    """Read the single line written into the FIFO at path.

    Args:
        path: FIFO path
        timeout: seconds to wait for the writer

    Returns:
        str: line without the trailing newline

    Raises:
        HandoffError: If path is not a FIFO or the line is empty
        HandoffTimeoutError: If no complete line arrives in time
    """
    try:
        mode = path.stat().st_mode
    except FileNotFoundError as e:
        raise HandoffError(f"Handoff pipe not found: {path}") from e
    if not stat.S_ISFIFO(mode):
        raise HandoffError(f"Not a named pipe: {path}")

    deadline = time.monotonic() + timeout
    fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    data = b""
    try:
        while b"\n" not in data:
            try:
                chunk = os.read(fd, 4096)
            except BlockingIOError:
                chunk = None

            if chunk:
                data += chunk
                continue
            if chunk == b"" and data:
                # Writer closed after a partial line
                break
            if time.monotonic() >= deadline:
                raise HandoffTimeoutError(f"No handoff message on {path} after {timeout}s")
            time.sleep(POLL_INTERVAL)
    finally:
        os.close(fd)

    token = data.decode().strip()
    if not token:
        raise HandoffError(f"Empty handoff message on {path}")
    logger.debug(f"Received handoff message {token!r}")
    return token


__all__ = [
    "HandoffChannel",
    "HandoffError",
    "HandoffMessage",
    "HandoffTimeoutError",
    "read_token",
    "send_message",
    "write_token",
]
