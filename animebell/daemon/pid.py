"""PID file guarding against a second scheduler process."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from animebell.exceptions import AnimeBellError

logger = logging.getLogger(__name__)


class DaemonAlreadyRunningError(AnimeBellError):
    """Raised when another live process holds the PID file."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"animebell is already running (PID: {pid})")
        self.pid = pid


def _process_alive(pid: int) -> bool:
    try:
        # Signal 0 only checks that the process exists
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    except OSError:
        return False
    return True


class PIDFile:
    """Single-instance guard backed by a PID file.

    Two schedulers over the same job ledger would fire every reminder twice,
    so ``acquire`` refuses to proceed while the recorded process is alive.

    Example:
        pid_file = PIDFile(config.pid_file)
        pid_file.acquire()
        try:
            ...
        finally:
            pid_file.release()
    """

    def __init__(self, path: Path):
        self.path = path

    def read(self) -> Optional[int]:
        """Read the recorded PID, or None if missing or unreadable."""
        try:
            return int(self.path.read_text().strip())
        except (FileNotFoundError, ValueError, OSError):
            return None

    def is_running(self) -> bool:
        """Check whether the recorded process is alive."""
        pid = self.read()
        return pid is not None and _process_alive(pid)

    def get_pid(self) -> Optional[int]:
        """Get the PID of the running daemon, or None."""
        pid = self.read()
        if pid is not None and _process_alive(pid):
            return pid
        return None

    def acquire(self) -> None:
        """
        Record the current process, replacing a stale file.

        Raises:
            DaemonAlreadyRunningError: If another live process holds the file
        """
        pid = self.get_pid()
        if pid is not None and pid != os.getpid():
            raise DaemonAlreadyRunningError(pid)

        if self.path.exists() and pid is None:
            logger.info(f"Removing stale PID file {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(os.getpid()))

    def release(self) -> None:
        """Remove the file if it still belongs to this process."""
        if self.read() == os.getpid():
            self.path.unlink(missing_ok=True)
