"""Cross-process xtables lock.

iptables releases before 1.4.20 have no ``--wait`` flag, so two
invocations can race on the in-kernel ruleset. Every cooperating process
takes an exclusive ``flock`` on one well-known file before touching the
ruleset. The iptables tools themselves lock the same file, so the
convention also covers them.

``flock`` locks belong to the open file description: two handles opened
separately conflict even inside one process.
"""

import fcntl
import os
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

from xtctl.core.config import DEFAULT_LOCK_PATH
from xtctl.core.exceptions import LockContentionError, LockError


LOCK_FILE_MODE = 0o600


class LockHandle:
    """An exclusively held xtables lock.

    Closing the file descriptor drops the lock. Use as a context manager so
    the lock is released however the block exits.
    """

    def __init__(self, fd: int, path: Path) -> None:
        self._fd: Optional[int] = fd
        self.path = path

    @property
    def held(self) -> bool:
        return self._fd is not None

    def unlock(self) -> None:
        """Release the lock. Safe to call more than once."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        os.close(fd)

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.unlock()


class XtablesFileLock:
    """Non-blocking exclusive lock on the shared xtables lock file."""

    def __init__(self, path: Path = DEFAULT_LOCK_PATH) -> None:
        self.path = Path(path)

    def try_lock(self) -> LockHandle:
        """Take the lock without waiting.

        Returns:
            LockHandle owning the lock

        Raises:
            LockContentionError: If another holder has the lock
            LockError: If the lock file cannot be created, opened or locked
        """
        try:
            fd = os.open(self.path, os.O_RDONLY | os.O_CREAT, LOCK_FILE_MODE)
        except OSError as e:
            raise LockError(
                f"Cannot open xtables lock file: {self.path}",
                lock_path=self.path,
                details=[str(e)],
                hint="Run as root or point lock_path at a writable location",
            ) from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            raise LockContentionError(
                f"xtables lock is held by another process: {self.path}",
                lock_path=self.path,
                hint="Retry once the other iptables user has finished",
            ) from e
        except OSError as e:
            os.close(fd)
            raise LockError(
                f"Cannot lock xtables lock file: {self.path}",
                lock_path=self.path,
                details=[str(e)],
            ) from e

        return LockHandle(fd, self.path)
