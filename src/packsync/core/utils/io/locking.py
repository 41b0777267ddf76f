"""Process-wide exclusive lock for mutating packsync runs."""
from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional

from packsync.core.exceptions import LockAcquisitionFailure

from .core import ensure_directory

logger = logging.getLogger(__name__)


class ProcessLock:
    """Non-blocking ``flock`` on a well-known lock file.

    The lock is advisory and released by the OS when the holding process
    exits, so a crashed run never leaves the lock stuck.
    """

    def __init__(self, lock_path: Path) -> None:
        self.lock_path = Path(lock_path)
        self._fh: Optional[IO[str]] = None

    def acquire(self) -> None:
        if self._fh is not None:
            return
        ensure_directory(self.lock_path.parent)
        fh = open(self.lock_path, "a+", encoding="utf-8")
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            fh.close()
            logger.info("Lock contention on %s: %s", self.lock_path, exc)
            raise LockAcquisitionFailure(str(self.lock_path)) from exc
        fh.seek(0)
        fh.truncate()
        fh.write(f"{os.getpid()}\n")
        fh.flush()
        self._fh = fh
        logger.debug("Acquired process lock %s", self.lock_path)

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None
        logger.debug("Released process lock %s", self.lock_path)


@contextmanager
def acquire_process_lock(lock_path: Path | str) -> Iterator[ProcessLock]:
    """Hold the exclusive process lock for the duration of the context.

    Raises:
        LockAcquisitionFailure: Another process already holds the lock.
    """
    lock = ProcessLock(Path(lock_path))
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()


__all__ = ["ProcessLock", "acquire_process_lock"]
