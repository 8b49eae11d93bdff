"""Filesystem locks for cross-process coordination.

A lock is an ``fcntl.flock`` held on ``path``; the file also records the
owner's pid for diagnostics. The kernel drops the lock when its owner exits,
so a lock left behind by a crashed process is simply taken by the next
caller, with no stealing step to race on. Release unlinks the file while
still holding the lock, and a caller that locked an already unlinked inode
retries on the new file. Separate FileLock objects exclude each other even
inside one process, since each opens its own file description.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import time
from typing import Optional

from constants import Constants
from errors import LockTimeout

logger = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Return True if a process with ``pid`` exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _parse_pid(text: str) -> Optional[int]:
    try:
        return int(text.strip().split()[0])
    except (ValueError, IndexError):
        return None


def read_lock_pid(path: str) -> Optional[int]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return _parse_pid(f.read())
    except OSError:
        return None


class FileLock:
    """Exclusive lock on ``path``; the owner's pid is written into the file."""

    def __init__(
        self,
        path: str,
        timeout: float = Constants.DEFAULT_LOCK_TIMEOUT_SEC,
        poll_interval: float = Constants.LOCK_POLL_INTERVAL_SEC,
    ):
        self.path = path
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._fd: Optional[int] = None
        # time.time() when acquire() started waiting
        self.wait_started: Optional[float] = None
        self.waited = False

    @property
    def held(self) -> bool:
        return self._fd is not None

    def _try_lock(self) -> bool:
        while True:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError as e:
                os.close(fd)
                if e.errno in (errno.EWOULDBLOCK, errno.EAGAIN):
                    return False
                raise
            try:
                current = os.stat(self.path)
            except FileNotFoundError:
                current = None
            if current is None or not os.path.samestat(os.fstat(fd), current):
                # released and unlinked between open() and flock()
                os.close(fd)
                continue
            previous = _parse_pid(os.read(fd, 64).decode("utf-8", "replace"))
            os.lseek(fd, 0, os.SEEK_SET)
            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode("utf-8"))
            if previous is not None and previous != os.getpid() and not pid_alive(previous):
                logger.warning("Took over lock %s left by pid %s", self.path, previous)
            self._fd = fd
            return True

    def try_acquire(self) -> bool:
        """Take the lock only if it is free right now."""
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        return self._try_lock()

    def acquire(self) -> "FileLock":
        """Block until the lock is held.

        Raises:
            LockTimeout: the lock stayed held by a live process past ``timeout``.
        """
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self.wait_started = time.time()
        deadline = time.monotonic() + self.timeout
        announced = False
        while True:
            if self._try_lock():
                return self
            self.waited = True
            if not announced:
                logger.info(
                    "Waiting for lock %s held by pid %s", self.path, read_lock_pid(self.path)
                )
                announced = True
            if time.monotonic() >= deadline:
                raise LockTimeout(self.path, self.timeout, read_lock_pid(self.path))
            time.sleep(self.poll_interval)

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        finally:
            os.close(fd)

    def __enter__(self) -> "FileLock":
        return self.acquire()

    def __exit__(self, *exc) -> None:
        self.release()
