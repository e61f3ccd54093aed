"""Lock file guarding concurrent writers of the hash cache."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CacheLockError, CacheLockTimeoutError

__all__ = ["CacheLock", "lock_path_for"]


@dataclass(slots=True)
class CacheLock:
    """Exclusive lock file created with ``O_EXCL`` and polled until free."""

    path: Path
    timeout: float = 5.0
    poll_interval: float = 0.1
    _fd: int | None = field(init=False, default=None, repr=False)

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Acquire the lock, waiting up to ``timeout`` seconds.

        Raises:
            CacheLockTimeoutError: If another holder keeps the lock too long.
            CacheLockError: If the lock file cannot be created.
        """

        if self._fd is not None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + max(self.timeout, 0.0)
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise CacheLockTimeoutError(
                        f"Timed out waiting for cache lock at {self.path}"
                    ) from None
                time.sleep(self.poll_interval)
                continue
            except OSError as exc:
                raise CacheLockError(
                    f"Failed acquiring cache lock at {self.path}: {exc}"
                ) from exc
            os.write(fd, str(os.getpid()).encode("ascii"))
            self._fd = fd
            return

    def release(self) -> None:
        """Release the lock if held."""

        fd = self._fd
        if fd is None:
            return
        try:
            os.close(fd)
        finally:
            self._fd = None
            try:
                self.path.unlink()
            except FileNotFoundError:  # pragma: no cover - removed externally
                pass
            except OSError as exc:  # pragma: no cover - surfaced at runtime
                raise CacheLockError(
                    f"Failed removing cache lock at {self.path}: {exc}"
                ) from exc

    def __enter__(self) -> "CacheLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def lock_path_for(cache_path: Path, *, suffix: str = ".lock") -> Path:
    """Return the lock file path guarding ``cache_path``."""

    return cache_path.with_name(f"{cache_path.name}{suffix}")
