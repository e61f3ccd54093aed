"""Progress reporting collaborator for sync runs."""

from __future__ import annotations

import time
from typing import Callable, Protocol, runtime_checkable

from searchsync.core.logging import Logger, get_logger

__all__ = ["ProgressReporter", "Activity", "RecordingReporter"]


@runtime_checkable
class ProgressReporter(Protocol):
    """Accepts free-text status; never influences control flow."""

    def start(self) -> None: ...

    def report(self, status: str) -> None: ...

    def error(self, message: str, error: BaseException | None = None) -> None: ...

    def end(self) -> None: ...


class Activity:
    """Log status lines with the time elapsed since the previous one."""

    def __init__(
        self,
        title: str,
        *,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.title = title
        self._logger = logger or get_logger(__name__, activity=title)
        self._clock = clock
        self._started: float | None = None
        self._last: float | None = None

    def _lap(self) -> float:
        now = self._clock()
        previous = self._last if self._last is not None else now
        self._last = now
        return round(now - previous, 3)

    def start(self) -> None:
        self._started = self._last = self._clock()
        self._logger.info("activity-start", title=self.title)

    def report(self, status: str) -> None:
        self._logger.info(
            "activity-status",
            title=self.title,
            status=status,
            elapsed_s=self._lap(),
        )

    def error(self, message: str, error: BaseException | None = None) -> None:
        self._logger.error(
            "activity-error",
            title=self.title,
            status=message,
            error=str(error) if error is not None else None,
            error_type=type(error).__name__ if error is not None else None,
        )

    def end(self) -> None:
        started = self._started if self._started is not None else self._clock()
        self._logger.info(
            "activity-end",
            title=self.title,
            duration_s=round(self._clock() - started, 3),
        )


class RecordingReporter:
    """Reporter keeping every line in memory; used by dry runs and tests."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.errors: list[tuple[str, BaseException | None]] = []
        self.started = False
        self.ended = False

    def start(self) -> None:
        self.started = True

    def report(self, status: str) -> None:
        self.lines.append(status)

    def error(self, message: str, error: BaseException | None = None) -> None:
        self.errors.append((message, error))

    def end(self) -> None:
        self.ended = True
