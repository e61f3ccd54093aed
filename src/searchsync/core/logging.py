"""Logging helpers for :mod:`searchsync`."""

from __future__ import annotations

import gzip
import logging
import shutil
from contextlib import contextmanager
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Iterator

from rich.console import Console
from rich.logging import RichHandler
import structlog

Logger = structlog.stdlib.BoundLogger

LOG_FILENAME = "searchsync.log"

_BACKUP_COUNT = 7
_TIMESTAMPER = structlog.processors.TimeStamper(fmt="iso", utc=True)
_SHARED_PRE_CHAIN = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    _TIMESTAMPER,
)


def _normalize_level(level: str) -> int:
    """Return the stdlib level constant for ``level``.

    Raises:
        ValueError: If the level name is not recognized.
    """

    value = logging.getLevelName(level.strip().upper())
    if isinstance(value, str):  # ``getLevelName`` echoes unknown names.
        raise ValueError(f"Unsupported log level: {level!r}")
    return value


def _install_handlers(
    root: logging.Logger,
    handlers: Iterable[logging.Handler],
) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)


def _configure_structlog() -> None:
    structlog.reset_defaults()
    structlog.configure(
        processors=[
            *_SHARED_PRE_CHAIN,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _gzip_rotator(source: str, dest: str) -> None:
    """Compress the rotated log ``source`` into ``dest``."""

    with open(source, "rb") as src, gzip.open(dest, "wb") as target:
        shutil.copyfileobj(src, target)
    Path(source).unlink(missing_ok=True)


def _file_handler(log_file: Path, level: int) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=_BACKUP_COUNT,
        utc=True,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    handler.suffix = "%Y-%m-%d"
    handler.namer = lambda name: f"{name}.gz"
    handler.rotator = _gzip_rotator
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(sort_keys=True),
            foreign_pre_chain=list(_SHARED_PRE_CHAIN),
        )
    )
    return handler


def _console_handler(level: int, console: Console | None) -> RichHandler:
    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        enable_link_path=False,
        log_time_format="%H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=list(_SHARED_PRE_CHAIN),
        )
    )
    return handler


def configure_logging(
    *,
    level: str = "INFO",
    workspace_path: str | Path | None = None,
    console: Console | None = None,
) -> Path | None:
    """Configure structlog on top of stdlib logging.

    Console output goes through Rich. When ``workspace_path`` is given, JSON
    lines are also written to ``<workspace>/logs/searchsync.log`` and rotated
    nightly into gzip archives.

    Args:
        level: Log level name applied to the root logger (case-insensitive).
        workspace_path: Optional workspace root hosting the ``logs`` folder.
        console: Optional Rich console override, mainly for tests.

    Returns:
        The log file path when file logging is enabled, else ``None``.

    Raises:
        ValueError: If ``level`` is not a recognized level name.
    """

    log_level = _normalize_level(level)
    root = logging.getLogger()
    root.setLevel(log_level)

    _configure_structlog()

    handlers: list[logging.Handler] = [_console_handler(log_level, console)]
    log_file: Path | None = None
    if workspace_path is not None:
        log_dir = Path(workspace_path).expanduser().resolve(strict=False)
        log_dir = log_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / LOG_FILENAME
        handlers.append(_file_handler(log_file, log_level))

    _install_handlers(root, handlers)
    logging.captureWarnings(True)
    # httpx logs every request at INFO; keep that out of sync progress output.
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))
    return log_file


def get_logger(name: str | None = None, **initial_context: Any) -> Logger:
    """Return a structured logger bound to ``initial_context``.

    Example:
        >>> logger = get_logger(__name__, component="engine")
        >>> logger.info("engine-ready", sources=2)  # doctest: +SKIP
    """

    return structlog.get_logger(name).bind(**initial_context)


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    """Bind ``values`` to every log event emitted inside the block."""

    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


__all__ = [
    "LOG_FILENAME",
    "Logger",
    "bound_context",
    "configure_logging",
    "get_logger",
]
