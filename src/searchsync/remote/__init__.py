"""Remote search backends and their factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from searchsync.errors import ConfigError

from .algolia import AlgoliaBackend
from .base import COPY_SCOPE, SearchBackend, TaskHandle
from .memory import MemoryBackend, MemoryIndex

if TYPE_CHECKING:
    from searchsync.core.config import RemoteSettings
    from searchsync.core.logging import Logger

__all__ = [
    "COPY_SCOPE",
    "AlgoliaBackend",
    "MemoryBackend",
    "MemoryIndex",
    "SearchBackend",
    "TaskHandle",
    "create_backend",
]


def create_backend(
    settings: RemoteSettings,
    *,
    logger: Logger | None = None,
) -> SearchBackend:
    """Instantiate the backend named by ``settings.provider``.

    Raises:
        ConfigError: If credentials are missing or the provider is unknown.
    """

    if settings.provider == "memory":
        return MemoryBackend()
    if settings.provider == "algolia":
        if not settings.app_id or not settings.api_key:
            raise ConfigError(
                "Algolia needs remote.app_id and an API key "
                "(set SEARCHSYNC_APP_ID / SEARCHSYNC_API_KEY)"
            )
        return AlgoliaBackend(
            app_id=settings.app_id,
            api_key=settings.api_key,
            host=settings.host,
            timeout=settings.timeout,
            task_poll_interval=settings.task_poll_interval,
            max_attempts=settings.max_attempts,
            logger=logger,
        )
    raise ConfigError(f"Unknown remote provider: {settings.provider!r}")
