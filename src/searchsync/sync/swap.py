"""Direct writes versus shadow-index staging with atomic cutover."""

from __future__ import annotations

import asyncio
from enum import StrEnum

from searchsync.core.logging import Logger, get_logger
from searchsync.remote.base import COPY_SCOPE, SearchBackend

from .state import IndexState, IndexStateRegistry

__all__ = ["SwapState", "IndexSwap"]


class SwapState(StrEnum):
    INIT = "init"
    DIRECT = "direct"
    STAGING = "staging"
    CUTOVER = "cutover"
    SWAPPED_LIVE = "swapped-live"
    FAILED = "failed"


class IndexSwap:
    """Visibility protocol for one destination index.

    ``begin`` picks the write target. When a rebuild targets an index that
    already has content, records go to a shadow index that first receives
    the live settings, synonyms and rules; ``cutover`` then moves the shadow
    over the live index in a single remote operation. Nothing is cleaned up
    when staging fails, so the live index keeps serving its old content.
    """

    def __init__(
        self,
        backend: SearchBackend,
        registry: IndexStateRegistry,
        name: str,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._backend = backend
        self._registry = registry
        self.name = name
        self._logger = logger or get_logger(__name__, index=name)
        self._state = SwapState.INIT
        self._error: BaseException | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SwapState:
        return self._state

    async def begin(self) -> IndexState:
        """Resolve the write target and prepare staging once per index.

        Later callers reuse the outcome of the first, including its error.
        """

        async with self._lock:
            if self._state is SwapState.FAILED:
                assert self._error is not None
                raise self._error
            if self._state is not SwapState.INIT:
                return self._registry.get(self.name)
            try:
                index_state = await self._registry.resolve_write_target(self.name)
                if index_state.using_shadow:
                    await self._prepare_shadow(index_state)
                    self._state = SwapState.STAGING
                else:
                    self._state = SwapState.DIRECT
            except BaseException as exc:
                self._state = SwapState.FAILED
                self._error = exc
                raise
            return index_state

    async def _prepare_shadow(self, index_state: IndexState) -> None:
        shadow = index_state.write_target
        assert shadow is not None
        if await self._backend.has_records(shadow):
            # Left behind by an interrupted rebuild; its records will ride
            # along on cutover.
            self._logger.warning("shadow-index-preexisting", shadow=shadow)
        task = await self._backend.copy_scope(self.name, shadow, COPY_SCOPE)
        await self._backend.wait_task(task)
        self._logger.info(
            "shadow-index-prepared",
            shadow=shadow,
            scope=list(COPY_SCOPE),
        )

    async def cutover(self) -> bool:
        """Move the shadow over the live index; ``False`` in direct mode.

        Raises:
            RuntimeError: If called before staging was prepared.
        """

        if self._state is SwapState.DIRECT:
            return False
        if self._state is not SwapState.STAGING:
            raise RuntimeError(
                f"Cannot cut over index {self.name!r} from state {self._state}"
            )

        shadow = self._registry.get(self.name).write_target
        assert shadow is not None
        self._state = SwapState.CUTOVER
        try:
            task = await self._backend.move_index(shadow, self.name)
            await self._backend.wait_task(task)
        except BaseException as exc:
            self._state = SwapState.FAILED
            self._error = exc
            raise
        self._state = SwapState.SWAPPED_LIVE
        self._logger.info("index-cutover", shadow=shadow)
        return True
