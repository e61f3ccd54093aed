"""Shared pytest fixtures for searchsync tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog


@pytest.fixture(autouse=True)
def _reset_global_logging() -> Iterator[None]:
    """Drop handlers and structlog config installed by CLI invocations."""

    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    structlog.reset_defaults()
