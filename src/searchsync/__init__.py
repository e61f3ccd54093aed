"""Incremental synchronization of local record sets into search indexes.

The package exposes version metadata so downstream tooling can surface the
installed build.

Example:
    >>> from searchsync import __version__
    >>> isinstance(__version__, str)
    True
"""

from importlib import metadata

try:
    __version__ = metadata.version("searchsync")
except metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    __version__ = "0.0.0"

__all__ = ["__version__"]
