"""Synchronization engine pushing records into remote search indexes."""

from __future__ import annotations

from .activity import Activity, ProgressReporter, RecordingReporter
from .engine import SyncEngine, merge_snapshot
from .models import (
    OBJECT_ID,
    DiffStrategy,
    IndexKey,
    IndexReport,
    Record,
    SourceReport,
    SourceSpec,
    SyncMode,
    SyncReport,
)

__all__ = [
    "OBJECT_ID",
    "Activity",
    "DiffStrategy",
    "IndexKey",
    "IndexReport",
    "ProgressReporter",
    "Record",
    "RecordingReporter",
    "SourceReport",
    "SourceSpec",
    "SyncEngine",
    "SyncMode",
    "SyncReport",
    "merge_snapshot",
]
