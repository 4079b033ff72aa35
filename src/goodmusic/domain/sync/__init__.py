"""Sync domain - reconcile the library store with the music directory.

This domain handles:
- Discovery, processing, cleanup and deduplication passes
- Single-flight guarding of sync and refresh runs
- Progress reporting
"""

from .engine import (
    LibrarySync,
    SyncProgress,
    SyncResult,
    ensure_music_directory,
)
from .reconcile import DuplicateIndex, ReconcilePlan, plan_reconciliation, snapshot_by_uri

__all__ = [
    "LibrarySync",
    "SyncProgress",
    "SyncResult",
    "ensure_music_directory",
    "DuplicateIndex",
    "ReconcilePlan",
    "plan_reconciliation",
    "snapshot_by_uri",
]
