"""Fleet-wide snapshots: capture, persist and restore."""

from .manager import SnapshotManager, generate_snapshot_id
from .models import (
    ApplyOptions,
    ApplyResult,
    ApplyStep,
    RepositoryState,
    Snapshot,
)

__all__ = [
    "ApplyOptions",
    "ApplyResult",
    "ApplyStep",
    "RepositoryState",
    "Snapshot",
    "SnapshotManager",
    "generate_snapshot_id",
]
