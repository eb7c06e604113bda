"""Concurrent fleet synchronization.

Modules:

- ``engine``    -- ``SyncEngine``: bounded-parallel sync, save and
  branch batches with per-repository failure isolation.
- ``models``    -- ``SyncAction``, ``SyncResult``, ``SyncReport``.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from mctl.repository import Registry
    from mctl.sync import SyncEngine, format_dry_run_preview, format_sync_report

    registry = Registry.open(".")
    engine = SyncEngine(registry, mode="pull", auto_remove=True)

    preview = engine.sync(dry_run=True)
    print(format_dry_run_preview(preview))

    report = engine.sync()
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .models import SyncAction, SyncReport, SyncResult
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

__all__ = [
    "SyncAction",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "format_dry_run_preview",
    "format_sync_report",
    "report_to_json",
]
