"""Pydantic models for fleet batch operations.

- ``SyncAction``: what was (or would be) done to one repository.
- ``SyncResult``: outcome of one repository, written to its own slot.
- ``SyncReport``: aggregate results for one batch run.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from ..repository.models import RepositoryStatus


class SyncAction(str, Enum):
    """Operations performed on a repository during a batch."""

    CLONE = "clone"
    FETCH = "fetch"
    PULL = "pull"
    SAVE = "save"
    CHECKOUT = "checkout"
    CREATE_BRANCH = "create_branch"
    SKIP = "skip"


class SyncResult(BaseModel):
    """Result of processing one repository.

    Attributes:
        repository_id: Registry id.
        name: Registry name.
        path: Registry path.
        action: Action performed, or planned under dry-run.
        success: Whether the action succeeded.
        error: Error message if it failed.
        not_exist: The working directory is absent and could not be
            cloned.  Only these results are eligible for auto-removal.
        status: Repository status after the action, when refreshed.
    """

    repository_id: str
    name: str
    path: str
    action: SyncAction
    success: bool
    error: str | None = None
    not_exist: bool = False
    status: RepositoryStatus | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one batch run.

    Attributes:
        operation: ``"sync"``, ``"save"`` or ``"branch"``.
        dry_run: Whether this was a dry-run (no changes applied).
        auto_remove: Whether unclonable repositories were unregistered.
        results: Per-repository results, in registry order.
        removed: Names unregistered by the auto-removal pass.
        started_at: ISO 8601 timestamp when the batch started.
        completed_at: ISO 8601 timestamp when the batch completed.
    """

    operation: str = "sync"
    dry_run: bool = False
    auto_remove: bool = False
    results: list[SyncResult] = []
    removed: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> list[SyncResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    @property
    def not_exist(self) -> list[SyncResult]:
        """Failures caused by a missing, unclonable working directory."""
        return [r for r in self.results if r.not_exist]

    @property
    def skipped(self) -> list[SyncResult]:
        return [
            r for r in self.results if r.success and r.action == SyncAction.SKIP
        ]

    @property
    def applied(self) -> list[SyncResult]:
        """Successful results that did something."""
        return [
            r for r in self.results if r.success and r.action != SyncAction.SKIP
        ]

    @property
    def ok(self) -> bool:
        """Overall outcome of the batch.

        Every repository must have succeeded, unless auto-removal was
        enabled and at least one repository succeeded.
        """
        if not self.failed:
            return True
        return self.auto_remove and bool(self.succeeded)

    def summary(self) -> str:
        """Format a short count summary of the batch.

        Returns:
            Multi-line summary string with counts.
        """
        lines = [
            f"{self.operation.capitalize()} report"
            + (" (dry run)" if self.dry_run else ""),
            f"  Applied:   {len(self.applied)}",
            f"  Skipped:   {len(self.skipped)}",
            f"  Failed:    {len(self.failed)}",
            f"  Total:     {len(self.results)}",
        ]
        if self.removed:
            lines.append(f"  Removed:   {len(self.removed)}")
        return "\n".join(lines)
