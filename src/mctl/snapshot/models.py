"""Pydantic models for fleet snapshots.

A snapshot is written once and never modified.  Restoring it changes the
live repositories only.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RepositoryState(BaseModel):
    """Frozen copy of one repository at snapshot time."""

    id: str
    name: str
    path: str
    branch: str
    commit_hash: str
    status: str

    model_config = {"frozen": True}


class Snapshot(BaseModel):
    """Point-in-time record of the whole fleet.

    Attributes:
        id: ``<YYYYmmdd-HHMMSS>-<digest>``, see ``generate_snapshot_id``.
        created_at: Creation time (UTC).
        description: Free-form description.
        repositories: One state per repository, in registry order.
    """

    id: str
    created_at: datetime
    description: str = ""
    repositories: list[RepositoryState] = Field(default_factory=list)

    model_config = {"frozen": True}


class ApplyOptions(BaseModel):
    """Options for restoring a snapshot.

    Attributes:
        dry_run: Report the plan without touching any working tree.
        force: Skip the uncommitted-changes gate.
        repositories: Restrict the restore to these repository names.
    """

    dry_run: bool = False
    force: bool = False
    repositories: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class ApplyStep(BaseModel):
    """What happened (or would happen) to one repository."""

    name: str
    branch: str
    commit_hash: str
    applied: bool = False
    status: str | None = None

    model_config = {"frozen": True}


class ApplyResult(BaseModel):
    """Outcome of ``SnapshotManager.apply_snapshot``."""

    snapshot_id: str
    dry_run: bool = False
    steps: list[ApplyStep] = Field(default_factory=list)

    model_config = {"frozen": True}

    def summary(self) -> str:
        verb = "Would restore" if self.dry_run else "Restored"
        lines = [f"Snapshot {self.snapshot_id}:"]
        for step in self.steps:
            lines.append(
                f"  {verb} {step.name} to branch {step.branch} "
                f"at commit {step.commit_hash[:8]}"
            )
        return "\n".join(lines)
