"""Pydantic models for per-repository runtime state.

- ``RepositoryStatus``: the derived state of a working tree.
- ``BasicInfo`` / ``StatusInfo``: sections of the metadata record.
- ``Metadata``: the cached runtime view persisted as
  ``.mirror/metadata/<id>.json``.

The metadata record is a cache.  Losing it is never data loss; it is
always rebuilt from the version control executable.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryStatus(str, Enum):
    """Derived state of a repository working tree."""

    CLEAN = "CLEAN"
    MODIFIED = "MODIFIED"
    AHEAD = "AHEAD"
    BEHIND = "BEHIND"
    DIVERGED = "DIVERGED"
    UNKNOWN = "UNKNOWN"


class BasicInfo(BaseModel):
    """Lifecycle timestamps.

    Attributes:
        creation_date: When the record was first created.
        last_sync: Last successful sync or push, if any.
    """

    creation_date: datetime = Field(default_factory=utcnow)
    last_sync: datetime | None = None


class StatusInfo(BaseModel):
    """Most recently computed status.

    Attributes:
        current: Derived repository state.
        branch: Checked-out branch at the time of computation.
        ahead: Commits present locally but not on the remote.
        behind: Commits present on the remote but not locally.
    """

    current: RepositoryStatus = RepositoryStatus.UNKNOWN
    branch: str = ""
    ahead: int = 0
    behind: int = 0


class Metadata(BaseModel):
    """Per-repository metadata record keyed by repository id."""

    id: str
    name: str
    basic: BasicInfo = Field(default_factory=BasicInfo)
    status: StatusInfo = Field(default_factory=StatusInfo)
    extensions: dict[str, Any] = Field(default_factory=dict)
