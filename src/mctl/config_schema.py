"""Pydantic models for mctl's two configuration documents.

1. The **registry file** (``.mirror/mirror.yaml``) -- the durable list of
   tracked repositories plus fleet-wide defaults:

   ``RegistryFile`` -> ``GlobalConfig`` + ``list[RepositoryConfig]``

2. The **tool settings** (``.mctl/config.yml`` and friends) -- how mctl
   itself runs (git executable, parallelism override, logging):

   ``UnifiedConfig`` -> ``GitSettings`` + ``SyncSettings`` + ``LoggingConfig``

Usage:
    from mctl.config_loader import load_settings

    settings = load_settings()
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry document
# ---------------------------------------------------------------------------


class GlobalConfig(BaseModel):
    """Fleet-wide defaults stored in the registry file."""

    default_branch: str = Field(
        default="main", description="Main line branch name of the fleet"
    )
    parallel_operations: int = Field(
        default=4,
        description="Maximum concurrent repository operations "
        "(values <= 0 are treated as 1)",
    )
    default_remote: str = Field(
        default="origin", description="Remote used for ahead/behind checks"
    )

    model_config = {"frozen": True}


class RepositoryConfig(BaseModel):
    """A single registry entry.

    Attributes:
        id: Deterministic id derived from name/url/branch/path.
        name: Unique display name.
        path: Working directory, relative to the workspace root (unique).
        url: Clone URL (may embed credentials).
        branch: Branch to clone; empty means the remote default.
    """

    id: str
    name: str
    path: str
    url: str
    branch: str = ""

    model_config = {"frozen": True}

    @field_validator("path")
    @classmethod
    def _path_stays_in_workspace(cls, value: str) -> str:
        parts = PurePosixPath(value).parts
        if not value.strip() or value.startswith("/") or ".." in parts:
            raise ValueError("must be a relative path without '..' components")
        return value


class RegistryFile(BaseModel):
    """Top-level registry document."""

    global_: GlobalConfig = Field(
        default_factory=GlobalConfig, alias="global"
    )
    repositories: list[RepositoryConfig] = Field(default_factory=list)

    model_config = {"frozen": True, "populate_by_name": True}

    def to_document(self) -> dict:
        """Return the on-disk representation (``global`` key restored)."""
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Tool settings sections
# ---------------------------------------------------------------------------


class GitSettings(BaseModel):
    """How the version-control executable is invoked."""

    executable: str = Field(
        default="git", description="Version control executable"
    )
    default_remote: str | None = Field(
        default=None,
        description="Override the registry's default remote",
    )

    model_config = {"frozen": True}


class SyncSettings(BaseModel):
    """Defaults for fleet synchronization."""

    parallel_operations: int | None = Field(
        default=None,
        ge=1,
        le=64,
        description="Override the registry's parallel_operations (1-64)",
    )
    mode: Literal["fetch", "pull"] = Field(
        default="pull", description="fetch only, or fetch + merge"
    )
    auto_remove: bool = Field(
        default=False,
        description="Unregister repositories that fail to clone",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level tool settings.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    workspace: str | None = Field(
        default=None, description="Workspace root (defaults to CWD)"
    )
    git: GitSettings = Field(default_factory=GitSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged settings files.

    Missing sections get defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
