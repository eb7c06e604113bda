"""Per-server state handed to every MCP tool handler."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from ..config import Config
from ..core.async_utils import run_sync
from ..core.git import GitClient
from ..logger import Journal
from ..repository.registry import Registry
from ..snapshot.manager import SnapshotManager


@dataclass
class FleetContext:
    """Resolved settings plus the shared version control adapter.

    The registry is re-read on every call so that edits made outside the
    server (or by a previous tool call) are always visible.  The MCP SDK
    runs requests concurrently, so handlers that change the registry or
    working trees go through ``exclusive_registry()``.
    """

    config: Config
    git: GitClient | None = None
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.git is None:
            self.git = GitClient(self.config.git_executable)

    def open_registry(self) -> Registry:
        return Registry.open(
            self.config.workspace,
            git=self.git,
            default_remote=self.config.default_remote,
        )

    @asynccontextmanager
    async def exclusive_registry(self) -> AsyncIterator[Registry]:
        """Open the registry and hold the write lock until the block exits.

        The registry is read after the lock is taken, so a session never
        saves a list that another tool call has changed since.
        """
        async with self.write_lock:
            yield await run_sync(self.open_registry)

    def snapshots(self) -> SnapshotManager:
        return SnapshotManager(self.config.paths)

    def journal(self) -> Journal:
        return Journal(self.config.paths)
