"""Concurrent fleet synchronization.

The ``SyncEngine`` runs one task per repository on a bounded pool of
worker threads.  Each task returns its own ``SyncResult``; nothing is
shared between tasks, and a failure in one repository never affects
another.  Results are collected in registry order after a single join.

Only after that join may the registry be mutated: with auto-removal
enabled, repositories whose working directory was missing and could not
be cloned are unregistered.  Entries that failed for any other reason are
left untouched.

Besides ``sync`` the engine runs two other batches on the same model:
``save`` (stage, commit and push dirty repositories) and
``switch_branch`` (check out or create a branch across the fleet).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Callable

from ..config import SYNC_MODES
from ..core.async_utils import clamp_parallelism, gather_bounded
from ..errors import CloneFailed, ConfigurationError, MctlError, VCSCommandFailed
from ..repository.registry import Registry
from ..repository.repository import Repository
from .models import SyncAction, SyncReport, SyncResult

logger = logging.getLogger(__name__)

DIRTY_ERROR = "has uncommitted changes"


def describe_error(exc: BaseException) -> str:
    """One-line description of a per-repository failure."""
    if isinstance(exc, VCSCommandFailed):
        last = exc.output.strip().splitlines()[-1:] if exc.output else []
        return f"{exc.message}: {last[0]}" if last else exc.message
    if isinstance(exc, MctlError):
        return exc.message
    return str(exc) or type(exc).__name__


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _result(
    repo: Repository,
    action: SyncAction,
    success: bool,
    error: str | None = None,
    not_exist: bool = False,
    refreshed: bool = False,
) -> SyncResult:
    return SyncResult(
        repository_id=repo.id,
        name=repo.name,
        path=repo.config.path,
        action=action,
        success=success,
        error=error,
        not_exist=not_exist,
        status=repo.status if refreshed else None,
    )


class SyncEngine:
    """Run batch operations over the repositories of a registry.

    Args:
        registry: The registry session to operate on.
        parallel_operations: Maximum concurrent repositories.  Defaults to
            ``global.parallel_operations``; values <= 0 are treated as 1.
        mode: ``"fetch"`` or ``"pull"`` for ``sync``.
        auto_remove: Unregister repositories that fail to clone.
    """

    def __init__(
        self,
        registry: Registry,
        parallel_operations: int | None = None,
        mode: str = "pull",
        auto_remove: bool = False,
    ) -> None:
        if mode not in SYNC_MODES:
            raise ConfigurationError(
                f"Invalid sync mode '{mode}': must be one of {', '.join(SYNC_MODES)}"
            )
        self.registry = registry
        if parallel_operations is None:
            parallel_operations = registry.global_config.parallel_operations
        self.parallel_operations = clamp_parallelism(parallel_operations)
        self.mode = mode
        self.auto_remove = auto_remove

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _select(self, identifiers: list[str] | None) -> list[Repository]:
        if identifiers:
            return [self.registry.get_repository(i) for i in identifiers]
        return self.registry.get_all_repositories()

    @staticmethod
    def _isolated(
        repo: Repository,
        action: SyncAction,
        work: Callable[[], SyncResult],
    ) -> SyncResult:
        """Run *work* for one repository, converting any failure to a result."""
        try:
            return work()
        except CloneFailed as exc:
            logger.error("Clone failed for %s: %s", repo.name, exc)
            return _result(
                repo,
                SyncAction.CLONE,
                False,
                error=describe_error(exc),
                not_exist=True,
            )
        except Exception as exc:
            logger.error("%s failed for %s: %s", action.value, repo.name, exc)
            return _result(repo, action, False, error=describe_error(exc))

    async def _run_batch(
        self,
        operation: str,
        repos: list[Repository],
        worker: Callable[[Repository], SyncResult],
        dry_run: bool,
    ) -> tuple[list[SyncResult], str]:
        started_at = _now()
        journal = self.registry.journal
        journal.operation(
            f"{operation.capitalize()} started: {len(repos)} repositories"
            + (" (dry run)" if dry_run else "")
        )
        results = await gather_bounded(
            [partial(worker, repo) for repo in repos],
            self.parallel_operations,
        )
        for r in results:
            if not r.success:
                journal.operation(
                    f"{operation.capitalize()} failed for {r.name}: {r.error}",
                    level="ERROR",
                )
        return results, started_at

    def _finish(
        self,
        operation: str,
        results: list[SyncResult],
        started_at: str,
        dry_run: bool,
        removed: list[str] | None = None,
        auto_remove: bool = False,
    ) -> SyncReport:
        report = SyncReport(
            operation=operation,
            dry_run=dry_run,
            auto_remove=auto_remove,
            results=results,
            removed=removed or [],
            started_at=started_at,
            completed_at=_now(),
        )
        self.registry.journal.operation(
            f"{operation.capitalize()} completed: "
            f"{len(report.succeeded)}/{len(results)} succeeded",
            level="INFO" if report.ok else "WARNING",
        )
        return report

    # ------------------------------------------------------------------
    # sync
    # ------------------------------------------------------------------

    def _sync_one(
        self, repo: Repository, dry_run: bool, force: bool
    ) -> SyncResult:
        action = SyncAction.PULL if self.mode == "pull" else SyncAction.FETCH

        def work() -> SyncResult:
            if not repo.exists():
                if dry_run:
                    return _result(repo, SyncAction.CLONE, True)
                repo.clone()
                return _result(repo, SyncAction.CLONE, True, refreshed=True)
            if not force and repo.has_local_changes():
                return _result(repo, action, False, error=DIRTY_ERROR)
            if dry_run:
                return _result(repo, action, True)
            repo.sync(self.mode, allow_dirty=force)
            return _result(repo, action, True, refreshed=True)

        return self._isolated(repo, action, work)

    async def sync_async(
        self,
        identifiers: list[str] | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> SyncReport:
        """Clone missing repositories and fetch/pull the rest.

        Args:
            identifiers: Restrict to these repositories (id, name or path).
            dry_run: Report planned actions without touching anything.
            force: Sync repositories even if their working tree is dirty.

        Returns:
            The batch ``SyncReport``.

        Raises:
            RepositoryNotFound: If an identifier does not resolve.
        """
        repos = self._select(identifiers)
        results, started_at = await self._run_batch(
            "sync",
            repos,
            partial(self._sync_one, dry_run=dry_run, force=force),
            dry_run,
        )

        removed: list[str] = []
        if self.auto_remove and not dry_run:
            doomed = {r.repository_id for r in results if r.not_exist}
            for entry in self.registry.remove_entries(doomed):
                removed.append(entry.name)
                logger.info("Auto-removed unclonable repository %s", entry.name)
                self.registry.journal.operation(
                    f"Auto-removed repository {entry.name} (clone failed)",
                    level="WARNING",
                )

        return self._finish(
            "sync",
            results,
            started_at,
            dry_run,
            removed=removed,
            auto_remove=self.auto_remove,
        )

    def sync(
        self,
        identifiers: list[str] | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> SyncReport:
        """Blocking wrapper around ``sync_async``."""
        return asyncio.run(self.sync_async(identifiers, dry_run, force))

    # ------------------------------------------------------------------
    # save
    # ------------------------------------------------------------------

    def _save_one(
        self, repo: Repository, message: str, dry_run: bool
    ) -> SyncResult:
        def work() -> SyncResult:
            if not repo.exists():
                return _result(
                    repo, SyncAction.SKIP, True, error="working directory missing"
                )
            if not repo.has_local_changes():
                return _result(repo, SyncAction.SKIP, True, error="no changes")
            if dry_run:
                return _result(repo, SyncAction.SAVE, True)
            repo.save(message)
            return _result(repo, SyncAction.SAVE, True, refreshed=True)

        return self._isolated(repo, SyncAction.SAVE, work)

    async def save_async(
        self,
        message: str,
        identifiers: list[str] | None = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """Commit and push every dirty repository with *message*."""
        repos = self._select(identifiers)
        results, started_at = await self._run_batch(
            "save",
            repos,
            partial(self._save_one, message=message, dry_run=dry_run),
            dry_run,
        )
        return self._finish("save", results, started_at, dry_run)

    def save(
        self,
        message: str,
        identifiers: list[str] | None = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """Blocking wrapper around ``save_async``."""
        return asyncio.run(self.save_async(message, identifiers, dry_run))

    # ------------------------------------------------------------------
    # switch_branch
    # ------------------------------------------------------------------

    def _branch_one(
        self,
        repo: Repository,
        name: str,
        create: bool,
        from_branch: str | None,
        dry_run: bool,
        force: bool,
    ) -> SyncResult:
        def work() -> SyncResult:
            if not repo.exists():
                return _result(
                    repo, SyncAction.SKIP, True, error="working directory missing"
                )
            if repo.get_current_branch() == name:
                return _result(
                    repo, SyncAction.SKIP, True, error=f"already on {name}"
                )
            if name in repo.list_branches():
                action = SyncAction.CHECKOUT
            elif create:
                action = SyncAction.CREATE_BRANCH
            else:
                return _result(
                    repo,
                    SyncAction.SKIP,
                    True,
                    error=f"branch {name} does not exist",
                )
            if not force and repo.has_local_changes():
                return _result(repo, action, False, error=DIRTY_ERROR)
            if dry_run:
                return _result(repo, action, True)
            if action == SyncAction.CHECKOUT:
                repo.checkout_branch(name)
            else:
                repo.create_branch(name, from_branch)
            return _result(repo, action, True, refreshed=True)

        return self._isolated(repo, SyncAction.CHECKOUT, work)

    async def switch_branch_async(
        self,
        name: str,
        create: bool = False,
        from_branch: str | None = None,
        identifiers: list[str] | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> SyncReport:
        """Check out (or create) branch *name* in every repository."""
        repos = self._select(identifiers)
        results, started_at = await self._run_batch(
            "branch",
            repos,
            partial(
                self._branch_one,
                name=name,
                create=create,
                from_branch=from_branch,
                dry_run=dry_run,
                force=force,
            ),
            dry_run,
        )
        return self._finish("branch", results, started_at, dry_run)

    def switch_branch(
        self,
        name: str,
        create: bool = False,
        from_branch: str | None = None,
        identifiers: list[str] | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> SyncReport:
        """Blocking wrapper around ``switch_branch_async``."""
        return asyncio.run(
            self.switch_branch_async(
                name, create, from_branch, identifiers, dry_run, force
            )
        )
