"""Snapshot engine: capture and restore fleet-wide state.

Snapshots live in ``.mirror/snapshots/<id>.json`` (mode 0600).

Restoring is strictly sequential.  Unless forced, every targeted
repository is checked for uncommitted changes first and the whole restore
is refused if any is dirty.  During the restore the first failure stops
the sequence; repositories restored before it keep their new state.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ..config import WorkspacePaths
from ..errors import (
    MctlError,
    RepositoryNotFound,
    SnapshotExists,
    SnapshotNotFound,
    UncommittedChangesError,
)
from ..logger import Journal
from ..repository.registry import Registry
from ..repository.repository import Repository
from ..storage import read_json, write_json
from .models import (
    ApplyOptions,
    ApplyResult,
    ApplyStep,
    RepositoryState,
    Snapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Fleet snapshot"
DIGEST_LENGTH = 8
SNAPSHOT_ID_PATTERN = re.compile(r"\d{8}-\d{6}-[0-9a-f]{8}")


def generate_snapshot_id(
    timestamp: datetime, states: list[RepositoryState]
) -> str:
    """Derive ``<YYYYmmdd-HHMMSS>-<digest>`` for a snapshot.

    The digest covers every ``(id, branch, commit_hash)`` triple in order,
    so two snapshots taken in the same second over different fleet states
    get different ids.
    """
    digest = hashlib.sha256()
    for state in states:
        digest.update(state.id.encode("utf-8"))
        digest.update(state.branch.encode("utf-8"))
        digest.update(state.commit_hash.encode("utf-8"))
    return (
        f"{timestamp.strftime('%Y%m%d-%H%M%S')}-"
        f"{digest.hexdigest()[:DIGEST_LENGTH]}"
    )


class SnapshotManager:
    """Create, persist, list and apply snapshots for one workspace."""

    def __init__(self, paths: WorkspacePaths) -> None:
        self.paths = paths
        self.journal = Journal(paths)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def create_snapshot(
        self, registry: Registry, description: str = ""
    ) -> Snapshot:
        """Capture branch and commit of every registered repository.

        Each repository's status is recomputed first.

        Raises:
            VCSCommandFailed: If a branch or commit cannot be read (for
                example, the working directory is missing).
        """
        states: list[RepositoryState] = []
        for repo in registry.get_all_repositories():
            repo.update_status()
            states.append(
                RepositoryState(
                    id=repo.id,
                    name=repo.name,
                    path=repo.config.path,
                    branch=repo.metadata.status.branch,
                    commit_hash=repo.get_commit_hash(),
                    status=repo.status.value,
                )
            )

        created_at = datetime.now(timezone.utc)
        snapshot = Snapshot(
            id=generate_snapshot_id(created_at, states),
            created_at=created_at,
            description=description or DEFAULT_DESCRIPTION,
            repositories=states,
        )
        logger.info(
            "Captured snapshot %s (%d repositories)", snapshot.id, len(states)
        )
        return snapshot

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _record_path(self, snapshot_id: str) -> Path:
        if not SNAPSHOT_ID_PATTERN.fullmatch(snapshot_id):
            raise SnapshotNotFound(
                f"Snapshot not found: {snapshot_id}"
            ).with_details("Snapshot ids look like 20260301-123045-1a2b3c4d")
        return self.paths.snapshot_path(snapshot_id)

    def save_snapshot(self, snapshot: Snapshot) -> Snapshot:
        """Store *snapshot*; records are write-once.

        Raises:
            ValueError: If the id is not a generated snapshot id.
            SnapshotExists: If a record with the same id is already stored.
        """
        if not SNAPSHOT_ID_PATTERN.fullmatch(snapshot.id):
            raise ValueError(f"Invalid snapshot id: {snapshot.id}")
        try:
            write_json(
                self.paths.snapshot_path(snapshot.id),
                snapshot.model_dump(mode="json"),
                overwrite=False,
            )
        except FileExistsError:
            raise SnapshotExists(
                f"Snapshot already exists: {snapshot.id}"
            ) from None
        self.journal.operation(
            f"Created snapshot {snapshot.id}: {snapshot.description}"
        )
        return snapshot

    def load_snapshot(self, snapshot_id: str) -> Snapshot:
        """Load a snapshot by id.

        Raises:
            SnapshotNotFound: If no record exists or *snapshot_id* is not a
                snapshot id.
            MctlError: If the record is malformed.
        """
        path = self._record_path(snapshot_id)
        try:
            data = read_json(path)
        except FileNotFoundError:
            raise SnapshotNotFound(
                f"Snapshot not found: {snapshot_id}"
            ) from None
        try:
            return Snapshot.model_validate(data)
        except ValidationError as exc:
            raise MctlError(f"Malformed snapshot record {path}") from exc

    def list_snapshots(self, limit: int = 0) -> list[Snapshot]:
        """Return readable snapshots, most recent first.

        Unreadable or malformed records are skipped.

        Args:
            limit: If positive, return at most this many.
        """
        directory = self.paths.snapshots_dir
        if not directory.is_dir():
            return []

        snapshots: list[Snapshot] = []
        for path in directory.glob("*.json"):
            try:
                snapshots.append(Snapshot.model_validate(read_json(path)))
            except (OSError, MctlError, json.JSONDecodeError, ValidationError) as exc:
                logger.debug("Skipping snapshot %s: %s", path.name, exc)

        snapshots.sort(key=lambda s: s.created_at, reverse=True)
        if limit > 0:
            return snapshots[:limit]
        return snapshots

    def delete_snapshot(self, snapshot_id: str) -> None:
        """Delete a snapshot record.

        Raises:
            SnapshotNotFound: If no record exists or *snapshot_id* is not a
                snapshot id.
        """
        path = self._record_path(snapshot_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise SnapshotNotFound(
                f"Snapshot not found: {snapshot_id}"
            ) from None
        self.journal.operation(f"Deleted snapshot {snapshot_id}")

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve(registry: Registry, state: RepositoryState) -> Repository:
        try:
            return registry.get_repository(state.id)
        except RepositoryNotFound:
            return registry.get_repository(state.name)

    def apply_snapshot(
        self,
        snapshot: Snapshot,
        registry: Registry,
        options: ApplyOptions | None = None,
    ) -> ApplyResult:
        """Restore repositories to the branches and commits in *snapshot*.

        Args:
            snapshot: The snapshot to restore.
            registry: Registry used to locate the live repositories.
            options: Dry-run, force and name filter.

        Returns:
            An ``ApplyResult`` with one step per targeted repository.

        Raises:
            RepositoryNotFound: If a targeted repository is no longer
                registered.
            UncommittedChangesError: If any targeted repository is dirty
                and *force* is not set.  Nothing has been changed.
            VCSCommandFailed: If checkout or reset fails; repositories
                before the failing one stay restored.
        """
        options = options or ApplyOptions()
        if options.repositories:
            wanted = set(options.repositories)
            targets = [s for s in snapshot.repositories if s.name in wanted]
        else:
            targets = list(snapshot.repositories)

        repos = [(state, self._resolve(registry, state)) for state in targets]

        if not options.force:
            dirty = [
                state.name for state, repo in repos if repo.has_local_changes()
            ]
            if dirty:
                raise UncommittedChangesError(
                    f"{len(dirty)} repositories have uncommitted changes, "
                    "use force to override"
                ).with_details(*(f"Dirty: {name}" for name in dirty))

        if options.dry_run:
            return ApplyResult(
                snapshot_id=snapshot.id,
                dry_run=True,
                steps=[
                    ApplyStep(
                        name=state.name,
                        branch=state.branch,
                        commit_hash=state.commit_hash,
                    )
                    for state, _ in repos
                ],
            )

        self.journal.audit(
            f"Applying snapshot {snapshot.id} to {len(repos)} repositories"
        )
        steps: list[ApplyStep] = []
        for state, repo in repos:
            try:
                repo.checkout_branch(state.branch)
                repo.reset_to_commit(state.commit_hash)
                repo.update_status()
            except MctlError as exc:
                remaining = [s.name for s, _ in repos[len(steps) + 1 :]]
                self.journal.operation(
                    f"Snapshot {snapshot.id} aborted at {state.name}: "
                    f"{exc.message}",
                    level="ERROR",
                )
                exc.with_details(
                    f"Failed repository: {state.name}",
                    "Restored: "
                    + (", ".join(s.name for s in steps) or "none"),
                    "Not restored: " + (", ".join(remaining) or "none"),
                )
                raise
            steps.append(
                ApplyStep(
                    name=state.name,
                    branch=state.branch,
                    commit_hash=state.commit_hash,
                    applied=True,
                    status=repo.status.value,
                )
            )
            logger.info(
                "%s: restored to %s at %s",
                state.name,
                state.branch,
                state.commit_hash[:8],
            )

        self.journal.operation(
            f"Applied snapshot {snapshot.id} ({len(steps)} repositories)"
        )
        return ApplyResult(snapshot_id=snapshot.id, steps=steps)
