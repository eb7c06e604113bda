"""Runtime view of one tracked repository.

A ``Repository`` pairs an immutable registry entry with its cached
``Metadata`` and exposes every per-repository operation.  All version
control work is delegated to a shared ``GitClient``; mutating operations
refresh the cached status afterwards.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from pydantic import ValidationError

from ..config import WorkspacePaths
from ..config_schema import RepositoryConfig
from ..core.git import GitClient
from ..errors import UncommittedChangesError, VCSCommandFailed
from ..storage import read_json, write_json
from .models import Metadata, RepositoryStatus, StatusInfo, utcnow
from .status import derive_status

logger = logging.getLogger(__name__)


def redact_url(url: str) -> str:
    """Hide the password part of a URL with embedded credentials."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = f"{parts.username}:***@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


class Repository:
    """One registry entry plus its runtime state.

    Args:
        config: The registry entry.
        paths: Workspace layout used to resolve the working directory and
            the metadata record.
        git: Version control adapter.
        remote: Remote used for ahead/behind comparison and pulls.
    """

    def __init__(
        self,
        config: RepositoryConfig,
        paths: WorkspacePaths,
        git: GitClient,
        remote: str = "origin",
    ) -> None:
        self.config = config
        self.paths = paths
        self.git = git
        self.remote = remote
        self.metadata = Metadata(
            id=config.id,
            name=config.name,
            status=StatusInfo(branch=config.branch),
        )

    def __repr__(self) -> str:
        return f"Repository(name={self.name!r}, path={self.config.path!r})"

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def full_path(self) -> Path:
        return self.paths.repository_path(self.config.path)

    @property
    def metadata_path(self) -> Path:
        return self.paths.metadata_path(self.config.id)

    @property
    def status(self) -> RepositoryStatus:
        return self.metadata.status.current

    def exists(self) -> bool:
        return self.full_path.is_dir()

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def load_metadata(self) -> bool:
        """Load the cached metadata record.

        Returns:
            *True* if a valid record was loaded; *False* if it is missing
            or unreadable, in which case the in-memory defaults are kept.
        """
        try:
            data = read_json(self.metadata_path)
            self.metadata = Metadata.model_validate(data)
        except FileNotFoundError:
            return False
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "Ignoring malformed metadata for %s: %s", self.name, exc
            )
            return False
        return True

    def save_metadata(self) -> None:
        write_json(self.metadata_path, self.metadata.model_dump(mode="json"))

    def delete_metadata(self) -> None:
        self.metadata_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_branch(self) -> str:
        return self.git.current_branch(self.full_path)

    def has_local_changes(self) -> bool:
        return self.git.has_local_changes(self.full_path)

    def get_commit_hash(self) -> str:
        return self.git.commit_hash(self.full_path)

    def list_branches(self) -> list[str]:
        return self.git.list_branches(self.full_path)

    def get_remote_status(self) -> tuple[int, int]:
        """Return ``(ahead, behind)`` relative to ``<remote>/<branch>``.

        Raises:
            VCSCommandFailed: If the comparison cannot be made (no remote,
                no upstream branch, unparsable output).
        """
        branch = self.get_current_branch()
        return self.git.ahead_behind(self.full_path, branch, self.remote)

    def update_status(self) -> RepositoryStatus:
        """Recompute the status from scratch and persist the metadata.

        A failed fetch or remote comparison degrades to ``CLEAN``; errors
        reading the branch or working tree propagate.
        """
        status_info = self.metadata.status
        if not self.exists():
            status_info.current = RepositoryStatus.UNKNOWN
            status_info.ahead = status_info.behind = 0
            self.save_metadata()
            return status_info.current

        status_info.branch = self.get_current_branch()
        dirty = self.has_local_changes()

        fetched = False
        ahead: int | None = None
        behind: int | None = None
        if not dirty:
            try:
                self.git.fetch(self.full_path)
                fetched = True
            except VCSCommandFailed as exc:
                logger.debug("Fetch failed for %s: %s", self.name, exc)
            if fetched:
                try:
                    ahead, behind = self.get_remote_status()
                except VCSCommandFailed as exc:
                    logger.debug(
                        "Remote comparison unavailable for %s: %s",
                        self.name,
                        exc,
                    )

        status_info.current = derive_status(
            exists=True,
            has_local_changes=dirty,
            fetch_succeeded=fetched,
            ahead=ahead,
            behind=behind,
        )
        status_info.ahead = ahead or 0
        status_info.behind = behind or 0
        self.save_metadata()
        return status_info.current

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def clone(self) -> None:
        """Clone the repository into its working directory.

        Raises:
            CloneFailed: If the clone does not complete.
        """
        self.git.clone(
            self.config.url, self.full_path, self.config.branch or None
        )
        self.metadata.status.current = RepositoryStatus.CLEAN
        self.save_metadata()

    def fetch(self) -> None:
        self.git.fetch(self.full_path)

    def sync(self, mode: str = "pull", allow_dirty: bool = False) -> None:
        """Bring the working tree up to date with its remote.

        Args:
            mode: ``"fetch"`` to only refresh remote refs, ``"pull"`` to
                also merge ``<remote>/<branch>`` into the current branch.
            allow_dirty: Proceed even if the working tree has changes.

        Raises:
            UncommittedChangesError: If dirty and *allow_dirty* is unset.
            VCSCommandFailed: If fetch or pull fails.
        """
        if not allow_dirty and self.has_local_changes():
            raise UncommittedChangesError(
                f"Repository {self.name} has uncommitted changes"
            )
        self.git.fetch(self.full_path)
        if mode == "pull":
            branch = self.get_current_branch()
            self.git.pull(self.full_path, self.remote, branch)
        self.metadata.basic.last_sync = utcnow()
        self.update_status()

    def commit(self, message: str, include_all: bool = False) -> None:
        self.git.commit(self.full_path, message, include_all)
        self.update_status()

    def push(self) -> None:
        self.git.push(self.full_path)
        self.metadata.basic.last_sync = utcnow()
        self.update_status()

    def save(self, message: str) -> None:
        """Stage everything, commit with *message* and push."""
        self.git.stage_all(self.full_path)
        self.git.commit(self.full_path, message)
        self.push()

    def checkout_branch(self, name: str) -> None:
        self.git.checkout_branch(self.full_path, name)
        self.update_status()

    def create_branch(self, name: str, from_branch: str | None = None) -> None:
        self.git.checkout_branch(
            self.full_path, name, create=True, start_point=from_branch
        )
        self.update_status()

    def reset_to_commit(self, commit_hash: str) -> None:
        """Hard-reset the current branch. Does not refresh status."""
        self.git.reset_to_commit(self.full_path, commit_hash)

    def delete_files(self) -> bool:
        """Remove the working directory tree.

        Returns:
            *True* if something was removed, *False* if it did not exist.
        """
        if not self.full_path.exists():
            return False
        shutil.rmtree(self.full_path)
        logger.info("Removed working directory %s", self.full_path)
        return True

    def to_dict(self) -> dict:
        """Flatten entry and cached status for reporting."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.config.path,
            "url": redact_url(self.config.url),
            "branch": self.metadata.status.branch or self.config.branch,
            "status": self.status.value,
            "ahead": self.metadata.status.ahead,
            "behind": self.metadata.status.behind,
            "last_sync": (
                self.metadata.basic.last_sync.isoformat()
                if self.metadata.basic.last_sync
                else None
            ),
        }
