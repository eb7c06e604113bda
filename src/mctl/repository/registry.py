"""Repository identity and the durable registry.

``generate_id`` derives repository ids.  ``RegistryStore`` reads and
atomically rewrites ``.mirror/mirror.yaml``.  ``Registry`` is the session
object every fleet operation receives: it holds the loaded document,
hydrates ``Repository`` objects and is the only writer of the registry
file.

Registry mutations happen on the calling thread only; the sync engine
applies its auto-removal after all workers have joined.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..config import WorkspacePaths
from ..config_schema import GlobalConfig, RegistryFile, RepositoryConfig
from ..core.git import GitClient
from ..errors import (
    ConfigurationError,
    RepositoryConflict,
    RepositoryNotFound,
    VCSCommandFailed,
)
from ..logger import Journal
from ..storage import atomic_write_text, ensure_private_dir
from .repository import Repository

logger = logging.getLogger(__name__)

ID_LENGTH = 10


def generate_id(name: str, url: str, branch: str, path: str) -> str:
    """Derive a repository id from its normalized attributes.

    Whitespace is trimmed from every field and the name is lowercased.
    The fields are joined with ``|`` and hashed with SHA-256; the first
    ten hex digits are the id.
    """
    payload = "|".join(
        [name.strip().lower(), url.strip(), branch.strip(), path.strip()]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:ID_LENGTH]


# ---------------------------------------------------------------------------
# Durable file
# ---------------------------------------------------------------------------


class RegistryStore:
    """Load and save the registry document for one workspace."""

    def __init__(self, paths: WorkspacePaths) -> None:
        self.paths = paths

    @property
    def path(self) -> Path:
        return self.paths.registry_file

    def load(self) -> RegistryFile:
        """Read and validate the registry file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or does
                not match the registry schema.
        """
        if not self.path.exists():
            raise ConfigurationError(
                f"Workspace not initialized: {self.path} does not exist"
            ).with_details("Create it with init_workspace() or mctl-mcp --init")
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Cannot read registry file {self.path}: {exc}"
            ) from exc

        try:
            return RegistryFile.model_validate(data or {})
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid registry file {self.path}"
            ).with_details(
                *(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors())
            ) from exc

    def save(self, document: RegistryFile) -> None:
        """Atomically rewrite the registry file (mode 0600)."""
        text = yaml.safe_dump(
            document.to_document(),
            sort_keys=False,
            default_flow_style=False,
        )
        atomic_write_text(self.path, text)
        logger.debug("Saved registry: %s", self.path)


def init_workspace(
    base_dir: str | Path,
    overwrite: bool = False,
    global_config: GlobalConfig | None = None,
) -> WorkspacePaths:
    """Create ``.mirror/`` with an empty registry under *base_dir*.

    Raises:
        ConfigurationError: If a registry already exists and *overwrite*
            is not set.
    """
    paths = WorkspacePaths(Path(base_dir))
    if paths.is_initialized() and not overwrite:
        raise ConfigurationError(
            f"Workspace already initialized: {paths.registry_file}"
        )
    for directory in (
        paths.config_dir,
        paths.metadata_dir,
        paths.snapshots_dir,
        paths.logs_dir,
    ):
        ensure_private_dir(directory)
    RegistryStore(paths).save(
        RegistryFile(global_=global_config or GlobalConfig())
    )
    Journal(paths).operation("Initialized workspace")
    logger.info("Initialized workspace at %s", paths.base_dir)
    return paths


def _global_field(key: str) -> str:
    section, _, name = key.partition(".")
    if section != "global" or name not in GlobalConfig.model_fields:
        raise ConfigurationError(f"Unknown configuration key: {key}").with_details(
            "Available keys: "
            + ", ".join(f"global.{field}" for field in GlobalConfig.model_fields)
        )
    return name


def _global_problems(config: GlobalConfig) -> list[str]:
    problems = []
    if not config.default_branch.strip():
        problems.append("global.default_branch is not set")
    if config.parallel_operations <= 0:
        problems.append("global.parallel_operations must be greater than 0")
    if not config.default_remote.strip():
        problems.append("global.default_remote is not set")
    return problems


# ---------------------------------------------------------------------------
# Session object
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusSummary:
    total: int
    existing: int
    missing: int
    dirty: int


class Registry:
    """Loaded registry plus the collaborators needed to act on it.

    Args:
        paths: Workspace layout.
        document: The loaded registry document.
        git: Version control adapter shared by every repository.
        default_remote: Overrides ``global.default_remote`` when set.
    """

    def __init__(
        self,
        paths: WorkspacePaths,
        document: RegistryFile,
        git: GitClient | None = None,
        default_remote: str | None = None,
    ) -> None:
        self.paths = paths
        self.git = git or GitClient()
        self.store = RegistryStore(paths)
        self.journal = Journal(paths)
        self._global = document.global_
        self._entries: list[RepositoryConfig] = list(document.repositories)
        self._remote_override = default_remote

    @classmethod
    def open(
        cls,
        base_dir: str | Path,
        git: GitClient | None = None,
        default_remote: str | None = None,
    ) -> Registry:
        """Load the registry of the workspace rooted at *base_dir*.

        Raises:
            ConfigurationError: If the workspace is not initialized or the
                registry file is invalid.
        """
        paths = WorkspacePaths(Path(base_dir))
        document = RegistryStore(paths).load()
        return cls(paths, document, git=git, default_remote=default_remote)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def global_config(self) -> GlobalConfig:
        return self._global

    @property
    def default_remote(self) -> str:
        return self._remote_override or self._global.default_remote

    @property
    def entries(self) -> list[RepositoryConfig]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def document(self) -> RegistryFile:
        return RegistryFile(global_=self._global, repositories=self._entries)

    def _save(self) -> None:
        self.store.save(self.document())

    def _hydrate(self, entry: RepositoryConfig) -> Repository:
        repo = Repository(entry, self.paths, self.git, self.default_remote)
        if not repo.load_metadata():
            repo.save_metadata()
        return repo

    def find_entry(self, identifier: str) -> RepositoryConfig | None:
        """Resolve *identifier* by id, then name, then path."""
        for entry in self._entries:
            if entry.id == identifier:
                return entry
        for entry in self._entries:
            if entry.name == identifier:
                return entry
        for entry in self._entries:
            if entry.path == identifier or str(
                self.paths.base_dir / entry.path
            ) == identifier:
                return entry
        return None

    def get_repository(self, identifier: str) -> Repository:
        """Return the hydrated repository matching *identifier*.

        Raises:
            RepositoryNotFound: If nothing matches.
        """
        entry = self.find_entry(identifier)
        if entry is None:
            raise RepositoryNotFound(f"Repository not found: {identifier}")
        return self._hydrate(entry)

    def get_all_repositories(self) -> list[Repository]:
        """Return every repository, in registry order."""
        return [self._hydrate(entry) for entry in self._entries]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _unique_name(self, name: str) -> str:
        taken = {entry.name for entry in self._entries}
        candidate = name
        counter = 1
        while candidate in taken:
            candidate = f"{name}-{counter}"
            counter += 1
        return candidate

    def add_repository(
        self,
        name: str,
        url: str,
        path: str,
        branch: str = "",
        clone: bool = True,
    ) -> Repository:
        """Register a repository, optionally cloning it first.

        Args:
            name: Display name; suffixed ``-1``, ``-2``, ... if taken.
            url: Clone URL.
            path: Working directory relative to the workspace root.
            branch: Branch to clone; empty for the remote default.
            clone: Clone before registering.

        Returns:
            The new ``Repository``.

        Raises:
            ConfigurationError: If *path* is not a relative path inside the
                workspace.
            RepositoryConflict: If *path* is already registered.
            CloneFailed: If the clone fails; the registry is unchanged.
        """
        self.paths.repository_path(path)
        if any(entry.path == path for entry in self._entries):
            raise RepositoryConflict(
                f"Repository already exists at path: {path}"
            )

        final_name = self._unique_name(name)
        if final_name != name:
            logger.info("Name %r taken, using %r", name, final_name)

        entry = RepositoryConfig(
            id=generate_id(final_name, url, branch, path),
            name=final_name,
            path=path,
            url=url,
            branch=branch,
        )
        repo = Repository(entry, self.paths, self.git, self.default_remote)

        if clone:
            repo.clone()
        repo.save_metadata()

        self._entries.append(entry)
        self._save()

        self.journal.operation(f"Added repository {final_name} at {path}")
        self.journal.audit(f"Repository added: {final_name} ({entry.id})")
        return repo

    def remove_repository(
        self, identifier: str, delete_files: bool = False
    ) -> RepositoryConfig:
        """Unregister a repository and drop its metadata record.

        Raises:
            RepositoryNotFound: If nothing matches *identifier*.
            ConfigurationError: If *delete_files* is set and the working
                directory resolves outside the workspace; nothing is changed.
        """
        entry = self.find_entry(identifier)
        if entry is None:
            raise RepositoryNotFound(f"Repository not found: {identifier}")
        repo = Repository(entry, self.paths, self.git, self.default_remote)
        if delete_files:
            self.paths.repository_path(entry.path)

        self._entries = [e for e in self._entries if e.id != entry.id]
        self._save()
        repo.delete_metadata()
        if delete_files:
            repo.delete_files()

        self.journal.operation(
            f"Removed repository {entry.name}"
            + (" and its files" if delete_files else "")
        )
        self.journal.audit(f"Repository removed: {entry.name} ({entry.id})")
        return entry

    def remove_entries(self, ids: set[str]) -> list[RepositoryConfig]:
        """Unregister every entry whose id is in *ids*.

        Entries not listed are written back unchanged.  Working
        directories are left alone.
        """
        removed = [e for e in self._entries if e.id in ids]
        if not removed:
            return []
        self._entries = [e for e in self._entries if e.id not in ids]
        self._save()
        for entry in removed:
            self.paths.metadata_path(entry.id).unlink(missing_ok=True)
            self.journal.audit(
                f"Repository removed: {entry.name} ({entry.id})"
            )
        return removed

    def clear(self, keep_config: bool = True) -> tuple[int, int]:
        """Delete every working directory.

        Args:
            keep_config: If *False*, ``.mirror/`` is removed as well.

        Returns:
            ``(cleared, total)``; a missing directory counts as cleared.
        """
        repos = [
            Repository(e, self.paths, self.git, self.default_remote)
            for e in self._entries
        ]
        self.journal.operation("Clearing repositories")
        self.journal.audit(f"Clearing {len(repos)} repositories")

        cleared = 0
        for repo in repos:
            try:
                repo.delete_files()
                cleared += 1
            except (OSError, ConfigurationError) as exc:
                logger.error("Failed to remove %s: %s", repo.config.path, exc)

        if not keep_config:
            shutil.rmtree(self.paths.config_dir)
            self._entries = []
        return cleared, len(repos)

    def get_global(self, key: str) -> str | int:
        """Return one ``global.*`` setting, e.g. ``global.default_branch``.

        Raises:
            ConfigurationError: If *key* is unknown.
        """
        return getattr(self._global, _global_field(key))

    def set_global(self, key: str, value: str | int) -> GlobalConfig:
        """Change one ``global.*`` setting and rewrite the registry.

        String values are coerced to the field type, so ``"8"`` is accepted
        for ``global.parallel_operations``.

        Raises:
            ConfigurationError: If *key* is unknown or *value* is invalid;
                the registry is unchanged.
        """
        name = _global_field(key)
        try:
            updated = GlobalConfig.model_validate(
                {**self._global.model_dump(), name: value}
            )
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid value for {key}: {value!r}"
            ).with_details(*(e["msg"] for e in exc.errors())) from exc
        problems = _global_problems(updated)
        if problems:
            raise ConfigurationError(
                f"Invalid value for {key}: {value!r}"
            ).with_details(*problems)

        self._global = updated
        self._save()
        self.journal.operation(f"Set {key} = {value}")
        self.journal.audit(f"Configuration changed: {key}")
        return updated

    def validate(self) -> list[str]:
        """Check the loaded registry.

        Returns:
            One line per problem; empty when the registry is valid.
        """
        problems = _global_problems(self._global)
        seen: dict[str, set[str]] = {"id": set(), "name": set(), "path": set()}
        for entry in self._entries:
            label = entry.name or entry.id
            for field, value in (
                ("id", entry.id),
                ("name", entry.name),
                ("path", entry.path),
            ):
                if not value.strip():
                    problems.append(f"Repository {label} has no {field}")
                elif value in seen[field]:
                    problems.append(f"Duplicate repository {field}: {value}")
                seen[field].add(value)
            if not entry.url.strip():
                problems.append(f"Repository {label} has no URL")
            try:
                self.paths.repository_path(entry.path)
            except ConfigurationError as exc:
                problems.append(f"Repository {label}: {exc.message}")
        return problems

    def status_summary(self) -> StatusSummary:
        """Count existing, missing and dirty working trees.

        Uses the working tree only; no remote is contacted.
        """
        existing = missing = dirty = 0
        for entry in self._entries:
            repo = Repository(entry, self.paths, self.git, self.default_remote)
            if not repo.exists():
                missing += 1
                continue
            existing += 1
            try:
                if repo.has_local_changes():
                    dirty += 1
            except VCSCommandFailed as exc:
                logger.warning("Cannot inspect %s: %s", repo.name, exc)
        return StatusSummary(
            total=len(self._entries),
            existing=existing,
            missing=missing,
            dirty=dirty,
        )
