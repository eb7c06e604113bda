"""Runtime settings and workspace layout for mctl.

A *workspace* is a directory containing a ``.mirror/`` folder:

    <workspace>/
        .mirror/
            mirror.yaml          registry file
            metadata/<id>.json   per-repository metadata records
            snapshots/<id>.json  snapshot records
            logs/operations.log  operation journal
            logs/audit.log       audit journal
        <repository paths...>

Runtime settings are resolved with the precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML settings > defaults

Environment variables:
    MCTL_WORKSPACE: Workspace root (default: current directory)
    MCTL_GIT: Version control executable (default: git)
    MCTL_PARALLEL: Parallel repository operations, 1-64 (default: registry value)
    MCTL_DEFAULT_REMOTE: Remote used for ahead/behind checks
    MCTL_AUTO_REMOVE: Unregister repositories that fail to clone during sync
    MCTL_DEBUG: Enable debug logging
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config_schema import UnifiedConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR = ".mirror"
REGISTRY_FILE = "mirror.yaml"
METADATA_DIR = "metadata"
SNAPSHOTS_DIR = "snapshots"
LOGS_DIR = "logs"
OPERATIONS_LOG_FILE = "operations.log"
AUDIT_LOG_FILE = "audit.log"

SYNC_MODES = ("fetch", "pull")


@dataclass(frozen=True)
class WorkspacePaths:
    """Filesystem layout rooted at *base_dir*."""

    base_dir: Path

    @property
    def config_dir(self) -> Path:
        return self.base_dir / CONFIG_DIR

    @property
    def registry_file(self) -> Path:
        return self.config_dir / REGISTRY_FILE

    @property
    def metadata_dir(self) -> Path:
        return self.config_dir / METADATA_DIR

    @property
    def snapshots_dir(self) -> Path:
        return self.config_dir / SNAPSHOTS_DIR

    @property
    def logs_dir(self) -> Path:
        return self.config_dir / LOGS_DIR

    @property
    def operations_log(self) -> Path:
        return self.logs_dir / OPERATIONS_LOG_FILE

    @property
    def audit_log(self) -> Path:
        return self.logs_dir / AUDIT_LOG_FILE

    def metadata_path(self, repo_id: str) -> Path:
        return self.metadata_dir / f"{repo_id}.json"

    def snapshot_path(self, snapshot_id: str) -> Path:
        return self.snapshots_dir / f"{snapshot_id}.json"

    def repository_path(self, relative: str) -> Path:
        """Resolve a registered working directory against the workspace root.

        Raises:
            ConfigurationError: If *relative* is not a plain relative path,
                or resolves (symlinks included) outside the workspace, onto
                its root or into ``.mirror/``.
        """
        candidate = Path(relative)
        if (
            not relative.strip()
            or candidate.is_absolute()
            or ".." in candidate.parts
        ):
            raise ConfigurationError(
                f"Invalid repository path '{relative}': must be relative to the workspace"
            ).with_details("Absolute paths and '..' components are not allowed")
        base = self.base_dir.resolve()
        resolved = (base / candidate).resolve()
        if (
            resolved == base
            or not resolved.is_relative_to(base)
            or resolved.is_relative_to(self.config_dir.resolve())
        ):
            raise ConfigurationError(
                f"Invalid repository path '{relative}': resolves outside the workspace"
            ).with_details(f"Workspace: {self.base_dir}")
        return self.base_dir / candidate

    def is_initialized(self) -> bool:
        return self.registry_file.exists()


@dataclass
class Config:
    workspace: Path
    git_executable: str = "git"
    parallel_operations: int | None = None
    default_remote: str | None = None
    sync_mode: str = "pull"
    auto_remove: bool = False
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def paths(self) -> WorkspacePaths:
        return WorkspacePaths(self.workspace)


def validate_config(config: Config) -> None:
    """Validate configuration values.

    Raises:
        ConfigurationError: If any value is out of range.
    """
    if not config.git_executable.strip():
        raise ConfigurationError(
            "Version control executable cannot be empty. Set MCTL_GIT or git.executable."
        )

    if config.parallel_operations is not None and not (
        1 <= config.parallel_operations <= 64
    ):
        raise ConfigurationError(
            f"Invalid parallel_operations '{config.parallel_operations}': "
            "must be a number between 1 and 64"
        )

    if config.sync_mode not in SYNC_MODES:
        raise ConfigurationError(
            f"Invalid sync mode '{config.sync_mode}': must be one of {', '.join(SYNC_MODES)}"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    workspace: str | Path | None = None,
    debug: bool = False,
    settings: UnifiedConfig | None = None,
) -> Config:
    """Load runtime settings with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > settings file > built-in default

    The caller is responsible for calling ``load_dotenv()`` first so that
    .env values are visible through ``os.getenv()``.

    Args:
        workspace: Override workspace root (CLI).
        debug: Enable debug logging (CLI flag).
        settings: Parsed YAML settings, used as fallback.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If a value is malformed or out of range.
    """
    fb = settings or UnifiedConfig()

    raw_workspace = (
        workspace or os.getenv("MCTL_WORKSPACE") or fb.workspace or os.getcwd()
    )
    final_workspace = Path(raw_workspace).expanduser().resolve()

    git_executable = os.getenv("MCTL_GIT") or fb.git.executable

    parallel_raw = os.getenv("MCTL_PARALLEL")
    if parallel_raw is not None:
        try:
            final_parallel: int | None = int(parallel_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid MCTL_PARALLEL '{parallel_raw}': must be a number between 1 and 64"
            ) from None
    else:
        final_parallel = fb.sync.parallel_operations

    default_remote = (
        os.getenv("MCTL_DEFAULT_REMOTE") or fb.git.default_remote
    )

    env_auto_remove = _get_bool_env("MCTL_AUTO_REMOVE")
    final_auto_remove = (
        env_auto_remove
        if env_auto_remove is not None
        else fb.sync.auto_remove
    )

    if debug:
        final_debug = True
    else:
        final_debug = bool(_get_bool_env("MCTL_DEBUG"))

    config = Config(
        workspace=final_workspace,
        git_executable=git_executable.strip(),
        parallel_operations=final_parallel,
        default_remote=default_remote,
        sync_mode=fb.sync.mode,
        auto_remove=final_auto_remove,
        debug=final_debug,
        log_level=fb.logging.level,
        log_file=fb.logging.file,
    )

    validate_config(config)

    return config
