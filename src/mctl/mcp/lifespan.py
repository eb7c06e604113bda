"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..config import load_config
from ..config_loader import load_settings, settings_files
from ..core.async_utils import run_sync
from ..core.git import GitClient
from ..errors import MctlError
from ..repository.registry import init_workspace
from .context import FleetContext

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load and validate the YAML settings files, if any (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create the workspace registry when asked to (``init`` override)
    - Fail fast if the workspace has no registry or git cannot be executed

    On shutdown:
    - Log shutdown message

    Args:
        config_overrides: Optional dict with values from CLI (workspace,
            debug, init)

    Yields:
        Dict with 'context' key containing the initialized FleetContext

    Raises:
        RuntimeError: If configuration is invalid, the workspace is not
            initialized, or git is unavailable.
    """
    logger.info("MCP server starting...")
    _stderr_print("mctl MCP server starting...")

    overrides = config_overrides or {}
    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        sources = []
        config_files = settings_files()
        unified = load_settings(config_files)
        if config_files:
            names = ", ".join(str(p) for p in reversed(config_files))
            sources.append(f"settings files: {names}")

        config = load_config(
            workspace=overrides.get("workspace"),
            debug=overrides.get("debug", False),
            settings=unified,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Workspace: %s", config.workspace)
        _stderr_print(f"  Workspace: {config.workspace}")
    except (MctlError, ValidationError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    if not config.paths.is_initialized() and overrides.get("init"):
        try:
            await run_sync(init_workspace, config.workspace)
        except MctlError as e:
            logger.error("Cannot initialize workspace: %s", e)
            _stderr_print(f"ERROR: Cannot initialize workspace: {e.message}")
            raise RuntimeError(f"Cannot initialize workspace: {e.message}") from e
        _stderr_print(f"  Initialized workspace: {config.paths.registry_file}")

    if not config.paths.is_initialized():
        message = (
            f"No registry found at {config.paths.registry_file}. "
            "Set MCTL_WORKSPACE or --workspace to an initialized workspace, "
            "or pass --init to create one."
        )
        logger.error(message)
        _stderr_print(f"ERROR: {message}")
        raise RuntimeError(message)

    # Validate the version control executable
    git = GitClient(config.git_executable)
    try:
        version = await run_sync(git.version)
    except MctlError as e:
        logger.error("Version control executable unavailable: %s", e)
        _stderr_print("ERROR: Version control executable unavailable.")
        _stderr_print(f"  {e.message}")
        _stderr_print("  Check MCTL_GIT or git.executable.")
        raise RuntimeError(
            f"Version control executable unavailable: {e.message}"
        ) from e

    logger.info("Using %s", version)
    _stderr_print(f"  Using {version}")
    parallel = config.parallel_operations or "registry default"
    _stderr_print(f"  Parallel operations: {parallel}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"context": FleetContext(config=config, git=git)}

    logger.info("MCP server shutting down")
    _stderr_print("mctl MCP server shutting down.")
