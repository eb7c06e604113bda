import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from .config import WorkspacePaths
from .errors import PermissionDenied
from .storage import append_private_line


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.
        level: Level name from the settings file, used when LOG_LEVEL is unset.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/mctl-mcp.log
    """
    default_level = level or ("WARNING" if mode == "mcp" else "INFO")
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    if mode == "mcp":
        # stdio transport owns stdout
        final_log_file = log_file or os.getenv(
            "LOG_FILE", "/tmp/mctl-mcp.log"
        )
        logging.basicConfig(
            level=log_level,
            format="[%(asctime)s] [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            filename=final_log_file,
            filemode="a",
        )
    else:
        handlers: list[logging.Handler] = []
        stderr_handler = logging.StreamHandler(sys.stderr)

        if debug_format == "json":
            stderr_handler.setFormatter(
                JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
            )
        else:
            stderr_handler.setFormatter(
                logging.Formatter(
                    "[%(asctime)s] [%(levelname)s] %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            if debug_format == "json":
                file_handler.setFormatter(
                    JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
                )
            else:
                file_handler.setFormatter(
                    logging.Formatter(
                        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s",
                        datefmt="%Y-%m-%d %H:%M:%S",
                    )
                )
            handlers.append(file_handler)

        logging.basicConfig(
            level=log_level,
            handlers=handlers,
        )

    # Silence the MCP transport stack unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("mcp").setLevel(logging.WARNING)
        logging.getLogger("anyio").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Workspace journal (operations.log / audit.log)
# ---------------------------------------------------------------------------

JOURNAL_KINDS = ("operations", "audit")


class Journal:
    """Append-only operation and audit journal inside a workspace.

    Entries are single lines of the form ``[<RFC3339>] [<LEVEL>] <message>``
    written to ``.mirror/logs/operations.log`` or ``.mirror/logs/audit.log``.
    Both files are owner read/write only.

    Journal writes never interrupt the operation being journaled: a
    failure to append is reported through the module logger instead.
    """

    def __init__(self, paths: WorkspacePaths) -> None:
        self._paths = paths
        self._logger = logging.getLogger(__name__)

    def _path_for(self, kind: str) -> Path:
        if kind == "operations":
            return self._paths.operations_log
        if kind == "audit":
            return self._paths.audit_log
        raise ValueError(
            f"Unknown journal '{kind}': expected one of {', '.join(JOURNAL_KINDS)}"
        )

    def _write(self, kind: str, level: str, message: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        line = f"[{timestamp}] [{level}] {message}"
        try:
            append_private_line(self._path_for(kind), line)
        except (OSError, PermissionDenied) as exc:
            self._logger.warning("Could not write %s journal: %s", kind, exc)

    def operation(self, message: str, level: str = "INFO") -> None:
        self._write("operations", level, message)

    def audit(self, message: str, level: str = "INFO") -> None:
        self._write("audit", level, message)

    def read(self, kind: str = "operations", limit: int = 0) -> list[str]:
        """Return journal lines, oldest first.

        Args:
            kind: ``"operations"`` or ``"audit"``.
            limit: If positive, only the most recent *limit* lines.
        """
        path = self._path_for(kind)
        if not path.exists():
            return []
        lines = path.read_text(encoding="utf-8").splitlines()
        if limit > 0 and len(lines) > limit:
            return lines[-limit:]
        return lines
