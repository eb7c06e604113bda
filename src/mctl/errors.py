"""Exception taxonomy for mctl.

Every error raised by the core derives from ``MctlError`` and carries:

- ``kind``: a snake_case discriminator callers branch on (never parse
  the message text).
- ``code``: a stable error code (``E1xxx`` configuration, ``E2xxx``
  repository, ``E3xxx`` version control, ``E4xxx`` filesystem,
  ``E5xxx`` user input, ``E9xxx`` internal).
- ``details``: optional extra lines rendered by ``format()``.
"""

from __future__ import annotations


class MctlError(Exception):
    """Base class for all mctl errors."""

    kind = "internal_error"
    code = "E9001"
    title = "Internal error"

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details: list[str] = list(details or [])

    def with_details(self, *details: str) -> MctlError:
        self.details.extend(details)
        return self

    def format(self) -> str:
        """Render the error as a multi-line, user-facing message."""
        lines = [f"ERROR [{self.code}] {self.title}:", f"- {self.message}"]
        lines.extend(f"- {d}" for d in self.details)
        return "\n".join(lines)

    def __str__(self) -> str:
        return f"ERROR [{self.code}] {self.title}: {self.message}"


class ConfigurationError(MctlError):
    """Registry missing, unreadable, or invalid."""

    kind = "configuration_error"
    code = "E1001"
    title = "Configuration error"


class RepositoryConflict(MctlError):
    """A repository is already registered at the requested path."""

    kind = "repository_conflict"
    code = "E2002"
    title = "Repository already exists"


class RepositoryNotFound(MctlError):
    """No registry entry matches the given identifier."""

    kind = "repository_not_found"
    code = "E2001"
    title = "Repository not found"


class VCSCommandFailed(MctlError):
    """The version-control executable exited non-zero.

    Attributes:
        args: The argument vector passed to the executable (without the
            executable itself).
        output: Combined stdout/stderr captured from the process.
        returncode: Process exit code (``-1`` when the process could not
            be started at all).
    """

    kind = "vcs_command_failed"
    code = "E3001"
    title = "Version control command failed"

    def __init__(
        self,
        message: str,
        args: list[str] | tuple[str, ...],
        output: str = "",
        returncode: int = -1,
    ):
        super().__init__(message)
        self.command_args = list(args)
        self.output = output
        self.returncode = returncode
        if output.strip():
            self.details.append(f"Output: {output.strip()}")

    def format(self) -> str:
        lines = [
            f"ERROR [{self.code}] {self.title}:",
            f"- {self.message}",
            f"- Command: {' '.join(self.command_args)}",
            f"- Exit code: {self.returncode}",
        ]
        lines.extend(f"- {d}" for d in self.details)
        return "\n".join(lines)


class CloneFailed(VCSCommandFailed):
    """A clone could not be completed (repository does not exist locally)."""

    kind = "clone_failed"
    code = "E2003"
    title = "Repository clone failed"


class UncommittedChangesError(MctlError):
    """A destructive operation was blocked by a dirty working tree."""

    kind = "uncommitted_changes"
    code = "E2004"
    title = "Uncommitted changes"


class SnapshotNotFound(MctlError):
    """No snapshot record exists for the given id."""

    kind = "snapshot_not_found"
    code = "E2005"
    title = "Snapshot not found"


class SnapshotExists(MctlError):
    """A snapshot record with the same id is already stored."""

    kind = "snapshot_exists"
    code = "E2006"
    title = "Snapshot already exists"


class PermissionDenied(MctlError):
    """Storage paths could not be read or written due to OS permissions."""

    kind = "permission_denied"
    code = "E4001"
    title = "Permission denied"
