"""Version control adapter.

``GitClient`` is the only place mctl starts the version-control
executable.  Every call builds an argument vector, runs it as a child
process (``<executable> -C <dest> <args...>``), and either returns the
captured output or raises ``VCSCommandFailed`` carrying the arguments and
the combined stdout/stderr.  Non-zero exits are never swallowed here;
callers that want best-effort behaviour catch the typed error.

There is no timeout: a call runs until the child process exits.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ..errors import CloneFailed, VCSCommandFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GitResult:
    """Outcome of one executable invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr.rstrip()}"
        return (self.stdout or self.stderr).rstrip()

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitClient:
    """Thin synchronous wrapper around the git executable.

    Instances hold no per-call state and are safe to share across threads.

    Args:
        executable: Name or path of the version control executable.
    """

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    # ------------------------------------------------------------------
    # Process plumbing
    # ------------------------------------------------------------------

    def run(
        self,
        *args: str,
        dest: str | Path | None = None,
        check: bool = True,
        error_cls: type[VCSCommandFailed] = VCSCommandFailed,
    ) -> GitResult:
        """Run ``<executable> [-C dest] <args...>``.

        Args:
            *args: Arguments passed after the executable.
            dest: Repository directory (passed via ``-C``).
            check: If *True*, raise on non-zero exit.
            error_cls: Error type raised on failure.

        Returns:
            The captured ``GitResult``.

        Raises:
            VCSCommandFailed: If the process exits non-zero (and *check*)
                or cannot be started at all.
        """
        argv: list[str] = []
        if dest is not None:
            argv += ["-C", str(dest)]
        argv += list(args)

        logger.debug("%s %s", self.executable, " ".join(argv))
        env = dict(os.environ)
        # A credential prompt would block the worker forever.
        env.setdefault("GIT_TERMINAL_PROMPT", "0")
        try:
            proc = subprocess.run(
                [self.executable, *argv],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=env,
            )
        except OSError as exc:
            raise error_cls(
                f"Cannot execute {self.executable}: {exc}",
                args=argv,
                output=str(exc),
                returncode=-1,
            ) from exc

        result = GitResult(
            args=tuple(argv),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if check and not result.ok:
            raise error_cls(
                f"{self.executable} {' '.join(args)} failed "
                f"(rc={result.returncode})",
                args=argv,
                output=result.output,
                returncode=result.returncode,
            )
        return result

    def version(self) -> str:
        """Return the executable's version string (``git version 2.x``).

        Used at startup to fail fast when the executable is missing.
        """
        return self.run("--version").stdout.strip()

    # ------------------------------------------------------------------
    # Repository creation / transfer
    # ------------------------------------------------------------------

    def clone(
        self, url: str, dest: str | Path, branch: str | None = None
    ) -> None:
        """Clone *url* into *dest*, optionally checking out *branch*.

        Raises:
            CloneFailed: If the clone does not complete.
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone"]
        if branch:
            args += ["--branch", branch]
        args += [url, str(dest)]
        self.run(*args, error_cls=CloneFailed)
        logger.info("Cloned %s -> %s", url, dest)

    def fetch(self, dest: str | Path, remote: str | None = None) -> None:
        args = ["fetch"]
        if remote:
            args.append(remote)
        self.run(*args, dest=dest)

    def pull(self, dest: str | Path, remote: str, branch: str) -> None:
        """Fetch and merge *remote*/*branch* into the current branch."""
        self.run("pull", remote, branch, dest=dest)

    def push(self, dest: str | Path) -> None:
        self.run("push", dest=dest)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_branch(self, dest: str | Path) -> str:
        result = self.run("rev-parse", "--abbrev-ref", "HEAD", dest=dest)
        return result.stdout.strip()

    def has_local_changes(self, dest: str | Path) -> bool:
        """Return *True* if ``status --porcelain`` reports anything."""
        result = self.run("status", "--porcelain", dest=dest)
        return bool(result.stdout.strip())

    def commit_hash(self, dest: str | Path) -> str:
        result = self.run("rev-parse", "HEAD", dest=dest)
        return result.stdout.strip()

    def list_branches(self, dest: str | Path) -> list[str]:
        result = self.run(
            "branch", "--format=%(refname:short)", dest=dest
        )
        return [b.strip() for b in result.stdout.splitlines() if b.strip()]

    def ahead_behind(
        self, dest: str | Path, branch: str, remote: str
    ) -> tuple[int, int]:
        """Count commits ahead of / behind ``<remote>/<branch>``.

        Two independent ``rev-list --count`` queries are issued.  Empty
        output counts as zero.

        Raises:
            VCSCommandFailed: If either query fails or its output is not
                a non-negative integer.
        """
        upstream = f"{remote}/{branch}"
        ahead = self._count(dest, f"{upstream}..{branch}")
        behind = self._count(dest, f"{branch}..{upstream}")
        return ahead, behind

    def _count(self, dest: str | Path, commit_range: str) -> int:
        result = self.run("rev-list", "--count", commit_range, dest=dest)
        text = result.stdout.strip()
        if not text:
            return 0
        try:
            value = int(text)
        except ValueError:
            value = -1
        if value < 0:
            raise VCSCommandFailed(
                f"Unexpected rev-list output for {commit_range}",
                args=list(result.args),
                output=text,
                returncode=result.returncode,
            )
        return value

    # ------------------------------------------------------------------
    # Working tree mutation
    # ------------------------------------------------------------------

    def checkout_branch(
        self,
        dest: str | Path,
        name: str,
        create: bool = False,
        start_point: str | None = None,
    ) -> None:
        args = ["checkout"]
        if create:
            args.append("-b")
        args.append(name)
        if create and start_point:
            args.append(start_point)
        self.run(*args, dest=dest)

    def reset_to_commit(self, dest: str | Path, commit: str) -> None:
        """Hard-reset the current branch to *commit*."""
        self.run("reset", "--hard", commit, dest=dest)

    def stage_all(self, dest: str | Path) -> None:
        """Stage every change, including untracked files."""
        self.run("add", "--all", dest=dest)

    def commit(
        self, dest: str | Path, message: str, include_all: bool = False
    ) -> None:
        args = ["commit", "-m", message]
        if include_all:
            args.append("-a")
        self.run(*args, dest=dest)
