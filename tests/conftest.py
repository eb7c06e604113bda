"""Shared pytest fixtures for mctl tests."""

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from dotenv import load_dotenv

from mctl.core.git import GitClient
from mctl.errors import CloneFailed, VCSCommandFailed
from mctl.repository.registry import Registry, init_workspace

load_dotenv()


# ---------------------------------------------------------------------------
# In-memory version control adapter
# ---------------------------------------------------------------------------


@dataclass
class FakeWorkingTree:
    """State of one fake clone."""

    url: str
    branch: str = "main"
    branches: set[str] = field(default_factory=lambda: {"main"})
    commit: str = "a" * 40
    dirty: bool = False
    ahead: int = 0
    behind: int = 0


class FakeGit(GitClient):
    """GitClient replacement that never starts a process.

    Working trees are plain directories plus a ``FakeWorkingTree`` keyed by
    path.  ``bad_urls`` makes clone fail; ``failures[op]`` lists the paths
    on which operation *op* fails.  Every call is appended to ``calls``.
    """

    def __init__(self) -> None:
        super().__init__("git")
        self.trees: dict[Path, FakeWorkingTree] = {}
        self.bad_urls: set[str] = set()
        self.failures: dict[str, set[Path]] = {}
        self.calls: list[tuple[str, Path]] = []
        self._counter = 0

    def _record(self, op: str, dest) -> Path:
        path = Path(dest)
        self.calls.append((op, path))
        if path in self.failures.get(op, set()):
            raise VCSCommandFailed(
                f"git {op} failed (rc=1)",
                args=[op],
                output=f"fatal: simulated {op} failure",
                returncode=1,
            )
        return path

    def _tree(self, op: str, dest) -> FakeWorkingTree:
        path = self._record(op, dest)
        if path not in self.trees:
            raise VCSCommandFailed(
                f"git {op} failed (rc=128)",
                args=["-C", str(path), op],
                output="fatal: not a git repository",
                returncode=128,
            )
        return self.trees[path]

    def calls_for(self, op: str) -> list[Path]:
        return [path for name, path in self.calls if name == op]

    def tree(self, dest) -> FakeWorkingTree:
        return self.trees[Path(dest)]

    # -- GitClient surface --------------------------------------------------

    def version(self) -> str:
        return "git version 2.45.0"

    def clone(self, url, dest, branch=None) -> None:
        path = self._record("clone", dest)
        if url in self.bad_urls:
            raise CloneFailed(
                f"git clone {url} failed (rc=128)",
                args=["clone", url, str(path)],
                output=f"fatal: repository '{url}' not found",
                returncode=128,
            )
        path.mkdir(parents=True, exist_ok=True)
        tree = FakeWorkingTree(url=url, branch=branch or "main")
        tree.branches.add(tree.branch)
        self.trees[path] = tree

    def fetch(self, dest, remote=None) -> None:
        self._tree("fetch", dest)

    def pull(self, dest, remote, branch) -> None:
        tree = self._tree("pull", dest)
        tree.behind = 0

    def push(self, dest) -> None:
        tree = self._tree("push", dest)
        tree.ahead = 0

    def current_branch(self, dest) -> str:
        return self._tree("current_branch", dest).branch

    def has_local_changes(self, dest) -> bool:
        return self._tree("has_local_changes", dest).dirty

    def commit_hash(self, dest) -> str:
        return self._tree("commit_hash", dest).commit

    def list_branches(self, dest) -> list[str]:
        return sorted(self._tree("list_branches", dest).branches)

    def ahead_behind(self, dest, branch, remote) -> tuple[int, int]:
        tree = self._tree("ahead_behind", dest)
        return tree.ahead, tree.behind

    def checkout_branch(self, dest, name, create=False, start_point=None):
        tree = self._tree("checkout_branch", dest)
        if create == (name in tree.branches):
            raise VCSCommandFailed(
                f"git checkout {name} failed (rc=1)",
                args=["checkout", name],
                output=f"error: pathspec '{name}' did not match",
                returncode=1,
            )
        tree.branches.add(name)
        tree.branch = name

    def reset_to_commit(self, dest, commit) -> None:
        tree = self._tree("reset_to_commit", dest)
        tree.commit = commit
        tree.dirty = False

    def stage_all(self, dest) -> None:
        self._tree("stage_all", dest)

    def commit(self, dest, message, include_all=False) -> None:
        tree = self._tree("commit", dest)
        self._counter += 1
        tree.commit = f"{self._counter:040x}"
        tree.dirty = False
        tree.ahead += 1


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def workspace(tmp_path):
    """An initialized, empty workspace."""
    return init_workspace(tmp_path)


@pytest.fixture
def registry(workspace, fake_git):
    """Registry session on the empty workspace, backed by FakeGit."""
    return Registry.open(workspace.base_dir, git=fake_git)


@pytest.fixture
def fleet(registry):
    """Factory that registers (and fake-clones) repositories by name."""

    def _add(*names: str):
        return [
            registry.add_repository(
                name, f"https://git.example.com/{name}.git", f"repos/{name}"
            )
            for name in names
        ]

    return _add


# ---------------------------------------------------------------------------
# Real git repositories
# ---------------------------------------------------------------------------


def _git(*args: str, cwd: Path | None = None) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@dataclass
class GitOrigin:
    """A bare origin plus a seed clone used to push upstream commits."""

    origin: Path
    seed: Path

    @property
    def url(self) -> str:
        return str(self.origin)

    def commit_upstream(self, filename: str, content: str) -> str:
        """Commit *filename* in the seed clone, push it, return the hash."""
        (self.seed / filename).write_text(content)
        _git("add", filename, cwd=self.seed)
        _git("commit", "-q", "-m", f"update {filename}", cwd=self.seed)
        _git("push", "-q", "origin", "main", cwd=self.seed)
        return _git("rev-parse", "HEAD", cwd=self.seed)


@pytest.fixture
def git_origin(tmp_path_factory, monkeypatch):
    """A bare repository on branch ``main`` with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    for var in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(var, "mctl tests")
    for var in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(var, "tests@example.com")
    root = tmp_path_factory.mktemp("origin")
    (root / "gitconfig").write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(root / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")

    origin = root / "origin.git"
    seed = root / "seed"
    _git("init", "-q", "--bare", str(origin))
    _git("symbolic-ref", "HEAD", "refs/heads/main", cwd=origin)
    _git("init", "-q", str(seed))
    _git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
    _git("remote", "add", "origin", str(origin), cwd=seed)

    repo = GitOrigin(origin=origin, seed=seed)
    repo.commit_upstream("README.md", "initial\n")
    return repo
