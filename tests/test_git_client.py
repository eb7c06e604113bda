"""Tests for mctl.core.git -- the version control adapter.

Most tests drive a real git executable against local repositories
(skipped when git is unavailable).
"""

import pytest

from mctl.core.git import GitClient, GitResult
from mctl.errors import CloneFailed, VCSCommandFailed


@pytest.fixture
def client():
    return GitClient()


@pytest.fixture
def clone(git_origin, tmp_path, client):
    dest = tmp_path / "work" / "api"
    client.clone(git_origin.url, dest)
    return dest


class TestGitResult:
    def test_output_combines_streams(self):
        result = GitResult(args=("push",), returncode=1, stdout="out\n", stderr="err\n")
        assert result.output == "out\nerr"
        assert not result.ok

    def test_output_single_stream(self):
        assert GitResult(args=(), returncode=0, stdout="", stderr="e\n").output == "e"


class TestRun:
    def test_missing_executable(self, tmp_path):
        client = GitClient("mctl-no-such-executable")
        with pytest.raises(VCSCommandFailed) as exc_info:
            client.run("status", dest=tmp_path)
        assert exc_info.value.returncode == -1
        assert exc_info.value.command_args == ["-C", str(tmp_path), "status"]

    def test_version(self, git_origin, client):
        assert client.version().startswith("git version")

    def test_non_zero_exit_raises_with_output(self, git_origin, client, tmp_path):
        with pytest.raises(VCSCommandFailed) as exc_info:
            client.run("status", dest=tmp_path)
        err = exc_info.value
        assert err.returncode != 0
        assert "not a git repository" in err.output.lower()
        assert err.command_args[:2] == ["-C", str(tmp_path)]

    def test_check_false_returns_result(self, git_origin, client, tmp_path):
        result = client.run("status", dest=tmp_path, check=False)
        assert not result.ok


class TestClone:
    def test_clone_creates_parent(self, clone, client):
        assert (clone / "README.md").read_text() == "initial\n"
        assert client.current_branch(clone) == "main"

    def test_clone_with_branch(self, git_origin, client, tmp_path):
        dest = tmp_path / "b"
        client.clone(git_origin.url, dest, branch="main")
        assert client.current_branch(dest) == "main"

    def test_clone_failure_is_clone_failed(self, git_origin, client, tmp_path):
        with pytest.raises(CloneFailed) as exc_info:
            client.clone(str(tmp_path / "missing.git"), tmp_path / "x")
        assert exc_info.value.kind == "clone_failed"


class TestQueries:
    def test_local_changes(self, clone, client):
        assert client.has_local_changes(clone) is False
        (clone / "new.txt").write_text("x")
        assert client.has_local_changes(clone) is True

    def test_commit_hash(self, clone, client, git_origin):
        head = client.commit_hash(clone)
        assert len(head) == 40
        assert head == client.run("rev-parse", "HEAD", dest=git_origin.seed).stdout.strip()

    def test_list_branches(self, clone, client):
        client.checkout_branch(clone, "feature", create=True)
        assert client.list_branches(clone) == ["feature", "main"]

    def test_ahead_behind(self, clone, client, git_origin):
        assert client.ahead_behind(clone, "main", "origin") == (0, 0)

        git_origin.commit_upstream("upstream.txt", "u")
        client.fetch(clone)
        assert client.ahead_behind(clone, "main", "origin") == (0, 1)

        (clone / "local.txt").write_text("l")
        client.stage_all(clone)
        client.commit(clone, "local change")
        assert client.ahead_behind(clone, "main", "origin") == (1, 1)

    def test_ahead_behind_unknown_remote(self, clone, client):
        with pytest.raises(VCSCommandFailed):
            client.ahead_behind(clone, "main", "nowhere")


class TestMutations:
    def test_pull_merges_upstream(self, clone, client, git_origin):
        head = git_origin.commit_upstream("upstream.txt", "u")
        client.pull(clone, "origin", "main")
        assert client.commit_hash(clone) == head

    def test_save_cycle(self, clone, client, git_origin):
        (clone / "feature.txt").write_text("f")
        client.stage_all(clone)
        client.commit(clone, "add feature")
        client.push(clone)
        assert client.has_local_changes(clone) is False
        assert client.ahead_behind(clone, "main", "origin") == (0, 0)

    def test_commit_nothing_raises(self, clone, client):
        with pytest.raises(VCSCommandFailed):
            client.commit(clone, "empty")

    def test_checkout_and_reset(self, clone, client, git_origin):
        first = client.commit_hash(clone)
        git_origin.commit_upstream("upstream.txt", "u")
        client.pull(clone, "origin", "main")

        client.checkout_branch(clone, "topic", create=True, start_point="main")
        assert client.current_branch(clone) == "topic"
        client.checkout_branch(clone, "main")
        client.reset_to_commit(clone, first)
        assert client.commit_hash(clone) == first

    def test_checkout_missing_branch(self, clone, client):
        with pytest.raises(VCSCommandFailed):
            client.checkout_branch(clone, "does-not-exist")
