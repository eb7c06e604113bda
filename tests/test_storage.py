"""Tests for owner-only atomic persistence helpers."""

import json
import os
import stat

import pytest

from mctl.errors import PermissionDenied
from mctl.storage import (
    append_private_line,
    atomic_write_text,
    ensure_private_dir,
    read_json,
    write_json,
)


def _mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


class TestEnsurePrivateDir:
    def test_creates_nested_directories(self, tmp_path):
        target = tmp_path / "a" / "b"
        assert ensure_private_dir(target) == target
        assert target.is_dir()

    def test_mode_is_owner_only(self, tmp_path):
        target = ensure_private_dir(tmp_path / "private")
        assert _mode(target) == 0o700

    def test_tightens_existing_directory(self, tmp_path):
        target = tmp_path / "loose"
        target.mkdir(mode=0o755)
        os.chmod(target, 0o755)
        ensure_private_dir(target)
        assert _mode(target) == 0o700


class TestAtomicWriteText:
    def test_writes_content_with_owner_only_mode(self, tmp_path):
        path = tmp_path / "cfg" / "mirror.yaml"
        atomic_write_text(path, "hello\n")
        assert path.read_text() == "hello\n"
        assert _mode(path) == 0o600
        assert _mode(path.parent) == 0o700

    def test_replaces_existing_file(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("old")
        atomic_write_text(path, "new")
        assert path.read_text() == "new"

    def test_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "file.txt"
        atomic_write_text(path, "one")
        atomic_write_text(path, "two")
        assert [p.name for p in tmp_path.iterdir()] == ["file.txt"]

    @pytest.mark.skipif(
        hasattr(os, "geteuid") and os.geteuid() == 0,
        reason="root bypasses file permissions",
    )
    def test_permission_error_is_translated(self, tmp_path):
        locked = tmp_path / "locked"
        locked.mkdir()
        os.chmod(locked, 0o500)
        try:
            with pytest.raises(PermissionDenied):
                atomic_write_text(locked / "file.txt", "x")
        finally:
            os.chmod(locked, 0o700)


class TestJson:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "record.json"
        write_json(path, {"id": "abc", "n": [1, 2]})
        assert read_json(path) == {"id": "abc", "n": [1, 2]}
        assert path.read_text().endswith("\n")

    def test_missing_file_raises_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_json(tmp_path / "missing.json")

    def test_invalid_json_raises_decode_error(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(json.JSONDecodeError):
            read_json(path)


class TestAppendPrivateLine:
    def test_appends_lines(self, tmp_path):
        path = tmp_path / "logs" / "operations.log"
        append_private_line(path, "first")
        append_private_line(path, "second\n")
        assert path.read_text() == "first\nsecond\n"
        assert _mode(path) == 0o600
