"""Owner-only persistence helpers.

Registry, metadata, snapshot, and journal files may contain repository
URLs with embedded credentials, so:

* directories are created with mode ``0700``;
* files are written with mode ``0600``;
* writes are atomic -- content goes to a temp file in the target
  directory which then replaces the target via ``os.replace()`` (or is
  hard-linked into place for write-once records), so readers never see
  partial data.

``PermissionError`` from the OS is translated to ``PermissionDenied``.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from .errors import PermissionDenied

DIR_MODE = 0o700
FILE_MODE = 0o600


def ensure_private_dir(path: Path) -> Path:
    """Create *path* (and parents) if needed and restrict it to the owner.

    Returns:
        The directory path.

    Raises:
        PermissionDenied: If the directory cannot be created or chmod'ed.
    """
    try:
        path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        # mkdir's mode is filtered by the umask; enforce it explicitly.
        os.chmod(path, DIR_MODE)
    except PermissionError as exc:
        raise PermissionDenied(
            f"Cannot create directory {path}: {exc.strerror}"
        ) from exc
    return path


def _link_into_place(tmp_path: str, path: Path) -> None:
    os.link(tmp_path, path)
    os.unlink(tmp_path)


def atomic_write_text(
    path: Path, content: str, *, overwrite: bool = True
) -> None:
    """Write *content* to *path* atomically with owner-only permissions.

    The parent directory is created (owner-only) if it does not exist.
    With ``overwrite=False`` the temp file is hard-linked into place, so an
    existing *path* is never replaced.

    Raises:
        FileExistsError: If *overwrite* is false and *path* exists.
        PermissionDenied: If the file cannot be written.
    """
    publish = os.replace if overwrite else _link_into_place
    ensure_private_dir(path.parent)
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
    except PermissionError as exc:
        raise PermissionDenied(
            f"Cannot write {path}: {exc.strerror}"
        ) from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.chmod(tmp_path, FILE_MODE)
        publish(tmp_path, path)
    except BaseException as exc:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        if isinstance(exc, PermissionError):
            raise PermissionDenied(
                f"Cannot write {path}: {exc.strerror}"
            ) from exc
        raise


def write_json(path: Path, data: Any, *, overwrite: bool = True) -> None:
    """Serialise *data* as indented JSON and write it atomically."""
    atomic_write_text(
        path, json.dumps(data, indent=2) + "\n", overwrite=overwrite
    )


def read_json(path: Path) -> Any:
    """Load JSON from *path*.

    Raises:
        FileNotFoundError: If *path* does not exist.
        json.JSONDecodeError: If the content is not valid JSON.
        PermissionDenied: If the file cannot be read.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except PermissionError as exc:
        raise PermissionDenied(
            f"Cannot read {path}: {exc.strerror}"
        ) from exc


def append_private_line(path: Path, line: str) -> None:
    """Append a single line to *path*, creating it owner-only if needed."""
    ensure_private_dir(path.parent)
    try:
        fd = os.open(
            path, os.O_APPEND | os.O_CREAT | os.O_WRONLY, FILE_MODE
        )
        with os.fdopen(fd, "a", encoding="utf-8") as fh:
            fh.write(line if line.endswith("\n") else line + "\n")
    except PermissionError as exc:
        raise PermissionDenied(
            f"Cannot append to {path}: {exc.strerror}"
        ) from exc
