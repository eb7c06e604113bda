"""Repository state machine.

The status of a working tree is a pure function of five observations,
recomputed from scratch on every call:

1. the directory does not exist -> ``UNKNOWN``;
2. there are local changes -> ``MODIFIED`` (regardless of the remote);
3. otherwise, if the remote comparison was skipped or failed -> ``CLEAN``;
4. otherwise ahead/behind decide between ``DIVERGED``, ``AHEAD``,
   ``BEHIND`` and ``CLEAN``.
"""

from __future__ import annotations

from .models import RepositoryStatus


def derive_status(
    exists: bool,
    has_local_changes: bool,
    fetch_succeeded: bool = False,
    ahead: int | None = None,
    behind: int | None = None,
) -> RepositoryStatus:
    """Compute the status for one set of observations.

    Args:
        exists: Whether the working directory is present.
        has_local_changes: Whether the working tree is dirty.
        fetch_succeeded: Whether the remote could be refreshed.
        ahead: Commits ahead of the remote, or *None* if unknown.
        behind: Commits behind the remote, or *None* if unknown.

    Returns:
        The derived ``RepositoryStatus``.
    """
    if not exists:
        return RepositoryStatus.UNKNOWN
    if has_local_changes:
        return RepositoryStatus.MODIFIED
    if not fetch_succeeded or ahead is None or behind is None:
        return RepositoryStatus.CLEAN
    if ahead > 0 and behind > 0:
        return RepositoryStatus.DIVERGED
    if ahead > 0:
        return RepositoryStatus.AHEAD
    if behind > 0:
        return RepositoryStatus.BEHIND
    return RepositoryStatus.CLEAN
