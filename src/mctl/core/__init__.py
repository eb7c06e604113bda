"""Core building blocks shared by the registry, sync and snapshot engines."""

from .async_utils import gather_bounded, run_sync
from .git import GitClient, GitResult

__all__ = [
    "GitClient",
    "GitResult",
    "gather_bounded",
    "run_sync",
]
