"""Repository identity, registry and per-repository runtime state."""

from .models import Metadata, RepositoryStatus
from .registry import Registry, RegistryStore, generate_id, init_workspace
from .repository import Repository
from .status import derive_status

__all__ = [
    "Metadata",
    "Registry",
    "RegistryStore",
    "Repository",
    "RepositoryStatus",
    "derive_status",
    "generate_id",
    "init_workspace",
]
