"""Error hierarchy and collaborator protocols."""

from shadowgraph.core.errors import (
    CanonicalIdCollisionError,
    ConfigError,
    InconsistentSnapshotError,
    InvalidFactError,
    ShadowGraphError,
    SnapshotFailedError,
    SnapshotNotFoundError,
    SnapshotStateError,
    StorageError,
)

__all__ = [
    "CanonicalIdCollisionError",
    "ConfigError",
    "InconsistentSnapshotError",
    "InvalidFactError",
    "ShadowGraphError",
    "SnapshotFailedError",
    "SnapshotNotFoundError",
    "SnapshotStateError",
    "StorageError",
]
