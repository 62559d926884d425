"""Graph snapshot stores.

Provides InMemoryGraphStore and JsonGraphStore (one JSON file per
snapshot) implementations of the GraphStore protocol.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from shadowgraph.core.errors import SnapshotNotFoundError, StorageError
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.types import Variant
from shadowgraph.report.serialize import snapshot_from_dict, snapshot_to_dict

logger = logging.getLogger(__name__)

PRODUCTION_KEY = "production"


def _key(project_id: str, variant: Variant, shadow_id: str | None) -> tuple[str, str, str]:
    if variant == Variant.PRODUCTION:
        return variant.value, project_id, PRODUCTION_KEY
    if not shadow_id:
        raise StorageError("key", "shadow snapshots need a shadow_id")
    return variant.value, project_id, shadow_id


class InMemoryGraphStore:
    """In-memory GraphStore for testing.

    Snapshots are round-tripped through their plain-data form so a loaded
    snapshot never aliases the stored one.
    """

    def __init__(self) -> None:
        self._snapshots: dict[tuple[str, str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_snapshot(self, snapshot: GraphSnapshot) -> None:
        """Store a snapshot, replacing any with the same key."""
        key = _key(snapshot.project_id, snapshot.variant, snapshot.shadow_id)
        data = snapshot_to_dict(snapshot)
        with self._lock:
            self._snapshots[key] = data

    def load_snapshot(
        self, project_id: str, variant: Variant, shadow_id: str | None = None
    ) -> GraphSnapshot:
        """Load a snapshot or raise SnapshotNotFoundError."""
        key = _key(project_id, variant, shadow_id)
        with self._lock:
            data = self._snapshots.get(key)
        if data is None:
            raise SnapshotNotFoundError(project_id, shadow_id if variant == Variant.SHADOW else None)
        return snapshot_from_dict(data)

    def delete_snapshot(self, project_id: str, shadow_id: str) -> bool:
        """Delete a shadow snapshot."""
        with self._lock:
            return self._snapshots.pop(_key(project_id, Variant.SHADOW, shadow_id), None) is not None

    def has_snapshot(
        self, project_id: str, variant: Variant, shadow_id: str | None = None
    ) -> bool:
        with self._lock:
            return _key(project_id, variant, shadow_id) in self._snapshots


class JsonGraphStore:
    """GraphStore keeping one JSON file per snapshot.

    Layout:
        <root>/<project_id>/production.json
        <root>/<project_id>/shadow-<shadow_id>.json
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the store.

        Args:
            root: Directory for snapshot files. Created if it doesn't exist.
        """
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, project_id: str, variant: Variant, shadow_id: str | None) -> Path:
        _, _, name = _key(project_id, variant, shadow_id)
        filename = f"{name}.json" if variant == Variant.PRODUCTION else f"shadow-{name}.json"
        return self._root / project_id / filename

    def save_snapshot(self, snapshot: GraphSnapshot) -> None:
        """Write a snapshot file, replacing any existing one."""
        path = self._path(snapshot.project_id, snapshot.variant, snapshot.shadow_id)
        data = snapshot_to_dict(snapshot)
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp = path.with_suffix(".json.tmp")
                with open(tmp, "w") as f:
                    json.dump(data, f, indent=2)
                tmp.replace(path)
        except OSError as e:
            raise StorageError("save", str(e), retryable=True, retry_after_seconds=1) from e
        logger.debug("snapshot_saved path=%s nodes=%d", path, snapshot.graph.node_count)

    def load_snapshot(
        self, project_id: str, variant: Variant, shadow_id: str | None = None
    ) -> GraphSnapshot:
        """Read a snapshot file.

        Raises:
            SnapshotNotFoundError: No file for this key
            StorageError: File unreadable or not a snapshot
        """
        path = self._path(project_id, variant, shadow_id)
        if not path.exists():
            raise SnapshotNotFoundError(project_id, shadow_id if variant == Variant.SHADOW else None)
        try:
            with open(path) as f:
                data = json.load(f)
            return snapshot_from_dict(data)
        except OSError as e:
            raise StorageError("load", str(e), retryable=True, retry_after_seconds=1) from e
        except (ValueError, KeyError) as e:
            raise StorageError("load", f"corrupt snapshot {path}: {e}") from e

    def delete_snapshot(self, project_id: str, shadow_id: str) -> bool:
        """Delete a shadow snapshot file."""
        path = self._path(project_id, Variant.SHADOW, shadow_id)
        with self._lock:
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StorageError("delete", str(e), retryable=True, retry_after_seconds=1) from e
        return True

    def has_snapshot(
        self, project_id: str, variant: Variant, shadow_id: str | None = None
    ) -> bool:
        return self._path(project_id, variant, shadow_id).exists()
