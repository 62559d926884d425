"""Tests for graph and document stores."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest

from shadowgraph.analysis import CycleDetector
from shadowgraph.core.errors import SnapshotNotFoundError, StorageError
from shadowgraph.diff import compute_diff
from shadowgraph.models.snapshot import ShadowGraphRecord
from shadowgraph.models.types import SnapshotStatus, Variant
from shadowgraph.storage import (
    InMemoryDocumentStore,
    InMemoryGraphStore,
    JsonGraphStore,
    SQLiteDocumentStore,
)
from tests.fixtures.graphs import PROJECT_ID, make_production, make_shadow

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(
    shadow_id: str,
    status: SnapshotStatus = SnapshotStatus.PENDING,
    created_at: datetime = BASE_TIME,
    expires_in_hours: float | None = 24,
    project_id: str = PROJECT_ID,
) -> ShadowGraphRecord:
    return ShadowGraphRecord(
        id=f"{project_id}-{shadow_id}",
        project_id=project_id,
        shadow_id=shadow_id,
        repo_url="https://git.example.com/acme/shop.git",
        branch_name=f"feature/{shadow_id}",
        pr_number=42,
        status=status,
        created_at=created_at,
        expires_at=(
            created_at + timedelta(hours=expires_in_hours) if expires_in_hours is not None else None
        ),
    )


@pytest.fixture(params=["memory", "sqlite"])
def document_store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator:
    """Each DocumentStore implementation."""
    if request.param == "memory":
        yield InMemoryDocumentStore()
    else:
        with SQLiteDocumentStore(tmp_path / "records.db") as store:
            yield store


@pytest.fixture(params=["memory", "json"])
def graph_store(request: pytest.FixtureRequest, tmp_path: Path):
    """Each GraphStore implementation."""
    if request.param == "memory":
        return InMemoryGraphStore()
    return JsonGraphStore(tmp_path / "graphs")


class TestDocumentStore:
    """Behavior shared by all document stores."""

    def test_save_and_get(self, document_store) -> None:
        """A saved record comes back equal."""
        record = _record("a1")
        document_store.save(record)
        assert document_store.get(PROJECT_ID, "a1") == record

    def test_get_missing(self, document_store) -> None:
        """Unknown keys return None."""
        assert document_store.get(PROJECT_ID, "nope") is None

    def test_save_replaces(self, document_store) -> None:
        """Saving the same key overwrites."""
        record = _record("a1")
        document_store.save(record)
        record.transition(SnapshotStatus.ANALYZING)
        document_store.save(record)
        assert document_store.get(PROJECT_ID, "a1").status == SnapshotStatus.ANALYZING

    def test_returned_records_are_copies(self, document_store) -> None:
        """Mutating a loaded record does not touch the store."""
        document_store.save(_record("a1"))
        loaded = document_store.get(PROJECT_ID, "a1")
        loaded.warnings.append("local")
        assert document_store.get(PROJECT_ID, "a1").warnings == []

    def test_find_active(self, document_store) -> None:
        """Only PENDING and ANALYZING records are active."""
        document_store.save(_record("p", SnapshotStatus.PENDING))
        document_store.save(_record("a", SnapshotStatus.ANALYZING))
        document_store.save(_record("c", SnapshotStatus.COMPLETED))
        document_store.save(_record("f", SnapshotStatus.FAILED))

        assert document_store.find_active(PROJECT_ID, "p") is not None
        assert document_store.find_active(PROJECT_ID, "a") is not None
        assert document_store.find_active(PROJECT_ID, "c") is None
        assert document_store.find_active(PROJECT_ID, "f") is None

    def test_list_newest_first(self, document_store) -> None:
        """Records of one project, by creation time descending."""
        document_store.save(_record("old", created_at=BASE_TIME))
        document_store.save(_record("new", created_at=BASE_TIME + timedelta(hours=1)))
        document_store.save(_record("other", project_id="elsewhere"))

        listed = document_store.list_by_project(PROJECT_ID)
        assert [r.shadow_id for r in listed] == ["new", "old"]

    def test_find_expired(self, document_store) -> None:
        """Records past expiry are found; others and unexpiring ones are not."""
        document_store.save(_record("short", expires_in_hours=1))
        document_store.save(_record("long", expires_in_hours=48))
        document_store.save(_record("forever", expires_in_hours=None))

        expired = document_store.find_expired(BASE_TIME + timedelta(hours=2))
        assert [r.shadow_id for r in expired] == ["short"]

    def test_expiry_boundary_is_exclusive(self, document_store) -> None:
        """A record is not expired at the exact instant of its expiry."""
        document_store.save(_record("edge", expires_in_hours=1))
        expires_at = BASE_TIME + timedelta(hours=1)

        assert document_store.find_expired(expires_at) == []
        assert document_store.get(PROJECT_ID, "edge").is_expired(expires_at) is False

        later = expires_at + timedelta(seconds=1)
        assert [r.shadow_id for r in document_store.find_expired(later)] == ["edge"]
        assert document_store.get(PROJECT_ID, "edge").is_expired(later)

    def test_delete(self, document_store) -> None:
        """Delete reports whether anything was removed."""
        document_store.save(_record("a1"))
        assert document_store.delete(PROJECT_ID, "a1")
        assert not document_store.delete(PROJECT_ID, "a1")
        assert document_store.get(PROJECT_ID, "a1") is None

    def test_diff_and_cycles_persist(self, document_store) -> None:
        """A completed record keeps its diff and cycles."""
        production = make_production()
        shadow = make_shadow(with_cross_service_cycle=True)
        record = _record("done", SnapshotStatus.ANALYZING)
        record.diff = compute_diff(production, shadow)
        record.circular_dependencies = CycleDetector().detect_and_compare(production, shadow)
        record.warnings = ["New error: something"]
        record.transition(SnapshotStatus.COMPLETED, BASE_TIME)

        document_store.save(record)
        loaded = document_store.get(PROJECT_ID, "done")

        assert loaded == record
        assert loaded.circular_dependencies[0].is_new_in_shadow


class TestSQLiteDocumentStore:
    """SQLite-specific behavior."""

    def test_persists_across_connections(self, tmp_path: Path) -> None:
        """Records survive reopening the database."""
        path = tmp_path / "records.db"
        with SQLiteDocumentStore(path) as store:
            store.save(_record("a1"))
        with SQLiteDocumentStore(path) as store:
            assert store.get(PROJECT_ID, "a1") is not None

    def test_closed_connection_raises_storage_error(self, tmp_path: Path) -> None:
        """Backend failures surface as StorageError."""
        store = SQLiteDocumentStore(tmp_path / "records.db")
        store.close()
        with pytest.raises(StorageError):
            store.get(PROJECT_ID, "a1")

    def test_concurrent_writers_and_readers(self, tmp_path: Path) -> None:
        """Saves and reads from many threads share one connection safely."""
        ids = [f"pr-{n}" for n in range(40)]
        with SQLiteDocumentStore(tmp_path / "records.db") as store:

            def save_then_read(shadow_id: str) -> ShadowGraphRecord | None:
                store.save(_record(shadow_id))
                return store.get(PROJECT_ID, shadow_id)

            with ThreadPoolExecutor(max_workers=8) as pool:
                loaded = list(pool.map(save_then_read, ids))

            assert [r.shadow_id for r in loaded] == ids
            assert len(store.list_by_project(PROJECT_ID)) == len(ids)


class TestGraphStore:
    """Behavior shared by all graph stores."""

    def test_production_round_trip(self, graph_store) -> None:
        """The production snapshot loads back with the same graph."""
        production = make_production()
        graph_store.save_snapshot(production)

        loaded = graph_store.load_snapshot(PROJECT_ID, Variant.PRODUCTION)

        assert loaded.status == SnapshotStatus.COMPLETED
        assert loaded.graph.nodes == production.graph.nodes
        assert loaded.graph.edges.keys() == production.graph.edges.keys()
        assert loaded.id_version == production.id_version
        assert loaded.completed_at == production.completed_at

    def test_loaded_snapshot_diffs_clean(self, graph_store) -> None:
        """A stored snapshot compares equal to a fresh build of the same facts."""
        graph_store.save_snapshot(make_shadow("pr-9"))
        loaded = graph_store.load_snapshot(PROJECT_ID, Variant.SHADOW, "pr-9")
        assert not compute_diff(make_production(), loaded).summary.has_changes

    def test_missing_snapshot(self, graph_store) -> None:
        """Absent snapshots raise SnapshotNotFoundError."""
        with pytest.raises(SnapshotNotFoundError) as exc_info:
            graph_store.load_snapshot(PROJECT_ID, Variant.PRODUCTION)
        assert exc_info.value.shadow_id is None
        assert exc_info.value.retryable

    def test_has_and_delete_shadow(self, graph_store) -> None:
        """Shadows can be deleted; production is untouched."""
        graph_store.save_snapshot(make_production())
        graph_store.save_snapshot(make_shadow("pr-1"))

        assert graph_store.has_snapshot(PROJECT_ID, Variant.SHADOW, "pr-1")
        assert graph_store.delete_snapshot(PROJECT_ID, "pr-1")
        assert not graph_store.delete_snapshot(PROJECT_ID, "pr-1")
        assert not graph_store.has_snapshot(PROJECT_ID, Variant.SHADOW, "pr-1")
        assert graph_store.has_snapshot(PROJECT_ID, Variant.PRODUCTION)

    def test_shadow_needs_id(self, graph_store) -> None:
        """A shadow key without a shadow id is a storage error."""
        with pytest.raises(StorageError):
            graph_store.has_snapshot(PROJECT_ID, Variant.SHADOW)


class TestJsonGraphStore:
    """File layout of the JSON store."""

    def test_file_layout(self, tmp_path: Path) -> None:
        """One file per project and variant."""
        store = JsonGraphStore(tmp_path)
        store.save_snapshot(make_production())
        store.save_snapshot(make_shadow("pr-3"))

        assert (tmp_path / PROJECT_ID / "production.json").exists()
        assert (tmp_path / PROJECT_ID / "shadow-pr-3.json").exists()
        assert not list((tmp_path / PROJECT_ID).glob("*.tmp"))

    def test_corrupt_file(self, tmp_path: Path) -> None:
        """Unparseable files raise StorageError, not a JSON error."""
        store = JsonGraphStore(tmp_path)
        (tmp_path / PROJECT_ID).mkdir()
        (tmp_path / PROJECT_ID / "production.json").write_text("{not json")
        with pytest.raises(StorageError) as exc_info:
            store.load_snapshot(PROJECT_ID, Variant.PRODUCTION)
        assert not exc_info.value.retryable
