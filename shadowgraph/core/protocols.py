"""Protocol interfaces for the external collaborators.

Defines the contracts the orchestrator depends on:
- Analysis: AnalysisFrontEnd (source parsing, out of scope here)
- Storage: GraphStore, DocumentStore
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from shadowgraph.graph.snapshot import GraphSnapshot
    from shadowgraph.models.graph import FactBundle
    from shadowgraph.models.snapshot import ShadowGraphRecord
    from shadowgraph.models.types import Variant


# =============================================================================
# Request Types
# =============================================================================


@dataclass(frozen=True)
class AnalysisJob:
    """What the front end should analyze: one branch of one repository."""

    project_id: str
    shadow_id: str
    repo_url: str
    branch_name: str
    base_branch: str = "main"


# =============================================================================
# Analysis Protocols
# =============================================================================


class AnalysisFrontEnd(Protocol):
    """Turns a checked-out branch into extracted facts.

    Cloning, parsing and cleanup all happen behind this interface.
    """

    def extract(self, job: AnalysisJob) -> FactBundle:
        """Extract architecture facts for a branch.

        Args:
            job: Repository, branch and identifiers to analyze

        Returns:
            FactBundle with nodes, edges and the property map used for
            placeholder resolution

        Raises:
            Any exception: the orchestrator records it on the snapshot
        """
        ...


# =============================================================================
# Storage Protocols
# =============================================================================


class GraphStore(Protocol):
    """Persistence for graph snapshots.

    The production snapshot of a project is keyed by (project_id, None);
    shadow snapshots by (project_id, shadow_id).

    Thread Safety: All methods should be safe for concurrent calls.
    """

    def save_snapshot(self, snapshot: GraphSnapshot) -> None:
        """Store a snapshot, replacing any with the same key.

        Raises:
            StorageError: Backend unavailable
        """
        ...

    def load_snapshot(
        self, project_id: str, variant: Variant, shadow_id: str | None = None
    ) -> GraphSnapshot:
        """Load a snapshot.

        Raises:
            SnapshotNotFoundError: No snapshot for this key
            StorageError: Backend unavailable or data corrupt
        """
        ...

    def delete_snapshot(self, project_id: str, shadow_id: str) -> bool:
        """Delete a shadow snapshot. Returns False if it did not exist."""
        ...

    def has_snapshot(
        self, project_id: str, variant: Variant, shadow_id: str | None = None
    ) -> bool:
        """True if a snapshot exists for this key."""
        ...


class DocumentStore(Protocol):
    """Persistence for ShadowGraphRecords.

    Records are keyed by (project_id, shadow_id).

    Thread Safety: All methods should be safe for concurrent calls.
    """

    def save(self, record: ShadowGraphRecord) -> None:
        """Insert or replace a record.

        Raises:
            StorageError: Backend unavailable
        """
        ...

    def get(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        """Get a record, or None if it does not exist."""
        ...

    def find_active(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        """Get the record only if it is PENDING or ANALYZING."""
        ...

    def list_by_project(self, project_id: str) -> list[ShadowGraphRecord]:
        """All records of a project, newest first."""
        ...

    def find_expired(self, now: datetime) -> list[ShadowGraphRecord]:
        """Records whose expires_at lies strictly before now."""
        ...

    def delete(self, project_id: str, shadow_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""
        ...
