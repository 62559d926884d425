"""Graph snapshot: one complete analysis of one branch of one project."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from shadowgraph.core.errors import SnapshotStateError
from shadowgraph.graph.model import ArchitectureGraph
from shadowgraph.identity.canonical import CANONICAL_ID_VERSION
from shadowgraph.models.graph import Edge, Node
from shadowgraph.models.snapshot import check_transition, utcnow
from shadowgraph.models.types import SnapshotStatus, Variant


@dataclass
class GraphSnapshot:
    """Nodes and edges of one analysis run, with lifecycle state.

    Nodes and edges can only be added while ANALYZING; a COMPLETED
    snapshot is immutable.
    """

    project_id: str
    variant: Variant
    shadow_id: str | None = None
    graph: ArchitectureGraph = field(default_factory=ArchitectureGraph)
    status: SnapshotStatus = SnapshotStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)
    id_version: str = CANONICAL_ID_VERSION

    def start(self) -> None:
        check_transition(self.status, SnapshotStatus.ANALYZING)
        self.status = SnapshotStatus.ANALYZING

    def complete(self, now: datetime | None = None) -> None:
        check_transition(self.status, SnapshotStatus.COMPLETED)
        self.status = SnapshotStatus.COMPLETED
        self.completed_at = now or utcnow()

    def fail(self, message: str, now: datetime | None = None) -> None:
        check_transition(self.status, SnapshotStatus.FAILED)
        self.status = SnapshotStatus.FAILED
        self.error_message = message
        self.completed_at = now or utcnow()

    def add_node(self, node: Node) -> Node:
        self._require_analyzing("add node to")
        return self.graph.add_node(node)

    def add_edge(self, edge: Edge) -> bool:
        self._require_analyzing("add edge to")
        return self.graph.add_edge(edge)

    def _require_analyzing(self, operation: str) -> None:
        if self.status != SnapshotStatus.ANALYZING:
            raise SnapshotStateError(self.status.value, operation)
