"""Structural diff result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shadowgraph.models.types import ChangeType, EdgeKind, NodeKind


@dataclass(frozen=True)
class PropertyDiff:
    """One attribute that differs between baseline and candidate."""

    name: str
    old_value: Any
    new_value: Any


@dataclass
class NodeChange:
    """A node ADDED, REMOVED or MODIFIED between two snapshots.

    old_attributes is None for ADDED, new_attributes is None for REMOVED.
    """

    change_type: ChangeType
    canonical_id: str
    kind: NodeKind
    old_attributes: dict[str, Any] | None = None
    new_attributes: dict[str, Any] | None = None
    property_diffs: list[PropertyDiff] = field(default_factory=list)
    group_hint: str | None = None

    @property
    def attributes(self) -> dict[str, Any]:
        """The attributes of whichever side exists (candidate preferred)."""
        return self.new_attributes if self.new_attributes is not None else (self.old_attributes or {})


@dataclass
class RelationshipChange:
    """An edge present on only one side."""

    change_type: ChangeType
    identity: str
    kind: EdgeKind
    source_canonical_id: str
    target_canonical_id: str


@dataclass
class KindCounts:
    added: int = 0
    modified: int = 0
    removed: int = 0

    def bump(self, change_type: ChangeType) -> None:
        if change_type == ChangeType.ADDED:
            self.added += 1
        elif change_type == ChangeType.MODIFIED:
            self.modified += 1
        else:
            self.removed += 1


@dataclass
class DiffSummary:
    """Totals and per-kind counts of a diff."""

    nodes_added: int = 0
    nodes_modified: int = 0
    nodes_removed: int = 0
    relationships_added: int = 0
    relationships_removed: int = 0
    nodes_by_kind: dict[str, KindCounts] = field(default_factory=dict)
    relationships_by_kind: dict[str, KindCounts] = field(default_factory=dict)
    circular_dependencies_detected: int = 0

    @property
    def node_changes(self) -> int:
        return self.nodes_added + self.nodes_modified + self.nodes_removed

    @property
    def relationship_changes(self) -> int:
        return self.relationships_added + self.relationships_removed

    @property
    def has_changes(self) -> bool:
        return self.node_changes + self.relationship_changes > 0


@dataclass
class DiffResult:
    """Full structural diff between a baseline and a candidate snapshot."""

    node_changes: list[NodeChange] = field(default_factory=list)
    relationship_changes: list[RelationshipChange] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)

    def nodes(
        self, change_type: ChangeType, kind: NodeKind | None = None
    ) -> list[NodeChange]:
        """Node changes of one type, optionally restricted to one kind."""
        return [
            c
            for c in self.node_changes
            if c.change_type == change_type and (kind is None or c.kind == kind)
        ]

    def relationships(
        self, change_type: ChangeType, kind: EdgeKind | None = None
    ) -> list[RelationshipChange]:
        """Relationship changes of one type, optionally restricted to one kind."""
        return [
            c
            for c in self.relationship_changes
            if c.change_type == change_type and (kind is None or c.kind == kind)
        ]
