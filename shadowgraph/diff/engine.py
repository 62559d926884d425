"""Structural diff between two completed snapshots.

Nodes are matched by canonical id only; internal ids never participate.
Output is sorted so the same pair of snapshots always yields the same
byte-for-byte result.
"""

from __future__ import annotations

import logging
from typing import Any

from shadowgraph.core.errors import CanonicalIdCollisionError, InconsistentSnapshotError
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.diff import (
    DiffResult,
    DiffSummary,
    KindCounts,
    NodeChange,
    PropertyDiff,
    RelationshipChange,
)
from shadowgraph.models.graph import Edge, Node
from shadowgraph.models.types import ChangeType, SnapshotStatus

logger = logging.getLogger(__name__)

_CHANGE_ORDER = {ChangeType.ADDED: 0, ChangeType.MODIFIED: 1, ChangeType.REMOVED: 2}


def compute_diff(baseline: GraphSnapshot, candidate: GraphSnapshot) -> DiffResult:
    """Diff a baseline snapshot against a candidate snapshot.

    Args:
        baseline: Production (base branch) snapshot.
        candidate: Shadow (proposed change) snapshot.

    Returns:
        DiffResult with node and relationship changes and summary counts.

    Raises:
        InconsistentSnapshotError: Snapshots are not both COMPLETED, belong
            to different projects, or use different canonical id versions.
        CanonicalIdCollisionError: One canonical id names nodes of two kinds.
    """
    _check_comparable(baseline, candidate)

    old_nodes = baseline.graph.nodes
    new_nodes = candidate.graph.nodes
    node_changes: list[NodeChange] = []

    for canonical_id in sorted(new_nodes.keys() - old_nodes.keys()):
        node = new_nodes[canonical_id]
        node_changes.append(
            NodeChange(
                change_type=ChangeType.ADDED,
                canonical_id=canonical_id,
                kind=node.kind,
                new_attributes=dict(node.attributes),
                group_hint=node.group_hint,
            )
        )

    for canonical_id in sorted(old_nodes.keys() & new_nodes.keys()):
        old, new = old_nodes[canonical_id], new_nodes[canonical_id]
        if old.kind != new.kind:
            raise CanonicalIdCollisionError(canonical_id, old.kind.name, new.kind.name)
        diffs = property_diffs(old, new)
        if diffs:
            node_changes.append(
                NodeChange(
                    change_type=ChangeType.MODIFIED,
                    canonical_id=canonical_id,
                    kind=new.kind,
                    old_attributes=dict(old.attributes),
                    new_attributes=dict(new.attributes),
                    property_diffs=diffs,
                    group_hint=new.group_hint,
                )
            )

    for canonical_id in sorted(old_nodes.keys() - new_nodes.keys()):
        node = old_nodes[canonical_id]
        node_changes.append(
            NodeChange(
                change_type=ChangeType.REMOVED,
                canonical_id=canonical_id,
                kind=node.kind,
                old_attributes=dict(node.attributes),
                group_hint=node.group_hint,
            )
        )

    old_edges = baseline.graph.edges
    new_edges = candidate.graph.edges
    relationship_changes = [
        _relationship_change(ChangeType.ADDED, new_edges[i])
        for i in sorted(new_edges.keys() - old_edges.keys())
    ] + [
        _relationship_change(ChangeType.REMOVED, old_edges[i])
        for i in sorted(old_edges.keys() - new_edges.keys())
    ]

    node_changes.sort(key=lambda c: (_CHANGE_ORDER[c.change_type], c.canonical_id))
    result = DiffResult(
        node_changes=node_changes,
        relationship_changes=relationship_changes,
        summary=_summarize(node_changes, relationship_changes),
    )

    logger.info(
        "diff_complete project_id=%s added=%d modified=%d removed=%d "
        "relationships_added=%d relationships_removed=%d",
        candidate.project_id,
        result.summary.nodes_added,
        result.summary.nodes_modified,
        result.summary.nodes_removed,
        result.summary.relationships_added,
        result.summary.relationships_removed,
    )
    return result


def property_diffs(old: Node, new: Node) -> list[PropertyDiff]:
    """Field-by-field attribute comparison, in schema order.

    Keys present on only one side compare against None.
    """
    keys = list(old.attributes)
    keys.extend(k for k in new.attributes if k not in old.attributes)
    diffs: list[PropertyDiff] = []
    for key in keys:
        old_value = old.attributes.get(key)
        new_value = new.attributes.get(key)
        if not _same(old_value, new_value):
            diffs.append(PropertyDiff(name=key, old_value=old_value, new_value=new_value))
    return diffs


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return list(a) == list(b)
    # True == 1, but a flag turning into a count is still a change.
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _relationship_change(change_type: ChangeType, edge: Edge) -> RelationshipChange:
    return RelationshipChange(
        change_type=change_type,
        identity=edge.identity,
        kind=edge.kind,
        source_canonical_id=edge.source_canonical_id,
        target_canonical_id=edge.target_canonical_id,
    )


def _summarize(
    node_changes: list[NodeChange], relationship_changes: list[RelationshipChange]
) -> DiffSummary:
    summary = DiffSummary()
    for change in node_changes:
        summary.nodes_by_kind.setdefault(change.kind.name, KindCounts()).bump(change.change_type)
        if change.change_type == ChangeType.ADDED:
            summary.nodes_added += 1
        elif change.change_type == ChangeType.MODIFIED:
            summary.nodes_modified += 1
        else:
            summary.nodes_removed += 1
    for change in relationship_changes:
        summary.relationships_by_kind.setdefault(change.kind.name, KindCounts()).bump(
            change.change_type
        )
        if change.change_type == ChangeType.ADDED:
            summary.relationships_added += 1
        else:
            summary.relationships_removed += 1
    summary.nodes_by_kind = dict(sorted(summary.nodes_by_kind.items()))
    summary.relationships_by_kind = dict(sorted(summary.relationships_by_kind.items()))
    return summary


def _check_comparable(baseline: GraphSnapshot, candidate: GraphSnapshot) -> None:
    for label, snapshot in (("baseline", baseline), ("candidate", candidate)):
        if snapshot.status != SnapshotStatus.COMPLETED:
            raise InconsistentSnapshotError(
                f"{label} snapshot is {snapshot.status.value}, expected COMPLETED"
            )
    if baseline.project_id != candidate.project_id:
        raise InconsistentSnapshotError(
            f"project mismatch: {baseline.project_id} vs {candidate.project_id}"
        )
    if baseline.id_version != candidate.id_version:
        raise InconsistentSnapshotError(
            f"canonical id version mismatch: {baseline.id_version} vs {candidate.id_version}"
        )
