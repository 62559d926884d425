"""Plain dict / JSON rendering of results.

to_dict() works on any result dataclass: enums become their values and
datetimes ISO-8601 strings. Types that are persisted (diffs, cycles,
records, snapshots) also have a *_from_dict() inverse.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from shadowgraph.graph.model import ArchitectureGraph
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.diff import (
    DiffResult,
    DiffSummary,
    KindCounts,
    NodeChange,
    PropertyDiff,
    RelationshipChange,
)
from shadowgraph.models.report import Cycle, CycleEdge
from shadowgraph.models.snapshot import ShadowGraphRecord
from shadowgraph.models.types import (
    ChangeType,
    EdgeKind,
    NodeKind,
    Severity,
    SnapshotStatus,
    Variant,
)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(_plain(k)): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_plain(v) for v in value]
        return sorted(items) if isinstance(value, (set, frozenset)) else items
    return value


def _datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def to_dict(obj: Any) -> dict[str, Any]:
    """Render a result dataclass (or GraphSnapshot) as JSON-safe plain data."""
    if isinstance(obj, GraphSnapshot):
        return snapshot_to_dict(obj)
    if isinstance(obj, ShadowGraphRecord):
        return record_to_dict(obj)
    if isinstance(obj, DiffResult):
        return diff_to_dict(obj)
    if not is_dataclass(obj) or isinstance(obj, type):
        raise TypeError(f"cannot serialize {type(obj).__name__}")
    return _plain(asdict(obj))


def to_json(obj: Any, indent: int | None = 2) -> str:
    return json.dumps(to_dict(obj), indent=indent, sort_keys=False)


# =============================================================================
# Diff
# =============================================================================


def diff_to_dict(diff: DiffResult) -> dict[str, Any]:
    data = _plain(asdict(diff))
    summary = diff.summary
    data["summary"]["node_changes"] = summary.node_changes
    data["summary"]["relationship_changes"] = summary.relationship_changes
    return data


def diff_from_dict(data: dict[str, Any]) -> DiffResult:
    summary_data = data.get("summary", {})
    summary = DiffSummary(
        nodes_added=summary_data.get("nodes_added", 0),
        nodes_modified=summary_data.get("nodes_modified", 0),
        nodes_removed=summary_data.get("nodes_removed", 0),
        relationships_added=summary_data.get("relationships_added", 0),
        relationships_removed=summary_data.get("relationships_removed", 0),
        nodes_by_kind={
            k: KindCounts(**v) for k, v in summary_data.get("nodes_by_kind", {}).items()
        },
        relationships_by_kind={
            k: KindCounts(**v) for k, v in summary_data.get("relationships_by_kind", {}).items()
        },
        circular_dependencies_detected=summary_data.get("circular_dependencies_detected", 0),
    )
    return DiffResult(
        node_changes=[
            NodeChange(
                change_type=ChangeType(c["change_type"]),
                canonical_id=c["canonical_id"],
                kind=NodeKind(c["kind"]),
                old_attributes=c.get("old_attributes"),
                new_attributes=c.get("new_attributes"),
                property_diffs=[PropertyDiff(**p) for p in c.get("property_diffs", [])],
                group_hint=c.get("group_hint"),
            )
            for c in data.get("node_changes", [])
        ],
        relationship_changes=[
            RelationshipChange(
                change_type=ChangeType(r["change_type"]),
                identity=r["identity"],
                kind=EdgeKind(r["kind"]),
                source_canonical_id=r["source_canonical_id"],
                target_canonical_id=r["target_canonical_id"],
            )
            for r in data.get("relationship_changes", [])
        ],
        summary=summary,
    )


# =============================================================================
# Cycles
# =============================================================================


def cycle_to_dict(cycle: Cycle) -> dict[str, Any]:
    return _plain(asdict(cycle))


def cycle_from_dict(data: dict[str, Any]) -> Cycle:
    return Cycle(
        participant_canonical_ids=list(data["participant_canonical_ids"]),
        signature=data["signature"],
        severity=Severity(data["severity"]),
        is_new_in_shadow=data.get("is_new_in_shadow", False),
        edges=[CycleEdge(**e) for e in data.get("edges", [])],
        description=data.get("description", ""),
    )


# =============================================================================
# Records and snapshots
# =============================================================================


def record_to_dict(record: ShadowGraphRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "project_id": record.project_id,
        "shadow_id": record.shadow_id,
        "repo_url": record.repo_url,
        "branch_name": record.branch_name,
        "base_branch": record.base_branch,
        "pr_number": record.pr_number,
        "pr_url": record.pr_url,
        "status": record.status.value,
        "error_message": record.error_message,
        "created_at": _plain(record.created_at),
        "completed_at": _plain(record.completed_at),
        "expires_at": _plain(record.expires_at),
        "diff": diff_to_dict(record.diff) if record.diff is not None else None,
        "circular_dependencies": [cycle_to_dict(c) for c in record.circular_dependencies],
        "warnings": list(record.warnings),
    }


def record_from_dict(data: dict[str, Any]) -> ShadowGraphRecord:
    return ShadowGraphRecord(
        id=data["id"],
        project_id=data["project_id"],
        shadow_id=data["shadow_id"],
        repo_url=data["repo_url"],
        branch_name=data["branch_name"],
        base_branch=data.get("base_branch", "main"),
        pr_number=data.get("pr_number"),
        pr_url=data.get("pr_url"),
        status=SnapshotStatus(data["status"]),
        error_message=data.get("error_message"),
        created_at=_datetime(data["created_at"]),
        completed_at=_datetime(data.get("completed_at")),
        expires_at=_datetime(data.get("expires_at")),
        diff=diff_from_dict(data["diff"]) if data.get("diff") else None,
        circular_dependencies=[cycle_from_dict(c) for c in data.get("circular_dependencies", [])],
        warnings=list(data.get("warnings", [])),
    )


def snapshot_to_dict(snapshot: GraphSnapshot) -> dict[str, Any]:
    return {
        "project_id": snapshot.project_id,
        "variant": snapshot.variant.value,
        "shadow_id": snapshot.shadow_id,
        "status": snapshot.status.value,
        "created_at": _plain(snapshot.created_at),
        "completed_at": _plain(snapshot.completed_at),
        "error_message": snapshot.error_message,
        "warnings": list(snapshot.warnings),
        "id_version": snapshot.id_version,
        "graph": _plain(snapshot.graph.to_dict()),
    }


def snapshot_from_dict(data: dict[str, Any]) -> GraphSnapshot:
    return GraphSnapshot(
        project_id=data["project_id"],
        variant=Variant(data["variant"]),
        shadow_id=data.get("shadow_id"),
        graph=ArchitectureGraph.from_dict(data.get("graph", {})),
        status=SnapshotStatus(data["status"]),
        created_at=_datetime(data["created_at"]),
        completed_at=_datetime(data.get("completed_at")),
        error_message=data.get("error_message"),
        warnings=list(data.get("warnings", [])),
        id_version=data["id_version"],
    )
