"""Data model: closed kind enums, graph records, diff and report types."""

from shadowgraph.models.types import (
    ChangeType,
    ComponentType,
    EdgeKind,
    FileStatus,
    NodeKind,
    RiskLevel,
    Severity,
    SnapshotStatus,
    Variant,
)

__all__ = [
    "ChangeType",
    "ComponentType",
    "EdgeKind",
    "FileStatus",
    "NodeKind",
    "RiskLevel",
    "Severity",
    "SnapshotStatus",
    "Variant",
]
