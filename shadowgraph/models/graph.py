"""Graph element and fact records.

Facts are what the analysis front end emits: loosely-typed records that
reference each other by front-end-local refs. The graph builder turns
them into Nodes and Edges keyed by canonical id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shadowgraph.identity.canonical import edge_canonical_id
from shadowgraph.models.types import EdgeKind, NodeKind

# Per-kind compared attributes, in report order. Anything a fact carries
# beyond these is provenance and lands in Node.source.
ATTRIBUTE_SCHEMA: dict[NodeKind, tuple[str, ...]] = {
    NodeKind.APPLICATION: ("app_key", "name"),
    NodeKind.CONTROLLER: (
        "fully_qualified_name",
        "class_name",
        "package_name",
        "base_url",
    ),
    NodeKind.ENDPOINT: (
        "http_method",
        "path",
        "handler_method",
        "controller_class",
        "request_body_type",
        "response_type",
    ),
    NodeKind.SERVICE: ("fully_qualified_name", "class_name", "package_name"),
    NodeKind.METHOD: (
        "class_name",
        "method_name",
        "parameter_types",
        "return_type",
        "method_type",
    ),
    NodeKind.REPOSITORY_CLASS: (
        "fully_qualified_name",
        "class_name",
        "package_name",
        "repository_type",
        "extends_class",
        "entity_class",
    ),
    NodeKind.EXTERNAL_CALL: (
        "http_method",
        "normalized_url",
        "client_type",
        "resolved",
        "target_service",
        "target_endpoint",
        "resolution_reason",
    ),
    NodeKind.KAFKA_TOPIC: ("name", "raw_name", "resolved", "resolution_reason"),
    NodeKind.DATABASE_TABLE: ("table_name", "entity_class"),
}


def split_attributes(
    kind: NodeKind, raw: dict[str, Any]
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split raw fact attributes into (schema attributes, provenance).

    Schema attributes come back in schema order with absent keys as None,
    so two snapshots always compare the same key set per kind.
    """
    schema = ATTRIBUTE_SCHEMA[kind]
    attributes = {key: raw.get(key) for key in schema}
    source = {key: value for key, value in raw.items() if key not in schema}
    return attributes, source


@dataclass
class NodeFact:
    """A node as emitted by the analysis front end."""

    ref: str  # front-end local reference, unique within one bundle
    kind: NodeKind
    attributes: dict[str, Any] = field(default_factory=dict)
    group_hint: str | None = None


@dataclass
class EdgeFact:
    """A relationship between two NodeFacts, by ref."""

    kind: EdgeKind
    source_ref: str
    target_ref: str
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class FactBundle:
    """Everything the front end extracted from one checkout."""

    project_id: str
    nodes: list[NodeFact] = field(default_factory=list)
    edges: list[EdgeFact] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)


@dataclass
class Node:
    """An architecture element in a snapshot.

    internal_id is per-snapshot and never compared across snapshots;
    canonical_id is the cross-snapshot identity.
    """

    internal_id: str
    canonical_id: str
    kind: NodeKind
    attributes: dict[str, Any] = field(default_factory=dict)
    group_hint: str | None = None
    source: dict[str, Any] = field(default_factory=dict)


@dataclass
class Edge:
    """A directed relationship between two nodes, by canonical id."""

    kind: EdgeKind
    source_canonical_id: str
    target_canonical_id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> str:
        """Canonical edge identity: '{kind}:{source}->{target}'."""
        return edge_canonical_id(
            self.kind, self.source_canonical_id, self.target_canonical_id
        )
