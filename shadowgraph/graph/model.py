"""Architecture graph: nodes keyed by canonical id with networkx adjacency.

Nodes live in an arena dict keyed by canonical id; edges are keyed by
edge identity so duplicates collapse. A MultiDiGraph mirror (one parallel
edge per EdgeKind) drives traversal, SCC and cycle enumeration.
"""

from __future__ import annotations

from typing import Any, Iterable

import networkx as nx

from shadowgraph.core.errors import CanonicalIdCollisionError, InconsistentSnapshotError
from shadowgraph.identity.canonical import edge_canonical_id
from shadowgraph.models.graph import Edge, Node
from shadowgraph.models.types import CLASS_KINDS, EdgeKind, NodeKind

# Attribute naming the declaring class, per member kind.
_OWNER_ATTRIBUTE: dict[NodeKind, str] = {
    NodeKind.METHOD: "class_name",
    NodeKind.ENDPOINT: "controller_class",
}

_MEMBERSHIP_EDGES = frozenset({EdgeKind.HAS_METHOD, EdgeKind.HAS_ENDPOINT})


class ArchitectureGraph:
    """Typed architecture graph for one snapshot.

    All public lookups are by canonical id. Iteration order is sorted by
    canonical id so every consumer is deterministic.
    """

    def __init__(self) -> None:
        """Initialize an empty graph."""
        self._graph: nx.MultiDiGraph = nx.MultiDiGraph()
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._classes_by_name: dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_node(self, node: Node) -> Node:
        """Add a node, merging with an existing node of the same identity.

        Merging keeps the first node and fills attributes it left unset.

        Returns:
            The node stored under node.canonical_id.

        Raises:
            CanonicalIdCollisionError: A node of a different kind already
                holds this canonical id.
        """
        existing = self._nodes.get(node.canonical_id)
        if existing is not None:
            if existing.kind != node.kind:
                raise CanonicalIdCollisionError(
                    node.canonical_id, existing.kind.name, node.kind.name
                )
            for key, value in node.attributes.items():
                if existing.attributes.get(key) is None and value is not None:
                    existing.attributes[key] = value
            if existing.group_hint is None:
                existing.group_hint = node.group_hint
            return existing

        self._nodes[node.canonical_id] = node
        self._graph.add_node(node.canonical_id)
        if node.kind in CLASS_KINDS:
            fqcn = node.attributes.get("fully_qualified_name")
            if fqcn:
                self._classes_by_name.setdefault(fqcn, node.canonical_id)
        return node

    def add_edge(self, edge: Edge) -> bool:
        """Add an edge. Returns False if an identical edge already exists.

        Raises:
            InconsistentSnapshotError: Either endpoint is not in the graph.
        """
        for endpoint in (edge.source_canonical_id, edge.target_canonical_id):
            if endpoint not in self._nodes:
                raise InconsistentSnapshotError(
                    f"edge {edge.identity} references unknown node {endpoint}"
                )
        identity = edge.identity
        if identity in self._edges:
            return False
        self._edges[identity] = edge
        self._graph.add_edge(
            edge.source_canonical_id, edge.target_canonical_id, key=edge.kind
        )
        return True

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def __contains__(self, canonical_id: object) -> bool:
        return canonical_id in self._nodes

    def node(self, canonical_id: str) -> Node | None:
        return self._nodes.get(canonical_id)

    def edge(self, identity: str) -> Edge | None:
        return self._edges.get(identity)

    def nodes_of_kind(self, kind: NodeKind) -> list[Node]:
        return [self._nodes[cid] for cid in sorted(self._nodes) if self._nodes[cid].kind == kind]

    def edges_of_kind(self, kind: EdgeKind) -> list[Edge]:
        return [self._edges[i] for i in sorted(self._edges) if self._edges[i].kind == kind]

    def class_node_for(self, fully_qualified_name: str) -> str | None:
        """Canonical id of the Controller/Service/Repository with this name."""
        return self._classes_by_name.get(fully_qualified_name)

    def successors(
        self, canonical_id: str, edge_kinds: Iterable[EdgeKind] | None = None
    ) -> list[str]:
        """Direct successors, optionally restricted to some edge kinds."""
        return self._neighbors(canonical_id, edge_kinds, outgoing=True)

    def predecessors(
        self, canonical_id: str, edge_kinds: Iterable[EdgeKind] | None = None
    ) -> list[str]:
        """Direct predecessors, optionally restricted to some edge kinds."""
        return self._neighbors(canonical_id, edge_kinds, outgoing=False)

    def _neighbors(
        self,
        canonical_id: str,
        edge_kinds: Iterable[EdgeKind] | None,
        outgoing: bool,
    ) -> list[str]:
        if canonical_id not in self._graph:
            return []
        kinds = frozenset(edge_kinds) if edge_kinds is not None else None
        if outgoing:
            pairs = self._graph.out_edges(canonical_id, keys=True)
            found = {t for _, t, k in pairs if kinds is None or k in kinds}
        else:
            pairs = self._graph.in_edges(canonical_id, keys=True)
            found = {s for s, _, k in pairs if kinds is None or k in kinds}
        return sorted(found)

    def out_edges(
        self, canonical_id: str, edge_kinds: Iterable[EdgeKind] | None = None
    ) -> list[Edge]:
        if canonical_id not in self._graph:
            return []
        kinds = frozenset(edge_kinds) if edge_kinds is not None else None
        identities = sorted(
            edge_canonical_id(k, s, t)
            for s, t, k in self._graph.out_edges(canonical_id, keys=True)
            if kinds is None or k in kinds
        )
        return [self._edges[i] for i in identities]

    def owner_of(self, canonical_id: str) -> str | None:
        """Canonical id of the class node that declares this node.

        Class nodes own themselves. Methods and endpoints are owned through
        HAS_METHOD / HAS_ENDPOINT membership, falling back to their
        declaring-class attribute. Other kinds have no owner.
        """
        node = self._nodes.get(canonical_id)
        if node is None:
            return None
        if node.kind in CLASS_KINDS:
            return canonical_id
        if node.kind not in _OWNER_ATTRIBUTE:
            return None
        for parent in self.predecessors(canonical_id, _MEMBERSHIP_EDGES):
            if self._nodes[parent].kind in CLASS_KINDS:
                return parent
        declaring = node.attributes.get(_OWNER_ATTRIBUTE[node.kind])
        return self._classes_by_name.get(declaring) if declaring else None

    def members_of(self, class_canonical_id: str) -> list[str]:
        """Methods and endpoints declared by a class node."""
        members = set(self.successors(class_canonical_id, _MEMBERSHIP_EDGES))
        node = self._nodes.get(class_canonical_id)
        fqcn = node.attributes.get("fully_qualified_name") if node else None
        if fqcn:
            for cid, candidate in self._nodes.items():
                attribute = _OWNER_ATTRIBUTE.get(candidate.kind)
                if attribute and candidate.attributes.get(attribute) == fqcn:
                    members.add(cid)
        return sorted(members)

    def subgraph_view(self, edge_kinds: Iterable[EdgeKind]) -> nx.DiGraph:
        """Simple DiGraph over all nodes, keeping only the given edge kinds."""
        kinds = frozenset(edge_kinds)
        view = nx.DiGraph()
        view.add_nodes_from(self._nodes)
        view.add_edges_from(
            (s, t) for s, t, k in self._graph.edges(keys=True) if k in kinds
        )
        return view

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> dict[str, Node]:
        """Return all nodes keyed by canonical id."""
        return dict(self._nodes)

    @property
    def edges(self) -> dict[str, Edge]:
        """Return all edges keyed by edge identity."""
        return dict(self._edges)

    @property
    def node_count(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        """Return the number of edges."""
        return len(self._edges)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form, sorted by canonical id and edge identity."""
        return {
            "nodes": [
                {
                    "internal_id": n.internal_id,
                    "canonical_id": n.canonical_id,
                    "kind": n.kind.value,
                    "attributes": dict(n.attributes),
                    "group_hint": n.group_hint,
                    "source": dict(n.source),
                }
                for n in (self._nodes[cid] for cid in sorted(self._nodes))
            ],
            "edges": [
                {
                    "kind": e.kind.value,
                    "source": e.source_canonical_id,
                    "target": e.target_canonical_id,
                    "attributes": dict(e.attributes),
                }
                for e in (self._edges[i] for i in sorted(self._edges))
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArchitectureGraph:
        """Rebuild a graph from to_dict() output."""
        graph = cls()
        for node_data in data.get("nodes", []):
            graph.add_node(
                Node(
                    internal_id=node_data["internal_id"],
                    canonical_id=node_data["canonical_id"],
                    kind=NodeKind(node_data["kind"]),
                    attributes=dict(node_data.get("attributes", {})),
                    group_hint=node_data.get("group_hint"),
                    source=dict(node_data.get("source", {})),
                )
            )
        for edge_data in data.get("edges", []):
            graph.add_edge(
                Edge(
                    kind=EdgeKind(edge_data["kind"]),
                    source_canonical_id=edge_data["source"],
                    target_canonical_id=edge_data["target"],
                    attributes=dict(edge_data.get("attributes", {})),
                )
            )
        return graph
