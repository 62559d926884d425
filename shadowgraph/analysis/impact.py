"""Impact analysis: which endpoints and request flows a change set touches.

Changed files are matched to class nodes, then a depth-bounded BFS runs
over call-like flow edges in both directions:

- backward from the changed class's members: upstream callers and every
  Endpoint that can reach the change (affected endpoints and flows)
- forward: downstream callees

Flow direction follows the request: endpoint -> handler method, caller ->
callee, producer -> topic, topic -> consumer (CONSUMES_FROM edges are
reversed).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import networkx as nx

from shadowgraph.analysis.api_changes import detect_api_url_changes
from shadowgraph.config import ImpactConfig
from shadowgraph.graph.model import ArchitectureGraph
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.diff import DiffResult
from shadowgraph.models.graph import Node
from shadowgraph.models.report import (
    AffectedEndpoint,
    AffectedFlow,
    ChangedComponent,
    ChangedFile,
    Cycle,
    ImpactReport,
)
from shadowgraph.models.types import ComponentType, EdgeKind, NodeKind

logger = logging.getLogger(__name__)

DIRECT_CHANGE_REASON = "Controller class modified"

_COMPONENT_TYPES: dict[NodeKind, ComponentType] = {
    NodeKind.CONTROLLER: ComponentType.CONTROLLER,
    NodeKind.SERVICE: ComponentType.SERVICE,
    NodeKind.REPOSITORY_CLASS: ComponentType.REPOSITORY,
}


@dataclass
class _Match:
    """Where a changed file landed in the graph."""

    graph: ArchitectureGraph
    class_id: str | None  # class node, if the class is a Controller/Service/Repository
    sources: list[str]  # BFS roots: the class's methods and endpoints


class ImpactAnalyzer:
    """Computes ImpactReports from a snapshot and a change set."""

    def __init__(self, config: ImpactConfig | None = None) -> None:
        self._config = config or ImpactConfig()

    def analyze(
        self,
        snapshot: GraphSnapshot,
        changed_files: list[ChangedFile],
        fallback: GraphSnapshot | None = None,
        diff: DiffResult | None = None,
        cycles: list[Cycle] | None = None,
    ) -> ImpactReport:
        """Analyze the impact of a change set.

        Args:
            snapshot: Snapshot to trace impact in (normally production, so the
                callers of the code as it exists today are found).
            changed_files: Files touched by the change.
            fallback: Snapshot to look in for classes missing from snapshot
                (normally the shadow, where added classes live).
            diff: Structural diff to summarize in the report.
            cycles: Candidate cycles; the new ones are carried into the report.

        Returns:
            ImpactReport. Unmatched files become "Other" components with a
            warning; nothing here raises for missing linkage.
        """
        report = ImpactReport(project_id=snapshot.project_id, shadow_id=snapshot.shadow_id)
        report.total_lines_changed = sum(f.lines_changed for f in changed_files)
        report.diff_summary = diff.summary if diff is not None else None

        flows: dict[int, nx.DiGraph] = {}
        endpoints: dict[str, AffectedEndpoint] = {}
        flow_by_endpoint: dict[str, AffectedFlow] = {}

        for changed in sorted(changed_files, key=lambda f: f.class_name):
            if not changed.is_source:
                report.warnings.append(f"Skipped non-source file {changed.filename}")
                continue

            match = self._match(changed, snapshot, fallback)
            if match is None:
                report.changed_components.append(
                    ChangedComponent(
                        class_name=changed.class_name,
                        type=ComponentType.OTHER,
                        file_status=changed.status,
                        lines_added=changed.additions,
                        lines_removed=changed.deletions,
                    )
                )
                report.warnings.append(
                    f"No graph node matches changed file {changed.filename or changed.class_name}"
                )
                logger.warning("changed_file_unmatched class_name=%s", changed.class_name)
                continue

            flow = flows.get(id(match.graph))
            if flow is None:
                flow = self._flow_graph(match.graph)
                flows[id(match.graph)] = flow

            component = self._component(changed, match)
            backward = self._paths(flow.reverse(copy=False), match.sources)
            forward = self._paths(flow, match.sources)
            component.upstream_callers = _owner_names(match.graph, backward, changed.class_name)
            component.downstream_callees = _owner_names(match.graph, forward, changed.class_name)
            report.changed_components.append(component)

            for target, path in backward.items():
                node = match.graph.node(target)
                if node is None or node.kind != NodeKind.ENDPOINT:
                    continue
                direct = match.class_id is not None and match.graph.owner_of(target) == match.class_id
                affected = endpoints.get(target)
                if affected is None or (direct and not affected.directly_changed):
                    endpoints[target] = self._affected_endpoint(match.graph, target, path, component, direct)
                    flow_by_endpoint[target] = self._affected_flow(match.graph, target, path, component)

        report.affected_endpoints = [endpoints[k] for k in sorted(endpoints)]
        report.affected_flows = [flow_by_endpoint[k] for k in sorted(flow_by_endpoint)]

        report.api_url_changes = detect_api_url_changes(changed_files)
        for change in report.api_url_changes:
            report.warnings.append(change.description)

        report.circular_dependencies = [c for c in (cycles or []) if c.is_new_in_shadow]
        for cycle in report.circular_dependencies:
            report.warnings.append(f"New {cycle.severity.value.lower()}: {cycle.description}")

        logger.info(
            "impact_analyzed project_id=%s components=%d endpoints=%d flows=%d warnings=%d",
            report.project_id,
            len(report.changed_components),
            len(report.affected_endpoints),
            len(report.affected_flows),
            len(report.warnings),
        )
        return report

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    def _match(
        self,
        changed: ChangedFile,
        snapshot: GraphSnapshot,
        fallback: GraphSnapshot | None,
    ) -> _Match | None:
        for candidate in (snapshot, fallback):
            if candidate is None:
                continue
            match = self._match_in(changed.class_name, candidate.graph)
            if match is not None:
                return match
        return None

    @staticmethod
    def _match_in(class_name: str, graph: ArchitectureGraph) -> _Match | None:
        class_id = graph.class_node_for(class_name)
        if class_id is not None:
            return _Match(graph=graph, class_id=class_id, sources=graph.members_of(class_id))

        # Plain classes have no class node but their methods are still in the graph.
        prefix = f"{NodeKind.METHOD.value}:{class_name}."
        methods = [
            n.canonical_id
            for n in graph.nodes_of_kind(NodeKind.METHOD)
            if n.canonical_id.startswith(prefix) and "." not in n.canonical_id[len(prefix):].split("(")[0]
        ]
        if methods:
            return _Match(graph=graph, class_id=None, sources=methods)
        return None

    def _component(self, changed: ChangedFile, match: _Match) -> ChangedComponent:
        graph = match.graph
        class_node = graph.node(match.class_id) if match.class_id else None
        component_type = _COMPONENT_TYPES.get(class_node.kind) if class_node else ComponentType.OTHER
        if self._is_listener(graph, match.sources):
            component_type = ComponentType.KAFKA_LISTENER
        return ChangedComponent(
            class_name=changed.class_name,
            type=component_type or ComponentType.OTHER,
            file_status=changed.status,
            lines_added=changed.additions,
            lines_removed=changed.deletions,
            canonical_id=match.class_id,
            group_hint=class_node.group_hint if class_node else None,
        )

    @staticmethod
    def _is_listener(graph: ArchitectureGraph, sources: list[str]) -> bool:
        for source in sources:
            node = graph.node(source)
            if node is None or node.kind != NodeKind.METHOD:
                continue
            if (node.attributes.get("method_type") or "").upper() == "KAFKA_LISTENER":
                return True
            if graph.successors(source, [EdgeKind.CONSUMES_FROM]):
                return True
        return False

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def _flow_graph(self, graph: ArchitectureGraph) -> nx.DiGraph:
        flow = nx.DiGraph()
        flow.add_nodes_from(sorted(graph.nodes))
        for _, edge in sorted(graph.edges.items()):
            if edge.kind not in self._config.edge_kinds:
                continue
            if edge.kind == EdgeKind.CONSUMES_FROM:
                flow.add_edge(edge.target_canonical_id, edge.source_canonical_id)
            else:
                flow.add_edge(edge.source_canonical_id, edge.target_canonical_id)

        # A request enters at the endpoint and continues in its handler method.
        handlers: dict[tuple[str, str], list[str]] = {}
        for method in graph.nodes_of_kind(NodeKind.METHOD):
            key = (method.attributes.get("class_name"), method.attributes.get("method_name"))
            handlers.setdefault(key, []).append(method.canonical_id)
        for endpoint in graph.nodes_of_kind(NodeKind.ENDPOINT):
            key = (
                endpoint.attributes.get("controller_class"),
                endpoint.attributes.get("handler_method"),
            )
            for method_id in handlers.get(key, []):
                flow.add_edge(endpoint.canonical_id, method_id)
        return flow

    def _paths(self, flow: nx.DiGraph, sources: list[str]) -> dict[str, list[str]]:
        """Shortest path from the nearest source to every node within max depth.

        Sources themselves map to a one-node path. Ties go to the
        lexicographically first source.
        """
        best: dict[str, list[str]] = {}
        for source in sorted(sources):
            if source not in flow:
                continue
            paths = nx.single_source_shortest_path(flow, source, cutoff=self._config.max_depth)
            for target, path in paths.items():
                current = best.get(target)
                if current is None or len(path) < len(current):
                    best[target] = path
        return best

    # -------------------------------------------------------------------------
    # Report construction
    # -------------------------------------------------------------------------

    @staticmethod
    def _affected_endpoint(
        graph: ArchitectureGraph,
        endpoint_id: str,
        path: list[str],
        component: ChangedComponent,
        direct: bool,
    ) -> AffectedEndpoint:
        node = graph.node(endpoint_id)
        attributes = node.attributes if node else {}
        if direct:
            reason = DIRECT_CHANGE_REASON
        else:
            chain = " -> ".join(_chain(graph, list(reversed(path))))
            reason = f"Depends on modified {component.simple_name} via {chain}"
        return AffectedEndpoint(
            canonical_id=endpoint_id,
            http_method=attributes.get("http_method") or "UNKNOWN",
            path=_display_path(node),
            controller_class=attributes.get("controller_class"),
            method_name=attributes.get("handler_method"),
            directly_changed=direct,
            reason=reason,
        )

    @staticmethod
    def _affected_flow(
        graph: ArchitectureGraph,
        endpoint_id: str,
        path: list[str],
        component: ChangedComponent,
    ) -> AffectedFlow:
        node = graph.node(endpoint_id)
        method = (node.attributes.get("http_method") if node else None) or "UNKNOWN"
        return AffectedFlow(
            endpoint=f"{method} {_display_path(node)}",
            endpoint_canonical_id=endpoint_id,
            call_chain=_chain(graph, list(reversed(path))),
            affected_at=component.simple_name,
        )


def _class_name(graph: ArchitectureGraph, class_id: str) -> str:
    node = graph.node(class_id)
    if node is None:
        return class_id
    return node.attributes.get("fully_qualified_name") or class_id


def _declaring_class(graph: ArchitectureGraph, canonical_id: str) -> str | None:
    """Fully qualified name of the class declaring a node, class node or not."""
    owner = graph.owner_of(canonical_id)
    if owner is not None:
        return _class_name(graph, owner)
    node = graph.node(canonical_id)
    if node is None:
        return None
    if node.kind == NodeKind.METHOD:
        return node.attributes.get("class_name")
    if node.kind == NodeKind.ENDPOINT:
        return node.attributes.get("controller_class")
    return None


def _owner_names(
    graph: ArchitectureGraph, reached: dict[str, list[str]], own_class: str
) -> list[str]:
    names = {_declaring_class(graph, target) for target in reached}
    names.discard(None)
    names.discard(own_class)
    return sorted(names)


def _display_path(node: Node | None) -> str:
    if node is None:
        return ""
    return node.source.get("raw_path") or node.attributes.get("path") or ""


def _label(graph: ArchitectureGraph, canonical_id: str) -> str:
    """Short human label for one hop of a chain."""
    owner = graph.owner_of(canonical_id)
    if owner is not None:
        return _class_name(graph, owner).rsplit(".", 1)[-1]
    node = graph.node(canonical_id)
    if node is None:
        return canonical_id
    if node.kind == NodeKind.EXTERNAL_CALL:
        return f"HTTP {node.attributes.get('http_method')} {node.attributes.get('normalized_url')}"
    if node.kind == NodeKind.KAFKA_TOPIC:
        return f"topic {node.attributes.get('name')}"
    if node.kind == NodeKind.METHOD:
        return (node.attributes.get("class_name") or "").rsplit(".", 1)[-1]
    return canonical_id


def _chain(graph: ArchitectureGraph, path: list[str]) -> list[str]:
    """Labels along a path with consecutive duplicates collapsed."""
    chain: list[str] = []
    for canonical_id in path:
        label = _label(graph, canonical_id)
        if not chain or chain[-1] != label:
            chain.append(label)
    return chain
