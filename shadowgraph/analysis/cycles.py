"""Circular dependency detection at class granularity.

Method and endpoint nodes are collapsed onto their declaring class; calls
routed through resolved external calls (method -> external call ->
endpoint) count as a direct class-to-class dependency. Cycles are the
elementary cycles inside each strongly connected component.
"""

from __future__ import annotations

import logging
from itertools import islice

import networkx as nx

from shadowgraph.config import CycleConfig
from shadowgraph.graph.model import ArchitectureGraph
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.report import Cycle, CycleEdge
from shadowgraph.models.types import NodeKind, Severity

logger = logging.getLogger(__name__)

# Evidence for one class-to-class hop: (from node, to node, edge kind).
_Evidence = tuple[str, str, str]


def cycle_signature(participants: list[str]) -> str:
    """Rotation- and direction-invariant signature of a loop.

    Accepts an open ([A, B, C]) or closed ([A, B, C, A]) loop. The
    signature is the lexicographically smallest rotation of the loop or
    its reversal, closed, joined with '->'.
    """
    loop = list(participants)
    if len(loop) > 1 and loop[0] == loop[-1]:
        loop = loop[:-1]
    if not loop:
        return ""
    best = min(_min_rotation(loop), _min_rotation(loop[::-1]))
    return "->".join(best + [best[0]])


def _min_rotation(loop: list[str]) -> list[str]:
    return min(loop[i:] + loop[:i] for i in range(len(loop)))


class CycleDetector:
    """Finds circular dependencies between classes and flags new ones."""

    def __init__(self, config: CycleConfig | None = None) -> None:
        self._config = config or CycleConfig()

    def detect(self, snapshot: GraphSnapshot) -> list[Cycle]:
        """All elementary class-level cycles in a snapshot, sorted by signature."""
        graph = snapshot.graph
        class_graph, evidence = self._class_graph(graph)

        found: dict[str, Cycle] = {}
        for component in sorted(
            nx.strongly_connected_components(class_graph), key=lambda c: sorted(c)
        ):
            members = sorted(component)
            is_self_loop = len(members) == 1 and class_graph.has_edge(members[0], members[0])
            if len(members) == 1 and not is_self_loop:
                continue

            limit = self._config.max_cycles_per_component
            loops = list(islice(nx.simple_cycles(class_graph.subgraph(members)), limit + 1))
            if len(loops) > limit:
                logger.warning(
                    "cycle_enumeration_truncated project_id=%s component_size=%d limit=%d",
                    snapshot.project_id,
                    len(members),
                    limit,
                )
                loops = loops[:limit]

            for loop in loops:
                cycle = self._make_cycle(graph, loop, evidence)
                found.setdefault(cycle.signature, cycle)

        cycles = [found[s] for s in sorted(found)]
        logger.info(
            "cycles_detected project_id=%s variant=%s count=%d",
            snapshot.project_id,
            snapshot.variant.value,
            len(cycles),
        )
        return cycles

    def detect_and_compare(
        self, baseline: GraphSnapshot | None, candidate: GraphSnapshot
    ) -> list[Cycle]:
        """Cycles of the candidate, flagged is_new_in_shadow against the baseline.

        With no baseline every cycle is new.
        """
        baseline_signatures = (
            {c.signature for c in self.detect(baseline)} if baseline is not None else set()
        )
        cycles = self.detect(candidate)
        for cycle in cycles:
            cycle.is_new_in_shadow = cycle.signature not in baseline_signatures
        new_count = sum(1 for c in cycles if c.is_new_in_shadow)
        if new_count:
            logger.warning(
                "new_cycles_in_shadow project_id=%s count=%d", candidate.project_id, new_count
            )
        return cycles

    # -------------------------------------------------------------------------
    # Class graph
    # -------------------------------------------------------------------------

    def _class_graph(
        self, graph: ArchitectureGraph
    ) -> tuple[nx.DiGraph, dict[tuple[str, str], list[_Evidence]]]:
        """Collapse member-level dependencies onto owning classes.

        Unowned intermediate nodes (external calls) are walked through so a
        resolved HTTP call links caller class to the endpoint's controller.
        """
        kinds = self._config.edge_kinds
        evidence: dict[tuple[str, str], list[_Evidence]] = {}

        for start in sorted(graph.nodes):
            start_owner = graph.owner_of(start)
            if start_owner is None:
                continue
            for target, edge_kind in self._owned_targets(graph, start, kinds):
                target_owner = graph.owner_of(target)
                if target_owner is None:
                    continue
                if target_owner == start_owner and not self._config.include_intra_class_calls:
                    continue
                evidence.setdefault((start_owner, target_owner), []).append(
                    (start, target, edge_kind)
                )

        class_graph = nx.DiGraph()
        for source, target in sorted(evidence):
            class_graph.add_edge(source, target)
        return class_graph, evidence

    @staticmethod
    def _owned_targets(
        graph: ArchitectureGraph, start: str, kinds: frozenset
    ) -> list[tuple[str, str]]:
        """First owned nodes reachable from start via allowed edges."""
        results: set[tuple[str, str]] = set()
        visited = {start}
        stack = [
            (edge.target_canonical_id, edge.kind.value)
            for edge in graph.out_edges(start, kinds)
        ]
        while stack:
            node, first_kind = stack.pop()
            if node in visited:
                continue
            visited.add(node)
            if graph.owner_of(node) is not None:
                results.add((node, first_kind))
                continue
            for edge in graph.out_edges(node, kinds):
                stack.append((edge.target_canonical_id, first_kind))
        return sorted(results)

    # -------------------------------------------------------------------------
    # Cycle construction
    # -------------------------------------------------------------------------

    def _make_cycle(
        self,
        graph: ArchitectureGraph,
        loop: list[str],
        evidence: dict[tuple[str, str], list[_Evidence]],
    ) -> Cycle:
        signature = cycle_signature(loop)
        # Smallest rotation in call direction, closed.
        rotated = _min_rotation(loop)
        ordered = rotated + [rotated[0]]

        edges: list[CycleEdge] = []
        for source, target in zip(ordered, ordered[1:]):
            hops = evidence.get((source, target), [])
            if not hops:
                continue
            from_node, to_node, kind = sorted(hops)[0]
            edges.append(
                CycleEdge(
                    from_class=self._class_name(graph, graph.owner_of(from_node)),
                    from_method=self._member_name(graph, from_node),
                    to_class=self._class_name(graph, graph.owner_of(to_node)),
                    to_method=self._member_name(graph, to_node),
                    relationship_type=kind,
                )
            )

        groups = {graph.node(cid).group_hint for cid in ordered[:-1] if graph.node(cid)}
        severity = Severity.WARNING if len(groups) <= 1 else Severity.ERROR
        names = " -> ".join(self._class_name(graph, cid).rsplit(".", 1)[-1] for cid in ordered)
        scope = "within one service" if severity == Severity.WARNING else "across services"
        return Cycle(
            participant_canonical_ids=ordered,
            signature=signature,
            severity=severity,
            edges=edges,
            description=f"Circular dependency {scope}: {names}",
        )

    @staticmethod
    def _class_name(graph: ArchitectureGraph, canonical_id: str | None) -> str:
        node = graph.node(canonical_id) if canonical_id else None
        if node is None:
            return canonical_id or ""
        return node.attributes.get("fully_qualified_name") or canonical_id

    @staticmethod
    def _member_name(graph: ArchitectureGraph, canonical_id: str) -> str | None:
        node = graph.node(canonical_id)
        if node is None:
            return None
        if node.kind == NodeKind.METHOD:
            return node.attributes.get("method_name")
        if node.kind == NodeKind.ENDPOINT:
            return node.attributes.get("handler_method")
        return None
