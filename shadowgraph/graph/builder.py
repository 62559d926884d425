"""Snapshot assembly from analysis facts.

Turns a FactBundle into a COMPLETED GraphSnapshot:

1. Compute canonical ids for plain nodes (classes, endpoints, methods, tables)
2. Resolve Kafka topic placeholders so producers and consumers meet on one topic
3. Link external calls to endpoints (their canonical id depends on the outcome)
4. Add fact edges, then derived membership / linkage edges
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from shadowgraph.core.errors import InconsistentSnapshotError
from shadowgraph.graph.linker import EndpointLinker
from shadowgraph.graph.resolver import ApplicationResolver
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.identity.canonical import (
    extract_parameter_types,
    fully_qualified_name,
    node_canonical_id,
    normalize_http_method,
    normalize_path,
    normalize_type,
    normalize_url,
)
from shadowgraph.identity.properties import resolve_placeholders
from shadowgraph.models.graph import Edge, FactBundle, Node, NodeFact, split_attributes
from shadowgraph.models.types import CLASS_KINDS, EdgeKind, NodeKind, Variant

logger = logging.getLogger(__name__)

_CONTAINS_EDGE: dict[NodeKind, EdgeKind] = {
    NodeKind.CONTROLLER: EdgeKind.CONTAINS_CONTROLLER,
    NodeKind.SERVICE: EdgeKind.CONTAINS_SERVICE,
    NodeKind.REPOSITORY_CLASS: EdgeKind.CONTAINS_REPOSITORY,
}


class GraphBuilder:
    """Builds snapshots from front-end facts.

    Stateless between builds; one builder can serve any number of projects.
    """

    def __init__(self, resolver: ApplicationResolver | None = None) -> None:
        self._resolver = resolver or ApplicationResolver()

    def build(
        self,
        bundle: FactBundle,
        variant: Variant,
        shadow_id: str | None = None,
    ) -> GraphSnapshot:
        """Build a COMPLETED snapshot from a fact bundle.

        Unresolved linkage is recorded in snapshot.warnings, never raised.

        Raises:
            InvalidFactError: A fact lacks an identity attribute.
            CanonicalIdCollisionError: Distinct node kinds share an id.
            InconsistentSnapshotError: An edge references an unknown fact.
        """
        snapshot = GraphSnapshot(
            project_id=bundle.project_id, variant=variant, shadow_id=shadow_id
        )
        snapshot.start()

        refs: dict[str, str] = {}
        seen: set[str] = set()
        deferred_calls: list[NodeFact] = []

        for fact in bundle.nodes:
            if fact.ref in seen:
                raise InconsistentSnapshotError(f"duplicate fact ref {fact.ref}")
            seen.add(fact.ref)
            if fact.kind == NodeKind.EXTERNAL_CALL:
                deferred_calls.append(fact)
                continue
            if fact.kind == NodeKind.KAFKA_TOPIC:
                node = self._topic_node(fact, bundle.properties, snapshot.warnings)
            else:
                node = self._plain_node(fact)
            refs[fact.ref] = snapshot.add_node(node).canonical_id

        linker = EndpointLinker(snapshot.graph.nodes_of_kind(NodeKind.ENDPOINT))
        application_keys = [
            n.attributes["app_key"] for n in snapshot.graph.nodes_of_kind(NodeKind.APPLICATION)
        ]
        for fact in deferred_calls:
            node = self._external_call_node(fact, linker, application_keys, snapshot.warnings)
            refs[fact.ref] = snapshot.add_node(node).canonical_id

        for edge_fact in bundle.edges:
            missing = [r for r in (edge_fact.source_ref, edge_fact.target_ref) if r not in refs]
            if missing:
                raise InconsistentSnapshotError(
                    f"{edge_fact.kind.value} edge references unknown fact {missing[0]}"
                )
            snapshot.add_edge(
                Edge(
                    kind=edge_fact.kind,
                    source_canonical_id=refs[edge_fact.source_ref],
                    target_canonical_id=refs[edge_fact.target_ref],
                    attributes=dict(edge_fact.attributes),
                )
            )

        self._assign_groups(snapshot)
        self._derive_edges(snapshot)
        snapshot.complete()

        logger.info(
            "snapshot_built project_id=%s variant=%s nodes=%d edges=%d warnings=%d",
            snapshot.project_id,
            variant.value,
            snapshot.graph.node_count,
            snapshot.graph.edge_count,
            len(snapshot.warnings),
        )
        return snapshot

    # -------------------------------------------------------------------------
    # Node construction
    # -------------------------------------------------------------------------

    def _plain_node(self, fact: NodeFact) -> Node:
        raw = dict(fact.attributes)

        if fact.kind in CLASS_KINDS:
            fqcn = fully_qualified_name(raw)
            if fqcn:
                raw["fully_qualified_name"] = fqcn
                package, _, simple = fqcn.rpartition(".")
                raw.setdefault("class_name", simple)
                if package:
                    raw.setdefault("package_name", package)
        elif fact.kind == NodeKind.ENDPOINT:
            if raw.get("path") is not None:
                raw["raw_path"] = raw["path"]
                raw["path"] = normalize_path(raw["path"])
            if raw.get("http_method"):
                raw["http_method"] = normalize_http_method(raw["http_method"])
        elif fact.kind == NodeKind.METHOD:
            if raw.get("parameter_types") is None:
                raw["parameter_types"] = extract_parameter_types(raw.get("signature"))
            else:
                raw["parameter_types"] = [normalize_type(t) for t in raw["parameter_types"]]

        canonical_id = node_canonical_id(fact.kind, raw)
        attributes, source = split_attributes(fact.kind, raw)
        return Node(
            internal_id=uuid.uuid4().hex,
            canonical_id=canonical_id,
            kind=fact.kind,
            attributes=attributes,
            group_hint=fact.group_hint,
            source=source,
        )

    def _topic_node(
        self, fact: NodeFact, properties: dict[str, str], warnings: list[str]
    ) -> Node:
        raw = dict(fact.attributes)
        raw_name = raw.get("name") or raw.get("raw_name")
        resolved = resolve_placeholders(str(raw_name), properties) if raw_name else None

        if resolved is not None:
            raw["raw_name"] = resolved.raw
            raw["name"] = resolved.value
            raw["resolved"] = resolved.resolved
            if resolved.resolved:
                raw["resolution_reason"] = None
            else:
                keys = ", ".join(resolved.unresolved_keys)
                raw["resolution_reason"] = f"Unresolved property {keys}"
                warnings.append(f"Unresolved Kafka topic {resolved.raw}: no value for {keys}")
                logger.warning("kafka_topic_unresolved raw_name=%s keys=%s", resolved.raw, keys)

        canonical_id = node_canonical_id(NodeKind.KAFKA_TOPIC, raw)
        attributes, source = split_attributes(NodeKind.KAFKA_TOPIC, raw)
        return Node(
            internal_id=uuid.uuid4().hex,
            canonical_id=canonical_id,
            kind=NodeKind.KAFKA_TOPIC,
            attributes=attributes,
            group_hint=fact.group_hint,
            source=source,
        )

    def _external_call_node(
        self,
        fact: NodeFact,
        linker: EndpointLinker,
        application_keys: list[str],
        warnings: list[str],
    ) -> Node:
        raw: dict[str, Any] = dict(fact.attributes)
        method = normalize_http_method(raw.get("http_method"))
        url = raw.get("url")

        result = linker.link(method, url)
        target = self._resolver.resolve(url or "", application_keys)

        raw["http_method"] = method
        raw["normalized_url"] = normalize_url(url)
        raw["resolved"] = result.linked
        raw["target_endpoint"] = result.endpoint_id
        raw["target_service"] = target.resolved or target.host or raw.get("target_service")
        if result.linked:
            raw["resolution_reason"] = result.reason
            logger.debug("external_call_linked url=%s endpoint=%s", url, result.endpoint_id)
        else:
            raw["resolution_reason"] = f"Unresolved: {result.miss_reason}"
            warnings.append(f"Unresolved external call {method} {url}: {result.miss_reason}")
            logger.warning(
                "external_call_unresolved method=%s url=%s reason=%s",
                method,
                url,
                result.miss_reason,
            )

        canonical_id = node_canonical_id(NodeKind.EXTERNAL_CALL, raw)
        raw["raw_url"] = raw.pop("url", None)
        attributes, source = split_attributes(NodeKind.EXTERNAL_CALL, raw)
        if target.resolved:
            source["target_application"] = target.resolved
        return Node(
            internal_id=uuid.uuid4().hex,
            canonical_id=canonical_id,
            kind=NodeKind.EXTERNAL_CALL,
            attributes=attributes,
            group_hint=fact.group_hint,
            source=source,
        )

    # -------------------------------------------------------------------------
    # Derived structure
    # -------------------------------------------------------------------------

    def _derive_edges(self, snapshot: GraphSnapshot) -> None:
        graph = snapshot.graph

        for node in graph.nodes_of_kind(NodeKind.METHOD):
            owner = graph.class_node_for(node.attributes.get("class_name") or "")
            if owner:
                snapshot.add_edge(Edge(EdgeKind.HAS_METHOD, owner, node.canonical_id))

        for node in graph.nodes_of_kind(NodeKind.ENDPOINT):
            owner = graph.class_node_for(node.attributes.get("controller_class") or "")
            if owner:
                snapshot.add_edge(Edge(EdgeKind.HAS_ENDPOINT, owner, node.canonical_id))

        for node in graph.nodes_of_kind(NodeKind.EXTERNAL_CALL):
            endpoint = node.attributes.get("target_endpoint")
            if endpoint and endpoint in graph:
                snapshot.add_edge(Edge(EdgeKind.CALLS_ENDPOINT, node.canonical_id, endpoint))
            application = node.source.get("target_application")
            if application:
                app_id = node_canonical_id(NodeKind.APPLICATION, {"app_key": application})
                if app_id in graph:
                    snapshot.add_edge(Edge(EdgeKind.RESOLVES_TO, node.canonical_id, app_id))

        applications = {
            n.attributes["app_key"]: n.canonical_id
            for n in graph.nodes_of_kind(NodeKind.APPLICATION)
        }
        for kind, edge_kind in _CONTAINS_EDGE.items():
            for node in graph.nodes_of_kind(kind):
                app_id = applications.get(node.group_hint or "")
                if app_id:
                    snapshot.add_edge(Edge(edge_kind, app_id, node.canonical_id))

    def _assign_groups(self, snapshot: GraphSnapshot) -> None:
        """Fill missing group hints from the owning class, else the sole application."""
        graph = snapshot.graph
        applications = graph.nodes_of_kind(NodeKind.APPLICATION)
        default_group = applications[0].attributes["app_key"] if len(applications) == 1 else None

        for node in applications:
            if node.group_hint is None:
                node.group_hint = node.attributes["app_key"]

        # Classes first so members can inherit from them.
        ordered = sorted(
            graph.nodes.items(), key=lambda item: (item[1].kind not in CLASS_KINDS, item[0])
        )
        for canonical_id, node in ordered:
            if node.group_hint is not None:
                continue
            owner = graph.owner_of(canonical_id)
            owner_node = graph.node(owner) if owner else None
            if owner_node is not None and owner_node.group_hint is not None:
                node.group_hint = owner_node.group_hint
            else:
                node.group_hint = default_group
