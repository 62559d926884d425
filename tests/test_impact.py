"""Tests for ImpactAnalyzer."""

from __future__ import annotations

import pytest

from shadowgraph.analysis import CycleDetector, ImpactAnalyzer
from shadowgraph.analysis.impact import DIRECT_CHANGE_REASON
from shadowgraph.config import ImpactConfig
from shadowgraph.diff import compute_diff
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.report import ChangedFile
from shadowgraph.models.types import ComponentType, EdgeKind, FileStatus, NodeKind, Variant
from tests.fixtures.graphs import build_snapshot, make_production, make_shadow, make_shop_bundle
from tests.fixtures.graphs.sample_facts import (
    AUDIT_LISTENER,
    ORDER_CONTROLLER,
    ORDER_ENDPOINT_ID,
    ORDER_SERVICE,
    USER_CONTROLLER,
    USER_ENDPOINT_ID,
    USER_REPOSITORY,
    USER_SERVICE,
    class_fact,
    edge,
    method,
)


def _source_file(fqcn: str, additions: int = 10, deletions: int = 2) -> ChangedFile:
    path = "user-service/src/main/java/" + fqcn.replace(".", "/") + ".java"
    return ChangedFile.from_path(path, FileStatus.MODIFIED, additions, deletions)


@pytest.fixture
def production() -> GraphSnapshot:
    """Baseline shop snapshot."""
    return make_production()


@pytest.fixture
def analyzer() -> ImpactAnalyzer:
    """Analyzer with default depth."""
    return ImpactAnalyzer()


class TestChangedFile:
    """Tests for mapping file paths to classes."""

    def test_from_path(self) -> None:
        """Source root and extension are stripped."""
        changed = ChangedFile.from_path("svc/src/main/kotlin/com/acme/Thing.kt")
        assert changed.class_name == "com.acme.Thing"
        assert changed.is_source

    def test_test_and_resource_files_are_not_source(self) -> None:
        """Tests and non-code files are excluded."""
        assert not ChangedFile.from_path("svc/src/test/java/com/acme/ThingTest.java").is_source
        assert not ChangedFile.from_path("svc/src/main/resources/application.yml").is_source


class TestServiceChange:
    """Changing UserService."""

    def test_component(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """The changed service is matched with its neighbours."""
        report = analyzer.analyze(production, [_source_file(USER_SERVICE)])

        [component] = report.changed_components
        assert component.type == ComponentType.SERVICE
        assert component.canonical_id == f"service:{USER_SERVICE}"
        assert component.group_hint == "user-service"
        assert component.upstream_callers == [ORDER_CONTROLLER, ORDER_SERVICE, USER_CONTROLLER]
        assert component.downstream_callees == [AUDIT_LISTENER, USER_REPOSITORY]

    def test_affected_endpoint(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """The endpoint whose handler calls the service is affected, indirectly."""
        report = analyzer.analyze(production, [_source_file(USER_SERVICE)])

        [endpoint] = report.affected_endpoints
        assert endpoint.canonical_id == USER_ENDPOINT_ID
        assert endpoint.label == "GET /api/users/{id}"
        assert endpoint.controller_class == USER_CONTROLLER
        assert endpoint.method_name == "getUser"
        assert not endpoint.directly_changed
        assert endpoint.reason == "Depends on modified UserService via UserController -> UserService"

    def test_affected_flow(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """One representative flow per affected endpoint."""
        report = analyzer.analyze(production, [_source_file(USER_SERVICE)])

        [flow] = report.affected_flows
        assert flow.endpoint == "GET /api/users/{id}"
        assert flow.call_chain == ["UserController", "UserService"]
        assert flow.affected_at == "UserService"

    def test_depth_bound(self, production: GraphSnapshot) -> None:
        """Endpoints beyond max_depth hops are not reported."""
        deep = ImpactAnalyzer(ImpactConfig(max_depth=10)).analyze(
            production, [_source_file(USER_SERVICE)]
        )
        shallow = ImpactAnalyzer(ImpactConfig(max_depth=1)).analyze(
            production, [_source_file(USER_SERVICE)]
        )
        assert [e.canonical_id for e in deep.affected_endpoints] == [
            ORDER_ENDPOINT_ID,
            USER_ENDPOINT_ID,
        ]
        assert shallow.affected_endpoints == []

    def test_lines_counted(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Total lines sum additions and deletions."""
        report = analyzer.analyze(
            production, [_source_file(USER_SERVICE, 30, 5), _source_file(USER_REPOSITORY, 1, 1)]
        )
        assert report.total_lines_changed == 37


class TestControllerChange:
    """Changing UserController."""

    def test_own_endpoint_is_direct(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Endpoints of the changed controller are directly changed."""
        report = analyzer.analyze(production, [_source_file(USER_CONTROLLER)])

        by_id = {e.canonical_id: e for e in report.affected_endpoints}
        assert by_id[USER_ENDPOINT_ID].directly_changed
        assert by_id[USER_ENDPOINT_ID].reason == DIRECT_CHANGE_REASON

    def test_cross_service_caller(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """An endpoint of another service that calls in over HTTP is affected."""
        report = analyzer.analyze(production, [_source_file(USER_CONTROLLER)])

        by_id = {e.canonical_id: e for e in report.affected_endpoints}
        order = by_id[ORDER_ENDPOINT_ID]
        assert not order.directly_changed
        flow = next(f for f in report.affected_flows if f.endpoint_canonical_id == ORDER_ENDPOINT_ID)
        assert flow.call_chain == [
            "OrderController",
            "OrderService",
            "HTTP GET /api/users/{*}",
            "UserController",
        ]

    def test_component_type(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Controllers are reported as Controller components."""
        report = analyzer.analyze(production, [_source_file(USER_CONTROLLER)])
        assert report.changed_components[0].type == ComponentType.CONTROLLER


class TestListenerChange:
    """Changing the Kafka listener."""

    def test_listener_reached_through_topic(
        self, production: GraphSnapshot, analyzer: ImpactAnalyzer
    ) -> None:
        """Producer-side endpoints are affected through the topic."""
        report = analyzer.analyze(production, [_source_file(AUDIT_LISTENER)])

        [component] = report.changed_components
        assert component.type == ComponentType.KAFKA_LISTENER
        [flow] = report.affected_flows
        assert flow.endpoint_canonical_id == USER_ENDPOINT_ID
        assert flow.call_chain == [
            "UserController",
            "UserService",
            "topic user-events",
            "AuditListener",
        ]

    def test_consumes_from_excluded(self, production: GraphSnapshot) -> None:
        """Without message edges the listener is isolated."""
        config = ImpactConfig(edge_kinds=frozenset({EdgeKind.CALLS, EdgeKind.CALLS_ENDPOINT}))
        report = ImpactAnalyzer(config).analyze(production, [_source_file(AUDIT_LISTENER)])
        assert report.affected_endpoints == []


class TestMatching:
    """Tests for files that are not plain graph classes."""

    def test_unmatched_file(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Unknown classes become Other components with a warning."""
        changed = _source_file("com.acme.util.StringUtils")
        report = analyzer.analyze(production, [changed])

        [component] = report.changed_components
        assert component.type == ComponentType.OTHER
        assert component.canonical_id is None
        assert report.warnings == [f"No graph node matches changed file {changed.filename}"]

    def test_non_source_skipped(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Build files are skipped but still counted as lines."""
        changed = ChangedFile.from_path("pom.xml", additions=4, deletions=0)
        report = analyzer.analyze(production, [changed])

        assert report.changed_components == []
        assert report.warnings == ["Skipped non-source file pom.xml"]
        assert report.total_lines_changed == 4

    def test_plain_class_methods(self, analyzer: ImpactAnalyzer) -> None:
        """A class without a class node is matched through its methods."""
        bundle = make_shop_bundle()
        bundle.nodes.append(method("m-helper", "com.acme.user.Formatter", "format", ["User"]))
        bundle.edges.append(edge(EdgeKind.CALLS, "m-get-user-by-id", "m-helper"))
        snapshot = build_snapshot(bundle)

        report = analyzer.analyze(snapshot, [_source_file("com.acme.user.Formatter")])

        [component] = report.changed_components
        assert component.type == ComponentType.OTHER
        assert component.canonical_id is None
        assert USER_SERVICE in component.upstream_callers
        assert [e.canonical_id for e in report.affected_endpoints] == [USER_ENDPOINT_ID]

    def test_new_class_found_in_fallback(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Classes added by the change are traced in the shadow."""
        bundle = make_shop_bundle()
        bundle.nodes += [
            class_fact("cache", NodeKind.SERVICE, "com.acme.user.UserCache", "user-service"),
            method("m-cache", "com.acme.user.UserCache", "lookup", ["Long"]),
        ]
        bundle.edges.append(edge(EdgeKind.CALLS, "m-get-user-by-id", "m-cache"))
        shadow = build_snapshot(bundle, Variant.SHADOW, "pr-7")

        report = analyzer.analyze(
            production, [_source_file("com.acme.user.UserCache")], fallback=shadow
        )

        [component] = report.changed_components
        assert component.canonical_id == "service:com.acme.user.UserCache"
        assert [e.canonical_id for e in report.affected_endpoints] == [USER_ENDPOINT_ID]
        assert report.warnings == []


class TestReportContents:
    """Tests for cycles, diff summary and determinism."""

    def test_new_cycles_carried(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Only cycles new in the shadow reach the report."""
        shadow = make_shadow(with_cross_service_cycle=True)
        cycles = CycleDetector().detect_and_compare(production, shadow)
        diff = compute_diff(production, shadow)

        report = analyzer.analyze(
            production, [_source_file(USER_SERVICE)], fallback=shadow, diff=diff, cycles=cycles
        )

        assert [c.signature for c in report.circular_dependencies] == [cycles[0].signature]
        assert report.warnings == [f"New error: {cycles[0].description}"]
        assert report.diff_summary is diff.summary

    def test_url_change_warning(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Rewritten URL literals are reported and warned about."""
        changed = _source_file(ORDER_SERVICE)
        changed.patch = (
            '-    String url = "/api/users/" + id;\n'
            '+    String url = "/api/v2/users/" + id;\n'
        )
        report = analyzer.analyze(production, [changed])

        [change] = report.api_url_changes
        assert change.class_name == "OrderService"
        assert change.description in report.warnings

    def test_deterministic(self, production: GraphSnapshot, analyzer: ImpactAnalyzer) -> None:
        """Same inputs, same report."""
        files = [_source_file(USER_CONTROLLER), _source_file(USER_SERVICE), _source_file(AUDIT_LISTENER)]
        assert analyzer.analyze(production, files) == analyzer.analyze(production, list(reversed(files)))
