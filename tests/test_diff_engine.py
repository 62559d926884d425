"""Tests for the structural diff engine."""

from __future__ import annotations

import pytest

from shadowgraph.core.errors import InconsistentSnapshotError
from shadowgraph.diff import compute_diff
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.diff import PropertyDiff
from shadowgraph.models.types import ChangeType, EdgeKind, NodeKind, Variant
from tests.fixtures.graphs import build_snapshot, make_production, make_shadow, make_shop_bundle
from tests.fixtures.graphs.sample_facts import (
    GET_USER_BY_ID_LONG,
    GET_USER_BY_ID_LONG_STRING,
    USER_ENDPOINT_ID,
)


@pytest.fixture
def production() -> GraphSnapshot:
    """Baseline shop snapshot."""
    return make_production()


class TestNoChanges:
    """Tests for identical inputs."""

    def test_identical_snapshots(self, production: GraphSnapshot) -> None:
        """Two builds of the same facts differ in nothing."""
        result = compute_diff(production, make_shadow())
        assert result.node_changes == []
        assert result.relationship_changes == []
        assert not result.summary.has_changes

    def test_cosmetic_path_variable_rename(self, production: GraphSnapshot) -> None:
        """Renaming {id} to {userId} is not a structural change."""
        result = compute_diff(production, make_shadow(users_path="/api/users/{userId}"))
        assert not result.summary.has_changes

    def test_cosmetic_client_url_rename(self, production: GraphSnapshot) -> None:
        """A client URL differing only in variable names is the same call."""
        bundle = make_shop_bundle()
        for fact in bundle.nodes:
            if fact.ref == "ext-user":
                fact.attributes["url"] = "http://user-service/api/users/{id}"
        shadow = build_snapshot(bundle, Variant.SHADOW)

        result = compute_diff(production, shadow)

        assert not result.summary.has_changes
        (call,) = shadow.graph.nodes_of_kind(NodeKind.EXTERNAL_CALL)
        assert "url" not in call.attributes
        assert call.source["raw_url"] == "http://user-service/api/users/{id}"


class TestSignatureChange:
    """getUserById(Long) becoming getUserById(Long, String)."""

    @pytest.fixture
    def shadow(self) -> GraphSnapshot:
        """Shadow with the extra parameter."""
        return make_shadow(get_user_by_id_params=("Long", "String"))

    def test_method_removed_and_added(self, production: GraphSnapshot, shadow: GraphSnapshot) -> None:
        """A signature change is a remove plus an add, never a modify."""
        result = compute_diff(production, shadow)

        added = result.nodes(ChangeType.ADDED)
        removed = result.nodes(ChangeType.REMOVED)
        assert [c.canonical_id for c in added] == [GET_USER_BY_ID_LONG_STRING]
        assert [c.canonical_id for c in removed] == [GET_USER_BY_ID_LONG]
        assert result.nodes(ChangeType.MODIFIED) == []
        assert added[0].kind == NodeKind.METHOD
        assert added[0].old_attributes is None
        assert removed[0].new_attributes is None

    def test_edges_follow_the_method(self, production: GraphSnapshot, shadow: GraphSnapshot) -> None:
        """Every edge touching the old method is removed and re-added for the new one."""
        result = compute_diff(production, shadow)

        removed = result.relationships(ChangeType.REMOVED)
        added = result.relationships(ChangeType.ADDED)
        assert len(removed) == len(added) == 4
        assert all(
            GET_USER_BY_ID_LONG in (c.source_canonical_id, c.target_canonical_id) for c in removed
        )
        assert all(
            GET_USER_BY_ID_LONG_STRING in (c.source_canonical_id, c.target_canonical_id)
            for c in added
        )
        assert {c.kind for c in added} == {EdgeKind.CALLS, EdgeKind.HAS_METHOD}

    def test_summary_counts(self, production: GraphSnapshot, shadow: GraphSnapshot) -> None:
        """Summary totals and per-kind counts agree with the change lists."""
        summary = compute_diff(production, shadow).summary
        assert (summary.nodes_added, summary.nodes_modified, summary.nodes_removed) == (1, 0, 1)
        assert (summary.relationships_added, summary.relationships_removed) == (4, 4)
        assert summary.nodes_by_kind["METHOD"].added == 1
        assert summary.nodes_by_kind["METHOD"].removed == 1
        assert summary.relationships_by_kind["CALLS"].added == 3
        assert summary.node_changes == 2
        assert summary.relationship_changes == 8


class TestModifiedNodes:
    """Tests for attribute-level changes."""

    def test_response_type_change(self, production: GraphSnapshot) -> None:
        """Same identity, different contract: MODIFIED with a property diff."""
        bundle = make_shop_bundle()
        for fact in bundle.nodes:
            if fact.ref == "ep-user":
                fact.attributes["response_type"] = "UserV2Dto"
        shadow = build_snapshot(bundle, Variant.SHADOW)

        result = compute_diff(production, shadow)

        modified = result.nodes(ChangeType.MODIFIED)
        assert [c.canonical_id for c in modified] == [USER_ENDPOINT_ID]
        assert modified[0].property_diffs == [
            PropertyDiff(name="response_type", old_value="UserDto", new_value="UserV2Dto")
        ]
        assert modified[0].old_attributes["response_type"] == "UserDto"
        assert result.relationship_changes == []

    def test_source_position_ignored(self, production: GraphSnapshot) -> None:
        """Moving code within a file is not a change."""
        bundle = make_shop_bundle()
        for fact in bundle.nodes:
            fact.attributes["line_start"] = 999
            fact.attributes["file_path"] = "Moved.java"
        result = compute_diff(production, build_snapshot(bundle, Variant.SHADOW))
        assert not result.summary.has_changes


class TestEndpointPathChange:
    """Tests for a path change that breaks a caller."""

    def test_caller_becomes_unresolved(self, production: GraphSnapshot) -> None:
        """The old endpoint is removed and the outbound call loses its link."""
        shadow = make_shadow(users_path="/api/v2/users/{id}")
        result = compute_diff(production, shadow)

        removed_ids = {c.canonical_id for c in result.nodes(ChangeType.REMOVED)}
        added_ids = {c.canonical_id for c in result.nodes(ChangeType.ADDED)}
        assert USER_ENDPOINT_ID in removed_ids
        assert "endpoint:GET:/api/v2/users/{*}" in added_ids
        assert "external:GET:/api/users/{*}:resolved=true" in removed_ids
        assert "external:GET:/api/users/{*}:resolved=false" in added_ids
        removed_links = result.relationships(ChangeType.REMOVED, EdgeKind.CALLS_ENDPOINT)
        assert [c.target_canonical_id for c in removed_links] == [USER_ENDPOINT_ID]


class TestProperties:
    """Ordering and symmetry guarantees."""

    def test_symmetry(self, production: GraphSnapshot) -> None:
        """diff(a, b) additions are diff(b, a) removals."""
        shadow = make_shadow(get_user_by_id_params=("Long", "String"), with_local_cycle=True)
        forward = compute_diff(production, shadow)
        backward = compute_diff(shadow, production)

        assert {c.canonical_id for c in forward.nodes(ChangeType.ADDED)} == {
            c.canonical_id for c in backward.nodes(ChangeType.REMOVED)
        }
        assert {c.identity for c in forward.relationships(ChangeType.ADDED)} == {
            c.identity for c in backward.relationships(ChangeType.REMOVED)
        }

    def test_deterministic_order(self, production: GraphSnapshot) -> None:
        """Changes are sorted by change type, then canonical id."""
        shadow = make_shadow(with_cross_service_cycle=True, users_path="/api/people/{id}")
        result = compute_diff(production, shadow)
        order = {ChangeType.ADDED: 0, ChangeType.MODIFIED: 1, ChangeType.REMOVED: 2}
        keys = [(order[c.change_type], c.canonical_id) for c in result.node_changes]
        assert keys == sorted(keys)
        assert result == compute_diff(production, shadow)


class TestIncomparable:
    """Tests for snapshot pairs that cannot be diffed."""

    def test_incomplete_snapshot(self, production: GraphSnapshot) -> None:
        """Only COMPLETED snapshots can be compared."""
        pending = GraphSnapshot(project_id=production.project_id, variant=Variant.SHADOW, shadow_id="x")
        with pytest.raises(InconsistentSnapshotError):
            compute_diff(production, pending)

    def test_project_mismatch(self, production: GraphSnapshot) -> None:
        """Snapshots of different projects are rejected."""
        other = build_snapshot(make_shop_bundle(project_id="other"), Variant.SHADOW)
        with pytest.raises(InconsistentSnapshotError):
            compute_diff(production, other)

    def test_id_version_mismatch(self, production: GraphSnapshot) -> None:
        """Snapshots built under different identity rules are rejected."""
        shadow = make_shadow()
        shadow.id_version = "0"
        with pytest.raises(InconsistentSnapshotError):
            compute_diff(production, shadow)
