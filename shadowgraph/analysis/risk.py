"""Weighted risk scoring for a change set.

Every point in the score comes from one row of the weight table in
shadowgraph.config, so the assessment is auditable: each non-zero factor is
listed with the points it contributed.
"""

from __future__ import annotations

import logging

from shadowgraph.config import CATEGORY_CAPS, LINE_TIERS, MAX_SCORE, FactorWeight, RiskConfig
from shadowgraph.models.diff import DiffResult
from shadowgraph.models.report import (
    CategoryScores,
    Cycle,
    DeploymentStrategy,
    ImpactReport,
    RecommendedAction,
    RiskAssessment,
    RiskFactor,
)
from shadowgraph.models.types import (
    ChangeType,
    ComponentType,
    EdgeKind,
    FactorSeverity,
    FileStatus,
    NodeKind,
    RiskLevel,
    Severity,
)

logger = logging.getLogger(__name__)

BEFORE_MERGING = "BEFORE_MERGING"

_MESSAGING_EDGES = (EdgeKind.PRODUCES_TO, EdgeKind.CONSUMES_FROM)


class RiskAssessor:
    """Scores a change set from its diff, cycles and impact report."""

    def __init__(self, config: RiskConfig | None = None) -> None:
        self._config = config or RiskConfig()

    def assess(
        self,
        diff: DiffResult | None,
        cycles: list[Cycle] | None,
        impact: ImpactReport,
    ) -> RiskAssessment:
        """Compute the risk assessment.

        Args:
            diff: Structural diff, or None when only an impact report exists.
            cycles: Candidate cycles with novelty flags. Defaults to the new
                cycles carried by the impact report.
            impact: Impact report for the same change set.

        Returns:
            RiskAssessment with category scores, level, factors, actions,
            deployment strategy and merge status.
        """
        diff = diff or DiffResult()
        if cycles is None:
            cycles = impact.circular_dependencies
        new_cycles = [c for c in cycles if c.is_new_in_shadow]

        counts = self._counts(diff, new_cycles, impact)
        factors: list[RiskFactor] = []
        scores = CategoryScores()
        raw: dict[str, int] = {}

        for name, weight in self._config.weights.items():
            count = counts.get(name, 0)
            points = self._points(name, weight, count)
            if points <= 0:
                continue
            factors.append(
                RiskFactor(
                    name=name,
                    severity=_severity(weight, count),
                    description=weight.description.format(count=count),
                    category=weight.category,
                    points=points,
                    count=count,
                )
            )
            key = weight.category.value
            raw[key] = raw.get(key, 0) + points

        for category, cap in CATEGORY_CAPS.items():
            setattr(scores, category.value, min(cap, raw.get(category.value, 0)))

        overall = min(MAX_SCORE, scores.total)
        level = self._level(overall)
        factors.sort(key=lambda f: (-f.points, f.name))

        assessment = RiskAssessment(
            category_scores=scores,
            overall_score=overall,
            level=level,
            factors=factors,
            recommended_actions=recommended_actions(impact, new_cycles, level),
            deployment_strategy=deployment_strategy(impact, level),
            merge_status=merge_status(new_cycles, level),
        )
        logger.info(
            "risk_assessed project_id=%s score=%d level=%s factors=%d",
            impact.project_id,
            overall,
            level.value,
            len(factors),
        )
        return assessment

    def _counts(
        self, diff: DiffResult, new_cycles: list[Cycle], impact: ImpactReport
    ) -> dict[str, int]:
        components = impact.changed_components

        def of_type(*types: ComponentType) -> list:
            return [c for c in components if c.type in types]

        groups = {c.group_hint for c in components if c.group_hint}
        messaging = len(of_type(ComponentType.KAFKA_LISTENER)) + sum(
            len(diff.relationships(change_type, kind))
            for change_type in (ChangeType.ADDED, ChangeType.REMOVED)
            for kind in _MESSAGING_EDGES
        )

        return {
            "api_url_changed": len(impact.api_url_changes),
            "endpoint_removed": len(diff.nodes(ChangeType.REMOVED, NodeKind.ENDPOINT)),
            "controller_changed": sum(
                1
                for c in of_type(ComponentType.CONTROLLER)
                if c.file_status in (FileStatus.MODIFIED, FileStatus.REMOVED)
            ),
            "endpoint_unresolved": len(
                diff.relationships(ChangeType.REMOVED, EdgeKind.CALLS_ENDPOINT)
            ),
            "endpoint_modified": len(diff.nodes(ChangeType.MODIFIED, NodeKind.ENDPOINT)),
            "method_removed": len(diff.nodes(ChangeType.REMOVED, NodeKind.METHOD)),
            "topic_removed": len(diff.nodes(ChangeType.REMOVED, NodeKind.KAFKA_TOPIC)),
            "new_error_cycle": sum(1 for c in new_cycles if c.severity == Severity.ERROR),
            "affected_endpoint": len(impact.affected_endpoints),
            "affected_flow": len(impact.affected_flows),
            "high_fan_in_component": sum(
                1 for c in components if len(c.upstream_callers) >= self._config.high_fan_in
            ),
            "new_warning_cycle": sum(1 for c in new_cycles if c.severity == Severity.WARNING),
            "core_layer_changed": len(of_type(ComponentType.SERVICE, ComponentType.REPOSITORY)),
            "messaging_changed": messaging,
            # A change confined to one service carries no cross-service risk.
            "services_touched": len(groups) if len(groups) > 1 else 0,
            "structural_changes": diff.summary.node_changes,
            "relationship_changes": diff.summary.relationship_changes,
            "lines_changed": impact.total_lines_changed,
        }

    @staticmethod
    def _points(name: str, weight: FactorWeight, count: int) -> int:
        if count <= 0:
            return 0
        if name == "lines_changed":
            for threshold, points in LINE_TIERS:
                if count > threshold:
                    return min(weight.cap, points)
            return 0
        return min(weight.cap, weight.points * (count // weight.per))

    def _level(self, score: int) -> RiskLevel:
        thresholds = self._config.thresholds
        if score <= thresholds.low_max:
            return RiskLevel.LOW
        if score <= thresholds.medium_max:
            return RiskLevel.MEDIUM
        if score <= thresholds.high_max:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL


def _severity(weight: FactorWeight, count: int) -> FactorSeverity:
    if weight.escalate_at is not None and count >= weight.escalate_at:
        return FactorSeverity.HIGH
    return weight.severity


# =============================================================================
# Guidance
# =============================================================================


def affected_teams(impact: ImpactReport) -> list[str]:
    """Review handles for the layers a change touches."""
    types = {c.type for c in impact.changed_components}
    teams = []
    if ComponentType.CONTROLLER in types:
        teams.append("@api-team")
    if ComponentType.REPOSITORY in types:
        teams.append("@data-team")
    if ComponentType.KAFKA_LISTENER in types:
        teams.append("@integration-team")
    if ComponentType.SERVICE in types and not teams:
        teams.append("@backend-team")
    return teams


def recommended_actions(
    impact: ImpactReport, new_cycles: list[Cycle], level: RiskLevel
) -> list[RecommendedAction]:
    actions: list[RecommendedAction] = []

    teams = affected_teams(impact)
    if impact.affected_endpoints and teams:
        actions.append(
            RecommendedAction(
                BEFORE_MERGING,
                f"Request review from {', '.join(teams)}",
                f"{len(impact.affected_endpoints)} endpoint(s) affected",
            )
        )
    if impact.affected_flows:
        actions.append(
            RecommendedAction(
                BEFORE_MERGING,
                "Run integration tests for affected request flows",
                f"{len(impact.affected_flows)} request flow(s) pass through changed code",
            )
        )
    if any(c.type == ComponentType.CONTROLLER for c in impact.changed_components):
        actions.append(
            RecommendedAction(
                BEFORE_MERGING,
                "Update API documentation for modified endpoints",
                "Controller classes changed",
            )
        )
    if level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        actions.append(
            RecommendedAction(
                BEFORE_MERGING,
                "Coordinate deployment timeline with affected teams",
                f"{level.value} risk change",
            )
        )
    if new_cycles:
        actions.append(
            RecommendedAction(
                BEFORE_MERGING,
                "Review and resolve circular dependencies",
                f"{len(new_cycles)} new circular dependency(ies)",
            )
        )
    return actions


def deployment_strategy(impact: ImpactReport, level: RiskLevel) -> DeploymentStrategy:
    feature_flag = level == RiskLevel.CRITICAL or (
        level == RiskLevel.HIGH and len(impact.affected_endpoints) >= 5
    )
    if level == RiskLevel.CRITICAL:
        return DeploymentStrategy(
            "Phased rollout with canary deployment",
            feature_flag,
            "High risk change requires gradual rollout",
        )
    if level == RiskLevel.HIGH:
        recommendation = (
            "Deploy behind feature flag with monitoring"
            if feature_flag
            else "Standard deployment with enhanced monitoring"
        )
        return DeploymentStrategy(
            recommendation, feature_flag, "Significant architectural changes detected"
        )
    if level == RiskLevel.MEDIUM:
        return DeploymentStrategy(
            "Standard deployment with monitoring",
            feature_flag,
            "Moderate impact on existing functionality",
        )
    return DeploymentStrategy(
        "Standard deployment", feature_flag, "Low risk change with minimal impact"
    )


def merge_status(new_cycles: list[Cycle], level: RiskLevel) -> str:
    if any(c.severity == Severity.ERROR for c in new_cycles):
        return "Blocked - circular dependency errors must be resolved"
    if level == RiskLevel.CRITICAL:
        return "Requires architectural review and careful planning"
    if level == RiskLevel.HIGH:
        return "Awaiting reviews from affected teams"
    if level == RiskLevel.MEDIUM:
        return "Ready for review - moderate impact"
    return "Low risk - ready to merge after review"
