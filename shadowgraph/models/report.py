"""Result types for cycle detection, impact analysis and risk assessment."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shadowgraph.models.types import (
    ComponentType,
    FactorSeverity,
    FileStatus,
    RiskCategory,
    RiskLevel,
    Severity,
    UrlChangeType,
)

if TYPE_CHECKING:
    from shadowgraph.models.diff import DiffSummary

# Directory markers after which a source path mirrors the package structure.
SOURCE_ROOTS = ("src/main/java/", "src/main/kotlin/", "src/main/scala/")
TEST_ROOTS = ("src/test/", "src/it/")
SOURCE_SUFFIXES = (".java", ".kt", ".scala")


# =============================================================================
# Cycles
# =============================================================================


@dataclass(frozen=True)
class CycleEdge:
    """A method-level call that produces one class-to-class hop of a cycle."""

    from_class: str
    from_method: str | None
    to_class: str
    to_method: str | None
    relationship_type: str


@dataclass
class Cycle:
    """An elementary circular dependency between classes.

    participant_canonical_ids is closed: the first id is repeated at the end.
    """

    participant_canonical_ids: list[str]
    signature: str
    severity: Severity
    is_new_in_shadow: bool = False
    edges: list[CycleEdge] = field(default_factory=list)
    description: str = ""

    @property
    def participants(self) -> list[str]:
        """Participants without the closing repeat."""
        return self.participant_canonical_ids[:-1]

    @property
    def length(self) -> int:
        return len(self.participants)


# =============================================================================
# Impact
# =============================================================================


@dataclass
class ChangedFile:
    """A file touched by the proposed change, reduced to its class name."""

    class_name: str  # fully qualified
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    filename: str | None = None
    patch: str | None = None

    @staticmethod
    def from_path(
        filename: str,
        status: FileStatus = FileStatus.MODIFIED,
        additions: int = 0,
        deletions: int = 0,
        patch: str | None = None,
    ) -> ChangedFile:
        """Derive the fully qualified class name from a source path.

        "svc/src/main/java/com/acme/UserService.java" -> "com.acme.UserService".
        Paths outside a known source root keep their directory structure
        relative to the repository root.
        """
        path = filename.replace("\\", "/")
        for root in SOURCE_ROOTS:
            index = path.find(root)
            if index != -1:
                path = path[index + len(root) :]
                break
        stem = re.sub(r"\.[^./]+$", "", path)
        return ChangedFile(
            class_name=stem.strip("/").replace("/", "."),
            status=status,
            additions=additions,
            deletions=deletions,
            filename=filename,
            patch=patch,
        )

    @property
    def is_source(self) -> bool:
        """True for main (non-test) source files, or when no filename is known."""
        if self.filename is None:
            return True
        path = self.filename.replace("\\", "/")
        if any(root in path for root in TEST_ROOTS):
            return False
        return path.endswith(SOURCE_SUFFIXES)

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions


@dataclass
class ChangedComponent:
    """A changed file matched (or not) to a class node."""

    class_name: str
    type: ComponentType
    file_status: FileStatus
    lines_added: int = 0
    lines_removed: int = 0
    canonical_id: str | None = None
    group_hint: str | None = None
    upstream_callers: list[str] = field(default_factory=list)
    downstream_callees: list[str] = field(default_factory=list)

    @property
    def simple_name(self) -> str:
        return self.class_name.rsplit(".", 1)[-1]


@dataclass
class AffectedEndpoint:
    """An endpoint whose behavior may change."""

    canonical_id: str
    http_method: str
    path: str
    controller_class: str | None
    method_name: str | None
    directly_changed: bool
    reason: str

    @property
    def label(self) -> str:
        return f"{self.http_method} {self.path}"


@dataclass
class AffectedFlow:
    """A representative request flow from an endpoint to changed code."""

    endpoint: str  # "GET /api/users/{id}"
    endpoint_canonical_id: str
    call_chain: list[str]  # class names, endpoint side first
    affected_at: str  # class name of the changed component


@dataclass(frozen=True)
class ApiUrlChange:
    """A hard-coded API URL rewritten in a patch."""

    file: str
    class_name: str
    old_url: str
    new_url: str
    line_number: int
    change_type: UrlChangeType

    @property
    def description(self) -> str:
        return f"API URL changed in {self.class_name}: '{self.old_url}' -> '{self.new_url}'"


@dataclass
class ImpactReport:
    """Everything the impact analyzer found for one change set."""

    project_id: str
    shadow_id: str | None = None
    branch_name: str | None = None
    pr_number: int | None = None
    pr_url: str | None = None
    changed_components: list[ChangedComponent] = field(default_factory=list)
    affected_endpoints: list[AffectedEndpoint] = field(default_factory=list)
    affected_flows: list[AffectedFlow] = field(default_factory=list)
    circular_dependencies: list[Cycle] = field(default_factory=list)
    api_url_changes: list[ApiUrlChange] = field(default_factory=list)
    diff_summary: DiffSummary | None = None
    total_lines_changed: int = 0
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# Risk
# =============================================================================


@dataclass(frozen=True)
class RiskFactor:
    """One contributing factor, with the points it added."""

    name: str
    severity: FactorSeverity
    description: str
    category: RiskCategory
    points: int
    count: int


@dataclass(frozen=True)
class RecommendedAction:
    category: str  # "BEFORE_MERGING"
    action: str
    reason: str


@dataclass(frozen=True)
class DeploymentStrategy:
    recommendation: str
    feature_flag_required: bool
    reasoning: str


@dataclass
class CategoryScores:
    breaking_changes: int = 0
    downstream_impact: int = 0
    service_criticality: int = 0
    change_complexity: int = 0

    def get(self, category: RiskCategory) -> int:
        return getattr(self, category.value)

    @property
    def total(self) -> int:
        return (
            self.breaking_changes
            + self.downstream_impact
            + self.service_criticality
            + self.change_complexity
        )


@dataclass
class RiskAssessment:
    """Weighted, auditable risk score for one change set."""

    category_scores: CategoryScores
    overall_score: int
    level: RiskLevel
    factors: list[RiskFactor] = field(default_factory=list)
    recommended_actions: list[RecommendedAction] = field(default_factory=list)
    deployment_strategy: DeploymentStrategy | None = None
    merge_status: str = ""
