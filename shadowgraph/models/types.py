"""Core type definitions: node and edge kinds, lifecycle states, severities."""

from __future__ import annotations

from enum import Enum


class NodeKind(Enum):
    """Closed set of architecture element kinds.

    The value doubles as the canonical id prefix, so it must never change
    for an existing kind.
    """

    APPLICATION = "application"
    CONTROLLER = "controller"
    ENDPOINT = "endpoint"
    SERVICE = "service"
    METHOD = "method"
    REPOSITORY_CLASS = "repository"
    EXTERNAL_CALL = "external"
    KAFKA_TOPIC = "kafka_topic"
    DATABASE_TABLE = "database_table"

    @property
    def is_class(self) -> bool:
        """True for kinds that represent a source class."""
        return self in CLASS_KINDS


CLASS_KINDS = frozenset(
    {NodeKind.CONTROLLER, NodeKind.SERVICE, NodeKind.REPOSITORY_CLASS}
)


class EdgeKind(Enum):
    """Closed set of relationship kinds between architecture elements."""

    CALLS = "CALLS"
    MAKES_EXTERNAL_CALL = "MAKES_EXTERNAL_CALL"
    CALLS_ENDPOINT = "CALLS_ENDPOINT"
    PRODUCES_TO = "PRODUCES_TO"
    CONSUMES_FROM = "CONSUMES_FROM"
    HAS_ENDPOINT = "HAS_ENDPOINT"
    HAS_METHOD = "HAS_METHOD"
    ACCESSES = "ACCESSES"
    BELONGS_TO = "BELONGS_TO"
    RESOLVES_TO = "RESOLVES_TO"
    CONTAINS_CONTROLLER = "CONTAINS_CONTROLLER"
    CONTAINS_SERVICE = "CONTAINS_SERVICE"
    CONTAINS_REPOSITORY = "CONTAINS_REPOSITORY"


class Variant(Enum):
    """Which side of a comparison a snapshot belongs to."""

    PRODUCTION = "production"
    SHADOW = "shadow"


class SnapshotStatus(Enum):
    """Snapshot lifecycle.

    PENDING -> ANALYZING -> COMPLETED | FAILED. Terminal states never
    transition again.
    """

    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SnapshotStatus.COMPLETED, SnapshotStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (SnapshotStatus.PENDING, SnapshotStatus.ANALYZING)


class ChangeType(Enum):
    """Kind of structural change reported by the diff engine."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    REMOVED = "REMOVED"


class Severity(Enum):
    """Cycle severity."""

    WARNING = "WARNING"
    ERROR = "ERROR"


class RiskLevel(Enum):
    """Overall risk level derived from the 0-100 score."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class FactorSeverity(Enum):
    """Severity of a single contributing risk factor."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RiskCategory(Enum):
    """Risk score categories. Caps live in shadowgraph.config."""

    BREAKING_CHANGES = "breaking_changes"
    DOWNSTREAM_IMPACT = "downstream_impact"
    SERVICE_CRITICALITY = "service_criticality"
    CHANGE_COMPLEXITY = "change_complexity"


class FileStatus(Enum):
    """Status of a file in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


class ComponentType(Enum):
    """Role of a changed source class."""

    CONTROLLER = "Controller"
    SERVICE = "Service"
    REPOSITORY = "Repository"
    KAFKA_LISTENER = "KafkaListener"
    OTHER = "Other"


class UrlChangeType(Enum):
    """How a hard-coded API URL changed."""

    COMPLETE_REWRITE = "COMPLETE_REWRITE"
    PATH_STRUCTURE_CHANGE = "PATH_STRUCTURE_CHANGE"
    PATH_SEGMENT_CHANGE = "PATH_SEGMENT_CHANGE"
    MINOR_CHANGE = "MINOR_CHANGE"
