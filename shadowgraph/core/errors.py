"""Error hierarchy for shadowgraph.

All errors include retry semantics to enable graceful failure handling.
Check the .retryable attribute to determine if an operation can be retried.

Recoverable conditions (unresolved linkage, unmatched changed files,
polling timeouts) are never raised; they are recorded on results instead.
"""

from __future__ import annotations


class ShadowGraphError(Exception):
    """Base error for shadowgraph.

    All shadowgraph-specific errors inherit from this.
    """

    retryable = False


# =============================================================================
# Fact / Identity Errors
# =============================================================================


class InvalidFactError(ShadowGraphError):
    """A fact record is missing an attribute needed for its identity.

    Attributes:
        kind: Node kind of the fact
        missing: Name of the missing attribute

    Retry: Never retryable - the analysis front end emitted a malformed fact.
    """

    def __init__(self, kind: str, missing: str) -> None:
        self.kind = kind
        self.missing = missing
        super().__init__(f"{kind} fact is missing required attribute '{missing}'")


class CanonicalIdCollisionError(ShadowGraphError):
    """Two semantically distinct nodes produced the same canonical id.

    Attributes:
        canonical_id: The colliding id
        existing_kind: Kind of the node already holding the id
        new_kind: Kind of the node that collided

    Retry: Never retryable - this is an identity invariant violation.
    """

    def __init__(self, canonical_id: str, existing_kind: str, new_kind: str) -> None:
        self.canonical_id = canonical_id
        self.existing_kind = existing_kind
        self.new_kind = new_kind
        super().__init__(
            f"Canonical id {canonical_id} collides: {existing_kind} vs {new_kind}"
        )


# =============================================================================
# Snapshot Errors
# =============================================================================


class InconsistentSnapshotError(ShadowGraphError):
    """A snapshot or snapshot pair violates a structural invariant.

    Attributes:
        reason: Human-readable error description

    Retry: Never retryable - fix the producer of the snapshot.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Inconsistent snapshot: {reason}")


class SnapshotStateError(ShadowGraphError):
    """Illegal lifecycle transition or mutation of a sealed snapshot.

    Attributes:
        current: Current status value
        attempted: Attempted status or operation

    Retry: Never retryable.
    """

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} snapshot in state {current}")


class SnapshotNotFoundError(ShadowGraphError):
    """No snapshot or record exists for the given key.

    Attributes:
        project_id: Project identifier
        shadow_id: Shadow identifier (None for the production snapshot)

    Retry: Retryable - the production graph may not have been analyzed yet.
    """

    retryable = True

    def __init__(self, project_id: str, shadow_id: str | None = None) -> None:
        self.project_id = project_id
        self.shadow_id = shadow_id
        target = f"shadow {shadow_id}" if shadow_id else "production snapshot"
        super().__init__(f"No {target} for project {project_id}")


class SnapshotFailedError(ShadowGraphError):
    """The shadow snapshot ended in FAILED.

    Attributes:
        shadow_id: Shadow identifier
        error_message: Message recorded by the failed analysis

    Retry: Never retryable - request a new comparison.
    """

    def __init__(self, shadow_id: str, error_message: str | None) -> None:
        self.shadow_id = shadow_id
        self.error_message = error_message
        super().__init__(f"Shadow {shadow_id} failed: {error_message}")


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(ShadowGraphError):
    """Storage operation failed.

    Attributes:
        operation: The operation that failed (save, load, delete)
        reason: Human-readable error description
        retryable: Whether the operation can be retried
        retry_after_seconds: Suggested wait time before retry (None if not retryable)

    Retry: Check .retryable - True for transient failures like locked databases.
    """

    def __init__(
        self,
        operation: str,
        reason: str,
        retryable: bool = False,
        retry_after_seconds: int | None = None,
    ) -> None:
        self.operation = operation
        self.reason = reason
        self.retryable = retryable
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Storage {operation} failed: {reason}")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(ShadowGraphError):
    """Invalid configuration.

    Attributes:
        key: Dotted path of the offending setting
        reason: Human-readable error description

    Retry: Never retryable - fix the configuration.
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid config {key}: {reason}")
