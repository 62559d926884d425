"""Snapshot lifecycle rules and the comparison record kept in the document store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from shadowgraph.core.errors import SnapshotStateError
from shadowgraph.models.types import SnapshotStatus

if TYPE_CHECKING:
    from shadowgraph.models.diff import DiffResult
    from shadowgraph.models.report import Cycle

_TRANSITIONS: dict[SnapshotStatus, frozenset[SnapshotStatus]] = {
    SnapshotStatus.PENDING: frozenset({SnapshotStatus.ANALYZING, SnapshotStatus.FAILED}),
    SnapshotStatus.ANALYZING: frozenset({SnapshotStatus.COMPLETED, SnapshotStatus.FAILED}),
    SnapshotStatus.COMPLETED: frozenset(),
    SnapshotStatus.FAILED: frozenset(),
}


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def check_transition(current: SnapshotStatus, target: SnapshotStatus) -> None:
    """Raise SnapshotStateError unless current -> target is legal."""
    if target not in _TRANSITIONS[current]:
        raise SnapshotStateError(current.value, f"move to {target.value}")


@dataclass
class ShadowGraphRecord:
    """Document-store record tracking one shadow comparison."""

    id: str
    project_id: str
    shadow_id: str
    repo_url: str
    branch_name: str
    base_branch: str = "main"
    pr_number: int | None = None
    pr_url: str | None = None
    status: SnapshotStatus = SnapshotStatus.PENDING
    error_message: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    expires_at: datetime | None = None
    diff: DiffResult | None = None
    circular_dependencies: list[Cycle] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def transition(self, target: SnapshotStatus, now: datetime | None = None) -> None:
        """Move to target status, stamping completed_at on terminal states."""
        check_transition(self.status, target)
        self.status = target
        if target.is_terminal:
            self.completed_at = now or utcnow()

    def fail(self, message: str, now: datetime | None = None) -> None:
        self.transition(SnapshotStatus.FAILED, now)
        self.error_message = message
        self.diff = None
        self.circular_dependencies = []

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    @staticmethod
    def expiry_from(created_at: datetime, ttl_hours: float) -> datetime:
        return created_at + timedelta(hours=ttl_hours)
