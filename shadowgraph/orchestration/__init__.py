"""Comparison lifecycle: request, process, poll, analyze and expire."""

from shadowgraph.orchestration.comparison import (
    ComparisonOrchestrator,
    ComparisonOutcome,
    ComparisonRequest,
)
from shadowgraph.orchestration.polling import CancellationToken, PollOutcome, poll_until
from shadowgraph.orchestration.reaper import SnapshotReaper

__all__ = [
    "CancellationToken",
    "ComparisonOrchestrator",
    "ComparisonOutcome",
    "ComparisonRequest",
    "PollOutcome",
    "SnapshotReaper",
    "poll_until",
]
