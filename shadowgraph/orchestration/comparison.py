"""Comparison orchestrator: shadow snapshot lifecycle from request to report.

Flow for one pull request:

    request_comparison()  -> PENDING record, processing dispatched to a worker
    process()             -> ANALYZING -> extract -> build -> store -> diff
                             -> cycles -> COMPLETED (or FAILED)
    wait_for_completion() -> bounded polling until the record is terminal
    analyze()             -> all of the above plus impact and risk

Records live in the DocumentStore, graphs in the GraphStore. Failures of
the front end, stores or graph invariants end the snapshot in FAILED with
an error message; they are not raised to the caller of analyze().
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from functools import partial
from datetime import datetime
from typing import Callable

from shadowgraph.analysis.cycles import CycleDetector
from shadowgraph.analysis.impact import ImpactAnalyzer
from shadowgraph.analysis.risk import RiskAssessor
from shadowgraph.config import ShadowGraphConfig
from shadowgraph.core.errors import (
    InconsistentSnapshotError,
    SnapshotFailedError,
    SnapshotNotFoundError,
    SnapshotStateError,
)
from shadowgraph.core.protocols import AnalysisFrontEnd, AnalysisJob, DocumentStore, GraphStore
from shadowgraph.diff.engine import compute_diff
from shadowgraph.graph.builder import GraphBuilder
from shadowgraph.graph.snapshot import GraphSnapshot
from shadowgraph.models.report import ChangedFile, ImpactReport, RiskAssessment
from shadowgraph.models.snapshot import ShadowGraphRecord, utcnow
from shadowgraph.models.types import SnapshotStatus, Variant
from shadowgraph.orchestration.polling import CancellationToken, PollOutcome, poll_until
from shadowgraph.orchestration.reaper import SnapshotReaper

logger = logging.getLogger(__name__)

PRODUCTION_JOB_ID = "production"


def new_shadow_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class ComparisonRequest:
    """A request to compare a branch against the project's production graph."""

    project_id: str
    repo_url: str
    branch_name: str
    base_branch: str | None = None  # defaults to the configured base branch
    pr_number: int | None = None
    pr_url: str | None = None
    shadow_id: str | None = None  # generated when omitted


@dataclass
class ComparisonOutcome:
    """Result of a full analyze() run.

    impact and risk are set only on success; otherwise error_message says
    why, and timed_out / cancelled tell polling outcomes apart.
    """

    record: ShadowGraphRecord | None
    impact: ImpactReport | None = None
    risk: RiskAssessment | None = None
    error_message: str | None = None
    timed_out: bool = False
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.impact is not None and self.risk is not None


class ComparisonOrchestrator:
    """Drives shadow comparisons through their lifecycle.

    Thread Safety: public methods may be called from any thread. Processing
    runs on an internal worker pool.
    """

    def __init__(
        self,
        front_end: AnalysisFrontEnd,
        graph_store: GraphStore,
        document_store: DocumentStore,
        config: ShadowGraphConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        builder: GraphBuilder | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            front_end: Extracts facts from a branch.
            graph_store: Snapshot persistence.
            document_store: Record persistence.
            config: Analysis and orchestration settings.
            clock: Returns the current timezone-aware time.
            builder: Snapshot builder (default: GraphBuilder()).
        """
        self._front_end = front_end
        self._graphs = graph_store
        self._documents = document_store
        self._config = config or ShadowGraphConfig()
        self._clock = clock
        self._builder = builder or GraphBuilder()
        self._detector = CycleDetector(self._config.cycles)
        self._executor = ThreadPoolExecutor(
            max_workers=self._config.orchestrator.max_workers,
            thread_name_prefix="shadowgraph",
        )
        # Shared with the reaper so expiry never interleaves with a replace.
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Production graph
    # -------------------------------------------------------------------------

    def analyze_production(
        self, project_id: str, repo_url: str, branch_name: str | None = None
    ) -> GraphSnapshot:
        """Extract, build and store the production snapshot of a project.

        Raises:
            Whatever the front end, builder or store raise.
        """
        branch = branch_name or self._config.orchestrator.default_base_branch
        job = AnalysisJob(
            project_id=project_id,
            shadow_id=PRODUCTION_JOB_ID,
            repo_url=repo_url,
            branch_name=branch,
            base_branch=branch,
        )
        bundle = self._front_end.extract(job)
        _check_bundle(bundle.project_id, project_id)
        snapshot = self._builder.build(bundle, Variant.PRODUCTION)
        self._graphs.save_snapshot(snapshot)
        logger.info(
            "production_snapshot_stored project_id=%s nodes=%d",
            project_id,
            snapshot.graph.node_count,
        )
        return snapshot

    # -------------------------------------------------------------------------
    # Shadow lifecycle
    # -------------------------------------------------------------------------

    def request_comparison(
        self, request: ComparisonRequest, dispatch: bool = True
    ) -> ShadowGraphRecord:
        """Create a PENDING record and dispatch processing.

        A request for a shadow id that is still PENDING or ANALYZING returns
        the in-flight record instead of starting a second analysis. A
        terminal record with the same shadow id is replaced.

        Args:
            request: What to compare.
            dispatch: Submit process() to the worker pool. Pass False to run
                process() yourself.

        Returns:
            The PENDING (or already in-flight) record.
        """
        shadow_id = request.shadow_id or new_shadow_id()
        key = (request.project_id, shadow_id)

        with self._lock:
            active = self._documents.find_active(*key)
            if active is not None:
                logger.debug(
                    "comparison_deduplicated project_id=%s shadow_id=%s status=%s",
                    request.project_id,
                    shadow_id,
                    active.status.value,
                )
                return active

            if self._documents.get(*key) is not None:
                self._graphs.delete_snapshot(*key)

            now = self._clock()
            record = ShadowGraphRecord(
                id=uuid.uuid4().hex,
                project_id=request.project_id,
                shadow_id=shadow_id,
                repo_url=request.repo_url,
                branch_name=request.branch_name,
                base_branch=request.base_branch or self._config.orchestrator.default_base_branch,
                pr_number=request.pr_number,
                pr_url=request.pr_url,
                created_at=now,
                expires_at=ShadowGraphRecord.expiry_from(
                    now, self._config.orchestrator.snapshot_ttl_hours
                ),
            )
            self._documents.save(record)
            if dispatch:
                future = self._executor.submit(self.process, *key)
                future.add_done_callback(partial(_log_worker_error, key))

        logger.info(
            "comparison_requested project_id=%s shadow_id=%s branch=%s",
            request.project_id,
            shadow_id,
            request.branch_name,
        )
        return record

    def process(self, project_id: str, shadow_id: str) -> ShadowGraphRecord:
        """Run the analysis for a PENDING record to a terminal state.

        Any failure after the record is claimed, including a store error on
        the ANALYZING or COMPLETED save, ends the record in FAILED.

        Returns:
            The COMPLETED or FAILED record.

        Raises:
            SnapshotNotFoundError: No record for this key.
            SnapshotStateError: The record is not PENDING.
            StorageError: Not even the FAILED record could be saved.
        """
        record = self._documents.get(project_id, shadow_id)
        if record is None:
            raise SnapshotNotFoundError(project_id, shadow_id)
        record.transition(SnapshotStatus.ANALYZING)

        try:
            self._save(record)
            logger.info("shadow_analysis_started project_id=%s shadow_id=%s", project_id, shadow_id)
            bundle = self._front_end.extract(
                AnalysisJob(
                    project_id=project_id,
                    shadow_id=shadow_id,
                    repo_url=record.repo_url,
                    branch_name=record.branch_name,
                    base_branch=record.base_branch,
                )
            )
            _check_bundle(bundle.project_id, project_id)
            shadow = self._builder.build(bundle, Variant.SHADOW, shadow_id)
            self._graphs.save_snapshot(shadow)
            production = self._graphs.load_snapshot(project_id, Variant.PRODUCTION)
            diff = compute_diff(production, shadow)
            cycles = self._detector.detect_and_compare(production, shadow)

            diff.summary.circular_dependencies_detected = sum(
                1 for c in cycles if c.is_new_in_shadow
            )
            # record stays ANALYZING until the completed copy is stored
            completed = replace(
                record,
                diff=diff,
                circular_dependencies=cycles,
                warnings=list(shadow.warnings),
            )
            completed.transition(SnapshotStatus.COMPLETED, self._clock())
            self._save(completed)
        except Exception as e:  # any failure ends the snapshot; the caller polls the record
            message = str(e) or type(e).__name__
            logger.error(
                "shadow_analysis_failed project_id=%s shadow_id=%s error=%s",
                project_id,
                shadow_id,
                message,
                exc_info=True,
            )
            record.fail(message, self._clock())
            self._save(record)
            return record

        logger.info(
            "shadow_analysis_completed project_id=%s shadow_id=%s node_changes=%d new_cycles=%d",
            project_id,
            shadow_id,
            diff.summary.node_changes,
            diff.summary.circular_dependencies_detected,
        )
        return completed

    def wait_for_completion(
        self,
        project_id: str,
        shadow_id: str,
        cancel: CancellationToken | None = None,
    ) -> PollOutcome[ShadowGraphRecord]:
        """Poll the record until it is COMPLETED or FAILED.

        Returns:
            PollOutcome with the terminal record, or timed_out / cancelled.

        Raises:
            SnapshotNotFoundError: No record for this key.
        """
        if self._documents.get(project_id, shadow_id) is None:
            raise SnapshotNotFoundError(project_id, shadow_id)

        def check() -> ShadowGraphRecord | None:
            record = self._documents.get(project_id, shadow_id)
            if record is None:
                raise SnapshotNotFoundError(project_id, shadow_id)
            return record if record.status.is_terminal else None

        settings = self._config.orchestrator
        return poll_until(
            check,
            interval_seconds=settings.poll_interval_seconds,
            max_attempts=settings.max_poll_attempts,
            cancel=cancel,
        )

    def load_comparison(
        self, project_id: str, shadow_id: str
    ) -> tuple[ShadowGraphRecord, GraphSnapshot, GraphSnapshot]:
        """Record, production snapshot and shadow snapshot of a COMPLETED comparison.

        Raises:
            SnapshotNotFoundError: Record or either snapshot missing.
            SnapshotFailedError: The comparison FAILED.
            SnapshotStateError: The comparison is still in progress.
        """
        record = self._documents.get(project_id, shadow_id)
        if record is None:
            raise SnapshotNotFoundError(project_id, shadow_id)
        if record.status == SnapshotStatus.FAILED:
            raise SnapshotFailedError(shadow_id, record.error_message)
        if record.status != SnapshotStatus.COMPLETED:
            raise SnapshotStateError(record.status.value, "load results of")
        production = self._graphs.load_snapshot(project_id, Variant.PRODUCTION)
        shadow = self._graphs.load_snapshot(project_id, Variant.SHADOW, shadow_id)
        return record, production, shadow

    def analyze(
        self,
        request: ComparisonRequest,
        changed_files: list[ChangedFile],
        cancel: CancellationToken | None = None,
    ) -> ComparisonOutcome:
        """Run a full comparison and produce impact and risk reports.

        Returns:
            ComparisonOutcome. A failed snapshot, timeout or cancellation is
            reported on the outcome, not raised.
        """
        if request.shadow_id is None:
            request = replace(request, shadow_id=new_shadow_id())
        record = self.request_comparison(request)
        key = (record.project_id, record.shadow_id)

        polled = self.wait_for_completion(*key, cancel=cancel)
        if polled.cancelled:
            return ComparisonOutcome(
                record=self.get(*key), error_message="Comparison cancelled", cancelled=True
            )
        if polled.timed_out:
            return ComparisonOutcome(
                record=self.get(*key),
                error_message=f"Comparison not finished after {polled.attempts} polls",
                timed_out=True,
            )

        try:
            record, production, shadow = self.load_comparison(*key)
        except (SnapshotFailedError, SnapshotNotFoundError) as e:
            logger.warning(
                "comparison_unavailable project_id=%s shadow_id=%s error=%s", *key, e
            )
            return ComparisonOutcome(record=self.get(*key), error_message=str(e))

        impact = ImpactAnalyzer(self._config.impact).analyze(
            production,
            changed_files,
            fallback=shadow,
            diff=record.diff,
            cycles=record.circular_dependencies,
        )
        impact.shadow_id = record.shadow_id
        impact.branch_name = record.branch_name
        impact.pr_number = record.pr_number
        impact.pr_url = record.pr_url
        risk = RiskAssessor(self._config.risk).assess(
            record.diff, record.circular_dependencies, impact
        )
        return ComparisonOutcome(record=record, impact=impact, risk=risk)

    # -------------------------------------------------------------------------
    # Queries and cleanup
    # -------------------------------------------------------------------------

    def get(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        return self._documents.get(project_id, shadow_id)

    def list_for_project(self, project_id: str) -> list[ShadowGraphRecord]:
        return self._documents.list_by_project(project_id)

    def discard(self, project_id: str, shadow_id: str) -> bool:
        """Drop a comparison, e.g. when its pull request is closed.

        An in-flight comparison is expired instead of deleted; the reaper
        removes it once it reaches a terminal state.

        Returns:
            False if no record exists.
        """
        with self._lock:
            record = self._documents.get(project_id, shadow_id)
            if record is None:
                return False
            if record.status.is_active:
                record.expires_at = self._clock()
                self._documents.save(record)
                logger.info(
                    "comparison_expired_early project_id=%s shadow_id=%s status=%s",
                    project_id,
                    shadow_id,
                    record.status.value,
                )
                return True
            self._graphs.delete_snapshot(project_id, shadow_id)
            self._documents.delete(project_id, shadow_id)
        logger.info("comparison_discarded project_id=%s shadow_id=%s", project_id, shadow_id)
        return True

    def reaper(self) -> SnapshotReaper:
        """A reaper over the same stores that shares this orchestrator's lock."""
        return SnapshotReaper(
            self._graphs,
            self._documents,
            interval_seconds=self._config.orchestrator.reaper_interval_seconds,
            clock=self._clock,
            lock=self._lock,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and optionally wait for running analyses."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "ComparisonOrchestrator":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.shutdown()

    def _save(self, record: ShadowGraphRecord) -> None:
        """Save a record, keeping an earlier expiry set by discard()."""
        with self._lock:
            stored = self._documents.get(record.project_id, record.shadow_id)
            if (
                stored is not None
                and stored.expires_at is not None
                and (record.expires_at is None or stored.expires_at < record.expires_at)
            ):
                record.expires_at = stored.expires_at
            self._documents.save(record)


def _check_bundle(bundle_project_id: str, project_id: str) -> None:
    if bundle_project_id != project_id:
        raise InconsistentSnapshotError(
            f"front end returned facts for project {bundle_project_id}, expected {project_id}"
        )


def _log_worker_error(key: tuple[str, str], future: Future) -> None:
    """Done-callback for dispatched process() calls; surfaces what escaped."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(
            "shadow_worker_crashed project_id=%s shadow_id=%s error=%s",
            key[0],
            key[1],
            error,
            exc_info=(type(error), error, error.__traceback__),
        )
