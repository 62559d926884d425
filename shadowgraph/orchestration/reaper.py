"""Periodic removal of expired comparisons."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable

from shadowgraph.core.errors import StorageError
from shadowgraph.core.protocols import DocumentStore, GraphStore
from shadowgraph.models.snapshot import utcnow

logger = logging.getLogger(__name__)


class SnapshotReaper:
    """Deletes expired records and their shadow graphs.

    In-flight (PENDING or ANALYZING) records are never reaped; they are
    picked up on a later pass once terminal. Each candidate is re-read under
    the lock right before deletion, so a record replaced since the expiry
    scan survives. Pass the orchestrator's lock (ComparisonOrchestrator.reaper()
    does) to keep requests and reaping from interleaving.
    """

    def __init__(
        self,
        graph_store: GraphStore,
        document_store: DocumentStore,
        interval_seconds: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
        lock: threading.RLock | None = None,
    ) -> None:
        self._graphs = graph_store
        self._documents = document_store
        self._interval = interval_seconds
        self._clock = clock
        self._lock = lock or threading.RLock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def reap_expired(self) -> int:
        """Delete every expired, terminal comparison. Returns how many."""
        now = self._clock()
        reaped = 0
        for candidate in self._documents.find_expired(now):
            key = (candidate.project_id, candidate.shadow_id)
            with self._lock:
                record = self._documents.get(*key)
                if record is None or record.id != candidate.id or not record.is_expired(now):
                    logger.debug("reap_skipped_replaced project_id=%s shadow_id=%s", *key)
                    continue
                if record.status.is_active:
                    logger.debug(
                        "reap_deferred project_id=%s shadow_id=%s status=%s",
                        key[0],
                        key[1],
                        record.status.value,
                    )
                    continue
                self._graphs.delete_snapshot(*key)
                self._documents.delete(*key)
            reaped += 1
        if reaped:
            logger.info("snapshots_reaped count=%d", reaped)
        return reaped

    def start(self) -> None:
        """Run reap_expired() every interval on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="shadowgraph-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.reap_expired()
            except StorageError as e:
                # Transient backend failures are retried on the next pass.
                logger.warning("reap_failed error=%s retryable=%s", e, e.retryable)
