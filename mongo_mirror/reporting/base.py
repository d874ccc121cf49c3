"""
Reporter Base Class — Observer of a mirror run.

The orchestrator never prints. It calls a Reporter at each step of the
run, and the CLI decides what to show (console lines, JSON lines, an
NDJSON ledger, or several at once through ``CompositeReporter``).

Every hook has a no-op default, so a reporter overrides only what it
cares about. ``Reporter()`` itself is the silent reporter.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional

from ..models.result import CollectionResult, RunReport

logger = logging.getLogger(__name__)


class Reporter:
    """Receives run events. Implementations must be thread-safe."""

    def run_started(self, run_id: str, collections: List[str]) -> None:
        pass

    def connected(self, run_id: str) -> None:
        pass

    def collection_started(self, run_id: str, collection: str) -> None:
        pass

    def collection_counted(self, run_id: str, collection: str, count: int) -> None:
        pass

    def documents_copied(self, run_id: str, collection: str, copied: int) -> None:
        """Called with the running copied count for the collection."""
        pass

    def collection_finished(self, run_id: str, result: CollectionResult) -> None:
        pass

    def run_finished(self, report: RunReport) -> None:
        pass


class CompositeReporter(Reporter):
    """Fans every event out to several reporters."""

    def __init__(self, reporters: Optional[Iterable[Reporter]] = None):
        self.reporters: List[Reporter] = list(reporters or [])

    def add(self, reporter: Reporter) -> None:
        self.reporters.append(reporter)

    def run_started(self, run_id: str, collections: List[str]) -> None:
        for r in self.reporters:
            r.run_started(run_id, collections)

    def connected(self, run_id: str) -> None:
        for r in self.reporters:
            r.connected(run_id)

    def collection_started(self, run_id: str, collection: str) -> None:
        for r in self.reporters:
            r.collection_started(run_id, collection)

    def collection_counted(self, run_id: str, collection: str, count: int) -> None:
        for r in self.reporters:
            r.collection_counted(run_id, collection, count)

    def documents_copied(self, run_id: str, collection: str, copied: int) -> None:
        for r in self.reporters:
            r.documents_copied(run_id, collection, copied)

    def collection_finished(self, run_id: str, result: CollectionResult) -> None:
        for r in self.reporters:
            r.collection_finished(run_id, result)

    def run_finished(self, report: RunReport) -> None:
        for r in self.reporters:
            r.run_finished(report)


class RecordingReporter(Reporter):
    """Keeps every event in memory, in order. Handy for tests and the API."""

    def __init__(self):
        self.events: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *event) -> None:
        with self._lock:
            self.events.append(event)

    def names(self) -> List[str]:
        return [e[0] for e in self.events]

    def run_started(self, run_id: str, collections: List[str]) -> None:
        self._record("run_started", run_id, list(collections))

    def connected(self, run_id: str) -> None:
        self._record("connected", run_id)

    def collection_started(self, run_id: str, collection: str) -> None:
        self._record("collection_started", collection)

    def collection_counted(self, run_id: str, collection: str, count: int) -> None:
        self._record("collection_counted", collection, count)

    def documents_copied(self, run_id: str, collection: str, copied: int) -> None:
        self._record("documents_copied", collection, copied)

    def collection_finished(self, run_id: str, result: CollectionResult) -> None:
        self._record("collection_finished", result.collection, result.status, result.copied)

    def run_finished(self, report: RunReport) -> None:
        self._record("run_finished", report.status, report.total_copied)
