"""
Mirror Orchestrator — Drives a whole mirror run.

A run is one pass over every configured collection:

1. Preflight: batch sizes, destination tenant, production guard
2. Connect: source and destination in parallel, each pinged
3. Transfer: per collection, build filter → count + open cursor →
   stamp and write every document
4. Report: one CollectionResult per collection, one RunReport per run

## States

    UNCONNECTED → CONNECTING → CONNECTED → RUNNING → DONE

## Failure policy

- Preflight and connection errors abort the run before any read.
- A collection failure is recorded with its partial count. With
  ``onCollectionError: abort`` (default) no further collections start;
  with ``continue`` every collection is attempted.
- ``InvalidBatchSize`` and ``RunTimedOut`` always stop the run.

## Usage

    from mongo_mirror.engine.orchestrator import MirrorOrchestrator

    with MirrorOrchestrator(mirror.config, mirror.collections) as orchestrator:
        report = orchestrator.run()

    print(report.status, report.total_copied)
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, List, Optional, Tuple

from bson.binary import Binary

from ..config.guard import ProductionGuard
from ..config.models import CollectionSpec, Endpoint, MirrorSettings
from ..errors import (
    ConfigError,
    InvalidIdentifier,
    MirrorError,
    RunTimedOut,
    StoreConnectionError,
)
from ..models.result import CollectionResult, RunReport, generate_run_id, utc_now_iso
from ..reliability.deadline import Deadline
from ..reporting.base import Reporter
from ..stores.base import DocumentStore, StoreError
from ..stores.mongo import MongoStore
from .filters import build_filter
from .identifiers import uuid_to_binary
from .reader import SourceReader, parse_batch_size
from .writer import DestinationWriter

logger = logging.getLogger(__name__)

StoreFactory = Callable[[Endpoint, str, Deadline, int], DocumentStore]


class RunState(str, Enum):
    """Lifecycle of an orchestrator."""
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RUNNING = "running"
    DONE = "done"


def mongo_store_factory(
    endpoint: Endpoint,
    label: str,
    deadline: Deadline,
    connect_timeout: int,
) -> DocumentStore:
    return MongoStore(
        endpoint.connection_string,
        label,
        deadline=deadline,
        connect_timeout=connect_timeout,
    )


class MirrorOrchestrator:
    """
    Owns both store connections for the lifetime of a run.

    Stores are built by ``store_factory`` on connect, unless ready-made
    ``source``/``destination`` stores are passed in.
    """

    def __init__(
        self,
        settings: MirrorSettings,
        collections: List[CollectionSpec],
        reporter: Optional[Reporter] = None,
        store_factory: StoreFactory = mongo_store_factory,
        guard: Optional[ProductionGuard] = None,
        source: Optional[DocumentStore] = None,
        destination: Optional[DocumentStore] = None,
    ):
        self.settings = settings
        self.collections = list(collections)
        self.reporter = reporter or Reporter()
        self.store_factory = store_factory
        self.guard = guard or ProductionGuard.from_settings(settings)
        self.source = source
        self.destination = destination

        self.state = RunState.UNCONNECTED
        self.deadline: Optional[Deadline] = None
        self.run_id = generate_run_id()
        self._tenant: Optional[Binary] = None
        self._abort = threading.Event()

    def __enter__(self) -> "MirrorOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─── Preflight ──────────────────────────────────────────

    def preflight(self) -> None:
        """
        Validate everything that can be checked without a connection.

        Raises:
            InvalidBatchSize: A collection has a malformed batchSize
            ConfigError: The destination tenant is not a UUID
            SafetyViolation: The destination is a production target
        """
        for spec in self.collections:
            parse_batch_size(spec.batch_size, spec.name)

        if self.settings.tenant_destination:
            try:
                self._tenant = uuid_to_binary(self.settings.tenant_destination)
            except InvalidIdentifier as e:
                raise ConfigError(f"tenantDestiny: {e.message}")

        self.guard.check(self.settings.destination.connection_string)

    # ─── Connect ────────────────────────────────────────────

    def _start_clock(self) -> Deadline:
        if self.deadline is None:
            self.deadline = Deadline(self.settings.timeout)
        return self.deadline

    def _connect_store(self, store: DocumentStore) -> None:
        remaining = self.deadline.remaining() if self.deadline else None
        timeout = self.settings.connect_timeout
        if remaining is not None:
            timeout = min(timeout, remaining)
        try:
            store.connect()
            store.ping(timeout)
        except StoreError as e:
            raise StoreConnectionError(str(e)) from e

    def connect(self) -> None:
        """
        Connect both stores concurrently.

        The production guard runs first; a forbidden destination is never
        connected to at all.
        """
        self.state = RunState.CONNECTING
        self.guard.check(self.settings.destination.connection_string)
        deadline = self._start_clock()

        if self.source is None:
            self.source = self.store_factory(
                self.settings.source, "source", deadline, self.settings.connect_timeout
            )
        if self.destination is None:
            self.destination = self.store_factory(
                self.settings.destination, "destination", deadline, self.settings.connect_timeout
            )
        self.source.deadline = deadline
        self.destination.deadline = deadline

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="mirror-connect") as pool:
            futures = [
                pool.submit(self._connect_store, self.source),
                pool.submit(self._connect_store, self.destination),
            ]
            errors = []
            for future in futures:
                try:
                    future.result()
                except MirrorError as e:
                    errors.append(e)

        if errors:
            for e in errors:
                logger.error(f"Connection failed: {e}")
            raise errors[0]

        self.state = RunState.CONNECTED
        self.reporter.connected(self.run_id)

    # ─── Transfer ───────────────────────────────────────────

    def transfer_collection(self, spec: CollectionSpec) -> Tuple[CollectionResult, Optional[MirrorError]]:
        """
        Run the pipeline for one collection.

        Returns:
            (result, error). ``error`` is the exception that aborted the
            collection, or None on success.
        """
        extra = {"run_id": self.run_id, "collection": spec.name}
        started = time.time()
        matched: Optional[int] = None

        self.reporter.collection_started(self.run_id, spec.name)
        logger.info(f"Starting collection {spec.name} ({spec.mode})", extra=extra)

        reader = SourceReader(
            self.source,
            self.settings.source.database,
            read_retries=self.settings.read_retries,
        )
        writer = DestinationWriter(
            self.destination,
            self.settings.destination.database,
            tenant=self._tenant,
            tenant_field=self.settings.tenant_field,
            id_field=self.settings.id_field,
        )

        try:
            limit = parse_batch_size(spec.batch_size, spec.name)
            query = build_filter(
                spec,
                self.settings.tenants,
                tenant_field=self.settings.tenant_field,
                policy=self.settings.filter_policy,
            )
            matched, cursor = reader.open(spec.name, query, limit)
            self.reporter.collection_counted(self.run_id, spec.name, matched)

            copied = writer.drain(
                spec.name,
                cursor,
                upsert=spec.upsert,
                progress=lambda n: self.reporter.documents_copied(self.run_id, spec.name, n),
            )
        except MirrorError as e:
            duration_ms = int((time.time() - started) * 1000)
            result = CollectionResult.failed(
                spec.name,
                spec.mode,
                e,
                matched=matched,
                copied=e.details.get("copied", 0),
                duration_ms=duration_ms,
            )
            logger.error(f"Collection {spec.name} failed: [{e.code}] {e.message}", extra=extra)
            self.reporter.collection_finished(self.run_id, result)
            return result, e

        duration_ms = int((time.time() - started) * 1000)
        result = CollectionResult.succeeded(spec.name, spec.mode, matched, copied, duration_ms)
        logger.info(
            f"Collection {spec.name} imported successfully! Total: {copied}",
            extra=extra,
        )
        self.reporter.collection_finished(self.run_id, result)
        return result, None

    def _should_stop(self, error: MirrorError) -> bool:
        if error.fatal_to_run:
            return True
        return self.settings.on_collection_error == "abort"

    def _guarded_transfer(self, spec: CollectionSpec) -> Tuple[CollectionResult, Optional[MirrorError]]:
        if self._abort.is_set():
            result = CollectionResult.skipped(spec.name, "run aborted")
            self.reporter.collection_finished(self.run_id, result)
            return result, None

        result, error = self.transfer_collection(spec)
        if error is not None and self._should_stop(error):
            self._abort.set()
        return result, error

    def _run_sequential(self) -> List[Tuple[CollectionResult, Optional[MirrorError]]]:
        return [self._guarded_transfer(spec) for spec in self.collections]

    def _run_concurrent(self) -> List[Tuple[CollectionResult, Optional[MirrorError]]]:
        workers = min(self.settings.concurrency, len(self.collections)) or 1
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mirror-collection") as pool:
            futures = [pool.submit(self._guarded_transfer, spec) for spec in self.collections]
            return [future.result() for future in futures]

    # ─── Run ────────────────────────────────────────────────

    def _finish(self, report: RunReport, started: float) -> RunReport:
        report.ended_at = utc_now_iso()
        report.duration_ms = int((time.time() - started) * 1000)
        report.state = RunState.DONE.value
        self.state = RunState.DONE
        logger.info(
            f"Run {report.run_id} {report.status}: {report.total_copied} document(s) copied "
            f"in {report.duration_ms} ms",
            extra={"run_id": report.run_id},
        )
        self.reporter.run_finished(report)
        return report

    def run(self) -> RunReport:
        """
        Execute the mirror run.

        Returns:
            RunReport with one result per collection

        Raises:
            MirrorError: Preflight or connection failures (the report is
            still delivered to the reporter before raising)
        """
        started = time.time()
        report = RunReport(run_id=self.run_id, started_at=utc_now_iso())
        names = [spec.name for spec in self.collections]

        logger.info(
            f"{'═' * 50}\n"
            f"  Starting mirror run {self.run_id}\n"
            f"  ├─ Source: {self.settings.source.database}\n"
            f"  ├─ Destination: {self.settings.destination.database}\n"
            f"  ├─ Collections: {len(names)}\n"
            f"  └─ Concurrency: {self.settings.concurrency}\n"
            f"{'─' * 50}",
            extra={"run_id": self.run_id},
        )
        self.reporter.run_started(self.run_id, names)

        try:
            self.preflight()
            if self.state == RunState.UNCONNECTED:
                self.connect()
        except MirrorError as e:
            report.status = "timed_out" if isinstance(e, RunTimedOut) else "failed"
            report.errors.append(f"[{e.code}] {e}")
            self._finish(report, started)
            raise

        self.state = RunState.RUNNING
        report.state = RunState.RUNNING.value

        if self.settings.concurrency > 1 and len(self.collections) > 1:
            outcomes = self._run_concurrent()
        else:
            outcomes = self._run_sequential()

        errors = [error for _, error in outcomes if error is not None]
        report.collections = [result for result, _ in outcomes]
        report.errors.extend(f"[{e.code}] {e}" for e in errors)

        if any(isinstance(e, RunTimedOut) for e in errors):
            report.status = "timed_out"
        elif errors:
            report.status = "failed"
        else:
            report.status = "completed"

        return self._finish(report, started)

    def close(self) -> None:
        """Close both stores."""
        for store in (self.source, self.destination):
            if store is not None:
                store.close()


def run_mirror(
    settings: MirrorSettings,
    collections: List[CollectionSpec],
    reporter: Optional[Reporter] = None,
    store_factory: StoreFactory = mongo_store_factory,
    guard: Optional[ProductionGuard] = None,
) -> RunReport:
    """
    Connect, mirror every collection and close.

    Usage:
        mirror = load_mirror_file(Path("mirror.yaml"))
        report = run_mirror(mirror.config, mirror.collections)
        sys.exit(report.exit_code)
    """
    with MirrorOrchestrator(
        settings,
        collections,
        reporter=reporter,
        store_factory=store_factory,
        guard=guard,
    ) as orchestrator:
        return orchestrator.run()
