"""
Run Ledger — Append-only NDJSON record of mirror runs.

Each line is one JSON object (newline-delimited JSON). Events are never
edited, only appended, so the ledger doubles as an audit trail of what
was copied where and when.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..models.result import CollectionResult, RunReport
from .base import Reporter


class RunLedger(Reporter):
    """
    Append-only NDJSON ledger writer.

    Usage:
        ledger = RunLedger(Path("audit/mirror.ndjson"))
        ledger.emit("run_started", run_id="R-123")
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def emit(
        self,
        event_type: str,
        run_id: str,
        level: str = "info",
        collection: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append one event.

        Returns:
            Generated event_id
        """
        event_id = f"E-{uuid4().hex[:8].upper()}"
        entry: Dict[str, Any] = {
            "ts_iso": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event_id": event_id,
            "run_id": run_id,
            "level": level,
            "type": event_type,
        }
        if collection is not None:
            entry["collection"] = collection
        if details is not None:
            entry["details"] = details

        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")

        return event_id

    def read(self) -> List[Dict[str, Any]]:
        """Read every entry back (small ledgers only)."""
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    # ─── Reporter hooks ─────────────────────────────────────

    def run_started(self, run_id: str, collections: List[str]) -> None:
        self.emit("run_started", run_id, details={"collections": collections})

    def collection_counted(self, run_id: str, collection: str, count: int) -> None:
        self.emit("collection_counted", run_id, collection=collection, details={"count": count})

    def collection_finished(self, run_id: str, result: CollectionResult) -> None:
        self.emit(
            "collection_finished",
            run_id,
            level="info" if result.status != "failed" else "error",
            collection=result.collection,
            details=result.model_dump(exclude={"collection"}),
        )

    def run_finished(self, report: RunReport) -> None:
        self.emit(
            "run_finished",
            report.run_id,
            level="info" if report.status == "completed" else "error",
            details={
                "status": report.status,
                "duration_ms": report.duration_ms,
                "total_copied": report.total_copied,
                "failed_collections": report.failed_collections,
                "errors": report.errors,
            },
        )
