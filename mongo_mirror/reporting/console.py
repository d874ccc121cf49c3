"""
Console Reporter — Operator-facing progress output.

Two modes:
- human (default): dashed banner lines around each collection and a
  colored summary; optionally a tqdm progress bar per collection
- JSON lines: one JSON object per event, flushed immediately, for piping
  into other tools
"""

from __future__ import annotations

import json
import threading
from typing import Any, Dict, List, Optional

import click
from tqdm import tqdm

from ..models.result import CollectionResult, RunReport
from .base import Reporter

BANNER_WIDTH = 26


class ConsoleReporter(Reporter):
    """Writes run progress to stdout with click."""

    def __init__(self, json_lines: bool = False, progress: bool = False):
        self.json_lines = json_lines
        self.progress = progress and not json_lines
        self._bars: Dict[str, tqdm] = {}
        self._lock = threading.Lock()

    def emit(self, data: Dict[str, Any]) -> None:
        """Output a JSON line and flush immediately."""
        with self._lock:
            click.echo(json.dumps(data, default=str))

    def _echo(self, message: str = "", **style: Any) -> None:
        with self._lock:
            if style:
                click.secho(message, **style)
            else:
                click.echo(message)

    def run_started(self, run_id: str, collections: List[str]) -> None:
        if self.json_lines:
            self.emit({"event": "run_started", "run_id": run_id, "collections": collections})
            return
        self._echo(f"\n🔀 Mirror run {run_id} ({len(collections)} collection(s))")

    def connected(self, run_id: str) -> None:
        if self.json_lines:
            self.emit({"event": "connected", "run_id": run_id})
            return
        self._echo("  ✓ Connected to source and destination", fg="green")

    def collection_started(self, run_id: str, collection: str) -> None:
        if self.json_lines:
            self.emit({"event": "collection_started", "run_id": run_id, "collection": collection})
            return
        bar = "-" * BANNER_WIDTH
        self._echo(f"{bar}Starting collection {collection}{bar}")

    def collection_counted(self, run_id: str, collection: str, count: int) -> None:
        if self.json_lines:
            self.emit({
                "event": "collection_counted",
                "run_id": run_id,
                "collection": collection,
                "count": count,
            })
            return
        self._echo(f"Collection {collection} has {count} documents to be imported")
        if self.progress and count:
            with self._lock:
                self._bars[collection] = tqdm(total=count, desc=collection, unit="doc", leave=False)

    def documents_copied(self, run_id: str, collection: str, copied: int) -> None:
        with self._lock:
            bar = self._bars.get(collection)
            if bar is not None:
                bar.update(copied - bar.n)

    def _close_bar(self, collection: str) -> None:
        with self._lock:
            bar: Optional[tqdm] = self._bars.pop(collection, None)
            if bar is not None:
                bar.close()

    def collection_finished(self, run_id: str, result: CollectionResult) -> None:
        self._close_bar(result.collection)

        if self.json_lines:
            data = {"event": "collection_finished", "run_id": run_id}
            data.update(result.model_dump())
            self.emit(data)
            return

        bar = "-" * BANNER_WIDTH
        if result.status == "ok":
            self._echo(f"Collection {result.collection} imported successfully! Total: {result.copied}")
            self._echo(f"{bar}Finished import collection {result.collection}{bar}\n")
        elif result.status == "skipped":
            reason = (result.details or {}).get("skip_reason", "")
            self._echo(f"  ⏭  {result.collection} skipped ({reason})", fg="yellow")
        else:
            error = result.error
            self._echo(
                f"  ❌ {result.collection} failed after {result.copied} document(s)"
                f" — [{error.code if error else 'unknown'}] {error.message if error else ''}",
                fg="red",
            )
            self._echo(f"{bar}Aborted collection {result.collection}{bar}\n")

    def run_finished(self, report: RunReport) -> None:
        if self.json_lines:
            data = {"event": "run_finished"}
            data.update(report.to_dict())
            self.emit(data)
            return

        self._echo("")
        self._echo(f"  Run ID:   {report.run_id}")
        self._echo(f"  Duration: {report.duration_ms} ms")
        self._echo(f"  Copied:   {report.total_copied} document(s)")
        for result in report.collections:
            icon = {"ok": "✅", "failed": "❌", "skipped": "⏭ "}.get(result.status, "❓")
            self._echo(f"    {icon} {result.collection}: {result.copied}")

        if report.status == "completed":
            self._echo("\n✅ Mirror complete", fg="green", bold=True)
        elif report.status == "timed_out":
            self._echo("\n⏱  Mirror timed out", fg="red", bold=True)
        else:
            self._echo(
                f"\n❌ Mirror failed ({len(report.failed_collections)} collection(s) failed)",
                fg="red",
                bold=True,
            )
