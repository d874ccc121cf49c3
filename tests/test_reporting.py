"""
Tests for reporters: console output, JSON lines, the NDJSON ledger and
composite fan-out.
"""

import json
import threading

import pytest

from mongo_mirror.errors import SourceQueryFailed, WriteFailed
from mongo_mirror.models.result import CollectionResult, RunReport
from mongo_mirror.reporting import (
    CompositeReporter,
    ConsoleReporter,
    RecordingReporter,
    RunLedger,
)


def sample_report(status="completed"):
    report = RunReport(run_id="R-TEST", started_at="2026-01-01T00:00:00Z", status=status)
    report.collections = [
        CollectionResult.succeeded("orders", "upsert", matched=2, copied=2),
        CollectionResult.failed("items", "insert", WriteFailed("duplicate key"), matched=3),
        CollectionResult.skipped("users", "run aborted"),
    ]
    return report


class TestCollectionResult:

    def test_failed_carries_error_details(self):
        result = CollectionResult.failed("items", "upsert", WriteFailed("boom"), copied=4)

        assert result.status == "failed"
        assert result.ok is False
        assert result.copied == 4
        assert result.error.code == "write_failed"
        assert result.error.message == "boom"

    def test_unexpected_error_code(self):
        result = CollectionResult.failed("items", "upsert", RuntimeError("kaput"))
        assert result.error.code == "unexpected_error"

    def test_source_query_failure_not_retryable(self):
        """Test a source failure is reported once its read retries are spent."""
        result = CollectionResult.failed("items", "upsert", SourceQueryFailed("cursor lost"))

        assert result.error.code == "source_query_failed"
        assert result.error.retryable is False

    def test_skipped_reason(self):
        result = CollectionResult.skipped("users", "run aborted")
        assert result.details == {"skip_reason": "run aborted"}


class TestRunReport:

    def test_totals(self):
        report = sample_report("failed")

        assert report.total_copied == 2
        assert report.failed_collections == ["items"]
        assert report.get("users").status == "skipped"
        assert report.get("missing") is None

    @pytest.mark.parametrize("status,code", [
        ("completed", 0),
        ("failed", 1),
        ("timed_out", 5),
    ])
    def test_exit_code(self, status, code):
        assert sample_report(status).exit_code == code

    def test_to_dict_is_json_serializable(self):
        data = json.loads(json.dumps(sample_report().to_dict()))
        assert data["total_copied"] == 2
        assert len(data["collections"]) == 3


class TestConsoleReporter:
    """Tests for ConsoleReporter."""

    def test_banner_lines(self, capsys):
        reporter = ConsoleReporter()

        reporter.collection_started("R-1", "orders")
        reporter.collection_counted("R-1", "orders", 2)
        reporter.collection_finished("R-1", CollectionResult.succeeded("orders", "upsert", 2, 2))

        out = capsys.readouterr().out
        bar = "-" * 26
        assert f"{bar}Starting collection orders{bar}" in out
        assert "Collection orders has 2 documents to be imported" in out
        assert "Collection orders imported successfully! Total: 2" in out
        assert f"{bar}Finished import collection orders{bar}" in out

    def test_failure_line(self, capsys):
        reporter = ConsoleReporter()
        result = CollectionResult.failed("items", "upsert", WriteFailed("disk full"), copied=3)

        reporter.collection_finished("R-1", result)

        out = capsys.readouterr().out
        assert "items failed after 3 document(s)" in out
        assert "write_failed" in out

    def test_summary(self, capsys):
        ConsoleReporter().run_finished(sample_report("failed"))

        out = capsys.readouterr().out
        assert "R-TEST" in out
        assert "Mirror failed (1 collection(s) failed)" in out

    def test_json_lines(self, capsys):
        """Test every event is one parseable JSON object per line."""
        reporter = ConsoleReporter(json_lines=True)

        reporter.run_started("R-1", ["orders"])
        reporter.collection_counted("R-1", "orders", 5)
        reporter.collection_finished("R-1", CollectionResult.succeeded("orders", "upsert", 5, 5))
        reporter.run_finished(sample_report())

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [line["event"] for line in lines] == [
            "run_started",
            "collection_counted",
            "collection_finished",
            "run_finished",
        ]
        assert lines[1]["count"] == 5
        assert lines[2]["copied"] == 5
        assert lines[3]["status"] == "completed"

    def test_progress_bar_lifecycle(self):
        reporter = ConsoleReporter(progress=True)

        reporter.collection_counted("R-1", "orders", 3)
        reporter.documents_copied("R-1", "orders", 2)
        assert reporter._bars["orders"].n == 2

        reporter.collection_finished("R-1", CollectionResult.succeeded("orders", "upsert", 3, 3))
        assert "orders" not in reporter._bars

    def test_progress_after_bar_closed_is_ignored(self):
        reporter = ConsoleReporter(progress=True)
        reporter.collection_counted("R-1", "orders", 3)
        reporter.collection_finished("R-1", CollectionResult.succeeded("orders", "upsert", 3, 3))

        reporter.documents_copied("R-1", "orders", 3)

        assert reporter._bars == {}

    def test_progress_from_concurrent_workers(self):
        """Test bars update and close safely from several worker threads."""
        reporter = ConsoleReporter(progress=True)
        names = [f"c{i}" for i in range(8)]
        for name in names:
            reporter.collection_counted("R-1", name, 100)

        def work(name):
            for copied in range(1, 101):
                reporter.documents_copied("R-1", name, copied)
            reporter.collection_finished("R-1", CollectionResult.succeeded(name, "upsert", 100, 100))

        threads = [threading.Thread(target=work, args=(name,)) for name in names]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert reporter._bars == {}


class TestRunLedger:
    """Tests for RunLedger."""

    def test_creates_file(self, tmp_path):
        path = tmp_path / "audit" / "mirror.ndjson"
        RunLedger(path)
        assert path.exists()

    def test_emit_and_read(self, tmp_path):
        ledger = RunLedger(tmp_path / "mirror.ndjson")

        event_id = ledger.emit("run_started", "R-1", details={"collections": ["orders"]})

        entries = ledger.read()
        assert len(entries) == 1
        assert entries[0]["event_id"] == event_id
        assert entries[0]["type"] == "run_started"
        assert entries[0]["run_id"] == "R-1"
        assert entries[0]["ts_iso"].endswith("Z")
        assert "collection" not in entries[0]

    def test_append_only(self, tmp_path):
        path = tmp_path / "mirror.ndjson"
        RunLedger(path).emit("run_started", "R-1")
        RunLedger(path).emit("run_started", "R-2")

        assert [e["run_id"] for e in RunLedger(path).read()] == ["R-1", "R-2"]

    def test_reporter_hooks(self, tmp_path):
        ledger = RunLedger(tmp_path / "mirror.ndjson")
        report = sample_report("failed")

        ledger.run_started("R-TEST", ["orders", "items", "users"])
        for result in report.collections:
            ledger.collection_finished("R-TEST", result)
        ledger.run_finished(report)

        entries = ledger.read()
        assert [e["type"] for e in entries] == [
            "run_started",
            "collection_finished",
            "collection_finished",
            "collection_finished",
            "run_finished",
        ]
        assert entries[2]["level"] == "error"
        assert entries[2]["details"]["error"]["code"] == "write_failed"
        assert entries[-1]["details"]["failed_collections"] == ["items"]


class TestCompositeReporter:

    def test_fans_out(self):
        first, second = RecordingReporter(), RecordingReporter()
        composite = CompositeReporter([first])
        composite.add(second)

        composite.collection_counted("R-1", "orders", 7)

        assert first.events == second.events == [("collection_counted", "orders", 7)]
