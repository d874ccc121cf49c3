"""
Result Models — Outcomes of collection transfers and whole runs.

Every collection produces a ``CollectionResult``, whether it copied
everything, failed half-way, or was never attempted. The run as a whole
produces a ``RunReport``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ..errors import MirrorError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorDetails(BaseModel):
    """Details about a collection failure."""

    code: str
    message: str
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorDetails":
        if isinstance(exc, MirrorError):
            return cls(code=exc.code, message=exc.message, retryable=exc.retryable)
        return cls(code="unexpected_error", message=str(exc) or type(exc).__name__)


class CollectionResult(BaseModel):
    """
    Result of transferring one collection.

    ``copied`` is the number of documents the destination acknowledged.
    For a failed upsert run it is the partial count written before the
    first error.
    """

    collection: str
    status: Literal["ok", "failed", "skipped"]
    mode: Literal["upsert", "insert"] = "upsert"
    matched: Optional[int] = None
    copied: int = 0
    started_at: str = Field(default_factory=utc_now_iso)
    duration_ms: int = 0
    details: Optional[Dict[str, Any]] = None
    error: Optional[ErrorDetails] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def succeeded(
        cls,
        collection: str,
        mode: str,
        matched: Optional[int],
        copied: int,
        duration_ms: int = 0,
    ) -> "CollectionResult":
        """Create a successful result."""
        return cls(
            collection=collection,
            status="ok",
            mode=mode,
            matched=matched,
            copied=copied,
            duration_ms=duration_ms,
        )

    @classmethod
    def skipped(cls, collection: str, reason: str) -> "CollectionResult":
        """Create a result for a collection that was never attempted."""
        return cls(
            collection=collection,
            status="skipped",
            details={"skip_reason": reason},
        )

    @classmethod
    def failed(
        cls,
        collection: str,
        mode: str,
        exc: BaseException,
        matched: Optional[int] = None,
        copied: int = 0,
        duration_ms: int = 0,
    ) -> "CollectionResult":
        """Create a failed result from the exception that aborted it."""
        return cls(
            collection=collection,
            status="failed",
            mode=mode,
            matched=matched,
            copied=copied,
            duration_ms=duration_ms,
            error=ErrorDetails.from_exception(exc),
        )


def generate_run_id() -> str:
    """Generate a unique run ID, e.g. R-20260204T221903-92929A."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    suffix = uuid4().hex[:6].upper()
    return f"R-{ts}-{suffix}"


@dataclass
class RunReport:
    """Result of a mirror run."""

    run_id: str
    started_at: str
    ended_at: Optional[str] = None
    duration_ms: int = 0

    status: Literal["running", "completed", "failed", "timed_out"] = "running"
    state: str = "unconnected"

    collections: List[CollectionResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_copied(self) -> int:
        return sum(r.copied for r in self.collections)

    @property
    def failed_collections(self) -> List[str]:
        return [r.collection for r in self.collections if r.status == "failed"]

    @property
    def exit_code(self) -> int:
        if self.status == "completed":
            return 0
        if self.status == "timed_out":
            return 5
        return 1

    def get(self, collection: str) -> Optional[CollectionResult]:
        for result in self.collections:
            if result.collection == collection:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
            "status": self.status,
            "total_copied": self.total_copied,
            "collections": [r.model_dump() for r in self.collections],
            "errors": list(self.errors),
        }
