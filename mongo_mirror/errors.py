"""
Errors — Exception taxonomy for mirror runs.

Every failure raised by the transfer pipeline derives from ``MirrorError``
and carries a stable ``code`` that ends up in collection results and the
run ledger.

## Scope

- Run-fatal, raised before any data is read:
  ``ConfigError``, ``StoreConnectionError``, ``SafetyViolation``
- Run-fatal, raised mid-run: ``InvalidBatchSize``, ``RunTimedOut``
- Collection-fatal: ``InvalidIdentifier``, ``InvalidFilterSyntax``,
  ``SourceQueryFailed``, ``WriteFailed``

## Usage

    from mongo_mirror.errors import MirrorError

    try:
        report = orchestrator.run()
    except MirrorError as e:
        print(f"[{e.code}] {e}")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MirrorError(Exception):
    """Base class for all mirror failures."""

    code: str = "mirror_error"
    retryable: bool = False
    fatal_to_run: bool = False

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.collection = collection
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.collection:
            return f"{self.collection}: {self.message}"
        return self.message


class ConfigError(MirrorError):
    """Raised when the configuration file is missing, malformed or invalid."""

    code = "config_error"
    fatal_to_run = True


class StoreConnectionError(MirrorError):
    """Raised when a store is unreachable or fails its health check."""

    code = "connection_failed"
    fatal_to_run = True


class SafetyViolation(MirrorError):
    """Raised when the destination looks like a hosted production cluster."""

    code = "safety_violation"
    fatal_to_run = True


class InvalidIdentifier(MirrorError):
    """Raised when a hyphenated value cannot be parsed as a UUID."""

    code = "invalid_identifier"


class InvalidFilterSyntax(MirrorError):
    """Raised when an explicit collection filter is not a valid JSON object."""

    code = "invalid_filter"


class InvalidBatchSize(MirrorError):
    """Raised when batchSize is neither 'all' nor a positive integer."""

    code = "invalid_batch_size"
    fatal_to_run = True


class SourceQueryFailed(MirrorError):
    """Raised when counting, querying or iterating the source fails."""

    code = "source_query_failed"


class WriteFailed(MirrorError):
    """Raised when a write against the destination fails."""

    code = "write_failed"


class RunTimedOut(MirrorError):
    """Raised when the run-scoped deadline expires."""

    code = "timed_out"
    fatal_to_run = True


EXIT_CODES = (
    (ConfigError, 2),
    (InvalidBatchSize, 2),
    (SafetyViolation, 3),
    (StoreConnectionError, 4),
    (RunTimedOut, 5),
)


def exit_code_for(error: BaseException) -> int:
    """Process exit code for an error that ended a run."""
    for error_type, code in EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return 1
