"""
Reporting Module — Observers for mirror runs.
"""

from .base import CompositeReporter, RecordingReporter, Reporter
from .console import ConsoleReporter
from .ledger import RunLedger

__all__ = [
    "CompositeReporter",
    "ConsoleReporter",
    "RecordingReporter",
    "Reporter",
    "RunLedger",
]
