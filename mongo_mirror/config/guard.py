"""
Production Guard — Refuse to write into hosted production clusters.

The destination of a mirror must never be a production database. The guard
holds a list of predicates over the destination's connection string; if any
predicate matches, the run is aborted with ``SafetyViolation`` before a
single document is read.

Default predicates:
- MongoDB Atlas hosts (``*.mongodb.net``, plain or ``mongodb+srv://``)
- any glob pattern listed in ``forbiddenHosts``

Hosts are extracted from the URI text only; no DNS lookups are performed.

## Usage

    from mongo_mirror.config.guard import ProductionGuard

    guard = ProductionGuard.from_settings(settings)
    guard.check(settings.destination.connection_string)
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple
from urllib.parse import unquote

from ..errors import SafetyViolation
from .models import MirrorSettings

logger = logging.getLogger(__name__)


@dataclass
class ConnectionTarget:
    """A parsed connection descriptor."""

    uri: str
    scheme: str = "mongodb"
    hosts: List[str] = field(default_factory=list)

    @property
    def is_srv(self) -> bool:
        return self.scheme == "mongodb+srv"


TargetPredicate = Callable[[ConnectionTarget], bool]


def _split_host(entry: str) -> str:
    entry = entry.strip().lower()
    if entry.startswith("["):
        end = entry.find("]")
        return entry[1:end] if end != -1 else entry[1:]
    if ":" in entry:
        entry = entry.rsplit(":", 1)[0]
    # "host." is the fully qualified form of "host"
    return entry.rstrip(".")


def parse_target(uri: str) -> ConnectionTarget:
    """Extract scheme and host names from a MongoDB connection string."""
    scheme, sep, rest = uri.strip().partition("://")
    if not sep:
        scheme, rest = "mongodb", uri.strip()

    netloc = rest.split("/", 1)[0].split("?", 1)[0]
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]

    hosts = [_split_host(unquote(h)) for h in netloc.split(",") if h.strip()]
    return ConnectionTarget(uri=uri, scheme=scheme.lower(), hosts=hosts)


def atlas_host(target: ConnectionTarget) -> bool:
    """Match MongoDB Atlas clusters."""
    return any(h == "mongodb.net" or h.endswith(".mongodb.net") for h in target.hosts)


def host_pattern(pattern: str) -> TargetPredicate:
    """Build a predicate matching any host against a glob pattern."""
    pattern = pattern.strip().lower()

    def _matches(target: ConnectionTarget) -> bool:
        return any(fnmatch.fnmatchcase(h, pattern) for h in target.hosts)

    _matches.__name__ = f"host_pattern({pattern})"
    return _matches


DEFAULT_PREDICATES: Tuple[TargetPredicate, ...] = (atlas_host,)


class ProductionGuard:
    """
    Pluggable check that a destination is not a production target.
    """

    def __init__(self, predicates: Optional[Iterable[TargetPredicate]] = None):
        self.predicates: List[TargetPredicate] = list(
            DEFAULT_PREDICATES if predicates is None else predicates
        )

    @classmethod
    def from_settings(cls, settings: MirrorSettings) -> "ProductionGuard":
        """Default predicates plus the forbiddenHosts patterns."""
        predicates = list(DEFAULT_PREDICATES)
        predicates.extend(host_pattern(p) for p in settings.forbidden_hosts)
        return cls(predicates)

    def add(self, predicate: TargetPredicate) -> None:
        self.predicates.append(predicate)

    def violation(self, uri: str) -> Optional[str]:
        """Return the name of the first matching predicate, or None."""
        target = parse_target(uri)
        for predicate in self.predicates:
            if predicate(target):
                return getattr(predicate, "__name__", repr(predicate))
        return None

    def check(self, uri: str) -> None:
        """
        Raise SafetyViolation if the URI is a forbidden destination.

        The message never includes the URI itself (it may carry credentials).
        """
        matched = self.violation(uri)
        if matched:
            hosts = ", ".join(parse_target(uri).hosts)
            logger.error(f"Refusing destination {hosts}: matched {matched}")
            raise SafetyViolation(
                f"The destination database can't be a production database "
                f"(host {hosts} matched {matched})"
            )
