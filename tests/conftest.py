"""
Shared fixtures for mirror tests.

Provides in-memory source and destination stores, a store factory that
hands them to the orchestrator, and a builder for mirror settings so tests
never need a running MongoDB.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from mongo_mirror.config.models import CollectionSpec, MirrorSettings
from mongo_mirror.stores.memory import MemoryStore

TENANT_1 = "0b6d3f5e-1c2a-4e7b-9a1d-2f3c4b5a6d7e"
TENANT_2 = "5e8f9a0b-3d4c-4b2a-8e1f-7c6d5b4a3f2e"
DEST_TENANT = "9f1c2d3e-4b5a-4c6d-8e7f-0a1b2c3d4e5f"


def make_settings(**overrides: Any) -> MirrorSettings:
    """Mirror settings pointing at harmless local hosts."""
    data: Dict[str, Any] = {
        "source": {"connectionString": "mongodb://source.local:27017", "database": "app"},
        "destiny": {"connectionString": "mongodb://localhost:27017", "database": "app_copy"},
        "tenants": [TENANT_1],
        "tenantDestiny": DEST_TENANT,
        "timeout": 60,
    }
    data.update(overrides)
    return MirrorSettings(**data)


def make_collection(name: str, **fields: Any) -> CollectionSpec:
    return CollectionSpec(name=name, **fields)


@pytest.fixture
def source() -> MemoryStore:
    return MemoryStore("source")


@pytest.fixture
def destination() -> MemoryStore:
    return MemoryStore("destination")


@pytest.fixture
def store_factory(source: MemoryStore, destination: MemoryStore):
    """Factory returning the in-memory stores by label."""
    stores = {"source": source, "destination": destination}

    def factory(endpoint, label, deadline, connect_timeout):
        store = stores[label]
        store.deadline = deadline
        return store

    return factory


@pytest.fixture
def settings() -> MirrorSettings:
    return make_settings()


def orders(tenants: List[str], status: Optional[str] = "open") -> List[Dict[str, Any]]:
    """One order document per tenant id, numbered from 1."""
    from mongo_mirror.engine.identifiers import uuid_to_binary

    return [
        {"_id": i, "TenantId": uuid_to_binary(t), "Status": status, "Total": i * 10}
        for i, t in enumerate(tenants, start=1)
    ]
