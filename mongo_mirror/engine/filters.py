"""
Filter Builder — The query filter for one collection.

Sources, in order:
1. Tenant scoping: ``{tenantField: {"$in": tenants}}`` when the collection
   is multi-tenant (the default) and tenants are configured
2. The collection's explicit ``filter`` (MongoDB extended JSON text, or a
   YAML mapping)
3. Neither: ``{}`` (every document)

When both 1 and 2 apply, ``filter_policy`` decides:
- "and" (default): ``{"$and": [tenant_filter, explicit_filter]}``
- "replace": the explicit filter alone

The result always goes through identifier normalization.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

from bson import json_util
from bson.errors import BSONError

from ..config.models import CollectionSpec
from ..errors import InvalidFilterSyntax, InvalidIdentifier
from .identifiers import normalize_identifiers

logger = logging.getLogger(__name__)

FILTER_POLICIES = ("and", "replace")


def tenant_filter(tenants: Sequence[str], tenant_field: str = "TenantId") -> Dict[str, Any]:
    """Inclusion filter on the tenant field."""
    return {tenant_field: {"$in": list(tenants)}}


def parse_filter(raw: Any, collection: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse an explicit filter expression.

    Accepts extended JSON text (``{"CreatedAt": {"$gte": {"$date": ...}}}``)
    or an already-structured mapping, which is deep-copied.

    Raises:
        InvalidFilterSyntax: If the text is not JSON or not an object
    """
    if isinstance(raw, dict):
        return copy.deepcopy(raw)

    if not isinstance(raw, str):
        raise InvalidFilterSyntax(
            f"filter must be a JSON object, got {type(raw).__name__}",
            collection=collection,
        )

    try:
        parsed = json_util.loads(raw)
    except (ValueError, TypeError, BSONError) as e:
        raise InvalidFilterSyntax(f"invalid filter JSON: {e}", collection=collection)

    if not isinstance(parsed, dict):
        raise InvalidFilterSyntax(
            f"filter must be a JSON object, got {type(parsed).__name__}",
            collection=collection,
        )
    return parsed


def build_filter(
    spec: CollectionSpec,
    tenants: Sequence[str],
    tenant_field: str = "TenantId",
    policy: str = "and",
) -> Dict[str, Any]:
    """
    Build the normalized query filter for a collection.

    Args:
        spec: Collection entry from the mirror file
        tenants: Configured tenant ids (textual UUIDs)
        tenant_field: Name of the tenant field
        policy: "and" or "replace" when both tenant and explicit filters apply

    Returns:
        A fresh filter dict, safe to mutate

    Raises:
        InvalidFilterSyntax: Malformed explicit filter
        InvalidIdentifier: A hyphenated value is not a UUID
    """
    if policy not in FILTER_POLICIES:
        raise ValueError(f"Unknown filter policy: {policy}")

    parts: List[Dict[str, Any]] = []

    if spec.multi_tenant and tenants:
        parts.append(tenant_filter(tenants, tenant_field))

    if spec.filter:
        explicit = parse_filter(spec.filter, spec.name)
        if policy == "replace":
            parts = [explicit]
        elif explicit:
            parts.append(explicit)

    if not parts:
        result: Dict[str, Any] = {}
    elif len(parts) == 1:
        result = parts[0]
    else:
        result = {"$and": parts}

    try:
        normalize_identifiers(result)
    except InvalidIdentifier as e:
        raise InvalidIdentifier(e.message, collection=spec.name)

    logger.debug(f"Filter for {spec.name}: {result}")
    return result
