"""
Config Models — Pydantic schemas for the mirror YAML file.

A mirror file has two sections:
- config: source/destination endpoints, tenants, run-wide knobs
- collections: the ordered list of collections to transfer

Keys use the camelCase spelling of existing mirror files
(connectionString, batchSize, tenantDestiny, ...); the snake_case field
names are accepted too.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class Endpoint(BaseModel):
    """One side of the mirror: where to connect and which database to use."""

    model_config = ConfigDict(populate_by_name=True)

    connection_string: str = Field(alias="connectionString", min_length=1)
    database: str = Field(min_length=1)


class MirrorSettings(BaseModel):
    """The ``config:`` section."""

    model_config = ConfigDict(populate_by_name=True)

    source: Endpoint
    destination: Endpoint = Field(
        validation_alias=AliasChoices("destiny", "destination"),
    )
    tenants: List[str] = Field(default_factory=list)
    tenant_destination: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("tenantDestiny", "tenantDestination", "tenant_destination"),
    )
    timeout: int = Field(default=60, ge=0)  # seconds for the whole run; 0 means default

    # Optional knobs
    connect_timeout: int = Field(default=60, ge=1, alias="connectTimeout")
    tenant_field: str = Field(default="TenantId", alias="tenantField")
    id_field: str = Field(default="_id", alias="idField")
    concurrency: int = Field(default=1, ge=1)
    on_collection_error: Literal["abort", "continue"] = Field(
        default="abort", alias="onCollectionError"
    )
    filter_policy: Literal["and", "replace"] = Field(default="and", alias="filterPolicy")
    forbidden_hosts: List[str] = Field(default_factory=list, alias="forbiddenHosts")
    read_retries: int = Field(default=2, ge=0, alias="readRetries")

    @field_validator("timeout")
    @classmethod
    def _default_timeout(cls, value: int) -> int:
        return value or 60

    @field_validator("tenant_destination", mode="before")
    @classmethod
    def _blank_tenant(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("tenants", mode="before")
    @classmethod
    def _null_tenants(cls, value: Any) -> Any:
        return value or []


class CollectionSpec(BaseModel):
    """One entry of ``collections:``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    batch_size: Union[int, str] = Field(default="all", alias="batchSize")
    multi_tenant: bool = Field(default=True, alias="multiTenant")
    filter: Optional[Union[str, Dict[str, Any]]] = None
    upsert: bool = True

    @field_validator("batch_size", "multi_tenant", "upsert", "filter", mode="before")
    @classmethod
    def _blank_means_default(cls, value: Any, info) -> Any:
        # Older mirror files store every field as a string; "" means unset.
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.model_fields[info.field_name].default
        return value

    @property
    def mode(self) -> str:
        return "upsert" if self.upsert else "insert"


class MirrorFile(BaseModel):
    """The whole YAML document."""

    config: MirrorSettings
    collections: List[CollectionSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> "MirrorFile":
        seen = set()
        for spec in self.collections:
            if spec.name in seen:
                raise ValueError(f"duplicate collection name '{spec.name}'")
            seen.add(spec.name)
        return self

    def get_collection(self, name: str) -> Optional[CollectionSpec]:
        for spec in self.collections:
            if spec.name == name:
                return spec
        return None

    def select(self, names: List[str]) -> List[CollectionSpec]:
        """Return the named collections in file order."""
        if not names:
            return list(self.collections)
        wanted = set(names)
        return [spec for spec in self.collections if spec.name in wanted]
