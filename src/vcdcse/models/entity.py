"""Runtime Defined Entity models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from vcdcse.models.common import CseModel, Reference


class EntityState(str, Enum):
    """Resolution state of a defined entity."""

    PRE_CREATED = "PRE_CREATED"
    RESOLVED = "RESOLVED"
    RESOLUTION_ERROR = "RESOLUTION_ERROR"


def entity_type_id(vendor: str, nss: str, version: str) -> str:
    """URN of a defined entity type."""
    return f"urn:vcloud:type:{vendor}:{nss}:{version}"


class DefinedEntityType(CseModel):
    """Schema definition that entities of a type are validated against."""

    id: str
    name: str = ""
    vendor: str = ""
    nss: str = ""
    version: str = ""
    description: str | None = None
    json_schema: dict[str, Any] = Field(default_factory=dict, alias="schema")


class DefinedEntity(CseModel):
    """A versioned JSON document stored by VCD.

    Only entities fetched by ID carry an etag. Entities obtained from list
    endpoints never do, and cannot be used for conditional updates.
    """

    id: str | None = None
    entity_type: str = Field("", alias="entityType")
    name: str = ""
    external_id: str | None = Field(None, alias="externalId")
    entity: dict[str, Any] = Field(default_factory=dict)
    state: EntityState | str | None = None
    owner: Reference | None = None
    org: Reference | None = None
    etag: str | None = Field(None, exclude=True)

    def payload(self) -> dict[str, Any]:
        """JSON body for create and update requests."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"etag"})
