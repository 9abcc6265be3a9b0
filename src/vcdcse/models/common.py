"""Common models shared across resources."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class CseModel(BaseModel):
    """Base model for all VCD CSE SDK models."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )


class FrozenModel(CseModel):
    """Base model for values that must not change once built."""

    model_config = ConfigDict(frozen=True)


class Reference(CseModel):
    """Reference to another VCD object."""

    id: str = ""
    name: str = ""


class PaginatedResponse(CseModel, Generic[T]):
    """One page of an OpenAPI list endpoint."""

    result_total: int = Field(0, alias="resultTotal")
    page_count: int = Field(0, alias="pageCount")
    page: int = 1
    page_size: int = Field(0, alias="pageSize")
    values: list[T] = Field(default_factory=list)
