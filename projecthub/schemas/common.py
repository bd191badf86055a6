"""
Shared schema building blocks.

Response envelope, camelCase wire format, pagination.
"""

from __future__ import annotations

from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for response bodies: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RequestModel(BaseModel):
    """Base for request bodies. Unknown fields are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: {"success": true, "data": ...}."""

    success: bool = True
    data: T


class MessageResponse(CamelModel):
    message: str


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> Pagination:
        return cls(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit)


class UserSummary(CamelModel):
    """Public subset of a user embedded in member and invitation payloads."""

    id: UUID
    email: str
    display_name: str | None
    avatar_url: str | None


class OrganizationSummary(CamelModel):
    id: UUID
    name: str


class ProjectSummary(CamelModel):
    id: UUID
    name: str
    key: str
    organization_id: UUID
