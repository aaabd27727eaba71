"""Shared schema bases - camelCase wire format and pagination."""

import re
from datetime import datetime, timezone
from typing import Annotated, ClassVar, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PASSWORD_MESSAGE = "Senha deve conter pelo menos uma letra maiúscula, uma minúscula e um número"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys and built from ORM objects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RequestModel(CamelModel):
    """
    Base schema for request bodies. Unknown fields are rejected.

    Fields named in `non_nullable` may be omitted but never sent as null.
    """

    model_config = ConfigDict(extra="forbid")

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "RequestModel":
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} não pode ser nulo")
        return self


class TenantRequestModel(RequestModel):
    """
    Request body of an organization-scoped route.

    organizationId may select the tenant when the x-org-id header is absent;
    it is never part of the dumped payload.
    """

    organization_id: Optional[UUID] = Field(default=None, exclude=True)


def validate_password_strength(value: str) -> str:
    """Require at least one lowercase, one uppercase letter and one digit."""
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(PASSWORD_MESSAGE)
    return value


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDatetime = Annotated[datetime, AfterValidator(ensure_utc)]

StrongPassword = Annotated[
    str,
    Field(min_length=8, max_length=100),
    AfterValidator(validate_password_strength),
]


class Pagination(CamelModel):
    """Pagination block of list responses."""

    total: int
    page: int
    limit: int
    total_pages: int


class PaginatedResponse(CamelModel, Generic[T]):
    """List page with a pagination block."""

    data: list[T]
    pagination: Pagination


class MessageResponse(CamelModel):
    """Plain message response."""

    message: str = Field(description="Human readable message")


class SuccessResponse(CamelModel):
    """Acknowledgement response."""

    success: bool = True


def build_pagination(total: int, page: int, limit: int) -> Pagination:
    """Pagination block with ceil(total / limit) pages."""
    return Pagination(
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit if limit else 0,
    )
