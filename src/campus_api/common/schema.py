"""Shared Pydantic schema utilities."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base class for all API schemas: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="forbid",
        use_enum_values=True,
    )

    def model_dump(self, *args: Any, **kwargs: Any) -> dict[str, Any]:  # type: ignore[override]
        """Ensure serialization defaults honor aliases."""

        kwargs.setdefault("by_alias", True)
        return super().model_dump(*args, **kwargs)


class ApiResponse(BaseSchema, Generic[T]):
    """Success envelope: ``{success: true, data, degraded?, degradedReason?}``."""

    success: bool = True
    data: T
    degraded: bool | None = None
    degraded_reason: str | None = None
    super_admin_action: bool | None = None


class Pagination(BaseSchema):
    total: int
    page: int
    limit: int
    total_pages: int = Field(ge=0)

    @classmethod
    def build(cls, *, total: int, page: int, limit: int) -> Pagination:
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(total=total, page=page, limit=limit, total_pages=total_pages)


class ErrorBody(BaseSchema):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorEnvelope(BaseSchema):
    """Documented shape of every failure response."""

    success: bool = False
    error: ErrorBody


__all__ = ["ApiResponse", "BaseSchema", "ErrorBody", "ErrorEnvelope", "Pagination"]
