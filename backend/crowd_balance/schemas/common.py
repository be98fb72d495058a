"""Common schemas used across the application."""

from datetime import datetime, timezone
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def _utc_iso(value: datetime) -> str:
    # Columns hold naive UTC; clients parse a bare ISO string as local time
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


UTCDateTime = Annotated[datetime, PlainSerializer(_utc_iso, return_type=str, when_used="json")]


class CamelModel(BaseModel):
    """Base for wire schemas: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every endpoint.

    Usage:
        response_model=ApiResponse[LocationOut]

    Returns:
        {
            "success": true,
            "message": "Location added successfully",
            "data": {...}
        }
    """
    success: bool = True
    message: str | None = None
    data: T
