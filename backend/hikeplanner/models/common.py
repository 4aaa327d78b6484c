"""
Common models shared by every entity
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class FitnessLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


# Trails use the same four-step scale as hikers
Difficulty = FitnessLevel

# Position on that scale, for ordering; beginner is 1
DIFFICULTY_RANK = {level.value: rank for rank, level in enumerate(FitnessLevel, start=1)}


class GroupSize(str, Enum):
    SOLO = "solo"
    SMALL = "small"
    LARGE = "large"
    ANY = "any"


class TrailType(str, Enum):
    LOOP = "loop"
    OUT_AND_BACK = "out-and-back"
    POINT_TO_POINT = "point-to-point"


class TripStatus(str, Enum):
    PLANNING = "planning"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire and in the store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=False)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class DocumentModel(CamelModel):
    """
    Fields every stored entity carries.

    id and partition_key are assigned by the repository on create;
    etag is assigned by the store on every write.
    """

    id: str | None = None
    partition_key: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    etag: str | None = Field(default=None, alias="_etag")


class Coordinates(CamelModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)


class NumberRange(CamelModel):
    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_order(self):
        if self.max < self.min:
            raise ValueError("Max value must be greater than or equal to min value")
        return self


class RangeFilter(CamelModel):
    """
    Optional bounds for a numeric filter.

    None means "no bound"; 0 is a real bound.
    """

    min: float | None = None
    max: float | None = None

    @property
    def is_empty(self) -> bool:
        return self.min is None and self.max is None


T = TypeVar("T")


class Page(CamelModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    continuation_token: str | None = None
    has_more: bool = False


class ErrorBody(BaseModel):
    message: str
    statusCode: int
    timestamp: str
    details: list[dict[str, Any]] | None = None


class ErrorResponse(BaseModel):
    """
    Unified error envelope
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "message": "Trip not found",
                    "statusCode": 404,
                    "timestamp": "2024-01-01T00:00:00+00:00",
                }
            }
        }
    )

    error: ErrorBody
