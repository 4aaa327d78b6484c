"""
Trip plan models and the trip status lifecycle
"""

from datetime import datetime

from pydantic import Field, field_validator, model_validator

from hikeplanner.core.exceptions import ValidationError
from hikeplanner.models.common import (
    CamelModel,
    Coordinates,
    Difficulty,
    DocumentModel,
    FitnessLevel,
    NumberRange,
    TrailType,
    TripStatus,
    as_utc,
)

# Allowed moves out of each status; staying put is always allowed
TRIP_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    TripStatus.PLANNING.value: frozenset({TripStatus.CONFIRMED.value, TripStatus.CANCELLED.value}),
    TripStatus.CONFIRMED.value: frozenset({TripStatus.COMPLETED.value, TripStatus.CANCELLED.value}),
    TripStatus.COMPLETED.value: frozenset(),
    TripStatus.CANCELLED.value: frozenset(),
}


def validate_status_transition(current: str, target: str) -> None:
    """Raise ValidationError unless ``current -> target`` is a legal move."""
    current = TripStatus(current).value
    target = TripStatus(target).value
    if current == target:
        return
    if target not in TRIP_STATUS_TRANSITIONS[current]:
        raise ValidationError(f"Cannot change trip status from {current} to {target}")


class TripDates(CamelModel):
    start_date: datetime
    end_date: datetime
    flexibility: int = Field(default=0, ge=0, le=30, description="Days")

    normalize_dates = field_validator("start_date", "end_date")(as_utc)

    @model_validator(mode="after")
    def _check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class TripLocation(CamelModel):
    region: str = Field(..., min_length=1, max_length=100)
    coordinates: Coordinates
    radius: float = Field(..., ge=1, le=1000, description="Search radius in km")


class TripParticipants(CamelModel):
    count: int = Field(..., ge=1, le=50)
    fitness_levels: list[FitnessLevel] = Field(..., min_length=1)
    special_requirements: list[str] = Field(default_factory=list)


class TripPreferences(CamelModel):
    difficulty: list[Difficulty] = Field(..., min_length=1)
    duration: NumberRange
    distance: NumberRange
    elevation_gain: NumberRange
    trail_types: list[TrailType] = Field(..., min_length=1)


class Budget(CamelModel):
    amount: float = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)
    includes_accommodation: bool = False

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("Currency must be a three-letter code")
        return value.upper()


class TripPlanCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(default="", max_length=500)
    dates: TripDates
    location: TripLocation
    participants: TripParticipants
    preferences: TripPreferences
    equipment: list[str] = Field(default_factory=list)
    budget: Budget | None = None


class TripPlan(DocumentModel, TripPlanCreate):
    """Stored trip; partitioned by the owning user's id."""

    user_id: str
    status: TripStatus = TripStatus.PLANNING.value
    selected_trails: list[str] = Field(default_factory=list)


class TripPlanUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    status: TripStatus | None = None
    dates: TripDates | None = None
    location: TripLocation | None = None
    participants: TripParticipants | None = None
    preferences: TripPreferences | None = None
    selected_trails: list[str] | None = None
    equipment: list[str] | None = None
    budget: Budget | None = None


class TripStatusUpdate(CamelModel):
    status: TripStatus


class TripSearchCriteria(CamelModel):
    user_id: str | None = None
    status: list[TripStatus] | None = None
    region: str | None = None
    # Trips starting inside [start_date, end_date]
    start_date: datetime | None = None
    end_date: datetime | None = None
    difficulty: list[Difficulty] | None = None
    min_participants: int | None = Field(default=None, ge=1)
    max_participants: int | None = Field(default=None, ge=1)
    sort_by: str | None = None
    sort_order: str | None = None
    limit: int = Field(default=20, ge=1, le=100)
    continuation_token: str | None = None

    normalize_dates = field_validator("start_date", "end_date")(as_utc)


class TripStats(CamelModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    average_participants: float = 0
