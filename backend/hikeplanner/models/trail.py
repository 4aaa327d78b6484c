"""
Trail catalogue models
"""

from pydantic import Field, field_validator, model_validator

from hikeplanner.models.common import (
    DIFFICULTY_RANK,
    CamelModel,
    Coordinates,
    Difficulty,
    DocumentModel,
    NumberRange,
    RangeFilter,
    TrailType,
)


class TrailCoordinates(CamelModel):
    start: Coordinates
    end: Coordinates
    waypoints: list[Coordinates] = Field(default_factory=list)


class TrailLocation(CamelModel):
    region: str = Field(..., min_length=1, max_length=100)
    park: str = Field(..., min_length=1, max_length=200)
    country: str = Field(..., min_length=1, max_length=100)
    coordinates: TrailCoordinates


class Duration(NumberRange):
    """Hours; a trail always takes some time."""

    min: float = Field(..., gt=0)


class TrailCharacteristics(CamelModel):
    difficulty: Difficulty
    distance: float = Field(..., ge=0, le=1000, description="Kilometers")
    duration: Duration
    elevation_gain: float = Field(..., ge=0, le=10000, description="Meters")
    elevation_profile: list[float] = Field(default_factory=list)
    trail_type: TrailType
    surface: list[str] = Field(..., min_length=1)
    # Derived from difficulty; stored so queries can sort on the scale
    difficulty_rank: int = 0

    @model_validator(mode="after")
    def _rank_difficulty(self):
        self.difficulty_rank = DIFFICULTY_RANK[self.difficulty]
        return self


class Seasonality(CamelModel):
    best_months: list[int] = Field(..., min_length=1)
    accessible_months: list[int] = Field(..., min_length=1)

    @field_validator("best_months", "accessible_months")
    @classmethod
    def _months_in_range(cls, months: list[int]) -> list[int]:
        for month in months:
            if month < 1 or month > 12:
                raise ValueError("Months must be between 1 and 12")
        return months


class TrailFeatures(CamelModel):
    scenic_views: bool = False
    water_features: bool = False
    wildlife: list[str] = Field(default_factory=list)
    seasonality: Seasonality


class TrailSafety(CamelModel):
    risk_level: int = Field(..., ge=1, le=5)
    common_hazards: list[str] = Field(default_factory=list)
    requires_permit: bool = False
    emergency_contacts: list[str] = Field(default_factory=list)


class TrailAmenities(CamelModel):
    parking: bool = False
    restrooms: bool = False
    camping: bool = False
    drinking_water: bool = False


class TrailRatings(CamelModel):
    average: float = Field(default=0, ge=0, le=5)
    count: int = Field(default=0, ge=0)
    # Star value ("1".."5") to number of ratings
    breakdown: dict[str, int] = Field(default_factory=dict)


class TrailCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    location: TrailLocation
    characteristics: TrailCharacteristics
    features: TrailFeatures
    safety: TrailSafety
    amenities: TrailAmenities = Field(default_factory=TrailAmenities)


class Trail(DocumentModel, TrailCreate):
    """Stored trail; partitioned by location.region."""

    ratings: TrailRatings = Field(default_factory=TrailRatings)
    is_active: bool = True


class TrailFeatureFilter(CamelModel):
    scenic_views: bool | None = None
    water_features: bool | None = None
    wildlife: list[str] | None = None


class TrailAmenityFilter(CamelModel):
    parking: bool | None = None
    restrooms: bool | None = None
    camping: bool | None = None
    drinking_water: bool | None = None


class TrailSearchFilters(CamelModel):
    region: str | None = None
    difficulty: list[Difficulty] | None = None
    distance: RangeFilter | None = None
    duration: RangeFilter | None = None
    elevation_gain: RangeFilter | None = None
    rating: RangeFilter | None = None
    trail_types: list[TrailType] | None = None
    features: TrailFeatureFilter | None = None
    amenities: TrailAmenityFilter | None = None
    max_risk_level: int | None = Field(default=None, ge=1, le=5)


class TrailSearchRequest(CamelModel):
    query: str | None = None
    filters: TrailSearchFilters = Field(default_factory=TrailSearchFilters)
    sort_by: str | None = None
    sort_order: str | None = None
    limit: int = Field(default=20, ge=1, le=100)
    continuation_token: str | None = None


class TrailSearchResult(CamelModel):
    trails: list[Trail] = Field(default_factory=list)
    total: int | None = None
    continuation_token: str | None = None
    has_more: bool = False


class TrailRatingRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5)


class RegionStatistics(CamelModel):
    region: str
    trail_count: int = 0
    average_distance: float = 0
    average_elevation_gain: float = 0
    difficulty_breakdown: dict[str, int] = Field(default_factory=dict)
