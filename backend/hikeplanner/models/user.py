"""
User profile models
"""

from pydantic import ConfigDict, EmailStr, Field, field_validator

from hikeplanner.models.common import (
    CamelModel,
    Coordinates,
    Difficulty,
    DocumentModel,
    FitnessLevel,
    GroupSize,
)


class UserPreferences(CamelModel):
    preferred_difficulty: list[Difficulty] = Field(..., min_length=1)
    max_hiking_distance: float = Field(..., ge=0, le=500, description="Kilometers")
    terrain_types: list[str] = Field(..., min_length=1)
    group_size: GroupSize = GroupSize.ANY.value


class UserLocation(CamelModel):
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)
    region: str | None = Field(default=None, max_length=100)
    coordinates: Coordinates | None = None


class UserProfileCreate(CamelModel):
    # Merged with CamelModel's config
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "displayName": "Alex Walker",
                "fitnessLevel": "intermediate",
                "preferences": {
                    "preferredDifficulty": ["intermediate", "advanced"],
                    "maxHikingDistance": 15,
                    "terrainTypes": ["mountain", "forest"],
                    "groupSize": "small",
                },
                "location": {
                    "city": "Boulder",
                    "state": "CO",
                    "country": "USA",
                    "region": "colorado",
                },
            }
        }
    )

    email: EmailStr
    display_name: str = Field(..., min_length=2, max_length=50)
    fitness_level: FitnessLevel
    preferences: UserPreferences
    location: UserLocation

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class UserProfile(DocumentModel, UserProfileCreate):
    """
    User profile as stored in the users collection
    Partitioned by its own id.
    """

    is_active: bool = True


class UserProfileUpdate(CamelModel):
    """Top-level fields replace the stored value wholesale."""

    display_name: str | None = Field(default=None, min_length=2, max_length=50)
    fitness_level: FitnessLevel | None = None
    preferences: UserPreferences | None = None
    location: UserLocation | None = None


class UserPreferencesUpdate(CamelModel):
    """Partial preferences, merged into the stored preferences."""

    preferred_difficulty: list[Difficulty] | None = Field(default=None, min_length=1)
    max_hiking_distance: float | None = Field(default=None, ge=0, le=500)
    terrain_types: list[str] | None = Field(default=None, min_length=1)
    group_size: GroupSize | None = None


class UserPreferenceFilter(CamelModel):
    fitness_levels: list[FitnessLevel] | None = None
    # Users willing to hike at least this far
    min_max_distance: float | None = None
    terrain_types: list[str] | None = None


class UserStatistics(CamelModel):
    total_trips: int = 0
    active_trips: int = 0
    completed_trips: int = 0
    cancelled_trips: int = 0
    trails_planned: int = 0
