from fastapi import APIRouter, Depends

from hikeplanner.core.exceptions import NotFoundError
from hikeplanner.core.security import get_current_user_id
from hikeplanner.models.common import TripStatus
from hikeplanner.models.trip import TripPlan
from hikeplanner.models.user import UserPreferencesUpdate, UserProfileUpdate, UserStatistics
from hikeplanner.repositories import Repositories
from hikeplanner.router.dependencies import dump, get_if_match, get_repositories

router = APIRouter(prefix="/user", tags=["User"])


async def _current_user(repos: Repositories, user_id: str):
    user = await repos.users.find_by_id(user_id, user_id)
    if user is None:
        raise NotFoundError("User")
    return user


def _statistics(trips: list[TripPlan]) -> UserStatistics:
    by_status = {status.value: 0 for status in TripStatus}
    trails: set[str] = set()
    for trip in trips:
        by_status[trip.status] += 1
        trails.update(trip.selected_trails)
    return UserStatistics(
        total_trips=len(trips),
        active_trips=by_status[TripStatus.PLANNING.value] + by_status[TripStatus.CONFIRMED.value],
        completed_trips=by_status[TripStatus.COMPLETED.value],
        cancelled_trips=by_status[TripStatus.CANCELLED.value],
        trails_planned=len(trails),
    )


@router.get("/profile")
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    user = await _current_user(repos, user_id)
    return {"user": dump(user), "message": "Profile retrieved successfully"}


@router.put("/profile")
async def update_profile(
    payload: UserProfileUpdate,
    if_match: str | None = Depends(get_if_match),
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    user = await _current_user(repos, user_id)
    updated = await repos.users.update_profile(user_id, payload, if_match or user.etag)
    return {"user": dump(updated), "message": "Profile updated successfully"}


@router.get("/statistics")
async def get_statistics(
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    """Trip counts for the caller, reduced from their own partition."""
    await _current_user(repos, user_id)
    trips = await repos.trips.find_all_by_user(user_id)
    return {"statistics": dump(_statistics(trips)), "message": "Statistics retrieved successfully"}


@router.put("/preferences")
async def update_preferences(
    payload: UserPreferencesUpdate,
    if_match: str | None = Depends(get_if_match),
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    user = await repos.users.update_preferences(user_id, payload, if_match)
    return {"user": dump(user), "message": "Preferences updated successfully"}
