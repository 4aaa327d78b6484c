"""
Trip plan repository; trips are partitioned by the owning user's id.
"""

import logging
from collections import Counter
from datetime import datetime

from hikeplanner.core.exceptions import NotFoundError
from hikeplanner.db.query import ASC, DESC, QueryBuilder, resolve_sort
from hikeplanner.models.common import Page
from hikeplanner.models.trip import (
    TripPlan,
    TripPlanCreate,
    TripPlanUpdate,
    TripSearchCriteria,
    TripStats,
    validate_status_transition,
)
from hikeplanner.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "createdAt": "createdAt",
    "updatedAt": "updatedAt",
    "title": "title",
    "startDate": "dates.startDate",
    "status": "status",
}


class TripRepository(BaseRepository[TripPlan]):
    model = TripPlan
    entity_name = "Trip"

    def partition_key_for(self, document):
        return document.get("userId")

    async def create_trip(self, user_id: str, data: TripPlanCreate) -> TripPlan:
        document = data.model_dump(by_alias=True)
        document["userId"] = user_id
        document["status"] = "planning"
        document["selectedTrails"] = []
        return await self.create(document)

    async def _require(self, trip_id: str, user_id: str) -> TripPlan:
        trip = await self.find_by_id(trip_id, user_id)
        if trip is None:
            raise NotFoundError(self.entity_name, trip_id)
        return trip

    async def update_trip(
        self, trip_id: str, user_id: str, updates: TripPlanUpdate, etag: str | None = None
    ) -> TripPlan:
        """
        Apply a partial update. A status change must follow the trip
        lifecycle and is checked before anything is written.
        """
        patch = updates.model_dump(by_alias=True, exclude_unset=True)
        current = await self._require(trip_id, user_id)
        if patch.get("status") is not None:
            validate_status_transition(current.status, patch["status"])
        return await self.update(trip_id, user_id, patch, etag or current.etag)

    async def find_by_user_id(
        self,
        user_id: str,
        status: str | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        limit: int = 20,
        continuation_token: str | None = None,
    ) -> Page[TripPlan]:
        builder = QueryBuilder().where_equals("userId", user_id)
        if status:
            builder.where_equals("status", status)
        sort_path, direction = resolve_sort(sort_by, sort_order, SORTABLE_FIELDS, "createdAt")
        spec = builder.order_by(sort_path, direction).build()
        return await self.query_with_pagination(spec, limit, continuation_token, partition_key=user_id)

    async def find_all_by_user(self, user_id: str) -> list[TripPlan]:
        spec = QueryBuilder().where_equals("userId", user_id).order_by("createdAt", DESC).build()
        return await self.query(spec, partition_key=user_id)

    async def find_by_status(
        self, status: str, limit: int = 20, continuation_token: str | None = None
    ) -> Page[TripPlan]:
        spec = QueryBuilder().where_equals("status", status).order_by("createdAt", DESC).build()
        return await self.query_with_pagination(spec, limit, continuation_token)

    async def find_by_region(
        self, region: str, limit: int = 20, continuation_token: str | None = None
    ) -> Page[TripPlan]:
        spec = (
            QueryBuilder()
            .where_equals("location.region", region, name="region")
            .order_by("dates.startDate", ASC)
            .build()
        )
        return await self.query_with_pagination(spec, limit, continuation_token)

    async def find_by_date_range(
        self,
        start_date: datetime,
        end_date: datetime,
        user_id: str | None = None,
        limit: int = 20,
        continuation_token: str | None = None,
    ) -> Page[TripPlan]:
        """Trips lying entirely inside [start_date, end_date]."""
        builder = QueryBuilder()
        if user_id:
            builder.where_equals("userId", user_id)
        spec = (
            builder.where("dates.startDate", "gte", start_date, name="startDate")
            .where("dates.endDate", "lte", end_date, name="endDate")
            .order_by("dates.startDate", ASC)
            .build()
        )
        return await self.query_with_pagination(spec, limit, continuation_token, partition_key=user_id)

    async def search_trips(self, criteria: TripSearchCriteria) -> tuple[Page[TripPlan], int | None]:
        """
        Multi-criteria search. Returns the page and, on the first page
        only, the total number of matches.
        """
        builder = QueryBuilder()
        if criteria.user_id:
            builder.where_equals("userId", criteria.user_id)
        builder.where_in("status", criteria.status, name="status")
        if criteria.region:
            builder.where_equals("location.region", criteria.region, name="region")
        builder.where_range("dates.startDate", criteria.start_date, criteria.end_date, name="startDate")
        builder.where_array_intersects("preferences.difficulty", criteria.difficulty, name="difficulty")
        builder.where_range(
            "participants.count", criteria.min_participants, criteria.max_participants, name="participants"
        )
        sort_path, direction = resolve_sort(criteria.sort_by, criteria.sort_order, SORTABLE_FIELDS, "createdAt")
        spec = builder.order_by(sort_path, direction).build()

        total = None
        if not criteria.continuation_token:
            total = await self.count(spec, criteria.user_id)
        page = await self.query_with_pagination(
            spec, criteria.limit, criteria.continuation_token, partition_key=criteria.user_id
        )
        return page, total

    async def update_status(self, trip_id: str, user_id: str, status: str, etag: str | None = None) -> TripPlan:
        return await self.update_trip(trip_id, user_id, TripPlanUpdate(status=status), etag)

    async def add_trail(self, trip_id: str, user_id: str, trail_id: str) -> TripPlan:
        """Idempotent: adding a trail that is already selected changes nothing."""
        trip = await self._require(trip_id, user_id)
        if trail_id in trip.selected_trails:
            return trip
        return await self.update(
            trip_id, user_id, {"selectedTrails": [*trip.selected_trails, trail_id]}, trip.etag
        )

    async def remove_trail(self, trip_id: str, user_id: str, trail_id: str) -> TripPlan:
        trip = await self._require(trip_id, user_id)
        if trail_id not in trip.selected_trails:
            return trip
        remaining = [t for t in trip.selected_trails if t != trail_id]
        return await self.update(trip_id, user_id, {"selectedTrails": remaining}, trip.etag)

    async def get_trip_stats(self, user_id: str | None = None) -> TripStats:
        """
        Totals by status and average party size.

        Loads every matching trip and reduces in memory; this does not scale
        past a modest number of trips.
        """
        if user_id:
            trips = await self.find_all_by_user(user_id)
        else:
            trips = await self.query(QueryBuilder().order_by("createdAt", DESC).build())
        total = len(trips)
        average = sum(t.participants.count for t in trips) / total if total else 0
        return TripStats(
            total=total,
            by_status=dict(Counter(t.status for t in trips)),
            average_participants=round(average, 2),
        )
