"""
Trail repository; trails are partitioned by location.region so that
region-scoped searches stay inside one partition.
"""

import logging
from collections import Counter

from hikeplanner.core.exceptions import NotFoundError
from hikeplanner.db.query import ASC, DESC, QueryBuilder, resolve_sort
from hikeplanner.models.common import Page
from hikeplanner.models.trail import (
    RegionStatistics,
    Trail,
    TrailCreate,
    TrailSearchFilters,
    TrailSearchRequest,
    TrailSearchResult,
)
from hikeplanner.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("name", "description", "location.park", "location.region")

SORTABLE_FIELDS = {
    "rating": "ratings.average",
    "distance": "characteristics.distance",
    "difficulty": "characteristics.difficultyRank",
    "popularity": "ratings.count",
    "elevation": "characteristics.elevationGain",
    "name": "name",
}

# Top-rated lists ignore trails with too few ratings to be meaningful
TOP_RATED_MIN_COUNT = 5


class TrailRepository(BaseRepository[Trail]):
    model = Trail
    entity_name = "Trail"

    def partition_key_for(self, document):
        return (document.get("location") or {}).get("region")

    @staticmethod
    def _active() -> QueryBuilder:
        return QueryBuilder().where_equals("isActive", True)

    async def create_trail(self, data: TrailCreate) -> Trail:
        document = data.model_dump(by_alias=True)
        document["isActive"] = True
        document["ratings"] = {"average": 0, "count": 0, "breakdown": {}}
        return await self.create(document)

    async def find_by_region(
        self, region: str, limit: int = 20, continuation_token: str | None = None
    ) -> Page[Trail]:
        spec = (
            self._active()
            .where_equals("location.region", region, name="region")
            .order_by("ratings.average", DESC)
            .build()
        )
        return await self.query_with_pagination(spec, limit, continuation_token, partition_key=region)

    async def find_by_difficulty(self, difficulty: str, limit: int = 20) -> list[Trail]:
        spec = (
            self._active()
            .where_equals("characteristics.difficulty", difficulty, name="difficulty")
            .order_by("ratings.average", DESC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit)).items

    @staticmethod
    def _apply_filters(builder: QueryBuilder, filters: TrailSearchFilters) -> QueryBuilder:
        builder.where_in("characteristics.difficulty", filters.difficulty, name="difficulty")
        if filters.region:
            builder.where_equals("location.region", filters.region, name="region")
        if filters.distance:
            builder.where_range("characteristics.distance", filters.distance.min, filters.distance.max, name="distance")
        if filters.duration:
            # A trail fits when its whole duration range lies inside the bounds
            if filters.duration.min is not None:
                builder.where("characteristics.duration.min", "gte", filters.duration.min, name="minDuration")
            if filters.duration.max is not None:
                builder.where("characteristics.duration.max", "lte", filters.duration.max, name="maxDuration")
        if filters.elevation_gain:
            builder.where_range(
                "characteristics.elevationGain",
                filters.elevation_gain.min,
                filters.elevation_gain.max,
                name="elevation",
            )
        if filters.rating:
            builder.where_range("ratings.average", filters.rating.min, filters.rating.max, name="rating")
        builder.where_in("characteristics.trailType", filters.trail_types, name="trailType")
        if filters.features:
            if filters.features.scenic_views is not None:
                builder.where_equals("features.scenicViews", filters.features.scenic_views, name="scenicViews")
            if filters.features.water_features is not None:
                builder.where_equals("features.waterFeatures", filters.features.water_features, name="waterFeatures")
            builder.where_array_intersects("features.wildlife", filters.features.wildlife, name="wildlife")
        if filters.amenities:
            for field, value in filters.amenities.model_dump(by_alias=True).items():
                if value is not None:
                    builder.where_equals(f"amenities.{field}", value, name=field)
        if filters.max_risk_level is not None:
            builder.where("safety.riskLevel", "lte", filters.max_risk_level, name="maxRiskLevel")
        return builder

    async def search_trails(self, request: TrailSearchRequest) -> TrailSearchResult:
        """
        Filtered, sorted, paged search over active trails.

        The total is only computed for the first page; later pages carry a
        continuation token instead. A region filter keeps the query inside
        that region's partition.
        """
        builder = self._active().where_text(SEARCH_FIELDS, request.query)
        self._apply_filters(builder, request.filters)
        sort_path, sort_order = resolve_sort(request.sort_by, request.sort_order, SORTABLE_FIELDS, "rating")
        spec = builder.order_by(sort_path, sort_order).build()

        partition_key = request.filters.region or None
        total = None
        if not request.continuation_token:
            total = await self.count(spec, partition_key)
        page = await self.query_with_pagination(
            spec, request.limit, request.continuation_token, partition_key=partition_key
        )
        return TrailSearchResult(
            trails=page.items,
            total=total,
            continuation_token=page.continuation_token,
            has_more=page.has_more,
        )

    async def find_top_rated_trails(self, limit: int = 10, region: str | None = None) -> list[Trail]:
        builder = self._active().where("ratings.count", "gt", TOP_RATED_MIN_COUNT, name="minRatingCount")
        if region:
            builder.where_equals("location.region", region, name="region")
        spec = builder.order_by("ratings.average", DESC).build()
        return (await self.query_with_pagination(spec, limit, partition_key=region)).items

    async def find_trails_by_park(self, park: str, limit: int = 20) -> list[Trail]:
        spec = (
            self._active()
            .where_equals("location.park", park, name="park")
            .order_by("ratings.average", DESC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit)).items

    async def find_recommended_trails(
        self,
        difficulty: str | None = None,
        max_distance: float | None = None,
        region: str | None = None,
        limit: int = 5,
    ) -> list[Trail]:
        builder = self._active()
        if difficulty:
            builder.where_equals("characteristics.difficulty", difficulty, name="difficulty")
        builder.where_range("characteristics.distance", None, max_distance, name="distance")
        if region:
            builder.where_equals("location.region", region, name="region")
        spec = builder.order_by("ratings.average", DESC).build()
        return (await self.query_with_pagination(spec, limit, partition_key=region)).items

    async def find_by_risk_level(self, max_risk_level: int, limit: int = 20) -> list[Trail]:
        spec = (
            self._active()
            .where("safety.riskLevel", "lte", max_risk_level, name="maxRiskLevel")
            .order_by("safety.riskLevel", ASC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit)).items

    async def find_by_ids(self, trail_ids: list[str]) -> list[Trail]:
        """
        Cross-partition lookup of several trails. Ids with no stored trail
        are simply absent from the result.
        """
        if not trail_ids:
            return []
        spec = QueryBuilder().where_in("id", trail_ids, name="trailId").order_by("id", ASC).build()
        return await self.query(spec)

    async def find_any_partition(self, trail_id: str) -> Trail | None:
        """Look a trail up by id alone, when the caller does not know its region."""
        found = await self.find_by_ids([trail_id])
        return found[0] if found else None

    async def update_trail_rating(self, trail_id: str, region: str, rating: int) -> Trail:
        """
        Fold one new rating into the running average.

        The read and the write share the trail's etag, so two raters racing
        on the same trail cannot lose each other's vote silently.
        """
        trail = await self.find_by_id(trail_id, region)
        if trail is None:
            raise NotFoundError(self.entity_name, trail_id)
        ratings = trail.ratings
        count = ratings.count + 1
        average = round((ratings.average * ratings.count + rating) / count, 2)
        breakdown = dict(ratings.breakdown)
        breakdown[str(rating)] = breakdown.get(str(rating), 0) + 1
        return await self.update(
            trail_id,
            region,
            {"ratings": {"average": average, "count": count, "breakdown": breakdown}},
            trail.etag,
        )

    async def _set_active(self, trail_id: str, region: str, active: bool) -> Trail:
        etag = await self.current_etag(trail_id, region)
        return await self.update(trail_id, region, {"isActive": active}, etag)

    async def deactivate_trail(self, trail_id: str, region: str) -> Trail:
        return await self._set_active(trail_id, region, False)

    async def reactivate_trail(self, trail_id: str, region: str) -> Trail:
        return await self._set_active(trail_id, region, True)

    async def get_region_statistics(self, region: str | None = None) -> list[RegionStatistics]:
        """
        Per-region trail statistics.

        Reduces the full set of active trails in memory; fine for a catalogue
        of a few thousand trails, not a replacement for a server-side
        aggregation.
        """
        builder = self._active()
        if region:
            builder.where_equals("location.region", region, name="region")
        trails = await self.query(builder.order_by("location.region", ASC).build(), partition_key=region)

        grouped: dict[str, list[Trail]] = {}
        for trail in trails:
            grouped.setdefault(trail.location.region, []).append(trail)

        stats = []
        for name, members in grouped.items():
            count = len(members)
            stats.append(
                RegionStatistics(
                    region=name,
                    trail_count=count,
                    average_distance=round(sum(t.characteristics.distance for t in members) / count, 2),
                    average_elevation_gain=round(
                        sum(t.characteristics.elevation_gain for t in members) / count, 2
                    ),
                    difficulty_breakdown=dict(Counter(t.characteristics.difficulty for t in members)),
                )
            )
        return stats
