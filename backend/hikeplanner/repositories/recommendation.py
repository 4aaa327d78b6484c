"""
Recommendation repository; recommendations are partitioned by user id.

Recommendations are disposable. A TTL index on ``expiresAt`` removes them on
the server, and every read path filters on ``expiresAt > @now`` so an
expired document is never served before the server gets to it.
"""

import logging
from datetime import timedelta

from hikeplanner.core.config import RECOMMENDATION_TTL_DAYS
from hikeplanner.core.exceptions import APIException, NotFoundError
from hikeplanner.db.query import ASC, DESC, QueryBuilder
from hikeplanner.models.common import Page, utcnow
from hikeplanner.models.recommendation import (
    AIRecommendation,
    AIRecommendationCreate,
    RecommendationFeedback,
    RecommendationStats,
    default_expiry,
)
from hikeplanner.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 0.8
FACTOR_FIELDS = ("fitnessMatch", "preferenceAlignment", "seasonalSuitability", "safetyConsiderations")


class RecommendationRepository(BaseRepository[AIRecommendation]):
    model = AIRecommendation
    entity_name = "Recommendation"

    def partition_key_for(self, document):
        return document.get("userId")

    @staticmethod
    def _active(user_id: str | None = None) -> QueryBuilder:
        builder = QueryBuilder()
        if user_id:
            builder.where_equals("userId", user_id)
        return builder.where("expiresAt", "gt", utcnow(), name="now", volatile=True)

    async def create_recommendation(self, user_id: str, data: AIRecommendationCreate) -> AIRecommendation:
        document = data.model_dump(by_alias=True)
        document["userId"] = user_id
        document["expiresAt"] = data.expires_at or default_expiry()
        return await self.create(document)

    async def find_by_user_id(
        self, user_id: str, limit: int = 20, continuation_token: str | None = None
    ) -> Page[AIRecommendation]:
        spec = self._active(user_id).order_by("createdAt", DESC).build()
        return await self.query_with_pagination(spec, limit, continuation_token, partition_key=user_id)

    async def find_by_trip_id(self, trip_id: str, user_id: str) -> list[AIRecommendation]:
        spec = self._active(user_id).where_equals("tripId", trip_id).order_by("confidence", DESC).build()
        return await self.query(spec, partition_key=user_id)

    async def find_high_confidence_recommendations(
        self, user_id: str, threshold: float = HIGH_CONFIDENCE_THRESHOLD, limit: int = 10
    ) -> list[AIRecommendation]:
        spec = (
            self._active(user_id)
            .where("confidence", "gte", threshold, name="confidenceThreshold")
            .order_by("confidence", DESC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit, partition_key=user_id)).items

    async def find_recommendations_for_trail(self, trail_id: str, limit: int = 20) -> list[AIRecommendation]:
        """Cross-partition: every active recommendation that includes the trail."""
        spec = (
            self._active()
            .where_array_contains("trailIds", trail_id, name="trailId")
            .order_by("confidence", DESC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit)).items

    async def find_expired_recommendations(self, limit: int = 100) -> list[AIRecommendation]:
        spec = (
            QueryBuilder()
            .where("expiresAt", "lte", utcnow(), name="now", volatile=True)
            .order_by("expiresAt", ASC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit)).items

    async def delete_expired_recommendations(self) -> int:
        """
        Sweep expired recommendations the TTL index has not removed yet.

        A failed delete is logged and skipped; the count only includes
        documents actually removed.
        """
        deleted = 0
        for recommendation in await self.find_expired_recommendations():
            try:
                if await self.delete(recommendation.id, recommendation.partition_key):
                    deleted += 1
            except APIException as e:
                logger.warning(f"Failed to delete expired recommendation {recommendation.id}: {e}")
        if deleted:
            logger.info(f"Deleted {deleted} expired recommendations")
        return deleted

    async def _require(self, recommendation_id: str, user_id: str) -> AIRecommendation:
        recommendation = await self.find_by_id(recommendation_id, user_id)
        if recommendation is None:
            raise NotFoundError(self.entity_name, recommendation_id)
        return recommendation

    async def extend_recommendation_expiry(
        self, recommendation_id: str, user_id: str, additional_days: int = RECOMMENDATION_TTL_DAYS
    ) -> AIRecommendation:
        """Push the expiry out by ``additional_days`` from whichever is later, now or the current expiry."""
        recommendation = await self._require(recommendation_id, user_id)
        base = max(recommendation.expires_at or utcnow(), utcnow())
        return await self.update(
            recommendation_id,
            user_id,
            {"expiresAt": base + timedelta(days=additional_days)},
            recommendation.etag,
        )

    async def record_feedback(
        self, recommendation_id: str, user_id: str, feedback: RecommendationFeedback
    ) -> AIRecommendation:
        recommendation = await self._require(recommendation_id, user_id)
        document = feedback.model_dump(by_alias=True)
        document["submittedAt"] = utcnow()
        return await self.update(recommendation_id, user_id, {"feedback": document}, recommendation.etag)

    async def get_recommendation_stats(self, user_id: str) -> RecommendationStats:
        """
        Per-user summary, expired recommendations included.

        Reduced in memory over the user's whole partition.
        """
        recommendations = await self.query(
            QueryBuilder().where_equals("userId", user_id).order_by("createdAt", DESC).build(),
            partition_key=user_id,
        )
        now = utcnow()
        total = len(recommendations)
        active = sum(1 for r in recommendations if r.expires_at and r.expires_at > now)
        rated = [r.feedback.rating for r in recommendations if r.feedback is not None]

        def _average(values) -> float:
            values = list(values)
            return round(sum(values) / len(values), 2) if values else 0

        factors = [r.factors.model_dump(by_alias=True) for r in recommendations]
        return RecommendationStats(
            total=total,
            active=active,
            expired=total - active,
            average_confidence=_average(r.confidence for r in recommendations),
            top_factors={name: _average(f[name] for f in factors) for name in FACTOR_FIELDS},
            with_feedback=len(rated),
            average_feedback_rating=_average(rated) if rated else None,
        )

    async def find_similar_recommendations(
        self,
        user_id: str,
        trail_ids: list[str],
        confidence_threshold: float = 0.6,
        limit: int = 5,
    ) -> list[AIRecommendation]:
        """Active recommendations for the user sharing at least one trail with ``trail_ids``."""
        if not trail_ids:
            return []
        spec = (
            self._active(user_id)
            .where("confidence", "gte", confidence_threshold, name="confidenceThreshold")
            .where_array_intersects("trailIds", trail_ids, name="trailId")
            .order_by("confidence", DESC)
            .build()
        )
        return (await self.query_with_pagination(spec, limit, partition_key=user_id)).items
