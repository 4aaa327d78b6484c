"""
Repository registry

Built once at startup from the document stores and shared by every request.
"""

from dataclasses import dataclass

from hikeplanner.db.database import RECOMMENDATIONS, TRAILS, TRIPS, USERS
from hikeplanner.db.store import DocumentStore
from hikeplanner.repositories.recommendation import RecommendationRepository
from hikeplanner.repositories.trail import TrailRepository
from hikeplanner.repositories.trip import TripRepository
from hikeplanner.repositories.user import UserRepository


@dataclass(frozen=True)
class Repositories:
    users: UserRepository
    trails: TrailRepository
    trips: TripRepository
    recommendations: RecommendationRepository

    @classmethod
    def from_stores(cls, stores: dict[str, DocumentStore]) -> "Repositories":
        return cls(
            users=UserRepository(stores[USERS]),
            trails=TrailRepository(stores[TRAILS]),
            trips=TripRepository(stores[TRIPS]),
            recommendations=RecommendationRepository(stores[RECOMMENDATIONS]),
        )

    async def ping(self) -> dict[str, bool]:
        return {
            "users": await self.users.store.ping(),
            "trails": await self.trails.store.ping(),
            "trips": await self.trips.store.ping(),
            "recommendations": await self.recommendations.store.ping(),
        }


__all__ = [
    "Repositories",
    "UserRepository",
    "TrailRepository",
    "TripRepository",
    "RecommendationRepository",
]
