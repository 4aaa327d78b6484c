"""
User profile repository; each user is its own partition.
"""

import logging
import uuid

from hikeplanner.core.exceptions import ConflictError, NotFoundError
from hikeplanner.db.query import ASC, DESC, QueryBuilder
from hikeplanner.models.common import Page
from hikeplanner.models.user import (
    UserPreferenceFilter,
    UserPreferencesUpdate,
    UserProfile,
    UserProfileCreate,
    UserProfileUpdate,
)
from hikeplanner.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("displayName", "location.city", "location.region")


class UserRepository(BaseRepository[UserProfile]):
    model = UserProfile
    entity_name = "User"

    def partition_key_for(self, document):
        return document["id"]

    @staticmethod
    def _active() -> QueryBuilder:
        return QueryBuilder().where_equals("isActive", True)

    async def create_user(self, data: UserProfileCreate) -> UserProfile:
        if await self.find_by_email(data.email) is not None:
            raise ConflictError("A user with this email already exists")
        document = data.model_dump(by_alias=True)
        document["id"] = str(uuid.uuid4())
        document["isActive"] = True
        return await self.create(document)

    async def find_by_email(self, email: str) -> UserProfile | None:
        """Cross-partition lookup used by login; active users only."""
        spec = self._active().where_equals("email", email.lower()).build()
        page = await self.query_with_pagination(spec, page_size=1)
        return page.items[0] if page.items else None

    async def find_active_users(
        self, limit: int = 50, continuation_token: str | None = None
    ) -> Page[UserProfile]:
        spec = self._active().order_by("createdAt", DESC).build()
        return await self.query_with_pagination(spec, limit, continuation_token)

    async def find_by_fitness_level(self, fitness_level: str) -> list[UserProfile]:
        spec = self._active().where_equals("fitnessLevel", fitness_level).build()
        return await self.query(spec)

    async def find_by_location(self, region: str, limit: int = 20) -> list[UserProfile]:
        spec = self._active().where_equals("location.region", region, name="region").build()
        page = await self.query_with_pagination(spec, limit)
        return page.items

    async def search_users(self, term: str, limit: int = 20) -> list[UserProfile]:
        spec = (
            self._active()
            .where_text(SEARCH_FIELDS, term, name="searchTerm")
            .order_by("displayName", ASC)
            .build()
        )
        page = await self.query_with_pagination(spec, limit)
        return page.items

    async def find_users_with_preferences(self, criteria: UserPreferenceFilter) -> list[UserProfile]:
        spec = (
            self._active()
            .where_in("fitnessLevel", criteria.fitness_levels, name="fitnessLevel")
            .where_range("preferences.maxHikingDistance", criteria.min_max_distance, None, name="hikingDistance")
            .where_array_intersects("preferences.terrainTypes", criteria.terrain_types, name="terrainType")
            .order_by("createdAt", DESC)
            .build()
        )
        return await self.query(spec)

    async def update_profile(
        self, user_id: str, updates: UserProfileUpdate, etag: str | None = None
    ) -> UserProfile:
        etag = etag or await self.current_etag(user_id, user_id)
        return await self.update(user_id, user_id, updates.model_dump(by_alias=True, exclude_unset=True), etag)

    async def update_preferences(
        self, user_id: str, updates: UserPreferencesUpdate, etag: str | None = None
    ) -> UserProfile:
        """Merge the given preference fields into the stored preferences."""
        current = await self.find_by_id(user_id, user_id)
        if current is None:
            raise NotFoundError(self.entity_name, user_id)
        preferences = current.preferences.model_dump(by_alias=True)
        preferences.update(updates.model_dump(by_alias=True, exclude_unset=True))
        return await self.update(user_id, user_id, {"preferences": preferences}, etag or current.etag)

    async def _set_active(self, user_id: str, active: bool) -> UserProfile:
        etag = await self.current_etag(user_id, user_id)
        user = await self.update(user_id, user_id, {"isActive": active}, etag)
        logger.info(f"User {user_id} {'reactivated' if active else 'deactivated'}")
        return user

    async def deactivate_user(self, user_id: str) -> UserProfile:
        return await self._set_active(user_id, False)

    async def reactivate_user(self, user_id: str) -> UserProfile:
        return await self._set_active(user_id, True)
