"""
Generic repository over one document store.

Entity repositories subclass BaseRepository, name their model and say how the
partition key is derived from a document. Everything else (ids, timestamps,
optimistic updates, paging) is handled here.
"""

import logging
import uuid
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from hikeplanner.core.exceptions import (
    APIException,
    CreationError,
    NotFoundError,
    PreconditionFailedError,
    RepositoryError,
)
from hikeplanner.db.query import QuerySpec
from hikeplanner.db.store import ETAG_FIELD, DocumentStore
from hikeplanner.models.common import DocumentModel, Page, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DocumentModel)

# Fields a patch may never touch
IMMUTABLE_FIELDS = frozenset({"id", "partitionKey", "createdAt", ETAG_FIELD})


class BaseRepository(Generic[T]):
    model: type[T]
    entity_name = "Document"

    def __init__(self, store: DocumentStore):
        self.store = store

    def partition_key_for(self, document: dict[str, Any]) -> str:
        raise NotImplementedError

    def _to_model(self, document: dict[str, Any]) -> T:
        return self.model.model_validate(document)

    @staticmethod
    def _as_document(item: BaseModel | dict[str, Any]) -> dict[str, Any]:
        if isinstance(item, BaseModel):
            return item.model_dump(by_alias=True)
        return dict(item)

    async def create(self, item: BaseModel | dict[str, Any]) -> T:
        """
        Stamp id, timestamps and partition key, validate, then insert.
        """
        document = self._as_document(item)
        now = utcnow()
        document["id"] = document.get("id") or str(uuid.uuid4())
        document["createdAt"] = now
        document["updatedAt"] = now
        document["partitionKey"] = self.partition_key_for(document)
        document.pop(ETAG_FIELD, None)

        # Validation errors surface as 400s, not as creation failures
        validated = self._to_model(document).to_document()
        validated.pop(ETAG_FIELD, None)
        try:
            stored = await self.store.create(validated)
        except Exception as e:
            logger.error(f"Failed to create {self.entity_name} {document['id']}: {e}")
            raise CreationError(f"Failed to create {self.entity_name}", e) from e
        logger.info(f"Created {self.entity_name} {stored['id']} in partition {stored['partitionKey']}")
        return self._to_model(stored)

    async def find_by_id(self, id: str, partition_key: str) -> T | None:
        try:
            document = await self.store.read(id, partition_key)
        except Exception as e:
            raise RepositoryError(f"Failed to read {self.entity_name} {id}", e) from e
        return self._to_model(document) if document is not None else None

    async def update(self, id: str, partition_key: str, patch: dict[str, Any], etag: str) -> T:
        """
        Shallow-merge ``patch`` into the stored document.

        ``etag`` must match the stored ``_etag``; the replace is conditional on
        it as well, so a concurrent writer between read and write still loses.
        The merged document is revalidated with the entity model.
        """
        if not etag:
            raise PreconditionFailedError("An etag is required to update a document")

        current = await self.store.read(id, partition_key)
        if current is None:
            raise NotFoundError(self.entity_name, id)
        if current.get(ETAG_FIELD) != etag:
            raise PreconditionFailedError(f"{self.entity_name} was modified by another request")

        merged = dict(current)
        merged.update({k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS})
        merged["updatedAt"] = utcnow()

        document = self._to_model(merged).to_document()
        document.pop(ETAG_FIELD, None)
        stored = await self.store.replace(id, partition_key, document, etag=etag)
        return self._to_model(stored)

    async def current_etag(self, id: str, partition_key: str) -> str:
        """Etag of the stored document, for callers that did not read it first."""
        document = await self.store.read(id, partition_key)
        if document is None:
            raise NotFoundError(self.entity_name, id)
        return document[ETAG_FIELD]

    async def delete(self, id: str, partition_key: str) -> bool:
        """Idempotent; returns whether something was removed."""
        removed = await self.store.delete(id, partition_key)
        if removed:
            logger.info(f"Deleted {self.entity_name} {id}")
        return removed

    async def query(self, spec: QuerySpec, partition_key: str | None = None) -> list[T]:
        """Fetch every match by following continuation tokens."""
        items: list[T] = []
        token = None
        while True:
            page = await self.store.execute_query(spec, partition_key, continuation_token=token)
            items.extend(self._to_model(doc) for doc in page.items)
            token = page.continuation_token
            if not token:
                return items

    async def query_with_pagination(
        self,
        spec: QuerySpec,
        page_size: int,
        continuation_token: str | None = None,
        partition_key: str | None = None,
    ) -> Page[T]:
        page = await self.store.execute_query(
            spec,
            partition_key,
            max_item_count=page_size,
            continuation_token=continuation_token,
        )
        logger.debug(
            f"{self.entity_name} page: {len(page.items)} items, charge {page.request_charge}"
        )
        return Page(
            items=[self._to_model(doc) for doc in page.items],
            continuation_token=page.continuation_token,
            has_more=page.continuation_token is not None,
        )

    async def exists(self, id: str, partition_key: str) -> bool:
        try:
            return await self.store.read(id, partition_key) is not None
        except APIException as e:
            logger.warning(f"Existence check failed for {self.entity_name} {id}: {e.message}")
            return False

    async def count(self, spec: QuerySpec | None = None, partition_key: str | None = None) -> int:
        return await self.store.count(spec, partition_key)

    async def batch_create(self, items: list[BaseModel | dict[str, Any]]) -> list[T]:
        """
        Create each item independently.

        Failures are logged and skipped, so the result may be shorter than
        the input.
        """
        created: list[T] = []
        for item in items:
            try:
                created.append(await self.create(item))
            except (APIException, PydanticValidationError) as e:
                logger.warning(f"Skipping {self.entity_name} in batch: {e}")
        if len(created) < len(items):
            logger.warning(
                f"Batch create of {self.entity_name}: {len(created)}/{len(items)} succeeded"
            )
        return created
