"""
Document store adapter.

The only layer that talks to the database. Documents are addressed by
(id, partitionKey); every write stamps a fresh ``_etag`` used for optimistic
concurrency on replace.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from pymongo import ReturnDocument
from pymongo.errors import (
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from hikeplanner.core.config import STORE_MAX_RETRIES, STORE_RETRY_BASE_DELAY_MS
from hikeplanner.core.exceptions import (
    APIException,
    BadRequestError,
    ConflictError,
    InternalError,
    NotFoundError,
    PreconditionFailedError,
    RateLimitError,
)
from hikeplanner.db.query import QuerySpec, decode_continuation_token, encode_continuation_token

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ITEM_COUNT = 100
ETAG_FIELD = "_etag"

# Cosmos DB's Mongo API reports throttling as 16500; some proxies surface 429
_THROTTLED_CODES = {16500, 429}
# BadValue, FailedToParse, TypeMismatch, InvalidOptions
_BAD_REQUEST_CODES = {2, 9, 14, 72}


@dataclass
class QueryPage:
    items: list[dict[str, Any]] = field(default_factory=list)
    continuation_token: str | None = None
    request_charge: float = 0.0


def new_etag() -> str:
    return uuid.uuid4().hex


class DocumentStore:
    """Contract shared by every backend."""

    def __init__(self, name: str):
        self.name = name

    async def create(self, item: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    async def read(self, id: str, partition_key: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def replace(
        self,
        id: str,
        partition_key: str,
        document: dict[str, Any],
        etag: str | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    async def delete(self, id: str, partition_key: str) -> bool:
        raise NotImplementedError

    async def count(self, spec: QuerySpec | None = None, partition_key: str | None = None) -> int:
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    async def _find(
        self, spec: QuerySpec, partition_key: str | None, limit: int
    ) -> tuple[list[dict[str, Any]], float]:
        """Return up to ``limit`` rows of ``spec`` in order, and the request charge."""
        raise NotImplementedError

    async def execute_query(
        self,
        spec: QuerySpec,
        partition_key: str | None = None,
        max_item_count: int | None = None,
        continuation_token: str | None = None,
    ) -> QueryPage:
        page_size = max_item_count or DEFAULT_MAX_ITEM_COUNT
        effective = spec
        if continuation_token:
            effective = spec.resume_after(decode_continuation_token(spec, continuation_token))

        logger.debug(
            "Executing query on %s (partition=%s, page_size=%d): %s",
            self.name,
            partition_key or "*",
            page_size,
            spec.text(),
        )
        # One extra row tells us whether another page exists
        rows, charge = await self._find(effective, partition_key, page_size + 1)
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        token = encode_continuation_token(spec, rows[-1]) if has_more else None
        return QueryPage(items=rows, continuation_token=token, request_charge=charge)


def classify_error(error: BaseException) -> APIException:
    """Translate a native driver error into the error taxonomy."""
    if isinstance(error, APIException):
        return error
    if isinstance(error, DuplicateKeyError):
        return ConflictError("Document with this id already exists in the partition")
    if isinstance(error, (ExecutionTimeout, NetworkTimeout, ServerSelectionTimeoutError)):
        return InternalError("Database request timed out")
    if isinstance(error, OperationFailure):
        if error.code in _THROTTLED_CODES:
            return RateLimitError("Request rate is too large")
        if error.code in _BAD_REQUEST_CODES:
            return BadRequestError("Malformed query")
        return InternalError(f"Database error {error.code}")
    if isinstance(error, PyMongoError):
        return InternalError("Database error")
    return InternalError(str(error) or error.__class__.__name__)


async def with_throttle_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = STORE_MAX_RETRIES,
    base_delay_ms: int = STORE_RETRY_BASE_DELAY_MS,
) -> T:
    """
    Run ``operation``, retrying throttled attempts with exponential backoff.

    Errors are classified before the retry decision; anything other than
    RateLimitError is raised immediately.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            error = classify_error(e)
            if not isinstance(error, RateLimitError) or attempt >= retries:
                if error is e:
                    raise
                raise error from e
            delay = (base_delay_ms / 1000.0) * (2 ** attempt)
            attempt += 1
            logger.warning("Store throttled, retry %d/%d in %.2fs", attempt, retries, delay)
            await asyncio.sleep(delay)


class MongoDocumentStore(DocumentStore):
    """
    One MongoDB collection per logical container.

    The (partitionKey, id) pair is unique; Mongo's own ``_id`` never leaves
    this class.
    """

    def __init__(self, collection, name: str | None = None):
        super().__init__(name or collection.name)
        self._collection = collection

    @staticmethod
    def _strip(document: dict[str, Any] | None) -> dict[str, Any] | None:
        if document is not None:
            document.pop("_id", None)
        return document

    async def create(self, item):
        document = dict(item)
        document[ETAG_FIELD] = new_etag()

        async def _insert():
            await self._collection.insert_one(document)
            return self._strip(document)

        try:
            return await with_throttle_retry(_insert)
        except APIException as e:
            logger.error("Error creating document in %s: %s", self.name, e.message)
            raise

    async def read(self, id, partition_key):
        async def _read():
            return await self._collection.find_one(
                {"partitionKey": partition_key, "id": id}, projection={"_id": 0}
            )

        return await with_throttle_retry(_read)

    async def replace(self, id, partition_key, document, etag=None):
        selector: dict[str, Any] = {"partitionKey": partition_key, "id": id}
        if etag is not None:
            selector[ETAG_FIELD] = etag
        replacement = {k: v for k, v in document.items() if k != "_id"}
        replacement[ETAG_FIELD] = new_etag()

        async def _replace():
            return await self._collection.find_one_and_replace(
                selector,
                replacement,
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )

        stored = await with_throttle_retry(_replace)
        if stored is not None:
            return stored
        if etag is not None and await self.read(id, partition_key) is not None:
            raise PreconditionFailedError("Document was modified by another request")
        raise NotFoundError("Document", id)

    async def delete(self, id, partition_key):
        async def _delete():
            return await self._collection.delete_one({"partitionKey": partition_key, "id": id})

        result = await with_throttle_retry(_delete)
        return result.deleted_count > 0

    def _filter(self, spec: QuerySpec | None, partition_key: str | None) -> dict[str, Any]:
        query = spec.to_mongo_filter() if spec is not None else {}
        if partition_key is None:
            return query
        if not query:
            return {"partitionKey": partition_key}
        return {"$and": [{"partitionKey": partition_key}, query]}

    async def _find(self, spec, partition_key, limit):
        started = time.perf_counter()

        async def _run():
            cursor = (
                self._collection.find(self._filter(spec, partition_key), projection={"_id": 0})
                .sort(spec.to_mongo_sort())
                .limit(limit)
            )
            return await cursor.to_list(length=limit)

        rows = await with_throttle_retry(_run)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return rows, round(elapsed_ms, 2)

    async def count(self, spec=None, partition_key=None):
        async def _count():
            return await self._collection.count_documents(self._filter(spec, partition_key))

        return await with_throttle_retry(_count)

    async def ping(self):
        try:
            await self._collection.database.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("Ping failed for %s: %s", self.name, e)
            return False
