"""
Document store behaviour: the in-memory backend, driver error classification,
throttle retries and the Mongo adapter against a mocked collection.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import DuplicateKeyError, ExecutionTimeout, OperationFailure, PyMongoError

from hikeplanner.core.exceptions import (
    BadRequestError,
    ConflictError,
    InternalError,
    NotFoundError,
    PreconditionFailedError,
    RateLimitError,
)
from hikeplanner.db.memory import MemoryDocumentStore
from hikeplanner.db.query import ASC, DESC, QueryBuilder, decode_continuation_token
from hikeplanner.db.store import ETAG_FIELD, MongoDocumentStore, classify_error, with_throttle_retry


def _doc(id, pk="p1", **fields):
    return {"id": id, "partitionKey": pk, **fields}


@pytest.mark.asyncio
async def test_memory_create_stamps_etag_and_rejects_duplicates():
    store = MemoryDocumentStore("things")
    created = await store.create(_doc("a", score=1))

    assert created[ETAG_FIELD]
    with pytest.raises(ConflictError):
        await store.create(_doc("a", score=2))
    # Same id in another partition is a different document
    await store.create(_doc("a", pk="p2"))
    assert store.size() == 2


@pytest.mark.asyncio
async def test_memory_read_missing_returns_none():
    store = MemoryDocumentStore()
    assert await store.read("nope", "p1") is None


@pytest.mark.asyncio
async def test_memory_returned_documents_are_copies():
    store = MemoryDocumentStore()
    created = await store.create(_doc("a", tags=["x"]))
    created["tags"].append("y")

    assert (await store.read("a", "p1"))["tags"] == ["x"]


@pytest.mark.asyncio
async def test_memory_replace_checks_etag():
    store = MemoryDocumentStore()
    created = await store.create(_doc("a", score=1))

    updated = await store.replace("a", "p1", _doc("a", score=2), etag=created[ETAG_FIELD])
    assert updated["score"] == 2
    assert updated[ETAG_FIELD] != created[ETAG_FIELD]

    with pytest.raises(PreconditionFailedError):
        await store.replace("a", "p1", _doc("a", score=3), etag=created[ETAG_FIELD])
    assert (await store.read("a", "p1"))["score"] == 2


@pytest.mark.asyncio
async def test_memory_replace_missing_raises_not_found():
    store = MemoryDocumentStore()
    with pytest.raises(NotFoundError):
        await store.replace("ghost", "p1", _doc("ghost"))


@pytest.mark.asyncio
async def test_memory_delete_is_idempotent():
    store = MemoryDocumentStore()
    await store.create(_doc("a"))

    assert await store.delete("a", "p1") is True
    assert await store.delete("a", "p1") is False


@pytest.mark.asyncio
async def test_memory_pagination_visits_every_row_once():
    store = MemoryDocumentStore()
    for index in range(7):
        await store.create(_doc(f"d{index}", score=index % 3))
    spec = QueryBuilder().order_by("score", ASC).build()

    seen, token, pages = [], None, 0
    while True:
        page = await store.execute_query(spec, max_item_count=3, continuation_token=token)
        seen.extend(doc["id"] for doc in page.items)
        pages += 1
        token = page.continuation_token
        if not token:
            break

    assert pages == 3
    assert sorted(seen) == [f"d{index}" for index in range(7)]
    assert len(seen) == len(set(seen))


@pytest.mark.asyncio
async def test_memory_query_is_scoped_to_partition():
    store = MemoryDocumentStore()
    await store.create(_doc("a", pk="p1", kind="x"))
    await store.create(_doc("b", pk="p2", kind="x"))
    spec = QueryBuilder().where_equals("kind", "x").build()

    scoped = await store.execute_query(spec, partition_key="p1")
    everywhere = await store.execute_query(spec)

    assert [doc["id"] for doc in scoped.items] == ["a"]
    assert {doc["id"] for doc in everywhere.items} == {"a", "b"}
    assert await store.count(spec, partition_key="p2") == 1
    assert await store.count() == 2


@pytest.mark.asyncio
async def test_memory_rejects_token_from_another_query():
    store = MemoryDocumentStore()
    for index in range(3):
        await store.create(_doc(f"d{index}", score=index))
    by_score = QueryBuilder().order_by("score", ASC).build()
    by_id = QueryBuilder().build()

    page = await store.execute_query(by_score, max_item_count=1)
    with pytest.raises(BadRequestError):
        await store.execute_query(by_id, max_item_count=1, continuation_token=page.continuation_token)


@pytest.mark.parametrize(
    "error, expected",
    [
        (DuplicateKeyError("dup", code=11000), ConflictError),
        (OperationFailure("throttled", code=16500), RateLimitError),
        (OperationFailure("bad value", code=2), BadRequestError),
        (OperationFailure("other", code=8000), InternalError),
        (ExecutionTimeout("slow", code=50), InternalError),
        (PyMongoError("boom"), InternalError),
        (RuntimeError("unexpected"), InternalError),
    ],
)
def test_classify_error(error, expected):
    assert isinstance(classify_error(error), expected)


def test_classify_error_passes_taxonomy_errors_through():
    error = PreconditionFailedError("stale")
    assert classify_error(error) is error


@pytest.mark.asyncio
async def test_throttle_retry_succeeds_after_throttling():
    operation = AsyncMock(
        side_effect=[OperationFailure("t", code=16500), OperationFailure("t", code=16500), "ok"]
    )

    assert await with_throttle_retry(operation, retries=3, base_delay_ms=0) == "ok"
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_throttle_retry_gives_up_after_bounded_attempts():
    operation = AsyncMock(side_effect=OperationFailure("t", code=16500))

    with pytest.raises(RateLimitError):
        await with_throttle_retry(operation, retries=2, base_delay_ms=0)
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_throttle_retry_does_not_retry_other_errors():
    operation = AsyncMock(side_effect=OperationFailure("bad", code=2))

    with pytest.raises(BadRequestError):
        await with_throttle_retry(operation, retries=3, base_delay_ms=0)
    assert operation.await_count == 1


def _mongo_store():
    collection = MagicMock()
    collection.name = "trips"
    return MongoDocumentStore(collection), collection


def test_mongo_filter_adds_partition_scope():
    store, _ = _mongo_store()
    spec = QueryBuilder().where_equals("status", "planning").build()

    assert store._filter(spec, "user-1") == {"$and": [{"partitionKey": "user-1"}, {"status": "planning"}]}
    assert store._filter(QueryBuilder().build(), "user-1") == {"partitionKey": "user-1"}
    assert store._filter(spec, None) == {"status": "planning"}


@pytest.mark.asyncio
async def test_mongo_create_hides_native_id():
    store, collection = _mongo_store()

    async def insert_one(document):
        document["_id"] = "object-id"

    collection.insert_one = AsyncMock(side_effect=insert_one)
    created = await store.create(_doc("a"))

    assert "_id" not in created
    assert created[ETAG_FIELD]


@pytest.mark.asyncio
async def test_mongo_create_duplicate_maps_to_conflict():
    store, collection = _mongo_store()
    collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("dup", code=11000))

    with pytest.raises(ConflictError):
        await store.create(_doc("a"))


@pytest.mark.asyncio
async def test_mongo_replace_with_stale_etag_is_precondition_failure():
    store, collection = _mongo_store()
    collection.find_one_and_replace = AsyncMock(return_value=None)
    collection.find_one = AsyncMock(return_value=_doc("a", _etag="newer"))

    with pytest.raises(PreconditionFailedError):
        await store.replace("a", "p1", _doc("a"), etag="older")

    selector = collection.find_one_and_replace.await_args.args[0]
    assert selector == {"partitionKey": "p1", "id": "a", ETAG_FIELD: "older"}


@pytest.mark.asyncio
async def test_mongo_replace_missing_is_not_found():
    store, collection = _mongo_store()
    collection.find_one_and_replace = AsyncMock(return_value=None)
    collection.find_one = AsyncMock(return_value=None)

    with pytest.raises(NotFoundError):
        await store.replace("a", "p1", _doc("a"), etag="older")


@pytest.mark.asyncio
async def test_mongo_delete_reports_whether_anything_was_removed():
    store, collection = _mongo_store()
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))

    assert await store.delete("a", "p1") is False


def _cursor(rows):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=rows)
    return cursor


@pytest.mark.asyncio
async def test_mongo_query_fetches_one_extra_row_and_tokens_the_last_returned():
    store, collection = _mongo_store()
    spec = QueryBuilder().where_equals("status", "planning").order_by("createdAt", DESC).build()
    rows = [
        _doc("c", status="planning", createdAt="2030-01-03"),
        _doc("b", status="planning", createdAt="2030-01-02"),
        _doc("a", status="planning", createdAt="2030-01-01"),
    ]
    cursor = _cursor(rows)
    collection.find.return_value = cursor

    page = await store.execute_query(spec, max_item_count=2)

    cursor.sort.assert_called_once_with([("createdAt", -1), ("id", -1)])
    cursor.limit.assert_called_once_with(3)
    assert [row["id"] for row in page.items] == ["c", "b"]
    assert decode_continuation_token(spec, page.continuation_token) == ["2030-01-02", "b"]
    assert collection.find.call_args.args[0] == {"status": "planning"}
    assert collection.find.call_args.kwargs["projection"] == {"_id": 0}


@pytest.mark.asyncio
async def test_mongo_query_resumes_with_keyset_filter():
    store, collection = _mongo_store()
    spec = QueryBuilder().where_equals("status", "planning").order_by("createdAt", DESC).build()
    collection.find.return_value = _cursor([_doc("c", createdAt="2030-01-03"), _doc("b", createdAt="2030-01-02")])
    first = await store.execute_query(spec, max_item_count=1)

    collection.find.return_value = _cursor([_doc("b", createdAt="2030-01-02")])
    second = await store.execute_query(spec, max_item_count=1, continuation_token=first.continuation_token)

    assert collection.find.call_args.args[0] == {
        "$and": [
            {"status": "planning"},
            {
                "$or": [
                    {"createdAt": {"$lt": "2030-01-03"}},
                    {"$and": [{"createdAt": "2030-01-03"}, {"id": {"$lt": "c"}}]},
                ]
            },
        ]
    }
    assert [row["id"] for row in second.items] == ["b"]
    assert second.continuation_token is None
