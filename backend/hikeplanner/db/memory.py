"""In-process document store for development and tests."""

import copy
import logging

from hikeplanner.core.exceptions import ConflictError, NotFoundError, PreconditionFailedError
from hikeplanner.db.store import ETAG_FIELD, DocumentStore, new_etag

logger = logging.getLogger(__name__)


class MemoryDocumentStore(DocumentStore):
    """
    Dict-backed store keyed by (partitionKey, id).

    Documents are deep-copied on the way in and out so callers never share
    state with the store. The request charge is the number of documents
    scanned.
    """

    def __init__(self, name: str = "memory"):
        super().__init__(name)
        self._documents: dict[tuple[str, str], dict] = {}
        logger.info(f"MemoryDocumentStore created: {name}")

    async def create(self, item):
        key = (item["partitionKey"], item["id"])
        if key in self._documents:
            raise ConflictError("Document with this id already exists in the partition")
        document = copy.deepcopy(item)
        document[ETAG_FIELD] = new_etag()
        self._documents[key] = document
        return copy.deepcopy(document)

    async def read(self, id, partition_key):
        document = self._documents.get((partition_key, id))
        return copy.deepcopy(document) if document is not None else None

    async def replace(self, id, partition_key, document, etag=None):
        key = (partition_key, id)
        current = self._documents.get(key)
        if current is None:
            raise NotFoundError("Document", id)
        if etag is not None and current.get(ETAG_FIELD) != etag:
            raise PreconditionFailedError("Document was modified by another request")
        replacement = copy.deepcopy(document)
        replacement[ETAG_FIELD] = new_etag()
        self._documents[key] = replacement
        return copy.deepcopy(replacement)

    async def delete(self, id, partition_key):
        return self._documents.pop((partition_key, id), None) is not None

    def _scan(self, partition_key):
        if partition_key is None:
            return list(self._documents.values())
        return [doc for (pk, _), doc in self._documents.items() if pk == partition_key]

    async def _find(self, spec, partition_key, limit):
        candidates = self._scan(partition_key)
        matched = [doc for doc in candidates if spec.matches(doc)]
        rows = spec.sort_documents(matched)[:limit]
        return [copy.deepcopy(doc) for doc in rows], float(len(candidates))

    async def count(self, spec=None, partition_key=None):
        candidates = self._scan(partition_key)
        if spec is None:
            return len(candidates)
        return sum(1 for doc in candidates if spec.matches(doc))

    async def ping(self):
        return True

    def size(self) -> int:
        return len(self._documents)
