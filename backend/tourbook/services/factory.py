"""
Tourbook API: Generic Resource Handler Factory
==============================================

What:  CRUD operations shared by tours, users and reviews.
How:   A ResourceService is configured with a Resource descriptor, the write
       models and the references to populate on read. Per-entity services
       subclass or wrap it and add their side effects.

Operations:
    get_all     → query pipeline + populate          (list endpoints)
    get_one     → find by id + populate              404 when missing
    create_one  → stamp createdAt / __v, insert      400 on duplicates
    update_one  → $set + $inc __v, return new doc    404 when missing
    delete_one  → find-and-delete, return old doc    404 when missing

Error Handling Strategy:
    Malformed ids → ValidationError, missing documents → NotFound, driver
    rejections → ValidationError / StoreError via translate_store_errors.
    Nothing is retried.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import translate_store_errors
from tourbook.exceptions import NotFound
from tourbook.models.base import CREATED_AT, VERSION_KEY, Resource, parse_object_id
from tourbook.services import query_pipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Populate:
    """
    A reference resolved at read time.

    `field` holds an ObjectId (or a list of them) pointing into `collection`;
    the referenced documents replace the ids, projected to `projection`.
    """

    field: str
    collection: str
    projection: Mapping[str, int]


def _ids_of(value: Any) -> List[ObjectId]:
    if isinstance(value, ObjectId):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, ObjectId)]
    return []


async def populate(db: AsyncDatabase, docs: List[Dict[str, Any]], refs: Sequence[Populate]) -> List[Dict[str, Any]]:
    """Resolves every reference in `refs` with one $in query per reference."""
    for ref in refs:
        wanted = {oid for doc in docs for oid in _ids_of(doc.get(ref.field))}
        if not wanted:
            continue
        cursor = db[ref.collection].find({"_id": {"$in": list(wanted)}}, dict(ref.projection))
        found = {d["_id"]: d for d in await cursor.to_list(length=None)}
        for doc in docs:
            value = doc.get(ref.field)
            if isinstance(value, list):
                doc[ref.field] = [found[v] for v in value if v in found]
            elif isinstance(value, ObjectId):
                doc[ref.field] = found.get(value)
    return docs


class ResourceService:
    def __init__(self, resource: Resource, refs: Sequence[Populate] = ()):
        self.resource = resource
        self.refs = tuple(refs)

    def collection(self, db: AsyncDatabase) -> AsyncCollection:
        return db[self.resource.collection]

    def _projection(self) -> Dict[str, int]:
        projection = {VERSION_KEY: 0}
        projection.update({name: 0 for name in self.resource.hidden_fields})
        return projection

    def _by_id(self, doc_id: Any) -> Dict[str, Any]:
        return {"_id": parse_object_id(doc_id), **self.resource.default_filter}

    def present(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        return self.resource.present(doc)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_all(
        self,
        db: AsyncDatabase,
        params: Iterable[Tuple[str, str]],
        pre_filter: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = query_pipeline.build_query(self.resource, params, pre_filter)
        docs, count = await query_pipeline.execute(self.collection(db), query)
        docs = await populate(db, docs, self.refs)
        return [self.present(d) for d in docs], count

    async def find_raw(self, db: AsyncDatabase, doc_id: Any) -> Dict[str, Any]:
        """The stored document (hidden fields excluded), or NotFound."""
        with translate_store_errors(self.resource.name):
            doc = await self.collection(db).find_one(self._by_id(doc_id), self._projection())
        if doc is None:
            raise NotFound(resource=self.resource.name, resource_id=str(doc_id))
        return doc

    async def get_one(self, db: AsyncDatabase, doc_id: Any) -> Dict[str, Any]:
        doc = await self.find_raw(db, doc_id)
        (doc,) = await populate(db, [doc], self.refs)
        return self.present(doc)

    # ── Writes ────────────────────────────────────────────────────────────

    async def insert(self, db: AsyncDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
        doc = {**data, CREATED_AT: datetime.now(timezone.utc), VERSION_KEY: 0}
        with translate_store_errors(self.resource.name):
            result = await self.collection(db).insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info("Created %s %s", self.resource.name, result.inserted_id)
        return doc

    async def create_one(self, db: AsyncDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
        doc = await self.insert(db, data)
        for name in self.resource.hidden_fields:
            doc.pop(name, None)
        doc.pop(VERSION_KEY, None)
        return self.present(doc)

    async def update_raw(self, db: AsyncDatabase, doc_id: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Applies `changes`, bumps the revision and returns the updated document."""
        with translate_store_errors(self.resource.name):
            doc = await self.collection(db).find_one_and_update(
                self._by_id(doc_id),
                {"$set": changes, "$inc": {VERSION_KEY: 1}} if changes else {"$inc": {VERSION_KEY: 1}},
                projection=self._projection(),
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFound(resource=self.resource.name, resource_id=str(doc_id))
        return doc

    async def update_one(self, db: AsyncDatabase, doc_id: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        doc = await self.update_raw(db, doc_id, changes)
        (doc,) = await populate(db, [doc], self.refs)
        return self.present(doc)

    async def delete_one(self, db: AsyncDatabase, doc_id: Any) -> Dict[str, Any]:
        """Physically deletes and returns the removed document."""
        with translate_store_errors(self.resource.name):
            doc = await self.collection(db).find_one_and_delete(self._by_id(doc_id))
        if doc is None:
            raise NotFound(resource=self.resource.name, resource_id=str(doc_id))
        logger.info("Deleted %s %s", self.resource.name, doc["_id"])
        return doc
