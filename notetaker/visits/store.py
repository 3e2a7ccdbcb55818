"""Visit Record Store: keyed visit documents, append + one in-place update."""

from __future__ import annotations

import logging
import uuid
from threading import RLock
from typing import Any, Protocol

from bson import ObjectId
from bson.errors import BSONError, InvalidId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from notetaker.errors import StorageUnavailable, VisitNotFound
from notetaker.models import ClinicalNote, NewVisit, Visit, VisitStatus
from notetaker.visits.normalizer import normalize

logger = logging.getLogger(__name__)

DEFAULT_TREND_LIMIT = 30


class VisitStore(Protocol):
    async def insert(self, visit: NewVisit) -> str: ...

    async def update_note(
        self, visit_id: str, note: ClinicalNote, status: VisitStatus
    ) -> None: ...

    async def get(self, visit_id: str) -> Visit: ...

    async def list_by_patient(self, patient_id: str | None) -> list[Visit]: ...

    async def list_trend(
        self, patient_id: str, limit: int = DEFAULT_TREND_LIMIT
    ) -> list[Visit]: ...


class InMemoryVisitStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._visits: dict[str, Visit] = {}

    async def insert(self, visit: NewVisit) -> str:
        visit_id = uuid.uuid4().hex
        with self._lock:
            self._visits[visit_id] = Visit(id=visit_id, **visit.model_dump())
        return visit_id

    async def update_note(
        self, visit_id: str, note: ClinicalNote, status: VisitStatus
    ) -> None:
        with self._lock:
            visit = self._visits.get(visit_id)
            if visit is None:
                raise VisitNotFound(f"Unknown visit_id: {visit_id}")
            self._visits[visit_id] = visit.model_copy(
                update={"clinical_note": note.model_copy(deep=True), "status": status}
            )

    async def get(self, visit_id: str) -> Visit:
        with self._lock:
            visit = self._visits.get(visit_id)
            if visit is None:
                raise VisitNotFound(f"Unknown visit_id: {visit_id}")
            return visit.model_copy(deep=True)

    async def list_by_patient(self, patient_id: str | None) -> list[Visit]:
        with self._lock:
            visits = [
                v.model_copy(deep=True)
                for v in self._visits.values()
                if patient_id is None or v.patient_id == patient_id
            ]
        return sorted(visits, key=lambda v: v.timestamp, reverse=True)

    async def list_trend(
        self, patient_id: str, limit: int = DEFAULT_TREND_LIMIT
    ) -> list[Visit]:
        with self._lock:
            visits = [
                v.model_copy(deep=True)
                for v in self._visits.values()
                if v.patient_id == patient_id
            ]
        visits.sort(key=lambda v: v.timestamp)
        return visits[: max(0, limit)]


_STATUS_VALUES = {s.value for s in VisitStatus}


def _visit_from_document(doc: dict[str, Any]) -> Visit:
    """Build a Visit from a stored document, including ones written with
    ``clinical_note.patient_summary`` or a free-form status."""
    payload = dict(doc)
    payload["id"] = str(payload.pop("_id"))
    note = payload.get("clinical_note")
    if note is not None:
        payload["clinical_note"] = normalize(note)
    if payload.get("status") not in _STATUS_VALUES:
        logger.warning(
            "Visit %s has unknown status %r.",
            payload["id"],
            payload.get("status"),
        )
        payload["status"] = VisitStatus.COMPLETED if note is not None else VisitStatus.PROCESSING
    return Visit.model_validate(payload)


def _object_id(visit_id: str) -> ObjectId:
    try:
        return ObjectId(visit_id)
    except (InvalidId, TypeError) as exc:
        raise VisitNotFound(f"Unknown visit_id: {visit_id}") from exc


class MongoVisitStore:
    """Visits kept in a MongoDB collection.

    ``collection`` comes from the process-wide ``AsyncMongoClient`` opened in
    the application lifespan; the store never opens connections itself.
    """

    def __init__(self, collection: Any) -> None:
        self._collection = collection

    async def insert(self, visit: NewVisit) -> str:
        doc = visit.model_dump(mode="python")
        doc["status"] = visit.status.value
        try:
            result = await self._collection.insert_one(doc)
        except (PyMongoError, BSONError) as exc:
            logger.error("Visit insert failed: %s", exc)
            raise StorageUnavailable(f"Could not save visit: {exc}") from exc
        return str(result.inserted_id)

    async def update_note(
        self, visit_id: str, note: ClinicalNote, status: VisitStatus
    ) -> None:
        oid = _object_id(visit_id)
        try:
            result = await self._collection.update_one(
                {"_id": oid},
                {"$set": {"clinical_note": note.model_dump(), "status": status.value}},
            )
        except (PyMongoError, BSONError) as exc:
            logger.error("Visit %s update failed: %s", visit_id, exc)
            raise StorageUnavailable(f"Could not update visit {visit_id}: {exc}") from exc
        if result.matched_count == 0:
            raise VisitNotFound(f"Unknown visit_id: {visit_id}")

    async def get(self, visit_id: str) -> Visit:
        oid = _object_id(visit_id)
        try:
            doc = await self._collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise StorageUnavailable(f"Could not read visit {visit_id}: {exc}") from exc
        if doc is None:
            raise VisitNotFound(f"Unknown visit_id: {visit_id}")
        return _visit_from_document(doc)

    async def list_by_patient(self, patient_id: str | None) -> list[Visit]:
        query = {"patient_id": patient_id} if patient_id is not None else {}
        try:
            cursor = self._collection.find(query).sort("timestamp", DESCENDING)
            docs = await cursor.to_list(None)
        except PyMongoError as exc:
            raise StorageUnavailable(f"Could not list visits: {exc}") from exc
        return [_visit_from_document(doc) for doc in docs]

    async def list_trend(
        self, patient_id: str, limit: int = DEFAULT_TREND_LIMIT
    ) -> list[Visit]:
        if limit <= 0:
            return []
        try:
            cursor = (
                self._collection.find({"patient_id": patient_id})
                .sort("timestamp", ASCENDING)
                .limit(limit)
            )
            docs = await cursor.to_list(None)
        except PyMongoError as exc:
            raise StorageUnavailable(f"Could not list visit trend: {exc}") from exc
        return [_visit_from_document(doc) for doc in docs]
