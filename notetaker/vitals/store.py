"""Blood-pressure readings logged from the patient portal."""

from __future__ import annotations

import uuid
from threading import RLock
from typing import Any, Protocol

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from notetaker.errors import StorageUnavailable
from notetaker.models import BPReading, NewBPReading

DEFAULT_TREND_LIMIT = 30


class BPReadingStore(Protocol):
    async def insert(self, reading: NewBPReading) -> str: ...

    async def latest(self, patient_id: str) -> BPReading | None: ...

    async def trend(self, patient_id: str, limit: int = DEFAULT_TREND_LIMIT) -> list[BPReading]: ...


class InMemoryBPReadingStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._readings: list[BPReading] = []

    async def insert(self, reading: NewBPReading) -> str:
        reading_id = uuid.uuid4().hex
        with self._lock:
            self._readings.append(BPReading(id=reading_id, **reading.model_dump()))
        return reading_id

    def _for_patient(self, patient_id: str) -> list[BPReading]:
        with self._lock:
            return [r.model_copy() for r in self._readings if r.patient_id == patient_id]

    async def latest(self, patient_id: str) -> BPReading | None:
        readings = self._for_patient(patient_id)
        if not readings:
            return None
        return max(readings, key=lambda r: r.timestamp)

    async def trend(self, patient_id: str, limit: int = DEFAULT_TREND_LIMIT) -> list[BPReading]:
        readings = sorted(self._for_patient(patient_id), key=lambda r: r.timestamp)
        return readings[: max(0, limit)]


def _reading_from_document(doc: dict[str, Any]) -> BPReading:
    payload = dict(doc)
    payload["id"] = str(payload.pop("_id"))
    return BPReading.model_validate(payload)


class MongoBPReadingStore:
    def __init__(self, collection: Any) -> None:
        self._collection = collection

    async def insert(self, reading: NewBPReading) -> str:
        try:
            result = await self._collection.insert_one(reading.model_dump())
        except PyMongoError as exc:
            raise StorageUnavailable(f"Could not save BP reading: {exc}") from exc
        return str(result.inserted_id)

    async def latest(self, patient_id: str) -> BPReading | None:
        try:
            doc = await self._collection.find_one(
                {"patient_id": patient_id}, sort=[("timestamp", DESCENDING)]
            )
        except PyMongoError as exc:
            raise StorageUnavailable(f"Could not read BP readings: {exc}") from exc
        return _reading_from_document(doc) if doc else None

    async def trend(self, patient_id: str, limit: int = DEFAULT_TREND_LIMIT) -> list[BPReading]:
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
            raise StorageUnavailable(f"Could not read BP trend: {exc}") from exc
        return [_reading_from_document(doc) for doc in docs]
