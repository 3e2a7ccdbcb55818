from datetime import datetime, timezone

from fastapi import APIRouter, Request, status

from notetaker.config import settings
from notetaker.errors import InputValidationError
from notetaker.models import (
    BPReading,
    BPReadingCreateRequest,
    BPReadingResponse,
    BPTrendResponse,
    ErrorResponse,
    NewBPReading,
)
from notetaker.vitals.store import BPReadingStore

router = APIRouter(tags=["vitals"])


def _bp_store(request: Request) -> BPReadingStore:
    return request.app.state.bp_store


@router.post(
    "/bp-readings",
    response_model=BPReadingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_bp_reading(payload: BPReadingCreateRequest, request: Request) -> BPReadingResponse:
    if not payload.patient_id or payload.systolic is None or payload.diastolic is None:
        raise InputValidationError("patient_id, systolic, and diastolic are required")

    timestamp = payload.timestamp or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    reading = NewBPReading(
        patient_id=payload.patient_id,
        systolic=payload.systolic,
        diastolic=payload.diastolic,
        timestamp=timestamp,
    )
    reading_id = await _bp_store(request).insert(reading)
    return BPReadingResponse(reading=BPReading(id=reading_id, **reading.model_dump()))


@router.get("/bp-readings/latest", response_model=BPReadingResponse)
async def get_latest_bp_reading(request: Request, patient_id: str | None = None) -> BPReadingResponse:
    if not patient_id:
        raise InputValidationError("patient_id is required")
    return BPReadingResponse(reading=await _bp_store(request).latest(patient_id))


@router.get("/bp-readings/trend", response_model=BPTrendResponse)
async def get_bp_trend(
    request: Request,
    patient_id: str | None = None,
    limit: int | None = None,
) -> BPTrendResponse:
    if not patient_id:
        raise InputValidationError("patient_id is required")
    resolved = limit if limit and limit > 0 else settings.trend_default_limit
    return BPTrendResponse(readings=await _bp_store(request).trend(patient_id, resolved))
