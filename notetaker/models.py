from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# --- Visit lifecycle ---

class VisitStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ClinicalNote(BaseModel):
    summary: str
    subjective: list[str] = Field(default_factory=list)
    objective: list[str] = Field(default_factory=list)
    assessment: str
    plan: list[str] = Field(default_factory=list)


class NewVisit(BaseModel):
    """A visit as handed to the store, before it has an id."""

    patient_id: str
    timestamp: datetime
    raw_transcript: str
    status: VisitStatus = VisitStatus.PROCESSING
    clinical_note: ClinicalNote | None = None
    audio_recording: str | None = None
    audio_mime_type: str | None = None


class Visit(NewVisit):
    id: str


# --- HTTP bodies ---

class VisitCreateRequest(BaseModel):
    # Required fields are checked by the lifecycle so that a missing value
    # produces the {ok: false, error} shape instead of a schema error.
    patient_id: str | None = None
    timestamp: datetime | None = None
    raw_transcript: str | None = None
    status: str | None = None
    clinical_note: Any = None
    audio_recording: str | None = None
    audio_mime_type: str | None = None


class VisitCreateResponse(BaseModel):
    ok: bool = True
    id: str
    status: VisitStatus
    clinical_note: ClinicalNote
    refresh_token: int


class VisitListResponse(BaseModel):
    ok: bool = True
    visits: list[Visit] = Field(default_factory=list)


class TimelineEntry(BaseModel):
    visit_id: str
    timestamp: datetime
    status: VisitStatus
    title: str
    summary: str
    is_most_recent: bool = False


class TimelineResponse(BaseModel):
    ok: bool = True
    entries: list[TimelineEntry] = Field(default_factory=list)


class RefreshTokenResponse(BaseModel):
    ok: bool = True
    refresh_token: int


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


# --- Blood pressure readings ---

class BPReadingCreateRequest(BaseModel):
    patient_id: str | None = None
    systolic: float | None = None
    diastolic: float | None = None
    timestamp: datetime | None = None


class NewBPReading(BaseModel):
    patient_id: str
    systolic: float
    diastolic: float
    timestamp: datetime


class BPReading(NewBPReading):
    id: str


class BPReadingResponse(BaseModel):
    ok: bool = True
    reading: BPReading | None = None


class BPTrendResponse(BaseModel):
    ok: bool = True
    readings: list[BPReading] = Field(default_factory=list)
