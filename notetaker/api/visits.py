"""HTTP surface for visit capture and the read views that poll it."""

from fastapi import APIRouter, Request, status

from notetaker.config import settings
from notetaker.errors import InputValidationError
from notetaker.models import (
    ErrorResponse,
    RefreshTokenResponse,
    TimelineResponse,
    VisitCreateRequest,
    VisitCreateResponse,
    VisitListResponse,
)
from notetaker.visits.lifecycle import VisitLifecycle
from notetaker.visits.queries import build_timeline, list_visits
from notetaker.visits.refresh import RefreshCoordinator
from notetaker.visits.store import VisitStore

router = APIRouter(tags=["visits"])


def _lifecycle(request: Request) -> VisitLifecycle:
    return request.app.state.lifecycle


def _visit_store(request: Request) -> VisitStore:
    return request.app.state.visit_store


def _refresh(request: Request) -> RefreshCoordinator:
    return request.app.state.refresh


def _resolve_limit(limit: int | None) -> int:
    if limit is None or limit <= 0:
        return settings.trend_default_limit
    return limit


@router.post(
    "/visits",
    response_model=VisitCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Save a captured visit and synthesize its clinical note",
)
async def create_visit(payload: VisitCreateRequest, request: Request) -> VisitCreateResponse:
    result = await _lifecycle(request).capture(payload)
    return VisitCreateResponse(
        id=result.visit_id,
        status=result.status,
        clinical_note=result.clinical_note,
        refresh_token=result.refresh_token,
    )


@router.get("/visits", response_model=VisitListResponse)
async def get_visits(request: Request, patient_id: str | None = None) -> VisitListResponse:
    visits = await list_visits(_visit_store(request), patient_id)
    return VisitListResponse(visits=visits)


@router.get(
    "/visits/timeline",
    response_model=TimelineResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_visit_timeline(
    request: Request,
    patient_id: str | None = None,
    limit: int | None = None,
) -> TimelineResponse:
    if not patient_id:
        raise InputValidationError("patient_id is required")
    entries = await build_timeline(_visit_store(request), patient_id, _resolve_limit(limit))
    return TimelineResponse(entries=entries)


@router.get("/visits/refresh-token", response_model=RefreshTokenResponse)
async def get_refresh_token(request: Request, patient_id: str | None = None) -> RefreshTokenResponse:
    return RefreshTokenResponse(refresh_token=_refresh(request).current(patient_id))
