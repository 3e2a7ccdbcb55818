"""Read-side projections over the visit store. Nothing here writes."""

from __future__ import annotations

from notetaker.models import TimelineEntry, Visit
from notetaker.visits.store import DEFAULT_TREND_LIMIT, VisitStore

TIMELINE_FALLBACK_TITLE = "Visit recorded"
TRANSCRIPT_PREVIEW_CHARS = 120


async def list_visits(store: VisitStore, patient_id: str | None) -> list[Visit]:
    """Most-recent-first note history; every visit when ``patient_id`` is None."""
    return await store.list_by_patient(patient_id)


def timeline_title(visit: Visit) -> str:
    note = visit.clinical_note
    if note is not None and note.assessment:
        first_line = note.assessment.split("\n")[0]
        if first_line:
            return first_line
    return TIMELINE_FALLBACK_TITLE


def timeline_summary(visit: Visit) -> str:
    note = visit.clinical_note
    if note is not None and note.summary:
        return note.summary
    transcript = visit.raw_transcript or ""
    if len(transcript) > TRANSCRIPT_PREVIEW_CHARS:
        return transcript[:TRANSCRIPT_PREVIEW_CHARS] + "…"
    return transcript


async def build_timeline(
    store: VisitStore,
    patient_id: str,
    limit: int = DEFAULT_TREND_LIMIT,
) -> list[TimelineEntry]:
    """Oldest-first trend, capped at ``limit``, reversed so the newest shows first."""
    visits = await store.list_trend(patient_id, limit)
    entries: list[TimelineEntry] = []
    for index, visit in enumerate(reversed(visits)):
        entries.append(
            TimelineEntry(
                visit_id=visit.id,
                timestamp=visit.timestamp,
                status=visit.status,
                title=timeline_title(visit),
                summary=timeline_summary(visit),
                is_most_recent=index == 0,
            )
        )
    return entries
