"""Visit lifecycle: insert (processing) -> synthesize -> normalize -> update (terminal).

The two writes are not atomic. If the process dies or the synthesis call
never returns between ``insert`` and ``update_note`` the visit stays in
``processing``; nothing here sweeps those up. The start and end of every run
are logged with the visit id so stranded visits can be found by an operator.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from notetaker.errors import InputValidationError, SynthesisMalformed, SynthesisUnavailable
from notetaker.llm.note_synthesis import RawNoteCandidate
from notetaker.models import ClinicalNote, NewVisit, VisitCreateRequest, VisitStatus
from notetaker.visits.normalizer import degraded_note, normalize
from notetaker.visits.refresh import RefreshCoordinator
from notetaker.visits.store import VisitStore

logger = logging.getLogger(__name__)

Synthesize = Callable[[str], Awaitable[RawNoteCandidate]]


@dataclass(frozen=True)
class CaptureResult:
    visit_id: str
    status: VisitStatus
    clinical_note: ClinicalNote
    refresh_token: int


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_capture(request: VisitCreateRequest) -> tuple[str, str]:
    """Return (patient_id, raw_transcript) or raise InputValidationError."""
    patient_id = (request.patient_id or "").strip()
    if not patient_id or not request.raw_transcript:
        raise InputValidationError("patient_id and raw_transcript are required")
    return patient_id, request.raw_transcript


class VisitLifecycle:
    def __init__(
        self,
        store: VisitStore,
        synthesize: Synthesize,
        refresh: RefreshCoordinator,
    ) -> None:
        self._store = store
        self._synthesize = synthesize
        self._refresh = refresh

    async def capture(self, request: VisitCreateRequest) -> CaptureResult:
        """Persist a captured visit and enrich it with a clinical note.

        Validation and storage failures propagate. Synthesis failures do not:
        the visit is still finalized, with the degraded note and ``error``
        status.
        """
        patient_id, raw_transcript = validate_capture(request)
        if request.status and request.status != VisitStatus.PROCESSING.value:
            logger.debug("Ignoring client-supplied status %r.", request.status)

        placeholder = NewVisit(
            patient_id=patient_id,
            timestamp=_as_utc(request.timestamp),
            raw_transcript=raw_transcript,
            status=VisitStatus.PROCESSING,
            clinical_note=None,
            audio_recording=request.audio_recording,
            audio_mime_type=request.audio_mime_type,
        )
        visit_id = await self._store.insert(placeholder)
        logger.info("Visit %s saved for patient %s (processing).", visit_id, patient_id)

        start = time.perf_counter()
        note, status = await self._resolve_note(visit_id, raw_transcript)
        await self._store.update_note(visit_id, note, status)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info("Visit %s finalized as %s in %sms.", visit_id, status.value, elapsed_ms)

        token = self._refresh.bump(patient_id)
        return CaptureResult(
            visit_id=visit_id,
            status=status,
            clinical_note=note,
            refresh_token=token,
        )

    async def _resolve_note(
        self, visit_id: str, raw_transcript: str
    ) -> tuple[ClinicalNote, VisitStatus]:
        if not raw_transcript.strip():
            logger.warning("Visit %s has a blank transcript; storing degraded note.", visit_id)
            return degraded_note(), VisitStatus.ERROR

        try:
            candidate = await self._synthesize(raw_transcript)
        except SynthesisUnavailable as e:
            logger.error("Note synthesis unavailable for visit %s: %s", visit_id, e)
            return degraded_note(), VisitStatus.ERROR
        except SynthesisMalformed as e:
            logger.error("Note synthesis returned malformed output for visit %s: %s", visit_id, e)
            return degraded_note(), VisitStatus.ERROR
        except Exception:
            # The visit must still leave processing.
            logger.exception("Note synthesis failed unexpectedly for visit %s", visit_id)
            return degraded_note(), VisitStatus.ERROR

        return normalize(candidate), VisitStatus.COMPLETED
