import asyncio
from datetime import datetime, timezone
import unittest
from unittest.mock import AsyncMock, MagicMock

from notetaker.config import settings
from notetaker.errors import (
    InputValidationError,
    StorageUnavailable,
    SynthesisMalformed,
    SynthesisUnavailable,
)
from notetaker.llm.note_synthesis import NoteSynthesizer
from notetaker.models import VisitCreateRequest, VisitStatus
from notetaker.visits.lifecycle import VisitLifecycle
from notetaker.visits.refresh import RefreshCoordinator
from notetaker.visits.store import InMemoryVisitStore

HEADACHE = "Patient reports mild headache for two days."

GOOD_CANDIDATE = {
    "patient_summary": "Mild headache for two days.",
    "subjective": ["Headache x2 days"],
    "objective": [],
    "assessment": "Tension-type headache",
    "plan": ["Hydration", "Ibuprofen PRN"],
}


def _lifecycle(synthesize) -> tuple[VisitLifecycle, InMemoryVisitStore, RefreshCoordinator]:
    store = InMemoryVisitStore()
    refresh = RefreshCoordinator()
    return VisitLifecycle(store, synthesize, refresh), store, refresh


class VisitLifecycleTests(unittest.TestCase):
    def test_successful_synthesis_completes_visit(self) -> None:
        lifecycle, store, refresh = _lifecycle(AsyncMock(return_value=GOOD_CANDIDATE))

        result = asyncio.run(
            lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE))
        )
        visit = asyncio.run(store.get(result.visit_id))

        self.assertEqual(result.status, VisitStatus.COMPLETED)
        self.assertEqual(result.clinical_note.summary, "Mild headache for two days.")
        self.assertEqual(visit.status, VisitStatus.COMPLETED)
        self.assertEqual(visit.clinical_note, result.clinical_note)
        self.assertEqual(visit.raw_transcript, HEADACHE)
        self.assertEqual(result.refresh_token, 1)
        self.assertEqual(refresh.current("p1"), 1)

    def test_insert_is_visible_before_synthesis_starts(self) -> None:
        observed = {}

        async def _synthesize(transcript: str):
            visits = await store.list_by_patient("p1")
            observed["status"] = visits[0].status
            observed["note"] = visits[0].clinical_note
            return GOOD_CANDIDATE

        lifecycle, store, _ = _lifecycle(_synthesize)
        asyncio.run(lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE)))

        self.assertEqual(observed["status"], VisitStatus.PROCESSING)
        self.assertIsNone(observed["note"])

    def test_short_transcript_gets_insufficient_information_note(self) -> None:
        client = MagicMock()
        client.chat_completion = AsyncMock()
        synthesizer = NoteSynthesizer(client, settings)
        lifecycle, store, _ = _lifecycle(synthesizer.synthesize)

        result = asyncio.run(lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript="hi")))

        client.chat_completion.assert_not_awaited()
        self.assertEqual(result.status, VisitStatus.COMPLETED)
        self.assertEqual(
            result.clinical_note.model_dump(),
            {
                "summary": "Transcript too short for analysis.",
                "subjective": [],
                "objective": [],
                "assessment": "Insufficient information.",
                "plan": ["Review the full conversation manually."],
            },
        )

    def test_malformed_synthesis_reaches_error_with_degraded_note(self) -> None:
        lifecycle, store, refresh = _lifecycle(AsyncMock(side_effect=SynthesisMalformed("not json")))

        result = asyncio.run(
            lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE))
        )
        visit = asyncio.run(store.get(result.visit_id))

        self.assertEqual(result.status, VisitStatus.ERROR)
        self.assertEqual(visit.status, VisitStatus.ERROR)
        self.assertEqual(visit.clinical_note.assessment, "Analysis Failed")
        self.assertEqual(visit.clinical_note.subjective, [])
        self.assertEqual(visit.clinical_note.plan, [])
        self.assertEqual(refresh.current("p1"), 1)

    def test_unavailable_synthesis_reaches_error_with_degraded_note(self) -> None:
        lifecycle, store, _ = _lifecycle(AsyncMock(side_effect=SynthesisUnavailable("timeout")))

        result = asyncio.run(
            lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE))
        )

        self.assertEqual(result.status, VisitStatus.ERROR)
        self.assertEqual(result.clinical_note.assessment, "Analysis Failed")

    def test_unexpected_synthesis_failure_still_finalizes_visit(self) -> None:
        for error in (ValueError("Expecting property name"), AttributeError("strip"), RuntimeError("boom")):
            with self.subTest(error=error):
                lifecycle, store, refresh = _lifecycle(AsyncMock(side_effect=error))

                result = asyncio.run(
                    lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE))
                )
                visit = asyncio.run(store.get(result.visit_id))

                self.assertEqual(result.status, VisitStatus.ERROR)
                self.assertEqual(visit.status, VisitStatus.ERROR)
                self.assertEqual(visit.clinical_note.assessment, "Analysis Failed")
                self.assertEqual(refresh.current("p1"), 1)

    def test_blank_transcript_is_saved_in_error_without_synthesis(self) -> None:
        synthesize = AsyncMock(return_value=GOOD_CANDIDATE)
        lifecycle, store, _ = _lifecycle(synthesize)

        result = asyncio.run(
            lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript="   \n "))
        )

        synthesize.assert_not_awaited()
        self.assertEqual(result.status, VisitStatus.ERROR)
        self.assertEqual(result.clinical_note.assessment, "Analysis Failed")

    def test_missing_required_fields_rejected_before_any_write(self) -> None:
        synthesize = AsyncMock(return_value=GOOD_CANDIDATE)
        lifecycle, store, refresh = _lifecycle(synthesize)

        for request in (
            VisitCreateRequest(raw_transcript=HEADACHE),
            VisitCreateRequest(patient_id="  ", raw_transcript=HEADACHE),
            VisitCreateRequest(patient_id="p1"),
            VisitCreateRequest(patient_id="p1", raw_transcript=""),
        ):
            with self.subTest(request=request):
                with self.assertRaises(InputValidationError):
                    asyncio.run(lifecycle.capture(request))

        self.assertEqual(asyncio.run(store.list_by_patient(None)), [])
        synthesize.assert_not_awaited()
        self.assertEqual(refresh.current(), 0)

    def test_storage_unavailable_propagates_without_synthesis(self) -> None:
        store = MagicMock()
        store.insert = AsyncMock(side_effect=StorageUnavailable("mongo down"))
        synthesize = AsyncMock(return_value=GOOD_CANDIDATE)
        refresh = RefreshCoordinator()
        lifecycle = VisitLifecycle(store, synthesize, refresh)

        with self.assertRaises(StorageUnavailable):
            asyncio.run(lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE)))

        synthesize.assert_not_awaited()
        self.assertEqual(refresh.current("p1"), 0)

    def test_client_supplied_status_and_note_are_ignored(self) -> None:
        observed = {}

        async def _synthesize(transcript: str):
            observed["visit"] = (await store.list_by_patient("p1"))[0]
            return GOOD_CANDIDATE

        lifecycle, store, _ = _lifecycle(_synthesize)
        asyncio.run(
            lifecycle.capture(
                VisitCreateRequest(
                    patient_id="p1",
                    raw_transcript=HEADACHE,
                    status="completed",
                    clinical_note={"summary": "client note"},
                )
            )
        )

        self.assertEqual(observed["visit"].status, VisitStatus.PROCESSING)
        self.assertIsNone(observed["visit"].clinical_note)

    def test_timestamp_defaults_to_now_and_naive_is_utc(self) -> None:
        lifecycle, store, _ = _lifecycle(AsyncMock(return_value=GOOD_CANDIDATE))
        before = datetime.now(timezone.utc)

        defaulted = asyncio.run(
            lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE))
        )
        naive = asyncio.run(
            lifecycle.capture(
                VisitCreateRequest(
                    patient_id="p1",
                    raw_transcript=HEADACHE,
                    timestamp=datetime(2024, 5, 1, 8, 30),
                )
            )
        )

        self.assertGreaterEqual(asyncio.run(store.get(defaulted.visit_id)).timestamp, before)
        self.assertEqual(
            asyncio.run(store.get(naive.visit_id)).timestamp,
            datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc),
        )

    def test_status_note_coupling_across_outcomes(self) -> None:
        outcomes = [GOOD_CANDIDATE, SynthesisMalformed("bad"), SynthesisUnavailable("down"), None]
        lifecycle, store, _ = _lifecycle(AsyncMock(side_effect=outcomes))

        for _ in outcomes:
            asyncio.run(lifecycle.capture(VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE)))

        visits = asyncio.run(store.list_by_patient("p1"))
        self.assertEqual(len(visits), 4)
        for visit in visits:
            self.assertNotEqual(visit.status, VisitStatus.PROCESSING)
            self.assertIsNotNone(visit.clinical_note)
            if visit.status == VisitStatus.COMPLETED:
                self.assertIsInstance(visit.clinical_note.summary, str)
                self.assertIsInstance(visit.clinical_note.plan, list)

    def test_each_capture_creates_a_new_visit(self) -> None:
        lifecycle, store, refresh = _lifecycle(AsyncMock(return_value=GOOD_CANDIDATE))
        request = VisitCreateRequest(patient_id="p1", raw_transcript=HEADACHE)

        async def _run():
            return await asyncio.gather(lifecycle.capture(request), lifecycle.capture(request))

        first, second = asyncio.run(_run())

        self.assertNotEqual(first.visit_id, second.visit_id)
        self.assertEqual({first.refresh_token, second.refresh_token}, {1, 2})
        self.assertEqual(refresh.current("p1"), 2)


if __name__ == "__main__":
    unittest.main()
