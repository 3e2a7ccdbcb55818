"""Clinical note synthesis: transcript -> raw (untrusted) note candidate."""

import logging
from typing import Any

from notetaker.config import Settings
from notetaker.errors import SynthesisMalformed
from notetaker.llm.client import SynthesisClient
from notetaker.llm.json_utils import parse_json_object
from notetaker.prompts import NOTE_SYSTEM, NOTE_USER

logger = logging.getLogger(__name__)

RawNoteCandidate = dict[str, Any]

NOTE_FIELDS = ("patient_summary", "subjective", "objective", "assessment", "plan")


def insufficient_information_candidate() -> RawNoteCandidate:
    return {
        "patient_summary": "Transcript too short for analysis.",
        "subjective": [],
        "objective": [],
        "assessment": "Insufficient information.",
        "plan": ["Review the full conversation manually."],
    }


def build_note_prompt(transcript: str) -> str:
    return NOTE_USER.format(transcript=transcript)


class NoteSynthesizer:
    def __init__(self, client: SynthesisClient, settings: Settings) -> None:
        self._client = client
        self._min_chars = settings.min_transcript_chars

    async def synthesize(self, transcript: str | None) -> RawNoteCandidate:
        """Request a five-field note for ``transcript``.

        Degenerate transcripts get a canned candidate without an outbound
        call. Exactly one request is made otherwise; no retries.
        """
        cleaned = (transcript or "").strip()
        if len(cleaned) < self._min_chars:
            logger.warning(
                "Transcript too short for synthesis (%d chars); skipping service call.",
                len(cleaned),
            )
            return insufficient_information_candidate()

        logger.info("Sending transcript (%d chars) for note synthesis.", len(cleaned))
        raw = await self._client.chat_completion(
            system_prompt=NOTE_SYSTEM,
            user_prompt=build_note_prompt(cleaned),
            call_type="clinical_note",
        )

        try:
            candidate = parse_json_object(raw)
        except (ValueError, TypeError, AttributeError) as e:
            raise SynthesisMalformed(f"Synthesis response is not a JSON object: {e}") from e

        missing = [field for field in NOTE_FIELDS if field not in candidate]
        if missing:
            # Not fatal: the normalizer substitutes defaults.
            logger.warning("Synthesis response missing fields: %s", ", ".join(missing))
        return candidate
