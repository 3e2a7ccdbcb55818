"""Coerce untrusted synthesis output into a schema-complete ClinicalNote."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from notetaker.models import ClinicalNote

DEFAULT_SUMMARY = "No summary provided."
DEFAULT_ASSESSMENT = "No assessment provided."

DEGRADED_SUMMARY = "Analysis failed due to an error."
DEGRADED_ASSESSMENT = "Analysis Failed"


def _encodable(text: str) -> str:
    # Lone surrogates survive json.loads but not UTF-8 or BSON encoding.
    return text.encode("utf-8", "replace").decode("utf-8")


def _as_text(value: Any) -> str:
    try:
        return _encodable(str(value))
    except Exception:
        return ""


def _text_field(candidate: Mapping[str, Any], key: str, default: str) -> str:
    value = candidate.get(key)
    return _encodable(value) if isinstance(value, str) else default


def _list_field(candidate: Mapping[str, Any], key: str) -> list[str]:
    value = candidate.get(key)
    if not isinstance(value, (list, tuple)):
        return []
    return [_as_text(item) for item in value]


def normalize(candidate: Any) -> ClinicalNote:
    """Total: any input yields a ClinicalNote with every field populated.

    Performs no semantic validation of the clinical content.
    """
    if not isinstance(candidate, Mapping):
        candidate = {}

    summary_key = "patient_summary" if "patient_summary" in candidate else "summary"
    return ClinicalNote(
        summary=_text_field(candidate, summary_key, DEFAULT_SUMMARY),
        subjective=_list_field(candidate, "subjective"),
        objective=_list_field(candidate, "objective"),
        assessment=_text_field(candidate, "assessment", DEFAULT_ASSESSMENT),
        plan=_list_field(candidate, "plan"),
    )


def degraded_note() -> ClinicalNote:
    """Fixed low-information note stored when synthesis fails."""
    return ClinicalNote(
        summary=DEGRADED_SUMMARY,
        subjective=[],
        objective=[],
        assessment=DEGRADED_ASSESSMENT,
        plan=[],
    )
