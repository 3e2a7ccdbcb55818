"""Shared JSON cleanup helpers for model responses."""

import json
from typing import Any


def clean_json_response(text: str) -> str:
    """Strip markdown code fences and surrounding whitespace from JSON-like text."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        if first_newline != -1:
            cleaned = cleaned[first_newline + 1 :]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse model output as a JSON object; raises ValueError otherwise."""
    data = json.loads(clean_json_response(text))
    if not isinstance(data, dict):
        raise ValueError("Model response must be a JSON object.")
    return data
