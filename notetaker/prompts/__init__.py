"""Centralized prompt templates for the generative-text service.

Import any prompt constant directly:
    from notetaker.prompts import NOTE_SYSTEM, NOTE_USER
"""

from notetaker.prompts.clinical_note import NOTE_SYSTEM, NOTE_USER

__all__ = [
    "NOTE_SYSTEM",
    "NOTE_USER",
]
