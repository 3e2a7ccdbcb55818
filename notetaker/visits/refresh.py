"""Refresh tokens: monotonically increasing counters that tell polling views to re-fetch."""

from __future__ import annotations

from threading import Lock


class RefreshCoordinator:
    """Bumped once per successfully saved write.

    Readers compare the token they last saw with ``current()`` and re-poll
    when it moved. There is no push channel; freshness is "on next poll".
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._global = 0
        self._per_patient: dict[str, int] = {}

    def bump(self, patient_id: str | None = None) -> int:
        with self._lock:
            self._global += 1
            if patient_id is not None:
                self._per_patient[patient_id] = self._per_patient.get(patient_id, 0) + 1
                return self._per_patient[patient_id]
            return self._global

    def current(self, patient_id: str | None = None) -> int:
        with self._lock:
            if patient_id is None:
                return self._global
            return self._per_patient.get(patient_id, 0)
