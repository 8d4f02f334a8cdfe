import logging
from threading import Lock

from algo_config import is_finite_number
from algo_errors import InvalidInput

logger = logging.getLogger(__name__)

_override_lock = Lock()


class OverrideStore:
    """
    Clinician-set adaptability coefficient per subject.
    Values are stored as entered; the resolver clamps them on read.
    """

    __slots__ = ("_overrides",)

    def __init__(self):
        self._overrides = {}

    def set(self, subject_id: str, value: float) -> None:
        if not subject_id or not isinstance(subject_id, str):
            raise InvalidInput("subject_id must be a non-empty string.", field="subject_id")
        if not is_finite_number(value):
            raise InvalidInput("override must be a finite number.", field="override")
        with _override_lock:
            self._overrides[subject_id] = float(value)
        logger.info({"event": "override_set", "subject_id": subject_id, "value": value})

    def get(self, subject_id: str) -> float | None:
        return self._overrides.get(subject_id)

    def clear(self, subject_id: str) -> bool:
        with _override_lock:
            removed = self._overrides.pop(subject_id, None) is not None
        if removed:
            logger.info({"event": "override_cleared", "subject_id": subject_id})
        return removed

    def __contains__(self, subject_id) -> bool:
        return subject_id in self._overrides

    def __len__(self) -> int:
        return len(self._overrides)
