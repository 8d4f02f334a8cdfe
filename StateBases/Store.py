"""
Per-(subject, step, metric) tolerance state store.

Holds {trial, tolerance} between rounds. Each key has its own lock so that
at most one read-modify-write is in flight per key, while different metrics
update concurrently.
"""

import json
import logging
from contextlib import contextmanager
from threading import Lock

from algo_config import is_finite_number
from algo_errors import InvalidInput
from Tolerance_Algo import ToleranceState

logger = logging.getLogger(__name__)


def make_key(subject_id: str, step_id: str, metric_id: str) -> tuple[str, str, str]:
    for name, value in (("subject_id", subject_id), ("step_id", step_id), ("metric_id", metric_id)):
        if not value or not isinstance(value, str):
            raise InvalidInput(f"{name} must be a non-empty string.", field=name)
    return subject_id, step_id, metric_id


class ToleranceStore:

    __slots__ = ("_states", "_locks", "_registry_lock")

    def __init__(self):
        self._states = {}
        self._locks = {}
        self._registry_lock = Lock()

    def _lock_for(self, key) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            return lock

    @contextmanager
    def exclusive(self, key):
        """Exclusive update scope for one key: acquire, compute, release."""
        lock = self._lock_for(key)
        with lock:
            yield

    def get(self, key) -> ToleranceState | None:
        return self._states.get(key)

    def put(self, key, state: ToleranceState) -> None:
        if not isinstance(state, ToleranceState):
            raise TypeError("state must be a ToleranceState instance.")
        if not (is_finite_number(state.trial) and is_finite_number(state.tolerance)):
            raise InvalidInput("Refusing to store a non-finite trial or tolerance.")
        if state.tolerance <= 0:
            raise InvalidInput("tolerance must be positive.", field="tolerance")
        self._states[key] = state

    def seed(self, key, definition) -> ToleranceState:
        """First-round state: trial at the standard, tolerance at the starting band."""
        state = ToleranceState(trial=definition.standard, tolerance=definition.initial_tolerance)
        self.put(key, state)
        logger.info(
            {"event": "tolerance_seeded", "key": list(key), "trial": state.trial, "tolerance": state.tolerance}
        )
        return state

    def get_or_seed(self, key, definition) -> ToleranceState:
        state = self.get(key)
        if state is None:
            state = self.seed(key, definition)
        return state

    def delete(self, key) -> None:
        self._states.pop(key, None)

    def keys(self) -> list:
        return sorted(self._states)

    def snapshot(self) -> list:
        return [
            {
                "subject_id": key[0],
                "step_id": key[1],
                "metric_id": key[2],
                "trial": state.trial,
                "tolerance": state.tolerance,
            }
            for key, state in sorted(self._states.items())
        ]

    def save(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.snapshot(), f, separators=(",", ":"))

    @classmethod
    def load(cls, path: str) -> "ToleranceStore":
        """Rebuild a store from save(); entries that are not finite are dropped and logged."""
        store = cls()
        with open(path, "r", encoding="utf-8") as f:
            rows = json.load(f)
        for row in rows:
            if not isinstance(row, dict):
                logger.warning({"event": "tolerance_state_dropped", "row": repr(row)})
                continue
            ids =[row.get("subject_id"), row.get("step_id"), row.get("metric_id")]
            try:
                key = make_key(*ids)
                store.put(key, ToleranceState(trial=row.get("trial"), tolerance=row.get("tolerance")))
            except InvalidInput:
                logger.warning({"event": "tolerance_state_dropped", "key": ids})
        return store

    def __len__(self) -> int:
        return len(self._states)
