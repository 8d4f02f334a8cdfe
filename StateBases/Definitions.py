from dataclasses import dataclass
from threading import Lock

from algo_config import default_initial_tolerance, is_finite_number
from algo_errors import InvalidInput
from Tolerance_Algo import Policy


@dataclass(frozen=True)
class MetricDefinition:
    """Clinician-set ideal for one metric of one exercise step."""

    step_id: str
    metric_id: str
    standard: float
    policy: Policy
    initial_tolerance: float

    @classmethod
    def create(
        cls,
        step_id: str,
        metric_id: str,
        standard: float,
        policy,
        initial_tolerance: float = None,
    ) -> "MetricDefinition":
        if not step_id or not isinstance(step_id, str):
            raise InvalidInput("step_id must be a non-empty string.", field="step_id")
        if not metric_id or not isinstance(metric_id, str):
            raise InvalidInput("metric_id must be a non-empty string.", field="metric_id")
        if not is_finite_number(standard):
            raise InvalidInput("standard must be a finite number.", field="standard")
        if initial_tolerance is None:
            initial_tolerance = default_initial_tolerance(standard)
        if not is_finite_number(initial_tolerance) or initial_tolerance <= 0:
            raise InvalidInput(
                "initial_tolerance must be a positive finite number.",
                field="initial_tolerance",
            )
        return cls(
            step_id=step_id,
            metric_id=metric_id,
            standard=float(standard),
            policy=Policy.parse(policy),
            initial_tolerance=float(initial_tolerance),
        )

    def as_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "metric_id": self.metric_id,
            "standard": self.standard,
            "policy": self.policy.value,
            "initial_tolerance": self.initial_tolerance,
        }


class MetricCatalog:
    """Step/metric definition table looked up once per round."""

    __slots__ = ("_definitions", "_lock")

    def __init__(self, definitions=None):
        self._definitions = {}
        self._lock = Lock()
        for definition in definitions or ():
            self.register(definition)

    def register(self, definition: MetricDefinition) -> MetricDefinition:
        if not isinstance(definition, MetricDefinition):
            raise TypeError("definition must be a MetricDefinition instance.")
        with self._lock:
            self._definitions[(definition.step_id, definition.metric_id)] = definition
        return definition

    def define(self, step_id: str, metric_id: str, standard: float, policy, initial_tolerance: float = None) -> MetricDefinition:
        return self.register(
            MetricDefinition.create(step_id, metric_id, standard, policy, initial_tolerance)
        )

    def get(self, step_id: str, metric_id: str) -> MetricDefinition:
        try:
            return self._definitions[(step_id, metric_id)]
        except KeyError:
            raise InvalidInput(
                f"No definition for metric {metric_id!r} of step {step_id!r}.",
                field="metric_id",
            ) from None

    def remove(self, step_id: str, metric_id: str) -> None:
        with self._lock:
            self._definitions.pop((step_id, metric_id), None)

    def for_step(self, step_id: str) -> list:
        return [d for (step, _), d in sorted(self._definitions.items()) if step == step_id]

    def __contains__(self, key) -> bool:
        return key in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
