"""
Tolerance_Algo.py
-----------------
Tolerance/trial adaptation engine. Consumes one round's best achieved value
for a metric plus that metric's persisted trial and tolerance, and returns
the next trial and tolerance along with diagnostics.

Steps: 1) Effective target (policy-aware, used for scale and floor)
       2) Performance score P in [-1, 1], always measured against the standard
       3) Tolerance update damped by the adaptability coefficient
       4) Trial update (tighten toward the target or relax toward the standard)
       5) Sanitization of non-finite results
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum

from algo_config import (
    ALPHA,
    COEFFICIENT_BASE,
    EASE_FACTOR,
    RELAX_STEP,
    SCALE_MIN,
    SNAP_EPSILON,
    clamp_coefficient,
    clamp_unit,
    is_finite_number,
    lerp,
    tolerance_floor,
)
from algo_errors import InvalidInput

logger = logging.getLogger(__name__)


class Policy(str, Enum):
    MIN_VALUE = "min_value"
    MAX_VALUE = "max_value"
    CLOSEST_TO_TARGET = "closest_to_target"

    @classmethod
    def parse(cls, value) -> "Policy":
        """Accepts Policy members and MinValue / min_value / min style labels."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidInput("policy must be a string.", field="policy")
        key = value.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        try:
            return _POLICY_ALIASES[key]
        except KeyError:
            raise InvalidInput(f"Unknown policy: {value!r}", field="policy") from None


_POLICY_ALIASES = {
    "minvalue": Policy.MIN_VALUE,
    "min": Policy.MIN_VALUE,
    "maxvalue": Policy.MAX_VALUE,
    "max": Policy.MAX_VALUE,
    "closesttotarget": Policy.CLOSEST_TO_TARGET,
    "closest": Policy.CLOSEST_TO_TARGET,
    "target": Policy.CLOSEST_TO_TARGET,
}


@dataclass(frozen=True)
class ToleranceState:
    trial: float
    tolerance: float


@dataclass(frozen=True)
class AdaptationResult:
    tolerance: float
    trial: float
    proposed_trial: float
    performance: float
    effective_target: float
    tolerance_floor: float
    coefficient: float
    policy: Policy
    branch: str
    recoveries: tuple = field(default_factory=tuple)

    @property
    def state(self) -> ToleranceState:
        return ToleranceState(trial=self.trial, tolerance=self.tolerance)

    def as_dict(self) -> dict:
        return {
            "tolerance_new": self.tolerance,
            "trial_new": self.trial,
            "trial_proposed": self.proposed_trial,
            "performance": self.performance,
            "effective_target": self.effective_target,
            "tolerance_floor": self.tolerance_floor,
            "coefficient": self.coefficient,
            "policy": self.policy.value,
            "branch": self.branch,
            "recoveries": list(self.recoveries),
        }


class ToleranceEngine:

    __slots__ = ("_alpha", "_relax_step", "_ease_factor")

    def __init__(
        self,
        alpha: float = ALPHA,
        relax_step: float = RELAX_STEP,
        ease_factor: float = EASE_FACTOR,
    ):
        self._alpha = alpha
        self._relax_step = relax_step
        self._ease_factor = ease_factor

    @staticmethod
    def effective_target(standard: float, trial: float, policy: Policy) -> float:
        if policy is Policy.MIN_VALUE:
            return max(trial, standard)
        if policy is Policy.MAX_VALUE:
            return min(trial, standard)
        return trial if abs(trial - standard) > SNAP_EPSILON else standard

    @staticmethod
    def performance_score(
        standard: float, trial: float, actual: float, effective_target: float
    ) -> float:
        scale = max(abs(effective_target), abs(standard), abs(trial), SCALE_MIN)
        score = 1.0 - 2.0 * abs(actual - standard) / scale
        if math.isnan(score):
            # inf / inf on overflowing magnitudes; treat as far from standard
            return -1.0
        return clamp_unit(score, -1.0, 1.0)

    @staticmethod
    def _update_tolerance(
        previous_tolerance: float, coefficient: float, performance: float, floor: float
    ) -> float:
        tolerance = previous_tolerance * (1.0 - (1.0 - coefficient) * performance)
        return max(tolerance, floor)

    def _update_trial(
        self, standard: float, trial: float, actual: float, policy: Policy
    ) -> tuple[float, float, str]:
        """Returns (proposed, clamped, branch)."""
        if policy is Policy.MIN_VALUE:
            target_min = max(actual, standard)
            if target_min > trial:
                proposed, branch = lerp(trial, target_min, self._alpha), "tighten"
            else:
                relax_to = max(standard, trial * (1.0 - self._ease_factor))
                proposed, branch = lerp(trial, relax_to, self._relax_step), "relax"
            return proposed, max(proposed, standard), branch

        if policy is Policy.MAX_VALUE:
            target_max = min(actual, standard)
            if target_max < trial:
                proposed, branch = lerp(trial, target_max, self._alpha), "tighten"
            else:
                relax_to = min(standard, trial * (1.0 + self._ease_factor))
                proposed, branch = lerp(trial, relax_to, self._relax_step), "relax"
            return proposed, min(proposed, standard), branch

        proposed, branch = trial, "hold"
        if abs(actual - standard) < abs(trial - standard):
            proposed, branch = lerp(trial, actual, self._alpha), "approach"
        if abs(actual - standard) < SNAP_EPSILON:
            proposed, branch = standard, "snap"
        return proposed, proposed, branch

    @staticmethod
    def _sanitize_coefficient(coefficient: float, recoveries: list) -> float:
        if not is_finite_number(coefficient):
            recoveries.append("coefficient")
            return COEFFICIENT_BASE
        clamped = clamp_coefficient(float(coefficient))
        if clamped != coefficient:
            logger.debug(
                {"event": "coefficient_clamped", "raw": coefficient, "clamped": clamped}
            )
        return clamped

    def adapt(
        self,
        standard: float,
        trial: float,
        actual: float,
        previous_tolerance: float,
        coefficient: float,
        policy,
    ) -> AdaptationResult:
        """Compute the next tolerance and trial for one metric from one round."""
        if not is_finite_number(standard):
            raise InvalidInput("standard must be a finite number.", field="standard")
        standard = float(standard)
        policy = Policy.parse(policy)

        recoveries = []
        if not is_finite_number(trial):
            recoveries.append("trial")
            trial = standard
        trial = float(trial)
        coefficient = self._sanitize_coefficient(coefficient, recoveries)

        effective_target = self.effective_target(standard, trial, policy)
        floor = tolerance_floor(effective_target)

        if not is_finite_number(previous_tolerance):
            recoveries.append("previous_tolerance")
            previous_tolerance = floor
        previous_tolerance = float(previous_tolerance)

        if not is_finite_number(actual):
            # No usable observation: keep the stored state, only enforce the floor.
            recoveries.append("actual")
            result = AdaptationResult(
                tolerance=max(previous_tolerance, floor),
                trial=trial,
                proposed_trial=trial,
                performance=0.0,
                effective_target=effective_target,
                tolerance_floor=floor,
                coefficient=coefficient,
                policy=policy,
                branch="skip",
                recoveries=tuple(recoveries),
            )
            self._log_adjustment(standard, actual, result)
            return result
        actual = float(actual)

        performance = self.performance_score(standard, trial, actual, effective_target)
        tolerance_new = self._update_tolerance(
            previous_tolerance, coefficient, performance, floor
        )
        proposed, trial_new, branch = self._update_trial(standard, trial, actual, policy)

        if not math.isfinite(trial_new):
            recoveries.append("trial_new")
            trial_new = standard
        if not math.isfinite(proposed):
            proposed = trial_new
        if not math.isfinite(tolerance_new):
            recoveries.append("tolerance_new")
            tolerance_new = floor

        result = AdaptationResult(
            tolerance=tolerance_new,
            trial=trial_new,
            proposed_trial=proposed,
            performance=performance,
            effective_target=effective_target,
            tolerance_floor=floor,
            coefficient=coefficient,
            policy=policy,
            branch=branch,
            recoveries=tuple(recoveries),
        )
        self._log_adjustment(standard, actual, result)
        return result

    @staticmethod
    def _log_adjustment(standard: float, actual: float, result: AdaptationResult) -> None:
        payload = {
            "event": "tolerance_adapt",
            "policy": result.policy.value,
            "branch": result.branch,
            "standard": standard,
            "actual": actual,
            "performance": round(result.performance, 4),
            "coefficient": round(result.coefficient, 4),
            "trial_new": round(result.trial, 4),
            "tolerance_new": round(result.tolerance, 4),
        }
        if result.recoveries:
            logger.warning(
                {"event": "tolerance_recovery", "fields": list(result.recoveries), **payload}
            )
        else:
            logger.info(payload)


_default_engine = ToleranceEngine()


def adapt_tolerance(
    standard: float,
    trial: float,
    actual: float,
    previous_tolerance: float,
    coefficient: float,
    policy,
) -> tuple[float, float]:
    """Pure wrapper returning (new_tolerance, new_trial)."""
    result = _default_engine.adapt(
        standard, trial, actual, previous_tolerance, coefficient, policy
    )
    return result.tolerance, result.trial
