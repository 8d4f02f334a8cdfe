"""
Coefficient_Algo.py - Adaptability Coefficient Resolver
-------------------------------------------------------
Resolves the per-subject adaptability coefficient c that damps how fast
tolerance and trial respond to performance.

Key Functions:
- resolve(): Clinician override if present, else demographic fallback
- demographic_coefficient(): 0.21 x age factor x gender factor x severity factor
- resolve_for_subject(): Looks the override up in an OverrideStore first
- resolve_coefficient(): Lightweight wrapper used by scripts and the API

Concepts: c in [0.12, 0.30], override (clinician-set, clamped only),
          fallback (age 20-80, gender, severity 0.0-1.0)
"""

import logging
from functools import lru_cache

from algo_config import COEFFICIENT_BASE, clamp_coefficient, is_finite_number
from algo_errors import InvalidInput
from CoefficientBases.Age import get_age_factor
from CoefficientBases.Gender import get_gender_factor, parse_gender
from CoefficientBases.Severity import get_severity_factor

logger = logging.getLogger(__name__)


# Coefficient Resolver Class - pure, no state besides the fallback cache
class CoefficientResolver:
    __slots__ = ("base",)

    def __init__(self, base: float = COEFFICIENT_BASE):
        self.base = base

    # Demographic fallback, memoized since demographics rarely change between rounds
    @lru_cache(maxsize=512)
    def _fallback(self, age: float, gender, severity: float) -> tuple[float, float]:
        raw = (
            self.base
            * get_age_factor(age)
            * get_gender_factor(gender)
            * get_severity_factor(severity)
        )
        return raw, clamp_coefficient(raw)

    @staticmethod
    def _require_demographics(age, severity) -> None:
        if age is None:
            raise InvalidInput("age is required when no override is set.", field="age")
        if severity is None:
            raise InvalidInput(
                "severity is required when no override is set.", field="severity"
            )

    def demographic_coefficient(
        self, age: float = None, gender=None, severity: float = None
    ) -> float:
        self._require_demographics(age, severity)
        _, coefficient = self._fallback(age, parse_gender(gender), severity)
        return coefficient

    # Resolve: override path short-circuits, nothing else runs
    # A non-finite override is treated as absent and reported in the log
    def resolve(
        self,
        override: float = None,
        age: float = None,
        gender=None,
        severity: float = None,
    ) -> dict:
        if override is not None:
            if is_finite_number(override):
                coefficient = clamp_coefficient(float(override))
                if coefficient != override:
                    logger.debug(
                        {"event": "coefficient_clamped", "raw": override, "clamped": coefficient}
                    )
                return {"coefficient": coefficient, "source": "override", "raw": override}
            logger.warning({"event": "coefficient_override_ignored", "raw": repr(override)})

        self._require_demographics(age, severity)
        gender = parse_gender(gender)
        raw, coefficient = self._fallback(age, gender, severity)
        logger.info(
            {
                "event": "coefficient_resolved",
                "source": "demographics",
                "raw": round(raw, 4),
                "coefficient": round(coefficient, 4),
            }
        )
        return {
            "coefficient": coefficient,
            "source": "demographics",
            "raw": raw,
            "age_factor": get_age_factor(age),
            "gender_factor": get_gender_factor(gender),
            "severity_factor": get_severity_factor(severity),
        }

    def resolve_for_subject(
        self,
        subject_id: str,
        overrides=None,
        age: float = None,
        gender=None,
        severity: float = None,
    ) -> dict:
        override = overrides.get(subject_id) if overrides is not None else None
        result = self.resolve(override=override, age=age, gender=gender, severity=severity)
        result["subject_id"] = subject_id
        return result


_resolver = CoefficientResolver()


def resolve_coefficient(
    override: float = None,
    age: float = None,
    gender=None,
    severity: float = None,
) -> float:
    return _resolver.resolve(override=override, age=age, gender=gender, severity=severity)[
        "coefficient"
    ]
