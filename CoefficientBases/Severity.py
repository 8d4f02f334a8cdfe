from functools import lru_cache

from algo_config import (
    SEVERITY_FACTOR_AT_MAX,
    SEVERITY_FACTOR_AT_MIN,
    SEVERITY_MAX,
    SEVERITY_MIN,
    is_finite_number,
    lerp,
)
from algo_errors import InvalidInput


@lru_cache(maxsize=256)
def get_severity_factor(severity: float) -> float:
    """
    Impairment severity contribution to the adaptability coefficient.

    Args:
        severity (float): Clinician-rated severity, 0.0 (mild) to 1.0 (severe).
            Values outside that range are clamped.

    Returns:
        float: 1.00 at severity 0.0 falling linearly to 0.85 at severity 1.0.
    """
    if not is_finite_number(severity):
        raise InvalidInput("severity must be a finite number.", field="severity")
    severity = max(SEVERITY_MIN, min(SEVERITY_MAX, float(severity)))
    return lerp(SEVERITY_FACTOR_AT_MIN, SEVERITY_FACTOR_AT_MAX, severity)
