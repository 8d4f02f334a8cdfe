from functools import lru_cache

from algo_config import (
    AGE_FACTOR_AT_MAX,
    AGE_FACTOR_AT_MIN,
    AGE_MAX,
    AGE_MIN,
    is_finite_number,
    lerp,
)
from algo_errors import InvalidInput

# Span of the interpolation, precomputed for the lookup below
_AGE_SPAN = AGE_MAX - AGE_MIN


def clamp_age(age: float) -> float:
    """Ages outside the calibrated 20-80 window use the boundary value."""
    return max(AGE_MIN, min(AGE_MAX, age))


@lru_cache(maxsize=256)
def get_age_factor(age: float) -> float:
    """
    Age contribution to the adaptability coefficient.

    Args:
        age (float): Subject age in years.

    Returns:
        float: 1.00 at age 20 falling linearly to 0.95 at age 80.
    """
    if not is_finite_number(age):
        raise InvalidInput("age must be a finite number.", field="age")
    t = (clamp_age(float(age)) - AGE_MIN) / _AGE_SPAN
    return lerp(AGE_FACTOR_AT_MIN, AGE_FACTOR_AT_MAX, t)
