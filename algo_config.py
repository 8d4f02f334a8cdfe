"""
Central configuration for tolerance/trial adaptation constants.
Keep all tunable constants here so backend and tests can rely on one source.
"""

import math

# Adaptability coefficient bounds
COEFFICIENT_MIN = 0.12
COEFFICIENT_MAX = 0.30
COEFFICIENT_BASE = 0.21

# Age factor: linear from AGE_FACTOR_AT_MIN (age 20) to AGE_FACTOR_AT_MAX (age 80)
AGE_MIN = 20.0
AGE_MAX = 80.0
AGE_FACTOR_AT_MIN = 1.00
AGE_FACTOR_AT_MAX = 0.95

# Female / non-binary factor
GENDER_FACTOR_REDUCED = 0.98
GENDER_FACTOR_DEFAULT = 1.00

# Severity factor: linear from 1.00 (severity 0.0) to 0.85 (severity 1.0)
SEVERITY_MIN = 0.0
SEVERITY_MAX = 1.0
SEVERITY_FACTOR_AT_MIN = 1.00
SEVERITY_FACTOR_AT_MAX = 0.85

# Trial update
ALPHA = 0.20
RELAX_STEP = 0.10
EASE_FACTOR = 0.015

# Near-perfect match snaps trial to standard
SNAP_EPSILON = 1e-4

# Performance score scale never goes below this
SCALE_MIN = 0.001

# Tolerance floor = FLOOR_RATIO * max(|effective_target|, FLOOR_MAGNITUDE_MIN)
FLOOR_RATIO = 0.01
FLOOR_MAGNITUDE_MIN = 1.0

# Starting band for metrics registered without one, as a share of max(|standard|, 1)
DEFAULT_INITIAL_TOLERANCE_RATIO = 0.25


def clamp_coefficient(c: float) -> float:
	"""Clamp the adaptability coefficient to allowed range."""
	if c < COEFFICIENT_MIN:
		return COEFFICIENT_MIN
	if c > COEFFICIENT_MAX:
		return COEFFICIENT_MAX
	return c


def clamp_unit(value: float, low: float = -1.0, high: float = 1.0) -> float:
	return max(low, min(high, value))


def lerp(a: float, b: float, t: float) -> float:
	return a + (b - a) * t


def tolerance_floor(effective_target: float) -> float:
	"""Smallest band allowed around a target of this magnitude."""
	return FLOOR_RATIO * max(abs(effective_target), FLOOR_MAGNITUDE_MIN)


def default_initial_tolerance(standard: float) -> float:
	return DEFAULT_INITIAL_TOLERANCE_RATIO * max(abs(standard), FLOOR_MAGNITUDE_MIN)


def is_finite_number(value) -> bool:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return False
	return math.isfinite(value)
