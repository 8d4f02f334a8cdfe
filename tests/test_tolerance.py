import math

import pytest

from Tolerance_Algo import Policy, ToleranceEngine, adapt_tolerance
from algo_config import tolerance_floor, COEFFICIENT_BASE
from algo_errors import InvalidInput


def adapt(standard, trial, actual, previous_tolerance=1.0, c=0.2, policy="MinValue"):
	return ToleranceEngine().adapt(standard, trial, actual, previous_tolerance, c, policy)


def test_worked_scenario_min_value():
	res = adapt(10.0, 7.0, 7.5, previous_tolerance=3.0, c=0.25, policy="MinValue")
	assert res.effective_target == pytest.approx(10.0)
	assert res.performance == pytest.approx(0.5)
	assert res.tolerance == pytest.approx(1.875)
	assert res.branch == "tighten"
	# Lerp(7, 10, 0.2) before the directional clamp
	assert res.proposed_trial == pytest.approx(7.6)
	assert res.trial == pytest.approx(max(7.6, 10.0))


def test_worked_scenario_max_value():
	res = adapt(5.0, 8.0, 6.0, previous_tolerance=2.0, c=0.20, policy="MaxValue")
	assert res.effective_target == pytest.approx(5.0)
	assert res.performance == pytest.approx(0.75)
	assert res.tolerance == pytest.approx(0.8)
	assert res.proposed_trial == pytest.approx(7.4)
	assert res.trial == pytest.approx(5.0)


def test_closest_to_target_snaps_on_near_perfect_match():
	res = adapt(10.0, 7.0, 10.00005, policy="ClosestToTarget")
	assert res.trial == 10.0
	assert res.branch == "snap"


def test_closest_to_target_moves_only_when_closer():
	closer = adapt(10.0, 7.0, 9.0, policy="ClosestToTarget")
	assert closer.trial == pytest.approx(7.4)
	farther = adapt(10.0, 7.0, 5.0, policy="ClosestToTarget")
	assert farther.trial == 7.0
	assert farther.branch == "hold"


def test_min_value_relax_branch():
	res = adapt(10.0, 12.0, 11.0, policy="MinValue")
	assert res.branch == "relax"
	assert res.trial == pytest.approx(11.982)


def test_max_value_relax_branch():
	res = adapt(5.0, 4.0, 6.0, policy="MaxValue")
	assert res.branch == "relax"
	assert res.trial == pytest.approx(4.006)


def test_directional_clamps_hold_across_inputs():
	for trial in (-5.0, 0.0, 3.0, 10.0, 25.0):
		for actual in (-20.0, 0.0, 9.9, 10.0, 10.1, 40.0):
			assert adapt(10.0, trial, actual, policy="MinValue").trial >= 10.0
			assert adapt(10.0, trial, actual, policy="MaxValue").trial <= 10.0


def test_performance_score_bounded():
	for actual in (-1e6, -3.0, 0.0, 4.99, 5.0, 7.5, 1e6):
		for policy in Policy:
			res = adapt(5.0, 3.0, actual, policy=policy)
			assert -1.0 <= res.performance <= 1.0


def test_far_miss_expands_tolerance():
	res = adapt(10.0, 10.0, 30.0, previous_tolerance=1.0, c=0.2, policy="ClosestToTarget")
	assert res.performance == -1.0
	assert res.tolerance == pytest.approx(1.8)


def test_tolerance_never_below_floor():
	res = adapt(10.0, 10.0, 10.0, previous_tolerance=0.05, c=0.12, policy="MinValue")
	assert res.tolerance == pytest.approx(tolerance_floor(10.0))
	assert res.tolerance == pytest.approx(0.1)
	small = adapt(0.2, 0.2, 0.2, previous_tolerance=0.001, c=0.12, policy="MaxValue")
	assert small.tolerance == pytest.approx(0.01)


def test_perfect_rounds_keep_trial_at_standard():
	engine = ToleranceEngine()
	for policy in Policy:
		trial, tolerance = 8.0, 2.0
		for _ in range(5):
			res = engine.adapt(8.0, trial, 8.0, tolerance, 0.2, policy)
			trial, tolerance = res.trial, res.tolerance
		assert trial == 8.0


def test_relax_converges_to_standard():
	engine = ToleranceEngine()
	trial, tolerance = 12.0, 2.0
	for _ in range(400):
		res = engine.adapt(10.0, trial, 10.0, tolerance, 0.2, Policy.MIN_VALUE)
		trial, tolerance = res.trial, res.tolerance
	assert trial == pytest.approx(10.0, abs=1e-6)
	assert tolerance == pytest.approx(0.1)


def test_non_finite_inputs_never_reach_output():
	cases = [
		dict(trial=float("nan")),
		dict(trial=float("inf")),
		dict(actual=float("nan")),
		dict(actual=float("-inf")),
		dict(previous_tolerance=float("nan")),
		dict(c=float("inf")),
	]
	for overrides in cases:
		args = dict(standard=10.0, trial=8.0, actual=9.0, previous_tolerance=2.0, c=0.2)
		args.update(overrides)
		for policy in Policy:
			res = adapt(policy=policy, **args)
			assert math.isfinite(res.trial)
			assert math.isfinite(res.tolerance)
			assert res.tolerance > 0
			assert res.recoveries


def test_corrupt_trial_is_reset_to_standard():
	res = adapt(10.0, float("nan"), 10.0, policy="ClosestToTarget")
	assert "trial" in res.recoveries
	assert res.trial == 10.0


def test_missing_observation_keeps_state():
	res = adapt(10.0, 8.0, float("nan"), previous_tolerance=2.0, policy="MinValue")
	assert res.branch == "skip"
	assert res.trial == 8.0
	assert res.tolerance == 2.0
	assert res.recoveries == ("actual",)


def test_non_finite_coefficient_uses_base():
	res = adapt(10.0, 10.0, 10.0, c=float("nan"))
	assert res.coefficient == COEFFICIENT_BASE
	assert "coefficient" in res.recoveries


def test_overflowing_tolerance_is_sanitized_to_floor():
	res = adapt(1.0, 1.0, 1e308, previous_tolerance=1e308, c=0.12, policy="ClosestToTarget")
	assert "tolerance_new" in res.recoveries
	assert res.tolerance == pytest.approx(0.01)


def test_coefficient_out_of_range_is_clamped():
	high = adapt(10.0, 10.0, 10.0, previous_tolerance=1.0, c=0.9)
	assert high.coefficient == 0.30
	assert high.tolerance == pytest.approx(0.3)
	low = adapt(10.0, 10.0, 10.0, previous_tolerance=1.0, c=0.0)
	assert low.coefficient == 0.12
	assert not low.recoveries


def test_non_finite_standard_is_rejected():
	with pytest.raises(InvalidInput):
		adapt(float("nan"), 1.0, 1.0)
	with pytest.raises(InvalidInput):
		adapt(float("inf"), 1.0, 1.0)


def test_unknown_policy_is_rejected():
	with pytest.raises(InvalidInput):
		adapt(10.0, 8.0, 9.0, policy="Sideways")


def test_policy_parse_accepts_common_spellings():
	assert Policy.parse("MinValue") is Policy.MIN_VALUE
	assert Policy.parse("max_value") is Policy.MAX_VALUE
	assert Policy.parse("Closest-To-Target") is Policy.CLOSEST_TO_TARGET
	assert Policy.parse(Policy.MAX_VALUE) is Policy.MAX_VALUE


def test_adapt_tolerance_wrapper_returns_pair():
	tolerance, trial = adapt_tolerance(5.0, 8.0, 6.0, 2.0, 0.2, "MaxValue")
	assert tolerance == pytest.approx(0.8)
	assert trial == pytest.approx(5.0)
