import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from Round_Based import run_round_adaptation
from StateBases.Definitions import MetricCatalog, MetricDefinition
from StateBases.Overrides import OverrideStore
from StateBases.Store import ToleranceStore
from StateBases.Telemetry import TelemetryMirror
from Tolerance_Algo import ToleranceState
from algo_errors import InvalidInput


def make_context():
	catalog = MetricCatalog([
		MetricDefinition.create("pinch", "aperture", 10.0, "MinValue", 3.0),
		MetricDefinition.create("pinch", "tremor", 5.0, "MaxValue", 2.0),
		MetricDefinition.create("pinch", "angle", 45.0, "ClosestToTarget", 5.0),
	])
	return dict(store=ToleranceStore(), catalog=catalog, overrides=OverrideStore())


def test_first_round_seeds_and_adapts():
	ctx = make_context()
	result = run_round_adaptation("s1", "pinch", {"aperture": 10.0}, age=20, gender="male", severity=0.0, **ctx)
	metric = result["Metrics"]["aperture"]
	assert metric["trial_old"] == 10.0
	assert metric["tolerance_old"] == 3.0
	assert metric["trial_new"] == 10.0
	# P = 1 so the band shrinks to previous * c
	assert metric["tolerance_new"] == pytest.approx(3.0 * 0.21)
	assert result["Summary"]["Coefficient_Source"] == "demographics"
	assert ctx["store"].get(("s1", "pinch", "aperture")).tolerance == pytest.approx(0.63)


def test_round_uses_persisted_state_and_cached_coefficient():
	ctx = make_context()
	ctx["store"].put(("s1", "pinch", "aperture"), ToleranceState(trial=7.0, tolerance=3.0))
	ctx["store"].put(("s1", "pinch", "tremor"), ToleranceState(trial=8.0, tolerance=2.0))

	first = run_round_adaptation("s1", "pinch", {"aperture": 7.5}, coefficient=0.25, **ctx)
	assert first["Summary"]["Coefficient_Source"] == "cached"
	assert first["Metrics"]["aperture"]["tolerance_new"] == pytest.approx(1.875)
	assert first["Metrics"]["aperture"]["trial_proposed"] == pytest.approx(7.6)

	second = run_round_adaptation("s1", "pinch", {"tremor": 6.0}, coefficient=0.2, **ctx)
	assert second["Metrics"]["tremor"]["tolerance_new"] == pytest.approx(0.8)
	assert second["Metrics"]["tremor"]["trial_new"] == pytest.approx(5.0)
	assert "tremor" in second["Summary"]["Tightened"]
	# aperture untouched by the second round
	assert ctx["store"].get(("s1", "pinch", "aperture")).tolerance == pytest.approx(1.875)


def test_override_wins_over_demographics():
	ctx = make_context()
	ctx["overrides"].set("s2", 0.5)
	result = run_round_adaptation("s2", "pinch", {"angle": 45.0}, **ctx)
	assert result["Coefficient"]["source"] == "override"
	assert result["Summary"]["Coefficient"] == 0.30


def test_missing_demographics_without_override_raises():
	ctx = make_context()
	with pytest.raises(InvalidInput):
		run_round_adaptation("s3", "pinch", {"angle": 40.0}, **ctx)


def test_unknown_metric_leaves_round_unapplied():
	ctx = make_context()
	with pytest.raises(InvalidInput):
		run_round_adaptation("s1", "pinch", {"aperture": 9.0, "speed": 2.0}, coefficient=0.2, **ctx)
	assert len(ctx["store"]) == 0


def test_empty_observations_rejected():
	ctx = make_context()
	with pytest.raises(InvalidInput):
		run_round_adaptation("s1", "pinch", {}, coefficient=0.2, **ctx)


def test_missing_observation_is_counted_as_recovery():
	ctx = make_context()
	result = run_round_adaptation("s1", "pinch", {"tremor": float("nan"), "angle": 44.0}, coefficient=0.2, **ctx)
	assert result["Summary"]["Recovery_Events"] == 1
	assert result["Metrics"]["tremor"]["actual"] is None
	assert ctx["store"].get(("s1", "pinch", "tremor")) == ToleranceState(trial=5.0, tolerance=2.0)


def test_telemetry_mirror_writes_one_line_per_metric(tmp_path):
	ctx = make_context()
	log_file = tmp_path / "telemetry.jsonl"
	run_round_adaptation(
		"s1", "pinch", {"aperture": 9.0, "tremor": 5.5},
		coefficient=0.2, telemetry=TelemetryMirror(str(log_file)), **ctx
	)
	lines = [json.loads(line) for line in log_file.read_text().splitlines()]
	assert [r["metric_id"] for r in lines] == ["aperture", "tremor"]
	assert all({"trial", "tolerance", "performance", "coefficient"} <= set(r) for r in lines)


def test_telemetry_failure_does_not_raise(tmp_path):
	mirror = TelemetryMirror(str(tmp_path / "missing-dir" / "telemetry.jsonl"))
	ctx = make_context()
	result = run_round_adaptation("s1", "pinch", {"angle": 44.0}, coefficient=0.2, telemetry=mirror, **ctx)
	assert result["Summary"]["Metrics_Adapted"] == 1


def test_concurrent_rounds_on_one_key_are_serialized():
	rounds = 40
	sequential = make_context()
	for _ in range(rounds):
		run_round_adaptation("s1", "pinch", {"aperture": 11.0}, coefficient=0.2, **sequential)

	concurrent = make_context()
	with ThreadPoolExecutor(max_workers=8) as pool:
		futures = [
			pool.submit(run_round_adaptation, "s1", "pinch", {"aperture": 11.0}, coefficient=0.2, **concurrent)
			for _ in range(rounds)
		]
		for future in futures:
			future.result()

	key = ("s1", "pinch", "aperture")
	assert concurrent["store"].get(key).trial == pytest.approx(sequential["store"].get(key).trial)
	assert concurrent["store"].get(key).tolerance == pytest.approx(sequential["store"].get(key).tolerance)


def test_telemetry_line_stays_strict_json_for_missing_observation(tmp_path):
	def reject_constant(token):
		raise ValueError(token)

	ctx = make_context()
	log_file = tmp_path / "telemetry.jsonl"
	run_round_adaptation(
		"s1", "pinch", {"tremor": float("nan")},
		coefficient=0.2, telemetry=TelemetryMirror(str(log_file)), **ctx
	)
	record = json.loads(log_file.read_text().strip(), parse_constant=reject_constant)
	assert record["actual"] is None
	assert record["recoveries"] == ["actual"]


def test_cached_coefficient_reported_as_applied():
	ctx = make_context()
	result = run_round_adaptation("s1", "pinch", {"angle": 44.0}, coefficient=float("nan"), **ctx)
	assert result["Coefficient"]["coefficient"] == 0.21
	assert result["Coefficient"]["source"] == "cached"

	clamped = run_round_adaptation("s1", "pinch", {"angle": 44.0}, coefficient=0.9, **ctx)
	assert clamped["Coefficient"]["coefficient"] == 0.30
	assert clamped["Summary"]["Coefficient"] == 0.30
