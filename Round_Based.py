"""
Round_Based.py
--------------
High-level round entrypoint used by the backend. Resolves the subject's
adaptability coefficient once, then adapts every observed metric of the
exercise step independently against its persisted trial and tolerance.
"""

import logging

from algo_errors import InvalidInput
from algo_config import is_finite_number
from Coefficient_Algo import CoefficientResolver
from Tolerance_Algo import ToleranceEngine
from StateBases.Definitions import MetricCatalog
from StateBases.Overrides import OverrideStore
from StateBases.Store import ToleranceStore, make_key

logger = logging.getLogger(__name__)

# Shared instances for the backend and scripts; callers may pass their own.
_engine = ToleranceEngine()
_resolver = CoefficientResolver()
tolerance_store = ToleranceStore()
metric_catalog = MetricCatalog()
override_store = OverrideStore()


def _resolve_round_coefficient(
    subject_id: str,
    coefficient,
    overrides: OverrideStore,
    age,
    gender,
    severity,
) -> dict:
    # A cached coefficient from an earlier round skips the resolver entirely.
    if coefficient is not None:
        return {"coefficient": coefficient, "source": "cached", "subject_id": subject_id}
    return _resolver.resolve_for_subject(
        subject_id, overrides=overrides, age=age, gender=gender, severity=severity
    )


def run_round_adaptation(
    subject_id: str,
    step_id: str,
    observations: dict,
    age: float = None,
    gender=None,
    severity: float = None,
    coefficient: float = None,
    store: ToleranceStore = None,
    catalog: MetricCatalog = None,
    overrides: OverrideStore = None,
    telemetry=None,
) -> dict:
    """
    Adapt every metric observed in one completed round.

    Args:
        subject_id (str): Patient identifier.
        step_id (str): Exercise step identifier.
        observations (dict): metric_id -> best value achieved this round.
        age, gender, severity: Demographic fallback inputs for the coefficient.
        coefficient (float, optional): Previously resolved coefficient to reuse.
        store, catalog, overrides: State collaborators (module defaults if omitted).
        telemetry (TelemetryMirror, optional): Receives one record per metric.

    Returns:
        dict: {"Coefficient": {...}, "Metrics": {...}, "Summary": {...}}
    """
    store = tolerance_store if store is None else store
    catalog = metric_catalog if catalog is None else catalog
    overrides = override_store if overrides is None else overrides

    if not isinstance(observations, dict) or not observations:
        raise InvalidInput("observations must be a non-empty mapping.", field="observations")

    # Validate every key and definition before touching state so a bad
    # request leaves the round unapplied.
    planned = []
    for metric_id, actual in observations.items():
        key = make_key(subject_id, step_id, metric_id)
        planned.append((key, catalog.get(step_id, metric_id), actual))

    coefficient_info = _resolve_round_coefficient(
        subject_id, coefficient, overrides, age, gender, severity
    )
    c = coefficient_info["coefficient"]

    metrics = {}
    recovery_events = 0
    for key, definition, actual in planned:
        with store.exclusive(key):
            previous = store.get_or_seed(key, definition)
            result = _engine.adapt(
                standard=definition.standard,
                trial=previous.trial,
                actual=actual,
                previous_tolerance=previous.tolerance,
                coefficient=c,
                policy=definition.policy,
            )
            store.put(key, result.state)

        recovery_events += len(result.recoveries)
        if telemetry is not None:
            telemetry.write(key, result, actual)

        metrics[definition.metric_id] = {
            "standard": definition.standard,
            "actual": actual if is_finite_number(actual) else None,
            "trial_old": previous.trial,
            "tolerance_old": previous.tolerance,
            **result.as_dict(),
        }

    # Report the coefficient the engine applied, not the raw cached value.
    applied = next(iter(metrics.values()))["coefficient"]
    coefficient_info = {**coefficient_info, "coefficient": applied}

    summary = {
        "Metrics_Adapted": len(metrics),
        "Coefficient": applied,
        "Coefficient_Source": coefficient_info["source"],
        "Recovery_Events": recovery_events,
        "Tightened": sorted(m for m, r in metrics.items() if r["branch"] in ("tighten", "approach", "snap")),
        "Relaxed": sorted(m for m, r in metrics.items() if r["branch"] == "relax"),
    }
    logger.info(
        {
            "event": "round_adapt",
            "subject_id": subject_id,
            "step_id": step_id,
            "metrics": len(metrics),
            "coefficient": summary["Coefficient"],
            "recovery_events": recovery_events,
        }
    )
    return {
        "subject_id": subject_id,
        "step_id": step_id,
        "Coefficient": coefficient_info,
        "Metrics": metrics,
        "Summary": summary,
    }
