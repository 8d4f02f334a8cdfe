#!/usr/bin/env python3
"""
Standalone script to apply one exercise round
Can be called directly from a host app using a child process.
State persists between calls in the JSON file named by "state_file".
"""
import sys
import json
import os
import logging

# Add parent directory to path to import algorithms
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from algo_errors import InvalidInput
from Round_Based import run_round_adaptation
from StateBases.Definitions import MetricCatalog
from StateBases.Overrides import OverrideStore
from StateBases.Store import ToleranceStore
from StateBases.Telemetry import TelemetryMirror


def build_catalog(definitions: list) -> MetricCatalog:
    catalog = MetricCatalog()
    for row in definitions:
        catalog.define(
            step_id=row.get('step_id'),
            metric_id=row.get('metric_id'),
            standard=row.get('standard'),
            policy=row.get('policy'),
            initial_tolerance=row.get('initial_tolerance')
        )
    return catalog


def load_store(state_file: str) -> ToleranceStore:
    if state_file and os.path.exists(state_file):
        return ToleranceStore.load(state_file)
    return ToleranceStore()


def run(input_data: dict) -> dict:
    """Apply the round described by input_data and persist the new state."""
    subject_id = input_data.get('subject_id')
    state_file = input_data.get('state_file')

    definitions = input_data.get('definitions') or []
    if not definitions:
        raise InvalidInput("definitions must be a non-empty list.", field="definitions")
    catalog = build_catalog(definitions)
    store = load_store(state_file)

    overrides = OverrideStore()
    if input_data.get('override') is not None:
        overrides.set(subject_id, float(input_data['override']))

    telemetry = None
    if input_data.get('telemetry_file'):
        telemetry = TelemetryMirror(input_data['telemetry_file'])

    result = run_round_adaptation(
        subject_id=subject_id,
        step_id=input_data.get('step_id'),
        observations=input_data.get('observations'),
        age=input_data.get('age'),
        gender=input_data.get('gender'),
        severity=input_data.get('severity'),
        coefficient=input_data.get('coefficient'),
        store=store,
        catalog=catalog,
        overrides=overrides,
        telemetry=telemetry
    )

    if state_file:
        store.save(state_file)
    return result


def main():
    """Main entry point for round adjustment"""
    # Configure logging to stderr so stdout stays clean JSON
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    try:
        input_data = json.loads(sys.stdin.read())
        if not isinstance(input_data, dict):
            raise InvalidInput("Input must be a JSON object.")
        logging.info({"event": "round_adjust_input", "subject_id": input_data.get('subject_id')})

        result = run(input_data)

        summary = result.get("Summary", {})
        logging.info({
            "event": "round_adjust_output",
            "subject_id": result.get("subject_id"),
            "step_id": result.get("step_id"),
            "metrics": summary.get("Metrics_Adapted"),
            "recovery_events": summary.get("Recovery_Events"),
        })
        print(json.dumps({
            "success": True,
            "result": result
        }))

    except (ValueError, TypeError, KeyError, OSError) as e:
        logging.exception({"event": "round_adjust_error", "error": str(e)})
        print(json.dumps({
            "success": False,
            "error": str(e)
        }))
        sys.exit(1)


if __name__ == '__main__':
    main()
