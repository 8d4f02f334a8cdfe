"""
Flask Backend API for the tolerance/trial controller
Provides REST endpoints for exercise apps and clinician tools.
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
import sys
import os

# Add parent directory to path to import algorithms
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from Coefficient_Algo import CoefficientResolver
from Tolerance_Algo import ToleranceEngine
from Round_Based import run_round_adaptation, tolerance_store, metric_catalog, override_store
from StateBases.Store import make_key

app = Flask(__name__)
CORS(app)  # Enable CORS for front-end requests

# Initialize algorithm instances
resolver = CoefficientResolver()
engine = ToleranceEngine()

# Errors reported to the caller as a 400 envelope
_CLIENT_ERRORS = (ValueError, TypeError, KeyError)


def _error(e: Exception, status: int = 400):
    return jsonify({
        "success": False,
        "error": str(e)
    }), status


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _optional_float(data: dict, name: str):
    value = data.get(name)
    return None if value is None else float(value)


@app.route('/api/health', methods=['GET'])
def health():
    """Health check endpoint"""
    return jsonify({"status": "ok", "message": "Tolerance controller API is running"})


@app.route('/api/coefficient/resolve', methods=['POST'])
def resolve_coefficient():
    """
    Resolve the adaptability coefficient.

    Expected JSON payload:
    {
        "subject_id": str (optional, reads the stored override),
        "override": float (optional),
        "age": float,
        "gender": str (optional),
        "severity": float
    }
    """
    try:
        data = _payload()
        age = _optional_float(data, 'age')
        severity = _optional_float(data, 'severity')
        gender = data.get('gender')

        if 'override' in data:
            result = resolver.resolve(
                override=_optional_float(data, 'override'),
                age=age,
                gender=gender,
                severity=severity
            )
        elif data.get('subject_id'):
            result = resolver.resolve_for_subject(
                data['subject_id'],
                overrides=override_store,
                age=age,
                gender=gender,
                severity=severity
            )
        else:
            result = resolver.resolve(age=age, gender=gender, severity=severity)

        return jsonify({
            "success": True,
            "result": result
        })

    except _CLIENT_ERRORS as e:
        return _error(e)


@app.route('/api/coefficient/override/<subject_id>', methods=['GET', 'PUT', 'DELETE'])
def coefficient_override(subject_id):
    """
    Clinician override for one subject.

    PUT JSON payload:
    {
        "value": float
    }
    """
    try:
        if request.method == 'PUT':
            data = _payload()
            override_store.set(subject_id, float(data['value']))
            result = {"subject_id": subject_id, "override": override_store.get(subject_id)}
        elif request.method == 'DELETE':
            result = {"subject_id": subject_id, "cleared": override_store.clear(subject_id)}
        else:
            result = {"subject_id": subject_id, "override": override_store.get(subject_id)}

        return jsonify({
            "success": True,
            "result": result
        })

    except _CLIENT_ERRORS as e:
        return _error(e)


@app.route('/api/tolerance/adapt', methods=['POST'])
def adapt_tolerance():
    """
    Single-metric update, no state involved.

    Expected JSON payload:
    {
        "standard": float,
        "trial": float,
        "actual": float,
        "previous_tolerance": float,
        "coefficient": float,
        "policy": str  # "MinValue", "MaxValue" or "ClosestToTarget"
    }
    """
    try:
        data = _payload()

        result = engine.adapt(
            standard=float(data['standard']),
            trial=float(data.get('trial', data['standard'])),
            actual=float(data['actual']),
            previous_tolerance=float(data['previous_tolerance']),
            coefficient=float(data['coefficient']),
            policy=data['policy']
        )

        return jsonify({
            "success": True,
            "result": result.as_dict()
        })

    except _CLIENT_ERRORS as e:
        return _error(e)


@app.route('/api/metrics', methods=['GET', 'POST'])
def metrics():
    """
    Register or list metric definitions.

    POST JSON payload:
    {
        "step_id": str,
        "metric_id": str,
        "standard": float,
        "policy": str,
        "initial_tolerance": float (optional)
    }
    GET query: ?step_id=...
    """
    try:
        if request.method == 'POST':
            data = _payload()
            definition = metric_catalog.define(
                step_id=data.get('step_id'),
                metric_id=data.get('metric_id'),
                standard=data.get('standard'),
                policy=data.get('policy'),
                initial_tolerance=data.get('initial_tolerance')
            )
            return jsonify({
                "success": True,
                "result": definition.as_dict()
            })

        step_id = request.args.get('step_id', '')
        return jsonify({
            "success": True,
            "result": [d.as_dict() for d in metric_catalog.for_step(step_id)]
        })

    except _CLIENT_ERRORS as e:
        return _error(e)


def _run_subject_round(entry: dict, defaults: dict) -> dict:
    if not isinstance(entry, dict):
        raise ValueError("Each subject entry must be a JSON object")
    merged = dict(defaults)
    merged.update(entry)
    return run_round_adaptation(
        subject_id=merged.get('subject_id'),
        step_id=merged.get('step_id'),
        observations=merged.get('observations'),
        age=_optional_float(merged, 'age'),
        gender=merged.get('gender'),
        severity=_optional_float(merged, 'severity'),
        coefficient=_optional_float(merged, 'coefficient')
    )


@app.route('/api/round/adjust', methods=['POST'])
def round_adjustment():
    """
    Apply one completed round. Supports a single subject or a batch.

    Single subject JSON payload:
    {
        "subject_id": str,
        "step_id": str,
        "observations": {metric_id: float, ...},
        "age": float, "gender": str, "severity": float,
        "coefficient": float (optional, reuse a cached value)
    }

    Batch JSON payload:
    {
        "step_id": str (optional, applies to all),
        "subjects": [ {single subject payload}, ... ]
    }
    """
    try:
        data = _payload()

        if 'subjects' in data and isinstance(data.get('subjects'), list):
            subjects = data.get('subjects', [])
            if not subjects:
                raise ValueError("'subjects' must be a non-empty list")
            defaults = {k: v for k, v in data.items() if k != 'subjects'}

            results = []
            for idx, entry in enumerate(subjects):
                try:
                    result = _run_subject_round(entry, defaults)
                    results.append({"index": idx + 1, **result})
                except _CLIENT_ERRORS as e:
                    # If one subject fails, include error in result
                    results.append({
                        "index": idx + 1,
                        "subject_id": entry.get('subject_id') if isinstance(entry, dict) else None,
                        "error": str(e)
                    })

            return jsonify({
                "success": True,
                "result": {
                    "batch_mode": True,
                    "subjects": results,
                    "summary": {
                        "total_subjects": len(subjects),
                        "processed": len([r for r in results if "error" not in r]),
                        "failed": len([r for r in results if "error" in r])
                    }
                }
            })

        result = _run_subject_round(data, {})
        return jsonify({
            "success": True,
            "result": {"batch_mode": False, **result}
        })

    except _CLIENT_ERRORS as e:
        return _error(e)


@app.route('/api/state/<subject_id>/<step_id>/<metric_id>', methods=['GET'])
def read_state(subject_id, step_id, metric_id):
    """Current trial and tolerance for one metric, 404 before the first round."""
    try:
        state = tolerance_store.get(make_key(subject_id, step_id, metric_id))
        if state is None:
            return _error(KeyError(f"No state for {subject_id}/{step_id}/{metric_id}"), 404)
        return jsonify({
            "success": True,
            "result": {"trial": state.trial, "tolerance": state.tolerance}
        })

    except _CLIENT_ERRORS as e:
        return _error(e)


if __name__ == '__main__':
    print("Starting Tolerance Controller API on http://localhost:5000")
    print("API Endpoints:")
    print("  GET    /api/health")
    print("  POST   /api/coefficient/resolve")
    print("  GET/PUT/DELETE /api/coefficient/override/<subject_id>")
    print("  POST   /api/tolerance/adapt")
    print("  GET/POST /api/metrics")
    print("  POST   /api/round/adjust")
    print("  GET    /api/state/<subject_id>/<step_id>/<metric_id>")
    app.run(debug=True, port=5000)
