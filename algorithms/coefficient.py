#!/usr/bin/env python3
"""
coefficient.py - Coefficient / Adaptation Service Wrapper
---------------------------------------------------------
Entry point for host apps to call the resolver and the single-metric engine.
Wraps: Coefficient_Algo.py, Tolerance_Algo.py

Functions:
- resolve: Adaptability coefficient from override or demographics
- adapt: One (tolerance, trial) update without any stored state

Usage: Called via child process with JSON stdin/stdout
"""

import sys
import json
import os
import logging

# Add parent directory to path to import modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from Coefficient_Algo import CoefficientResolver
from Tolerance_Algo import ToleranceEngine


def dispatch(function_name: str, args: dict) -> dict:
    """Routes a function name to the matching algorithm call."""
    # resolve: override short-circuits, otherwise age/gender/severity are used
    if function_name == 'resolve':
        return CoefficientResolver().resolve(
            override=args.get('override'),
            age=args.get('age'),
            gender=args.get('gender'),
            severity=args.get('severity')
        )

    # adapt: pure update, caller persists trial/tolerance
    if function_name == 'adapt':
        result = ToleranceEngine().adapt(
            standard=args.get('standard'),
            trial=args.get('trial', args.get('standard')),
            actual=args.get('actual'),
            previous_tolerance=args.get('previous_tolerance'),
            coefficient=args.get('coefficient'),
            policy=args.get('policy')
        )
        return result.as_dict()

    raise ValueError(f"Unknown function: {function_name}. Available: resolve, adapt")


# Main Entry Point: Routes JSON input to appropriate algorithm function
def main():
    """Main entry point for coefficient script"""
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    try:
        input_data = json.load(sys.stdin)

        result = dispatch(input_data.get('function'), input_data.get('args', {}))

        print(json.dumps({
            "success": True,
            "result": result
        }))

    except (ValueError, TypeError, AttributeError) as e:
        print(json.dumps({
            "success": False,
            "error": str(e)
        }))
        sys.exit(1)


if __name__ == '__main__':
    main()
