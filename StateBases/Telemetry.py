import json
import logging
from time import time

from algo_config import is_finite_number

logger = logging.getLogger(__name__)


class TelemetryMirror:
    """Appends one compact JSON line per adapted metric for displays and exports."""

    __slots__ = ("log_file",)

    def __init__(self, log_file: str = "Tolerance_Logs.jsonl"):
        self.log_file = log_file

    @staticmethod
    def build_record(key, result, actual: float) -> dict:
        subject_id, step_id, metric_id = key
        return {
            "timestamp": round(time(), 3),
            "subject_id": subject_id,
            "step_id": step_id,
            "metric_id": metric_id,
            "actual": actual if is_finite_number(actual) else None,
            "trial": result.trial,
            "tolerance": result.tolerance,
            "performance": result.performance,
            "coefficient": result.coefficient,
            "recoveries": list(result.recoveries),
        }

    def write(self, key, result, actual: float) -> bool:
        record = self.build_record(key, result, actual)
        try:
            line = json.dumps(record, separators=(",", ":"), allow_nan=False)
            with open(self.log_file, "a", buffering=8192, encoding="utf-8") as f:
                f.write(line + "\n")
        except (IOError, OSError, TypeError, ValueError) as e:
            logger.warning({"event": "telemetry_write_failed", "error": str(e)})
            return False
        return True
