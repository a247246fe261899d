from __future__ import annotations

import json
import math
import os
import threading
from typing import Any, Dict, Optional, Sequence, TextIO

from sensor_sim.beams import Sample


def summarize_samples(samples: Sequence[Sample]) -> Dict[str, Any]:
    """Reduce one sensor's samples to counts and range statistics."""
    distances = [s.distance for s in samples]
    hits = sum(1 for s in samples if s.hit)
    return {
        "samples": len(distances),
        "hits": hits,
        "min_range": min(distances) if distances else math.nan,
        "mean_range": sum(distances) / len(distances) if distances else math.nan,
    }


class ScanTelemetryLogger:
    """Structured JSONL logger for beam scans.

    Append-only, one JSON object per sensor per logged tick.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self._lock = threading.Lock()
        self._fp: Optional[TextIO] = open(self.path, "a", encoding="utf-8")

    def log_scan(self, tick: int, sensor_id: str, samples: Sequence[Sample]) -> None:
        record: Dict[str, Any] = {"tick": tick, "sensor_id": sensor_id}
        record.update(summarize_samples(samples))
        self.log_record(record)

    def log_record(self, record: Dict[str, Any]) -> None:
        """Append a single record to the JSONL file."""
        if self._fp is None:
            return
        # NaN is not valid JSON
        clean = {k: (None if isinstance(v, float) and math.isnan(v) else v) for k, v in record.items()}
        line = json.dumps(clean, separators=(",", ":"))
        with self._lock:
            self._fp.write(line + "\n")
            self._fp.flush()

    def close(self) -> None:
        if self._fp is not None:
            self._fp.close()
            self._fp = None

    def __enter__(self) -> "ScanTelemetryLogger":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
