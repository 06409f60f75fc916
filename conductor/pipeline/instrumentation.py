"""Lightweight structured logging for assessment sessions.

Events and timing summaries go to JSONL/JSON files in a run directory so
replays and live sessions produce the same diagnostics. All writes are
best-effort: a failing disk never interrupts the analysis loop.
"""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional

import numpy as np

logger = logging.getLogger(__name__)


class EngineLogger:
    """Structured logger that emits JSONL events and timing summaries."""

    def __init__(self, base_dir: str = "results", run_name: Optional[str] = None):
        self.base_dir = base_dir
        self.run_name = run_name or f"session_{int(time.time())}"
        self.run_dir = os.path.join(self.base_dir, self.run_name)
        os.makedirs(self.run_dir, exist_ok=True)
        self.logs_path = os.path.join(self.run_dir, "logs.jsonl")
        self.timing_path = os.path.join(self.run_dir, "timing.json")
        self._timing: Dict[str, Dict[str, float]] = {}
        self._start_time = time.perf_counter()
        self.log_event("engine", "logger_start", {"run_dir": self.run_dir})

    def log_event(self, stage: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        entry: Dict[str, Any] = {
            "stage": stage,
            "event": event,
            "timestamp": time.time(),
        }
        if payload:
            for key, value in payload.items():
                try:
                    json.dumps(value, default=self._safe_json_default)
                    entry[key] = value
                except (TypeError, ValueError):
                    entry[key] = str(value)
        try:
            with open(self.logs_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=self._safe_json_default) + "\n")
        except OSError as e:
            logger.debug(f"log_event write failed: {e}")

    def record_timing(self, stage: str, duration_s: float) -> None:
        """Accumulate count/total/max for a repeatedly timed stage."""
        stats = self._timing.setdefault(stage, {"count": 0, "total_s": 0.0, "max_s": 0.0})
        stats["count"] += 1
        stats["total_s"] += float(duration_s)
        stats["max_s"] = max(stats["max_s"], float(duration_s))

    @property
    def timing(self) -> Dict[str, Dict[str, float]]:
        return {k: dict(v) for k, v in self._timing.items()}

    def emit_config(self, stage: str, config_obj: Any, extras: Optional[Dict[str, Any]] = None) -> None:
        payload: Dict[str, Any] = {"config": {}}
        if is_dataclass(config_obj):
            payload["config"] = asdict(config_obj)
        else:
            payload["config"] = str(config_obj)
        if extras:
            payload.update(extras)
        self.log_event(stage, "config", payload)

    def finalize(self) -> None:
        summary: Dict[str, Any] = {}
        for stage, stats in self._timing.items():
            count = max(int(stats["count"]), 1)
            summary[stage] = dict(stats, mean_s=stats["total_s"] / count)
        summary["total_s"] = float(time.perf_counter() - self._start_time)
        try:
            with open(self.timing_path, "w", encoding="utf-8") as f:
                json.dump(summary, f, indent=2)
        except OSError as e:
            logger.debug(f"timing write failed: {e}")

    @staticmethod
    def _safe_json_default(o):
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.ndarray):
            return o.tolist()

        if is_dataclass(o):
            return asdict(o)
        if isinstance(o, (set, frozenset)):
            return sorted(o)

        # enums
        v = getattr(o, "value", None)
        if v is not None:
            return v

        return str(o)

    def write_json(self, filename: str, obj) -> None:
        try:
            path = os.path.join(self.run_dir, filename)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(obj, f, ensure_ascii=False, indent=2, default=self._safe_json_default)
        except OSError as e:
            self.log_event(stage="logger", event="artifact_write_failed",
                           payload={"filename": filename, "error": str(e)})
