"""
In-memory telemetry for the draft sync engine.

Intent:
    Count sync outcomes and track queue depth without pulling in a metrics
    stack. The operations health endpoint reads these snapshots; tests reset
    them between cases.
"""
from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Dict, Tuple

LabelKey = Tuple[Tuple[str, str], ...]
_counters: Dict[str, Dict[LabelKey, int]] = defaultdict(dict)
_gauges: Dict[str, Dict[LabelKey, float]] = defaultdict(dict)
_lock = Lock()

SYNC_OUTCOMES = ("success", "failed", "conflict", "discarded")


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def increment_counter(name: str, *, amount: int = 1, **labels: str) -> None:
    if amount == 0:
        return
    key = _label_key(labels)
    with _lock:
        _counters[name][key] = _counters[name].get(key, 0) + amount


def set_gauge(name: str, value: float, **labels: str) -> None:
    key = _label_key(labels)
    with _lock:
        _gauges[name][key] = float(value)


def adjust_gauge(name: str, delta: float, **labels: str) -> None:
    """Adjust a gauge by `delta`, clamping the stored value to zero or above."""
    key = _label_key(labels)
    with _lock:
        value = _gauges[name].get(key, 0.0) + float(delta)
        _gauges[name][key] = value if value > 0.0 else 0.0


def record_sync_outcome(outcome: str, *, draft_type: str) -> None:
    """Count one flush attempt by outcome (`success`, `failed`, `conflict`, `discarded`)."""
    if outcome not in SYNC_OUTCOMES:
        raise ValueError(f"unknown sync outcome: {outcome}")
    increment_counter("draft_sync_total", outcome=outcome, draft_type=draft_type)


def counter_value(name: str, **labels: str) -> int:
    with _lock:
        return _counters.get(name, {}).get(_label_key(labels), 0)


def counter_total(name: str) -> int:
    """Sum a counter across all label combinations."""
    with _lock:
        return sum(_counters.get(name, {}).values())


def gauge_value(name: str, **labels: str) -> float:
    with _lock:
        return _gauges.get(name, {}).get(_label_key(labels), 0.0)


def reset_for_tests() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


__all__ = [
    "SYNC_OUTCOMES",
    "increment_counter",
    "set_gauge",
    "adjust_gauge",
    "record_sync_outcome",
    "counter_value",
    "counter_total",
    "gauge_value",
    "reset_for_tests",
]
