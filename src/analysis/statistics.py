from __future__ import annotations

import math
from typing import Iterable

import numpy as np


def nearest_rank(sorted_values: np.ndarray, percent: float) -> float:
    """ソート済み配列に対する nearest-rank 方式のパーセンタイル（補間なし）。"""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    rank = max(1, math.ceil(percent * n / 100.0))
    return float(sorted_values[min(rank, n) - 1])


def summarize_durations(durations: Iterable[float]) -> dict[str, float | int]:
    values = np.sort(np.asarray(list(durations), dtype=float))
    if values.size == 0:
        return {"count": 0, "mean": 0.0, "min": 0.0, "max": 0.0, "p95": 0.0, "p99": 0.0}
    return {
        "count": int(values.size),
        "mean": float(values.mean()),
        "min": float(values[0]),
        "max": float(values[-1]),
        "p95": nearest_rank(values, 95),
        "p99": nearest_rank(values, 99),
    }
