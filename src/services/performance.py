"""処理時間の計測とベンチマーク。時間の単位はすべてミリ秒。"""
from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Callable, TypeVar

from analysis.statistics import summarize_durations
from domain.errors import app_error
from domain.models import BenchmarkResult, BenchmarkSample

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PerformanceAnalyzer:
    """任意の処理の実行時間を記録し、分布統計を返す。"""

    def __init__(self) -> None:
        self._samples: list[BenchmarkSample] = []
        self._lock = Lock()

    def measure_execution(self, operation: Callable[[], T], name: str = "operation") -> tuple[T, float]:
        start = time.perf_counter()
        result = operation()
        duration_ms = (time.perf_counter() - start) * 1000.0
        with self._lock:
            self._samples.append(BenchmarkSample(name=name, duration_ms=duration_ms))
        return result, duration_ms

    @property
    def samples(self) -> tuple[BenchmarkSample, ...]:
        with self._lock:
            return tuple(self._samples)

    def get_statistics(self, name: str | None = None) -> dict[str, Any]:
        durations = [s.duration_ms for s in self.samples if name is None or s.name == name]
        summary = summarize_durations(durations)
        return {
            "totalMeasurements": summary["count"],
            "mean": summary["mean"],
            "min": summary["min"],
            "max": summary["max"],
            "p95": summary["p95"],
            "p99": summary["p99"],
        }

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()


class BenchmarkRunner:
    def __init__(self) -> None:
        self._results: list[BenchmarkResult] = []

    def run(self, name: str, operation: Callable[[], Any], iterations: int = 100) -> BenchmarkResult:
        if iterations < 1:
            raise app_error("E-SEQ-INVALID", detail=f"iterations must be >= 1 (got {iterations})")
        durations: list[float] = []
        for _ in range(iterations):
            start = time.perf_counter()
            operation()
            durations.append((time.perf_counter() - start) * 1000.0)
        summary = summarize_durations(durations)
        result = BenchmarkResult(
            name=name,
            iterations=iterations,
            average=summary["mean"],
            min=summary["min"],
            max=summary["max"],
            p95=summary["p95"],
            p99=summary["p99"],
        )
        self._results.append(result)
        logger.info("Benchmark %s: avg=%.4fms p95=%.4fms (%d iterations)", name, result.average, result.p95, iterations)
        return result

    def compare(
        self,
        name_a: str,
        operation_a: Callable[[], Any],
        name_b: str,
        operation_b: Callable[[], Any],
        iterations: int = 100,
    ) -> dict[str, Any]:
        """2つの処理を計測し、平均が小さい方と改善率（%）を返す。同値なら A を勝者とする。"""
        result_a = self.run(name_a, operation_a, iterations)
        result_b = self.run(name_b, operation_b, iterations)
        winner, loser = (result_a, result_b) if result_a.average <= result_b.average else (result_b, result_a)
        improvement = (
            (loser.average - winner.average) / loser.average * 100.0 if loser.average > 0 else 0.0
        )
        return {
            "winner": winner.name,
            "loser": loser.name,
            "improvement": improvement,
            "results": [result_a.as_dict(), result_b.as_dict()],
        }

    def get_results(self) -> list[BenchmarkResult]:
        return list(self._results)
