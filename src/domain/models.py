"""共通で利用するドメインモデル定義。"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PredictionResult:
    """1つの数列に対する解析・予測結果。"""

    success: bool
    sequence: tuple[float, ...]
    pattern: str
    pattern_type: str | None = None
    confidence: float = 0.0
    parameters: tuple[float, ...] = field(default_factory=tuple)
    next_value: float | None = None
    predictions: tuple[float, ...] = field(default_factory=tuple)
    source: str = "analysis"  # analysis / cache
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        """CLIやシリアライザ向けに辞書へ変換する。"""
        return {
            "success": self.success,
            "sequence": list(self.sequence),
            "pattern": self.pattern,
            "type": self.pattern_type,
            "confidence": self.confidence,
            "parameters": list(self.parameters),
            "nextValue": self.next_value,
            "predictions": list(self.predictions),
            "source": self.source,
            "message": self.message,
        }

    def with_source(self, source: str) -> "PredictionResult":
        return PredictionResult(
            success=self.success,
            sequence=self.sequence,
            pattern=self.pattern,
            pattern_type=self.pattern_type,
            confidence=self.confidence,
            parameters=self.parameters,
            next_value=self.next_value,
            predictions=self.predictions,
            source=source,
            message=self.message,
        )


@dataclass(slots=True)
class HistoryRecord:
    """解析履歴の1レコード。"""

    sequence: tuple[float, ...]
    pattern: str
    confidence: float
    predictions: tuple[float, ...] = field(default_factory=tuple)
    timestamp: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict[str, Any]:
        return {
            "sequence": list(self.sequence),
            "pattern": self.pattern,
            "confidence": self.confidence,
            "predictions": list(self.predictions),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_result(cls, result: PredictionResult) -> "HistoryRecord":
        return cls(
            sequence=tuple(result.sequence),
            pattern=result.pattern,
            confidence=result.confidence,
            predictions=tuple(result.predictions),
        )


@dataclass(slots=True)
class ValidationResult:
    """入力検証の結果。想定内の不正入力は例外ではなくこの形で返す。"""

    valid: bool
    reason: str | None = None
    position: int | None = None
    value: Any = None

    def describe(self) -> str:
        if self.valid:
            return "ok"
        if self.position is None:
            return self.reason or "invalid"
        return f"{self.reason} (index={self.position}, value={self.value!r})"


@dataclass(slots=True)
class BenchmarkSample:
    name: str
    duration_ms: float
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class BenchmarkResult:
    """ベンチマーク1回分の集計値（単位: ミリ秒）。"""

    name: str
    iterations: int
    average: float
    min: float
    max: float
    p95: float
    p99: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "iterations": self.iterations,
            "average": self.average,
            "min": self.min,
            "max": self.max,
            "p95": self.p95,
            "p99": self.p99,
        }


@dataclass(slots=True)
class BatchItem:
    """バッチ解析の1件分。失敗時は error にメッセージが入る。"""

    sequence: tuple[Any, ...]
    result: PredictionResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


def as_float_tuple(values: Iterable[Any] | None) -> tuple[float, ...]:
    """数列を float のタプルに正規化するヘルパー。"""
    if values is None:
        return ()
    return tuple(float(v) for v in values)


def ensure_sequence(value: Iterable[HistoryRecord] | None) -> Sequence[HistoryRecord]:
    if value is None:
        return ()
    if isinstance(value, Sequence):
        return value
    return tuple(value)
