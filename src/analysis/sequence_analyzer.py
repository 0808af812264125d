"""数列に最も単純に当てはまるパターンを選び、先の値を予測する。"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from analysis.guard import first_invalid_element
from analysis.patterns import EPSILON, MAX_DEGREE, PatternHypothesis, candidate_hypotheses
from domain.errors import app_error
from domain.models import HistoryRecord, PredictionResult, as_float_tuple

logger = logging.getLogger(__name__)

UNRECOGNIZED = "Unrecognized Pattern"
DEFAULT_STEPS = 5


class SequenceAnalyzer:
    """セッション単位の解析器。履歴はインスタンスごとに独立している。

    スレッドセーフではない。1セッション = 1スレッドで利用する前提。
    """

    def __init__(
        self,
        *,
        max_degree: int = MAX_DEGREE,
        tolerance: float = EPSILON,
        default_steps: int = DEFAULT_STEPS,
    ) -> None:
        self.max_degree = max_degree
        self.tolerance = tolerance
        self.default_steps = default_steps
        self.detected_pattern: PatternHypothesis | None = None
        self._history: list[HistoryRecord] = []

    # -- 公開API -----------------------------------------------------------------
    def detect(self, sequence: Iterable[float]) -> PatternHypothesis | None:
        """優先順位順で最初に信頼度 1.0 となった仮説を返す。該当なしは None。"""
        values = self._require_data(sequence)
        for hypothesis in candidate_hypotheses(values, max_degree=self.max_degree, tolerance=self.tolerance):
            if hypothesis.confidence >= 1.0:
                self.detected_pattern = hypothesis
                return hypothesis
        self.detected_pattern = None
        logger.debug("No pattern matched sequence of length %d", len(values))
        return None

    def predict(self, sequence: Iterable[float], steps: int | None = None) -> PredictionResult:
        values = self._require_data(sequence)
        count = self.default_steps if steps is None else steps
        if count < 1:
            raise app_error("E-SEQ-INVALID", detail=f"steps must be >= 1 (got {count})")
        winner = self.detect(values)
        if winner is None:
            return PredictionResult(
                success=False,
                sequence=values,
                pattern=UNRECOGNIZED,
                message="No arithmetic, geometric or polynomial pattern fits this sequence.",
            )
        predictions = tuple(winner.predict(count))
        result = PredictionResult(
            success=True,
            sequence=values,
            pattern=winner.name,
            pattern_type=winner.type_tag,
            confidence=winner.confidence,
            parameters=winner.parameters,
            next_value=predictions[0],
            predictions=predictions,
            message=f"The next number in the sequence is: {predictions[0]:g}",
        )
        self._history.append(HistoryRecord.from_result(result))
        return result

    def get_all_patterns(self, sequence: Iterable[float] | None = None) -> list[dict[str, Any]]:
        """診断用: 各仮説が得た信頼度をすべて返す（選択には使わない）。"""
        if sequence is None:
            if self.detected_pattern is None or self.detected_pattern.sequence is None:
                return []
            values = self.detected_pattern.sequence
        else:
            values = self._require_data(sequence)
        return [
            h.describe()
            for h in candidate_hypotheses(values, max_degree=self.max_degree, tolerance=self.tolerance)
        ]

    @property
    def history(self) -> tuple[HistoryRecord, ...]:
        return tuple(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def get_history_stats(self) -> dict[str, Any]:
        total = len(self._history)
        if total == 0:
            return {"totalMemories": 0, "averageConfidence": 0.0}
        return {
            "totalMemories": total,
            "averageConfidence": sum(r.confidence for r in self._history) / total,
        }

    # -- 内部処理 -----------------------------------------------------------------
    @staticmethod
    def _require_data(sequence: Iterable[float] | None) -> tuple[float, ...]:
        if sequence is None or isinstance(sequence, (str, bytes)):
            raise app_error(
                "E-SEQ-INVALID",
                detail=f"sequence must be a list of numbers, got {type(sequence).__name__}",
            )
        try:
            items = list(sequence)
        except TypeError as exc:
            raise app_error("E-SEQ-INVALID", detail=str(exc) or None) from exc
        rejected = first_invalid_element(items)
        if rejected is not None:
            raise app_error(
                "E-SEQ-INVALID",
                detail=rejected.describe(),
                payload={"position": rejected.position},
            )
        values = as_float_tuple(items)
        if len(values) < 2:
            raise app_error(
                "E-SEQ-INSUFFICIENT",
                detail=f"at least 2 values are required (got {len(values)})",
            )
        return values
