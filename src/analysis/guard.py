"""巨大な数列の検証と間引き。"""
from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Any, Sequence

import numpy as np

from domain.errors import app_error
from domain.models import ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 100_000
DEFAULT_LARGE_THRESHOLD = 10_000


def first_invalid_element(values: Sequence[Any]) -> ValidationResult | None:
    """有限の実数でない最初の要素を返す。bool と複素数は数値として扱わない。"""
    for index, value in enumerate(values):
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (Real, np.integer, np.floating)):
            return ValidationResult(False, "element is not a real number", index, value)
        if not math.isfinite(float(value)):
            return ValidationResult(False, "element is not finite", index, value)
    return None


class LargeSequenceGuard:
    """当てはめ処理に渡す前の入力検証。

    `downsample` は表示・診断用であり、当てはめには常に元の数列を使う。
    """

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_LENGTH,
        large_threshold: int = DEFAULT_LARGE_THRESHOLD,
    ) -> None:
        self.max_length = max_length
        self.large_threshold = large_threshold

    def validate(self, sequence: Any) -> ValidationResult:
        if not self._is_sequence(sequence):
            return ValidationResult(False, f"sequence must be a list of numbers, got {type(sequence).__name__}")
        if len(sequence) == 0:
            return ValidationResult(False, "sequence is empty")
        if len(sequence) > self.max_length:
            return ValidationResult(
                False,
                f"sequence length {len(sequence)} exceeds max_length {self.max_length}",
            )
        rejected = first_invalid_element(sequence)
        return rejected if rejected is not None else ValidationResult(True)

    def ensure_valid(self, sequence: Any) -> tuple[float, ...]:
        """検証に失敗した場合は AppError を送出し、成功時は float タプルを返す。"""
        result = self.validate(sequence)
        if not result.valid:
            length = self._length(sequence)
            if result.position is None and length > self.max_length:
                code = "E-SEQ-TOO-LARGE"
            elif result.position is None and length == 0 and self._is_sequence(sequence):
                code = "E-SEQ-INSUFFICIENT"
            else:
                code = "E-SEQ-INVALID"
            logger.warning("Rejected input sequence: %s", result.describe())
            raise app_error(
                code,
                detail=result.describe(),
                payload={"position": result.position} if result.position is not None else None,
            )
        return tuple(float(v) for v in sequence)

    def is_large(self, sequence: Sequence[float], threshold: int | None = None) -> bool:
        limit = self.large_threshold if threshold is None else threshold
        return len(sequence) > limit

    @staticmethod
    def _is_sequence(sequence: Any) -> bool:
        return isinstance(sequence, (Sequence, np.ndarray)) and not isinstance(sequence, (str, bytes))

    @staticmethod
    def _length(sequence: Any) -> int:
        try:
            return len(sequence)
        except TypeError:
            return 0

    @staticmethod
    def downsample(sequence: Sequence[float], factor: int) -> list[float]:
        if factor < 1:
            raise app_error("E-SEQ-INVALID", detail=f"downsample factor must be >= 1 (got {factor})")
        return list(sequence[::factor])
