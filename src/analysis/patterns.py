"""数列パターン（等差・等比・多項式）の仮説と当てはめ。

各仮説は生成時に数列へ当てはめを行い、以後は不変。信頼度は 1.0（許容誤差内で
完全に一致）か 0.0（不一致・適用不可）のどちらかのみを取る。
"""
from __future__ import annotations

from math import factorial
from typing import Any, ClassVar, Iterable, Iterator

import numpy as np
from numpy.polynomial import polynomial as P

from domain.errors import app_error
from domain.models import as_float_tuple

EPSILON = 1e-9
MAX_DEGREE = 5


def approx_equal(a: float, b: float, *, scale: float = 1.0, tolerance: float = EPSILON) -> bool:
    """`|a - b| <= tolerance * max(1, scale)` で比較する。"""
    return abs(a - b) <= tolerance * max(1.0, abs(scale))


class PatternHypothesis:
    """パターン仮説の共通インターフェース。"""

    type_tag: ClassVar[str] = ""

    __slots__ = ("_sequence", "_tolerance", "_confidence", "_parameters")

    def __init__(self, sequence: Iterable[float] | None = None, *, tolerance: float = EPSILON) -> None:
        self._sequence: tuple[float, ...] | None = (
            as_float_tuple(sequence) if sequence is not None else None
        )
        self._tolerance = float(tolerance)
        self._confidence = 0.0
        self._parameters: tuple[float, ...] = ()
        if self._sequence is not None:
            self._fit(self._sequence)

    # -- 公開API -----------------------------------------------------------------
    @property
    def name(self) -> str:
        raise NotImplementedError

    @property
    def sequence(self) -> tuple[float, ...] | None:
        return self._sequence

    @property
    def analyzed(self) -> bool:
        return self._sequence is not None

    @property
    def confidence(self) -> float:
        return self._confidence

    @property
    def parameters(self) -> tuple[float, ...]:
        return self._parameters

    def next_value(self) -> float:
        return self.predict(1)[0]

    def predict(self, steps: int) -> list[float]:
        self._require_fit()
        if steps < 1:
            raise app_error("E-SEQ-INVALID", detail=f"steps must be >= 1 (got {steps})")
        return self._extrapolate(int(steps))

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type_tag,
            "confidence": self._confidence,
            "parameters": self._named_parameters() if self._confidence >= 1.0 else {},
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(confidence={self._confidence}, parameters={self._parameters})"

    # -- サブクラス実装 ------------------------------------------------------------
    def _fit(self, sequence: tuple[float, ...]) -> None:
        raise NotImplementedError

    def _extrapolate(self, steps: int) -> list[float]:
        raise NotImplementedError

    def _named_parameters(self) -> dict[str, Any]:
        return {}

    # -- 内部処理 -----------------------------------------------------------------
    def _require_fit(self) -> None:
        if self._sequence is None:
            raise app_error("E-PATTERN-UNANALYZED", detail=f"{self.name}: no sequence was given")
        if self._confidence < 1.0:
            raise app_error("E-PATTERN-UNANALYZED", detail=f"{self.name}: sequence does not fit")


class ArithmeticPattern(PatternHypothesis):
    """公差一定の数列。"""

    type_tag = "arithmetic"
    __slots__ = ()

    @property
    def name(self) -> str:
        return "Arithmetic Progression"

    @property
    def difference(self) -> float | None:
        return self._parameters[0] if self._parameters else None

    def _fit(self, sequence: tuple[float, ...]) -> None:
        if len(sequence) < 2:
            return
        values = np.asarray(sequence, dtype=float)
        diffs = np.diff(values)
        d = float(values[1] - values[0])
        scale = np.maximum(1.0, np.maximum(np.abs(values[:-1]), np.abs(values[1:])))
        if np.all(np.abs(diffs - d) <= self._tolerance * scale):
            self._confidence = 1.0
            self._parameters = (d,)

    def _extrapolate(self, steps: int) -> list[float]:
        last = self._sequence[-1]  # type: ignore[index]
        d = self._parameters[0]
        return [last + d * step for step in range(1, steps + 1)]

    def _named_parameters(self) -> dict[str, Any]:
        return {"difference": self._parameters[0]}


class GeometricPattern(PatternHypothesis):
    """公比一定の数列。0 を含む場合は適用不可（信頼度 0.0）。"""

    type_tag = "geometric"
    __slots__ = ()

    @property
    def name(self) -> str:
        return "Geometric Progression"

    @property
    def ratio(self) -> float | None:
        return self._parameters[0] if self._parameters else None

    def _fit(self, sequence: tuple[float, ...]) -> None:
        if len(sequence) < 2 or any(v == 0 for v in sequence):
            return
        values = np.asarray(sequence, dtype=float)
        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            ratios = values[1:] / values[:-1]
        if not np.all(np.isfinite(ratios)):
            return
        r = float(ratios[0])
        if np.all(np.abs(ratios - r) <= self._tolerance * max(1.0, abs(r))):
            self._confidence = 1.0
            self._parameters = (r,)

    def _extrapolate(self, steps: int) -> list[float]:
        value = self._sequence[-1]  # type: ignore[index]
        r = self._parameters[0]
        out: list[float] = []
        for _ in range(steps):
            value *= r
            out.append(value)
        return out

    def _named_parameters(self) -> dict[str, Any]:
        return {"ratio": self._parameters[0]}


class PolynomialPattern(PatternHypothesis):
    """差分法による多項式数列。`degree` 階差分が一定なら適合とみなす。

    `parameters` は x = 0, 1, 2, ... に対する係数（低次から）で、
    ニュートン前進差分形式から厳密に求める。
    """

    type_tag = "polynomial"
    __slots__ = ("_degree", "_tails")

    def __init__(
        self,
        sequence: Iterable[float] | None = None,
        degree: int = 2,
        *,
        tolerance: float = EPSILON,
    ) -> None:
        if int(degree) != degree or degree < 0:
            raise app_error("E-SEQ-INVALID", detail=f"degree must be a non-negative integer (got {degree!r})")
        self._degree = int(degree)
        self._tails: tuple[float, ...] = ()
        super().__init__(sequence, tolerance=tolerance)

    @property
    def name(self) -> str:
        return f"Polynomial (Degree {self._degree})"

    @property
    def degree(self) -> int:
        return self._degree

    def _fit(self, sequence: tuple[float, ...]) -> None:
        if len(sequence) < self._degree + 2:
            return
        values = np.asarray(sequence, dtype=float)
        table = [values]
        for _ in range(self._degree):
            table.append(np.diff(table[-1]))
        top = table[-1]
        scale = max(1.0, float(np.max(np.abs(values))))
        if not np.all(np.abs(top - top[0]) <= self._tolerance * scale):
            return
        self._confidence = 1.0
        self._tails = tuple(float(level[-1]) for level in table)
        self._parameters = _power_coefficients([float(level[0]) for level in table])

    def _extrapolate(self, steps: int) -> list[float]:
        tails = list(self._tails)
        out: list[float] = []
        for _ in range(steps):
            # 最上位の差分は一定のまま、下位レベルへ畳み込む
            for level in range(len(tails) - 2, -1, -1):
                tails[level] += tails[level + 1]
            out.append(tails[0])
        return out

    def _named_parameters(self) -> dict[str, Any]:
        return {"degree": self._degree, "coefficients": list(self._parameters)}


def _power_coefficients(heads: list[float]) -> tuple[float, ...]:
    """ニュートン形式 sum(Δ^j y0 * C(x, j)) をべき基底の係数へ変換する。"""
    coeffs = np.zeros(1)
    for j, head in enumerate(heads):
        basis = P.polyfromroots(list(range(j))) / factorial(j)
        coeffs = P.polyadd(coeffs, head * basis)
    padded = np.zeros(len(heads))
    padded[: len(coeffs)] = coeffs[: len(heads)]
    return tuple(float(c) for c in padded)


def candidate_hypotheses(
    sequence: Iterable[float],
    *,
    max_degree: int = MAX_DEGREE,
    tolerance: float = EPSILON,
) -> Iterator[PatternHypothesis]:
    """優先順位順（等差→等比→低次多項式→高次多項式）に仮説を生成する。"""
    values = as_float_tuple(sequence)
    yield ArithmeticPattern(values, tolerance=tolerance)
    yield GeometricPattern(values, tolerance=tolerance)
    for degree in range(2, min(len(values) - 2, max_degree) + 1):
        yield PolynomialPattern(values, degree, tolerance=tolerance)
