"""数列の同一性を表すフィンガープリント。"""
from __future__ import annotations

import hashlib
from typing import Iterable


def _canonical(value: float) -> str:
    number = float(value)
    if number == 0.0:
        number = 0.0  # -0.0 を 0.0 に揃える
    return number.hex()


def canonical_text(sequence: Iterable[float]) -> str:
    """値と順序だけに依存する正規化文字列。int と float の違いは区別しない。"""
    parts = [_canonical(v) for v in sequence]
    return f"{len(parts)}:" + ",".join(parts)


def fingerprint(sequence: Iterable[float]) -> str:
    return hashlib.sha256(canonical_text(sequence).encode("ascii")).hexdigest()
