"""テキスト入力（例: "3, 6, 9, 12"）を数列へ変換する。"""
from __future__ import annotations

import math
import re

from domain.errors import app_error

SEPARATOR_RE = re.compile(r"[,\s;]+")


def parse_sequence(text: str) -> list[float]:
    """区切り文字（カンマ・空白・セミコロン）で分割して float のリストを返す。

    数値として解釈できない要素があれば、その位置と値を添えて AppError を送出する。
    """
    tokens = [t for t in SEPARATOR_RE.split((text or "").strip()) if t]
    values: list[float] = []
    for index, token in enumerate(tokens):
        try:
            value = float(token)
        except ValueError as exc:
            raise app_error(
                "E-SEQ-INVALID",
                detail=f"index={index}, value={token!r}",
                payload={"position": index},
            ) from exc
        if not math.isfinite(value):
            raise app_error(
                "E-SEQ-INVALID",
                detail=f"index={index}, value={token!r} is not finite",
                payload={"position": index},
            )
        values.append(value)
    return values
