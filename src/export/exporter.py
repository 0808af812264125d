from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

from domain.models import HistoryRecord, ensure_sequence
from services.history import records_frame


def export_table(df: pd.DataFrame, path: str | Path) -> Path:
    target = Path(path)
    suffix = target.suffix.lower()
    if suffix not in (".csv", ".xlsx", ".json"):
        raise ValueError(f"Unsupported export format: {suffix or '(none)'}")
    target.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".csv":
        df.to_csv(target, index=False, encoding="utf-8-sig")
    elif suffix == ".xlsx":
        df.to_excel(target, index=False)
    else:
        df.to_json(target, force_ascii=False, orient="records", indent=2)
    return target


def export_history(records: Iterable[HistoryRecord] | None, path: str | Path) -> Path:
    """履歴を表形式で書き出す。数列と予測値は "1, 2, 3" 形式の文字列にする。"""
    df = records_frame(ensure_sequence(records))
    for column in ("sequence", "predictions"):
        df[column] = df[column].map(lambda values: ", ".join(f"{v:.15g}" for v in values))
    return export_table(df, path)
