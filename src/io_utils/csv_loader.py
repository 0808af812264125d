"""バッチ解析用の数列CSVを読み込むためのユーティリティ。"""
from __future__ import annotations

from pathlib import Path
from typing import List
import csv

from domain.errors import AppError, app_error
from io_utils.sequence_parser import parse_sequence


def _is_number(cell: str) -> bool:
    try:
        float(cell)
    except ValueError:
        return False
    return True


def _is_header(row: list[str]) -> bool:
    cells = [(c or "").strip() for c in row if (c or "").strip()]
    return bool(cells) and not any(_is_number(c) for c in cells)


def load_sequences(path: Path) -> List[list[float]]:
    """CSVを読み込み、1行1数列として返す。

    先頭行がすべて非数値ならヘッダーとして読み飛ばす。空行は無視する。
    """
    sequences: list[list[float]] = []
    try:
        fh = path.open("r", encoding="utf-8-sig", newline="")
    except FileNotFoundError as exc:
        raise app_error("E-CSV-NOTFOUND", detail=str(exc)) from exc

    with fh as f:
        try:
            rows = list(csv.reader(f))
        except UnicodeDecodeError as exc:
            raise app_error("E-CSV-ENCODING", detail=str(exc)) from exc
    if rows and _is_header(rows[0]):
        rows = rows[1:]
    for line_no, row in enumerate(rows, start=1):
        cells = [(c or "").strip() for c in row if (c or "").strip()]
        if not cells:
            continue
        try:
            sequences.append(parse_sequence(",".join(cells)))
        except AppError as err:
            raise err.with_detail(f"row {line_no}: {err.detail}") from err
    if not sequences:
        raise app_error("E-CSV-EMPTY")
    return sequences
