"""全セッション共通の解析履歴と、その集計。"""
from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Iterable, Mapping

import pandas as pd

from data.store import HistoryRepo, as_datetime
from domain.errors import AppError, app_error
from domain.models import HistoryRecord, as_float_tuple, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = ["sequence", "pattern", "confidence", "predictions", "timestamp"]


class HistoricalAnalyzer:
    """追記専用の履歴。消去と保存は明示的な操作でのみ行う。

    `add_record` は `autosave_every` 件ごとにベストエフォートで保存する。
    保存に失敗してもログに残すだけで、呼び出し元の予測処理は中断しない。
    """

    def __init__(self, repo: HistoryRepo | None = None, *, autosave_every: int = 10) -> None:
        self.repo = repo
        self.autosave_every = autosave_every
        self._lock = Lock()
        self._persist_lock = Lock()
        self._pending = 0
        self.last_error: AppError | None = None
        self._records: list[HistoryRecord] = self._load()

    # -- 公開API -----------------------------------------------------------------
    @property
    def records(self) -> tuple[HistoryRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def add_record(self, record: HistoryRecord | Mapping[str, Any]) -> HistoryRecord:
        entry = record if isinstance(record, HistoryRecord) else _record_from_mapping(record)
        with self._lock:
            self._records.append(entry)
            self._pending += 1
            due = self.repo is not None and self.autosave_every > 0 and self._pending >= self.autosave_every
        if due:
            self._persist_quietly()
        return entry

    def get_statistics(self) -> dict[str, Any]:
        df = self._frame()
        if df.empty:
            return {
                "totalSequences": 0,
                "successRate": 0.0,
                "averageConfidence": 0.0,
                "mostCommonPattern": None,
            }
        counts = df.groupby("pattern", sort=False).size()
        return {
            "totalSequences": int(len(df)),
            "successRate": float((df["confidence"] >= 1.0).mean()),
            "averageConfidence": float(df["confidence"].mean()),
            "mostCommonPattern": str(counts.idxmax()),
        }

    def get_by_pattern(self, name: str) -> list[HistoryRecord]:
        with self._lock:
            return [r for r in self._records if r.pattern == name]

    def get_accuracy_metrics(self) -> dict[str, dict[str, float | int]]:
        df = self._frame()
        if df.empty:
            return {}
        grouped = df.groupby("pattern", sort=False)["confidence"].agg(["count", "mean"])
        return {
            str(pattern): {"count": int(row["count"]), "averageConfidence": float(row["mean"])}
            for pattern, row in grouped.iterrows()
        }

    def get_trend_analysis(self, window_size: int = 10) -> dict[str, Any]:
        """直近 `window_size` 件（新しい順）に含まれるパターンの出現数。"""
        if window_size < 1:
            raise app_error("E-SEQ-INVALID", detail=f"window_size must be >= 1 (got {window_size})")
        with self._lock:
            recent = list(reversed(self._records[-window_size:]))
        patterns: dict[str, int] = {}
        for record in recent:
            patterns[record.pattern] = patterns.get(record.pattern, 0) + 1
        return {"window": window_size, "records": len(recent), "patterns": patterns}

    def generate_report(self, window_size: int = 10) -> dict[str, Any]:
        return {
            "generatedAt": utcnow().isoformat(),
            "statistics": self.get_statistics(),
            "accuracy": self.get_accuracy_metrics(),
            "trends": self.get_trend_analysis(window_size),
        }

    def clear_history(self) -> None:
        with self._lock:
            self._records.clear()
            self._pending = 0
        logger.info("Historical records cleared")

    def persist_history(self) -> int:
        """全レコードを保存先へ書き出す（追記ではなく置換）。"""
        if self.repo is None:
            return 0
        # snapshot の取得から書き込み完了までを直列化する
        with self._persist_lock:
            with self._lock:
                snapshot = tuple(self._records)
                written_pending = self._pending
            try:
                written = self.repo.replace_records(snapshot)
            except Exception as exc:
                err = app_error("E-HISTORY-PERSIST", detail=str(exc) or None)
                self.last_error = err
                raise err from exc
            with self._lock:
                self._pending = max(0, self._pending - written_pending)
            self.last_error = None
        logger.info("Persisted %d history records to %s", written, self.repo.db_path)
        return written

    # -- 内部処理 -----------------------------------------------------------------
    def _load(self) -> list[HistoryRecord]:
        if self.repo is None:
            return []
        try:
            records = self.repo.load_records()
        except Exception:
            logger.warning("History store %s is unreadable; starting empty", self.repo.db_path)
            return []
        logger.info("Loaded %d history records from %s", len(records), self.repo.db_path)
        return records

    def _persist_quietly(self) -> None:
        try:
            self.persist_history()
        except AppError as err:
            logger.error(err.for_log())

    def _frame(self) -> pd.DataFrame:
        return records_frame(self.records)


def _record_from_mapping(data: Mapping[str, Any]) -> HistoryRecord:
    return HistoryRecord(
        sequence=as_float_tuple(data.get("sequence")),
        pattern=str(data.get("pattern", "")),
        confidence=float(data.get("confidence", 0.0)),
        predictions=as_float_tuple(data.get("predictions")),
        timestamp=as_datetime(data["timestamp"]) if data.get("timestamp") else utcnow(),
    )


def records_frame(records: Iterable[HistoryRecord]) -> pd.DataFrame:
    """エクスポート用に履歴を DataFrame へ変換する。"""
    rows = [r.as_dict() for r in records]
    return pd.DataFrame(rows, columns=_COLUMNS)
