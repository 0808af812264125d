"""DuckDBを利用した解析履歴の永続化層。"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import duckdb

from domain.models import HistoryRecord

logger = logging.getLogger(__name__)

_CREATE_HISTORY = (
    "CREATE TABLE IF NOT EXISTS history ("
    "position INTEGER PRIMARY KEY, sequence TEXT, pattern TEXT, confidence DOUBLE, "
    "predictions TEXT, timestamp TEXT)"
)


@dataclass(slots=True)
class HistoryRepo:
    db_path: Path

    # ------------------------------------------------------------------
    def _conn(self) -> duckdb.DuckDBPyConnection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return duckdb.connect(str(self.db_path))
        except Exception:
            logger.exception("Failed to connect to DuckDB: %s", self.db_path)
            raise

    def exists(self) -> bool:
        return self.db_path.exists()

    def replace_records(self, records: Iterable[HistoryRecord]) -> int:
        """既存の内容を破棄し、渡されたレコード一覧で置き換える。"""
        rows = tuple(
            (
                position,
                json.dumps(list(rec.sequence)),
                rec.pattern,
                float(rec.confidence),
                json.dumps(list(rec.predictions)),
                rec.timestamp.isoformat(),
            )
            for position, rec in enumerate(records)
        )
        con = self._conn()
        try:
            con.execute("BEGIN TRANSACTION")
            con.execute(_CREATE_HISTORY)
            con.execute("DELETE FROM history")
            if rows:
                con.executemany("INSERT INTO history VALUES (?, ?, ?, ?, ?, ?)", rows)
            con.execute("COMMIT")
        except Exception:
            logger.exception("Failed to write history to %s", self.db_path)
            try:
                con.execute("ROLLBACK")
            except duckdb.Error:
                logger.debug("Rollback skipped: no active transaction on %s", self.db_path)
            raise
        finally:
            con.close()
        return len(rows)

    def load_records(self) -> list[HistoryRecord]:
        if not self.exists():
            return []
        con = self._conn()
        try:
            tables = {row[0] for row in con.execute("SHOW TABLES").fetchall()}
            if "history" not in tables:
                return []
            rows = con.execute(
                "SELECT sequence, pattern, confidence, predictions, timestamp "
                "FROM history ORDER BY position"
            ).fetchall()
        except Exception:
            logger.exception("Failed to read history from %s", self.db_path)
            raise
        finally:
            con.close()
        return [_row_to_record(row) for row in rows]


def _row_to_record(row) -> HistoryRecord:
    sequence, pattern, confidence, predictions, timestamp = row
    return HistoryRecord(
        sequence=tuple(float(v) for v in json.loads(sequence or "[]")),
        pattern=str(pattern),
        confidence=float(confidence or 0.0),
        predictions=tuple(float(v) for v in json.loads(predictions or "[]")),
        timestamp=as_datetime(timestamp),
    )


def as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except (TypeError, ValueError):
            return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
