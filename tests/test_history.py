import time
from datetime import datetime, timezone
from threading import Event, Thread

import pytest

from data.store import HistoryRepo
from domain.errors import AppError
from domain.models import HistoryRecord
from services.history import HistoricalAnalyzer


def _record(pattern: str, confidence: float = 1.0, seq=(1, 2, 3)) -> dict:
    return {"sequence": list(seq), "pattern": pattern, "predictions": [4], "confidence": confidence}


def test_add_record_and_statistics():
    history = HistoricalAnalyzer()
    history.add_record(_record("Arithmetic Progression", 0.95))
    stats = history.get_statistics()

    assert stats["totalSequences"] == 1
    assert stats["successRate"] == 0.0
    assert stats["averageConfidence"] == pytest.approx(0.95)
    assert stats["mostCommonPattern"] == "Arithmetic Progression"


def test_empty_statistics():
    stats = HistoricalAnalyzer().get_statistics()
    assert stats["totalSequences"] == 0
    assert stats["mostCommonPattern"] is None
    assert HistoricalAnalyzer().get_accuracy_metrics() == {}


def test_most_common_pattern_ties_use_first_seen():
    history = HistoricalAnalyzer()
    for name in ("Geometric Progression", "Arithmetic Progression", "Arithmetic Progression", "Geometric Progression"):
        history.add_record(_record(name))
    assert history.get_statistics()["mostCommonPattern"] == "Geometric Progression"


def test_get_by_pattern_matches_exactly():
    history = HistoricalAnalyzer()
    history.add_record(_record("Arithmetic Progression"))
    history.add_record(_record("Geometric Progression", seq=(2, 4, 8)))
    history.add_record(_record("Polynomial (Degree 2)"))

    assert len(history.get_by_pattern("Arithmetic Progression")) == 1
    assert history.get_by_pattern("Polynomial") == []


def test_accuracy_metrics_per_pattern():
    history = HistoricalAnalyzer()
    history.add_record(_record("Arithmetic Progression"))
    history.add_record(_record("Geometric Progression"))
    history.add_record(_record("Polynomial (Degree 2)"))
    history.add_record(_record("Arithmetic Progression", 0.5))

    metrics = history.get_accuracy_metrics()
    assert list(metrics) == ["Arithmetic Progression", "Geometric Progression", "Polynomial (Degree 2)"]
    assert metrics["Arithmetic Progression"] == {"count": 2, "averageConfidence": 0.75}


def test_trend_analysis_counts_recent_window():
    history = HistoricalAnalyzer()
    for name in ("A", "A", "B", "C", "B"):
        history.add_record(_record(name))

    trends = history.get_trend_analysis(3)
    assert trends["records"] == 3
    assert trends["patterns"] == {"B": 2, "C": 1}
    assert list(trends["patterns"]) == ["B", "C"]


def test_trend_analysis_rejects_bad_window():
    with pytest.raises(AppError):
        HistoricalAnalyzer().get_trend_analysis(0)


def test_clear_history():
    history = HistoricalAnalyzer()
    history.add_record(_record("A"))
    history.clear_history()
    assert history.records == ()


def test_generate_report_sections():
    history = HistoricalAnalyzer()
    history.add_record(_record("A"))
    report = history.generate_report()
    assert set(report) == {"generatedAt", "statistics", "accuracy", "trends"}


def test_persist_replaces_and_reloads(tmp_path):
    repo = HistoryRepo(db_path=tmp_path / "history.duckdb")
    history = HistoricalAnalyzer(repo, autosave_every=0)
    history.add_record(_record("A"))
    history.add_record(_record("B"))
    assert history.persist_history() == 2

    history.clear_history()
    history.add_record(_record("C"))
    history.persist_history()

    reloaded = HistoricalAnalyzer(repo)
    assert [r.pattern for r in reloaded.records] == ["C"]
    assert reloaded.records[0].sequence == (1.0, 2.0, 3.0)


def test_autosave_after_threshold(tmp_path):
    repo = HistoryRepo(db_path=tmp_path / "history.duckdb")
    history = HistoricalAnalyzer(repo, autosave_every=2)
    history.add_record(_record("A"))
    assert not repo.exists()
    history.add_record(_record("B"))
    assert len(repo.load_records()) == 2


def test_missing_store_starts_empty(tmp_path):
    history = HistoricalAnalyzer(HistoryRepo(db_path=tmp_path / "absent" / "history.duckdb"))
    assert history.records == ()


def test_unreadable_store_starts_empty(tmp_path):
    path = tmp_path / "history.duckdb"
    path.write_text("not a database", encoding="utf-8")
    history = HistoricalAnalyzer(HistoryRepo(db_path=path))
    assert history.records == ()


class FailingRepo(HistoryRepo):
    def replace_records(self, records):
        raise OSError("disk full")

    def load_records(self):
        return []


def test_persist_failure_is_reported_but_keeps_records(tmp_path):
    history = HistoricalAnalyzer(FailingRepo(db_path=tmp_path / "x.duckdb"), autosave_every=1)

    history.add_record(_record("A"))  # autosave failure is logged, not raised
    assert len(history.records) == 1
    assert history.last_error is not None

    with pytest.raises(AppError) as excinfo:
        history.persist_history()
    assert excinfo.value.code == "E-HISTORY-PERSIST"
    assert len(history.records) == 1


def test_add_record_accepts_dataclass():
    history = HistoricalAnalyzer()
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    history.add_record(HistoryRecord((1.0, 2.0), "A", 1.0, (3.0,), stamp))
    assert history.records[0].timestamp == stamp


class SlowFirstWriteRepo(HistoryRepo):
    """最初の書き込みだけを遅らせ、後続の保存と競合させる。"""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.first_write_started = Event()
        self.release_first_write = Event()
        self.calls = 0

    def replace_records(self, records):
        self.calls += 1
        if self.calls == 1:
            self.first_write_started.set()
            self.release_first_write.wait(timeout=5)
        return super().replace_records(records)


def test_concurrent_autosaves_keep_latest_snapshot(tmp_path):
    repo = SlowFirstWriteRepo(tmp_path / "history.duckdb")
    history = HistoricalAnalyzer(repo, autosave_every=1)

    worker = Thread(target=history.add_record, args=(_record("A"),))
    worker.start()
    assert repo.first_write_started.wait(timeout=5)

    second = Thread(target=history.add_record, args=(_record("B"),))
    second.start()
    while len(history.records) < 2:
        time.sleep(0.01)
    time.sleep(0.1)
    repo.release_first_write.set()
    worker.join(timeout=5)
    second.join(timeout=5)

    assert len(history.records) == 2
    assert [r.pattern for r in repo.load_records()] == ["A", "B"]
    assert history.last_error is None
