"""入力検証・キャッシュ・解析・履歴を束ねるサービス層。"""
from __future__ import annotations

import logging
from pathlib import Path
from threading import Event, Lock
from typing import Any, Callable, Iterable, Sequence

import yaml

from analysis.guard import LargeSequenceGuard
from analysis.sequence_analyzer import SequenceAnalyzer
from data.cache import BoundedCache
from data.store import HistoryRepo
from domain.errors import AppError, ensure_app_error
from domain.models import BatchItem, HistoryRecord, PredictionResult
from domain.settings import EngineSettings
from services.history import HistoricalAnalyzer
from services.performance import PerformanceAnalyzer

logger = logging.getLogger(__name__)

DEMO_SEQUENCES: tuple[tuple[float, ...], ...] = (
    (3, 6, 9, 12),
    (2, 6, 18, 54),
    (1, 4, 9, 16),
    (1, 8, 27, 64),
    (5, 5, 5, 5),
    (100, 95, 90, 85),
)

DEFAULT_SESSION = "default"


def _safe_int(value, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _safe_float(value, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def settings_from_config(config_path: Path = Path("config.yaml")) -> EngineSettings:
    defaults = EngineSettings()
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except Exception:
        logger.debug("Failed to load engine settings from %s", config_path)
        return defaults
    if not isinstance(raw, dict):
        return defaults

    engine_cfg = raw.get("engine", {}) if isinstance(raw.get("engine"), dict) else {}
    guard_cfg = raw.get("guard", {}) if isinstance(raw.get("guard"), dict) else {}
    history_cfg = raw.get("history", {}) if isinstance(raw.get("history"), dict) else {}

    return EngineSettings(
        cache_capacity=_safe_int(engine_cfg.get("cache_capacity"), defaults.cache_capacity),
        default_steps=_safe_int(engine_cfg.get("default_steps"), defaults.default_steps),
        max_degree=_safe_int(engine_cfg.get("max_degree"), defaults.max_degree),
        tolerance=_safe_float(engine_cfg.get("tolerance"), defaults.tolerance),
        parallel_workers=_safe_int(engine_cfg.get("parallel_workers"), defaults.parallel_workers),
        max_length=_safe_int(guard_cfg.get("max_length"), defaults.max_length),
        large_threshold=_safe_int(guard_cfg.get("large_threshold"), defaults.large_threshold),
        history_path=Path(history_cfg.get("path") or defaults.history_path),
        autosave_every=_safe_int(history_cfg.get("autosave_every"), defaults.autosave_every),
    )


class PredictionService:
    """プロセス全体で共有するキャッシュ・履歴・計測器と、セッション別の解析器を保持する。"""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        cache: BoundedCache[PredictionResult] | None = None,
        history: HistoricalAnalyzer | None = None,
        performance: PerformanceAnalyzer | None = None,
        guard: LargeSequenceGuard | None = None,
    ) -> None:
        self.settings = settings or settings_from_config()
        self.cache = cache or BoundedCache(self.settings.cache_capacity)
        self.history = history or HistoricalAnalyzer(
            HistoryRepo(self.settings.history_path),
            autosave_every=self.settings.autosave_every,
        )
        self.performance = performance or PerformanceAnalyzer()
        self.guard = guard or LargeSequenceGuard(self.settings.max_length, self.settings.large_threshold)
        self._sessions: dict[str, SequenceAnalyzer] = {}
        self._sessions_lock = Lock()
        self._errors: list[AppError] = []
        self._errors_lock = Lock()
        self._large_inputs = 0
        self._large_lock = Lock()

    # -- 公開API -----------------------------------------------------------------
    def session(self, session_id: str = DEFAULT_SESSION) -> SequenceAnalyzer:
        with self._sessions_lock:
            analyzer = self._sessions.get(session_id)
            if analyzer is None:
                analyzer = self.new_analyzer()
                self._sessions[session_id] = analyzer
            return analyzer

    def predict(
        self,
        sequence: Any,
        steps: int | None = None,
        *,
        session_id: str = DEFAULT_SESSION,
    ) -> PredictionResult:
        """検証→キャッシュ→解析→保存の順で1件を処理する。

        キャッシュは既定のステップ数の結果のみを保持する。
        """
        values = self.guard.ensure_valid(sequence)
        self._note_size(values)
        cacheable = steps is None or steps == self.settings.default_steps
        if cacheable:
            cached = self.cache.get(values)
            if cached is not None:
                logger.debug("Cache hit for sequence of length %d", len(values))
                return cached.with_source("cache")

        analyzer = self.session(session_id)
        result, duration_ms = self.performance.measure_execution(
            lambda: analyzer.predict(values, steps),
            name="predict",
        )
        logger.info(
            "Analyzed %d values in %.3fms: %s", len(values), duration_ms, result.pattern
        )
        if result.success:
            self._store(values, result, cacheable)
        return result

    def analyze_batch(
        self,
        sequences: Iterable[Any],
        *,
        steps: int | None = None,
        progress_callback: Callable[[BatchItem, int, int], None] | None = None,
        cancel_event: Event | None = None,
    ) -> list[BatchItem]:
        """複数の数列を並列に解析する。1件の失敗でバッチ全体は止めない。"""
        from concurrent.futures import ThreadPoolExecutor

        with self._errors_lock:
            self._errors.clear()
        records = list(sequences)
        total = len(records)
        if total == 0:
            return []
        cancel_event = cancel_event or Event()
        items: list[BatchItem | None] = [None] * total

        logger.info("Starting batch analysis for %d sequences", total)
        with ThreadPoolExecutor(max_workers=max(1, self.settings.parallel_workers)) as exe:
            futures = [exe.submit(self._analyze_item_safe, seq, steps) for seq in records]
            for index, future in enumerate(futures):
                if cancel_event.is_set():
                    for f in futures:
                        f.cancel()
                    break
                item = future.result()
                items[index] = item
                if progress_callback:
                    progress_callback(item, index + 1, total)

        finished = [item for item in items if item is not None]
        with self._errors_lock:
            error_count = len(self._errors)
        logger.info("Batch finished: %d ok, %d errors", sum(1 for i in finished if i.ok), error_count)
        return finished

    def run_demo(self, *, steps: int = 3, session_id: str = DEFAULT_SESSION) -> list[BatchItem]:
        items: list[BatchItem] = []
        for sequence in DEMO_SEQUENCES:
            try:
                items.append(BatchItem(sequence, self.predict(sequence, steps, session_id=session_id)))
            except AppError as err:
                self._record_error(err)
                items.append(BatchItem(sequence, error=str(err)))
        return items

    def clear_session(self, session_id: str = DEFAULT_SESSION) -> None:
        self.session(session_id).clear_history()

    def get_statistics(self) -> dict[str, Any]:
        with self._sessions_lock:
            session_count = len(self._sessions)
        return {
            "history": self.history.get_statistics(),
            "accuracy": self.history.get_accuracy_metrics(),
            "cache": self.cache.get_stats(),
            "performance": self.performance.get_statistics(),
            "sessions": session_count,
            "largeInputs": self.large_inputs,
        }

    def shutdown(self) -> None:
        """終了時に履歴を保存する。失敗してもログに残すだけ。"""
        try:
            self.history.persist_history()
        except AppError as err:
            logger.error(err.for_log())

    @property
    def large_inputs(self) -> int:
        """`guard.large_threshold` を超えた入力の件数（当てはめは全要素で行う）。"""
        with self._large_lock:
            return self._large_inputs

    @property
    def errors(self) -> Sequence[str]:
        with self._errors_lock:
            return tuple(str(err) for err in self._errors)

    # -- 内部処理 -----------------------------------------------------------------
    def new_analyzer(self) -> SequenceAnalyzer:
        return SequenceAnalyzer(
            max_degree=self.settings.max_degree,
            tolerance=self.settings.tolerance,
            default_steps=self.settings.default_steps,
        )

    def _store(self, values: tuple[float, ...], result: PredictionResult, cacheable: bool) -> None:
        if cacheable:
            self.cache.set(values, result)
        try:
            self.history.add_record(HistoryRecord.from_result(result))
        except Exception:
            logger.exception("Failed to record history for sequence of length %d", len(values))

    def _analyze_item_safe(self, sequence: Any, steps: int | None) -> BatchItem:
        raw = tuple(sequence) if isinstance(sequence, (list, tuple)) else (sequence,)
        try:
            values = self.guard.ensure_valid(sequence)
            self._note_size(values)
            cacheable = steps is None or steps == self.settings.default_steps
            cached = self.cache.get(values) if cacheable else None
            if cached is not None:
                return BatchItem(raw, cached.with_source("cache"))
            result, _ = self.performance.measure_execution(
                lambda: self.new_analyzer().predict(values, steps),
                name="predict",
            )
            if result.success:
                self._store(values, result, cacheable)
            return BatchItem(raw, result)
        except AppError as err:
            self._record_error(err)
            return BatchItem(raw, error=str(err))
        except Exception as exc:
            err = ensure_app_error(exc, code="E-ANL-UNEXPECTED")
            logger.exception("Unexpected failure in batch item")
            self._record_error(err)
            return BatchItem(raw, error=str(err))

    def _note_size(self, values: tuple[float, ...]) -> None:
        if not self.guard.is_large(values):
            return
        with self._large_lock:
            self._large_inputs += 1
        logger.warning(
            "Large sequence: %d values exceeds threshold %d", len(values), self.guard.large_threshold
        )

    def _record_error(self, err: AppError) -> None:
        with self._errors_lock:
            self._errors.append(err)
        logger.error(err.for_log())
