from __future__ import annotations

import logging
from threading import Event

import pytest

from domain.errors import AppError
from domain.settings import EngineSettings
from services.analyzer import DEMO_SEQUENCES, PredictionService, settings_from_config


def test_predict_records_history_and_cache(service: PredictionService):
    result = service.predict([3, 6, 9, 12])

    assert result.success
    assert result.pattern == "Arithmetic Progression"
    assert result.predictions == (15.0, 18.0, 21.0, 24.0, 27.0)
    assert result.source == "analysis"
    assert len(service.history.records) == 1
    assert len(service.session().history) == 1
    assert service.cache.get_stats()["size"] == 1


def test_second_call_is_served_from_cache(service: PredictionService):
    first = service.predict([2, 6, 18, 54])
    second = service.predict((2.0, 6.0, 18.0, 54.0))

    assert second.source == "cache"
    assert second.predictions == first.predictions
    assert service.cache.hits == 1
    # cache hits are not analyses and are not re-recorded
    assert len(service.history.records) == 1


def test_non_default_steps_bypass_cache(service: PredictionService):
    service.predict([1, 4, 9, 16])
    result = service.predict([1, 4, 9, 16], 2)

    assert result.source == "analysis"
    assert result.predictions == (25.0, 36.0)
    assert service.cache.get_stats()["size"] == 1
    assert len(service.history.records) == 2


def test_unrecognized_is_not_cached_or_recorded(service: PredictionService):
    result = service.predict([1, 3, 2, 5, 4])

    assert not result.success
    assert result.pattern == "Unrecognized Pattern"
    assert service.cache.get_stats()["size"] == 0
    assert service.history.records == ()


@pytest.mark.parametrize(
    "sequence, code",
    [
        ([], "E-SEQ-INSUFFICIENT"),
        ([7], "E-SEQ-INSUFFICIENT"),
        ([1, float("nan"), 3], "E-SEQ-INVALID"),
        ("1,2,3", "E-SEQ-INVALID"),
    ],
)
def test_invalid_input_raises(service: PredictionService, sequence, code):
    with pytest.raises(AppError) as excinfo:
        service.predict(sequence)
    assert excinfo.value.code == code
    assert service.history.records == ()


def test_too_large_input_is_rejected(tmp_path):
    settings = EngineSettings(max_length=5, history_path=tmp_path / "h.duckdb", autosave_every=0)
    svc = PredictionService(settings)
    with pytest.raises(AppError) as excinfo:
        svc.predict(list(range(6)))
    assert excinfo.value.code == "E-SEQ-TOO-LARGE"


def test_sessions_keep_separate_history(service: PredictionService):
    service.predict([3, 6, 9, 12], session_id="a")
    service.predict([5, 5, 5, 5], session_id="b")
    service.clear_session("a")

    assert service.session("a").history == ()
    assert len(service.session("b").history) == 1
    assert len(service.history.records) == 2


def test_analyze_batch_collects_errors(service: PredictionService, caplog):
    caplog.set_level(logging.INFO, logger="services.analyzer")
    progress = []
    items = service.analyze_batch(
        [[3, 6, 9, 12], [1, "x", 3], [2, 4, 8, 16]],
        progress_callback=lambda item, done, total: progress.append((done, total)),
    )

    assert [item.ok for item in items] == [True, False, True]
    assert items[0].result.next_value == 15.0
    assert "E-SEQ-INVALID" in items[1].error
    assert len(service.errors) == 1
    assert progress == [(1, 3), (2, 3), (3, 3)]
    # batch items go to the shared history but not to any session
    assert len(service.history.records) == 2
    assert service.session().history == ()
    assert "Batch finished: 2 ok, 1 errors" in caplog.text


def test_analyze_batch_cancelled_before_start(service: PredictionService):
    cancel = Event()
    cancel.set()
    assert service.analyze_batch([[1, 2, 3]], cancel_event=cancel) == []


def test_analyze_batch_empty(service: PredictionService):
    assert service.analyze_batch([]) == []


def test_run_demo_analyzes_all_sequences(service: PredictionService):
    items = service.run_demo()

    assert len(items) == len(DEMO_SEQUENCES)
    assert all(item.ok for item in items)
    assert [item.result.pattern for item in items] == [
        "Arithmetic Progression",
        "Geometric Progression",
        "Polynomial (Degree 2)",
        "Unrecognized Pattern",
        "Arithmetic Progression",
        "Arithmetic Progression",
    ]
    assert items[2].result.predictions == (25.0, 36.0, 49.0)
    # four cubes are too short for a degree 3 fit
    assert items[3].result.predictions == ()


def test_statistics_and_shutdown_persist(service: PredictionService):
    service.predict([3, 6, 9, 12])
    service.predict([3, 6, 9, 12])
    stats = service.get_statistics()

    assert stats["history"]["totalSequences"] == 1
    assert stats["cache"]["hits"] == 1
    assert stats["performance"]["totalMeasurements"] == 1
    assert stats["sessions"] == 1

    service.shutdown()
    assert len(service.history.repo.load_records()) == 1


def test_settings_from_config(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "engine:\n  cache_capacity: 16\n  tolerance: 1e-6\n  default_steps: nope\n"
        "guard:\n  max_length: 50\n"
        "history:\n  path: custom/history.duckdb\n",
        encoding="utf-8",
    )
    settings = settings_from_config(config)

    assert settings.cache_capacity == 16
    assert settings.tolerance == pytest.approx(1e-6)
    assert settings.default_steps == 5
    assert settings.max_length == 50
    assert settings.history_path.as_posix() == "custom/history.duckdb"


def test_settings_from_missing_config(tmp_path):
    assert settings_from_config(tmp_path / "missing.yaml") == EngineSettings()


def test_large_inputs_are_flagged_but_fully_fitted(tmp_path, caplog):
    settings = EngineSettings(large_threshold=5, history_path=tmp_path / "h.duckdb", autosave_every=0)
    svc = PredictionService(settings)
    caplog.set_level(logging.WARNING, logger="services.analyzer")

    result = svc.predict(list(range(10)), 1)
    svc.predict([1, 2, 3], 1)

    assert result.pattern == "Arithmetic Progression"
    assert result.predictions == (10.0,)
    assert svc.large_inputs == 1
    assert svc.get_statistics()["largeInputs"] == 1
    assert "Large sequence: 10 values exceeds threshold 5" in caplog.text
