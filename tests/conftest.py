from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure "src" is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from data.store import HistoryRepo  # noqa: E402
from domain.settings import EngineSettings  # noqa: E402
from services.analyzer import PredictionService  # noqa: E402
from services.history import HistoricalAnalyzer  # noqa: E402


@pytest.fixture
def history_repo(tmp_path) -> HistoryRepo:
    return HistoryRepo(db_path=tmp_path / "history.duckdb")


@pytest.fixture
def service(tmp_path) -> PredictionService:
    settings = EngineSettings(
        cache_capacity=8,
        history_path=tmp_path / "history.duckdb",
        autosave_every=0,
        parallel_workers=2,
    )
    history = HistoricalAnalyzer(HistoryRepo(settings.history_path), autosave_every=0)
    return PredictionService(settings, history=history)
