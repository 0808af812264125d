from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class EngineSettings:
    cache_capacity: int = 1000
    default_steps: int = 5
    max_degree: int = 5
    tolerance: float = 1e-9
    parallel_workers: int = 4
    max_length: int = 100_000
    large_threshold: int = 10_000
    history_path: Path = Path("data/history.duckdb")
    autosave_every: int = 10
