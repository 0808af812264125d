from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from domain.errors import AppError
from export.exporter import export_history
from io_utils.csv_loader import load_sequences
from io_utils.sequence_parser import parse_sequence
from services.analyzer import PredictionService, settings_from_config
from services.logging_setup import configure_logging, get_recent_log_lines
from services.performance import BenchmarkRunner

logger = logging.getLogger(__name__)

_STATS_LOG_LINES = 20


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="数列パターンアナライザー")
    parser.add_argument("--sequence", help='解析する数列（例: "3,6,9,12"）', default=None)
    parser.add_argument("--steps", type=int, help="予測するステップ数", default=None)
    parser.add_argument("--csv", type=Path, help="1行1数列のCSVをバッチ解析する", default=None)
    parser.add_argument("--demo", action="store_true", help="デモ用の数列を解析する")
    parser.add_argument("--stats", action="store_true", help="履歴・キャッシュ・計測の統計を表示する")
    parser.add_argument("--export", type=Path, help="履歴を CSV / XLSX / JSON に書き出す", default=None)
    parser.add_argument("--benchmark", type=int, metavar="N", help="検出処理を N 回ずつ計測する", default=None)
    parser.add_argument("--config", type=Path, default=Path("config.yaml"))
    return parser.parse_args(argv)


def _benchmark(service: PredictionService, iterations: int) -> list[dict[str, Any]]:
    runner = BenchmarkRunner()
    samples = {
        "Arithmetic Detection": [1, 2, 3, 4, 5],
        "Geometric Detection": [2, 4, 8, 16, 32],
        "Polynomial Detection": [1, 4, 9, 16, 25],
    }
    for name, seq in samples.items():
        runner.run(name, lambda seq=seq: service.new_analyzer().detect(seq), iterations)
    return [r.as_dict() for r in runner.get_results()]


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.config)

    service = PredictionService(settings_from_config(args.config))
    output: dict[str, Any] = {}
    try:
        if args.sequence is not None:
            output["result"] = service.predict(parse_sequence(args.sequence), args.steps).as_dict()
        if args.csv is not None:
            items = service.analyze_batch(load_sequences(args.csv), steps=args.steps)
            output["batch"] = [
                {"sequence": list(i.sequence), "result": i.result.as_dict() if i.result else None, "error": i.error}
                for i in items
            ]
        if args.demo:
            output["demo"] = [
                {"sequence": list(i.sequence), "result": i.result.as_dict() if i.result else None, "error": i.error}
                for i in service.run_demo()
            ]
        if args.benchmark:
            output["benchmark"] = _benchmark(service, args.benchmark)
        if args.stats:
            output["statistics"] = service.get_statistics()
            output["recentLogs"] = list(get_recent_log_lines(_STATS_LOG_LINES))
        if args.export is not None:
            output["exported"] = str(export_history(service.history.records, args.export))
    except AppError as err:
        logger.error(err.for_log())
        print(json.dumps(err.as_dict(), ensure_ascii=False, indent=2))
        return 1
    finally:
        service.shutdown()
    print(json.dumps(output, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
