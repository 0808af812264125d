import json
import logging

import pytest

import app
from services import logging_setup


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    config = tmp_path / "config.yaml"
    config.write_text(
        "logging:\n"
        f"  path: {(tmp_path / 'logs' / 'app.log').as_posix()}\n"
        "history:\n"
        f"  path: {(tmp_path / 'history.duckdb').as_posix()}\n"
        "  autosave_every: 0\n",
        encoding="utf-8",
    )
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    monkeypatch.setattr(logging_setup, "_buffer", None)
    yield config
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def test_main_predicts_sequence(config_file, capsys):
    code = app.main(["--config", str(config_file), "--sequence", "3,6,9,12", "--steps", "2"])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["result"]["pattern"] == "Arithmetic Progression"
    assert output["result"]["predictions"] == [15.0, 18.0]


def test_main_reports_app_error(config_file, capsys):
    code = app.main(["--config", str(config_file), "--sequence", "1, x"])

    assert code == 1
    output = json.loads(capsys.readouterr().out)
    assert output["success"] is False
    assert output["code"] == "E-SEQ-INVALID"
    assert output["payload"] == {"position": 1}


def test_main_batch_and_export(config_file, tmp_path, capsys):
    csv_path = tmp_path / "input.csv"
    csv_path.write_text("1,2,3,4\n1,3,2,5,4\n", encoding="utf-8")
    export_path = tmp_path / "out" / "history.csv"

    code = app.main(
        ["--config", str(config_file), "--csv", str(csv_path), "--export", str(export_path), "--stats"]
    )

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert [item["result"]["success"] for item in output["batch"]] == [True, False]
    assert output["statistics"]["history"]["totalSequences"] == 1
    assert any("Batch finished" in line for line in output["recentLogs"])
    assert export_path.exists()


def test_main_benchmark(config_file, capsys):
    assert app.main(["--config", str(config_file), "--benchmark", "3"]) == 0
    results = json.loads(capsys.readouterr().out)["benchmark"]
    assert [r["name"] for r in results] == [
        "Arithmetic Detection",
        "Geometric Detection",
        "Polynomial Detection",
    ]
    assert all(r["iterations"] == 3 for r in results)
