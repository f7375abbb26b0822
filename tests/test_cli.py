import json
import sys
from pathlib import Path

import pytest
import yaml

from uci_supervisor import cli
from uci_supervisor.models import AnalysisResult, LineResult, WDLInfo

MOCK_ENGINE = str(Path(__file__).parent / "fixtures" / "mock_engine.py")


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("STOCKFISH_PATH", "UCI_DEPTH", "UCI_MULTIPV", "UCI_MIN_TIME_MS", "UCI_MAX_RETRIES"):
        monkeypatch.delenv(var, raising=False)


def write_config(tmp_path, mode="normal", **extra):
    engine = {
        "engine_path": sys.executable,
        "engine_args": [MOCK_ENGINE, "--mode", mode],
        "start_grace_ms": 50,
        "restart_delay_ms": 0,
        "handshake_timeout_ms": 2000,
        "sync_timeout_ms": 2000,
        "response_timeout_ms": 2000,
    }
    engine.update(extra)
    path = tmp_path / "engine.yml"
    path.write_text(yaml.safe_dump({"engine": engine}), encoding="utf-8")
    return path


def test_text_output(tmp_path, capsys, clean_env):
    path = write_config(tmp_path)
    assert cli.main(["--config", str(path), "--depth", "2", "--multipv", "2"]) == 0
    out = capsys.readouterr().out
    assert "best move: e2e4" in out
    assert "eval: +0.35" in out
    assert "+0.30  d2d4 d7d5 c2c4" in out


def test_json_output(tmp_path, capsys, clean_env):
    path = write_config(tmp_path)
    fen = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
    assert cli.main(["--config", str(path), "--fen", fen, "--movetime", "50", "--json"]) == 0
    body = json.loads(capsys.readouterr().out)
    assert body["fen"] == fen
    assert body["best_move"] == "e7e5"
    assert body["score_cp"] == 25


def test_engine_failure_exit_code(tmp_path, capsys, clean_env):
    path = write_config(tmp_path, mode="no-readyok", handshake_timeout_ms=100, max_retries=1)
    assert cli.main(["--config", str(path), "--depth", "2"]) == 1
    assert "engine failed" in capsys.readouterr().err


def test_invalid_fen_exit_code(tmp_path, capsys, clean_env):
    path = write_config(tmp_path)
    assert cli.main(["--config", str(path), "--fen", "garbage", "--depth", "2"]) == 2


def test_invalid_config_exit_code(tmp_path, capsys, clean_env):
    path = tmp_path / "engine.yml"
    path.write_text("engine:\n  depth: 0\n", encoding="utf-8")
    assert cli.main(["--config", str(path)]) == 2
    assert "invalid configuration" in capsys.readouterr().err


def test_depth_and_movetime_are_exclusive():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--depth", "3", "--movetime", "100"])


def test_format_result_marks_partial():
    result = AnalysisResult(
        fen=cli.START_FEN,
        best_move=None,
        score=None,
        lines=[LineResult(multipv=1)],
        wdl=WDLInfo(0, 1000, 0),
        partial=True,
    )
    text = cli.format_result(result)
    assert text.startswith("best move: (none)  eval: ?")
    assert "wdl: W:0% D:100% L:0% (very drawish)" in text
    assert "partial result" in text
