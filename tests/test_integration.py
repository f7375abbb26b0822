"""
End-to-end sessions against the scripted mock engine running as a real subprocess.
"""
import sys
import threading
import unittest
from pathlib import Path

import pytest

from uci_supervisor.config import EngineConfig
from uci_supervisor.errors import HandshakeTimeout, RetriesExhausted
from uci_supervisor.models import EngineState
from uci_supervisor.session import AnalysisSession

MOCK_ENGINE = str(Path(__file__).parent / "fixtures" / "mock_engine.py")

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
AFTER_E4_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
BACK_RANK_FEN = "6k1/5ppp/8/8/8/8/5PPP/R5K1 w - - 0 1"


def mock_config(mode="normal", *extra_args, **overrides) -> EngineConfig:
    values = dict(
        engine_path=sys.executable,
        engine_args=[MOCK_ENGINE, "--mode", mode, *extra_args],
        depth=2,
        min_analysis_time_ms=0,
        start_grace_ms=50,
        restart_delay_ms=0,
        handshake_timeout_ms=3000,
        sync_timeout_ms=3000,
        response_timeout_ms=3000,
        max_retries=3,
    )
    values.update(overrides)
    return EngineConfig(**values)


class MockEngineSessionTest(unittest.TestCase):
    def _session(self, mode="normal", *extra_args, **overrides) -> AnalysisSession:
        session = AnalysisSession(mock_config(mode, *extra_args, **overrides))
        self.addCleanup(session.close)
        return session

    def test_multipv_start_position(self) -> None:
        session = self._session()
        session.initialize()
        self.assertEqual("MockFish 1.0", session.engine_name)

        result = session.analyze(START_FEN, multipv=3)
        self.assertEqual("e2e4", result.best_move)
        self.assertEqual("+0.35", result.evaluation)
        self.assertEqual(["e2e4", "d2d4", "g1f3"], [line.move for line in result.lines])
        self.assertEqual(["+0.35", "+0.30", "+0.25"], result.evaluations)
        self.assertEqual("e2e4 e7e5 g1f3", result.pvs[0])
        # native WDL from the engine for the unchanged best line
        self.assertEqual((370, 400, 230), (result.wdl.win, result.wdl.draw, result.wdl.loss))
        self.assertFalse(result.partial)
        self.assertIs(EngineState.READY, session.state)

    def test_black_to_move_is_sorted_for_black(self) -> None:
        session = self._session()
        result = session.analyze(AFTER_E4_FEN, multipv=3)
        self.assertEqual("c7c5", result.best_move)
        self.assertEqual("+0.20", result.evaluation)
        self.assertEqual(["c7c5", "e7e5", "e7e6"], [line.move for line in result.lines])
        self.assertEqual(1000, result.wdl.total)

    def test_reverse_order_output_gives_same_result(self) -> None:
        normal = self._session().analyze(START_FEN, multipv=4)
        reverse = self._session("reverse").analyze(START_FEN, multipv=4)
        self.assertEqual(normal.pvs, reverse.pvs)
        self.assertEqual(normal.evaluations, reverse.evaluations)
        self.assertEqual(normal.best_move, reverse.best_move)

    def test_mate_score(self) -> None:
        result = self._session().analyze(BACK_RANK_FEN, multipv=3)
        self.assertEqual("a1a8", result.best_move)
        self.assertEqual("Mate in +1", result.evaluation)

    def test_timed_search(self) -> None:
        result = self._session(min_analysis_time_ms=100).analyze(START_FEN)
        self.assertEqual("e2e4", result.best_move)

    def test_silent_engine(self) -> None:
        session = self._session("silent", handshake_timeout_ms=300)
        with self.assertRaises(HandshakeTimeout):
            session.initialize()
        self.assertIs(EngineState.ERROR, session.state)
        self.assertFalse(session.is_alive())

    def test_missing_readyok_exhausts_retries(self) -> None:
        session = self._session("no-readyok", handshake_timeout_ms=200, max_retries=2)
        with self.assertRaises(RetriesExhausted) as ctx:
            session.analyze(START_FEN)
        self.assertEqual(2, ctx.exception.attempts)
        self.assertIs(EngineState.ERROR, session.state)

    def test_hang_on_go_times_out(self) -> None:
        session = self._session("hang-on-go", response_timeout_ms=300, max_retries=1)
        with self.assertRaises(RetriesExhausted):
            session.analyze(START_FEN)
        self.assertFalse(session.is_alive())

    def test_process_reused_and_requests_serialized(self) -> None:
        session = self._session()
        session.initialize()
        pid = session._supervisor.pid
        results = []

        def worker(fen):
            results.append(session.analyze(fen, multipv=2).best_move)

        threads = [threading.Thread(target=worker, args=(fen,)) for fen in (START_FEN, AFTER_E4_FEN) * 2]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(["c7c5", "c7c5", "e2e4", "e2e4"], sorted(results))
        self.assertEqual(pid, session._supervisor.pid)

    def test_cancelled_match_move_then_stop(self) -> None:
        session = self._session("hang-on-go")
        cancel = threading.Event()
        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        self.addCleanup(timer.cancel)

        self.assertIsNone(session.run_match_move(START_FEN, "go infinite", 5000, cancel))
        self.assertTrue(session.search_pending)
        self.assertIs(EngineState.READY, session.state)

        session.stop_search()
        self.assertFalse(session.search_pending)
        self.assertIs(EngineState.READY, session.state)
        self.assertTrue(session.is_alive())

    def test_match_move(self) -> None:
        session = self._session()
        self.assertEqual("e2e4", session.run_match_move(START_FEN, "go movetime 50", 3000))
        # match play reports the engine's own bestmove token
        self.assertEqual("e7e5", session.run_match_move(AFTER_E4_FEN, "go movetime 50", 3000))


def test_crash_on_first_search_recovers(tmp_path):
    marker = tmp_path / "crashed"
    session = AnalysisSession(mock_config("normal", "--marker", str(marker)))
    try:
        result = session.analyze(START_FEN, multipv=2)
    finally:
        session.close()
    assert marker.exists()
    assert result.best_move == "e2e4"
    assert not result.partial


def test_engine_that_always_crashes():
    session = AnalysisSession(mock_config("crash-on-go", max_retries=2))
    try:
        with pytest.raises(RetriesExhausted):
            session.analyze(START_FEN)
        assert session.state is EngineState.ERROR
    finally:
        session.close()


if __name__ == "__main__":
    unittest.main()
