import unittest

from tests.fixtures.scripted_supervisor import ScriptedEngine, ScriptedSupervisor, in_order, make_config
from uci_supervisor.session import AnalysisSession
from uci_supervisor.strategy import AnalysisStrategy, RestartTracker, degraded_depths

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class RestartTrackerTest(unittest.TestCase):
    def test_restart_suggested_after_two_consecutive_failures(self) -> None:
        tracker = RestartTracker()
        tracker.record_failure()
        self.assertFalse(tracker.should_attempt_restart())
        tracker.record_failure()
        self.assertTrue(tracker.should_attempt_restart())
        tracker.record_success()
        self.assertFalse(tracker.should_attempt_restart())

    def test_more_than_three_restarts_a_minute_is_too_many(self) -> None:
        clock = FakeClock()
        tracker = RestartTracker(clock)
        results = []
        for _ in range(4):
            clock.now += 5
            results.append(tracker.record_restart())
        self.assertEqual([False, False, False, True], results)
        self.assertEqual((0, 4), tracker.metrics())

    def test_restart_window_expires(self) -> None:
        clock = FakeClock()
        tracker = RestartTracker(clock)
        for _ in range(3):
            tracker.record_restart()
        clock.now += 61
        self.assertFalse(tracker.record_restart())
        self.assertEqual(1, tracker.restart_count)
        tracker.reset()
        self.assertEqual((0, 0), tracker.metrics())


class DegradedDepthsTest(unittest.TestCase):
    def test_levels(self) -> None:
        self.assertEqual([20, 15, 10], degraded_depths(20))
        self.assertEqual([10, 7, 5], degraded_depths(10))
        self.assertEqual([6, 4, 3], degraded_depths(6))
        self.assertEqual([5], degraded_depths(5))
        self.assertEqual([1], degraded_depths(1))


class AnalysisStrategyTest(unittest.TestCase):
    def _strategy(self, factory, **overrides):
        supervisor = ScriptedSupervisor(factory)
        session = AnalysisSession(make_config(**overrides), supervisor)
        statuses = []
        return AnalysisStrategy(session, RestartTracker(), statuses.append), supervisor, statuses

    def test_first_attempt_succeeds(self) -> None:
        strategy, supervisor, statuses = self._strategy(ScriptedEngine)
        result = strategy.analyze(START_FEN)
        self.assertEqual("e2e4", result.best_move)
        self.assertEqual([], statuses)
        self.assertIn("go depth 10", supervisor.sent)

    def test_retries_at_lower_depth_after_failure(self) -> None:
        factory = in_order(lambda: ScriptedEngine(crash_on_go=True), ScriptedEngine)
        strategy, supervisor, statuses = self._strategy(factory, max_retries=1)
        result = strategy.analyze(START_FEN)
        self.assertEqual("e2e4", result.best_move)
        self.assertIn("go depth 7", supervisor.sent)
        self.assertEqual(["Retrying with lower depth (7)...", "Analysis at depth 7"], statuses)
        self.assertEqual(0, strategy.tracker.consecutive_failures)

    def test_partial_result_returned_when_no_level_completes(self) -> None:
        strategy, _, statuses = self._strategy(lambda: ScriptedEngine(bestmove=None), max_retries=1)
        result = strategy.analyze(START_FEN)
        self.assertTrue(result.partial)
        self.assertEqual("e2e4", result.best_move)
        self.assertNotIn("Engine analysis failed", statuses)

    def test_gives_up_when_restart_fails(self) -> None:
        strategy, _, statuses = self._strategy(lambda: ScriptedEngine(answer_ready=False), max_retries=1)
        self.assertIsNone(strategy.analyze(START_FEN))
        self.assertIn("Engine crashed, restarting...", statuses)
        self.assertIn("Engine restart failed", statuses)
        self.assertEqual("Engine analysis failed", statuses[-1])


if __name__ == "__main__":
    unittest.main()
