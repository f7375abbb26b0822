"""
Failure tracking and depth degradation on top of an AnalysisSession.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Tuple

from .errors import EngineError, RetriesExhausted
from .models import AnalysisRequest, AnalysisResult
from .session import AnalysisSession

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 2
MAX_RESTARTS_PER_MINUTE = 3
RESTART_WINDOW_SECONDS = 60.0
MIN_DEGRADED_DEPTH = 3


class RestartTracker:
    """Counts consecutive analysis failures and how often the engine was restarted."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.consecutive_failures = 0
        self.restart_count = 0
        self._last_restart: Optional[float] = None

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        logger.debug("analysis failure recorded (%d consecutive)", self.consecutive_failures)

    def should_attempt_restart(self) -> bool:
        return self.consecutive_failures >= MAX_CONSECUTIVE_FAILURES

    def record_restart(self) -> bool:
        """Count a restart; True means restarts are happening too often to continue."""
        now = self._clock()
        if self._last_restart is not None and now - self._last_restart < RESTART_WINDOW_SECONDS:
            self.restart_count += 1
        else:
            self.restart_count = 1
        self._last_restart = now
        self.consecutive_failures = 0

        too_many = self.restart_count > MAX_RESTARTS_PER_MINUTE
        if too_many:
            logger.error("engine restarted %d times within a minute", self.restart_count)
        return too_many

    def metrics(self) -> Tuple[int, int]:
        return self.consecutive_failures, self.restart_count

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.restart_count = 0
        self._last_restart = None


def degraded_depths(depth: int) -> List[int]:
    """Requested depth, then 75 %, then 50 % (never below 3) for deep searches."""
    levels = [depth]
    if depth > 5:
        reduced = int(depth * 0.75)
        levels.append(reduced)
        if reduced > MIN_DEGRADED_DEPTH:
            levels.append(max(MIN_DEGRADED_DEPTH, depth // 2))
    return levels


class AnalysisStrategy:
    """Retries a failed analysis at lower depth before giving up."""

    def __init__(
        self,
        session: AnalysisSession,
        tracker: Optional[RestartTracker] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.tracker = tracker or RestartTracker()
        self._on_status = on_status or (lambda message: None)

    def analyze(
        self,
        fen: str,
        *,
        depth: Optional[int] = None,
        multipv: Optional[int] = None,
    ) -> Optional[AnalysisResult]:
        config = self.session.config
        used_multipv = multipv or config.multipv
        first = AnalysisRequest.from_config(fen, config, depth=depth, multipv=used_multipv)
        base_depth = first.depth or config.depth

        requests = [first]
        for level in degraded_depths(base_depth)[1:]:
            requests.append(AnalysisRequest(fen, depth=level, multipv=min(used_multipv, level)))

        partial: Optional[AnalysisResult] = None
        for index, request in enumerate(requests):
            if index:
                logger.info("retrying %s at depth %d", fen, request.depth)
                self._on_status(f"Retrying with lower depth ({request.depth})...")
            try:
                result = self.session.run_analysis(request)
            except RetriesExhausted as exc:
                logger.warning("analysis failed: %s", exc)
                if not self._handle_failure():
                    break
                continue

            if result.partial:
                partial = partial or result
                self.tracker.record_failure()
                continue

            self.tracker.record_success()
            if index:
                self._on_status(f"Analysis at depth {request.depth}")
            return result

        if partial is None:
            self._on_status("Engine analysis failed")
        return partial

    def _handle_failure(self) -> bool:
        """Record a failure and restart if warranted. False means stop trying."""
        self.tracker.record_failure()
        if not self.tracker.should_attempt_restart():
            return True
        if self.tracker.record_restart():
            self._on_status("Engine keeps failing; giving up")
            return False
        self._on_status("Engine crashed, restarting...")
        try:
            self.session.restart()
        except EngineError as exc:
            logger.warning("engine restart failed: %s", exc)
            self._on_status("Engine restart failed")
            return False
        self._on_status("Engine restarted")
        return True
