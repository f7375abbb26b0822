"""
Analysis session: sequences engine commands for one request at a time and
recovers from engine failures with a bounded restart loop.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from . import protocol
from .aggregator import ResultAggregator
from .config import EngineConfig
from .errors import EngineError, EngineIOError, ResponseTimeout, RetriesExhausted
from .handshake import HandshakeResult, perform_handshake, read_until, sync
from .models import AnalysisRequest, AnalysisResult, EngineState
from .process import ProcessSupervisor
from .state import EngineStateMachine

logger = logging.getLogger(__name__)

# How often a match-mode wait checks its cancellation event, in seconds.
CANCEL_POLL_INTERVAL = 0.05


class AnalysisSession:
    """
    Supervises one engine process and runs analysis requests against it.

    Requests are serialized: every command written to the engine is sent while
    holding `_request_lock`, so only one exchange is ever in flight. The engine
    state is the only thing other threads may read concurrently.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or EngineConfig()
        self._supervisor = supervisor or ProcessSupervisor(start_grace=self.config.start_grace_ms / 1000.0)
        self._state = EngineStateMachine()
        self._request_lock = threading.Lock()
        self._engine_path: Optional[str] = None
        self._handshake: Optional[HandshakeResult] = None
        self._search_pending = False
        self._sleep = sleep

    # --- Introspection ------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state.state

    @property
    def engine_path(self) -> Optional[str]:
        return self._engine_path

    @property
    def engine_name(self) -> Optional[str]:
        return self._handshake.name if self._handshake else None

    @property
    def engine_options(self) -> Dict[str, protocol.EngineOption]:
        return dict(self._handshake.options) if self._handshake else {}

    @property
    def search_pending(self) -> bool:
        """True after a cancelled match move: the engine may still be searching."""
        return self._search_pending

    def is_alive(self) -> bool:
        return self._supervisor.is_alive()

    # --- Lifecycle ----------------------------------------------------------

    def initialize(self, engine_path: Optional[str] = None) -> None:
        """Spawn the engine and complete the handshake. Raises EngineError on failure."""
        with self._request_lock:
            self._initialize(engine_path)

    def restart(self) -> None:
        """Tear down and respawn with the last engine path. Safe to call repeatedly."""
        with self._request_lock:
            self._restart()

    def close(self) -> None:
        """Tear down the engine, waiting for any in-flight request to finish first."""
        with self._request_lock:
            self._supervisor.stop()
            self._state.reset()
            self._search_pending = False

    def __enter__(self) -> "AnalysisSession":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _initialize(self, engine_path: Optional[str]) -> None:
        path = engine_path or self._engine_path or self.config.engine_path
        self._engine_path = path
        self._supervisor.stop()
        self._search_pending = False
        if self._state.state is EngineState.ANALYZING:
            # the search died with its process
            self._state.fail()
        self._state.transition(EngineState.STARTING)
        try:
            self._supervisor.start(path, self.config.engine_args)
            self._handshake = perform_handshake(
                self._supervisor,
                self._state,
                self.config.handshake_timeout_ms / 1000.0,
                enable_wdl=self.config.show_wdl,
                options=self.config.options,
            )
        except EngineError as exc:
            logger.warning("engine initialization failed: %s", exc)
            self._state.fail()
            self._supervisor.stop()
            raise

    def _restart(self) -> None:
        logger.info("restarting engine %s", self._engine_path or self.config.engine_path)
        self._supervisor.stop()
        if self.config.restart_delay_ms:
            self._sleep(self.config.restart_delay_ms / 1000.0)
        self._initialize(self._engine_path)

    def _try_restart(self) -> Optional[EngineError]:
        try:
            self._restart()
        except EngineError as exc:
            return exc
        return None

    def _needs_restart(self) -> bool:
        return self._state.state is not EngineState.READY or not self._supervisor.is_alive()

    # --- Analysis -----------------------------------------------------------

    def analyze(
        self,
        fen: str,
        *,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        multipv: Optional[int] = None,
    ) -> AnalysisResult:
        request = AnalysisRequest.from_config(
            fen, self.config, depth=depth, movetime_ms=movetime_ms, multipv=multipv
        )
        return self.run_analysis(request)

    def run_analysis(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Analyse one position, restarting the engine between failed attempts.

        At most `config.max_retries` attempts are made, and each attempt spawns
        at most one process. When every attempt fails, a partial result is
        returned if any attempt produced a best move; otherwise
        RetriesExhausted is raised.
        """
        max_attempts = self.config.max_retries
        last_error: Optional[EngineError] = None
        partial: Optional[AnalysisResult] = None

        with self._request_lock:
            for attempt in range(1, max_attempts + 1):
                if self._needs_restart():
                    error = self._try_restart()
                    if error is not None:
                        last_error = error
                        logger.warning("attempt %d/%d: engine restart failed: %s", attempt, max_attempts, error)
                        continue

                aggregator = ResultAggregator(request.fen, request.multipv)
                try:
                    return self._analyze_once(request, aggregator)
                except EngineError as exc:
                    last_error = exc
                    logger.warning("attempt %d/%d: analysis failed: %s", attempt, max_attempts, exc)
                    self._state.fail()
                    self._supervisor.stop()
                    if aggregator.best_candidate() is not None:
                        partial = aggregator.result(partial=True)
                except Exception:
                    self._state.fail()
                    self._supervisor.stop()
                    raise

        if partial is not None:
            logger.warning("returning partial result after %d failed attempt(s)", max_attempts)
            return partial
        raise RetriesExhausted(max_attempts, last_error)

    def _analyze_once(self, request: AnalysisRequest, aggregator: ResultAggregator) -> AnalysisResult:
        send = self._supervisor.send
        self._settle_pending_search()
        sync(self._supervisor, self._state, self.config.sync_timeout_ms / 1000.0)

        send(protocol.encode_setoption("MultiPV", request.multipv))
        send(protocol.encode_ucinewgame())
        send(protocol.encode_position(request.fen))

        if request.is_timed:
            go = protocol.encode_go(movetime_ms=request.movetime_ms)
            timeout_ms = request.movetime_ms + self.config.movetime_buffer_ms
        else:
            go = protocol.encode_go(depth=request.depth)
            timeout_ms = self.config.response_timeout_ms

        self._state.transition(EngineState.ANALYZING, expected=EngineState.READY)
        send(go)

        def on_event(event: protocol.Event) -> None:
            if isinstance(event, protocol.InfoLine):
                aggregator.feed(event)

        best = read_until(self._supervisor, protocol.BestMove, timeout_ms / 1000.0, on_event)
        aggregator.set_best_move(best.move)
        self._state.transition(EngineState.READY, expected=EngineState.ANALYZING)
        return aggregator.result()

    # --- Match play ---------------------------------------------------------

    def run_match_move(
        self,
        fen: str,
        go_command: str,
        timeout_ms: int,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """
        Ask for a single move for game play, keeping the hash between plies.

        Returns the move, or None when the engine failed, timed out or the
        wait was cancelled. Failures tear the process down; the next call
        respawns it. Cancellation only abandons the wait: the engine may
        still be searching, `search_pending` becomes True and the next
        request sends `stop` and resynchronizes before anything else.
        """
        if not go_command.split() or go_command.split()[0] != "go":
            raise ValueError(f"not a go command: {go_command!r}")

        with self._request_lock:
            if self._needs_restart():
                error = self._try_restart()
                if error is not None:
                    logger.warning("match move: engine restart failed: %s", error)
                    return None
            try:
                return self._match_move_once(fen, go_command, timeout_ms / 1000.0, cancel)
            except EngineError as exc:
                logger.warning("match move failed: %s", exc)
                self._state.fail()
                self._supervisor.stop()
                return None
            except Exception:
                self._state.fail()
                self._supervisor.stop()
                raise

    def _match_move_once(
        self,
        fen: str,
        go_command: str,
        timeout: float,
        cancel: Optional[threading.Event],
    ) -> Optional[str]:
        send = self._supervisor.send
        self._settle_pending_search()
        sync(self._supervisor, self._state, self.config.sync_timeout_ms / 1000.0)
        send(protocol.encode_setoption("MultiPV", 1))
        send(protocol.encode_position(fen))
        self._state.transition(EngineState.ANALYZING, expected=EngineState.READY)
        send(go_command)

        deadline = time.monotonic() + timeout
        while True:
            if cancel is not None and cancel.is_set():
                logger.info("match move cancelled; engine search left running")
                self._search_pending = True
                self._state.transition(EngineState.READY)
                return None
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ResponseTimeout(f"no bestmove within {timeout:.2f}s")
            try:
                line = self._supervisor.read_line(min(CANCEL_POLL_INTERVAL, remaining))
            except ResponseTimeout:
                continue
            event = protocol.decode_line(line)
            if isinstance(event, protocol.BestMove):
                self._state.transition(EngineState.READY)
                return event.move

    def stop_search(self) -> None:
        """Stop a search left running by a cancelled match move and resynchronize."""
        with self._request_lock:
            try:
                self._settle_pending_search()
            except EngineError as exc:
                logger.warning("could not stop pending search: %s", exc)
                self._state.fail()
                self._supervisor.stop()

    def _settle_pending_search(self) -> None:
        if not self._search_pending:
            return
        if not self._supervisor.is_alive():
            self._search_pending = False
            raise EngineIOError("engine died with a search pending")
        self._supervisor.send(protocol.encode_stop())
        sync(self._supervisor, self._state, self.config.sync_timeout_ms / 1000.0)
        self._search_pending = False
        logger.debug("pending search stopped and engine resynchronized")
