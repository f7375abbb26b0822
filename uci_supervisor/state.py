"""
Engine lifecycle state with an explicit transition table.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, FrozenSet, Optional

from .models import EngineState

logger = logging.getLogger(__name__)

_S = EngineState

TRANSITIONS: Dict[EngineState, FrozenSet[EngineState]] = {
    _S.UNINITIALIZED: frozenset({_S.STARTING, _S.ERROR}),
    _S.STARTING: frozenset({_S.READY, _S.ERROR, _S.UNINITIALIZED}),
    _S.READY: frozenset({_S.ANALYZING, _S.STARTING, _S.ERROR, _S.UNINITIALIZED}),
    _S.ANALYZING: frozenset({_S.READY, _S.ERROR, _S.UNINITIALIZED}),
    _S.ERROR: frozenset({_S.STARTING, _S.UNINITIALIZED}),
}


class StateTransitionError(RuntimeError):
    pass


class EngineStateMachine:
    """
    The only session state shared with other threads.

    Writers go through `transition`, a compare-and-set: the lock is held only
    for the check and the swap, never across engine I/O.
    """

    def __init__(self, initial: EngineState = EngineState.UNINITIALIZED):
        self._state = initial
        self._lock = threading.Lock()

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    def transition(self, new: EngineState, expected: Optional[EngineState] = None) -> EngineState:
        """Move to `new` and return the previous state. Re-entering the current state is a no-op."""
        with self._lock:
            current = self._state
            if expected is not None and current is not expected:
                raise StateTransitionError(f"expected {expected.name}, found {current.name}")
            if new is current:
                return current
            if new not in TRANSITIONS[current]:
                raise StateTransitionError(f"illegal transition {current.name} -> {new.name}")
            self._state = new
        logger.debug("engine state %s -> %s", current.name, new.name)
        return current

    def fail(self) -> EngineState:
        """Enter ERROR from any state that allows it."""
        with self._lock:
            current = self._state
            if current is not EngineState.ERROR and EngineState.ERROR in TRANSITIONS[current]:
                self._state = EngineState.ERROR
        if current is not EngineState.ERROR:
            logger.debug("engine state %s -> ERROR", current.name)
        return current

    def reset(self) -> None:
        with self._lock:
            self._state = EngineState.UNINITIALIZED
