"""
Exception types raised by the engine supervisor and session.
"""
from __future__ import annotations

from typing import Optional


class EngineError(RuntimeError):
    """Base class for every recoverable engine failure."""


class EngineSpawnError(EngineError):
    """The executable is missing or exited right after launch."""


class HandshakeTimeout(EngineError):
    """`uciok` or `readyok` was not observed before the deadline."""


class EngineSyncError(EngineError):
    """The pre-request `isready`/`readyok` exchange failed."""


class EngineIOError(EngineError):
    """Broken pipe, closed stdout or a dead process during an exchange."""


class ResponseTimeout(EngineError):
    """The engine stopped answering within the read deadline."""


class RetriesExhausted(EngineError):
    """Every attempt allowed by the retry budget failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"analysis failed after {attempts} attempt(s){detail}")
        self.attempts = attempts
        self.last_error = last_error
