"""
Supervised UCI engine client: process lifecycle, handshake, analysis and recovery.
"""

from .aggregator import ResultAggregator, sort_lines
from .config import EngineConfig
from .errors import (
    EngineError,
    EngineIOError,
    EngineSpawnError,
    EngineSyncError,
    HandshakeTimeout,
    ResponseTimeout,
    RetriesExhausted,
)
from .models import AnalysisRequest, AnalysisResult, EngineState, LineResult, WDLInfo
from .process import ProcessSupervisor
from .session import AnalysisSession
from .strategy import AnalysisStrategy, RestartTracker
from .time_control import TimeControl, TimeControlType
from .wdl import estimate_wdl, win_probability

__all__ = [
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisSession",
    "AnalysisStrategy",
    "EngineConfig",
    "EngineError",
    "EngineIOError",
    "EngineSpawnError",
    "EngineState",
    "EngineSyncError",
    "HandshakeTimeout",
    "LineResult",
    "ProcessSupervisor",
    "ResponseTimeout",
    "RestartTracker",
    "ResultAggregator",
    "RetriesExhausted",
    "TimeControl",
    "TimeControlType",
    "WDLInfo",
    "estimate_wdl",
    "sort_lines",
    "win_probability",
]
