"""
Time controls for match play: `go` command strings and per-move deadlines.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass


class TimeControlType(enum.Enum):
    FIXED_DEPTH = "depth"
    FIXED_TIME_PER_MOVE = "movetime"
    TOTAL_PLUS_INCREMENT = "increment"


FIXED_DEPTH_TIMEOUT_MS = 120_000
MOVETIME_SLACK_MS = 5_000
CLOCK_SLACK_MS = 10_000
MAX_CLOCK_TIMEOUT_MS = 300_000


@dataclass
class TimeControl:
    type: TimeControlType = TimeControlType.FIXED_TIME_PER_MOVE
    depth: int = 15
    move_time_ms: int = 1000
    total_time_ms: int = 300_000
    increment_ms: int = 2000

    def go_command(self, white_remaining_ms: int = 0, black_remaining_ms: int = 0) -> str:
        if self.type is TimeControlType.FIXED_DEPTH:
            return f"go depth {self.depth}"
        if self.type is TimeControlType.TOTAL_PLUS_INCREMENT:
            return (
                f"go wtime {max(0, white_remaining_ms)} btime {max(0, black_remaining_ms)} "
                f"winc {self.increment_ms} binc {self.increment_ms}"
            )
        return f"go movetime {self.move_time_ms}"

    def timeout_ms(self, remaining_ms: int = 0) -> int:
        if self.type is TimeControlType.FIXED_DEPTH:
            return FIXED_DEPTH_TIMEOUT_MS
        if self.type is TimeControlType.TOTAL_PLUS_INCREMENT:
            return min(max(0, remaining_ms) + CLOCK_SLACK_MS, MAX_CLOCK_TIMEOUT_MS)
        return self.move_time_ms + MOVETIME_SLACK_MS

    def __str__(self) -> str:
        if self.type is TimeControlType.FIXED_DEPTH:
            return f"Depth {self.depth}"
        if self.type is TimeControlType.TOTAL_PLUS_INCREMENT:
            return f"{self.total_time_ms // 1000}s + {self.increment_ms // 1000}s"
        return f"{self.move_time_ms}ms/move"
