"""
Shared datamodels for engine sessions: state, requests and results.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import chess
import chess.engine

if TYPE_CHECKING:
    from .config import EngineConfig


class EngineState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"
    ANALYZING = "analyzing"
    ERROR = "error"


def side_to_move(fen: str) -> chess.Color:
    """Return the active color of a FEN; only the first two fields are read."""
    parts = fen.split()
    if len(parts) < 2 or parts[1] not in ("w", "b"):
        raise ValueError(f"FEN has no active-color field: {fen!r}")
    return chess.WHITE if parts[1] == "w" else chess.BLACK


def format_score(score: Optional[chess.engine.Score]) -> str:
    """Render a White-relative score as `+0.35` or `Mate in -2`."""
    if score is None:
        return ""
    mate = score.mate()
    if mate is not None:
        if mate > 0:
            return f"Mate in +{mate}"
        return f"Mate in {mate}"
    return f"{score.score() / 100.0:+.2f}"


@dataclass(frozen=True)
class WDLInfo:
    """Win/draw/loss per mille, White-relative once it leaves the aggregator."""

    win: int
    draw: int
    loss: int

    def __post_init__(self) -> None:
        if min(self.win, self.draw, self.loss) < 0:
            raise ValueError(f"WDL components must be non-negative: {self.win}/{self.draw}/{self.loss}")

    @classmethod
    def from_wdl(cls, wdl: chess.engine.Wdl) -> "WDLInfo":
        return cls(wdl.wins, wdl.draws, wdl.losses)

    def to_wdl(self) -> chess.engine.Wdl:
        return chess.engine.Wdl(self.win, self.draw, self.loss)

    @property
    def total(self) -> int:
        return self.win + self.draw + self.loss

    @property
    def win_percent(self) -> float:
        return self.win / 10.0

    @property
    def draw_percent(self) -> float:
        return self.draw / 10.0

    @property
    def loss_percent(self) -> float:
        return self.loss / 10.0

    @property
    def sharpness(self) -> float:
        """Low draw mass with an undecided W/L split reads as sharp."""
        draw_factor = 1.0 - self.draw / 1000.0
        decisive = self.win + self.loss
        balance = 1.0 - abs(self.win - self.loss) / decisive if decisive > 0 else 0.0
        return draw_factor * balance

    def character(self) -> str:
        """Describe the position from the draw mass first, then the W/L gap."""
        win_pct = self.win_percent
        draw_pct = self.draw_percent
        loss_pct = self.loss_percent

        if draw_pct >= 70:
            return "very drawish"
        if draw_pct >= 50:
            return "drawish"
        if win_pct >= 80 or loss_pct >= 80:
            return "decisive"
        if win_pct >= 65 or loss_pct >= 65:
            return "winning"
        if win_pct >= 55 or loss_pct >= 55:
            return "clear advantage"
        if win_pct >= 45 and win_pct > loss_pct + 10:
            return "slight edge"
        if loss_pct >= 45 and loss_pct > win_pct + 10:
            return "slight edge"

        sharpness = self.sharpness
        if sharpness >= 0.7:
            return "very sharp"
        if sharpness >= 0.4:
            return "sharp"
        return "balanced"

    def display(self, with_character: bool = False) -> str:
        text = f"W:{self.win_percent:.0f}% D:{self.draw_percent:.0f}% L:{self.loss_percent:.0f}%"
        if with_character:
            text = f"{text} ({self.character()})"
        return text

    def __str__(self) -> str:
        return self.display()

    def to_dict(self) -> Dict[str, Any]:
        return {"win": self.win, "draw": self.draw, "loss": self.loss}


@dataclass(frozen=True)
class AnalysisRequest:
    """One position to analyse. Exactly one of `depth` / `movetime_ms` is set."""

    fen: str
    depth: Optional[int] = None
    movetime_ms: Optional[int] = None
    multipv: int = 1

    def __post_init__(self) -> None:
        side_to_move(self.fen)
        if (self.depth is None) == (self.movetime_ms is None):
            raise ValueError("exactly one of depth or movetime_ms must be given")
        if self.depth is not None and self.depth < 1:
            raise ValueError(f"depth must be positive, got {self.depth}")
        if self.movetime_ms is not None and self.movetime_ms < 1:
            raise ValueError(f"movetime_ms must be positive, got {self.movetime_ms}")
        if self.multipv < 1:
            raise ValueError(f"multipv must be at least 1, got {self.multipv}")

    @classmethod
    def from_config(
        cls,
        fen: str,
        config: "EngineConfig",
        *,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        multipv: Optional[int] = None,
    ) -> "AnalysisRequest":
        """
        Build a request, falling back to the configured search parameters.

        An explicit `depth` or `movetime_ms` wins; otherwise a positive
        `min_analysis_time_ms` selects a time-based search and the configured
        depth is used when it is zero.
        """
        used_multipv = multipv or config.multipv
        if depth is None and movetime_ms is None:
            if config.min_analysis_time_ms > 0:
                movetime_ms = config.min_analysis_time_ms
            else:
                depth = config.depth
        return cls(fen=fen, depth=depth, movetime_ms=movetime_ms, multipv=used_multipv)

    @property
    def turn(self) -> chess.Color:
        return side_to_move(self.fen)

    @property
    def is_timed(self) -> bool:
        return self.movetime_ms is not None


@dataclass(frozen=True)
class LineResult:
    """A principal variation. `score` is None only for zero-filled gaps."""

    multipv: int
    moves: Tuple[str, ...] = ()
    score: Optional[chess.engine.Score] = None
    wdl: Optional[WDLInfo] = None
    depth: Optional[int] = None

    @property
    def move(self) -> Optional[str]:
        return self.moves[0] if self.moves else None

    @property
    def is_empty(self) -> bool:
        return not self.moves and self.score is None

    @property
    def evaluation(self) -> str:
        return format_score(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "multipv": self.multipv,
            "moves": list(self.moves),
            "evaluation": self.evaluation,
            "score_cp": self.score.score() if self.score is not None else None,
            "mate": self.score.mate() if self.score is not None else None,
            "wdl": self.wdl.to_dict() if self.wdl else None,
            "depth": self.depth,
        }


@dataclass
class AnalysisResult:
    fen: str
    best_move: Optional[str]
    score: Optional[chess.engine.Score]
    lines: List[LineResult] = field(default_factory=list)
    wdl: Optional[WDLInfo] = None
    partial: bool = False

    @property
    def evaluation(self) -> str:
        return format_score(self.score)

    @property
    def pvs(self) -> List[str]:
        return [" ".join(line.moves) for line in self.lines]

    @property
    def evaluations(self) -> List[str]:
        return [line.evaluation for line in self.lines]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fen": self.fen,
            "best_move": self.best_move,
            "evaluation": self.evaluation,
            "score_cp": self.score.score() if self.score is not None else None,
            "mate": self.score.mate() if self.score is not None else None,
            "lines": [line.to_dict() for line in self.lines],
            "wdl": self.wdl.to_dict() if self.wdl else None,
            "partial": self.partial,
        }
