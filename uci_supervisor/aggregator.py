"""
Collects streamed multiPV lines for one search and builds the final result.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

import chess
import chess.engine

from .models import AnalysisResult, LineResult, WDLInfo, side_to_move
from .protocol import InfoLine
from .wdl import estimate_wdl_for_score

logger = logging.getLogger(__name__)


def sort_lines(lines: List[LineResult], turn: chess.Color) -> List[LineResult]:
    """
    Order lines best-first for the side to move.

    Scores are White-relative, so White wants them descending and Black
    ascending. python-chess orders mate-for above every centipawn value and
    mate-against below, shorter mates being more extreme. Zero-filled gaps
    always sort last. Multipv indices are renumbered 1..N.
    """
    scored = [line for line in lines if line.score is not None]
    gaps = [line for line in lines if line.score is None]
    scored.sort(key=lambda line: line.score, reverse=(turn == chess.WHITE))
    return [replace(line, multipv=i) for i, line in enumerate(scored + gaps, start=1)]


class ResultAggregator:
    """
    Buffers per-index updates for a single request.

    Each InfoLine is normalized to White's perspective here, once. Later
    updates for the same multipv index overwrite the earlier one; indices
    beyond the requested count are dropped.
    """

    def __init__(self, fen: str, multipv: int):
        self.fen = fen
        self.multipv = multipv
        self.turn = side_to_move(fen)
        self._lines: List[LineResult] = []
        self._native_wdl: Optional[WDLInfo] = None
        self._best_move_hint: Optional[str] = None
        self._best_move_seen = False

    @property
    def has_best_move(self) -> bool:
        return self._best_move_seen

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def feed(self, info: InfoLine) -> None:
        index = info.multipv
        if index > self.multipv:
            logger.debug("ignoring multipv %d beyond requested %d", index, self.multipv)
            return
        while len(self._lines) < index:
            self._lines.append(LineResult(multipv=len(self._lines) + 1))

        score = chess.engine.PovScore(info.score, self.turn).white()
        # native WDL is only kept for the engine's first line
        wdl = None
        if index == 1:
            if info.wdl is not None:
                wdl = WDLInfo.from_wdl(chess.engine.PovWdl(info.wdl, self.turn).white())
            # a deeper update without wdl must not keep a stale triple
            self._native_wdl = wdl

        self._lines[index - 1] = LineResult(
            multipv=index,
            moves=info.pv,
            score=score,
            wdl=wdl,
            depth=info.depth,
        )

    def set_best_move(self, move: Optional[str]) -> None:
        self._best_move_seen = True
        self._best_move_hint = move

    def best_candidate(self) -> Optional[str]:
        """The move a result would report right now, if any."""
        if self._best_move_hint:
            return self._best_move_hint
        for line in self._lines:
            if line.move:
                return line.move
        return None

    def result(self, partial: bool = False) -> AnalysisResult:
        lines = self._lines[: self.multipv]
        raw_first = lines[0] if lines else None
        lines = sort_lines(lines, self.turn)

        best = lines[0] if lines and lines[0].score is not None else None
        best_move = (best.move if best is not None else None) or self._best_move_hint
        score = best.score if best is not None else None

        wdl = self._native_wdl
        if best is None or raw_first is None or best.moves != raw_first.moves:
            wdl = None
        if wdl is None and score is not None:
            wdl = estimate_wdl_for_score(score)
            logger.debug("estimated WDL %s from %s", wdl, best.evaluation)

        return AnalysisResult(
            fen=self.fen,
            best_move=best_move,
            score=score,
            lines=lines,
            wdl=wdl,
            partial=partial,
        )
