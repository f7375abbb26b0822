"""
Win/draw/loss estimation from a centipawn evaluation.

Used when the engine did not report a native `wdl` triple for the best line.
"""
from __future__ import annotations

import math
from typing import Tuple

import chess.engine

from .models import WDLInfo

# Lc0 mapping cp = A * tan(B * Q), inverted to Q = atan(cp / A) / B.
WDL_SCALE_A = 111.714640912
WDL_SCALE_B = 1.5620688421

CP_CLAMP = 1500
MATE_SCORE_CP = 10000

# (|cp| upper bound, draw %), first match wins; above the last bound: 3 %.
DRAW_STEPS: Tuple[Tuple[float, float], ...] = (
    (20, 50.0),
    (50, 40.0),
    (100, 25.0),
    (200, 15.0),
    (400, 8.0),
)
DRAW_FLOOR = 3.0


def win_probability(cp: float) -> float:
    """Expected score for the side the evaluation favours, in percent (0-100)."""
    cp = max(-CP_CLAMP, min(CP_CLAMP, cp))
    q = math.atan(cp / WDL_SCALE_A) / WDL_SCALE_B
    q = max(-1.0, min(1.0, q))
    return (q + 1.0) / 2.0 * 100.0


def draw_probability(cp: float) -> float:
    abs_cp = abs(cp)
    for bound, draw in DRAW_STEPS:
        if abs_cp < bound:
            return draw
    return DRAW_FLOOR


def estimate_wdl(cp: float) -> WDLInfo:
    """
    Estimate a per-mille triple for a White-relative evaluation.

    The draw mass is taken from win and loss in proportion to their share,
    and the loss component absorbs rounding so the triple sums to 1000.
    """
    win_pct = win_probability(cp)
    loss_pct = 100.0 - win_pct
    draw_pct = draw_probability(cp)

    decisive = 100.0 - draw_pct
    win_ratio = win_pct / (win_pct + loss_pct)
    win = int(round(decisive * win_ratio * 10))
    draw = int(round(draw_pct * 10))
    return WDLInfo(win, draw, 1000 - win - draw)


def estimate_wdl_for_score(score: chess.engine.Score) -> WDLInfo:
    """Mate scores are mapped to a large centipawn value before estimating."""
    return estimate_wdl(score.score(mate_score=MATE_SCORE_CP))
