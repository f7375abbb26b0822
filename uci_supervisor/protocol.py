"""
UCI text codec: command encoding and line decoding. No I/O happens here.

Decoded scores are relative to the side to move, exactly as the engine
prints them; callers normalize perspective.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import chess.engine

# --- Encoding ----------------------------------------------------------------


def encode_uci() -> str:
    return "uci"


def encode_isready() -> str:
    return "isready"


def encode_ucinewgame() -> str:
    return "ucinewgame"


def encode_stop() -> str:
    return "stop"


def encode_quit() -> str:
    return "quit"


def encode_setoption(name: str, value: Any) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"setoption name {name} value {value}"


def encode_position(fen: str) -> str:
    return f"position fen {fen.strip()}"


def encode_go(depth: Optional[int] = None, movetime_ms: Optional[int] = None) -> str:
    if (depth is None) == (movetime_ms is None):
        raise ValueError("go needs exactly one of depth or movetime_ms")
    if depth is not None:
        return f"go depth {int(depth)}"
    return f"go movetime {int(movetime_ms)}"


# --- Decoded events ------------------------------------------------------------


@dataclass(frozen=True)
class HandshakeOk:
    pass


@dataclass(frozen=True)
class SyncOk:
    pass


@dataclass(frozen=True)
class InfoLine:
    multipv: int
    score: chess.engine.Score
    pv: Tuple[str, ...]
    wdl: Optional[chess.engine.Wdl] = None
    depth: Optional[int] = None


@dataclass(frozen=True)
class BestMove:
    move: Optional[str]
    ponder: Optional[str] = None


@dataclass(frozen=True)
class EngineId:
    key: str
    value: str


@dataclass(frozen=True)
class EngineOption:
    name: str
    type: str
    default: Optional[str] = None
    min: Optional[str] = None
    max: Optional[str] = None
    var: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Unrecognized:
    line: str


Event = Union[HandshakeOk, SyncOk, InfoLine, BestMove, EngineId, EngineOption, Unrecognized]

_OPTION_KEYWORDS = {"type", "default", "min", "max", "var"}


def decode_line(line: str) -> Event:
    """Classify a single engine output line. Unknown or malformed lines never raise."""
    tokens = line.split()
    if not tokens:
        return Unrecognized(line)
    head = tokens[0]
    if head == "uciok":
        return HandshakeOk()
    if head == "readyok":
        return SyncOk()
    if head == "bestmove":
        return _decode_bestmove(tokens)
    if head == "info":
        return _decode_info(line, tokens) or Unrecognized(line)
    if head == "id" and len(tokens) >= 3 and tokens[1] in ("name", "author"):
        return EngineId(tokens[1], " ".join(tokens[2:]))
    if head == "option":
        return _decode_option(tokens) or Unrecognized(line)
    return Unrecognized(line)


def _decode_bestmove(tokens: List[str]) -> BestMove:
    move = tokens[1] if len(tokens) >= 2 else None
    if move in ("(none)", "0000"):
        move = None
    ponder = None
    if len(tokens) >= 4 and tokens[2] == "ponder":
        ponder = tokens[3]
    return BestMove(move, ponder)


def _decode_score(kind: str, raw: str) -> chess.engine.Score:
    value = int(raw)
    if kind == "cp":
        return chess.engine.Cp(value)
    if kind == "mate":
        return chess.engine.Mate(value)
    raise ValueError(f"unknown score kind {kind!r}")


def _decode_info(line: str, tokens: List[str]) -> Optional[InfoLine]:
    if len(tokens) > 1 and tokens[1] == "string":
        return None

    multipv = 1
    depth: Optional[int] = None
    score: Optional[chess.engine.Score] = None
    wdl: Optional[chess.engine.Wdl] = None
    pv: Tuple[str, ...] = ()

    i = 1
    try:
        while i < len(tokens):
            token = tokens[i]
            if token == "multipv":
                multipv = int(tokens[i + 1])
                i += 2
            elif token == "depth":
                depth = int(tokens[i + 1])
                i += 2
            elif token == "score":
                score = _decode_score(tokens[i + 1], tokens[i + 2])
                i += 3
            elif token == "wdl":
                triple = [int(tokens[i + 1]), int(tokens[i + 2]), int(tokens[i + 3])]
                if min(triple) < 0:
                    return None
                wdl = chess.engine.Wdl(*triple)
                i += 4
            elif token == "pv":
                pv = tuple(tokens[i + 1:])
                break
            else:
                i += 1
    except (ValueError, IndexError):
        return None

    if score is None or not pv or multipv < 1:
        return None
    return InfoLine(multipv=multipv, score=score, pv=pv, wdl=wdl, depth=depth)


def _decode_option(tokens: List[str]) -> Optional[EngineOption]:
    if len(tokens) < 4 or tokens[1] != "name":
        return None

    name_parts: List[str] = []
    i = 2
    while i < len(tokens) and tokens[i] not in _OPTION_KEYWORDS:
        name_parts.append(tokens[i])
        i += 1
    if not name_parts:
        return None

    info: Dict[str, str] = {}
    var: List[str] = []
    while i < len(tokens):
        key = tokens[i]
        i += 1
        values: List[str] = []
        while i < len(tokens) and tokens[i] not in _OPTION_KEYWORDS:
            values.append(tokens[i])
            i += 1
        if key == "var":
            var.append(" ".join(values))
        else:
            info[key] = " ".join(values)

    if "type" not in info:
        return None
    return EngineOption(
        name=" ".join(name_parts),
        type=info["type"],
        default=info.get("default"),
        min=info.get("min"),
        max=info.get("max"),
        var=tuple(var),
    )
