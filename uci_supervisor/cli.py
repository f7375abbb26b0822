"""Analyse a single FEN with a supervised UCI engine."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import EngineConfig
from .errors import RetriesExhausted
from .models import AnalysisResult
from .session import AnalysisSession

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyse a position with a UCI engine.")
    parser.add_argument("--fen", default=START_FEN, help="Position to analyse (default: start position)")
    parser.add_argument("--engine", help="Engine executable (default: $STOCKFISH_PATH or config)")
    parser.add_argument("--config", type=Path, help="YAML engine configuration")
    search = parser.add_mutually_exclusive_group()
    search.add_argument("--depth", type=int, help="Fixed search depth")
    search.add_argument("--movetime", type=int, help="Search time in milliseconds")
    parser.add_argument("--multipv", type=int, help="Number of principal variations")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log protocol traffic")
    return parser


def format_result(result: AnalysisResult) -> str:
    lines = [f"best move: {result.best_move or '(none)'}  eval: {result.evaluation or '?'}"]
    if result.wdl is not None:
        lines.append(f"wdl: {result.wdl.display(with_character=True)}")
    for line in result.lines:
        lines.append(f"  {line.multipv}. {line.evaluation:>12}  {' '.join(line.moves)}")
    if result.partial:
        lines.append("(partial result: engine failed before completing the search)")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = EngineConfig.load(args.config)
    except ValueError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 2
    if args.engine:
        config.engine_path = args.engine

    session = AnalysisSession(config)
    try:
        result = session.analyze(
            args.fen,
            depth=args.depth,
            movetime_ms=args.movetime,
            multipv=args.multipv,
        )
    except ValueError as exc:
        print(f"invalid request: {exc}", file=sys.stderr)
        return 2
    except RetriesExhausted as exc:
        print(f"engine failed: {exc}", file=sys.stderr)
        return 1
    finally:
        session.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(format_result(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
