"""
UCI exchange helpers on top of python-chess.

python-chess speaks the wire protocol itself:

    -> uci                          <- ... uciok
    -> setoption name Threads value 1
    -> position fen <fen>
    -> go depth 15                  <- info ... score cp 37 ...
                                    <- bestmove e2e4 ponder e7e5

This module builds the arguments for one exchange (board, search limit,
worker options) and turns the engine's answer into the move and evaluation
reported to callers.
"""

from dataclasses import dataclass
from typing import Optional, Union

import chess
import chess.engine

from evalpool.constants import EVAL_UNAVAILABLE

THREADS_OPTION = "Threads"

Evaluation = Union[float, str]


@dataclass
class SearchOutcome:
    """Move and evaluation extracted from a finished search."""
    move: Optional[str]      # UCI move, None for "bestmove (none)"
    evaluation: Evaluation   # pawns (float), "mate in N", or "unavailable"

    @property
    def has_score(self) -> bool:
        return self.evaluation != EVAL_UNAVAILABLE


def thread_options(threads: int) -> dict:
    """UCI options applied once to every new worker."""
    return {THREADS_OPTION: threads}


def set_position(fen: str) -> chess.Board:
    return chess.Board(fen)


def search_to_depth(depth: int) -> chess.engine.Limit:
    return chess.engine.Limit(depth=depth)


def format_score(score: Optional[chess.engine.PovScore]) -> Evaluation:
    """
    Convert an engine score to the reported evaluation.

    The score is taken from the side to move's point of view, exactly as the
    engine printed it. Centipawns are converted to pawns (cp 37 -> 0.37).
    Mate scores are reported as text ("mate in 3", "mate in -2") since they
    have no pawn value.

    Returns:
        The evaluation, or EVAL_UNAVAILABLE if the engine sent no score
    """
    if score is None:
        return EVAL_UNAVAILABLE
    relative = score.relative
    if relative.is_mate():
        return f"mate in {relative.mate()}"
    return relative.score() / 100


def format_move(move: Optional[chess.Move]) -> Optional[str]:
    # python-chess reports "bestmove (none)" as None
    return move.uci() if move is not None else None


def make_outcome(best: chess.engine.BestMove, info: chess.engine.InfoDict) -> SearchOutcome:
    """Combine the engine's best move with the last score it reported."""
    return SearchOutcome(move=format_move(best.move), evaluation=format_score(info.get("score")))
