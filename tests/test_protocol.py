"""Tests for evalpool.protocol."""

import chess
import chess.engine

from evalpool import protocol
from evalpool.constants import EVAL_UNAVAILABLE

AFTER_E4_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


def cp(value, turn=chess.WHITE):
    return chess.engine.PovScore(chess.engine.Cp(value), turn)


def mate(moves, turn=chess.WHITE):
    return chess.engine.PovScore(chess.engine.Mate(moves), turn)


class TestSearchArguments:
    """Tests for the board, limit and options of an exchange."""

    def test_set_position_builds_board(self):
        """The board is set up from the FEN, side to move included."""
        board = protocol.set_position(AFTER_E4_FEN)
        assert board.fen() == AFTER_E4_FEN
        assert board.turn == chess.BLACK

    def test_search_to_depth(self):
        """The search is limited by depth only."""
        limit = protocol.search_to_depth(15)
        assert limit.depth == 15
        assert limit.time is None
        assert limit.nodes is None

    def test_thread_options(self):
        """Workers are configured through the Threads option."""
        assert protocol.thread_options(2) == {"Threads": 2}


class TestFormatScore:
    """Tests for format_score()."""

    def test_centipawns_to_pawns(self):
        """cp 37 is reported as 0.37."""
        assert protocol.format_score(cp(37)) == 0.37

    def test_negative_centipawns(self):
        """cp -20 is reported as -0.2."""
        assert protocol.format_score(cp(-20)) == -0.2

    def test_zero(self):
        """A level position is 0.0, not unavailable."""
        assert protocol.format_score(cp(0)) == 0.0

    def test_side_to_move_perspective_kept(self):
        """Black's cp -20 stays -0.2; it is not flipped to white's view."""
        assert protocol.format_score(cp(-20, chess.BLACK)) == -0.2

    def test_mate(self):
        """Mate scores are text."""
        assert protocol.format_score(mate(3)) == "mate in 3"

    def test_mated(self):
        """Being mated keeps the engine's negative sign."""
        assert protocol.format_score(mate(-2, chess.BLACK)) == "mate in -2"

    def test_no_score(self):
        """No score line means unavailable."""
        assert protocol.format_score(None) == EVAL_UNAVAILABLE


class TestFormatMove:
    """Tests for format_move()."""

    def test_uci_text(self):
        """Moves are reported in UCI notation."""
        assert protocol.format_move(chess.Move.from_uci("e7e8q")) == "e7e8q"

    def test_none(self):
        """bestmove (none) is reported as None."""
        assert protocol.format_move(None) is None


class TestMakeOutcome:
    """Tests for make_outcome()."""

    def test_move_and_score(self):
        """Best move and score are combined."""
        best = chess.engine.BestMove(chess.Move.from_uci("e2e4"), chess.Move.from_uci("e7e5"))
        outcome = protocol.make_outcome(best, {"depth": 2, "score": cp(37)})
        assert outcome.move == "e2e4"
        assert outcome.evaluation == 0.37
        assert outcome.has_score

    def test_move_without_score(self):
        """A bestmove with no score is still an outcome."""
        best = chess.engine.BestMove(chess.Move.from_uci("e2e4"), None)
        outcome = protocol.make_outcome(best, {"depth": 1})
        assert outcome.move == "e2e4"
        assert outcome.evaluation == EVAL_UNAVAILABLE
        assert not outcome.has_score

    def test_no_move(self):
        """bestmove (none) keeps the score."""
        best = chess.engine.BestMove(None, None)
        outcome = protocol.make_outcome(best, {"score": mate(-1, chess.BLACK)})
        assert outcome.move is None
        assert outcome.evaluation == "mate in -1"
