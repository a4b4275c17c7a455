"""
Chess position evaluation over a pool of UCI engine processes.

Usage:
    python -m evalpool --help
    python -m evalpool serve --port 3000
    python -m evalpool eval "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
"""

from evalpool.constants import (
    DEFAULT_DEPTH,
    DEFAULT_POOL_SIZE,
    EVAL_TIMEOUT,
    STATUS_OK,
    STATUS_TIMEOUT,
    STATUS_ERROR,
    EVAL_UNAVAILABLE,
)

__version__ = "1.0.0"

__all__ = [
    # Constants
    'DEFAULT_DEPTH',
    'DEFAULT_POOL_SIZE',
    'EVAL_TIMEOUT',
    'STATUS_OK',
    'STATUS_TIMEOUT',
    'STATUS_ERROR',
    'EVAL_UNAVAILABLE',
    # Components (import from their modules when needed)
    # - evalpool.pool.WorkerPool, evalpool.dispatcher.EvaluationDispatcher
]
