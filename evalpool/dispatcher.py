"""
Batch evaluation of positions against a WorkerPool.

A batch is split into groups of `pool.max_workers` positions. Groups run one
after another; the positions inside a group run concurrently, one worker
each. Results come back in input order, one per position, and a failure in
one position never affects the others.
"""

import logging
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import chess
import chess.engine

from evalpool import protocol
from evalpool.constants import (
    DEFAULT_DEPTH,
    EVAL_TIMEOUT,
    STATUS_ERROR,
    STATUS_OK,
    STATUS_TIMEOUT,
    STOP_GRACE,
)
from evalpool.errors import AcquireError, InvalidInput
from evalpool.pool import WorkerPool
from evalpool.process import ENGINE_ERRORS, EngineProcess
from evalpool.protocol import Evaluation

log = logging.getLogger(__name__)


@dataclass
class EvaluationRequest:
    """One position to evaluate."""
    position: str  # FEN
    depth: int = DEFAULT_DEPTH


@dataclass
class EvaluationResult:
    """Outcome for one request. move and evaluation are None unless status is ok."""
    position: str
    move: Optional[str] = None
    evaluation: Optional[Evaluation] = None
    status: str = STATUS_OK
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "position": self.position,
            "move": self.move,
            "evaluation": self.evaluation,
            "status": self.status,
        }
        if self.error:
            data["error"] = self.error
        return data


def parse_depth(depth: Any) -> int:
    """
    Validate a search depth. Numeric strings are accepted ("15").

    Raises:
        InvalidInput: if depth is not a positive integer
    """
    if isinstance(depth, bool):
        raise InvalidInput(f"Invalid depth: {depth!r}")
    if isinstance(depth, str):
        depth = depth.strip()
        if not depth.isdigit():
            raise InvalidInput(f"Invalid depth: {depth!r}")
        depth = int(depth)
    if not isinstance(depth, int) or depth < 1:
        raise InvalidInput(f"Invalid depth: {depth!r}")
    return depth


def validate_batch(positions: Any, depth: Any = DEFAULT_DEPTH) -> list[EvaluationRequest]:
    """
    Turn raw input into EvaluationRequests.

    Raises:
        InvalidInput: if positions is not a non-empty list of valid FEN
            strings, or depth is not a positive integer
    """
    if not isinstance(positions, list) or not positions:
        raise InvalidInput("Invalid or empty FEN array")

    depth = parse_depth(depth)

    requests = []
    for index, fen in enumerate(positions):
        if not isinstance(fen, str) or not fen.strip():
            raise InvalidInput(f"Position {index} is not a FEN string")
        try:
            chess.Board(fen.strip())
        except ValueError as e:
            raise InvalidInput(f"Position {index} is not a valid FEN: {e}") from None
        requests.append(EvaluationRequest(position=fen, depth=depth))
    return requests


class EvaluationDispatcher:
    """Drives position exchanges over workers borrowed from a pool."""

    def __init__(self, pool: WorkerPool, eval_timeout: float = EVAL_TIMEOUT,
                 stop_grace: float = STOP_GRACE, acquire_timeout: Optional[float] = None):
        self.pool = pool
        self.eval_timeout = eval_timeout
        self.stop_grace = stop_grace
        self.acquire_timeout = acquire_timeout

    def evaluate_batch(self, positions: Any, depth: Any = DEFAULT_DEPTH) -> list[EvaluationResult]:
        """
        Evaluate every position, preserving input order.

        Raises:
            InvalidInput: before any worker is touched, if the batch is malformed
        """
        requests = validate_batch(positions, depth)
        group_size = self.pool.max_workers
        results: list[EvaluationResult] = []

        with ThreadPoolExecutor(max_workers=group_size, thread_name_prefix="evaluate") as executor:
            for start in range(0, len(requests), group_size):
                group = requests[start:start + group_size]
                futures = [executor.submit(self.evaluate, request) for request in group]
                for request, future in zip(group, futures):
                    try:
                        results.append(future.result())
                    except Exception as e:
                        log.exception("Unexpected error evaluating %s", request.position)
                        results.append(EvaluationResult(position=request.position,
                                                        status=STATUS_ERROR, error=str(e)))

        return results

    def evaluate(self, request: EvaluationRequest) -> EvaluationResult:
        """Evaluate one position on one worker. Timeouts and worker failures become statuses."""
        try:
            worker = self.pool.acquire(timeout=self.acquire_timeout)
        except AcquireError as e:
            log.error("No engine for %s: %s", request.position, e)
            return EvaluationResult(position=request.position, status=STATUS_ERROR, error=str(e))

        try:
            return self._exchange(worker, request)
        finally:
            self.pool.release(worker)

    def _exchange(self, worker: EngineProcess, request: EvaluationRequest) -> EvaluationResult:
        """
        One search on one worker.

        At eval_timeout the search is stopped. If the engine has still not
        sent its bestmove stop_grace later, the worker is terminated: its
        answer would otherwise arrive during the next request.
        """
        board = protocol.set_position(request.position)
        try:
            search = worker.open_search(board, protocol.search_to_depth(request.depth))
        except ENGINE_ERRORS as e:
            log.error("%s could not start a search on %s: %s", worker.name, request.position, e)
            return EvaluationResult(position=request.position, status=STATUS_ERROR,
                                    error=f"Engine could not start the search: {e}")

        timed_out = threading.Event()

        def stop():
            timed_out.set()
            log.warning("%s timed out after %.1fs on %s", worker.name,
                        self.eval_timeout, request.position)
            worker.stop_search(search)

        def abandon():
            log.warning("%s did not stop within %.1fs, terminating it",
                        worker.name, self.stop_grace)
            worker.terminate()

        timers = [threading.Timer(self.eval_timeout, stop),
                  threading.Timer(self.eval_timeout + self.stop_grace, abandon)]
        for timer in timers:
            timer.daemon = True
            timer.start()

        outcome = None
        error = None
        try:
            outcome = protocol.make_outcome(search.wait(), search.info)
        except chess.engine.EngineTerminatedError as e:
            error = f"Engine exited during evaluation ({e})"
        except (chess.engine.EngineError, CancelledError) as e:
            error = f"Engine failed during evaluation ({e!r})"
        finally:
            for timer in timers:
                timer.cancel()
            worker.close_search()

        if timed_out.is_set():
            return EvaluationResult(position=request.position, status=STATUS_TIMEOUT)

        if outcome is None:
            log.error("%s: %s", worker.name, error)
            return EvaluationResult(position=request.position, status=STATUS_ERROR, error=error)

        if not outcome.has_score:
            log.debug("%s gave bestmove without a score for %s", worker.name, request.position)
        return EvaluationResult(position=request.position, move=outcome.move,
                                evaluation=outcome.evaluation)
