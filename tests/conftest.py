"""Shared fixtures: a scripted engine subprocess and an in-process engine double."""

import asyncio
import concurrent.futures
import sys
import threading
from pathlib import Path
from types import SimpleNamespace

import chess
import chess.engine
import pytest

from evalpool.process import EngineProcess

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


@pytest.fixture
def engine_cmd():
    """Build the command line for tests/fake_engine.py in a given mode."""
    def build(mode: str = "normal", delay: float = 0.0, delay_first: float = 0.0,
              white_delay: float = 0.0, stop_delay: float = 0.0) -> list[str]:
        cmd = [sys.executable, "-u", str(FAKE_ENGINE), "--mode", mode]
        for flag, value in (("--delay", delay), ("--delay-first", delay_first),
                            ("--white-delay", white_delay), ("--stop-delay", stop_delay)):
            if value:
                cmd += [flag, str(value)]
        return cmd
    return build


class ScriptedSearch:
    """Stand-in for chess.engine.SimpleAnalysisResult."""

    def __init__(self, engine: "ScriptedChessEngine", board: chess.Board):
        self.engine = engine
        self.board = board
        self.info: dict = {}
        self._best = None
        self._error = None
        self._done = threading.Event()
        self._lock = threading.Lock()

    def _settle(self, best=None, info=None, error=None) -> bool:
        with self._lock:
            if self._done.is_set():
                return False
            self.info = info or {}
            self._best = best
            self._error = error
            self._done.set()
        if self.engine.tracker is not None:
            self.engine.tracker.finished()
        return True

    def finish(self):
        """Report e2e4 / cp 37 for white to move, e7e5 / cp -20 for black."""
        move, cp = ("e2e4", 37) if self.board.turn == chess.WHITE else ("e7e5", -20)
        self._settle(
            best=chess.engine.BestMove(chess.Move.from_uci(move), None),
            info={"depth": 2, "score": chess.engine.PovScore(chess.engine.Cp(cp), self.board.turn)},
        )

    def fail(self, error: Exception):
        self._settle(error=error)

    def stop(self):
        self.engine.check_open()
        self.engine.sent.append("stop")
        if self.engine.answer_stop:
            self.finish()

    def wait(self) -> chess.engine.BestMove:
        self._done.wait()
        if self._error is not None:
            raise self._error
        return self._best


class ScriptedChessEngine:
    """In-process stand-in for chess.engine.SimpleEngine with canned replies."""

    def __init__(self, answer_go: bool = True, answer_stop: bool = True,
                 reply_delay: float = 0.0, answer_ping: bool = True, hold_ping: bool = False,
                 tracker=None):
        self.answer_go = answer_go
        self.answer_stop = answer_stop
        self.reply_delay = reply_delay
        self.answer_ping = answer_ping
        self.hold_ping = hold_ping
        self.tracker = tracker

        self.options = {"Threads": SimpleNamespace(name="Threads", default=1)}
        self.sent: list[str] = []
        self.returncode: concurrent.futures.Future = concurrent.futures.Future()
        self.transport = SimpleNamespace(get_pid=lambda: 4242)
        self.ping_started = threading.Event()
        self.search = None
        self._closed = threading.Event()

    def check_open(self):
        if self._closed.is_set():
            raise chess.engine.EngineTerminatedError("engine event loop dead")

    def configure(self, options: dict):
        self.check_open()
        for name, value in options.items():
            self.sent.append(f"setoption name {name} value {value}")

    def ping(self):
        self.check_open()
        self.sent.append("isready")
        if not self.answer_ping:
            raise asyncio.TimeoutError()
        if self.hold_ping:
            self.ping_started.set()
            self._closed.wait()
            raise chess.engine.EngineTerminatedError("engine process died unexpectedly (exit code: -9)")

    def analysis(self, board: chess.Board, limit: chess.engine.Limit) -> ScriptedSearch:
        self.check_open()
        self.sent.append(f"position fen {board.fen()}")
        self.sent.append(f"go depth {limit.depth}")
        search = ScriptedSearch(self, board)
        self.search = search
        if self.tracker is not None:
            self.tracker.started()
        if self.answer_go:
            if self.reply_delay:
                timer = threading.Timer(self.reply_delay, search.finish)
                timer.daemon = True
                timer.start()
            else:
                search.finish()
        return search

    def quit(self):
        self.check_open()
        self.sent.append("quit")
        self._exit(0)

    def close(self):
        self._exit(-9)

    def _exit(self, code: int):
        if self._closed.is_set():
            return
        self._closed.set()
        if self.search is not None:
            self.search.fail(chess.engine.EngineTerminatedError(
                f"engine process died unexpectedly (exit code: {code})"))
        self.returncode.set_result(code)


class ScriptedEngine(EngineProcess):
    """
    EngineProcess on top of ScriptedChessEngine instead of a child process.

    State transitions, search bookkeeping and exit notification are the real
    EngineProcess code; only _open_engine is replaced.
    """

    def __init__(self, fail_spawn: bool = False, answer_uci: bool = True, **engine_options):
        super().__init__(["scripted-engine"])
        self.fail_spawn = fail_spawn
        self.answer_uci = answer_uci
        self.engine_options = engine_options
        self.fake = None
        self.terminate_calls = 0

    def _open_engine(self, timeout: float) -> ScriptedChessEngine:
        if self.fail_spawn:
            raise FileNotFoundError(2, "No such file or directory", "scripted-engine")
        if not self.answer_uci:
            raise asyncio.TimeoutError()
        self.fake = ScriptedChessEngine(**self.engine_options)
        return self.fake

    @property
    def sent(self) -> list[str]:
        return self.fake.sent if self.fake else []

    def terminate(self):
        self.terminate_calls += 1
        super().terminate()

    def crash(self, code: int = 1):
        """Simulate the process exiting on its own."""
        self.fake._exit(code)


class ConcurrencyTracker:
    """Counts searches in flight and remembers the peak."""

    def __init__(self):
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def started(self):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def finished(self):
        with self.lock:
            self.active -= 1


@pytest.fixture
def scripted_factory():
    """Factory producing ScriptedEngine workers; every created worker is kept in .created."""
    class Factory:
        def __init__(self):
            self.created: list[ScriptedEngine] = []
            self.options: dict = {}

        def __call__(self) -> ScriptedEngine:
            worker = ScriptedEngine(**self.options)
            self.created.append(worker)
            return worker

    return Factory()


@pytest.fixture
def tracker():
    return ConcurrencyTracker()
