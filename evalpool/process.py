"""
A single UCI engine worker.

EngineProcess wraps a python-chess SimpleEngine and adds what the pool
needs on top of it: an explicit STARTING -> READY <-> BUSY -> DEAD state
machine, exit notification, at most one open search at a time, and
idempotent termination.

No engine call is made while the worker lock is held, so a slow or wedged
engine never blocks terminate() or state queries.
"""

import asyncio
import concurrent.futures
import itertools
import logging
import subprocess
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import chess
import chess.engine

from evalpool import protocol
from evalpool.constants import DEFAULT_ENGINE_THREADS, HANDSHAKE_TIMEOUT, TERMINATE_GRACE
from evalpool.errors import HandshakeTimeout, OutputBusy, SpawnError

log = logging.getLogger(__name__)

ExitListener = Callable[["EngineProcess"], None]

# What a SimpleEngine call raises when the engine misbehaves or is gone
ENGINE_ERRORS = (chess.engine.EngineError, asyncio.TimeoutError)

_worker_ids = itertools.count(1)


class WorkerState(Enum):
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"
    DEAD = "dead"


def engine_command(command: Path | str | list) -> list[str]:
    """
    Normalize an engine command to an argument list.

    command can be:
    - Path or str: a native executable
    - list: a full command line, e.g. ["java", "-jar", "engine.jar"]
    """
    if isinstance(command, list):
        return [str(part) for part in command]
    return [str(command)]


class EngineProcess:
    """One engine worker and its lifecycle: STARTING -> READY <-> BUSY -> DEAD."""

    def __init__(self, command: Path | str | list, threads: int = DEFAULT_ENGINE_THREADS,
                 on_exit: Optional[ExitListener] = None):
        self.command = engine_command(command)
        self.threads = threads
        self.name = f"engine-{next(_worker_ids)}"

        self._lock = threading.Lock()
        self._state = WorkerState.STARTING
        self._engine: Optional[chess.engine.SimpleEngine] = None
        self._searching = False
        self._exit_listeners: list[ExitListener] = [on_exit] if on_exit else []
        self._terminated = False

    def __repr__(self):
        return f"<EngineProcess {self.name} {self._state.value}>"

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return self._state

    @property
    def is_alive(self) -> bool:
        return self.state is not WorkerState.DEAD

    @property
    def pid(self) -> Optional[int]:
        engine = self._engine
        return engine.transport.get_pid() if engine else None

    @property
    def returncode(self) -> Optional[int]:
        engine = self._engine
        if engine is None or not engine.returncode.done():
            return None
        return engine.returncode.result()

    def add_exit_listener(self, listener: ExitListener):
        with self._lock:
            self._exit_listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _open_engine(self, timeout: float) -> chess.engine.SimpleEngine:
        return chess.engine.SimpleEngine.popen_uci(self.command, timeout=timeout,
                                                   stderr=subprocess.DEVNULL)

    def spawn(self, timeout: float = HANDSHAKE_TIMEOUT):
        """
        Start the engine process and complete the uci handshake.

        python-chess sends uci and waits for uciok while starting the
        process, so `timeout` bounds the handshake. A process that misses it
        is killed. The worker stays STARTING until initialize().

        Raises:
            HandshakeTimeout: if uciok does not arrive within `timeout`
            SpawnError: if the executable is missing, not executable, the OS
                refuses to start it, or it exits during the handshake. The
                worker is DEAD afterwards.
        """
        if self._engine is not None:
            raise SpawnError(f"{self.name} already spawned")

        # asyncio.TimeoutError is an OSError on newer Pythons, so it goes first
        try:
            engine = self._open_engine(timeout)
        except asyncio.TimeoutError as e:
            log.warning("%s did not answer uci within %.1fs", self.name, timeout)
            self._mark_dead("no uciok")
            raise HandshakeTimeout(f"{self.name} did not answer uci within {timeout}s") from e
        except (OSError, chess.engine.EngineError) as e:
            self._mark_dead(f"spawn failed: {e}")
            raise SpawnError(f"Cannot start engine {self.command[0]}: {e}") from e

        with self._lock:
            terminated = self._terminated
            if not terminated:
                self._engine = engine
        if terminated:
            engine.close()
            raise SpawnError(f"{self.name} was terminated while starting")

        engine.returncode.add_done_callback(self._on_engine_exit)
        log.debug("%s spawned pid=%s (%s)", self.name, self.pid, " ".join(self.command))

    def initialize(self):
        """
        Apply the per-worker options and move to READY.

        Raises:
            SpawnError: if the engine rejects the options or has exited
        """
        engine = self._engine
        if engine is None:
            raise SpawnError(f"{self.name} has not been spawned")

        try:
            if protocol.THREADS_OPTION in engine.options:
                engine.configure(protocol.thread_options(self.threads))
            else:
                log.debug("%s has no %s option", self.name, protocol.THREADS_OPTION)
        except ENGINE_ERRORS as e:
            self.terminate()
            raise SpawnError(f"{self.name} rejected its options: {e}") from e

        if not self._transition((WorkerState.STARTING,), WorkerState.READY):
            raise SpawnError(f"{self.name} exited during startup (code {self.returncode})")
        log.info("%s ready (pid %s)", self.name, self.pid)

    def start(self, timeout: float = HANDSHAKE_TIMEOUT) -> "EngineProcess":
        """spawn() followed by initialize()."""
        self.spawn(timeout)
        self.initialize()
        return self

    def terminate(self):
        """
        Stop the engine and release its process. Safe to call any number of
        times, from any thread, in any state.

        An idle engine is asked to quit first; a busy or starting one is
        killed straight away.
        """
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
            engine = self._engine
            idle = self._state is WorkerState.READY

        self._mark_dead("terminated")

        if engine is None:
            return

        if idle:
            try:
                engine.quit()
            except ENGINE_ERRORS as e:
                log.debug("%s did not quit cleanly: %s", self.name, e)
        engine.close()

        try:
            engine.returncode.result(timeout=TERMINATE_GRACE)
        except concurrent.futures.TimeoutError:
            log.warning("%s still running after termination", self.name)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _transition(self, allowed: tuple, new_state: WorkerState) -> bool:
        with self._lock:
            if self._state not in allowed:
                return False
            self._state = new_state
            return True

    def mark_busy(self) -> bool:
        """READY -> BUSY. False if the worker is not READY."""
        return self._transition((WorkerState.READY,), WorkerState.BUSY)

    def mark_ready(self) -> bool:
        """BUSY -> READY. False if the worker is not BUSY (e.g. it died)."""
        return self._transition((WorkerState.BUSY,), WorkerState.READY)

    def _mark_dead(self, reason: str) -> bool:
        with self._lock:
            if self._state is WorkerState.DEAD:
                return False
            self._state = WorkerState.DEAD
            listeners = list(self._exit_listeners)

        log.info("%s dead: %s", self.name, reason)
        for listener in listeners:
            listener(self)
        return True

    def _on_engine_exit(self, returncode: concurrent.futures.Future):
        # Runs on the engine's event loop thread
        self._mark_dead(f"process exited (code {returncode.result()})")

    def _live_engine(self) -> Optional[chess.engine.SimpleEngine]:
        with self._lock:
            if self._state is WorkerState.DEAD:
                return None
            return self._engine

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """
        isready/readyok round trip.

        Returns:
            True if the engine answered. False, with a warning, if the
            worker is dead or the engine did not answer in time.
        """
        engine = self._live_engine()
        if engine is None:
            log.warning("Attempted to ping closed engine %s", self.name)
            return False
        try:
            engine.ping()
        except ENGINE_ERRORS as e:
            log.warning("%s did not answer isready: %s", self.name, e)
            return False
        return True

    def open_search(self, board: chess.Board,
                    limit: chess.engine.Limit) -> chess.engine.SimpleAnalysisResult:
        """
        Start a search and return its handle. Its info and best move belong
        to the caller alone until close_search().

        Raises:
            OutputBusy: if another search is still open on this worker
            chess.engine.EngineTerminatedError: if the worker is dead
            asyncio.TimeoutError: if the engine did not start the search
        """
        with self._lock:
            if self._searching:
                raise OutputBusy(f"{self.name} already has an open search")
            if self._state is WorkerState.DEAD or self._engine is None:
                raise chess.engine.EngineTerminatedError(f"{self.name} is not running")
            self._searching = True
            engine = self._engine

        try:
            return engine.analysis(board, limit)
        except BaseException:
            self.close_search()
            raise

    def stop_search(self, search: chess.engine.SimpleAnalysisResult):
        """Ask the engine to finish `search` now. Ignored with a warning if the engine is gone."""
        try:
            search.stop()
        except chess.engine.EngineError as e:
            log.warning("Attempted to stop search on closed engine %s: %s", self.name, e)

    def close_search(self):
        """Allow the next open_search()."""
        with self._lock:
            self._searching = False
