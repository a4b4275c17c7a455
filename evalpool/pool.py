"""
Bounded pool of engine workers.

Workers are created lazily up to `max_workers`. acquire() hands out the first
READY worker, starts a new one while there is spare capacity, and otherwise
blocks on a condition variable until a worker is released or one dies.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from evalpool.constants import DEFAULT_ENGINE_THREADS, DEFAULT_POOL_SIZE, HANDSHAKE_TIMEOUT
from evalpool.errors import AcquireError, PoolClosed, SpawnError
from evalpool.process import EngineProcess, WorkerState

log = logging.getLogger(__name__)


class WorkerPool:
    """
    Owns every EngineProcess it creates.

    The worker list and the count of workers still starting are guarded by
    one condition variable. A worker counts against capacity from the moment
    its slot is reserved until its exit is observed.

    Usage:
        pool = WorkerPool("/usr/bin/stockfish", max_workers=4)
        worker = pool.acquire()
        try:
            ...
        finally:
            pool.release(worker)
        pool.shutdown_all()
    """

    def __init__(self, command: Path | str | list, max_workers: int = DEFAULT_POOL_SIZE,
                 handshake_timeout: float = HANDSHAKE_TIMEOUT,
                 threads: int = DEFAULT_ENGINE_THREADS,
                 worker_factory: Optional[Callable[[], EngineProcess]] = None):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        self.command = command
        self.max_workers = max_workers
        self.handshake_timeout = handshake_timeout
        self.threads = threads
        self._factory = worker_factory or self._new_worker

        self._cond = threading.Condition()
        self._workers: list[EngineProcess] = []
        self._starting = 0
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown_all()

    def _new_worker(self) -> EngineProcess:
        return EngineProcess(self.command, threads=self.threads)

    def _capacity_used(self) -> int:
        return len(self._workers) + self._starting

    @property
    def live_count(self) -> int:
        """Workers running or starting."""
        with self._cond:
            return self._capacity_used()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def workers(self) -> list[EngineProcess]:
        """Snapshot of the tracked workers."""
        with self._cond:
            return list(self._workers)

    def stats(self) -> dict:
        with self._cond:
            states = [w.state for w in self._workers]
            return {
                "max_workers": self.max_workers,
                "live": self._capacity_used(),
                "starting": self._starting,
                "busy": sum(1 for s in states if s is WorkerState.BUSY),
                "ready": sum(1 for s in states if s is WorkerState.READY),
            }

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    def acquire(self, timeout: Optional[float] = None) -> EngineProcess:
        """
        Get a worker for exclusive use. The worker is BUSY until release().

        Args:
            timeout: Maximum seconds to wait for capacity (None = wait forever).
                The handshake of a newly started worker is bounded separately
                by handshake_timeout.

        Raises:
            PoolClosed: if the pool has been shut down
            AcquireError: if a new worker failed to start, or no worker
                became available within `timeout`
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosed("Worker pool is shut down")

                for worker in self._workers:
                    if worker.mark_busy():
                        return worker

                if self._capacity_used() < self.max_workers:
                    self._starting += 1
                    break

                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise AcquireError(f"No engine worker available after {timeout}s")
                    self._cond.wait(remaining)

        try:
            return self._start_reserved()
        except SpawnError as e:
            raise AcquireError(f"Could not start engine worker: {e}") from e

    def _start_reserved(self) -> EngineProcess:
        """Start a worker in a slot already counted in _starting."""
        worker = self._factory()
        worker.add_exit_listener(self._on_worker_exit)
        log.debug("Starting %s (%d/%d)", worker.name, self.live_count, self.max_workers)

        try:
            worker.start(self.handshake_timeout)
        except BaseException:
            with self._cond:
                self._starting -= 1
                self._cond.notify_all()
            worker.terminate()
            raise

        with self._cond:
            self._starting -= 1
            closed = self._closed
            if not closed and worker.mark_busy():
                self._workers.append(worker)
                log.info("Pool size %d/%d", len(self._workers), self.max_workers)
                return worker
            self._cond.notify_all()

        worker.terminate()
        if closed:
            raise PoolClosed("Worker pool is shut down")
        raise AcquireError(f"{worker.name} exited right after its handshake")

    def release(self, worker: EngineProcess):
        """
        Hand a worker back. It must answer isready first; a worker
        that does not is terminated, which frees its slot for a replacement.
        """
        if worker.state is WorkerState.BUSY and not worker.ping():
            log.warning("%s did not answer isready, replacing it", worker.name)
            worker.terminate()
            return

        if not worker.mark_ready():
            # Died while busy; its exit listener already freed the slot
            log.debug("Released %s in state %s", worker.name, worker.state.value)
            return

        with self._cond:
            self._cond.notify_all()

    def _on_worker_exit(self, worker: EngineProcess):
        with self._cond:
            if worker in self._workers:
                self._workers.remove(worker)
                log.info("%s left the pool (%d/%d)", worker.name,
                         self._capacity_used(), self.max_workers)
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown_all(self):
        """
        Terminate every worker and refuse further acquisitions. Safe to call
        repeatedly and with workers that are already dead.
        """
        with self._cond:
            self._closed = True
            workers = list(self._workers)
            self._workers.clear()
            self._cond.notify_all()

        if workers:
            log.info("Shutting down %d engine worker(s)", len(workers))
        for worker in workers:
            worker.terminate()
