"""
Engine availability check used by the health endpoint and `evalpool health`.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from evalpool.constants import HEALTH_TIMEOUT
from evalpool.errors import HandshakeTimeout, SpawnError
from evalpool.process import EngineProcess, engine_command

log = logging.getLogger(__name__)


@dataclass
class HealthReport:
    ok: bool
    message: str

    def to_dict(self) -> dict:
        return {"status": "ok" if self.ok else "error", "message": self.message}


def check_executable(path: Path | str) -> bool:
    """True if `path` exists and is executable by this process."""
    path = Path(path)
    return path.is_file() and os.access(path, os.X_OK)


def check_engine(command: Path | str | list, timeout: float = HEALTH_TIMEOUT) -> HealthReport:
    """
    Verify the engine binary exists and answers the uci handshake.

    A throwaway process is started for the check and always terminated,
    independently of any worker pool.
    """
    executable = engine_command(command)[0]
    if not check_executable(executable):
        return HealthReport(False, f"Engine binary missing or not executable at {executable}")

    candidate = EngineProcess(command)
    try:
        candidate.start(timeout)
    except HandshakeTimeout:
        return HealthReport(False, f"Engine failed to respond to uci within {timeout}s")
    except SpawnError as e:
        log.warning("Health check failed: %s", e)
        return HealthReport(False, f"Engine failed to start: {e}")
    finally:
        candidate.terminate()

    return HealthReport(True, "Engine is runnable and responding.")
