"""
Service configuration from environment variables.

Environment variables (can be set in .env file):
    PORT: HTTP port (default 3000)
    ENGINE_PATH: Path to the UCI engine executable
    POOL_SIZE: Maximum number of concurrent engine workers (default 4)
    EVAL_TIMEOUT: Seconds allowed per position (default 30)
    HANDSHAKE_TIMEOUT: Seconds allowed for a new worker's uci handshake (default 10)
    HEALTH_TIMEOUT: Seconds allowed for the health check handshake (default 3)
    ENGINE_THREADS: Value for the engine's Threads option (default 1)
    LOG_LEVEL: Logging level name (default INFO)
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from evalpool.constants import (
    DEFAULT_ENGINE_PATH,
    DEFAULT_ENGINE_THREADS,
    DEFAULT_POOL_SIZE,
    DEFAULT_PORT,
    EVAL_TIMEOUT,
    HANDSHAKE_TIMEOUT,
    HEALTH_TIMEOUT,
)
from evalpool.errors import ConfigError

# Load environment variables from project root
load_dotenv(Path(__file__).parent.parent / '.env')


@dataclass(frozen=True)
class Settings:
    """Resolved service settings."""
    engine_path: str = DEFAULT_ENGINE_PATH
    port: int = DEFAULT_PORT
    pool_size: int = DEFAULT_POOL_SIZE
    eval_timeout: float = EVAL_TIMEOUT
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    health_timeout: float = HEALTH_TIMEOUT
    engine_threads: int = DEFAULT_ENGINE_THREADS
    log_level: str = "INFO"

    def override(self, **changes) -> "Settings":
        """Return a copy with the non-None values in `changes` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _parse_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Raises:
        ConfigError: if a numeric variable is malformed or out of range
    """
    if environ is None:
        environ = os.environ

    return Settings(
        engine_path=environ.get("ENGINE_PATH") or DEFAULT_ENGINE_PATH,
        port=_parse_int(environ, "PORT", DEFAULT_PORT),
        pool_size=_parse_int(environ, "POOL_SIZE", DEFAULT_POOL_SIZE),
        eval_timeout=_parse_float(environ, "EVAL_TIMEOUT", EVAL_TIMEOUT),
        handshake_timeout=_parse_float(environ, "HANDSHAKE_TIMEOUT", HANDSHAKE_TIMEOUT),
        health_timeout=_parse_float(environ, "HEALTH_TIMEOUT", HEALTH_TIMEOUT),
        engine_threads=_parse_int(environ, "ENGINE_THREADS", DEFAULT_ENGINE_THREADS),
        log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
    )
