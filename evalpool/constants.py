"""
Constants for the engine evaluation service.
"""

# Engine binary location inside the deployment image
DEFAULT_ENGINE_PATH = "/app/stockfish/stockfish-ubuntu-x86-64-avx2"
DEFAULT_PORT = 3000

# Pool sizing - one engine thread per worker since several workers run at once
DEFAULT_POOL_SIZE = 4
DEFAULT_ENGINE_THREADS = 1

# Search defaults
DEFAULT_DEPTH = 15

# Timeouts (seconds)
EVAL_TIMEOUT = 30.0       # Wall-clock limit for a single position exchange
HANDSHAKE_TIMEOUT = 10.0  # uci -> uciok when starting a pool worker
HEALTH_TIMEOUT = 3.0      # uci -> uciok for the health check process
STOP_GRACE = 1.0          # Wait for the abandoned search's bestmove after a timeout
TERMINATE_GRACE = 2.0     # Wait for a killed process to be reaped

# Result statuses
STATUS_OK = "ok"
STATUS_TIMEOUT = "timeout"
STATUS_ERROR = "error"

# Evaluation placeholder when the engine gave a best move but no score line
EVAL_UNAVAILABLE = "unavailable"
