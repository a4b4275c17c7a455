"""
Exception hierarchy for the engine pool and dispatcher.

Request timeouts and missing score lines are not exceptions: they are
reported per result (see evalpool.dispatcher.EvaluationResult).
"""


class EvalPoolError(Exception):
    """Base class for all evalpool errors."""


class ConfigError(EvalPoolError):
    """An environment or command-line setting could not be parsed."""


class SpawnError(EvalPoolError):
    """The engine executable is missing, not runnable, or refused to start."""


class HandshakeTimeout(SpawnError):
    """The engine did not answer the uci handshake in time."""


class AcquireError(EvalPoolError):
    """No worker could be handed out. The underlying cause is chained."""


class PoolClosed(AcquireError):
    """The pool has been shut down."""


class OutputBusy(EvalPoolError):
    """A second search was opened on a worker while one is still open."""


class InvalidInput(EvalPoolError):
    """A batch request is structurally invalid and was rejected as a whole."""
