"""
Custom exceptions used by the coordination client.

Keeping library-specific errors in one module gives callers a predictable
import surface for telling transport failures, store-reported errors and
expected coordination outcomes (such as lock contention) apart.

Absent values are not errors: a "nil" reply from the store is returned as
``None`` by every client operation.
"""


class CoordinationError(Exception):
    """Base error type for all library-level exceptions."""


class StoreConnectionError(CoordinationError):
    """
    Raised when dialing, reading from or writing to the store fails.

    The underlying redis-py exception is chained as ``__cause__`` and the
    message names the client operation that issued the command, so the
    failing call site can be traced from the error alone.
    """


class StoreCommandError(CoordinationError):
    """
    Raised when the store answers a command with an error reply.

    Typical causes are type mismatches (``WRONGTYPE``) or commands the server
    does not support. The connection itself stays healthy and is reused.
    """


class PoolError(CoordinationError):
    """Base error for connection pool policy violations."""


class PoolExhaustedError(PoolError):
    """
    Raised when every allowed connection is borrowed.

    This happens when ``PoolConfig.max_active`` is reached and the pool is
    not configured to wait, or when a bounded wait times out.
    """


class PoolClosedError(PoolError):
    """Raised when a connection is requested from a closed pool."""


class AlreadyLockedError(CoordinationError):
    """
    Raised when a lock is already held by another holder.

    Contention is an expected outcome. Callers retry with their own backoff;
    the lock manager never blocks waiting for a release.
    """

    def __init__(self, name: str, key: str) -> None:
        super().__init__(f"Lock {name!r} is already held (key={key!r}).")
        self.name = name
        self.key = key


class StoreNotReadyError(CoordinationError):
    """
    Raised when the readiness gate gives up waiting for the store.

    Only raised when ``ReadinessConfig.max_elapsed_seconds`` is set and the
    store stayed unreachable for longer than that.
    """
