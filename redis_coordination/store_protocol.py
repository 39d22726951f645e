"""
Connection protocol used by :class:`redis_coordination.pool.ConnectionPool`.

The pool depends on this small method surface rather than on a concrete
redis-py class, so any dial function returning a compatible object can be
plugged in (for example ``redis.Connection`` or ``redis.SSLConnection``).
"""

from __future__ import annotations

from typing import Any, Protocol


class StoreConnection(Protocol):
    """
    Behavioral contract for one connection to the store.

    A connection is never used by two callers at once; the pool guarantees
    exclusive ownership between ``acquire`` and ``release``.
    """

    def connect(self) -> None:
        """Open the underlying socket and run the connection handshake."""

    def disconnect(self) -> None:
        """Close the underlying socket."""

    def send_command(self, *args: Any) -> None:
        """Encode and write one command."""

    def read_response(self) -> Any:
        """Read one reply, raising on error replies."""
