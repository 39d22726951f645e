"""
Command executor shared by every higher-level coordination component.

Every operation borrows exactly one pooled connection, issues one command
(or a bounded loop of commands inside :meth:`StoreClient.session`) and
returns the connection unconditionally: on success, on a nil reply and on
error.

Reply conventions
-----------------
* nil replies (absent key, field or list entry) are returned as ``None``
* transport failures raise :class:`StoreConnectionError`
* store error replies raise :class:`StoreCommandError`

Both error types chain the underlying redis-py exception and name the client
operation that issued the command.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .exceptions import StoreCommandError, StoreConnectionError
from .pool import ConnectionPool, PooledConnection


class CommandSession:
    """
    Issues commands over one borrowed connection.

    Obtained from :meth:`StoreClient.session`; valid only inside the ``with``
    block that created it.
    """

    def __init__(self, pooled: PooledConnection, operation: str) -> None:
        self._pooled = pooled
        self._operation = operation

    def call(self, *command: Any) -> Any:
        """Send one command and return its decoded reply."""
        name = str(command[0]).upper()
        connection = self._pooled.connection
        try:
            connection.send_command(*command)
            return connection.read_response()
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreConnectionError(f"{self._operation}: {name} failed: {exc}") from exc
        except RedisError as exc:
            raise StoreCommandError(f"{self._operation}: {name} failed: {exc}") from exc


class StoreClient:
    """
    Thin borrow/execute/release wrapper around a :class:`ConnectionPool`.

    One instance is created per process and passed explicitly to the lock,
    queue and hash clients.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    @property
    def pool(self) -> ConnectionPool:
        """Return the underlying connection pool."""
        return self._pool

    @contextmanager
    def session(self, operation: str = "session") -> Iterator[CommandSession]:
        """
        Borrow one connection for a bounded sequence of commands.

        Parameters
        ----------
        operation:
            Caller name included in error messages.
        """
        with self._pool.connection() as pooled:
            yield CommandSession(pooled, operation)

    def execute(self, *command: Any, operation: str | None = None) -> Any:
        """
        Run one command on a borrowed connection and return the reply.

        ``operation`` defaults to the lower-cased command name.
        """
        with self.session(operation or str(command[0]).lower()) as session:
            return session.call(*command)

    def close(self) -> None:
        """Close the underlying pool."""
        self._pool.close()

    # ------------------------------------------------------------------ #
    # Keys
    # ------------------------------------------------------------------ #

    def ping(self) -> bool:
        """Liveness probe. Returns true on ``PONG``; raises on failure."""
        reply = self.execute("PING", operation="ping")
        if reply not in ("PONG", b"PONG"):
            raise StoreConnectionError(f"ping: unexpected reply {reply!r}")
        return True

    def get(self, key: str) -> str | None:
        """Return the string value of ``key`` or ``None`` when absent."""
        return self.execute("GET", key, operation="get")

    def set(self, key: str, value: Any, *, px: int | None = None, nx: bool = False) -> bool:
        """
        Set ``key`` to ``value``.

        Parameters
        ----------
        px:
            Optional expiry in milliseconds.
        nx:
            Only set when the key does not exist.

        Returns
        -------
        bool
            ``False`` when ``nx`` was requested and the key already existed.
        """
        command: list[Any] = ["SET", key, value]
        if nx:
            command.append("NX")
        if px is not None:
            command.extend(["PX", int(px)])
        return self.execute(*command, operation="set") is not None

    def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        return int(self.execute("DEL", *keys, operation="delete"))

    # ------------------------------------------------------------------ #
    # Lists
    # ------------------------------------------------------------------ #

    def llen(self, key: str) -> int:
        """Return list length (``0`` for a missing key)."""
        return int(self.execute("LLEN", key, operation="llen"))

    def rpush(self, key: str, value: Any) -> int:
        """Append to the list tail and return the new length."""
        return int(self.execute("RPUSH", key, value, operation="rpush"))

    def lpush(self, key: str, value: Any) -> int:
        """Insert at the list head and return the new length."""
        return int(self.execute("LPUSH", key, value, operation="lpush"))

    def lpop(self, key: str) -> str | None:
        """Remove and return the list head, or ``None`` when empty."""
        return self.execute("LPOP", key, operation="lpop")

    def blpop(self, key: str, timeout: int) -> str | None:
        """
        Blocking head pop.

        Returns the popped value, or ``None`` when nothing arrived within
        ``timeout`` seconds.
        """
        reply = self.execute("BLPOP", key, int(timeout), operation="blpop")
        if reply is None:
            return None
        return reply[1]

    # ------------------------------------------------------------------ #
    # Hashes
    # ------------------------------------------------------------------ #

    def hset(self, key: str, field: str, value: Any) -> int:
        """Set one hash field and return ``1`` when the field is new."""
        return int(self.execute("HSET", key, field, value, operation="hset"))

    def hget(self, key: str, field: str) -> str | None:
        """Return one hash field or ``None`` when key or field is absent."""
        return self.execute("HGET", key, field, operation="hget")

    def hdel(self, key: str, field: str) -> int:
        """Delete one hash field and return how many fields were removed."""
        return int(self.execute("HDEL", key, field, operation="hdel"))
