"""
Bounded, thread-safe pool of reusable store connections.

Pool behavior:

* connections are dialed lazily, only when no idle connection is available
* borrowed connections are owned exclusively by one caller until released
* idle connections are reused most-recently-used first
* idle connections past ``idle_timeout_seconds`` or connections past
  ``max_lifetime_seconds`` are retired instead of reused
* idle connections older than ``test_on_borrow_after_seconds`` are probed
  with ``PING`` before reuse; a failed probe discards the connection and the
  pool tries the next idle connection or dials a new one
* connections that saw a transport error are discarded on release

Dial failures propagate to the caller of :meth:`ConnectionPool.acquire` as
:class:`redis_coordination.exceptions.StoreConnectionError`. The pool never
retries a dial by itself; startup retries belong to
:func:`redis_coordination.readiness.wait_until_ready`.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from redis.connection import Connection, parse_url
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .config import PoolConfig
from .exceptions import (
    CoordinationError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    StoreConnectionError,
)
from .store_protocol import StoreConnection

_LOGGER = logging.getLogger(__name__)

Dialer = Callable[[], StoreConnection]
Validator = Callable[[StoreConnection], None]

_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, StoreConnectionError)
_STAT_NAMES = (
    "dialed",
    "dial_failures",
    "borrowed",
    "reused",
    "released",
    "retired_idle",
    "retired_lifetime",
    "retired_broken",
    "validation_failures",
    "exhausted",
)


def dial_url(
    url: str,
    *,
    connect_timeout_seconds: float,
    read_timeout_seconds: float,
) -> Connection:
    """
    Open one connection to the store addressed by ``url``.

    Parameters
    ----------
    url:
        ``redis://[x:password@]host:port/db`` connection URL.
    connect_timeout_seconds:
        TCP connect timeout.
    read_timeout_seconds:
        Socket timeout for replies (and writes).

    Returns
    -------
    redis.connection.Connection
        Connected redis-py connection decoding replies to ``str``.
    """
    options: dict[str, Any] = parse_url(url)
    # The URL user part is a placeholder; authenticate with the password only.
    options.pop("username", None)
    connection_class = options.pop("connection_class", Connection)
    options.setdefault("socket_connect_timeout", connect_timeout_seconds)
    options.setdefault("socket_timeout", read_timeout_seconds)
    options["decode_responses"] = True
    connection = connection_class(**options)
    connection.connect()
    return connection


def ping_connection(connection: StoreConnection) -> None:
    """
    Liveness probe used for test-on-borrow.

    Raises
    ------
    StoreConnectionError
        If the store does not answer ``PONG``.
    """
    connection.send_command("PING")
    reply = connection.read_response()
    if reply not in ("PONG", b"PONG"):
        raise StoreConnectionError(f"Unexpected PING reply: {reply!r}")


@dataclass(slots=True, eq=False)
class PooledConnection:
    """
    One pooled connection plus the timestamps the pool policy needs.

    Parameters
    ----------
    connection:
        Underlying store connection.
    created_at:
        Pool clock reading when the connection was dialed.
    idle_since:
        Pool clock reading when the connection was last returned.
    borrow_count:
        Number of times the connection has been handed out.
    """

    connection: StoreConnection
    created_at: float
    idle_since: float
    borrow_count: int = 0


class ConnectionPool:
    """
    Thread-safe connection pool.

    Parameters
    ----------
    dial:
        Zero-argument callable returning a connected :class:`StoreConnection`.
    config:
        Sizing and retirement policy.
    validate:
        Test-on-borrow probe raising on failure. ``None`` disables probing.
    clock:
        Monotonic clock used for idle and lifetime accounting.
    """

    def __init__(
        self,
        dial: Dialer,
        *,
        config: PoolConfig | None = None,
        validate: Validator | None = ping_connection,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or PoolConfig()
        self._dial = dial
        self._validate = validate
        self._clock = clock
        self._cond = threading.Condition()
        self._idle: deque[PooledConnection] = deque()
        self._in_use: set[PooledConnection] = set()
        self._active = 0
        self._closed = False
        self._stats = {name: 0 for name in _STAT_NAMES}

    # ------------------------------------------------------------------ #
    # Borrow / return
    # ------------------------------------------------------------------ #

    def acquire(self) -> PooledConnection:
        """
        Borrow one connection.

        Raises
        ------
        PoolClosedError
            If the pool was closed.
        PoolExhaustedError
            If ``max_active`` is reached and waiting is disabled or timed out.
        StoreConnectionError
            If a new connection had to be dialed and dialing failed.
        """
        wait_deadline = None
        if self.config.wait and self.config.wait_timeout_seconds is not None:
            wait_deadline = time.monotonic() + self.config.wait_timeout_seconds

        while True:
            candidate: PooledConnection | None = None
            stale: list[PooledConnection] = []
            try:
                with self._cond:
                    if self._closed:
                        raise PoolClosedError("Connection pool is closed.")
                    self._prune_idle_unlocked(stale)
                    if self._idle:
                        candidate = self._idle.popleft()
                        self._in_use.add(candidate)
                    elif self.config.max_active == 0 or self._active < self.config.max_active:
                        self._active += 1
                    else:
                        self._stats["exhausted"] += 1
                        if not self.config.wait:
                            raise PoolExhaustedError(
                                f"Connection pool exhausted (max_active={self.config.max_active})."
                            )
                        remaining = None
                        if wait_deadline is not None:
                            remaining = wait_deadline - time.monotonic()
                            if remaining <= 0:
                                raise PoolExhaustedError(
                                    "Timed out waiting for a pooled connection "
                                    f"(max_active={self.config.max_active})."
                                )
                        self._cond.wait(remaining)
                        continue
            finally:
                self._disconnect_all(stale)

            if candidate is None:
                return self._dial_new()
            if self._passes_borrow_test(candidate):
                with self._cond:
                    candidate.borrow_count += 1
                    self._stats["borrowed"] += 1
                    self._stats["reused"] += 1
                return candidate

    def release(self, pooled: PooledConnection, *, discard: bool = False) -> None:
        """
        Return a borrowed connection.

        Parameters
        ----------
        pooled:
            Connection previously returned by :meth:`acquire`.
        discard:
            Close the connection instead of keeping it for reuse. Used after
            transport errors, when the connection state is unknown.
        """
        to_close: list[PooledConnection] = []
        with self._cond:
            if pooled not in self._in_use:
                raise PoolError("Connection was not borrowed from this pool.")
            self._in_use.discard(pooled)
            self._stats["released"] += 1
            now = self._clock()
            if discard or self._closed:
                self._active -= 1
                to_close.append(pooled)
                if discard:
                    self._stats["retired_broken"] += 1
            elif self._lifetime_expired(pooled, now):
                self._active -= 1
                to_close.append(pooled)
                self._stats["retired_lifetime"] += 1
            else:
                pooled.idle_since = now
                self._idle.appendleft(pooled)
                while len(self._idle) > self.config.max_idle:
                    to_close.append(self._idle.pop())
                    self._active -= 1
                    self._stats["retired_idle"] += 1
            self._cond.notify()
        self._disconnect_all(to_close)

    @contextmanager
    def connection(self) -> Iterator[PooledConnection]:
        """
        Borrow a connection for the duration of a ``with`` block.

        The connection is always returned. Transport errors raised inside the
        block discard it instead of returning it to the idle set.
        """
        pooled = self.acquire()
        discard = False
        try:
            yield pooled
        except _TRANSPORT_ERRORS:
            discard = True
            raise
        finally:
            self.release(pooled, discard=discard)

    # ------------------------------------------------------------------ #
    # Lifecycle and introspection
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """
        Close idle connections and refuse further borrows.

        Connections still borrowed are closed when they are released.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            stale = list(self._idle)
            self._idle.clear()
            self._active -= len(stale)
            self._cond.notify_all()
        self._disconnect_all(stale)
        _LOGGER.debug("Connection pool closed idle_closed=%d", len(stale))

    @property
    def closed(self) -> bool:
        """Return true once :meth:`close` was called."""
        return self._closed

    def stats(self) -> dict[str, int]:
        """
        Return pool counters and gauges.

        Counters are cumulative since construction; ``active``, ``idle`` and
        ``in_use`` are current values.
        """
        with self._cond:
            snapshot = dict(self._stats)
            snapshot["active"] = self._active
            snapshot["idle"] = len(self._idle)
            snapshot["in_use"] = len(self._in_use)
        return snapshot

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _dial_new(self) -> PooledConnection:
        """Dial a connection into a slot already reserved in ``_active``."""
        try:
            connection = self._dial()
        except RedisError as exc:
            self._give_back_slot()
            raise StoreConnectionError(f"Failed to dial store: {exc}") from exc
        except BaseException:
            self._give_back_slot()
            raise

        now = self._clock()
        pooled = PooledConnection(connection=connection, created_at=now, idle_since=now, borrow_count=1)
        with self._cond:
            self._in_use.add(pooled)
            self._stats["dialed"] += 1
            self._stats["borrowed"] += 1
            active = self._active
        _LOGGER.debug("Dialed store connection active=%d", active)
        return pooled

    def _give_back_slot(self) -> None:
        with self._cond:
            self._active -= 1
            self._stats["dial_failures"] += 1
            self._cond.notify()

    def _passes_borrow_test(self, pooled: PooledConnection) -> bool:
        """Probe a stale idle connection; retire it when the probe fails."""
        if self._validate is None:
            return True
        idle_for = self._clock() - pooled.idle_since
        if idle_for < self.config.test_on_borrow_after_seconds:
            return True
        try:
            self._validate(pooled.connection)
        except (RedisError, CoordinationError, OSError) as exc:
            _LOGGER.debug("Discarding connection after failed borrow test idle_for=%.1fs error=%s", idle_for, exc)
            with self._cond:
                self._in_use.discard(pooled)
                self._active -= 1
                self._stats["validation_failures"] += 1
                self._cond.notify()
            self._disconnect_all([pooled])
            return False
        return True

    def _lifetime_expired(self, pooled: PooledConnection, now: float) -> bool:
        limit = self.config.max_lifetime_seconds
        return limit > 0 and now - pooled.created_at >= limit

    def _prune_idle_unlocked(self, stale: list[PooledConnection]) -> None:
        """Move expired idle connections into ``stale`` (caller holds the lock)."""
        if not self._idle:
            return
        now = self._clock()
        idle_limit = self.config.idle_timeout_seconds
        kept: deque[PooledConnection] = deque()
        for pooled in self._idle:
            if idle_limit > 0 and now - pooled.idle_since >= idle_limit:
                self._stats["retired_idle"] += 1
            elif self._lifetime_expired(pooled, now):
                self._stats["retired_lifetime"] += 1
            else:
                kept.append(pooled)
                continue
            stale.append(pooled)
            self._active -= 1
        self._idle = kept

    @staticmethod
    def _disconnect_all(connections: list[PooledConnection]) -> None:
        for pooled in connections:
            pooled.connection.disconnect()
