"""
In-process stand-in for a store server, used by the unit tests.

:class:`FakeStore` keeps strings, lists and hashes in memory and answers the
subset of commands the coordination client issues. :meth:`FakeStore.dial`
returns :class:`FakeConnection` objects that satisfy the pool's connection
protocol, so tests exercise the real pool and command executor end to end.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError, ResponseError

from redis_coordination.locks import RELEASE_LUA, RELEASE_SHA

WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


def _encode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class FakeStore:
    """
    Shared in-memory keyspace with a manual clock for key expiry.

    Attributes
    ----------
    down:
        When true, dialing and every command fail with a connection error.
    scan_page_size:
        Default number of fields returned per ``HSCAN`` page.
    scan_repeats_last_field:
        When true, every ``HSCAN`` page after the first starts with the last
        field of the previous page, as a server does while rehashing.
    memory_stats_reply:
        Flat reply returned by ``MEMORY STATS``.
    """

    def __init__(self) -> None:
        self.now = 1_000.0
        self.down = False
        self.scan_page_size = 10
        self.scan_repeats_last_field = False
        self.memory_stats_reply: list[Any] = []
        self.commands: list[tuple[Any, ...]] = []
        self.dialed = 0
        self.connections: list[FakeConnection] = []
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._scripts: dict[str, str] = {}
        self._cond = threading.Condition()

    # ------------------------------------------------------------------ #
    # Test controls
    # ------------------------------------------------------------------ #

    def advance(self, seconds: float) -> None:
        """Move the expiry clock forward."""
        with self._cond:
            self.now += seconds

    def dial(self) -> "FakeConnection":
        """Dial function handed to :class:`ConnectionPool`."""
        connection = FakeConnection(self)
        connection.connect()
        self.dialed += 1
        self.connections.append(connection)
        return connection

    def command_names(self) -> list[str]:
        return [str(command[0]).upper() for command in self.commands]

    def raw(self, key: str) -> Any:
        with self._cond:
            self._expire(key)
            return self._data.get(key)

    # ------------------------------------------------------------------ #
    # Command dispatch
    # ------------------------------------------------------------------ #

    def execute(self, args: tuple[Any, ...]) -> Any:
        name = str(args[0]).upper()
        params = list(args[1:])
        self.commands.append(args)
        if name == "BLPOP":
            return self._blpop(_encode(params[0]), float(params[1]))
        with self._cond:
            handler = getattr(self, f"_cmd_{name.lower()}", None)
            if handler is None:
                raise ResponseError(f"ERR unknown command '{name}'")
            result = handler(*params)
            self._cond.notify_all()
            return result

    def _expire(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and self.now >= deadline:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def _typed(self, key: str, kind: type) -> Any:
        self._expire(key)
        value = self._data.get(key)
        if value is not None and not isinstance(value, kind):
            raise ResponseError(WRONGTYPE)
        return value

    def _cmd_ping(self) -> str:
        return "PONG"

    def _cmd_get(self, key: str) -> str | None:
        return self._typed(key, str)

    def _cmd_set(self, key: str, value: Any, *options: Any) -> str | None:
        self._expire(key)
        flags = [_encode(option).upper() for option in options]
        if "NX" in flags and key in self._data:
            return None
        self._data[key] = _encode(value)
        self._expires.pop(key, None)
        if "PX" in flags:
            milliseconds = int(options[flags.index("PX") + 1])
            self._expires[key] = self.now + milliseconds / 1000.0
        return "OK"

    def _cmd_del(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._expire(key)
            if self._data.pop(key, None) is not None:
                removed += 1
            self._expires.pop(key, None)
        return removed

    def _cmd_llen(self, key: str) -> int:
        values = self._typed(key, deque)
        return len(values) if values else 0

    def _push(self, key: str, value: Any, *, left: bool) -> int:
        values = self._typed(key, deque)
        if values is None:
            values = self._data[key] = deque()
        if left:
            values.appendleft(_encode(value))
        else:
            values.append(_encode(value))
        return len(values)

    def _cmd_rpush(self, key: str, value: Any) -> int:
        return self._push(key, value, left=False)

    def _cmd_lpush(self, key: str, value: Any) -> int:
        return self._push(key, value, left=True)

    def _cmd_lpop(self, key: str) -> str | None:
        values = self._typed(key, deque)
        if not values:
            return None
        value = values.popleft()
        if not values:
            del self._data[key]
        return value

    def _blpop(self, key: str, timeout: float) -> list[str] | None:
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                value = self._cmd_lpop(key)
                if value is not None:
                    return [key, value]
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def _cmd_hset(self, key: str, field: str, value: Any) -> int:
        fields = self._typed(key, dict)
        if fields is None:
            fields = self._data[key] = {}
        is_new = field not in fields
        fields[field] = _encode(value)
        return int(is_new)

    def _cmd_hget(self, key: str, field: str) -> str | None:
        fields = self._typed(key, dict) or {}
        return fields.get(field)

    def _cmd_hdel(self, key: str, field: str) -> int:
        fields = self._typed(key, dict)
        if not fields or field not in fields:
            return 0
        del fields[field]
        if not fields:
            del self._data[key]
        return 1

    def _cmd_hkeys(self, key: str) -> list[str]:
        return list(self._typed(key, dict) or {})

    def _cmd_hscan(self, key: str, cursor: Any, *options: Any) -> list[Any]:
        fields = self._typed(key, dict) or {}
        names = sorted(fields)
        page_size = self.scan_page_size
        if options and _encode(options[0]).upper() == "COUNT":
            page_size = int(options[1])
        start = int(cursor)
        page = names[start:start + page_size]
        if self.scan_repeats_last_field and start > 0:
            page.insert(0, names[start - 1])
        next_cursor = start + page_size
        flat: list[str] = []
        for name in page:
            flat.extend([name, fields[name]])
        return [str(next_cursor) if next_cursor < len(names) else "0", flat]

    def _cmd_evalsha(self, sha: str, numkeys: Any, *args: Any) -> int:
        script = self._scripts.get(sha)
        if script is None:
            raise NoScriptError("No matching script. Please use EVAL.")
        return self._cmd_eval(script, numkeys, *args)

    def _cmd_eval(self, script: str, numkeys: Any, *args: Any) -> int:
        if script != RELEASE_LUA or int(numkeys) != 1:
            raise ResponseError("ERR unsupported script")
        self._scripts[RELEASE_SHA] = script
        key, token = args[0], _encode(args[1])
        current = self._typed(key, str)
        if current is None:
            return -1
        if current != token:
            return 0
        return self._cmd_del(key)

    def _cmd_memory(self, subcommand: str) -> list[Any]:
        if _encode(subcommand).upper() != "STATS":
            raise ResponseError("ERR unknown subcommand")
        return list(self.memory_stats_reply)


class FakeConnection:
    """Connection double implementing the pool's connection protocol."""

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self.connected = False
        self.broken = False
        self._pending: tuple[Any, ...] | None = None

    def connect(self) -> None:
        if self.store.down:
            raise RedisConnectionError("Error 111 connecting to fake store. Connection refused.")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def send_command(self, *args: Any) -> None:
        if self.store.down or self.broken or not self.connected:
            raise RedisConnectionError("Connection closed by server.")
        self._pending = args

    def read_response(self) -> Any:
        args, self._pending = self._pending, None
        if args is None:
            raise RedisConnectionError("No command pending.")
        return self.store.execute(args)
