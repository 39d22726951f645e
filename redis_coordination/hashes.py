"""
Hash scanning and memory statistics.

``HSCAN`` may return a hash in several pages. :meth:`HashClient.scan_all`
keeps calling it with the cursor from the previous reply until the store
hands back cursor ``0``, so callers always see the full data set.

``MEMORY STATS`` answers with a flat array alternating metric names and
values, where some values are nested arrays. :func:`parse_memory_stats`
walks it in strict name/value pairs and keeps only the allow-listed metrics.
"""

from __future__ import annotations

import logging
from typing import Any

from .client import StoreClient

_LOGGER = logging.getLogger(__name__)

MEMORY_STATS_METRICS: tuple[str, ...] = (
    "peak.allocated",
    "total.allocated",
    "startup.allocated",
    "overhead.total",
    "keys.count",
    "dataset.bytes",
)

_INITIAL_CURSOR = "0"


def _as_text(value: Any) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return None


def parse_memory_stats(
    reply: list[Any] | dict[Any, Any] | None,
    metrics: tuple[str, ...] = MEMORY_STATS_METRICS,
) -> dict[str, int]:
    """
    Extract allow-listed integer metrics from a flat ``MEMORY STATS`` reply.

    Pairs whose name is not a string, is not in ``metrics`` or whose value
    does not decode as an integer are skipped. A trailing unpaired element
    is ignored.
    """
    stats: dict[str, int] = {}
    if not reply:
        return stats
    if isinstance(reply, dict):
        reply = [element for pair in reply.items() for element in pair]
    allowed = set(metrics)
    for index in range(0, len(reply) - 1, 2):
        name = _as_text(reply[index])
        if name is None or name not in allowed:
            continue
        value = reply[index + 1]
        if isinstance(value, (list, tuple, dict)):
            continue
        try:
            stats[name] = int(value)
        except (TypeError, ValueError):
            _LOGGER.debug("Skipping unparsable memory stat name=%s value=%r", name, value)
    return stats


class HashClient:
    """
    Field-level hash access plus cursor-paginated scans.

    Parameters
    ----------
    client:
        Shared command executor.
    """

    def __init__(self, client: StoreClient) -> None:
        self._client = client

    def set(self, key: str, field: str, value: Any) -> int:
        """Set one field; returns ``1`` when the field is new."""
        return self._client.hset(key, field, value)

    def get(self, key: str, field: str) -> str | None:
        """Return one field, or ``None`` when absent."""
        return self._client.hget(key, field)

    def delete(self, key: str, field: str) -> int:
        """Delete one field; returns the number of removed fields."""
        return self._client.hdel(key, field)

    def scan_items(self, key: str, *, count: int | None = None) -> dict[str, str]:
        """
        Return every field and value of hash ``key``.

        A field returned on more than one page appears once, with the value
        from the latest page. A trailing unpaired element in a page is
        ignored.

        Parameters
        ----------
        count:
            Optional ``COUNT`` hint passed to each ``HSCAN`` page.
        """
        items: dict[str, str] = {}
        cursor = _INITIAL_CURSOR
        with self._client.session("hscan") as session:
            while True:
                command: list[Any] = ["HSCAN", key, cursor]
                if count is not None:
                    command.extend(["COUNT", int(count)])
                cursor, flat = session.call(*command)
                cursor = str(cursor)
                for index in range(0, len(flat) - 1, 2):
                    items[flat[index]] = flat[index + 1]
                if cursor == _INITIAL_CURSOR:
                    return items

    def scan_all(self, key: str, *, count: int | None = None) -> list[str]:
        """Return every value of hash ``key``, following the scan cursor to the end."""
        return list(self.scan_items(key, count=count).values())

    def list_keys(self, key: str) -> list[str]:
        """Return all field names of hash ``key`` with a single ``HKEYS``."""
        return list(self._client.execute("HKEYS", key, operation="hkeys") or [])

    def memory_stats(self) -> dict[str, int]:
        """Return allow-listed ``MEMORY STATS`` metrics."""
        reply = self._client.execute("MEMORY", "STATS", operation="memory_stats")
        return parse_memory_stats(reply)
