"""
Work queues backed by store lists.

Entries are pushed at the tail and popped from the head, so a queue is FIFO
across all producer and consumer processes. An empty queue is a normal
outcome reported as ``None``.
"""

from __future__ import annotations

from typing import Any

from .client import StoreClient

DEFAULT_BLOCKING_TIMEOUT_SECONDS = 60


class QueueClient:
    """
    Push/pop operations over named lists.

    Parameters
    ----------
    client:
        Shared command executor.
    read_timeout_seconds:
        Socket read timeout of pooled connections. Blocking pops must finish
        before it, otherwise the read would fail instead of timing out
        cleanly.
    """

    def __init__(self, client: StoreClient, *, read_timeout_seconds: float | None = None) -> None:
        self._client = client
        self._read_timeout_seconds = read_timeout_seconds

    def push(self, name: str, value: Any) -> int:
        """Append ``value`` at the tail and return the new queue length."""
        return self._client.rpush(name, value)

    def push_front(self, name: str, value: Any) -> int:
        """Insert ``value`` at the head, e.g. to re-queue a failed entry."""
        return self._client.lpush(name, value)

    def pop(self, name: str) -> str | None:
        """Remove and return the head entry, or ``None`` when empty."""
        return self._client.lpop(name)

    def blocking_pop(self, name: str, timeout_seconds: int = DEFAULT_BLOCKING_TIMEOUT_SECONDS) -> str | None:
        """
        Remove and return the head entry, waiting for one to arrive.

        Parameters
        ----------
        name:
            Queue name.
        timeout_seconds:
            Maximum wait in whole seconds. Non-positive values use the
            default of 60 seconds.

        Returns
        -------
        str | None
            The entry, or ``None`` when the wait timed out.

        Raises
        ------
        ValueError
            If the wait would outlast the connection read timeout.
        """
        timeout = int(timeout_seconds)
        if timeout <= 0:
            timeout = DEFAULT_BLOCKING_TIMEOUT_SECONDS
        if self._read_timeout_seconds is not None and timeout >= self._read_timeout_seconds:
            raise ValueError(
                f"Blocking pop timeout {timeout}s must be below the connection read "
                f"timeout {self._read_timeout_seconds}s."
            )
        return self._client.blpop(name, timeout)

    def length(self, name: str) -> int:
        """Return the number of queued entries."""
        return self._client.llen(name)

    def clear(self, name: str) -> bool:
        """Drop every entry; returns true when the queue existed."""
        return self._client.delete(name) > 0
