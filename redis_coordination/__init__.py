"""
redis_coordination
==================

Client-side coordination primitives on top of a shared Redis server.

The package turns one Redis database into shared infrastructure for a
multi-process application:

* :class:`redis_coordination.pool.ConnectionPool` - bounded, thread-safe pool
  with lazy dialing, idle/lifetime retirement and test-on-borrow
* :class:`redis_coordination.client.StoreClient` - borrow/execute/release
  command executor used by every other component
* :func:`redis_coordination.readiness.wait_until_ready` - startup gate with
  exponential backoff
* :class:`redis_coordination.locks.LockManager` - advisory TTL-bound mutex
  built on ``SET NX PX``
* :class:`redis_coordination.queues.QueueClient` - FIFO work queues with
  blocking pop
* :class:`redis_coordination.hashes.HashClient` - cursor-paginated hash
  scans and ``MEMORY STATS`` parsing

Typical usage::

    from redis_coordination import CoordinationConfig, StoreConfig, connect

    coordination = connect(CoordinationConfig(store=StoreConfig(address="10.0.0.5")))

    token = coordination.locks.acquire("job-5")
    try:
        coordination.queues.push("jobs", "job-5")
    finally:
        coordination.locks.unlock("job-5", token)

    coordination.close()
"""

from .client import CommandSession, StoreClient
from .config import (
    CoordinationConfig,
    LockConfig,
    PoolConfig,
    ReadinessConfig,
    StoreConfig,
)
from .exceptions import (
    AlreadyLockedError,
    CoordinationError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    StoreCommandError,
    StoreConnectionError,
    StoreNotReadyError,
)
from .factory import Coordination, connect, create_client, create_pool
from .hashes import MEMORY_STATS_METRICS, HashClient, parse_memory_stats
from .locks import LockManager, ReleaseOutcome, lock_key
from .pool import ConnectionPool, PooledConnection, dial_url, ping_connection
from .queues import QueueClient
from .readiness import ExponentialBackoff, wait_until_ready
from .store_protocol import StoreConnection

__all__ = [
    "AlreadyLockedError",
    "CommandSession",
    "ConnectionPool",
    "Coordination",
    "CoordinationConfig",
    "CoordinationError",
    "ExponentialBackoff",
    "HashClient",
    "LockConfig",
    "LockManager",
    "MEMORY_STATS_METRICS",
    "PoolClosedError",
    "PoolConfig",
    "PoolError",
    "PoolExhaustedError",
    "PooledConnection",
    "QueueClient",
    "ReadinessConfig",
    "ReleaseOutcome",
    "StoreClient",
    "StoreCommandError",
    "StoreConfig",
    "StoreConnection",
    "StoreConnectionError",
    "StoreNotReadyError",
    "connect",
    "create_client",
    "create_pool",
    "dial_url",
    "lock_key",
    "parse_memory_stats",
    "ping_connection",
    "wait_until_ready",
]
