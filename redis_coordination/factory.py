"""
Construction helpers wiring one pool into every coordination component.

There is no process-wide client. Applications call :func:`connect` once at
startup and pass the returned :class:`Coordination` (or its parts) to the
code that needs store access:

    coordination = connect(CoordinationConfig(store=StoreConfig.from_env()))
    with coordination.locks.hold("job-5"):
        coordination.queues.push("jobs", "job-5")
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from .client import StoreClient
from .config import CoordinationConfig, PoolConfig, StoreConfig
from .hashes import HashClient
from .locks import LockManager
from .pool import ConnectionPool, Dialer, dial_url
from .queues import QueueClient
from .readiness import wait_until_ready

_LOGGER = logging.getLogger(__name__)


def create_pool(
    store: StoreConfig | None = None,
    pool: PoolConfig | None = None,
    *,
    dial: Dialer | None = None,
) -> ConnectionPool:
    """
    Build a connection pool for ``store``.

    Parameters
    ----------
    store:
        Store address and timeouts.
    pool:
        Pool sizing and retirement policy.
    dial:
        Optional dial function overriding the URL-based default.
    """
    store = store or StoreConfig()
    if dial is None:
        dial = functools.partial(
            dial_url,
            store.url,
            connect_timeout_seconds=store.connect_timeout_seconds,
            read_timeout_seconds=store.read_timeout_seconds,
        )
    _LOGGER.debug("Creating connection pool url=%s", store.redacted_url)
    return ConnectionPool(dial, config=pool)


@dataclass(slots=True)
class Coordination:
    """
    Components sharing one :class:`StoreClient`.

    Attributes
    ----------
    client:
        Command executor owning the pool.
    locks:
        Distributed lock manager.
    queues:
        Work queue client.
    hashes:
        Hash scan and memory statistics client.
    """

    client: StoreClient
    locks: LockManager
    queues: QueueClient
    hashes: HashClient

    def close(self) -> None:
        """Close the shared pool."""
        self.client.close()

    def __enter__(self) -> "Coordination":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_client(config: CoordinationConfig | None = None, *, dial: Dialer | None = None) -> Coordination:
    """
    Wire pool, client and components without contacting the store.
    """
    config = config or CoordinationConfig()
    client = StoreClient(create_pool(config.store, config.pool, dial=dial))
    return Coordination(
        client=client,
        locks=LockManager(client, config.lock),
        queues=QueueClient(client, read_timeout_seconds=config.store.read_timeout_seconds),
        hashes=HashClient(client),
    )


def connect(
    config: CoordinationConfig | None = None,
    *,
    dial: Dialer | None = None,
    wait_ready: bool = True,
) -> Coordination:
    """
    Build the components and block until the store answers ``PING``.

    Parameters
    ----------
    config:
        Full coordination configuration.
    dial:
        Optional dial function overriding the URL-based default.
    wait_ready:
        Skip the readiness gate when false.

    Raises
    ------
    StoreNotReadyError
        When the readiness backoff gives up.
    """
    config = config or CoordinationConfig()
    coordination = create_client(config, dial=dial)
    if wait_ready:
        wait_until_ready(coordination.client, config.readiness)
    return coordination
