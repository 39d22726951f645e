"""
Configuration models for the coordination client.

This module centralizes all tunable runtime settings:

* store address and per-connection timeouts
* connection pool sizing, idle retirement and test-on-borrow policy
* distributed lock key namespace and expiry
* readiness gate exponential backoff

Configuration is read once at pool construction. The classes validate their
values eagerly so misconfiguration fails at startup instead of on first use.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import quote

DEFAULT_ADDRESS = "localhost"
DEFAULT_PORT = 6379
DEFAULT_DATABASE = 1


def _setting(mapping: Mapping[str, object], key: str) -> str:
    """Return a stripped setting value, treating missing keys as blank."""
    value = mapping.get(key)
    if value is None:
        return ""
    return str(value).strip()


@dataclass(slots=True)
class StoreConfig:
    """
    Address and timeouts for connections to the remote store.

    Parameters
    ----------
    address:
        Host name or IP address of the store.
    port:
        TCP port of the store.
    database:
        Logical database index selected on every new connection.
    password:
        Optional password. When set it is embedded in the connection URL.
    connect_timeout_seconds:
        Timeout for establishing the TCP connection.
    read_timeout_seconds:
        Socket timeout for replies. redis-py applies the same timeout to
        writes. Blocking pops must use a timeout strictly below this value.
    """

    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    database: int = DEFAULT_DATABASE
    password: str | None = None
    connect_timeout_seconds: float = 10.0
    read_timeout_seconds: float = 600.0

    def __post_init__(self) -> None:
        """Validate address and timeout values."""
        if not self.address:
            raise ValueError("StoreConfig.address must be a non-empty string.")
        if not (1 <= int(self.port) <= 65535):
            raise ValueError("StoreConfig.port must be in range 1..65535.")
        if int(self.database) < 0:
            raise ValueError("StoreConfig.database must be >= 0.")
        if self.connect_timeout_seconds <= 0:
            raise ValueError("StoreConfig.connect_timeout_seconds must be > 0.")
        if self.read_timeout_seconds <= 0:
            raise ValueError("StoreConfig.read_timeout_seconds must be > 0.")

    @property
    def url(self) -> str:
        """
        Connection URL in the ``redis://[x:password@]host:port/db`` form.

        The user part is a fixed placeholder; only the password is used for
        authentication.
        """
        auth = ""
        if self.password:
            auth = f"x:{quote(self.password, safe='')}@"
        return f"redis://{auth}{self.address}:{int(self.port)}/{int(self.database)}"

    @property
    def redacted_url(self) -> str:
        """Connection URL with the password masked, safe for logging."""
        auth = "x:***@" if self.password else ""
        return f"redis://{auth}{self.address}:{int(self.port)}/{int(self.database)}"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, object], *, prefix: str = "redis.") -> "StoreConfig":
        """
        Build a config from flat dotted settings.

        Recognized keys are ``<prefix>address``, ``<prefix>port``,
        ``<prefix>database`` and ``<prefix>password``. Missing or blank values
        fall back to the defaults (``localhost``, ``6379``, ``1``, no password).
        """
        address = _setting(mapping, f"{prefix}address") or DEFAULT_ADDRESS
        port = _setting(mapping, f"{prefix}port") or str(DEFAULT_PORT)
        database = _setting(mapping, f"{prefix}database") or str(DEFAULT_DATABASE)
        password = _setting(mapping, f"{prefix}password") or None
        return cls(address=address, port=int(port), database=int(database), password=password)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StoreConfig":
        """
        Build a config from ``REDIS_ADDRESS``, ``REDIS_PORT``,
        ``REDIS_DATABASE`` and ``REDIS_PASSWORD`` environment variables.
        """
        source = os.environ if environ is None else environ
        return cls.from_mapping(
            {key.lower().replace("_", "."): value for key, value in source.items()},
            prefix="redis.",
        )


@dataclass(slots=True)
class PoolConfig:
    """
    Connection pool sizing and retirement policy.

    Parameters
    ----------
    max_idle:
        Maximum number of idle connections kept for reuse.
    max_active:
        Maximum number of connections (idle plus borrowed). ``0`` means
        unbounded.
    idle_timeout_seconds:
        Idle connections older than this are closed. ``0`` disables the check.
    max_lifetime_seconds:
        Connections older than this (since dial) are closed instead of being
        reused. ``0`` disables the check.
    wait:
        When true, ``acquire`` blocks until a connection is released once
        ``max_active`` is reached. Otherwise it fails immediately.
    wait_timeout_seconds:
        Upper bound for a blocking ``acquire``. ``None`` waits indefinitely.
    test_on_borrow_after_seconds:
        Idle connections older than this are probed with ``PING`` before
        being handed out. ``0`` probes every reuse.
    """

    max_idle: int = 10
    max_active: int = 0
    idle_timeout_seconds: float = 300.0
    max_lifetime_seconds: float = 0.0
    wait: bool = False
    wait_timeout_seconds: float | None = None
    test_on_borrow_after_seconds: float = 60.0

    def __post_init__(self) -> None:
        """Validate sizing values."""
        if self.max_idle < 0:
            raise ValueError("PoolConfig.max_idle must be >= 0.")
        if self.max_active < 0:
            raise ValueError("PoolConfig.max_active must be >= 0.")
        if self.idle_timeout_seconds < 0:
            raise ValueError("PoolConfig.idle_timeout_seconds must be >= 0.")
        if self.max_lifetime_seconds < 0:
            raise ValueError("PoolConfig.max_lifetime_seconds must be >= 0.")
        if self.wait_timeout_seconds is not None and self.wait_timeout_seconds <= 0:
            raise ValueError("PoolConfig.wait_timeout_seconds must be > 0 when provided.")
        if self.test_on_borrow_after_seconds < 0:
            raise ValueError("PoolConfig.test_on_borrow_after_seconds must be >= 0.")


@dataclass(slots=True)
class LockConfig:
    """
    Distributed lock settings.

    Parameters
    ----------
    namespace:
        Prefix prepended to every lock name to build the store key.
    expiry_ms:
        Lock TTL in milliseconds. Bounds how long a crashed holder can block
        other callers.
    atomic_release:
        When true, release compares and deletes in one server-side script.
        When false, release reads, compares and deletes in separate round
        trips, which races with a re-acquisition between the read and the
        delete.
    """

    namespace: str = "nodes:lock:"
    expiry_ms: int = 30_000
    atomic_release: bool = True

    def __post_init__(self) -> None:
        if self.expiry_ms <= 0:
            raise ValueError("LockConfig.expiry_ms must be > 0.")


@dataclass(slots=True)
class ReadinessConfig:
    """
    Exponential backoff used while waiting for the store at startup.

    The n-th delay is ``initial_interval_seconds * multiplier ** n`` capped at
    ``max_interval_seconds`` and jittered by ``randomization_factor``.
    ``max_elapsed_seconds=None`` retries forever.
    """

    initial_interval_seconds: float = 0.5
    multiplier: float = 1.5
    randomization_factor: float = 0.5
    max_interval_seconds: float = 20.0
    max_elapsed_seconds: float | None = 900.0

    def __post_init__(self) -> None:
        if self.initial_interval_seconds <= 0:
            raise ValueError("ReadinessConfig.initial_interval_seconds must be > 0.")
        if self.multiplier < 1:
            raise ValueError("ReadinessConfig.multiplier must be >= 1.")
        if not (0 <= self.randomization_factor < 1):
            raise ValueError("ReadinessConfig.randomization_factor must be in range [0, 1).")
        if self.max_interval_seconds < self.initial_interval_seconds:
            raise ValueError(
                "ReadinessConfig.max_interval_seconds must be >= initial_interval_seconds."
            )
        if self.max_elapsed_seconds is not None and self.max_elapsed_seconds <= 0:
            raise ValueError("ReadinessConfig.max_elapsed_seconds must be > 0 when provided.")


@dataclass(slots=True)
class CoordinationConfig:
    """
    Top-level configuration consumed by :func:`redis_coordination.connect`.
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)
