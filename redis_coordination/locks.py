"""
Advisory, TTL-bound distributed lock.

A lock named ``name`` is the store key ``<namespace><name>`` (``:`` in the
name replaced by ``-``). Acquiring writes a fresh integer token with
``SET key token NX PX expiry``; the write only succeeds while the key is
absent, so at most one holder owns the lock until it is released or the TTL
expires. The TTL is the only safety net against a crashed holder.

Releasing deletes the key only when it still holds the caller's token, so a
holder whose lock expired and was re-acquired by someone else cannot release
the new owner's lock. By default the compare and the delete run in a single
Lua script, invoked by its SHA1 digest with a fallback to the full body
when the server has not cached it. With ``LockConfig.atomic_release=False``
they run as separate ``GET``/``DEL`` round trips, which leaves a window
where a re-acquisition between the two is deleted; the TTL bounds how stale
that window can be.

Release never raises. :meth:`LockManager.release` reports a
:class:`ReleaseOutcome`, :meth:`LockManager.unlock` discards it, and
:meth:`LockManager.hold` guarantees an unlock when its block exits.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum

from redis.exceptions import NoScriptError

from .client import StoreClient
from .config import LockConfig
from .exceptions import AlreadyLockedError, CoordinationError, StoreCommandError

_LOGGER = logging.getLogger(__name__)

RELEASE_LUA = """
local current = redis.call('GET', KEYS[1])
if not current then
  return -1
end
if current ~= ARGV[1] then
  return 0
end
return redis.call('DEL', KEYS[1])
"""
RELEASE_SHA = hashlib.sha1(RELEASE_LUA.encode("utf-8")).hexdigest()


class ReleaseOutcome(str, Enum):
    """
    Result of one release attempt.

    RELEASED
        The key held the caller's token and was deleted.
    NOT_HELD
        The key was absent (never acquired, already released or expired).
    TOKEN_MISMATCH
        The key holds another holder's token; nothing was deleted.
    NOT_DELETED
        The token matched but the delete removed nothing (the key expired
        between the read and the delete).
    FAILED
        The store could not be reached or answered with an error.
    """

    RELEASED = "released"
    NOT_HELD = "not_held"
    TOKEN_MISMATCH = "token_mismatch"
    NOT_DELETED = "not_deleted"
    FAILED = "failed"


def lock_key(name: str, namespace: str = "nodes:lock:") -> str:
    """Return the store key guarding lock ``name``."""
    return namespace + name.replace(":", "-")


def _time_token() -> int:
    return time.time_ns()


class LockManager:
    """
    Stateless lock client; all lock state lives in the store.

    Parameters
    ----------
    client:
        Shared command executor.
    config:
        Key namespace, expiry and release mode.
    token_factory:
        Produces acquisition tokens. Defaults to the wall clock in
        nanoseconds.
    """

    def __init__(
        self,
        client: StoreClient,
        config: LockConfig | None = None,
        *,
        token_factory: Callable[[], int] = _time_token,
    ) -> None:
        self._client = client
        self.config = config or LockConfig()
        self._token_factory = token_factory

    def key_for(self, name: str) -> str:
        """Return the namespaced store key for ``name``."""
        return lock_key(name, self.config.namespace)

    def acquire(self, name: str) -> int:
        """
        Take lock ``name`` and return the acquisition token.

        Raises
        ------
        AlreadyLockedError
            If another holder owns the lock. The call never waits; retrying is
            up to the caller.
        StoreConnectionError
            On transport failure.
        """
        key = self.key_for(name)
        token = int(self._token_factory())
        acquired = self._client.set(key, token, nx=True, px=self.config.expiry_ms)
        if not acquired:
            raise AlreadyLockedError(name, key)
        _LOGGER.debug("Lock acquired name=%s key=%s token=%d", name, key, token)
        return token

    def release(self, name: str, token: int) -> ReleaseOutcome:
        """
        Release lock ``name`` if it still holds ``token``.

        Never raises for store failures; anomalies are logged and reported
        through the returned outcome.
        """
        key = self.key_for(name)
        try:
            if self.config.atomic_release:
                outcome = self._release_atomic(key, token)
            else:
                outcome = self._release_two_step(key, token)
        except CoordinationError as exc:
            _LOGGER.error("Unlock failed name=%s key=%s error=%s", name, key, exc)
            return ReleaseOutcome.FAILED

        if outcome is ReleaseOutcome.RELEASED:
            _LOGGER.debug("Lock released name=%s key=%s token=%d", name, key, token)
        elif outcome is ReleaseOutcome.NOT_HELD:
            _LOGGER.warning("Unlock skipped, lock not held name=%s key=%s", name, key)
        elif outcome is ReleaseOutcome.TOKEN_MISMATCH:
            _LOGGER.warning("Unlock skipped, token mismatch name=%s key=%s token=%d", name, key, token)
        else:
            _LOGGER.warning("Unlock deleted nothing name=%s key=%s", name, key)
        return outcome

    def unlock(self, name: str, token: int) -> None:
        """Best-effort release for cleanup paths; the outcome is only logged."""
        self.release(name, token)

    @contextmanager
    def hold(self, name: str) -> Iterator[int]:
        """
        Hold lock ``name`` for the duration of a ``with`` block.

        Yields the acquisition token. Raises :class:`AlreadyLockedError` on
        contention; the lock is always unlocked when the block exits.
        """
        token = self.acquire(name)
        try:
            yield token
        finally:
            self.unlock(name, token)

    def _release_atomic(self, key: str, token: int) -> ReleaseOutcome:
        # The script is sent by hash; a server that has not cached it yet
        # answers NOSCRIPT and gets the full body once, which also caches it.
        with self._client.session("unlock") as session:
            try:
                reply = session.call("EVALSHA", RELEASE_SHA, 1, key, str(token))
            except StoreCommandError as exc:
                if not isinstance(exc.__cause__, NoScriptError):
                    raise
                reply = session.call("EVAL", RELEASE_LUA, 1, key, str(token))
        reply = int(reply)
        if reply < 0:
            return ReleaseOutcome.NOT_HELD
        if reply == 0:
            return ReleaseOutcome.TOKEN_MISMATCH
        return ReleaseOutcome.RELEASED

    def _release_two_step(self, key: str, token: int) -> ReleaseOutcome:
        with self._client.session("unlock") as session:
            stored = session.call("GET", key)
            if stored is None:
                return ReleaseOutcome.NOT_HELD
            try:
                stored_token = int(stored)
            except ValueError:
                return ReleaseOutcome.TOKEN_MISMATCH
            if stored_token != token:
                return ReleaseOutcome.TOKEN_MISMATCH
            deleted = int(session.call("DEL", key))
        if deleted == 0:
            return ReleaseOutcome.NOT_DELETED
        return ReleaseOutcome.RELEASED
