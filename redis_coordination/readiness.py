"""
Startup readiness gate.

:func:`wait_until_ready` blocks until the store answers a liveness probe,
sleeping an exponentially growing, jittered delay between attempts. Dependent
subsystems should only start once it returns.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from .client import StoreClient
from .config import ReadinessConfig
from .exceptions import CoordinationError, StoreNotReadyError

_LOGGER = logging.getLogger(__name__)


class ExponentialBackoff:
    """
    Jittered exponential backoff schedule.

    Parameters
    ----------
    config:
        Interval growth, cap and give-up settings.
    clock:
        Monotonic clock used for the elapsed-time limit.
    rng:
        Random source used for jitter.
    """

    def __init__(
        self,
        config: ReadinessConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or ReadinessConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._interval = self.config.initial_interval_seconds
        self._started_at = clock()

    def reset(self) -> None:
        """Restart the schedule from the initial interval."""
        self._interval = self.config.initial_interval_seconds
        self._started_at = self._clock()

    def next_delay(self) -> float | None:
        """
        Return the next delay in seconds, or ``None`` to give up.

        The base interval is multiplied after every call and capped at
        ``max_interval_seconds``; the returned delay is drawn uniformly from
        ``base * (1 +/- randomization_factor)``.
        """
        limit = self.config.max_elapsed_seconds
        if limit is not None and self._clock() - self._started_at >= limit:
            return None
        base = self._interval
        spread = base * self.config.randomization_factor
        self._interval = min(
            self.config.max_interval_seconds,
            self._interval * self.config.multiplier,
        )
        if spread == 0:
            return base
        return self._rng.uniform(base - spread, base + spread)


def wait_until_ready(
    client: StoreClient,
    config: ReadinessConfig | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    backoff: ExponentialBackoff | None = None,
) -> int:
    """
    Block until ``client.ping()`` succeeds.

    Parameters
    ----------
    client:
        Client whose pool is being gated.
    config:
        Backoff settings; ignored when ``backoff`` is supplied.
    sleep:
        Sleep function, injectable for tests.
    backoff:
        Preconfigured backoff schedule.

    Returns
    -------
    int
        Number of probes issued, including the successful one.

    Raises
    ------
    StoreNotReadyError
        When the backoff schedule gives up (``max_elapsed_seconds``).
    """
    schedule = backoff or ExponentialBackoff(config)
    attempts = 0
    while True:
        attempts += 1
        try:
            client.ping()
        except CoordinationError as exc:
            delay = schedule.next_delay()
            if delay is None:
                raise StoreNotReadyError(
                    f"Store still unreachable after {attempts} attempts: {exc}"
                ) from exc
            _LOGGER.warning(
                "Waiting for store connection attempt=%d retry_in=%.2fs error=%s",
                attempts,
                delay,
                exc,
            )
            sleep(delay)
            continue
        if attempts > 1:
            _LOGGER.info("Store reachable after %d attempts", attempts)
        return attempts
