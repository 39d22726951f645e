"""
Wiring tests: one pool shared by every component.
"""

from __future__ import annotations

import unittest

from fake_store import FakeStore

from redis_coordination import CoordinationConfig, ReadinessConfig, connect, create_client
from redis_coordination.exceptions import PoolClosedError, StoreNotReadyError


class FactoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = FakeStore()

    def test_components_share_one_client(self) -> None:
        coordination = create_client(dial=self.store.dial)
        self.addCleanup(coordination.close)

        with coordination.locks.hold("job-5"):
            coordination.queues.push("jobs", "job-5")
        coordination.hashes.set("status", "job-5", "queued")

        self.assertEqual(self.store.dialed, 1)
        self.assertEqual(coordination.client.pool.stats()["borrowed"], 4)

    def test_connect_waits_for_ready_store(self) -> None:
        with connect(dial=self.store.dial) as coordination:
            self.assertEqual(self.store.command_names(), ["PING"])
            self.assertEqual(coordination.queues.pop("jobs"), None)

        with self.assertRaises(PoolClosedError):
            coordination.client.ping()

    def test_connect_gives_up_when_readiness_budget_is_spent(self) -> None:
        self.store.down = True
        config = CoordinationConfig(
            readiness=ReadinessConfig(
                initial_interval_seconds=0.01,
                max_interval_seconds=0.02,
                max_elapsed_seconds=0.05,
            )
        )

        with self.assertLogs("redis_coordination.readiness", level="WARNING"):
            with self.assertRaises(StoreNotReadyError):
                connect(config, dial=self.store.dial)


if __name__ == "__main__":
    unittest.main()
