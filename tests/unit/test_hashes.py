"""
Hash scan and memory statistics tests.
"""

from __future__ import annotations

import unittest

from fake_store import FakeStore

from redis_coordination.client import StoreClient
from redis_coordination.hashes import HashClient, parse_memory_stats
from redis_coordination.pool import ConnectionPool


class DanglingFieldStore(FakeStore):
    """Appends a field name without a value to every ``HSCAN`` page."""

    def _cmd_hscan(self, key: str, cursor: object, *options: object) -> list[object]:
        next_cursor, flat = super()._cmd_hscan(key, cursor, *options)
        return [next_cursor, flat + ["dangling"]]


class HashClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = FakeStore()
        self.client = StoreClient(ConnectionPool(self.store.dial))
        self.addCleanup(self.client.close)
        self.hashes = HashClient(self.client)

    def test_field_access(self) -> None:
        self.assertEqual(self.hashes.set("nodes", "n1", "online"), 1)
        self.assertEqual(self.hashes.get("nodes", "n1"), "online")
        self.assertIsNone(self.hashes.get("nodes", "n2"))
        self.assertEqual(self.hashes.delete("nodes", "n1"), 1)

    def test_scan_all_follows_cursor_across_pages(self) -> None:
        for index in range(25):
            self.hashes.set("nodes", f"n{index:02d}", f"v{index:02d}")
        self.store.scan_page_size = 7

        values = self.hashes.scan_all("nodes")

        self.assertEqual(sorted(values), [f"v{index:02d}" for index in range(25)])
        self.assertEqual(self.store.command_names().count("HSCAN"), 4)
        self.assertEqual(self.store.dialed, 1)

    def test_scan_all_returns_fields_repeated_across_pages_once(self) -> None:
        for index in range(25):
            self.hashes.set("nodes", f"n{index:02d}", f"v{index:02d}")
        self.store.scan_page_size = 7
        self.store.scan_repeats_last_field = True

        values = self.hashes.scan_all("nodes")

        self.assertEqual(len(values), 25)
        self.assertEqual(sorted(values), [f"v{index:02d}" for index in range(25)])

    def test_scan_ignores_unpaired_trailing_element(self) -> None:
        store = DanglingFieldStore()
        client = StoreClient(ConnectionPool(store.dial))
        self.addCleanup(client.close)
        hashes = HashClient(client)
        hashes.set("nodes", "n1", "online")

        self.assertEqual(hashes.scan_items("nodes"), {"n1": "online"})

    def test_scan_items_with_count_hint(self) -> None:
        for index in range(5):
            self.hashes.set("nodes", f"n{index}", str(index))

        items = self.hashes.scan_items("nodes", count=2)

        self.assertEqual(items, {f"n{index}": str(index) for index in range(5)})
        self.assertEqual(self.store.commands[-1][-2:], ("COUNT", 2))

    def test_scan_of_missing_hash_is_empty(self) -> None:
        self.assertEqual(self.hashes.scan_all("missing"), [])

    def test_list_keys(self) -> None:
        self.hashes.set("nodes", "a", "1")
        self.hashes.set("nodes", "b", "2")

        self.assertEqual(sorted(self.hashes.list_keys("nodes")), ["a", "b"])
        self.assertEqual(self.hashes.list_keys("missing"), [])

    def test_memory_stats_keeps_allow_listed_metrics(self) -> None:
        self.store.memory_stats_reply = [
            "peak.allocated", 1048576,
            "total.allocated", 917504,
            "startup.allocated", 790000,
            "replication.backlog", 0,
            "db.0", ["overhead.hashtable.main", 72, "overhead.hashtable.expires", 0],
            "overhead.total", 800000,
            "keys.count", 12,
            "dataset.bytes", 117504,
            "dataset.percentage", "90.5",
        ]

        self.assertEqual(
            self.hashes.memory_stats(),
            {
                "peak.allocated": 1048576,
                "total.allocated": 917504,
                "startup.allocated": 790000,
                "overhead.total": 800000,
                "keys.count": 12,
                "dataset.bytes": 117504,
            },
        )


class ParseMemoryStatsTests(unittest.TestCase):
    def test_skips_unparsable_values(self) -> None:
        reply = ["keys.count", "not-a-number", "dataset.bytes", b"42"]

        self.assertEqual(parse_memory_stats(reply), {"dataset.bytes": 42})

    def test_accepts_bytes_names_and_ignores_trailing_element(self) -> None:
        reply = [b"keys.count", 3, b"peak.allocated"]

        self.assertEqual(parse_memory_stats(reply), {"keys.count": 3})

    def test_nested_values_are_not_metrics(self) -> None:
        reply = ["keys.count", [1, 2], "overhead.total", 9]

        self.assertEqual(parse_memory_stats(reply), {"overhead.total": 9})

    def test_empty_reply(self) -> None:
        self.assertEqual(parse_memory_stats(None), {})
        self.assertEqual(parse_memory_stats([]), {})

    def test_mapping_reply(self) -> None:
        self.assertEqual(parse_memory_stats({"keys.count": 4, "other": 1}), {"keys.count": 4})


if __name__ == "__main__":
    unittest.main()
