import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from networth.cache_layer import PriceCache, resolve_prices


class _Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class PriceCacheTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.clock = _Clock()
        self.cache = PriceCache(str(Path(self.tmp.name) / "cache.sqlite3"), ttl_seconds=300, clock=self.clock)

    def tearDown(self):
        self.tmp.cleanup()

    def test_hit_within_ttl(self):
        self.cache.set("price|ETH", 3000.0, "s1")
        self.clock.advance(299)
        self.assertEqual(self.cache.get("price|ETH", "s1"), 3000.0)

    def test_expired_entry_is_dropped(self):
        self.cache.set("price|ETH", 3000.0, "s1")
        self.clock.advance(301)
        self.assertIsNone(self.cache.get("price|ETH", "s1"))
        self.clock.now -= timedelta(seconds=301)
        self.assertIsNone(self.cache.get("price|ETH", "s1"))

    def test_other_snapshot_is_a_miss(self):
        self.cache.set("price|ETH", 3000.0, "s1")
        self.assertIsNone(self.cache.get("price|ETH", "s2"))
        self.assertIsNone(self.cache.get("price|ETH", "s1"))

    def test_fetch_reports_hits(self):
        calls = []

        def fetch():
            calls.append(1)
            return 42.0

        self.assertEqual(self.cache.fetch("price|SOL", "s1", fetch), (42.0, False))
        self.assertEqual(self.cache.fetch("price|SOL", "s1", fetch), (42.0, True))
        self.assertEqual(len(calls), 1)

    def test_none_is_not_stored(self):
        self.assertEqual(self.cache.fetch("price|X", "s1", lambda: None), (None, False))
        self.assertIsNone(self.cache.get("price|X", "s1"))

    def test_cleanup(self):
        self.cache.set("price|A", 1.0, "s1")
        self.clock.advance(200)
        self.cache.set("price|B", 2.0, "s1")
        self.clock.advance(200)
        self.assertEqual(self.cache.cleanup(), 1)
        self.assertEqual(self.cache.get("price|B", "s1"), 2.0)
        self.cache.clear()
        self.assertIsNone(self.cache.get("price|B", "s1"))


class ResolvePricesTests(unittest.TestCase):
    def test_failures_become_none(self):
        def fetch(symbol):
            if symbol == "BAD":
                raise RuntimeError("rate limited")
            if symbol == "WEIRD":
                return "n/a"
            return {"ETH": 3000, "USDC": 1}.get(symbol)

        prices = resolve_prices(["ETH", "USDC", "BAD", "WEIRD", "NOPE", "ETH"], fetch)
        self.assertEqual(prices, {"ETH": 3000.0, "USDC": 1.0, "BAD": None, "WEIRD": None, "NOPE": None})

    def test_uses_cache(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = PriceCache(str(Path(tmp) / "cache.sqlite3"))
            cache.set("price|ETH", 2500.0, "s1")
            prices = resolve_prices(["ETH"], lambda symbol: 9999.0, cache, "s1")
            self.assertEqual(prices, {"ETH": 2500.0})


if __name__ == "__main__":
    unittest.main()
