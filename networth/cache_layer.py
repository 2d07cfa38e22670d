import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import structlog

log = structlog.get_logger()

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)

class PriceCache:
    """
    TTL cache for price lookups, scoped to the snapshot being built.
    - Entries live in SQLite (price_cache)
    - An entry stored under another snapshot id counts as a miss and is dropped
    """
    def __init__(self, db_path: str = "./data/cache.sqlite3", ttl_seconds: int = 300, clock=_utc_now):
        self.db_path = db_path
        self.ttl_seconds = int(ttl_seconds)
        self._clock = clock
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        conn = self._conn()
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("""
        CREATE TABLE IF NOT EXISTS price_cache(
            cache_key TEXT PRIMARY KEY,
            snapshot_id TEXT,
            payload_json TEXT NOT NULL,
            stored_at_utc TEXT NOT NULL
        )
        """)
        conn.close()

    def _conn(self):
        return sqlite3.connect(self.db_path, isolation_level=None)

    def _delete(self, cache_key: str):
        conn = self._conn()
        conn.execute("DELETE FROM price_cache WHERE cache_key=?", (cache_key,))
        conn.close()

    def get(self, cache_key: str, snapshot_id: str | None = None):
        conn = self._conn()
        row = conn.execute(
            "SELECT snapshot_id, payload_json, stored_at_utc FROM price_cache WHERE cache_key=?", (cache_key,)
        ).fetchone()
        conn.close()
        if not row:
            return None
        stored_snapshot, payload_json, stored_at = row
        age = (self._clock() - datetime.fromisoformat(stored_at)).total_seconds()
        if age > self.ttl_seconds or stored_snapshot != snapshot_id:
            self._delete(cache_key)
            return None
        return json.loads(payload_json)

    def set(self, cache_key: str, payload, snapshot_id: str | None = None):
        conn = self._conn()
        conn.execute("""
        INSERT INTO price_cache(cache_key, snapshot_id, payload_json, stored_at_utc)
        VALUES(?,?,?,?)
        ON CONFLICT(cache_key) DO UPDATE SET snapshot_id=excluded.snapshot_id,
            payload_json=excluded.payload_json, stored_at_utc=excluded.stored_at_utc
        """, (cache_key, snapshot_id, json.dumps(payload), self._clock().isoformat()))
        conn.close()

    def fetch(self, cache_key: str, snapshot_id: str | None, fetch_fn):
        """Return (payload, hit). Fresh payloads that come back as None are not stored."""
        data = self.get(cache_key, snapshot_id)
        if data is not None:
            return data, True
        fresh = fetch_fn()
        if fresh is None:
            return None, False
        self.set(cache_key, fresh, snapshot_id)
        return fresh, False

    def cleanup(self) -> int:
        cutoff = self._clock().timestamp() - self.ttl_seconds
        conn = self._conn()
        expired = [
            key for key, stored_at in conn.execute("SELECT cache_key, stored_at_utc FROM price_cache").fetchall()
            if datetime.fromisoformat(stored_at).timestamp() < cutoff
        ]
        for key in expired:
            conn.execute("DELETE FROM price_cache WHERE cache_key=?", (key,))
        conn.close()
        return len(expired)

    def clear(self):
        conn = self._conn()
        conn.execute("DELETE FROM price_cache")
        conn.close()

def resolve_prices(symbols, fetch_fn, cache: PriceCache | None = None, snapshot_id: str | None = None) -> dict:
    """Map each symbol to a USD price or None.

    ``fetch_fn(symbol)`` is the price-feed adapter. Its failures become None
    prices so they never reach valuation as exceptions.
    """
    prices = {}
    for symbol in dict.fromkeys(symbols or []):
        key = f"price|{symbol}"
        try:
            if cache is None:
                value, hit = fetch_fn(symbol), False
            else:
                value, hit = cache.fetch(key, snapshot_id, lambda s=symbol: fetch_fn(s))
        except Exception as e:
            log.warning("price_fetch_failed", symbol=symbol, err=str(e))
            prices[symbol] = None
            continue
        if not hit:
            log.debug("price_cache_miss", symbol=symbol, snapshot_id=snapshot_id)
        try:
            prices[symbol] = float(value) if value is not None else None
        except (TypeError, ValueError):
            log.warning("price_invalid", symbol=symbol, value=value)
            prices[symbol] = None
    return prices
