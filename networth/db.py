import sqlite3
from pathlib import Path

def get_conn(db_path: str) -> sqlite3.Connection:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)  # autocommit
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn

DDL = [
    # Snapshots (append-only; no UPDATE statement exists for them)
    """
CREATE TABLE IF NOT EXISTS snapshots (
  id TEXT PRIMARY KEY,
  created_at_utc TEXT NOT NULL,
  fx_usd_aud REAL NOT NULL,
  total_aud REAL NOT NULL,
  cash_aud REAL NOT NULL DEFAULT 0,
  crypto_aud REAL NOT NULL DEFAULT 0,
  collectibles_aud REAL NOT NULL DEFAULT 0,
  evm_total_aud REAL NOT NULL DEFAULT 0,
  sol_total_aud REAL NOT NULL DEFAULT 0,
  manual_total_aud REAL NOT NULL DEFAULT 0
);
""",
    "CREATE INDEX IF NOT EXISTS ix_snapshots_created ON snapshots(created_at_utc DESC);",

    """
CREATE TABLE IF NOT EXISTS holdings (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  snapshot_id TEXT NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
  asset_key TEXT NOT NULL,
  source TEXT NOT NULL,
  wallet_id TEXT,
  symbol TEXT NOT NULL,
  quantity REAL NOT NULL,
  price_usd REAL,          -- NULL means unpriced
  value_aud REAL NOT NULL,
  liquidity_tier TEXT NOT NULL,  -- 'IMMEDIATE'|'FAST'|'SLOW'
  exposure_type TEXT
);
""",
    "CREATE INDEX IF NOT EXISTS ix_holdings_snapshot ON holdings(snapshot_id);",

    # Perp positions tracked beside a snapshot, never part of net worth
    """
CREATE TABLE IF NOT EXISTS perp_positions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  snapshot_id TEXT NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
  wallet_id TEXT,
  address TEXT,
  coin TEXT,
  size REAL NOT NULL,
  direction TEXT NOT NULL,  -- 'LONG'|'SHORT'
  entry_price REAL,
  position_value REAL,
  unrealized_pnl REAL
);
""",

    # value_aud holds the amount in `currency`, not necessarily AUD
    """
CREATE TABLE IF NOT EXISTS manual_assets (
  id TEXT PRIMARY KEY,
  type TEXT NOT NULL,
  name TEXT NOT NULL,
  value_aud REAL NOT NULL DEFAULT 0,
  currency TEXT NOT NULL DEFAULT 'AUD',
  quantity REAL,
  notes TEXT,
  investment_date TEXT,
  investment_amount REAL,
  investment_valuation REAL,
  created_at_utc TEXT NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",

    """
CREATE TABLE IF NOT EXISTS settings (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
""",

    # Generated reports (immutable, deletable)
    """
CREATE TABLE IF NOT EXISTS briefs (
  id TEXT PRIMARY KEY,
  created_at_utc TEXT NOT NULL,
  report_type TEXT NOT NULL,  -- 'weekly'|'deep-dive'
  snapshot_id TEXT NOT NULL,
  payload_json TEXT NOT NULL,
  payload_sha256 TEXT NOT NULL
);
""",
    "CREATE INDEX IF NOT EXISTS ix_briefs_created ON briefs(created_at_utc DESC);",
]

def migrate(conn: sqlite3.Connection):
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)
    cols = {row[1] for row in cur.execute("PRAGMA table_info(manual_assets)").fetchall()}
    if cols:
        if "tradfi_system" not in cols:
            cur.execute("ALTER TABLE manual_assets ADD COLUMN tradfi_system INTEGER NOT NULL DEFAULT 0")
        if "exposure_type" not in cols:
            cur.execute("ALTER TABLE manual_assets ADD COLUMN exposure_type TEXT")
    conn.commit()
