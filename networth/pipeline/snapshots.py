"""Build, persist and load snapshots.

Snapshots are append-only: rows are inserted once and only ever read back.
"""
import math
import re
import sqlite3
import uuid

import structlog

from ..config import DEFAULT_PORTFOLIO_SETTINGS
from ..utils import now_utc, parse_datetime, to_iso
from .aggregate import CATEGORY_FILTERS, build_snapshot
from .validation import validate_manual_asset, validate_raw_holding, validate_snapshot
from .valuation import normalize_perp_position, value_holdings

log = structlog.get_logger()

TOTAL_COLUMNS = list(CATEGORY_FILTERS)
HOLDING_COLUMNS = [
    "asset_key", "source", "wallet_id", "symbol", "quantity",
    "price_usd", "value_aud", "liquidity_tier", "exposure_type",
]
PERP_COLUMNS = [
    "wallet_id", "address", "coin", "size", "direction",
    "entry_price", "position_value", "unrealized_pnl",
]
_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def _drop_invalid(rows, validator, kind: str, errors: list) -> list:
    kept = []
    for row in rows or []:
        ok, reasons = validator(row)
        if ok:
            kept.append(row)
            continue
        label = None
        if isinstance(row, dict):
            label = row.get("asset_key") or row.get("symbol") or row.get("name")
        log.warning("holding_rejected", kind=kind, label=label, reasons=reasons)
        errors.append({"kind": kind, "label": label, "reasons": reasons})
    return kept


def _drop_sol_dust(holdings: list[dict], min_value_aud: float) -> list[dict]:
    # Unpriced rows stay so they show up as unpriced rather than vanishing.
    return [
        h for h in holdings
        if not (h["source"] == "SOL" and h["price_usd"] is not None and h["value_aud"] < min_value_aud)
    ]


def calculate_snapshot(raw_holdings, manual_assets, settings=None, prices=None, now=None, perp_positions=None, snapshot_id=None) -> dict:
    """Validate, value and aggregate one refresh cycle. Nothing is persisted."""
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    errors = []
    raw = _drop_invalid(raw_holdings, validate_raw_holding, "holding", errors)
    manual = _drop_invalid(manual_assets, validate_manual_asset, "manual_asset", errors)
    holdings = value_holdings(raw, manual, settings, prices or {})
    holdings = _drop_sol_dust(holdings, settings.sol_min_value_aud)
    snap = build_snapshot(holdings, settings.fx_usd_aud, now or now_utc(), snapshot_id)
    perps = [normalize_perp_position(p) for p in perp_positions or []]
    log.info(
        "snapshot_built",
        snapshot_id=snap["id"],
        holdings=len(holdings),
        total_aud=round(snap["total_aud"], 2),
        rejected=len(errors),
    )
    return {"snapshot": snap, "perp_positions": perps, "errors": errors}


def snapshot_wait_hours(last_created_at, now=None, min_hours: float = 48.0) -> int:
    """Whole hours until another snapshot is allowed; 0 when allowed now."""
    last = parse_datetime(last_created_at)
    if last is None:
        return 0
    elapsed = ((now or now_utc()) - last).total_seconds() / 3600
    if elapsed >= min_hours:
        return 0
    return math.ceil(min_hours - elapsed)


def persist_snapshot(conn: sqlite3.Connection, snap: dict, perp_positions=None) -> str:
    ok, reasons = validate_snapshot(snap)
    if not ok:
        raise ValueError(f"invalid snapshot: {reasons}")
    cur = conn.cursor()
    cur.execute("BEGIN")
    try:
        cur.execute(
            f"""
            INSERT INTO snapshots(id, created_at_utc, fx_usd_aud, total_aud, {", ".join(TOTAL_COLUMNS)})
            VALUES({", ".join(["?"] * (4 + len(TOTAL_COLUMNS)))})
            """,
            [snap["id"], to_iso(snap["created_at"]), snap["fx_usd_aud"], snap["total_aud"]]
            + [snap.get(col, 0.0) for col in TOTAL_COLUMNS],
        )
        cur.executemany(
            f"INSERT INTO holdings(snapshot_id, {', '.join(HOLDING_COLUMNS)}) VALUES({', '.join(['?'] * (1 + len(HOLDING_COLUMNS)))})",
            [[snap["id"]] + [h.get(col) for col in HOLDING_COLUMNS] for h in snap.get("holdings") or []],
        )
        cur.executemany(
            f"INSERT INTO perp_positions(snapshot_id, {', '.join(PERP_COLUMNS)}) VALUES({', '.join(['?'] * (1 + len(PERP_COLUMNS)))})",
            [[snap["id"]] + [p.get(col) for col in PERP_COLUMNS] for p in perp_positions or []],
        )
        cur.execute("COMMIT")
    except Exception:
        cur.execute("ROLLBACK")
        raise
    log.info("snapshot_persisted", snapshot_id=snap["id"], total_aud=round(snap["total_aud"], 2))
    return snap["id"]


def _row_to_snapshot(row) -> dict:
    snap = {
        "id": row[0],
        "created_at": row[1],
        "fx_usd_aud": row[2],
        "total_aud": row[3],
    }
    for i, col in enumerate(TOTAL_COLUMNS):
        snap[col] = row[4 + i]
    return snap


_SNAPSHOT_SELECT = f"SELECT id, created_at_utc, fx_usd_aud, total_aud, {', '.join(TOTAL_COLUMNS)} FROM snapshots"


def _load_holdings(conn: sqlite3.Connection, snapshot_id: str) -> list[dict]:
    rows = conn.execute(
        f"SELECT {', '.join(HOLDING_COLUMNS)} FROM holdings WHERE snapshot_id=? ORDER BY id",
        (snapshot_id,),
    ).fetchall()
    return [dict(zip(HOLDING_COLUMNS, row)) for row in rows]


def load_perp_positions(conn: sqlite3.Connection, snapshot_id: str) -> list[dict]:
    rows = conn.execute(
        f"SELECT {', '.join(PERP_COLUMNS)} FROM perp_positions WHERE snapshot_id=? ORDER BY id",
        (snapshot_id,),
    ).fetchall()
    return [dict(zip(PERP_COLUMNS, row)) for row in rows]


def _with_holdings(conn, snap: dict | None) -> dict | None:
    if snap is not None:
        snap["holdings"] = _load_holdings(conn, snap["id"])
    return snap


def get_snapshot(conn: sqlite3.Connection, snapshot_id: str) -> dict:
    row = conn.execute(f"{_SNAPSHOT_SELECT} WHERE id=?", (snapshot_id,)).fetchone()
    if not row:
        raise ValueError(f"snapshot not found: {snapshot_id}")
    return _with_holdings(conn, _row_to_snapshot(row))


def latest_snapshot(conn: sqlite3.Connection) -> dict | None:
    row = conn.execute(f"{_SNAPSHOT_SELECT} ORDER BY created_at_utc DESC LIMIT 1").fetchone()
    return _with_holdings(conn, _row_to_snapshot(row)) if row else None


def previous_snapshot(conn: sqlite3.Connection, before) -> dict | None:
    row = conn.execute(
        f"{_SNAPSHOT_SELECT} WHERE created_at_utc < ? ORDER BY created_at_utc DESC LIMIT 1",
        (to_iso(before),),
    ).fetchone()
    return _with_holdings(conn, _row_to_snapshot(row)) if row else None


def list_snapshots(conn: sqlite3.Connection, limit: int = 50, offset: int = 0) -> dict:
    rows = conn.execute(
        f"{_SNAPSHOT_SELECT} ORDER BY created_at_utc DESC LIMIT ? OFFSET ?",
        (int(limit), int(offset)),
    ).fetchall()
    total = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
    return {"snapshots": [_row_to_snapshot(r) for r in rows], "total": total}


def load_history(conn: sqlite3.Connection, with_holdings: bool = False) -> list[dict]:
    rows = conn.execute(f"{_SNAPSHOT_SELECT} ORDER BY created_at_utc ASC").fetchall()
    history = [_row_to_snapshot(r) for r in rows]
    if with_holdings:
        for snap in history:
            _with_holdings(conn, snap)
    return history


def _parse_import_date(val):
    m = _DMY.match(str(val or "").strip())
    if m:
        day, month, year = (int(x) for x in m.groups())
        return parse_datetime(f"{year:04d}-{month:02d}-{day:02d}")
    return parse_datetime(val)


def import_snapshots(conn: sqlite3.Connection, payloads: list[dict]) -> dict:
    """Bulk import of historical totals.

    Each payload carries ``date`` (ISO or D/M/YYYY), ``total_aud`` and an
    optional ``fx_usd_aud`` and ``id``. Imported snapshots have no holdings;
    their total is booked as manual. Rows without a date or total, and ids
    that already exist, are skipped.
    """
    imported, skipped = [], 0
    for payload in payloads or []:
        created = _parse_import_date(payload.get("date") or payload.get("created_at"))
        total = payload.get("total_aud", payload.get("totalAud"))
        try:
            total = float(total) if total is not None else None
        except (TypeError, ValueError):
            total = None
        if created is None or not total or not math.isfinite(total):
            skipped += 1
            continue
        snapshot_id = payload.get("id") or str(uuid.uuid4())
        if conn.execute("SELECT 1 FROM snapshots WHERE id=?", (snapshot_id,)).fetchone():
            skipped += 1
            continue
        snap = {
            "id": snapshot_id,
            "created_at": to_iso(created),
            "fx_usd_aud": float(payload.get("fx_usd_aud") or payload.get("fxUsdAud") or 1.50),
            "total_aud": total,
            **{col: 0.0 for col in TOTAL_COLUMNS},
            "holdings": [],
        }
        snap["manual_total_aud"] = total
        conn.execute(
            f"""
            INSERT INTO snapshots(id, created_at_utc, fx_usd_aud, total_aud, {", ".join(TOTAL_COLUMNS)})
            VALUES({", ".join(["?"] * (4 + len(TOTAL_COLUMNS)))})
            """,
            [snap["id"], snap["created_at"], snap["fx_usd_aud"], snap["total_aud"]]
            + [snap[col] for col in TOTAL_COLUMNS],
        )
        imported.append(snapshot_id)
    log.info("snapshots_imported", imported=len(imported), skipped=skipped)
    return {"imported": len(imported), "skipped": skipped, "ids": imported}
