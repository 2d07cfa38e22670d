"""Manual asset storage.

The ``value_aud`` column keeps its historical name but holds the amount in
the asset's currency; rows are exposed as ``native_amount``.
"""
import sqlite3
import uuid

import structlog

from ..utils import now_utc_iso
from .validation import validate_manual_asset

log = structlog.get_logger()

_COLUMNS = [
    "id", "type", "name", "value_aud", "currency", "quantity", "notes",
    "investment_date", "investment_amount", "investment_valuation",
    "tradfi_system", "exposure_type", "created_at_utc", "updated_at_utc",
]


def _row_to_asset(row) -> dict:
    asset = dict(zip(_COLUMNS, row))
    asset["native_amount"] = asset.pop("value_aud")
    asset["tradfi_system"] = bool(asset["tradfi_system"])
    return asset


def list_manual_assets(conn: sqlite3.Connection) -> list[dict]:
    rows = conn.execute(f"SELECT {', '.join(_COLUMNS)} FROM manual_assets ORDER BY created_at_utc, id").fetchall()
    return [_row_to_asset(r) for r in rows]


def get_manual_asset(conn: sqlite3.Connection, asset_id: str) -> dict:
    row = conn.execute(f"SELECT {', '.join(_COLUMNS)} FROM manual_assets WHERE id=?", (asset_id,)).fetchone()
    if not row:
        raise ValueError(f"manual asset not found: {asset_id}")
    return _row_to_asset(row)


def upsert_manual_asset(conn: sqlite3.Connection, asset: dict, asset_id: str | None = None) -> dict:
    ok, reasons = validate_manual_asset(asset)
    if not ok:
        raise ValueError("; ".join(reasons))
    now = now_utc_iso()
    asset_id = asset_id or asset.get("id") or str(uuid.uuid4())
    amount = asset.get("native_amount", asset.get("value_aud"))
    values = {
        "id": asset_id,
        "type": str(asset["type"]).upper(),
        "name": asset["name"],
        "value_aud": float(amount or 0.0),
        "currency": str(asset.get("currency") or "AUD").upper(),
        "quantity": asset.get("quantity"),
        "notes": asset.get("notes"),
        "investment_date": asset.get("investment_date"),
        "investment_amount": asset.get("investment_amount"),
        "investment_valuation": asset.get("investment_valuation"),
        "tradfi_system": 1 if asset.get("tradfi_system") else 0,
        "exposure_type": asset.get("exposure_type"),
        "created_at_utc": now,
        "updated_at_utc": now,
    }
    updates = ", ".join(f"{col}=excluded.{col}" for col in _COLUMNS if col not in ("id", "created_at_utc"))
    conn.execute(
        f"""
        INSERT INTO manual_assets({', '.join(_COLUMNS)}) VALUES({', '.join(['?'] * len(_COLUMNS))})
        ON CONFLICT(id) DO UPDATE SET {updates}
        """,
        [values[col] for col in _COLUMNS],
    )
    log.info("manual_asset_saved", asset_id=asset_id, type=values["type"], currency=values["currency"])
    return get_manual_asset(conn, asset_id)


def delete_manual_asset(conn: sqlite3.Connection, asset_id: str) -> bool:
    cur = conn.execute("DELETE FROM manual_assets WHERE id=?", (asset_id,))
    if cur.rowcount == 0:
        raise ValueError(f"manual asset not found: {asset_id}")
    log.info("manual_asset_deleted", asset_id=asset_id)
    return True
