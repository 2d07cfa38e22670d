from __future__ import annotations

import uuid
from collections import defaultdict

from ..utils import to_iso

# Category filters over finalized holdings. Categories overlap: an EVM row
# counts toward both crypto_aud and evm_total_aud.
CATEGORY_FILTERS = {
    "cash_aud": lambda h: h.get("source") == "BANK" or h.get("liquidity_tier") == "IMMEDIATE",
    "crypto_aud": lambda h: h.get("source") in ("EVM", "SOL"),
    "collectibles_aud": lambda h: h.get("source") == "COLLECTIBLE",
    "evm_total_aud": lambda h: h.get("source") == "EVM",
    "sol_total_aud": lambda h: h.get("source") == "SOL",
    "manual_total_aud": lambda h: h.get("source") in ("BANK", "COLLECTIBLE"),
}


def _value(holding: dict) -> float:
    return float(holding.get("value_aud") or 0.0)


def aggregate(holdings: list[dict]) -> dict:
    totals = {"total_aud": sum(_value(h) for h in holdings)}
    for key, keep in CATEGORY_FILTERS.items():
        totals[key] = sum(_value(h) for h in holdings if keep(h))
    return totals


def build_snapshot(holdings: list[dict], fx_usd_aud: float, created_at, snapshot_id: str | None = None) -> dict:
    snap = {
        "id": snapshot_id or str(uuid.uuid4()),
        "created_at": to_iso(created_at),
        "fx_usd_aud": float(fx_usd_aud),
    }
    snap.update(aggregate(holdings))
    snap["holdings"] = [dict(h) for h in holdings]
    return snap


def group_by_asset_key(holdings: list[dict]) -> dict:
    """asset_key -> {symbol, value_aud}; the first row seen names the group."""
    grouped = {}
    for h in holdings:
        key = h.get("asset_key")
        if key in grouped:
            grouped[key]["value_aud"] += _value(h)
        else:
            grouped[key] = {"symbol": h.get("symbol"), "value_aud": _value(h)}
    return grouped


def group_by_symbol(holdings: list[dict]) -> dict:
    grouped = defaultdict(float)
    for h in holdings:
        grouped[h.get("symbol")] += _value(h)
    return dict(grouped)


def group_by_exposure(holdings: list[dict]) -> dict:
    grouped = defaultdict(float)
    for h in holdings:
        grouped[h.get("exposure_type") or "CRYPTO"] += _value(h)
    return dict(grouped)


def _share(value: float, total: float) -> float:
    return value / total if total > 0 else 0.0


def top_exposures(snapshot: dict, limit: int = 10) -> list[dict]:
    total = float(snapshot.get("total_aud") or 0.0)
    rows = [
        {
            "asset_key": key,
            "symbol": data["symbol"],
            "value_aud": data["value_aud"],
            "percent_of_portfolio": _share(data["value_aud"], total),
        }
        for key, data in group_by_asset_key(snapshot.get("holdings") or []).items()
    ]
    rows.sort(key=lambda row: row["value_aud"], reverse=True)
    return rows[:limit]


def chain_breakdown(snapshot: dict) -> list[dict]:
    total = float(snapshot.get("total_aud") or 0.0)
    rows = []
    for chain, key in (("EVM", "evm_total_aud"), ("Solana", "sol_total_aud"), ("Manual", "manual_total_aud")):
        value = float(snapshot.get(key) or 0.0)
        if value > 0:
            rows.append({"chain": chain, "value_aud": value, "percent_of_portfolio": _share(value, total)})
    return rows


def _wallet_label(wallet_id, wallets: list[dict]) -> str:
    if wallet_id is None:
        return "Manual Assets"
    wallet = next((w for w in wallets if w.get("id") == wallet_id), None)
    if wallet is None:
        return "Unknown"
    return wallet.get("label") or (wallet.get("address") or "")[:8] or "Unknown"


def custody_breakdown(snapshot: dict, wallets: list[dict] | None = None) -> list[dict]:
    wallets = wallets or []
    total = float(snapshot.get("total_aud") or 0.0)
    grouped = defaultdict(float)
    for h in snapshot.get("holdings") or []:
        grouped[h.get("wallet_id") or None] += _value(h)
    rows = [
        {
            "wallet_id": wallet_id,
            "label": _wallet_label(wallet_id, wallets),
            "value_aud": value,
            "percent_of_portfolio": _share(value, total),
        }
        for wallet_id, value in grouped.items()
    ]
    rows.sort(key=lambda row: row["value_aud"], reverse=True)
    return rows


def is_unpriced(holding: dict) -> bool:
    return not holding.get("price_usd")


def unpriced_assets(snapshot: dict) -> list[dict]:
    grouped = {}
    for h in snapshot.get("holdings") or []:
        if not is_unpriced(h):
            continue
        key = h.get("asset_key")
        if key in grouped:
            grouped[key]["quantity"] += float(h.get("quantity") or 0.0)
        else:
            grouped[key] = {
                "asset_key": key,
                "symbol": h.get("symbol"),
                "quantity": float(h.get("quantity") or 0.0),
                "source": h.get("source"),
            }
    return list(grouped.values())
