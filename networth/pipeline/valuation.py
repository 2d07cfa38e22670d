"""Normalize market balances and manual assets into AUD-valued holdings.

Manual assets carry their amount in ``native_amount`` (stored and sent on the
wire as ``value_aud`` for compatibility). The amount is denominated in the
asset's ``currency`` and only becomes AUD here:

- ETH: native_amount * quantity * eth_price_usd * fx_usd_aud
- USD: native_amount * quantity * fx_usd_aud
- AUD: native_amount * quantity
"""
from __future__ import annotations

from ..config import DEFAULT_PORTFOLIO_SETTINGS
from .classify import (
    classify_exposure,
    classify_hype_liquidity,
    classify_liquidity,
    classify_manual_liquidity,
)

ETH_FALLBACK_PRICE_USD = 3000.0
ZERO_VALUE_TYPES = {"AIRDROP", "PRIVATE_INVESTMENT"}
CURRENCIES = ("AUD", "USD", "ETH")


def _coerce_float(val):
    if val is None:
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def value_holding(quantity, price_usd, fx_usd_aud) -> float:
    if price_usd is None:
        return 0.0
    return float(price_usd) * float(fx_usd_aud) * float(quantity or 0.0)


def resolve_eth_price(settings, prices: dict | None = None, fallback: float = ETH_FALLBACK_PRICE_USD) -> float:
    """Settings override, then the live ETH price, then the fallback."""
    override = _coerce_float(getattr(settings, "eth_price_usd", None))
    if override:
        return override
    live = _coerce_float((prices or {}).get("ETH"))
    if live:
        return live
    return float(fallback)


def manual_quantity(asset: dict) -> float:
    qty = _coerce_float(asset.get("quantity"))
    return 1.0 if qty is None else qty


def value_manual_asset(asset: dict, fx_usd_aud, eth_price_usd) -> float:
    asset_type = str(asset.get("type") or "").upper()
    if asset_type in ZERO_VALUE_TYPES:
        # Informational only, never part of net worth.
        return 0.0
    amount = _coerce_float(asset.get("native_amount"))
    if amount is None:
        amount = _coerce_float(asset.get("value_aud")) or 0.0
    quantity = manual_quantity(asset)
    currency = str(asset.get("currency") or "AUD").upper()
    if currency == "ETH":
        return amount * quantity * float(eth_price_usd) * float(fx_usd_aud)
    if currency == "USD":
        return amount * quantity * float(fx_usd_aud)
    return amount * quantity


def manual_asset_key(asset: dict) -> str:
    prefix = "bank" if str(asset.get("type") or "").upper() == "BANK" else "collectible"
    return f"{prefix}:{asset.get('id')}"


def manual_asset_to_holding(asset: dict, settings, fx_usd_aud: float, eth_price_usd: float) -> dict:
    asset_type = str(asset.get("type") or "MISC").upper()
    currency = str(asset.get("currency") or "AUD").upper()
    name = asset.get("name") or asset_type
    exposure = asset.get("exposure_type") or classify_exposure(name, asset_type, settings)
    return {
        "asset_key": manual_asset_key(asset),
        "source": asset_type,
        "wallet_id": None,
        "symbol": name,
        "quantity": manual_quantity(asset),
        "price_usd": eth_price_usd if currency == "ETH" else None,
        "value_aud": value_manual_asset(asset, fx_usd_aud, eth_price_usd),
        "liquidity_tier": classify_manual_liquidity(asset_type),
        "exposure_type": exposure,
    }


def market_holding(raw: dict, settings, prices: dict) -> dict:
    source = str(raw.get("source") or "").upper()
    symbol = raw.get("symbol") or ""
    quantity = _coerce_float(raw.get("quantity")) or 0.0
    price = _coerce_float(prices.get(symbol)) if symbol in prices else _coerce_float(raw.get("price_usd"))
    if not price:
        price = None
    if source == "HYPE":
        tier = classify_hype_liquidity(symbol)
    else:
        tier = classify_liquidity(symbol, settings)
    return {
        "asset_key": raw.get("asset_key") or f"{source.lower()}:{symbol}:{raw.get('wallet_id') or ''}",
        "source": source,
        "wallet_id": raw.get("wallet_id"),
        "symbol": symbol,
        "quantity": quantity,
        "price_usd": price,
        "value_aud": value_holding(quantity, price, settings.fx_usd_aud),
        "liquidity_tier": tier,
        "exposure_type": classify_exposure(symbol, source, settings),
    }


def normalize_perp_position(raw: dict, wallet_id=None, address=None) -> dict:
    size = _coerce_float(raw.get("szi", raw.get("size"))) or 0.0
    return {
        "wallet_id": raw.get("wallet_id", wallet_id),
        "address": raw.get("address", address),
        "coin": raw.get("coin"),
        "size": size,
        "direction": "LONG" if size > 0 else "SHORT",
        "entry_price": _coerce_float(raw.get("entryPx", raw.get("entry_price"))),
        "position_value": _coerce_float(raw.get("positionValue", raw.get("position_value"))),
        "unrealized_pnl": _coerce_float(raw.get("unrealizedPnl", raw.get("unrealized_pnl"))),
    }


def value_holdings(raw_holdings: list[dict], manual_assets: list[dict], settings=None, prices: dict | None = None) -> list[dict]:
    """Finalized holdings: market rows first, one row per manual asset after."""
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    prices = prices or {}
    holdings = [market_holding(raw, settings, prices) for raw in raw_holdings or []]
    eth_price = resolve_eth_price(settings, prices)
    for asset in manual_assets or []:
        holdings.append(manual_asset_to_holding(asset, settings, settings.fx_usd_aud, eth_price))
    return holdings
