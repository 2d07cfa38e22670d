import math
from typing import List, Tuple

from .classify import SOURCES
from .valuation import CURRENCIES

MANUAL_TYPES = set(SOURCES) - {"EVM", "SOL", "HYPE"}

def _number_reason(name: str, val, allow_none: bool = True, allow_negative: bool = False) -> str | None:
    if val is None:
        return None if allow_none else f"missing {name}"
    if isinstance(val, bool):
        return f"{name} is not a number"
    try:
        num = float(val)
    except (TypeError, ValueError):
        return f"{name} is not a number"
    if not math.isfinite(num):
        return f"{name} is not finite"
    if num < 0 and not allow_negative:
        return f"{name} is negative"
    return None

def validate_raw_holding(raw: dict) -> Tuple[bool, List[str]]:
    reasons = []
    if not isinstance(raw, dict):
        return False, ["holding is not an object"]
    source = str(raw.get("source") or "").upper()
    if not source:
        reasons.append("missing source")
    elif source not in SOURCES:
        reasons.append(f"unknown source {source}")
    if not str(raw.get("symbol") or "").strip():
        reasons.append("missing symbol")
    for reason in (
        _number_reason("quantity", raw.get("quantity"), allow_none=False),
        _number_reason("price_usd", raw.get("price_usd")),
    ):
        if reason:
            reasons.append(reason)
    return (len(reasons) == 0), reasons

def validate_manual_asset(asset: dict) -> Tuple[bool, List[str]]:
    reasons = []
    if not isinstance(asset, dict):
        return False, ["manual asset is not an object"]
    asset_type = str(asset.get("type") or "").upper()
    if not asset_type:
        reasons.append("missing type")
    elif asset_type not in MANUAL_TYPES:
        reasons.append(f"unknown type {asset_type}")
    if not str(asset.get("name") or "").strip():
        reasons.append("missing name")
    currency = str(asset.get("currency") or "AUD").upper()
    if currency not in CURRENCIES:
        reasons.append(f"unknown currency {currency}")
    amount = asset.get("native_amount", asset.get("value_aud"))
    for reason in (
        _number_reason("native_amount", amount),
        _number_reason("quantity", asset.get("quantity")),
    ):
        if reason:
            reasons.append(reason)
    return (len(reasons) == 0), reasons

def validate_snapshot(snap: dict, tolerance: float = 1e-6) -> Tuple[bool, List[str]]:
    """Check the totals identity on a built or imported snapshot."""
    reasons = []
    for path in ("id", "created_at", "total_aud"):
        if snap.get(path) is None:
            reasons.append(f"missing {path}")
    holdings = snap.get("holdings")
    if not isinstance(holdings, list):
        reasons.append("holdings is not a list")
        return False, reasons
    total = sum(float(h.get("value_aud") or 0.0) for h in holdings)
    if snap.get("total_aud") is not None and abs(float(snap["total_aud"]) - total) > tolerance * max(1.0, abs(total)):
        reasons.append("total_aud does not match holdings")
    for h in holdings:
        reason = _number_reason("value_aud", h.get("value_aud"), allow_none=False)
        if reason:
            reasons.append(f"{h.get('asset_key')}: {reason}")
    return (len(reasons) == 0), reasons
