"""Liquidity buckets, runway and stress scenarios."""
from __future__ import annotations

import math

from ..config import DEFAULT_PORTFOLIO_SETTINGS
from ..utils import round_half_up
from .classify import FAST, IMMEDIATE, LIQUIDITY_TIERS, SLOW

FREEZE_SLOW_HAIRCUT = 0.70
UNBOUNDED_LABEL = "∞"
_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _tier(holding: dict) -> str:
    tier = holding.get("liquidity_tier")
    return tier if tier in LIQUIDITY_TIERS else SLOW


def _value(holding: dict) -> float:
    return float(holding.get("value_aud") or 0.0)


def _is_crypto_source(holding: dict) -> bool:
    return holding.get("source") in ("EVM", "SOL")


def tier_totals(holdings: list[dict]) -> dict:
    totals = {tier: 0.0 for tier in LIQUIDITY_TIERS}
    for h in holdings:
        totals[_tier(h)] += _value(h)
    return totals


def bucketize(holdings: list[dict], settings=None) -> list[dict]:
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    haircuts = settings.haircuts()
    burn = settings.monthly_burn_aud
    buckets = []
    for tier, assets in tier_totals(holdings).items():
        after = assets * (1 - haircuts[tier])
        buckets.append({
            "tier": tier,
            "assets_aud": assets,
            "after_haircut": after,
            "runway_months": after / burn if burn > 0 else 0.0,
        })
    return buckets


def run_scenario(holdings: list[dict], settings, value_transform, freeze_slow: bool = False) -> dict:
    """Re-value every holding with ``value_transform`` and recompute liquidity.

    Liquidity counts IMMEDIATE and FAST tiers after haircuts. With
    ``freeze_slow`` the SLOW haircut is raised to 70%.
    """
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    haircuts = settings.haircuts()
    if freeze_slow:
        haircuts[SLOW] = FREEZE_SLOW_HAIRCUT
    net_worth = 0.0
    liquidity = 0.0
    for h in holdings:
        value = float(value_transform(h))
        net_worth += value
        tier = _tier(h)
        if tier in (IMMEDIATE, FAST):
            liquidity += value * (1 - haircuts[tier])
    burn = settings.monthly_burn_aud
    return {
        "net_worth": net_worth,
        "immediate_liquidity": liquidity,
        "runway": liquidity / burn if burn > 0 else 0.0,
    }


def largest_crypto_holding(holdings: list[dict]) -> dict:
    largest = {"symbol": "", "value_aud": 0.0}
    for h in holdings:
        if _is_crypto_source(h) and _value(h) > largest["value_aud"]:
            largest = {"symbol": h.get("symbol") or "", "value_aud": _value(h)}
    return largest


def _scale_crypto(factor: float):
    return lambda h: _value(h) * factor if _is_crypto_source(h) else _value(h)


def stress_scenarios(snapshot: dict, settings=None) -> list[dict]:
    holdings = snapshot.get("holdings") or []
    largest = largest_crypto_holding(holdings)
    symbol = largest["symbol"]

    scenarios = []

    def _add(name, result, net_worth=None):
        scenarios.append({
            "name": name,
            "net_worth": result["net_worth"] if net_worth is None else net_worth,
            "immediate_liquidity": result["immediate_liquidity"],
            "runway": result["runway"],
        })

    _add("Crypto -30%", run_scenario(holdings, settings, _scale_crypto(0.7)))
    _add("Crypto -50%", run_scenario(holdings, settings, _scale_crypto(0.5)))
    _add(
        f"Largest ({symbol}) -60%",
        run_scenario(holdings, settings, lambda h: _value(h) * 0.4 if h.get("symbol") == symbol else _value(h)),
    )
    # A freeze stresses liquidity only; net worth stays at the unstressed total.
    _add(
        "Liquidity freeze (SLOW -> 70% haircut)",
        run_scenario(holdings, settings, _value, freeze_slow=True),
        net_worth=float(snapshot.get("total_aud") or 0.0),
    )
    return scenarios


def format_runway(months) -> str:
    if months is None:
        return "0 months"
    if months == math.inf:
        return UNBOUNDED_LABEL
    if months == 0 or not math.isfinite(months):
        return "0 months"
    years = math.floor(months / 12)
    remaining = round_half_up(months % 12)
    if years == 0:
        return f"{remaining} {'month' if remaining == 1 else 'months'}"
    if remaining == 0:
        return f"{years} {'year' if years == 1 else 'years'}"
    return f"{years}y {remaining}mo"


def runway_status(months) -> str:
    if months is None or months >= 12:
        return "Healthy"
    if months >= 6:
        return "Caution"
    return "Critical"


def _runway(amount: float, net_burn: float) -> float:
    return amount / net_burn if net_burn > 0 else math.inf


def _months_or_none(months: float):
    return None if months == math.inf else months


def runway_summary(buckets: list[dict], settings=None) -> dict:
    """Runway against net burn (expenses minus income).

    When income covers expenses the runway is unbounded: months are emitted
    as None and labels as the infinity sign.
    """
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    after = {b["tier"]: b["after_haircut"] for b in buckets}
    net_burn = settings.monthly_burn_aud - settings.monthly_income_aud
    immediate = _runway(after.get(IMMEDIATE, 0.0), net_burn)
    fast = _runway(after.get(IMMEDIATE, 0.0) + after.get(FAST, 0.0), net_burn)
    total = _runway(sum(after.values()), net_burn)
    return {
        "net_burn_aud": net_burn,
        "unbounded": net_burn <= 0,
        "immediate_months": _months_or_none(immediate),
        "fast_months": _months_or_none(fast),
        "total_months": _months_or_none(total),
        "labels": {
            "immediate": format_runway(immediate),
            "fast": format_runway(fast),
            "total": format_runway(total),
        },
        "status": runway_status(_months_or_none(fast)),
    }


def _pct1(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def liquidity_insights(snapshot: dict, settings=None) -> dict:
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    holdings = snapshot.get("holdings") or []
    total = float(snapshot.get("total_aud") or 0.0)
    buckets = bucketize(holdings, settings)
    after = {b["tier"]: b["after_haircut"] for b in buckets}
    assets = {b["tier"]: b["assets_aud"] for b in buckets}
    burn = settings.monthly_burn_aud
    net_burn = burn - settings.monthly_income_aud
    immediate_runway = _runway(after[IMMEDIATE], net_burn)
    fast_runway = _runway(after[IMMEDIATE] + after[FAST], net_burn)

    liquidity_ratio = (after[IMMEDIATE] + after[FAST]) / total if total > 0 else 0.0
    immediate_ratio = after[IMMEDIATE] / total if total > 0 else 0.0
    crypto_value = sum(_value(h) for h in holdings if _is_crypto_source(h))
    crypto_ratio = crypto_value / total if total > 0 else 0.0
    slow_ratio = assets[SLOW] / total if total > 0 else 0.0
    liquid_ratio = (assets[IMMEDIATE] + assets[FAST]) / total if total > 0 else 0.0

    strengths, considerations, warnings = [], [], []
    if fast_runway >= 12:
        strengths.append(f"Strong runway of {format_runway(fast_runway)}")
    if liquidity_ratio >= 0.5:
        strengths.append(f"{_pct1(liquidity_ratio)} of portfolio is liquid (IMMEDIATE + FAST)")
    if net_burn > 0 and after[IMMEDIATE] >= net_burn * 3:
        strengths.append(f"{format_runway(immediate_runway)} in instant-access funds")

    if 6 <= fast_runway < 12:
        considerations.append(f"Runway of {format_runway(fast_runway)} is adequate but could be stronger")
    if 0.2 <= liquidity_ratio < 0.5:
        considerations.append(f"Only {_pct1(liquidity_ratio)} readily accessible - consider rebalancing")
    if crypto_ratio > 0.5:
        considerations.append(f"{_pct1(crypto_ratio)} in crypto exposes you to volatility")

    if fast_runway < 6:
        warnings.append(f"Critical: Only {format_runway(fast_runway)} runway - urgent action needed")
    if liquidity_ratio < 0.2:
        warnings.append(f"Warning: Only {_pct1(liquidity_ratio)} of assets are liquid")
    if net_burn > 0 and after[IMMEDIATE] < net_burn * 3:
        warnings.append(f"Low emergency fund: Only {format_runway(immediate_runway)} instant access")

    recs = []
    if fast_runway < 6:
        recs.append(("Build emergency fund to 6 months minimum. Current runway leaves you vulnerable to unexpected events.", "high"))
        recs.append(("Consider converting SLOW tier assets to FAST/IMMEDIATE tiers for better liquidity access.", "high"))
    elif fast_runway < 12:
        recs.append(("Increase liquid runway to 12+ months for better financial security and flexibility.", "medium"))
    elif fast_runway >= 24:
        recs.append(("Excellent runway position. Consider deploying excess liquidity into higher-yield opportunities.", "low"))
    else:
        recs.append(("Runway is healthy - maintain current liquidity levels while optimizing returns.", "low"))

    if immediate_ratio < 0.05:
        recs.append((f"Build IMMEDIATE liquidity to at least 5-10% of portfolio (currently {_pct1(immediate_ratio)}).", "high"))
    elif immediate_ratio < 0.1:
        recs.append((f"Consider increasing IMMEDIATE liquidity to 10% of portfolio (currently {_pct1(immediate_ratio)}).", "medium"))

    if crypto_ratio > 0.8:
        recs.append((f"Very high crypto concentration at {_pct1(crypto_ratio)}. Consider diversifying into stable, traditional or real assets.", "high"))
    elif crypto_ratio > 0.6:
        recs.append((f"High crypto exposure at {_pct1(crypto_ratio)}. Consider gradual diversification to reduce volatility.", "medium"))

    if assets[SLOW] > assets[IMMEDIATE] + assets[FAST]:
        recs.append((f"{_pct1(slow_ratio)} of portfolio is in SLOW tier. Plan an exit timeline for converting these to more liquid assets.", "medium"))

    if net_burn <= 0:
        recs.append(("Income covers expenses. Focus on investing the surplus systematically.", "low"))
    elif burn > after[IMMEDIATE] + after[FAST]:
        recs.append(("Monthly expenses exceed total liquid assets. Reduce expenses or increase liquid holdings urgently.", "high"))

    if total > 0 and liquid_ratio < 0.3:
        recs.append((f"Only {_pct1(liquid_ratio)} of portfolio is liquid (IMMEDIATE + FAST). Aim for at least 30-50% in liquid tiers.", "medium"))
    elif liquid_ratio > 0.8:
        recs.append((f"{_pct1(liquid_ratio)} of portfolio is highly liquid. Consider deploying some cash/stables while keeping 50-70% liquid.", "low"))

    # sorted() is stable, so rules keep their order within a priority.
    recs = sorted(recs, key=lambda item: _PRIORITY_ORDER[item[1]])

    stable_set = set(settings.stablecoins)
    return {
        "strengths": strengths,
        "considerations": considerations,
        "warnings": warnings,
        "recommendations": [{"text": text, "priority": priority} for text, priority in recs],
        "cash_aud": sum(_value(h) for h in holdings if h.get("source") in ("BANK", "CASH", "GIFTCARD")),
        "stablecoins_aud": sum(_value(h) for h in holdings if h.get("symbol") in stable_set),
    }
