"""Portfolio health scores, risk narrative and action items.

Each sub-score is an integer in 0-100 with an explanation and the metrics it
was derived from. Breakpoints and rounding are part of the contract:
fractional scores are rounded half-up, metrics to one decimal.
"""
from __future__ import annotations

import math

import numpy as np

from ..utils import format_number, round_half_up
from .aggregate import group_by_exposure, group_by_symbol
from .analytics import snapshot_frame
from .classify import CHAIN_SOURCES, IMMEDIATE

UNBOUNDED_RUNWAY_MONTHS = 999
VOLATILITY_WINDOW = 30
MAX_ACTION_ITEMS = 3


def _value(holding: dict) -> float:
    return float(holding.get("value_aud") or 0.0)


def _pct(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def liquidity_score(holdings: list[dict], total_value: float, monthly_burn: float) -> dict:
    """Score IMMEDIATE-tier assets by runway and share of the portfolio."""
    liquid = sum(_value(h) for h in holdings if h.get("liquidity_tier") == IMMEDIATE)
    liquid_pct = _pct(liquid, total_value)
    runway = liquid / monthly_burn if monthly_burn > 0 else UNBOUNDED_RUNWAY_MONTHS
    months = math.floor(runway)

    if runway >= 24 and liquid_pct >= 30:
        score = 80 + min(20, math.floor((runway - 24) / 12 * 10))
        explanation = f"Excellent liquidity with {months} months runway"
    elif runway >= 12 or liquid_pct >= 20:
        score = 60 + min(19, math.floor(runway - 12))
        explanation = f"Strong liquidity with {months} months runway"
    elif runway >= 6:
        score = 40 + min(19, math.floor((runway - 6) * 3))
        explanation = f"Moderate liquidity with {months} months runway"
    else:
        score = min(39, math.floor(runway * 6))
        explanation = f"Low liquidity with only {months} months runway"

    return {
        "score": round_half_up(score),
        "explanation": explanation,
        "months_runway": months,
        "liquid_percent": round_half_up(liquid_pct, 1),
    }


def concentration_score(holdings: list[dict], total_value: float) -> dict:
    """Score the largest symbol and the top three symbols as a share of total."""
    if not holdings or total_value == 0:
        return {"score": 100, "explanation": "No holdings to analyze", "top_holding_percent": 0.0, "top3_percent": 0.0}

    values = sorted(group_by_symbol(holdings).values(), reverse=True)
    top = _pct(values[0], total_value)
    top3 = _pct(sum(values[:3]), total_value)
    shown = round_half_up(top)

    if top <= 15 and top3 <= 40:
        score = 80 + min(20, math.floor((15 - top) * 2))
        explanation = f"Well-diversified holdings, top asset is {shown}%"
    elif top <= 25 and top3 <= 50:
        score = 60 + min(19, math.floor((25 - top) * 2))
        explanation = f"Moderate concentration, top asset is {shown}%"
    elif top <= 35 or top3 <= 65:
        score = 40 + min(19, math.floor(35 - top))
        explanation = f"High concentration, top asset is {shown}%"
    else:
        score = max(0, math.floor((50 - top) * 2))
        explanation = f"Very high concentration, top asset is {shown}%"

    return {
        "score": round_half_up(score),
        "explanation": explanation,
        "top_holding_percent": round_half_up(top, 1),
        "top3_percent": round_half_up(top3, 1),
    }


def diversification_score(holdings: list[dict], total_value: float) -> dict:
    if not holdings or total_value == 0:
        return {"score": 100, "explanation": "No holdings to analyze", "asset_class_count": 0, "top_class_percent": 0.0}

    groups = group_by_exposure(holdings)
    count = len(groups)
    top = _pct(max(groups.values()), total_value)
    chains = {h.get("source") for h in holdings if h.get("source") in CHAIN_SOURCES}
    chain_bonus = 5 if len(chains) > 1 else 0

    if count >= 5 and top <= 50:
        score = 80 + min(20, (count - 5) * 4)
        explanation = f"Excellent diversification across {count} asset classes"
    elif count >= 4 and top <= 60:
        score = 70 + min(9, (count - 4) * 5 + chain_bonus)
        explanation = f"Very good diversification with {count} asset classes"
    elif count >= 3 and top <= 70:
        score = 55 + min(14, (count - 3) * 7 + chain_bonus)
        explanation = f"Good diversification with {count} asset classes"
    elif count >= 2 and top <= 80:
        score = 35 + min(19, (count - 2) * 10 + (100 - top) / 5)
        explanation = f"Moderate diversification across {count} asset classes"
    elif count >= 2:
        score = 20 + min(14, (count - 2) * 5)
        explanation = f"Limited diversification, {round_half_up(top)}% concentrated in one class"
    else:
        score = max(0, 20 - math.floor((top - 80) / 2))
        explanation = f"Very limited: only {count} asset class with {round_half_up(top)}% concentration"

    return {
        "score": round_half_up(score),
        "explanation": explanation,
        "asset_class_count": count,
        "top_class_percent": round_half_up(top, 1),
    }


def _step_returns(values: np.ndarray) -> np.ndarray:
    prev = values[:-1]
    safe = np.where(prev > 0, prev, 1.0)
    return np.where(prev > 0, (values[1:] - prev) / safe * 100, 0.0)


def volatility_score(snapshots) -> dict:
    """Score max drawdown over the full history and the dispersion of recent returns.

    Dispersion is the population standard deviation of step returns across
    the last 30 snapshots.
    """
    df = snapshot_frame(snapshots)
    if len(df) < 2:
        return {
            "score": 100,
            "explanation": "Insufficient history to calculate volatility",
            "max_drawdown": 0.0,
            "monthly_variance": 0.0,
        }

    values = df["total_aud"].to_numpy(dtype=float)
    peak = np.maximum.accumulate(values)
    safe_peak = np.where(peak > 0, peak, 1.0)
    drawdowns = np.where(peak > 0, (peak - values) / safe_peak * 100, 0.0)
    max_dd = max(0.0, float(drawdowns.max()))

    returns = _step_returns(values[-VOLATILITY_WINDOW:])
    dispersion = float(returns.std(ddof=0)) if returns.size else 0.0
    shown = round_half_up(max_dd)

    if max_dd < 15 and dispersion < 10:
        score = 80 + min(20, math.floor((15 - max_dd) * 2))
        explanation = f"Low volatility with {shown}% max drawdown"
    elif max_dd < 25 and dispersion < 15:
        score = 60 + min(19, math.floor(25 - max_dd))
        explanation = f"Moderate volatility with {shown}% max drawdown"
    elif max_dd < 40 and dispersion < 20:
        score = 40 + min(19, math.floor((40 - max_dd) / 2))
        explanation = f"High volatility with {shown}% max drawdown"
    else:
        score = max(0, 40 - math.floor((max_dd - 40) / 2))
        explanation = f"Very high volatility with {shown}% max drawdown"

    return {
        "score": round_half_up(score),
        "explanation": explanation,
        "max_drawdown": round_half_up(max_dd, 1),
        "monthly_variance": round_half_up(dispersion, 1),
    }


def overall_color(score: int) -> str:
    if score < 50:
        return "red"
    if score < 70:
        return "yellow"
    return "green"


def health_scores(holdings: list[dict], total_value: float, monthly_burn: float, snapshots) -> dict:
    liquidity = liquidity_score(holdings, total_value, monthly_burn)
    concentration = concentration_score(holdings, total_value)
    diversification = diversification_score(holdings, total_value)
    volatility = volatility_score(snapshots)
    overall = round_half_up(
        liquidity["score"] * 0.25
        + concentration["score"] * 0.25
        + diversification["score"] * 0.25
        + volatility["score"] * 0.25
    )
    return {
        "liquidity": liquidity,
        "concentration": concentration,
        "diversification": diversification,
        "volatility": volatility,
        "overall": {"score": overall, "color": overall_color(overall)},
    }


def _top_row(holdings: list[dict]) -> dict:
    # sorted() is stable: the first of equally valued rows wins
    return sorted(holdings, key=_value, reverse=True)[0]


def risk_narrative(holdings: list[dict], total_value: float) -> str:
    if not holdings or total_value == 0:
        return "No holdings to analyze."

    groups = group_by_exposure(holdings)
    crypto = _pct(groups.get("CRYPTO", 0.0), total_value)
    stable = _pct(groups.get("STABLECOIN", 0.0), total_value)
    equity = _pct(groups.get("EQUITY", 0.0), total_value)
    cash = _pct(groups.get("CASH", 0.0), total_value)
    top = _top_row(holdings)
    top_pct = _pct(_value(top), total_value)

    phrases = []
    if crypto > 70:
        phrases.append("continued crypto bull market and risk-on environment")
    elif crypto > 40:
        phrases.append("moderate crypto exposure with upside in digital assets")
    if stable > 40:
        phrases.append("market uncertainty or anticipated buying opportunity")
    elif stable > 20:
        phrases.append("balanced liquidity for opportunistic deployment")
    if equity > 20:
        phrases.append("correlation between traditional and crypto markets remaining low")
    if top_pct > 30:
        phrases.append(f"outsized performance from {top.get('symbol')}, with concentrated downside risk")
    if cash > 50:
        phrases.append("capital preservation and defensive positioning")
    if not phrases:
        phrases.append("balanced market exposure across multiple asset classes")

    return "Your portfolio is currently positioned for: " + ", ".join(phrases) + "."


def action_items(holdings: list[dict], total_value: float, scores: dict) -> list[str]:
    items = []
    if scores["liquidity"]["score"] < 50:
        items.append(
            f"Liquidity is low ({scores['liquidity']['months_runway']} months runway) - "
            "consider increasing stablecoin allocation"
        )
    if scores["concentration"]["score"] < 60 and holdings and total_value > 0:
        top = _top_row(holdings)
        top_pct = _pct(_value(top), total_value)
        if top_pct > 25:
            items.append(
                f"Consider taking profits on {top.get('symbol')} - it represents {round_half_up(top_pct)}% of portfolio"
            )
    if scores["diversification"]["score"] < 50 and total_value > 0:
        groups = group_by_exposure(holdings)
        crypto = _pct(groups.get("CRYPTO", 0.0), total_value)
        has_non_crypto = any(k not in ("CRYPTO", "STABLECOIN") for k in groups)
        if crypto > 70 and not has_non_crypto:
            items.append("Portfolio has no non-crypto assets - consider diversification for risk management")
    if scores["volatility"]["score"] < 50 and scores["liquidity"]["score"] < 70:
        items.append(
            f"High volatility ({format_number(scores['volatility']['max_drawdown'])}% max drawdown) - "
            "consider increasing stable allocations"
        )
    if not items:
        items.append("No immediate actions recommended. Portfolio health is good.")
    return items[:MAX_ACTION_ITEMS]
