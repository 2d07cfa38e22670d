"""Weekly brief, deep dive and markdown brief payloads."""
from __future__ import annotations

import math
from datetime import timedelta

from ..utils import format_aud, format_percent, parse_datetime, round_half_up
from .aggregate import group_by_asset_key, group_by_exposure, group_by_symbol, is_unpriced
from .analytics import snapshot_frame
from .classify import FAST, IMMEDIATE
from .health import action_items, health_scores, risk_narrative

TOP_CHANGES_LIMIT = 5
ASSET_ANALYSIS_LIMIT = 10
DRAWDOWN_ALERT_PERCENT = 20


def _pct(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def _holdings(snapshot: dict | None) -> list[dict]:
    return (snapshot or {}).get("holdings") or []


def _total(snapshot: dict | None) -> float:
    return float((snapshot or {}).get("total_aud") or 0.0)


def _ranked_symbols(holdings: list[dict]) -> list[tuple[str, float]]:
    return sorted(group_by_symbol(holdings).items(), key=lambda kv: kv[1], reverse=True)


def date_range_label(current_at, previous_at=None) -> str:
    current = parse_datetime(current_at)
    previous = parse_datetime(previous_at)
    if current is None:
        return ""
    if previous is None:
        return f"{current:%B} {current.day}, {current.year}"
    return f"{previous:%b} {previous.day} - {current:%b} {current.day}, {current.year}"


def top_changes(current: dict, previous: dict | None) -> list[dict]:
    """Symbol-level value changes between two snapshots, largest first."""
    if not previous:
        return []
    now = group_by_symbol(_holdings(current))
    before = group_by_symbol(_holdings(previous))
    total = _total(current)
    changes = []
    for symbol in list(now) + [s for s in before if s not in now]:
        current_value = now.get(symbol, 0.0)
        last_value = before.get(symbol, 0.0)
        change = current_value - last_value
        if abs(change) > 0:
            changes.append({
                "symbol": symbol,
                "last_week_value": last_value,
                "current_value": current_value,
                "change": change,
                "impact": change / total * 100 if total else 0.0,
                "impact_percent": change / last_value * 100 if last_value > 0 else 0.0,
            })
    changes.sort(key=lambda row: abs(row["change"]), reverse=True)
    return changes[:TOP_CHANGES_LIMIT]


def concentration_alerts(holdings: list[dict], total_value: float) -> list[str]:
    if not holdings or total_value == 0:
        return []
    alerts = []
    ranked = _ranked_symbols(holdings)
    top_symbol, top_value = ranked[0]
    top_pct = _pct(top_value, total_value)
    if top_pct > 25:
        alerts.append(f"⚠️ {top_symbol} is now {round_half_up(top_pct)}% of portfolio (threshold: 25%)")
    top3_pct = _pct(sum(value for _, value in ranked[:3]), total_value)
    if top3_pct > 60:
        alerts.append(f"⚠️ Top 3 holdings represent {round_half_up(top3_pct)}% of portfolio")
    for exposure, value in group_by_exposure(holdings).items():
        pct = _pct(value, total_value)
        if pct > 70:
            alerts.append(f"⚠️ {exposure} exposure is {round_half_up(pct)}% (consider diversifying)")
    return alerts


def executive_summary(change_percent: float, current_value: float, changes: list[dict], scores: dict, alerts: list[str]) -> str:
    direction = "increased" if change_percent >= 0 else "decreased"
    driver = ""
    if changes:
        main = changes[0]
        sign = "+" if main["impact_percent"] >= 0 else ""
        driver = f", primarily driven by {main['symbol']} ({sign}{main['impact_percent']:.1f}%)"

    months = scores["liquidity"]["months_runway"]
    if scores["liquidity"]["score"] >= 70:
        liquidity = f"your liquidity position remains strong at {months} months runway"
    elif months < 6:
        liquidity = f"liquidity is concerning at {months} months runway"
    else:
        liquidity = f"liquidity is moderate at {months} months runway"

    if alerts:
        action = " Consider rebalancing to reduce concentration risk."
    elif scores["overall"]["score"] >= 70:
        action = " No major allocation changes are needed."
    else:
        action = " Review action items for optimization opportunities."

    return (
        f"Your portfolio {direction} {abs(change_percent):.1f}% this week to {format_aud(current_value)}{driver}. "
        f"{liquidity[0].upper() + liquidity[1:]}.{action}"
    )


def weekly_brief(current: dict, previous: dict | None, history, monthly_burn: float) -> dict:
    holdings = _holdings(current)
    current_value = _total(current)
    previous_value = _total(previous) if previous and previous.get("total_aud") else current_value
    change = current_value - previous_value
    change_percent = change / previous_value * 100 if previous_value > 0 else 0.0

    scores = health_scores(holdings, current_value, monthly_burn, history)
    changes = top_changes(current, previous)
    alerts = concentration_alerts(holdings, current_value)
    return {
        "type": "weekly",
        "date_range": date_range_label(current.get("created_at"), (previous or {}).get("created_at")),
        "current_value": current_value,
        "previous_value": previous_value,
        "change": change,
        "change_percent": change_percent,
        "executive_summary": executive_summary(change_percent, current_value, changes, scores, alerts),
        "top_changes": changes,
        "risk_narrative": risk_narrative(holdings, current_value),
        "concentration_alerts": alerts,
        "action_items": action_items(holdings, current_value, scores),
        "health_scores": scores,
    }


def snapshot_days_ago(history: list[dict], days: int) -> dict | None:
    """Snapshot closest in time to ``days`` before the latest one; the earliest wins ties."""
    dated = [(parse_datetime(s.get("created_at")), s) for s in history or []]
    dated = sorted(((d, s) for d, s in dated if d is not None), key=lambda pair: pair[0])
    if not dated:
        return None
    target = dated[-1][0] - timedelta(days=days)
    closest_at, closest = dated[0]
    best = abs(closest_at - target)
    for at, snap in dated:
        diff = abs(at - target)
        if diff < best:
            best = diff
            closest = snap
    return closest


def _symbol_change(value: float, past: dict | None, symbol: str) -> float:
    before = group_by_symbol(_holdings(past)).get(symbol, 0.0) if past else 0.0
    return (value - before) / before * 100 if before > 0 else 0.0


def asset_analysis(current: dict, history) -> list[dict]:
    total = _total(current)
    past_30 = snapshot_days_ago(history, 30)
    past_90 = snapshot_days_ago(history, 90)
    rows = []
    for symbol, value in _ranked_symbols(_holdings(current))[:ASSET_ANALYSIS_LIMIT]:
        portfolio_pct = _pct(value, total)
        change_30d = _symbol_change(value, past_30, symbol)
        change_90d = _symbol_change(value, past_90, symbol)
        if portfolio_pct > 30:
            recommendation = "Consider Reducing"
        elif portfolio_pct < 5 and change_30d > 20:
            recommendation = "Consider Adding"
        else:
            recommendation = "Hold"
        rows.append({
            "symbol": symbol,
            "current_value": value,
            "portfolio_percent": round_half_up(portfolio_pct, 1),
            "change_30d": round_half_up(change_30d, 1),
            "change_90d": round_half_up(change_90d, 1),
            "recommendation": recommendation,
        })
    return rows


def correlation_proxy(current: dict) -> dict:
    """Rough BTC sensitivity estimated from CRYPTO exposure only.

    This is not a statistical correlation: no price history is involved.
    ``btc_impact`` is the portfolio drop in percent for a 10% BTC drop.
    """
    crypto = sum(float(h.get("value_aud") or 0.0) for h in _holdings(current) if h.get("exposure_type") == "CRYPTO")
    crypto_pct = _pct(crypto, _total(current))
    return {
        "btc_correlation": round_half_up(min(95, crypto_pct * 0.9)),
        "btc_impact": round_half_up(crypto_pct * 0.1, 1),
        "method": "exposure_proxy",
    }


def scenario_table(current: dict) -> list[dict]:
    holdings = _holdings(current)
    total = _total(current)
    groups = group_by_exposure(holdings)
    crypto = groups.get("CRYPTO", 0.0)
    stable = groups.get("STABLECOIN", 0.0)
    ranked = _ranked_symbols(holdings)
    largest_symbol, largest_value = ranked[0] if ranked else ("Largest holding", 0.0)

    rows = []
    for name, loss in (
        ("Crypto market -30%", crypto * 0.3),
        ("Crypto market -50%", crypto * 0.5),
        (f"{largest_symbol} -50%", largest_value * 0.5),
        ("Stablecoins depeg 10%", stable * 0.1),
    ):
        rows.append({"scenario": name, "result": total - loss, "impact": -loss})
    return rows


def historical_context(history) -> dict:
    df = snapshot_frame(history)
    if df.empty:
        return {"tracking_months": 0, "growth_percent": 0.0, "drawdown_count": 0, "avg_recovery_months": 0}

    elapsed = df["created_at"].iloc[-1] - df["created_at"].iloc[0]
    tracking_months = math.floor(elapsed.total_seconds() / (30 * 86400))
    first = float(df["total_aud"].iloc[0])
    last = float(df["total_aud"].iloc[-1])

    # A drawdown is counted once when it first exceeds the threshold; a new peak re-arms it.
    peak = first
    count = 0
    in_drawdown = False
    for value in df["total_aud"]:
        if value > peak:
            peak = value
            in_drawdown = False
        dd = (peak - value) / peak * 100 if peak > 0 else 0.0
        if dd > DRAWDOWN_ALERT_PERCENT and not in_drawdown:
            count += 1
            in_drawdown = True

    return {
        "tracking_months": tracking_months,
        "growth_percent": round_half_up(_pct(last - first, first), 1),
        "drawdown_count": count,
        # Heuristic: tracking time split evenly between drawdowns, not measured recovery.
        "avg_recovery_months": math.floor(tracking_months / (count + 1)) if count > 0 else 0,
    }


def deep_dive(current: dict, previous: dict | None, history, monthly_burn: float) -> dict:
    report = weekly_brief(current, previous, history, monthly_burn)
    report.update({
        "type": "deep-dive",
        "asset_analysis": asset_analysis(current, history),
        "correlation_analysis": correlation_proxy(current),
        "scenario_analysis": scenario_table(current),
        "historical_context": historical_context(history),
    })
    return report


def _liquid_value(holdings: list[dict]) -> float:
    return sum(float(h.get("value_aud") or 0.0) for h in holdings if h.get("liquidity_tier") in (IMMEDIATE, FAST))


def _runway(liquid: float, monthly_burn: float) -> float:
    return liquid / monthly_burn if monthly_burn > 0 else math.inf


def _months(runway: float) -> str:
    return "∞" if math.isinf(runway) else f"{runway:.1f}"


def _unpriced_keys(holdings: list[dict]) -> list[str]:
    return list(dict.fromkeys(h.get("asset_key") for h in holdings if is_unpriced(h)))


def brief_markdown(current: dict, previous: dict | None, monthly_burn: float) -> str:
    """Plain markdown brief comparing the current snapshot with the one a week earlier."""
    holdings = _holdings(current)
    total = _total(current)
    created = parse_datetime(current.get("created_at"))
    lines = [f"## Portfolio Brief - {created:%Y-%m-%d}" if created else "## Portfolio Brief", ""]

    lines.append("### Net Worth")
    lines.append(f"- Current: {format_aud(total)}")
    if previous:
        prev_total = _total(previous)
        change = total - prev_total
        lines.append(f"- 7 days ago: {format_aud(prev_total)}")
        lines.append(f"- Change: {format_aud(change)} ({format_percent(change / prev_total if prev_total > 0 else 0.0)})")
    else:
        lines.append("- No previous snapshot for comparison")
    lines.append("")

    if previous:
        lines.append("### Top Movers")
        now = group_by_asset_key(holdings)
        before = group_by_asset_key(_holdings(previous))
        movers = []
        for key in list(now) + [k for k in before if k not in now]:
            change = now.get(key, {}).get("value_aud", 0.0) - before.get(key, {}).get("value_aud", 0.0)
            symbol = (now.get(key) or before.get(key) or {}).get("symbol") or key
            movers.append((symbol, change))
        movers.sort(key=lambda m: abs(m[1]), reverse=True)
        for symbol, change in movers[:TOP_CHANGES_LIMIT]:
            lines.append(f"- {symbol}: {'+' if change >= 0 else ''}{format_aud(change)}")
        lines.append("")

    lines.append("### Concentration Check")
    exposures = sorted(group_by_asset_key(holdings).values(), key=lambda row: row["value_aud"], reverse=True)
    largest = exposures[0]["value_aud"] / total if exposures and total > 0 else 0.0
    top3 = sum(row["value_aud"] for row in exposures[:3]) / total if total > 0 else 0.0
    if largest > 0.25:
        lines.append(f"- WARNING: {exposures[0]['symbol']} represents {format_percent(largest)} of portfolio")
    if top3 > 0.50:
        lines.append(f"- WARNING: Top 3 assets represent {format_percent(top3)} of portfolio")
    if largest <= 0.25 and top3 <= 0.50:
        lines.append("- Concentration levels are healthy")
    lines.append("")

    lines.append("### Liquidity Runway")
    runway = _runway(_liquid_value(holdings), monthly_burn)
    lines.append(f"- Current: {_months(runway)} months (Immediate + Fast, assuming {format_aud(monthly_burn)} AUD monthly burn)")
    if previous and math.isfinite(runway):
        delta = runway - _runway(_liquid_value(_holdings(previous)), monthly_burn)
        lines.append(f"- Change from last week: {'+' if delta >= 0 else ''}{delta:.1f} months")
    lines.append("")

    unpriced = _unpriced_keys(holdings)
    lines.append("### Unpriced Assets")
    lines.append(f"- Count: {len(unpriced)}")
    if previous:
        delta = len(unpriced) - len(_unpriced_keys(_holdings(previous)))
        lines.append(f"- Change from last week: {'+' if delta >= 0 else ''}{delta}")
    if unpriced:
        symbols = dict.fromkeys(h.get("symbol") for h in holdings if is_unpriced(h))
        lines.append(f"- {', '.join(str(s) for s in symbols)}")
    lines.append("")

    lines.append("### Risk Notes")
    crypto = float(current.get("crypto_aud") or 0.0) / total if total > 0 else 0.0
    if crypto > 0.7:
        lines.append(f"- WARNING: High crypto concentration ({format_percent(crypto)})")
    if runway < 6:
        lines.append(f"- WARNING: Low runway ({_months(runway)} months)")
    if largest > 0.3:
        lines.append(f"- WARNING: Single-asset concentration risk ({exposures[0]['symbol']}: {format_percent(largest)})")
    if crypto <= 0.7 and runway >= 6 and largest <= 0.3:
        lines.append("- No major risk flags detected")
    return "\n".join(lines)
