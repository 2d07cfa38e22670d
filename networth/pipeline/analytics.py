"""Time-series analytics over snapshot history.

Every function takes snapshot dicts (``id``, ``created_at``, ``total_aud``) in
any order, reduces them to points sorted ascending by date and never mutates
the input. Percent outputs are in percent units (12.5 means 12.5%).
"""
from __future__ import annotations

import math

import pandas as pd

from ..utils import parse_datetime, to_iso

DAYS_PER_YEAR = 365.25
RETURN_PERIODS = (
    ("Last 7 days", 7),
    ("Last 30 days", 30),
    ("Last 90 days", 90),
    ("Last 12 months", 365),
)
TIME_RANGES = {"1M": 30, "3M": 90, "6M": 180, "1Y": 365, "ALL": None}


def snapshot_frame(snapshots) -> pd.DataFrame:
    rows = []
    for snap in snapshots or []:
        created = parse_datetime(snap.get("created_at"))
        if created is None:
            continue
        rows.append({
            "id": snap.get("id"),
            "created_at": created,
            "date": to_iso(created),
            "total_aud": float(snap.get("total_aud") or 0.0),
        })
    df = pd.DataFrame(rows, columns=["id", "created_at", "date", "total_aud"])
    if df.empty:
        return df
    with_id = df["id"].notna()
    df = pd.concat([df[with_id].drop_duplicates("id", keep="last"), df[~with_id]])
    # mergesort is stable: equal timestamps keep their input order
    df = df.sort_values("created_at", kind="mergesort").reset_index(drop=True)
    return df


def _pct_change(start: float, end: float) -> float:
    return (end - start) / start * 100 if start > 0 else 0.0


def _cagr(start: float, end: float, years: float) -> float | None:
    """Compound annual growth in percent, or None when it overflows a float.

    Short histories with large gains annualise past the float range.
    """
    if years <= 0 or start <= 0 or end < 0:
        return 0.0
    if end == 0:
        return -100.0
    try:
        growth = math.exp(math.log(end / start) / years)
    except OverflowError:
        return None
    return (growth - 1) * 100


def _extreme(df: pd.DataFrame, highest: bool) -> dict:
    # idxmax/idxmin return the first occurrence, so ties keep the earliest snapshot
    idx = df["total_aud"].idxmax() if highest else df["total_aud"].idxmin()
    row = df.loc[idx]
    return {"value": float(row["total_aud"]), "date": row["date"], "snapshot_id": row["id"]}


def portfolio_metrics(snapshots) -> dict:
    df = snapshot_frame(snapshots)
    if df.empty:
        return {
            "current_net_worth": 0.0,
            "all_time_high": {"value": 0.0, "date": None, "snapshot_id": None},
            "all_time_low": {"value": 0.0, "date": None, "snapshot_id": None},
            "total_change": {"value": 0.0, "percent": 0.0},
            "cagr": 0.0,
        }
    first = df.iloc[0]
    current = df.iloc[-1]
    years = (current["created_at"] - first["created_at"]).total_seconds() / (DAYS_PER_YEAR * 86400)
    start = float(first["total_aud"])
    end = float(current["total_aud"])
    return {
        "current_net_worth": end,
        "all_time_high": _extreme(df, highest=True),
        "all_time_low": _extreme(df, highest=False),
        "total_change": {"value": end - start, "percent": _pct_change(start, end)},
        "cagr": _cagr(start, end, years),
    }


def _period_row(name: str, anchor, current) -> dict:
    start = float(anchor["total_aud"])
    end = float(current["total_aud"])
    return {
        "period": name,
        "start": start,
        "end": end,
        "change": end - start,
        "percent": _pct_change(start, end),
        "start_date": anchor["date"],
    }


def period_returns(snapshots) -> list[dict]:
    """Returns over the fixed look-back periods plus "Since inception".

    The anchor of a period is the latest snapshot not after the cutoff, or the
    earliest snapshot when none is that old. A period whose anchor is the
    latest snapshot itself is skipped.
    """
    df = snapshot_frame(snapshots)
    if df.empty:
        return []
    current = df.iloc[-1]
    out = []
    for name, days in RETURN_PERIODS:
        cutoff = current["created_at"] - pd.Timedelta(days=days)
        eligible = df[df["created_at"] <= cutoff]
        anchor_pos = eligible.index[-1] if not eligible.empty else 0
        if anchor_pos == len(df) - 1:
            continue
        out.append(_period_row(name, df.iloc[anchor_pos], current))
    if len(df) > 1:
        out.append(_period_row("Since inception", df.iloc[0], current))
    return out


def _drawdowns(df: pd.DataFrame) -> pd.Series:
    peak = df["total_aud"].cummax()
    dd = (df["total_aud"] - peak) / peak * 100
    return dd.where(peak > 0, 0.0)


def drawdown_series(snapshots) -> list[dict]:
    df = snapshot_frame(snapshots)
    if df.empty:
        return []
    dd = _drawdowns(df)
    return [{"date": date, "drawdown": float(val)} for date, val in zip(df["date"], dd)]


def _max_drawdown(df: pd.DataFrame) -> dict:
    worst = {"percent": 0.0, "peak": 0.0, "trough": 0.0, "peak_date": None, "trough_date": None}
    peak = df.iloc[0]
    for _, row in df.iterrows():
        if row["total_aud"] > peak["total_aud"]:
            peak = row
        dd = _pct_change(peak["total_aud"], row["total_aud"])
        if dd < worst["percent"]:
            worst = {
                "percent": dd,
                "peak": float(peak["total_aud"]),
                "trough": float(row["total_aud"]),
                "peak_date": peak["date"],
                "trough_date": row["date"],
            }
    return worst


def risk_metrics(snapshots) -> dict:
    """Drawdown and step-change statistics.

    Step changes are absolute AUD differences between consecutive snapshots,
    dated by the later one. Flat steps count as neither up nor down.
    """
    df = snapshot_frame(snapshots)
    if len(df) < 2:
        return {
            "max_drawdown": {"percent": 0.0, "peak": 0.0, "trough": 0.0, "peak_date": None, "trough_date": None},
            "current_drawdown": 0.0,
            "best_step": {"value": 0.0, "date": None},
            "worst_step": {"value": 0.0, "date": None},
            "avg_step_change": 0.0,
            "steps_up": 0,
            "steps_down": 0,
        }
    ath = float(df["total_aud"].max())
    current = float(df["total_aud"].iloc[-1])
    steps = df["total_aud"].diff().iloc[1:]
    dates = df["date"].iloc[1:]
    best_pos = steps.idxmax()
    worst_pos = steps.idxmin()
    return {
        "max_drawdown": _max_drawdown(df),
        "current_drawdown": _pct_change(ath, current) if ath > 0 else 0.0,
        "best_step": {"value": float(steps[best_pos]), "date": dates[best_pos]},
        "worst_step": {"value": float(steps[worst_pos]), "date": dates[worst_pos]},
        "avg_step_change": float(steps.mean()),
        "steps_up": int((steps > 0).sum()),
        "steps_down": int((steps < 0).sum()),
    }


def monthly_returns(snapshots) -> list[dict]:
    """Month-over-month returns using the last snapshot of each calendar month (UTC).

    Months are 1-based.
    """
    df = snapshot_frame(snapshots)
    if df.empty:
        return []
    df["year"] = df["created_at"].map(lambda d: d.year)
    df["month"] = df["created_at"].map(lambda d: d.month)
    month_ends = df.groupby(["year", "month"], sort=True).tail(1).sort_values(["year", "month"])
    out = []
    prev = None
    for _, row in month_ends.iterrows():
        if prev is not None:
            out.append({
                "year": int(row["year"]),
                "month": int(row["month"]),
                "return": _pct_change(float(prev["total_aud"]), float(row["total_aud"])),
            })
        prev = row
    return out


def monthly_heatmap(snapshots) -> list[dict]:
    """Year rows with twelve month cells (None where no return exists)."""
    grid = {}
    for row in monthly_returns(snapshots):
        grid.setdefault(row["year"], [None] * 12)[row["month"] - 1] = row["return"]
    return [{"year": year, "months": grid[year]} for year in sorted(grid)]


def filter_by_time_range(snapshots, time_range: str = "ALL") -> list[dict]:
    if time_range not in TIME_RANGES:
        raise ValueError(f"unknown time range: {time_range}")
    snapshots = list(snapshots or [])
    days = TIME_RANGES[time_range]
    if days is None or not snapshots:
        return snapshots
    dates = [parse_datetime(s.get("created_at")) for s in snapshots]
    known = [d for d in dates if d is not None]
    if not known:
        return snapshots
    cutoff = max(known) - pd.Timedelta(days=days)
    return [s for s, d in zip(snapshots, dates) if d is not None and d >= cutoff]


def analytics_report(snapshots, time_range: str = "ALL") -> dict:
    """Everything the history view needs. Period returns use the full history."""
    window = filter_by_time_range(snapshots, time_range)
    return {
        "range": time_range,
        "snapshot_count": len(window),
        "metrics": portfolio_metrics(window),
        "period_returns": period_returns(snapshots),
        "drawdown_series": drawdown_series(window),
        "risk_metrics": risk_metrics(window),
        "monthly_returns": monthly_returns(window),
        "monthly_heatmap": monthly_heatmap(window),
    }
