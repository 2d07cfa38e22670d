import sqlite3
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
import structlog
from .schemas import BriefRequest, CalculateRequest, ImportRequest, ManualAssetIn, SettingsUpdate
from ..config import settings, load_portfolio_settings, save_portfolio_settings
from ..db import get_conn, migrate
from ..cache_layer import PriceCache, resolve_prices
from ..utils import now_utc
from ..pipeline.aggregate import chain_breakdown, custody_breakdown, top_exposures, unpriced_assets
from ..pipeline.analytics import TIME_RANGES, analytics_report
from ..pipeline.briefs import delete_brief, generate_brief, get_brief, list_briefs
from ..pipeline.health import health_scores
from ..pipeline.liquidity import bucketize, liquidity_insights, runway_summary, stress_scenarios
from ..pipeline.manual_assets import delete_manual_asset, get_manual_asset, list_manual_assets, upsert_manual_asset
from ..pipeline.report import brief_markdown
from ..pipeline.snapshots import (
    calculate_snapshot,
    get_snapshot,
    import_snapshots,
    latest_snapshot,
    list_snapshots,
    load_history,
    load_perp_positions,
    persist_snapshot,
    previous_snapshot,
    snapshot_wait_hours,
)

router = APIRouter()
log = structlog.get_logger()

def _conn() -> sqlite3.Connection:
    conn = get_conn(settings.db_path)
    migrate(conn)
    return conn

def _latest_or_404(conn: sqlite3.Connection) -> dict:
    snap = latest_snapshot(conn)
    if snap is None:
        raise HTTPException(404, 'no snapshots found')
    return snap

def _price_cache() -> PriceCache:
    return PriceCache(settings.cache_db_path, settings.price_cache_ttl_seconds)

def _resolve_prices(conn: sqlite3.Connection, req: CalculateRequest) -> dict:
    # Posted prices refresh the cache; symbols without one fall back to cached prices
    # stored while the current latest snapshot was in effect.
    latest = latest_snapshot(conn)
    snapshot_id = latest["id"] if latest else None
    cache = _price_cache()
    for symbol, price in req.prices.items():
        if price is not None:
            cache.set(f"price|{symbol}", price, snapshot_id)
    symbols = [h.symbol for h in req.holdings] + ["ETH"]
    prices = resolve_prices(symbols, req.prices.get, cache, snapshot_id)
    return {symbol: price for symbol, price in prices.items() if price is not None}

def _calculate(conn: sqlite3.Connection, req: CalculateRequest) -> dict:
    portfolio = load_portfolio_settings(conn)
    return calculate_snapshot(
        [h.model_dump() for h in req.holdings],
        list_manual_assets(conn),
        portfolio,
        _resolve_prices(conn, req),
        now_utc(),
        perp_positions=[p.model_dump() for p in req.perp_positions],
    )

@router.get(
    '/health',
    summary="Health check",
    description="Returns service and DB connectivity plus latest snapshot metadata.",
    tags=["Health"],
)
def health():
    try:
        conn = _conn()
        row = conn.execute(
            "SELECT id, created_at_utc, total_aud FROM snapshots ORDER BY created_at_utc DESC LIMIT 1"
        ).fetchone()
        last = None
        if row:
            last = {'id': row[0], 'created_at': row[1], 'total_aud': row[2]}
        return {'ok': True, 'db': 'ok', 'latest_snapshot': last}
    except sqlite3.Error as e:
        raise HTTPException(503, f'db_error: {e}')

@router.get(
    '/settings',
    summary="Portfolio settings",
    description="Stored overrides merged over the defaults.",
    tags=["Settings"],
)
def read_settings():
    return load_portfolio_settings(_conn()).model_dump()

@router.post(
    '/settings',
    summary="Update portfolio settings",
    description="Upserts the given keys and returns the merged settings.",
    tags=["Settings"],
)
def update_settings(req: SettingsUpdate):
    try:
        merged = save_portfolio_settings(_conn(), req.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(400, f'invalid settings: {e.errors(include_url=False)}')
    return merged.model_dump()

@router.get('/manual-assets', summary="List manual assets", tags=["Manual assets"])
def manual_assets():
    return {'assets': list_manual_assets(_conn())}

@router.post('/manual-assets', status_code=201, summary="Create manual asset", tags=["Manual assets"])
def create_manual_asset(req: ManualAssetIn):
    try:
        return upsert_manual_asset(_conn(), req.model_dump())
    except ValueError as e:
        raise HTTPException(400, str(e))

@router.put('/manual-assets/{asset_id}', summary="Replace manual asset", tags=["Manual assets"])
def replace_manual_asset(asset_id: str, req: ManualAssetIn):
    conn = _conn()
    try:
        get_manual_asset(conn, asset_id)
    except ValueError as e:
        raise HTTPException(404, str(e))
    try:
        return upsert_manual_asset(conn, req.model_dump(), asset_id=asset_id)
    except ValueError as e:
        raise HTTPException(400, str(e))

@router.delete('/manual-assets/{asset_id}', summary="Delete manual asset", tags=["Manual assets"])
def remove_manual_asset(asset_id: str):
    try:
        delete_manual_asset(_conn(), asset_id)
    except ValueError as e:
        raise HTTPException(404, str(e))
    return {'ok': True, 'deleted': asset_id}

@router.post(
    '/calculate',
    summary="Live valuation",
    description="Values posted holdings plus stored manual assets without persisting a snapshot.",
    tags=["Snapshots"],
)
def calculate(req: CalculateRequest):
    conn = _conn()
    result = _calculate(conn, req)
    snap = result['snapshot']
    result['top_exposures'] = top_exposures(snap)
    result['chain_breakdown'] = chain_breakdown(snap)
    result['unpriced'] = unpriced_assets(snap)
    return result

@router.get('/snapshots', summary="List snapshots", tags=["Snapshots"])
def snapshots(limit: int = 50, offset: int = 0):
    if limit < 1 or offset < 0:
        raise HTTPException(400, 'limit must be >= 1 and offset >= 0')
    return list_snapshots(_conn(), limit=limit, offset=offset)

@router.post(
    '/snapshots',
    status_code=201,
    summary="Create snapshot",
    description="Values the posted holdings and persists an append-only snapshot, at most once per interval.",
    tags=["Snapshots"],
)
def create_snapshot(req: CalculateRequest):
    conn = _conn()
    last = latest_snapshot(conn)
    if last is not None:
        wait = snapshot_wait_hours(last['created_at'], now_utc(), settings.snapshot_min_interval_hours)
        if wait > 0:
            log.info("snapshot_throttled", last_snapshot_id=last['id'], wait_hours=wait)
            raise HTTPException(429, {
                'error': f'Next snapshot allowed in {wait} hours.',
                'next_snapshot_allowed_in_hours': wait,
                'last_snapshot_id': last['id'],
            })
    result = _calculate(conn, req)
    persist_snapshot(conn, result['snapshot'], result['perp_positions'])
    _price_cache().cleanup()
    return result

@router.post('/snapshots/import', summary="Import historical totals", tags=["Snapshots"])
def import_history(req: ImportRequest):
    if not req.snapshots:
        raise HTTPException(400, 'snapshots must not be empty')
    return import_snapshots(_conn(), [s.model_dump() for s in req.snapshots])

@router.get('/snapshots/{snapshot_id}', summary="Get snapshot", tags=["Snapshots"])
def snapshot(snapshot_id: str):
    conn = _conn()
    try:
        snap = get_snapshot(conn, snapshot_id)
    except ValueError as e:
        raise HTTPException(404, str(e))
    return {
        'snapshot': snap,
        'perp_positions': load_perp_positions(conn, snapshot_id),
        'top_exposures': top_exposures(snap),
        'chain_breakdown': chain_breakdown(snap),
        'custody_breakdown': custody_breakdown(snap),
        'unpriced': unpriced_assets(snap),
    }

@router.get(
    '/liquidity',
    summary="Liquidity analysis",
    description="Tier buckets, runway, stress scenarios and insights for the latest snapshot.",
    tags=["Analytics"],
)
def liquidity():
    conn = _conn()
    snap = _latest_or_404(conn)
    portfolio = load_portfolio_settings(conn)
    buckets = bucketize(snap['holdings'], portfolio)
    return {
        'snapshot_id': snap['id'],
        'total_aud': snap['total_aud'],
        'buckets': buckets,
        'runway': runway_summary(buckets, portfolio),
        'scenarios': stress_scenarios(snap, portfolio),
        'insights': liquidity_insights(snap, portfolio),
    }

@router.get(
    '/analytics',
    summary="History analytics",
    description="Metrics, period returns, drawdowns, risk metrics and monthly returns. range is 1M|3M|6M|1Y|ALL.",
    tags=["Analytics"],
)
def analytics(time_range: str = Query('ALL', alias='range')):
    time_range = time_range.upper()
    if time_range not in TIME_RANGES:
        raise HTTPException(400, 'range must be 1M|3M|6M|1Y|ALL')
    return analytics_report(load_history(_conn()), time_range)

@router.get('/health-scores', summary="Portfolio health scores", tags=["Analytics"])
def scores():
    conn = _conn()
    snap = _latest_or_404(conn)
    portfolio = load_portfolio_settings(conn)
    return health_scores(snap['holdings'], snap['total_aud'], portfolio.monthly_burn_aud, load_history(conn))

@router.get('/briefs', summary="List reports", tags=["Briefs"])
def briefs():
    return {'briefs': list_briefs(_conn(), limit=settings.briefs_list_limit)}

@router.post('/briefs', status_code=201, summary="Generate report", tags=["Briefs"])
def create_brief(req: BriefRequest):
    conn = _conn()
    try:
        return generate_brief(conn, req.type, load_portfolio_settings(conn), now_utc())
    except LookupError:
        raise HTTPException(400, 'No snapshots available. Create a snapshot first.')

@router.get(
    '/briefs/latest/markdown',
    response_class=PlainTextResponse,
    summary="Markdown brief",
    description="Plain-text brief comparing the latest snapshot with the one before it.",
    tags=["Briefs"],
)
def latest_brief_markdown():
    conn = _conn()
    snap = _latest_or_404(conn)
    previous = previous_snapshot(conn, snap['created_at'])
    return brief_markdown(snap, previous, load_portfolio_settings(conn).monthly_burn_aud)

@router.get('/briefs/{brief_id}', summary="Get report", tags=["Briefs"])
def brief(brief_id: str):
    try:
        return get_brief(_conn(), brief_id)
    except ValueError as e:
        raise HTTPException(404, str(e))

@router.delete('/briefs/{brief_id}', summary="Delete report", tags=["Briefs"])
def remove_brief(brief_id: str):
    try:
        delete_brief(_conn(), brief_id)
    except ValueError as e:
        raise HTTPException(404, str(e))
    return {'ok': True, 'deleted': brief_id}
