"""Generate and store weekly and deep-dive reports.

Reports are immutable once written; they can only be read or deleted.
"""
import json
import sqlite3
import uuid

import structlog

from ..config import DEFAULT_PORTFOLIO_SETTINGS
from ..utils import now_utc, sha256_json, to_iso
from .report import deep_dive, weekly_brief
from .snapshots import latest_snapshot, load_history, previous_snapshot

log = structlog.get_logger()

REPORT_TYPES = {"weekly": weekly_brief, "deep-dive": deep_dive}


def generate_brief(conn: sqlite3.Connection, report_type: str = "weekly", settings=None, now=None) -> dict:
    if report_type not in REPORT_TYPES:
        raise ValueError(f"report_type must be one of {sorted(REPORT_TYPES)}")
    settings = settings or DEFAULT_PORTFOLIO_SETTINGS
    current = latest_snapshot(conn)
    if current is None:
        raise LookupError("no snapshots available")
    previous = previous_snapshot(conn, current["created_at"])
    history = load_history(conn, with_holdings=report_type == "deep-dive")
    data = REPORT_TYPES[report_type](current, previous, history, settings.monthly_burn_aud)

    brief = {
        "id": str(uuid.uuid4()),
        "created_at": to_iso(now or now_utc()),
        "report_type": report_type,
        "snapshot_id": current["id"],
        "data": data,
    }
    conn.execute(
        """
        INSERT INTO briefs(id, created_at_utc, report_type, snapshot_id, payload_json, payload_sha256)
        VALUES(?,?,?,?,?,?)
        """,
        (brief["id"], brief["created_at"], report_type, current["id"], json.dumps(data), sha256_json(data)),
    )
    log.info("brief_generated", brief_id=brief["id"], report_type=report_type, snapshot_id=current["id"])
    return brief


def _row_to_brief(row) -> dict:
    return {
        "id": row[0],
        "created_at": row[1],
        "report_type": row[2],
        "snapshot_id": row[3],
        "data": json.loads(row[4]),
    }


def list_briefs(conn: sqlite3.Connection, limit: int = 50) -> list[dict]:
    rows = conn.execute(
        """
        SELECT id, created_at_utc, report_type, snapshot_id, payload_json
        FROM briefs ORDER BY created_at_utc DESC LIMIT ?
        """,
        (int(limit),),
    ).fetchall()
    return [_row_to_brief(r) for r in rows]


def get_brief(conn: sqlite3.Connection, brief_id: str) -> dict:
    row = conn.execute(
        "SELECT id, created_at_utc, report_type, snapshot_id, payload_json FROM briefs WHERE id=?",
        (brief_id,),
    ).fetchone()
    if not row:
        raise ValueError(f"brief not found: {brief_id}")
    return _row_to_brief(row)


def delete_brief(conn: sqlite3.Connection, brief_id: str) -> bool:
    cur = conn.execute("DELETE FROM briefs WHERE id=?", (brief_id,))
    if cur.rowcount == 0:
        raise ValueError(f"brief not found: {brief_id}")
    log.info("brief_deleted", brief_id=brief_id)
    return True
