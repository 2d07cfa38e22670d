import hashlib, json, math
from datetime import datetime, timezone
from dateutil import parser as date_parser

def sha256_json(obj) -> str:
    return hashlib.sha256(json.dumps(obj, sort_keys=True, default=str).encode()).hexdigest()

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def now_utc_iso() -> str:
    return now_utc().isoformat()

def parse_datetime(val) -> datetime | None:
    """Parse an ISO timestamp (or pass a datetime through) as an aware UTC datetime."""
    if val is None:
        return None
    if isinstance(val, datetime):
        dt = val
    else:
        text = str(val).strip()
        if not text:
            return None
        try:
            dt = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        # Stored timestamps without an offset are UTC.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def to_iso(val) -> str | None:
    dt = parse_datetime(val)
    return dt.isoformat() if dt else None

def round_half_up(val: float, ndigits: int = 0):
    """Round halves towards +infinity.

    Python's round() is banker's rounding, which moves score breakpoints.
    """
    if ndigits == 0:
        return int(math.floor(val + 0.5))
    factor = 10 ** ndigits
    return math.floor(val * factor + 0.5) / factor

def format_number(val) -> str:
    """Render whole floats without a trailing ``.0`` (40.0 -> "40", 12.5 -> "12.5")."""
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val)

def format_aud(val: float) -> str:
    sign = "-" if val < 0 else ""
    return f"{sign}${abs(val):,.0f}"

def format_percent(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"
