from pathlib import Path
import argparse
import json
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from networth.db import get_conn, migrate
from networth.config import settings
from networth.logging import setup_logging
from networth.pipeline.snapshots import import_snapshots


def _load(path: Path) -> list[dict]:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("snapshots") or []
    return data


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Import historical net worth totals from a JSON file.")
    parser.add_argument("path", help="JSON list of {date, total_aud} rows (or {snapshots: [...]})")
    args = parser.parse_args()

    setup_logging("console")
    conn = get_conn(settings.db_path)
    migrate(conn)
    result = import_snapshots(conn, _load(Path(args.path)))
    print('Imported', result['imported'], '| skipped', result['skipped'])
