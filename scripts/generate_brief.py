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
from networth.config import settings, load_portfolio_settings
from networth.logging import setup_logging
from networth.pipeline.briefs import REPORT_TYPES, generate_brief
from networth.pipeline.report import brief_markdown
from networth.pipeline.snapshots import latest_snapshot, previous_snapshot

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Generate a report from the latest snapshot.")
    parser.add_argument("--type", default="weekly", choices=sorted(REPORT_TYPES) + ["markdown"])
    args = parser.parse_args()

    setup_logging("console")
    conn = get_conn(settings.db_path)
    migrate(conn)
    portfolio = load_portfolio_settings(conn)
    if args.type == "markdown":
        current = latest_snapshot(conn)
        if current is None:
            sys.exit("No snapshots available. Create a snapshot first.")
        print(brief_markdown(current, previous_snapshot(conn, current["created_at"]), portfolio.monthly_burn_aud))
    else:
        try:
            brief = generate_brief(conn, args.type, portfolio)
        except LookupError:
            sys.exit("No snapshots available. Create a snapshot first.")
        print(json.dumps(brief, indent=2, default=str))
