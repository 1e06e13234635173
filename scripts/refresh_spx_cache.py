from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import DATA_DIR, PROXY_TIMEOUT_MS
from providers.common import FetchError, fetch_url, finite_or_none

STOOQ_DAILY_CSV = "https://stooq.com/q/d/l/?s=%5Espx&i=d"
DEFAULT_OUTPUT = DATA_DIR / "spx.json"


def parse_stooq_daily(csv_text: str) -> dict:
    """Last row of a ``date,open,high,low,close,volume`` CSV as a cache document."""
    lines = csv_text.strip().split("\n")
    fields = lines[-1].split(",")
    value = finite_or_none(fields[4]) if len(fields) >= 5 else None
    if value is None:
        raise ValueError("Invalid CSV")
    return {"value": value, "date": fields[0].strip(), "source": "stooq"}


def refresh_cache(output: Path) -> dict:
    csv_text = fetch_url(STOOQ_DAILY_CSV, timeout=PROXY_TIMEOUT_MS / 1000)
    document = parse_stooq_daily(csv_text)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(document, indent=2))
    return document


def main() -> int:
    parser = argparse.ArgumentParser(description="Write the local S&P 500 end-of-day cache document from Stooq.")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Output cache JSON path.")
    args = parser.parse_args()

    try:
        document = refresh_cache(args.output)
    except (FetchError, ValueError, OSError) as err:
        print(f"Cache refresh failed: {err}")
        return 1
    print(f"Wrote {args.output}: value={document['value']} date={document['date']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
