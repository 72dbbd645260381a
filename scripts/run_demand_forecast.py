#!/usr/bin/env python3
"""Run the demand forecast once (for cron: `0 0 * * 0`, Sundays 00:00 UTC).

Usage:
  python scripts/run_demand_forecast.py
  python scripts/run_demand_forecast.py --as-of 2024-07-07T00:00:00+00:00
"""
import argparse
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.core.logging_config import configure_logging  # noqa: E402
from backend.app.services.forecast import run_demand_forecast  # noqa: E402


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--as-of", type=str, help="ISO timestamp to treat as now", default=None)
    args = ap.parse_args()

    configure_logging()
    now = datetime.fromisoformat(args.as_of) if args.as_of else None
    result = run_demand_forecast(now=now)
    print(f"Demand forecast {result['status']}: {result['forecasts']} forecasts since {result['window_start']}")


if __name__ == "__main__":
    main()
