#!/usr/bin/env python3
"""
Print a company dashboard report as JSON.

Examples:
  # Last 30 days:
  python scripts/company_report.py COMPANY_ID

  # Explicit range, with the previous-period comparison:
  python scripts/company_report.py COMPANY_ID --start 2025-01-01 --end 2025-01-31 --compare
"""

import sys
import json
import asyncio
import argparse
from pathlib import Path

# Add parent directory to path to import config
sys.path.append(str(Path(__file__).parent.parent))

from config import settings
from services.dashboard_service import DashboardService
from services.firestore_service import FirestoreService
from services.models import DateRange
from services.record_utils import to_datetime
import logging

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def build_date_range(start: str, end: str, days: int) -> DateRange:
    if start and end:
        start_dt, end_dt = to_datetime(start), to_datetime(end)
        if start_dt is None or end_dt is None:
            raise SystemExit("--start and --end must be ISO-8601 dates")
        return DateRange(start=start_dt, end=end_dt)
    if start or end:
        raise SystemExit("--start and --end must be given together")
    return DateRange.default(days)


async def run(args) -> dict:
    service = DashboardService(FirestoreService())
    date_range = build_date_range(args.start, args.end, args.days)
    output = {"report": (await service.compute_company_report(args.company_id, date_range)).to_response()}
    if args.compare:
        output["comparison"] = (await service.compute_comparison(args.company_id, date_range)).to_response()
    return output


def main():
    parser = argparse.ArgumentParser(
        description='Compute a company dashboard report from Firestore',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('company_id', help='Company id (raw id or companies/<id> path)')
    parser.add_argument('--start', help='Range start, ISO-8601')
    parser.add_argument('--end', help='Range end, ISO-8601 (inclusive)')
    parser.add_argument(
        '--days',
        type=int,
        default=settings.DEFAULT_REPORT_DAYS,
        help='Length of the default range ending now (default: %(default)s)'
    )
    parser.add_argument('--compare', action='store_true', help='Include the previous-period comparison')
    args = parser.parse_args()

    logger.info(f"Project: {settings.FIRESTORE_PROJECT_ID or '(default)'}")
    output = asyncio.run(run(args))
    print(json.dumps(output, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
