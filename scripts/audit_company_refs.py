#!/usr/bin/env python3
"""
Audit how CRM records encode their company_id.

For every collection read by the dashboards this counts records storing
company_id as a raw id, a "companies/<id>" path, a DocumentReference, or
not at all. Records in the last two groups are the ones the server-side
queries can miss.
"""

import sys
import argparse
from collections import Counter
from pathlib import Path
from typing import Dict, List

# Add parent directory to path to import config
sys.path.append(str(Path(__file__).parent.parent))

from services.company_ref import CompanyRef, describe_encoding
from services.firestore_service import (
    FirestoreService, LEADS, CONTACTS, DEALS, PROPERTIES, EMPLOYEES, INVOICES, MEETINGS, HISTORY,
)
import logging

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

AUDITED_COLLECTIONS = [LEADS, CONTACTS, DEALS, PROPERTIES, EMPLOYEES, INVOICES, MEETINGS, HISTORY, 'users']


def audit_records(records: List[Dict], company_ref: CompanyRef = None) -> Counter:
    """Count company_id encodings, optionally only for one company"""
    counts = Counter()
    for record in records:
        raw_value = record.get('company_id')
        if company_ref is not None and not company_ref.matches(raw_value):
            continue
        counts[describe_encoding(raw_value)] += 1
    return counts


def main():
    parser = argparse.ArgumentParser(description='Audit company_id encodings across CRM collections')
    parser.add_argument('--company', help='Only count records belonging to this company')
    parser.add_argument(
        '--collections',
        nargs='+',
        default=AUDITED_COLLECTIONS,
        help='Collections to scan (default: all dashboard collections)'
    )
    args = parser.parse_args()

    company_ref = CompanyRef.from_value(args.company) if args.company else None
    firestore_service = FirestoreService()

    logger.info("=" * 60)
    logger.info("COMPANY REFERENCE AUDIT")
    logger.info("=" * 60)

    totals = Counter()
    for collection_name in args.collections:
        try:
            records = firestore_service.scan_collection(collection_name)
        except Exception as e:
            logger.error(f"❌ Failed to scan {collection_name}: {e}")
            continue
        counts = audit_records(records, company_ref)
        totals.update(counts)
        summary = ", ".join(f"{kind}={count}" for kind, count in sorted(counts.items())) or "empty"
        logger.info(f"  {collection_name:<12} {summary}")

    drifted = totals['path'] + totals['reference']
    logger.info("-" * 60)
    logger.info(f"Total records: {sum(totals.values())}, non-raw encodings: {drifted}, missing: {totals['missing']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
