"""Pytest configuration: local imports, in-memory store and a seeded company."""
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Keep the API on the in-memory store during tests
os.environ.setdefault("USE_MOCK_SERVICES", "1")

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.mocks import MockDocumentReference, MockFirestoreService
from services.models import DateRange

COMPANY_ID = "acme"
OTHER_COMPANY_ID = "globex"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed 'now' in the middle of the reporting month."""

    return utc(2025, 3, 15, 12, 0)


@pytest.fixture
def march() -> DateRange:
    return DateRange(start=utc(2025, 3, 1), end=utc(2025, 3, 31, 23, 59, 59))


@pytest.fixture
def empty_store() -> MockFirestoreService:
    store = MockFirestoreService()
    store.add_company(COMPANY_ID)
    return store


@pytest.fixture
def store() -> MockFirestoreService:
    """A company whose records use all three company_id encodings."""

    store = MockFirestoreService()
    store.add_company(COMPANY_ID)
    store.add_company(OTHER_COMPANY_ID)
    ref = MockDocumentReference(f"companies/{COMPANY_ID}")

    store.add_record("users", {"firstname": "Sara", "lastname": "Ali", "Role": "Seller",
                               "company_id": COMPANY_ID, "pictureUrl": "https://img/sara.png"}, "s1")
    store.add_record("users", {"firstname": "Omar", "lastname": "Haddad", "Role": "Seller",
                               "company_id": f"/companies/{COMPANY_ID}"}, "s3")
    store.add_record("users", {"firstname": "Hana", "lastname": "Nasser", "Role": "HR",
                               "company_id": COMPANY_ID}, "hr1")

    # Deals: 100 + 200 Gain, 300 Loss, each company encoding once
    store.add_record("deals", {"company_id": COMPANY_ID, "Status": "Gain", "Amount": 100,
                               "seller_id": "s1", "CreationDate": utc(2025, 3, 2, 9)}, "d1")
    store.add_record("deals", {"company_id": f"companies/{COMPANY_ID}", "Status": "Gain", "Amount": 200,
                               "seller_id": "s2", "CreationDate": utc(2025, 3, 2, 17)}, "d2")
    store.add_record("deals", {"company_id": ref, "Status": "Loss", "Amount": "300",
                               "seller_id": "users/s1", "CreationDate": utc(2025, 3, 5, 10)}, "d3")
    # Outside the range or the company
    store.add_record("deals", {"company_id": COMPANY_ID, "Status": "Gain", "Amount": 999,
                               "seller_id": "s1", "CreationDate": utc(2025, 2, 10)}, "d-feb")
    store.add_record("deals", {"company_id": OTHER_COMPANY_ID, "Status": "Gain", "Amount": 5000,
                               "seller_id": "x9", "CreationDate": utc(2025, 3, 3)}, "d-other")

    for record_id, status in [("l1", "Pending"), ("l2", "Gain"), ("l3", "Gain"), ("l4", "Qualified")]:
        store.add_record("leads", {"company_id": COMPANY_ID, "status": status, "seller_id": "s1",
                                   "InterestLevel": "High" if status == "Gain" else "Low",
                                   "CreationDate": utc(2025, 3, 4)}, record_id)

    store.add_record("contacts", {"company_id": COMPANY_ID, "status": "Contacted", "seller_id": "s1",
                                  "CreationDate": utc(2025, 3, 6)}, "c1")
    store.add_record("contacts", {"company_id": ref, "status": "Pending", "seller_id": "s1",
                                  "CreationDate": utc(2025, 3, 7)}, "c2")
    store.add_record("contacts", {"company_id": COMPANY_ID, "status": "Deal", "seller_id": "s3",
                                  "CreationDate": utc(2025, 3, 8)}, "c3")

    store.add_record("properties", {"company_id": COMPANY_ID, "Status": "Sold", "price": 900000,
                                    "CreationDate": utc(2025, 3, 9)}, "p1")
    store.add_record("properties", {"company_id": COMPANY_ID, "Status": "Pending", "price": 450000,
                                    "createdAt": "2025-03-10T08:00:00Z"}, "p2")

    store.add_record("employees", {"company_id": COMPANY_ID, "role": "Sales", "status": "Working"}, "e1")
    store.add_record("employees", {"company_id": ref, "role": "Sales", "status": "Vacation"}, "e2")
    store.add_record("employees", {"company_id": COMPANY_ID, "status": "Working"}, "e3")
    store.add_record("employees", {"company_id": OTHER_COMPANY_ID, "role": "Admin"}, "e-other")

    store.add_record("invoices", {"company_id": COMPANY_ID, "Status": "Paid", "amount": 500,
                                  "creator_id": "s1", "CreationDate": utc(2025, 3, 3)}, "i1")
    store.add_record("invoices", {"company_id": COMPANY_ID, "Status": "Pending", "amount": 250,
                                  "creator_id": "s1", "DateLimit": utc(2025, 3, 10),
                                  "CreationDate": utc(2025, 3, 4)}, "i2")
    store.add_record("invoices", {"company_id": COMPANY_ID, "Status": "Missed", "amount": 100,
                                  "creator_id": "s1", "CreationDate": utc(2025, 3, 5)}, "i3")

    store.add_record("meetings", {"company_id": COMPANY_ID, "title": "Kickoff",
                                  "DateTime": utc(2025, 3, 10, 9)}, "m1")
    store.add_record("meetings", {"company_id": COMPANY_ID, "title": "Viewing",
                                  "DateTime": utc(2025, 3, 20, 14)}, "m2")
    store.add_record("meetings", {"company_id": ref, "title": "Signing",
                                  "DateTime": utc(2025, 4, 5, 11)}, "m3")
    store.add_record("meetings", {"company_id": COMPANY_ID, "title": "Old",
                                  "DateTime": utc(2025, 2, 1, 11)}, "m-old")

    base = utc(2025, 3, 1, 8)
    for i in range(12):
        store.add_record("history", {"company_id": COMPANY_ID, "action": "Updated", "entityType": "Deal",
                                     "company_ref": ref, "DateTime": base + timedelta(hours=i)}, f"h{i:02d}")
    return store
