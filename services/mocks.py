"""
Mock services for testing without GCP dependencies
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, Any, List, Optional, Iterable, Sequence

from services.company_ref import CompanyRef
from services.record_utils import apply_record_filters

logger = logging.getLogger(__name__)


class MockDocumentReference:
    """Stand-in for a Firestore DocumentReference stored in a record field"""

    def __init__(self, path: str):
        self.path = path
        self.id = path.rstrip('/').split('/')[-1]

    def __eq__(self, other) -> bool:
        return isinstance(other, MockDocumentReference) and other.path == self.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"MockDocumentReference({self.path!r})"


class MockFirestoreService:
    """In-memory store exposing the same read API as FirestoreService"""

    def __init__(self):
        """Initialize mock storage"""
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        # collection name -> exception raised by reads, to simulate outages
        self.failures: Dict[str, Exception] = {}
        self.read_log: List[str] = []
        logger.info("Mock Firestore service initialized")

    # Seeding

    def add_record(self, collection_name: str, data: Dict[str, Any], record_id: Optional[str] = None) -> str:
        """Store a record and return its id"""
        record_id = record_id or data.get('id') or str(uuid.uuid4())
        stored = dict(data)
        stored.pop('id', None)
        self.collections[collection_name][record_id] = stored
        return record_id

    def add_company(self, company_id: str, data: Optional[Dict[str, Any]] = None) -> str:
        return self.add_record('companies', data or {'name': company_id}, record_id=company_id)

    def fail_collection(self, collection_name: str, error: Optional[Exception] = None) -> None:
        """Make every read of a collection raise"""
        self.failures[collection_name] = error or RuntimeError(f"Mock: {collection_name} unavailable")

    def _read(self, collection_name: str) -> List[Dict[str, Any]]:
        self.read_log.append(collection_name)
        if collection_name in self.failures:
            raise self.failures[collection_name]
        return [
            {**data, 'id': record_id}
            for record_id, data in self.collections.get(collection_name, {}).items()
        ]

    # Read API

    def company_reference(self, company_ref: CompanyRef) -> MockDocumentReference:
        return MockDocumentReference(f"companies/{company_ref.company_id}")

    def company_exists(self, company_ref: CompanyRef) -> bool:
        if 'companies' in self.failures:
            raise self.failures['companies']
        return company_ref.company_id in self.collections.get('companies', {})

    def get_record(self, collection_name: str, record_id: str) -> Optional[Dict[str, Any]]:
        for record in self._read(collection_name):
            if record['id'] == record_id:
                return record
        return None

    def get_records_by_ids(self, collection_name: str, ids: Iterable[str]) -> List[Dict[str, Any]]:
        wanted = {doc_id for doc_id in ids if doc_id}
        if not wanted:
            return []
        return [record for record in self._read(collection_name) if record['id'] in wanted]

    def scan_collection(self, collection_name: str) -> List[Dict[str, Any]]:
        return self._read(collection_name)

    def fetch_records(
        self,
        collection_name: str,
        company_ref: Optional[CompanyRef],
        date_fields: Optional[Sequence[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        equals: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return apply_record_filters(self._read(collection_name), company_ref, date_fields, start, end, equals)

    def get_company_users(self, company_ref: CompanyRef) -> List[Dict[str, Any]]:
        return self.fetch_records('users', company_ref)
