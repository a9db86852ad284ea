"""
Firestore service for reading CRM records
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable, Sequence

from google.cloud import firestore
from google.cloud.firestore import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath
from google.api_core import exceptions as gcp_exceptions

import sys
from pathlib import Path
sys.path.append(str(Path(__file__).parent.parent))

from config import settings
from services.company_ref import CompanyRef
from services.record_utils import apply_record_filters

logger = logging.getLogger(__name__)

# CRM collections read by the reporting layer
LEADS = 'leads'
CONTACTS = 'contacts'
DEALS = 'deals'
PROPERTIES = 'properties'
EMPLOYEES = 'employees'
INVOICES = 'invoices'
MEETINGS = 'meetings'
HISTORY = 'history'

# Firestore limits `in` filters on document ids
ID_CHUNK_SIZE = 10

def _to_record(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    data['id'] = doc.id
    return data


class FirestoreService:
    """Service for reading CRM collections from Firestore"""

    def __init__(self, client: Optional[firestore.Client] = None, server_side_filters: Optional[bool] = None):
        """Initialize Firestore client"""
        try:
            self.db = client or firestore.Client(project=settings.FIRESTORE_PROJECT_ID or None)
            self.server_side_filters = (
                settings.FIRESTORE_SERVER_SIDE_FILTERS if server_side_filters is None else server_side_filters
            )
            self.companies_collection = self.db.collection(settings.FIRESTORE_COLLECTION_COMPANIES)
            self.users_collection = self.db.collection(settings.FIRESTORE_COLLECTION_USERS)
            logger.info(f"Firestore client initialized for project: {settings.FIRESTORE_PROJECT_ID}")
        except Exception as e:
            logger.error(f"Failed to initialize Firestore client: {e}")
            raise

    @staticmethod
    def _fetch_documents_by_ids(collection, ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Fetch documents by IDs in chunks using document_id IN queries.

        One round trip per chunk of ten ids instead of one `.get()` per id.
        """
        documents: List[Dict[str, Any]] = []
        id_list = sorted({doc_id for doc_id in ids if doc_id})
        if not id_list:
            return documents

        for i in range(0, len(id_list), ID_CHUNK_SIZE):
            chunk_ids = id_list[i : i + ID_CHUNK_SIZE]
            # Note: For document_id queries with "in", positional arguments are required
            query = collection.where(FieldPath.document_id(), "in", chunk_ids)
            for doc in query.stream():
                documents.append(_to_record(doc))

        return documents

    # Company operations

    def company_reference(self, company_ref: CompanyRef):
        """DocumentReference form of a company id, as some writers store it"""
        return self.companies_collection.document(company_ref.company_id)

    def company_exists(self, company_ref: CompanyRef) -> bool:
        """Check whether the company document exists"""
        doc = self.company_reference(company_ref).get()
        return bool(doc.exists)

    # Generic reads

    def get_record(self, collection_name: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Point lookup by document id"""
        try:
            doc = self.db.collection(collection_name).document(record_id).get()
            if doc.exists:
                return _to_record(doc)
            return None
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.PermissionDenied as e:
            logger.error(f"Permission denied getting {collection_name}/{record_id}: {e}")
            return None

    def get_records_by_ids(self, collection_name: str, ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Batch lookup by document ids"""
        return self._fetch_documents_by_ids(self.db.collection(collection_name), ids)

    def scan_collection(self, collection_name: str) -> List[Dict[str, Any]]:
        """Stream a whole collection"""
        return [_to_record(doc) for doc in self.db.collection(collection_name).stream()]

    def _company_values(self, company_ref: CompanyRef) -> List[Any]:
        return company_ref.representations() + [self.company_reference(company_ref)]

    def _server_query(
        self,
        collection_name: str,
        company_ref: Optional[CompanyRef],
        equals: Optional[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        # No range filters here: Firestore drops documents whose date is a string
        # or lives under an alternate field name, and the scan path keeps them.
        query = self.db.collection(collection_name)
        if company_ref is not None:
            query = query.where(filter=FieldFilter('company_id', 'in', self._company_values(company_ref)))
        for field, value in (equals or {}).items():
            query = query.where(filter=FieldFilter(field, '==', value))
        return [_to_record(doc) for doc in query.stream()]

    def fetch_records(
        self,
        collection_name: str,
        company_ref: Optional[CompanyRef],
        date_fields: Optional[Sequence[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        equals: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch a company's records, optionally restricted to a date window.

        Tries the indexed query first (company_id in all known encodings plus
        the equality filters). Missing composite indexes or rejected
        arguments fall back to a full collection scan. The date window and
        the client-side filters are applied in memory on both paths.
        """
        records = None
        if self.server_side_filters:
            try:
                records = self._server_query(collection_name, company_ref, equals)
            except (gcp_exceptions.FailedPrecondition, gcp_exceptions.InvalidArgument) as index_error:
                if 'create_composite=' in str(index_error):
                    logger.warning(
                        f"Firestore index not ready for {collection_name} query, using full scan. "
                        f"Index creation URL: {str(index_error).split('create_composite=')[-1]}"
                    )
                else:
                    logger.warning(f"Server-side {collection_name} query rejected, using full scan: {index_error}")
        if records is None:
            records = self.scan_collection(collection_name)

        filtered = apply_record_filters(records, company_ref, date_fields, start, end, equals)
        logger.debug(f"Fetched {len(filtered)} {collection_name} records for company {company_ref}")
        return filtered

    def get_company_users(self, company_ref: CompanyRef) -> List[Dict[str, Any]]:
        """All users belonging to a company"""
        return self.fetch_records(settings.FIRESTORE_COLLECTION_USERS, company_ref)
