"""
Company reference normalization.

CRM writers have stored `company_id` three different ways over time:
a raw id ("abc"), a path string ("companies/abc" or "/companies/abc"),
and a Firestore DocumentReference whose path ends with the id.
Every company comparison in the reporting layer goes through CompanyRef.
"""
from typing import Any, Dict, Iterable, List, Optional

COMPANIES_COLLECTION = "companies"


def _path_of(value: Any) -> Optional[str]:
    """Return the document path of a reference-like value, if it has one."""
    if isinstance(value, dict):
        path = value.get("path")
        return path if isinstance(path, str) else None
    path = getattr(value, "path", None)
    if isinstance(path, str):
        return path
    return None


def _id_from_path(path: str) -> Optional[str]:
    segments = [segment for segment in path.strip().split("/") if segment]
    if not segments:
        return None
    return segments[-1]


def document_id_of(value: Any) -> Optional[str]:
    """Document id behind a raw id, a "collection/id" path or a reference."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return _id_from_path(text) if "/" in text else text
    path = _path_of(value)
    if path:
        return _id_from_path(path)
    return None


class CompanyRef:
    """Normalized company identifier."""

    __slots__ = ("company_id",)

    def __init__(self, company_id: str):
        if not company_id or not company_id.strip():
            raise ValueError("company_id must be a non-empty string")
        self.company_id = company_id.strip()

    @classmethod
    def from_value(cls, value: Any) -> Optional["CompanyRef"]:
        """Build a CompanyRef from any stored encoding; None when unusable."""
        if isinstance(value, CompanyRef):
            return value
        company_id = document_id_of(value)
        return cls(company_id) if company_id else None

    def representations(self) -> List[str]:
        """Textual encodings of this company used by the stored records."""
        return [
            self.company_id,
            f"{COMPANIES_COLLECTION}/{self.company_id}",
            f"/{COMPANIES_COLLECTION}/{self.company_id}",
        ]

    def equals(self, other: Any) -> bool:
        if not isinstance(other, CompanyRef):
            return False
        return self.company_id == other.company_id

    def matches(self, raw_value: Any) -> bool:
        """Check a stored company_id value, whatever its encoding."""
        if raw_value is None:
            return False
        if isinstance(raw_value, str):
            return raw_value.strip() in self.representations()
        path = _path_of(raw_value)
        if path:
            # References match when the id is one of the path segments
            return self.company_id in [segment for segment in path.split("/") if segment]
        return False

    def __eq__(self, other: Any) -> bool:
        return self.equals(other)

    def __hash__(self) -> int:
        return hash(self.company_id)

    def __repr__(self) -> str:
        return f"CompanyRef({self.company_id!r})"

    def __str__(self) -> str:
        return self.company_id


def filter_company_records(
    records: Iterable[Dict[str, Any]],
    company_ref: CompanyRef,
    field: str = "company_id",
) -> List[Dict[str, Any]]:
    """Keep only the records whose company field matches company_ref."""
    return [record for record in records if company_ref.matches(record.get(field))]


def describe_encoding(raw_value: Any) -> str:
    """Classify how a record stores its company id (used by the audit script)."""
    if raw_value is None or (isinstance(raw_value, str) and not raw_value.strip()):
        return "missing"
    if isinstance(raw_value, str):
        return "path" if "/" in raw_value else "raw_id"
    if _path_of(raw_value):
        return "reference"
    return "unknown"
