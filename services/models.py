"""
Report models returned by the dashboard and seller analytics services
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from services.record_utils import to_datetime

# Known status values per collection, in chart order
LEAD_STATUSES = ("Pending", "Gain", "Loss")
DEAL_STATUSES = ("Opened", "Gain", "Loss")
PROPERTY_STATUSES = ("Pending", "Sold")
CONTACT_STATUSES = ("Pending", "Contacted", "Deal", "Loss")
INTEREST_LEVELS = ("High", "Medium", "Low")
OTHER_STATUS = "Other"

UNKNOWN_SELLER_NAME = "Unknown User"


class CamelModel(BaseModel):
    """Base model that serializes with camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DateRange(CamelModel):
    """Inclusive [start, end] window, always timezone-aware UTC"""
    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce_datetime(cls, value: Any) -> datetime:
        parsed = to_datetime(value)
        if parsed is None:
            raise ValueError("must be a valid datetime")
        return parsed

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    @classmethod
    def default(cls, days: int = 30, now: Optional[datetime] = None) -> "DateRange":
        end = to_datetime(now) if now else datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=days), end=end)

    def previous_period(self) -> "DateRange":
        """Window of the same length ending just before this one starts."""
        previous_end = self.start - timedelta(microseconds=1)
        return DateRange(start=previous_end - (self.end - self.start), end=previous_end)


class ReportCounts(CamelModel):
    leads: int = 0
    contacts: int = 0
    deals: int = 0
    properties: int = 0
    employees: int = 0
    invoices: int = 0
    meetings: int = 0


class RevenuePoint(CamelModel):
    date: str
    amount: float


class SellerRanking(CamelModel):
    seller_id: str
    name: str = UNKNOWN_SELLER_NAME
    picture_url: Optional[str] = None
    deal_count: int = 0
    total_amount: float = 0.0


class InvoiceTotals(CamelModel):
    paid_amount: float = 0.0
    pending_amount: float = 0.0


class DealTotals(CamelModel):
    total_amount: float = 0.0
    gain_amount: float = 0.0


def _zero_distribution(statuses) -> Dict[str, int]:
    return {status: 0 for status in statuses}


class Report(CamelModel):
    """Company dashboard report"""
    company_id: str
    date_range: DateRange
    counts: ReportCounts = Field(default_factory=ReportCounts)
    leads_status_distribution: Dict[str, int] = Field(default_factory=lambda: _zero_distribution(LEAD_STATUSES))
    deals_status_distribution: Dict[str, int] = Field(default_factory=lambda: _zero_distribution(DEAL_STATUSES))
    properties_status_distribution: Dict[str, int] = Field(default_factory=lambda: _zero_distribution(PROPERTY_STATUSES))
    revenue_by_day: List[RevenuePoint] = Field(default_factory=list)
    top_sellers: List[SellerRanking] = Field(default_factory=list)
    recent_activity: List[Dict[str, Any]] = Field(default_factory=list)
    upcoming_meetings: List[Dict[str, Any]] = Field(default_factory=list)
    invoice_totals: InvoiceTotals = Field(default_factory=InvoiceTotals)
    deal_totals: DealTotals = Field(default_factory=DealTotals)

    @classmethod
    def empty(cls, company_id: str, date_range: DateRange) -> "Report":
        return cls(company_id=company_id or "", date_range=date_range)


class MetricComparison(CamelModel):
    current: float = 0
    previous: float = 0
    percent_change: float = 0


class ComparisonStats(CamelModel):
    """Current period against the previous period of the same length"""
    company_id: str
    date_range: DateRange
    previous_range: DateRange
    leads: MetricComparison = Field(default_factory=MetricComparison)
    contacts: MetricComparison = Field(default_factory=MetricComparison)
    deals: MetricComparison = Field(default_factory=MetricComparison)
    properties: MetricComparison = Field(default_factory=MetricComparison)
    revenue: MetricComparison = Field(default_factory=MetricComparison)


class RoleDistribution(CamelModel):
    company_id: str
    roles: Dict[str, int] = Field(default_factory=dict)
    total: int = 0


class ContactStats(CamelModel):
    total: int = 0
    pending: int = 0
    contacted: int = 0
    deal: int = 0
    loss: int = 0


class DealStats(CamelModel):
    total: int = 0
    opened: int = 0
    gain: int = 0
    loss: int = 0
    total_value: float = 0.0
    gain_value: float = 0.0


class LeadStats(CamelModel):
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class InvoiceStats(CamelModel):
    total: int = 0
    paid: int = 0
    pending: int = 0
    overdue: int = 0
    total_value: float = 0.0
    paid_value: float = 0.0


class SellerAnalytics(CamelModel):
    company_id: str
    seller_id: str
    date_range: DateRange
    contacts: ContactStats = Field(default_factory=ContactStats)
    deals: DealStats = Field(default_factory=DealStats)
    leads: LeadStats = Field(default_factory=LeadStats)
    invoices: InvoiceStats = Field(default_factory=InvoiceStats)
    overall_progress: int = 0


class SellerProgress(CamelModel):
    seller_id: str
    name: str = UNKNOWN_SELLER_NAME
    total: int = 0
    pending: int = 0
    contacted: int = 0
    deal: int = 0
    loss: int = 0
    progress_count: int = 0
    progress_percentage: int = 0
