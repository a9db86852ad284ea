"""
Dashboard service: company report aggregation over the CRM collections
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import sys
from pathlib import Path
sys.path.append(str(Path(__file__).parent.parent))

from config import settings
from services.company_ref import CompanyRef, document_id_of
from services.firestore_service import (
    LEADS, CONTACTS, DEALS, PROPERTIES, EMPLOYEES, INVOICES, MEETINGS, HISTORY,
)
from services.models import (
    DEAL_STATUSES, LEAD_STATUSES, OTHER_STATUS, PROPERTY_STATUSES, UNKNOWN_SELLER_NAME,
    ComparisonStats, DateRange, DealTotals, InvoiceTotals, MetricComparison, Report,
    ReportCounts, RevenuePoint, RoleDistribution, SellerRanking,
)
from services.record_utils import (
    first_datetime, first_value, percent_of, sorted_by_time, to_amount, to_datetime, to_json_safe,
)

logger = logging.getLogger(__name__)

# Field names differ between writers; the first present one wins
CREATION_DATE_FIELDS = ('CreationDate', 'createdAt')
MEETING_DATE_FIELDS = ('DateTime', 'startTime')
HISTORY_DATE_FIELDS = ('DateTime', 'timestamp')
STATUS_FIELDS = ('Status', 'status')
AMOUNT_FIELDS = ('Amount', 'amount')
ROLE_FIELDS = ('role', 'Role')

USERS = 'users'

TOP_SELLERS_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 10
UPCOMING_MEETINGS_LIMIT = 5

MONTH_LABELS = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']


def tally_status(distribution: Dict[str, int], status: Any) -> None:
    """Count a status against a fixed distribution; anything else goes to Other."""
    if isinstance(status, str) and status in distribution and status != OTHER_STATUS:
        distribution[status] += 1
    else:
        distribution[OTHER_STATUS] = distribution.get(OTHER_STATUS, 0) + 1


def status_distribution(records: Sequence[Dict[str, Any]], statuses: Sequence[str]) -> Dict[str, int]:
    distribution = {status: 0 for status in statuses}
    for record in records:
        tally_status(distribution, first_value(record, STATUS_FIELDS))
    return distribution


def percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def user_display_name(user: Optional[Dict[str, Any]]) -> str:
    if not user:
        return UNKNOWN_SELLER_NAME
    full_name = f"{user.get('firstname') or ''} {user.get('lastname') or ''}".strip()
    return full_name or user.get('name') or user.get('displayName') or UNKNOWN_SELLER_NAME


class DealFold:
    """Single pass over deals: status tally, daily revenue and seller totals"""

    def __init__(self):
        self.distribution: Dict[str, int] = {status: 0 for status in DEAL_STATUSES}
        self.revenue_by_day: Dict[str, float] = {}
        self.sellers: Dict[str, Dict[str, float]] = {}
        self.total_amount = 0.0
        self.gain_amount = 0.0

    def add(self, deal: Dict[str, Any]) -> None:
        status = first_value(deal, STATUS_FIELDS)
        tally_status(self.distribution, status)

        amount = to_amount(first_value(deal, AMOUNT_FIELDS))
        self.total_amount += amount
        if status == 'Gain':
            self.gain_amount += amount

        created = first_datetime(deal, CREATION_DATE_FIELDS)
        if created is not None and amount:
            day = created.date().isoformat()
            self.revenue_by_day[day] = self.revenue_by_day.get(day, 0.0) + amount

        seller_id = document_id_of(deal.get('seller_id'))
        if seller_id:
            totals = self.sellers.setdefault(seller_id, {'count': 0, 'amount': 0.0})
            totals['count'] += 1
            totals['amount'] += amount

    def revenue_points(self) -> List[RevenuePoint]:
        return [RevenuePoint(date=day, amount=amount) for day, amount in sorted(self.revenue_by_day.items())]

    def ranked_seller_ids(self, limit: int = TOP_SELLERS_LIMIT) -> List[str]:
        ranked = sorted(self.sellers.items(), key=lambda item: (-item[1]['amount'], item[0]))
        return [seller_id for seller_id, _ in ranked[:limit]]


class DashboardService:
    """Service for company dashboard reports"""

    def __init__(self, store):
        """Initialize with a FirestoreService (or a store exposing the same read API)"""
        self.store = store

    async def _company_resolves(self, company_ref: CompanyRef) -> bool:
        if not settings.VERIFY_COMPANY_EXISTS:
            return True
        try:
            exists = await asyncio.to_thread(self.store.company_exists, company_ref)
        except Exception as e:
            # Lookup outage is not proof the company is gone; report on the data we can read
            logger.warning(f"Could not verify company {company_ref}: {e}")
            return True
        if not exists:
            logger.warning(f"Company {company_ref} not found, returning empty report")
        return exists

    async def _fetch_sections(
        self,
        company_ref: CompanyRef,
        sections: Dict[str, Tuple[str, Optional[Sequence[str]], Optional[datetime], Optional[datetime]]],
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Run every section read in parallel; a failed read yields an empty section."""
        names = list(sections.keys())
        tasks = [
            asyncio.to_thread(self.store.fetch_records, collection, company_ref, date_fields, start, end)
            for collection, date_fields, start, end in sections.values()
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        fetched: Dict[str, List[Dict[str, Any]]] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to fetch {name} for company {company_ref}: {result}")
                fetched[name] = []
            else:
                fetched[name] = result
        return fetched

    async def _resolve_sellers(self, seller_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """One batched users lookup for all ranked sellers"""
        if not seller_ids:
            return {}
        try:
            users = await asyncio.to_thread(self.store.get_records_by_ids, USERS, seller_ids)
        except Exception as e:
            logger.error(f"Failed to resolve seller names: {e}")
            return {}
        return {user['id']: user for user in users}

    async def compute_company_report(
        self,
        company_id: Any,
        date_range: Optional[DateRange] = None,
        now: Optional[datetime] = None,
    ) -> Report:
        """Build the dashboard report for a company and an inclusive date range.

        Never raises for data problems: an unknown company yields an empty
        report and a failed collection read empties only its own section.
        """
        date_range = date_range or DateRange.default(settings.DEFAULT_REPORT_DAYS)
        company_ref = CompanyRef.from_value(company_id)
        if company_ref is None:
            logger.error("No company ID provided for report")
            return Report.empty(document_id_of(company_id) or "", date_range)
        if not await self._company_resolves(company_ref):
            return Report.empty(company_ref.company_id, date_range)

        now = to_datetime(now) or datetime.now(timezone.utc)
        start, end = date_range.start, date_range.end
        logger.info(f"Computing report for company {company_ref} from {start.isoformat()} to {end.isoformat()}")

        data = await self._fetch_sections(company_ref, {
            'leads': (LEADS, CREATION_DATE_FIELDS, start, end),
            'contacts': (CONTACTS, CREATION_DATE_FIELDS, start, end),
            'deals': (DEALS, CREATION_DATE_FIELDS, start, end),
            'properties': (PROPERTIES, CREATION_DATE_FIELDS, start, end),
            'employees': (EMPLOYEES, None, None, None),
            'invoices': (INVOICES, CREATION_DATE_FIELDS, start, end),
            # Lower bound only so meetings scheduled past the range end still show as upcoming
            'meetings': (MEETINGS, MEETING_DATE_FIELDS, start, None),
            'history': (HISTORY, HISTORY_DATE_FIELDS, start, end),
        })

        deals = DealFold()
        for deal in data['deals']:
            deals.add(deal)

        seller_ids = deals.ranked_seller_ids()
        users = await self._resolve_sellers(seller_ids)
        top_sellers = [
            SellerRanking(
                seller_id=seller_id,
                name=user_display_name(users.get(seller_id)),
                picture_url=(users.get(seller_id) or {}).get('pictureUrl'),
                deal_count=int(deals.sellers[seller_id]['count']),
                total_amount=deals.sellers[seller_id]['amount'],
            )
            for seller_id in seller_ids
        ]

        invoice_totals = InvoiceTotals()
        for invoice in data['invoices']:
            status = first_value(invoice, STATUS_FIELDS)
            amount = to_amount(first_value(invoice, AMOUNT_FIELDS))
            if status == 'Paid':
                invoice_totals.paid_amount += amount
            elif status == 'Pending':
                invoice_totals.pending_amount += amount

        future_meetings = [
            meeting for meeting in data['meetings']
            if (first_datetime(meeting, MEETING_DATE_FIELDS) or now) > now
        ]
        upcoming = sorted_by_time(future_meetings, MEETING_DATE_FIELDS)[:UPCOMING_MEETINGS_LIMIT]
        recent = sorted_by_time(data['history'], HISTORY_DATE_FIELDS, descending=True)[:RECENT_ACTIVITY_LIMIT]

        return Report(
            company_id=company_ref.company_id,
            date_range=date_range,
            counts=ReportCounts(
                leads=len(data['leads']),
                contacts=len(data['contacts']),
                deals=len(data['deals']),
                properties=len(data['properties']),
                employees=len(data['employees']),
                invoices=len(data['invoices']),
                meetings=len(data['meetings']),
            ),
            leads_status_distribution=status_distribution(data['leads'], LEAD_STATUSES),
            deals_status_distribution=deals.distribution,
            properties_status_distribution=status_distribution(data['properties'], PROPERTY_STATUSES),
            revenue_by_day=deals.revenue_points(),
            top_sellers=top_sellers,
            recent_activity=[{**to_json_safe(record), 'type': 'activity'} for record in recent],
            upcoming_meetings=[to_json_safe(record) for record in upcoming],
            invoice_totals=invoice_totals,
            deal_totals=DealTotals(total_amount=deals.total_amount, gain_amount=deals.gain_amount),
        )

    async def _period_totals(self, company_ref: CompanyRef, date_range: DateRange) -> Dict[str, float]:
        start, end = date_range.start, date_range.end
        data = await self._fetch_sections(company_ref, {
            'leads': (LEADS, CREATION_DATE_FIELDS, start, end),
            'contacts': (CONTACTS, CREATION_DATE_FIELDS, start, end),
            'deals': (DEALS, CREATION_DATE_FIELDS, start, end),
            'properties': (PROPERTIES, CREATION_DATE_FIELDS, start, end),
        })
        return {
            'leads': len(data['leads']),
            'contacts': len(data['contacts']),
            'deals': len(data['deals']),
            'properties': len(data['properties']),
            'revenue': sum(to_amount(first_value(deal, AMOUNT_FIELDS)) for deal in data['deals']),
        }

    async def compute_comparison(self, company_id: Any, date_range: Optional[DateRange] = None) -> ComparisonStats:
        """Compare the range against the previous period of the same length"""
        date_range = date_range or DateRange.default(settings.DEFAULT_REPORT_DAYS)
        previous_range = date_range.previous_period()
        company_ref = CompanyRef.from_value(company_id)
        empty = ComparisonStats(
            company_id=document_id_of(company_id) or "",
            date_range=date_range,
            previous_range=previous_range,
        )
        if company_ref is None or not await self._company_resolves(company_ref):
            return empty

        current, previous = await asyncio.gather(
            self._period_totals(company_ref, date_range),
            self._period_totals(company_ref, previous_range),
        )
        metrics = {
            name: MetricComparison(
                current=current[name],
                previous=previous[name],
                percent_change=percent_change(current[name], previous[name]),
            )
            for name in current
        }
        return empty.model_copy(update=metrics)

    async def compute_role_distribution(self, company_id: Any) -> RoleDistribution:
        """Employee headcount per role; roles without employees are omitted"""
        company_ref = CompanyRef.from_value(company_id)
        if company_ref is None:
            return RoleDistribution(company_id="")
        try:
            employees = await asyncio.to_thread(self.store.fetch_records, EMPLOYEES, company_ref)
        except Exception as e:
            logger.error(f"Error fetching employees role distribution: {e}")
            employees = []

        roles: Dict[str, int] = {}
        for employee in employees:
            role = first_value(employee, ROLE_FIELDS)
            role = role if isinstance(role, str) and role.strip() else OTHER_STATUS
            roles[role] = roles.get(role, 0) + 1
        return RoleDistribution(
            company_id=company_ref.company_id,
            roles=dict(sorted(roles.items())),
            total=len(employees),
        )


def revenue_chart(report: Report, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Line-chart payload for the revenue series.

    With no revenue the chart still gets six zeroed months ending with the
    current one.
    """
    if not report.revenue_by_day:
        current_month = (to_datetime(now) or datetime.now(timezone.utc)).month - 1
        categories = [MONTH_LABELS[(current_month - i) % 12] for i in range(5, -1, -1)]
        return {'series': [{'name': 'Revenue', 'data': [0] * 6}], 'categories': categories}
    return {
        'series': [{'name': 'Revenue', 'data': [point.amount for point in report.revenue_by_day]}],
        'categories': [point.date for point in report.revenue_by_day],
    }


def status_chart(distribution: Dict[str, int]) -> List[Dict[str, Any]]:
    """Pie-chart payload: share of each status as a rounded percentage"""
    total = sum(distribution.values())
    return [
        {
            'name': status,
            'count': count,
            'value': percent_of(count, total),
        }
        for status, count in distribution.items()
    ]
