"""
Seller analytics for the sellers page
"""
import asyncio
import calendar
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.company_ref import CompanyRef, document_id_of
from services.dashboard_service import (
    AMOUNT_FIELDS, CREATION_DATE_FIELDS, ROLE_FIELDS, STATUS_FIELDS, user_display_name,
)
from services.firestore_service import CONTACTS, DEALS, INVOICES, LEADS
from services.models import (
    ContactStats, DateRange, DealStats, InvoiceStats, LeadStats, SellerAnalytics, SellerProgress,
)
from services.record_utils import first_datetime, first_value, percent_of, to_amount, to_datetime

logger = logging.getLogger(__name__)

SELLER_ROLE = 'Seller'
INTEREST_FIELDS = ('InterestLevel', 'interestLevel')
DUE_DATE_FIELDS = ('DateLimit', 'dueDate')

# Older lead forms used a temperature scale
INTEREST_ALIASES = {
    'high': 'High',
    'hot': 'High',
    'medium': 'Medium',
    'warm': 'Medium',
    'low': 'Low',
    'cold': 'Low',
}


def month_range(now: Optional[datetime] = None) -> DateRange:
    """Calendar month containing `now`, in UTC"""
    now = to_datetime(now) or datetime.now(timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return DateRange(start=start, end=end)


def contact_stats(contacts: List[Dict[str, Any]]) -> ContactStats:
    stats = ContactStats(total=len(contacts))
    for contact in contacts:
        status = first_value(contact, STATUS_FIELDS)
        if status == 'Pending':
            stats.pending += 1
        elif status == 'Contacted':
            stats.contacted += 1
        elif status == 'Deal':
            stats.deal += 1
        elif status == 'Loss':
            stats.loss += 1
    return stats


def deal_stats(deals: List[Dict[str, Any]]) -> DealStats:
    stats = DealStats(total=len(deals))
    for deal in deals:
        status = first_value(deal, STATUS_FIELDS)
        amount = to_amount(first_value(deal, AMOUNT_FIELDS))
        stats.total_value += amount
        if status == 'Opened':
            stats.opened += 1
        elif status == 'Gain':
            stats.gain += 1
            stats.gain_value += amount
        elif status == 'Loss':
            stats.loss += 1
    return stats


def lead_stats(leads: List[Dict[str, Any]]) -> LeadStats:
    stats = LeadStats(total=len(leads))
    for lead in leads:
        level = first_value(lead, INTEREST_FIELDS)
        level = INTEREST_ALIASES.get(level.strip().lower()) if isinstance(level, str) else None
        if level == 'High':
            stats.high += 1
        elif level == 'Medium':
            stats.medium += 1
        elif level == 'Low':
            stats.low += 1
    return stats


def invoice_stats(invoices: List[Dict[str, Any]], now: datetime) -> InvoiceStats:
    stats = InvoiceStats(total=len(invoices))
    for invoice in invoices:
        status = first_value(invoice, STATUS_FIELDS)
        amount = to_amount(first_value(invoice, AMOUNT_FIELDS))
        stats.total_value += amount
        if status == 'Paid':
            stats.paid += 1
            stats.paid_value += amount
        elif status == 'Pending':
            stats.pending += 1
            due = first_datetime(invoice, DUE_DATE_FIELDS)
            if due is not None and due < now:
                stats.overdue += 1
        elif status == 'Missed':
            stats.overdue += 1
    return stats


def overall_progress(contacts: ContactStats, deals: DealStats, leads: LeadStats) -> int:
    total = contacts.total + deals.total + leads.total
    if total == 0:
        return 0
    completed = contacts.contacted + contacts.deal + deals.gain + leads.high
    return percent_of(completed, total)


def progress_for(seller_id: str, name: str, contacts: List[Dict[str, Any]]) -> SellerProgress:
    stats = contact_stats(contacts)
    progress_count = stats.contacted + stats.deal
    return SellerProgress(
        seller_id=seller_id,
        name=name,
        total=stats.total,
        pending=stats.pending,
        contacted=stats.contacted,
        deal=stats.deal,
        loss=stats.loss,
        progress_count=progress_count,
        progress_percentage=percent_of(progress_count, stats.total),
    )


class SellerAnalyticsService:
    """Per-seller and team-wide activity analytics"""

    def __init__(self, store):
        self.store = store

    async def _fetch(self, name: str, *args, **kwargs) -> List[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self.store.fetch_records, *args, **kwargs)
        except Exception as e:
            logger.error(f"Failed to fetch seller {name}: {e}")
            return []

    async def compute_seller_analytics(
        self,
        company_id: Any,
        seller_id: Any,
        date_range: Optional[DateRange] = None,
        now: Optional[datetime] = None,
    ) -> SellerAnalytics:
        """Contacts, deals, leads and invoices statistics for one seller"""
        date_range = date_range or month_range(now)
        now = to_datetime(now) or datetime.now(timezone.utc)
        company_ref = CompanyRef.from_value(company_id)
        seller = document_id_of(seller_id)
        result = SellerAnalytics(
            company_id=company_ref.company_id if company_ref else "",
            seller_id=seller or "",
            date_range=date_range,
        )
        if company_ref is None or not seller:
            logger.error("Seller analytics requested without company or seller id")
            return result

        start, end = date_range.start, date_range.end
        contacts, deals, leads, invoices = await asyncio.gather(
            self._fetch('contacts', CONTACTS, company_ref, CREATION_DATE_FIELDS, start, end, {'seller_id': seller}),
            self._fetch('deals', DEALS, company_ref, CREATION_DATE_FIELDS, start, end, {'seller_id': seller}),
            self._fetch('leads', LEADS, company_ref, CREATION_DATE_FIELDS, start, end, {'seller_id': seller}),
            # Invoices are attributed to whoever created them
            self._fetch('invoices', INVOICES, company_ref, CREATION_DATE_FIELDS, start, end, {'creator_id': seller}),
        )

        result.contacts = contact_stats(contacts)
        result.deals = deal_stats(deals)
        result.leads = lead_stats(leads)
        result.invoices = invoice_stats(invoices, now)
        result.overall_progress = overall_progress(result.contacts, result.deals, result.leads)
        return result

    async def compute_team_progress(
        self,
        company_id: Any,
        date_range: Optional[DateRange] = None,
    ) -> List[SellerProgress]:
        """Contact progress for every seller of the company.

        Reads the company's contacts once and groups them by seller instead
        of querying per seller.
        """
        company_ref = CompanyRef.from_value(company_id)
        if company_ref is None:
            return []
        date_range = date_range or month_range()

        try:
            users = await asyncio.to_thread(self.store.get_company_users, company_ref)
        except Exception as e:
            logger.error(f"Failed to fetch users for company {company_ref}: {e}")
            return []
        sellers = [user for user in users if first_value(user, ROLE_FIELDS) == SELLER_ROLE]
        if not sellers:
            return []

        contacts = await self._fetch(
            'contacts', CONTACTS, company_ref, CREATION_DATE_FIELDS, date_range.start, date_range.end
        )
        by_seller: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for contact in contacts:
            seller_id = document_id_of(contact.get('seller_id'))
            if seller_id:
                by_seller[seller_id].append(contact)

        progress = [
            progress_for(seller['id'], user_display_name(seller), by_seller.get(seller['id'], []))
            for seller in sellers
        ]
        progress.sort(key=lambda item: (-item.progress_percentage, item.seller_id))
        return progress
