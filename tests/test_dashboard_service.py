"""Company report aggregation over the in-memory store."""
import asyncio
import json

import pytest

from config import settings
from services.dashboard_service import DashboardService, percent_change, revenue_chart, status_chart
from services.models import DateRange, Report

from conftest import COMPANY_ID, utc


def _report(store, march, now, company_id=COMPANY_ID) -> Report:
    return asyncio.run(DashboardService(store).compute_company_report(company_id, march, now=now))


def test_deal_scenario_distribution_and_revenue(store, march, now):
    """Deals of 100/200/300 with Gain/Gain/Loss across mixed company encodings."""

    report = _report(store, march, now)

    assert report.counts.deals == 3
    assert report.deals_status_distribution == {"Opened": 0, "Gain": 2, "Loss": 1}
    assert report.deal_totals.total_amount == 600
    assert report.deal_totals.gain_amount == 300
    assert [(point.date, point.amount) for point in report.revenue_by_day] == [
        ("2025-03-02", 300.0),
        ("2025-03-05", 300.0),
    ]


def test_counts_per_collection(store, march, now):
    report = _report(store, march, now)

    assert report.counts.model_dump() == {
        "leads": 4,
        "contacts": 3,
        "deals": 3,
        "properties": 2,
        "employees": 3,
        "invoices": 3,
        "meetings": 3,
    }


def test_unknown_statuses_land_in_other_bucket(store, march, now):
    report = _report(store, march, now)

    assert report.leads_status_distribution == {"Pending": 1, "Gain": 2, "Loss": 0, "Other": 1}
    assert sum(report.leads_status_distribution.values()) == report.counts.leads
    assert report.properties_status_distribution == {"Pending": 1, "Sold": 1}


def test_top_sellers_ranked_and_named(store, march, now):
    report = _report(store, march, now)

    sellers = [(s.seller_id, s.name, s.deal_count, s.total_amount) for s in report.top_sellers]
    assert sellers == [
        ("s1", "Sara Ali", 2, 400.0),
        ("s2", "Unknown User", 1, 200.0),
    ]
    assert report.top_sellers[0].picture_url == "https://img/sara.png"


def test_top_sellers_truncated_to_five(empty_store, march, now):
    for i in range(8):
        empty_store.add_record("deals", {
            "company_id": COMPANY_ID, "Status": "Gain", "Amount": (i + 1) * 10,
            "seller_id": f"seller-{i}", "CreationDate": utc(2025, 3, 3),
        })

    report = _report(empty_store, march, now)

    amounts = [seller.total_amount for seller in report.top_sellers]
    assert len(amounts) == 5
    assert amounts == sorted(amounts, reverse=True)
    assert amounts[0] == 80


def test_invoice_totals_split_by_status(store, march, now):
    report = _report(store, march, now)

    assert report.invoice_totals.paid_amount == 500
    assert report.invoice_totals.pending_amount == 250


def test_upcoming_meetings_are_future_and_ascending(store, march, now):
    report = _report(store, march, now)

    assert [meeting["id"] for meeting in report.upcoming_meetings] == ["m2", "m3"]
    assert all(meeting["DateTime"] > now.isoformat() for meeting in report.upcoming_meetings)


def test_recent_activity_descending_and_limited(store, march, now):
    report = _report(store, march, now)

    ids = [activity["id"] for activity in report.recent_activity]
    assert ids == [f"h{i:02d}" for i in range(11, 1, -1)]
    assert all(activity["type"] == "activity" for activity in report.recent_activity)
    # References inside records come back as their path
    assert report.recent_activity[0]["company_ref"] == f"companies/{COMPANY_ID}"


def test_report_is_idempotent(store, march, now):
    first = json.dumps(_report(store, march, now).to_response(), sort_keys=True)
    second = json.dumps(_report(store, march, now).to_response(), sort_keys=True)

    assert first == second


def test_report_serializes_with_camel_case_keys(store, march, now):
    payload = _report(store, march, now).to_response()

    for key in ("counts", "leadsStatusDistribution", "dealsStatusDistribution",
                "propertiesStatusDistribution", "revenueByDay", "topSellers",
                "recentActivity", "upcomingMeetings", "invoiceTotals"):
        assert key in payload
    assert set(payload["topSellers"][0]) >= {"sellerId", "name", "dealCount", "totalAmount"}
    assert set(payload["invoiceTotals"]) == {"paidAmount", "pendingAmount"}


def test_company_without_records_gets_zero_report(empty_store, march, now):
    report = _report(empty_store, march, now)

    assert report.counts.deals == 0
    assert report.counts.employees == 0
    assert report.revenue_by_day == []
    assert report.top_sellers == []
    assert report.recent_activity == []
    assert report.upcoming_meetings == []
    assert report.deals_status_distribution == {"Opened": 0, "Gain": 0, "Loss": 0}


@pytest.mark.parametrize("company_id", ["", "   ", None])
def test_blank_company_yields_empty_report(store, march, now, company_id):
    report = _report(store, march, now, company_id=company_id)

    assert report.company_id == ""
    assert report.counts.leads == 0
    assert store.read_log == []


def test_unknown_company_yields_empty_report(store, march, now):
    report = _report(store, march, now, company_id="initech")

    assert report.company_id == "initech"
    assert report.counts.model_dump() == Report.empty("initech", march).counts.model_dump()
    assert store.read_log == []


def test_company_check_can_be_disabled(store, march, now, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_COMPANY_EXISTS", False)
    store.collections["companies"].clear()

    report = _report(store, march, now)

    assert report.counts.deals == 3


def test_company_id_given_as_path(store, march, now):
    report = _report(store, march, now, company_id=f"/companies/{COMPANY_ID}")

    assert report.company_id == COMPANY_ID
    assert report.counts.deals == 3


def test_failed_section_degrades_to_default(store, march, now, caplog):
    store.fail_collection("deals")
    caplog.set_level("ERROR")

    report = _report(store, march, now)

    assert report.counts.deals == 0
    assert report.top_sellers == []
    assert report.revenue_by_day == []
    assert report.counts.leads == 4
    assert report.invoice_totals.paid_amount == 500
    assert "Failed to fetch deals" in caplog.text


def test_failed_seller_lookup_keeps_totals(store, march, now):
    store.fail_collection("users")

    report = _report(store, march, now)

    assert [seller.name for seller in report.top_sellers] == ["Unknown User", "Unknown User"]
    assert report.top_sellers[0].total_amount == 400


def test_malformed_deal_fields_count_as_zero(empty_store, march, now):
    empty_store.add_record("deals", {"company_id": COMPANY_ID, "Status": "Opened", "Amount": "n/a",
                                     "CreationDate": utc(2025, 3, 12)})
    empty_store.add_record("deals", {"company_id": COMPANY_ID, "CreationDate": utc(2025, 3, 12)})

    report = _report(empty_store, march, now)

    assert report.counts.deals == 2
    assert report.deals_status_distribution == {"Opened": 1, "Gain": 0, "Loss": 0, "Other": 1}
    assert report.deal_totals.total_amount == 0
    assert report.revenue_by_day == []


def test_comparison_against_previous_period(store, now):
    date_range = DateRange(start=utc(2025, 3, 1), end=utc(2025, 3, 31))
    comparison = asyncio.run(DashboardService(store).compute_comparison(COMPANY_ID, date_range))

    assert comparison.previous_range.end < date_range.start
    assert comparison.deals.current == 3
    assert comparison.deals.previous == 1
    assert comparison.deals.percent_change == 200.0
    assert comparison.revenue.previous == 999
    assert comparison.leads.previous == 0
    assert comparison.leads.percent_change == 100.0


def test_percent_change_edges():
    assert percent_change(0, 0) == 0.0
    assert percent_change(5, 0) == 100.0
    assert percent_change(3, 4) == -25.0


def test_role_distribution(store):
    distribution = asyncio.run(DashboardService(store).compute_role_distribution(COMPANY_ID))

    assert distribution.roles == {"Other": 1, "Sales": 2}
    assert distribution.total == 3


def test_revenue_chart_defaults_to_six_zero_months(empty_store, march, now):
    report = _report(empty_store, march, now)

    chart = revenue_chart(report, now=now)

    assert chart["series"][0]["data"] == [0, 0, 0, 0, 0, 0]
    assert chart["categories"] == ["Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]


def test_status_chart_percentages():
    chart = status_chart({"Pending": 1, "Gain": 2, "Loss": 1})

    assert [(item["name"], item["value"]) for item in chart] == [("Pending", 25), ("Gain", 50), ("Loss", 25)]
    assert all(item["value"] == 0 for item in status_chart({"Opened": 0, "Gain": 0}))


def test_status_chart_rounds_halves_up():
    chart = status_chart({"Opened": 1, "Gain": 7})

    assert [item["value"] for item in chart] == [13, 88]
