"""Read-only views over a fetched invoice list.

Everything here works on the list the backend returned and never mutates
it; dashboards re-fetch the whole collection instead of merging updates.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Literal, Optional

from invoicebook.models import DEDUCTION_FIELDS, Invoice
from invoicebook.parse_utils import floor_display, round2

AGING_PERIODS: tuple[tuple[str, str, int], ...] = (
    ("1w", "1 week", 7),
    ("15d", "15 days", 15),
    ("1m", "1 month", 30),
    ("3m", "3 months", 90),
    ("6m", "6 months", 180),
)

TIMEFRAME_DAYS: dict[str, int] = {
    **{value: days for value, _, days in AGING_PERIODS},
    "2w": 14,
    "2m": 60,
    "1y": 365,
}

GroupKey = Literal["project", "state", "status", "mybill_category"]
DateField = Literal["invoice_date", "submission_date"]

_TOTAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("basicAmount", "invoice_basic_amount"),
    ("gstAmount", "invoice_gst_amount"),
    ("totalAmount", "total_amount"),
    ("totalDeduction", "total_deduction"),
    ("netPayable", "net_payable"),
    ("amountPaid", "amount_paid_by_client"),
    ("balance", "balance"),
)


def _created_key(invoice: Invoice) -> float:
    stamp = invoice.created_at
    if stamp is None:
        return 0.0
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.timestamp()


def sort_by_created(invoices: Iterable[Invoice]) -> list[Invoice]:
    return sorted(invoices, key=_created_key, reverse=True)


def project_options(invoices: Iterable[Invoice]) -> list[str]:
    return sorted({project for inv in invoices for project in inv.project})


_ALL_VALUES = frozenset({"all", "all projects", "all states", "all statuses"})


def _is_all(wanted: Optional[str]) -> bool:
    return not wanted or wanted.strip().lower() in _ALL_VALUES


def _matches(value: Optional[str], wanted: Optional[str]) -> bool:
    if _is_all(wanted):
        return True
    return (value or "").strip().lower() == wanted.strip().lower()


def filter_invoices(
    invoices: Iterable[Invoice],
    search: str = "",
    project: Optional[str] = None,
    status: Optional[str] = None,
    state: Optional[str] = None,
    bill_category: Optional[str] = None,
    date_range: Optional[tuple[Optional[date], Optional[date]]] = None,
) -> list[Invoice]:
    needle = (search or "").strip().lower()
    start, end = date_range or (None, None)
    result: list[Invoice] = []
    for inv in invoices:
        if needle and needle not in inv.invoice_number.lower() and needle not in (inv.status or "").lower():
            continue
        if not _is_all(project) and not inv.has_project(project):
            continue
        if not _matches(inv.status, status):
            continue
        if not _matches(inv.state, state):
            continue
        if not _matches(inv.mybill_category, bill_category):
            continue
        if start and end:
            if inv.invoice_date is None or not start <= inv.invoice_date <= end:
                continue
        result.append(inv)
    return result


def totals(invoices: Iterable[Invoice]) -> dict[str, float]:
    sums = {label: 0.0 for label, _ in _TOTAL_FIELDS}
    count = 0
    for inv in invoices:
        count += 1
        for label, attribute in _TOTAL_FIELDS:
            sums[label] += floor_display(getattr(inv, attribute))
    result: dict[str, Any] = {label: round2(value) for label, value in sums.items()}
    result["count"] = count
    return result


def _group_values(invoice: Invoice, key: GroupKey) -> list[str]:
    if key == "project":
        return invoice.project or ["Unassigned"]
    value = getattr(invoice, key)
    return [value.strip() if value and value.strip() else "Unassigned"]


def group_totals(invoices: Iterable[Invoice], key: GroupKey) -> list[dict[str, Any]]:
    groups: dict[str, dict[str, float]] = defaultdict(
        lambda: {"count": 0, "totalAmount": 0.0, "netPayable": 0.0, "balance": 0.0}
    )
    for inv in invoices:
        for name in _group_values(inv, key):
            bucket = groups[name]
            bucket["count"] += 1
            bucket["totalAmount"] += floor_display(inv.total_amount)
            bucket["netPayable"] += floor_display(inv.net_payable)
            bucket["balance"] += floor_display(inv.balance)
    return [
        {
            "name": name,
            "count": int(bucket["count"]),
            "totalAmount": round2(bucket["totalAmount"]),
            "netPayable": round2(bucket["netPayable"]),
            "balance": round2(bucket["balance"]),
        }
        for name, bucket in sorted(groups.items())
    ]


def deduction_breakdown(invoices: Iterable[Invoice]) -> dict[str, float]:
    sums = {name: 0.0 for name in DEDUCTION_FIELDS}
    for inv in invoices:
        for name, value in inv.deductions().items():
            sums[name] += floor_display(value)
    return {name: round2(value) for name, value in sums.items()}


def gst_summary(invoices: Iterable[Invoice]) -> dict[str, Any]:
    total_gst = 0.0
    count = 0
    buckets: dict[float, dict[str, float]] = defaultdict(lambda: {"totalGst": 0.0, "count": 0})
    for inv in invoices:
        amount = round2(inv.invoice_gst_amount)
        total_gst += amount
        count += 1
        buckets[amount]["totalGst"] += amount
        buckets[amount]["count"] += 1
    return {
        "totalGst": round2(total_gst),
        "invoiceCount": count,
        "byAmount": [
            {"gst": gst, "totalGst": round2(bucket["totalGst"]), "count": int(bucket["count"])}
            for gst, bucket in sorted(buckets.items())
        ],
    }


def _age_days(value: Optional[date], now: datetime) -> Optional[float]:
    if value is None:
        return None
    start = datetime(value.year, value.month, value.day, tzinfo=now.tzinfo)
    return (now - start) / timedelta(days=1)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _under_process(invoices: Iterable[Invoice], project: Optional[str]) -> list[Invoice]:
    pending = [inv for inv in invoices if inv.status == "Under process"]
    if not _is_all(project):
        pending = [inv for inv in pending if inv.has_project(project)]
    return pending


def overdue_aging(
    invoices: Iterable[Invoice],
    now: Optional[datetime] = None,
    project: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Under-process invoices at least as old as each aging period."""
    now = _now(now)
    counts = {value: {"invoiceDate": 0, "submissionDate": 0} for value, _, _ in AGING_PERIODS}
    for inv in _under_process(invoices, project):
        for label, value in (("invoiceDate", inv.invoice_date), ("submissionDate", inv.submission_date)):
            age = _age_days(value, now)
            if age is None:
                continue
            for period, _, days in AGING_PERIODS:
                if age >= days:
                    counts[period][label] += 1
    return [
        {"label": label, "value": value, **counts[value]}
        for value, label, _ in AGING_PERIODS
    ]


def overdue_invoices(
    invoices: Iterable[Invoice],
    timeframe: str = "6m",
    date_field: DateField = "invoice_date",
    now: Optional[datetime] = None,
    project: Optional[str] = None,
    search: str = "",
) -> list[Invoice]:
    now = _now(now)
    days = TIMEFRAME_DAYS.get(timeframe, TIMEFRAME_DAYS["6m"])
    needle = (search or "").strip().lower()
    result: list[Invoice] = []
    for inv in _under_process(invoices, project):
        age = _age_days(getattr(inv, date_field), now)
        if age is None or age < days:
            continue
        if needle and needle not in inv.invoice_number.lower():
            continue
        result.append(inv)
    return result
