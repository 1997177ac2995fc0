from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Literal, Optional

from pydantic.alias_generators import to_camel

from invoicebook.errors import InvoiceValidationError
from invoicebook.models import (
    DEDUCTION_FIELDS,
    GST_OPTIONS,
    STATUSES,
    TERMINAL_STATUSES,
    DerivedAmounts,
    Invoice,
    InvoiceForm,
)
from invoicebook.parse_utils import format_amount, parse_percent, round2

logger = logging.getLogger(__name__)

ValidationMode = Literal["strict", "lenient"]

_REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("project", "Project"),
    ("mode_of_project", "Mode of Project"),
    ("state", "State"),
    ("mybill_category", "Bill Category"),
    ("invoice_number", "Invoice Number"),
    ("invoice_date", "Invoice Date"),
    ("basic_amount", "Invoice Basic Amount"),
    ("gst_percentage", "GST Percentage"),
    ("status", "Status"),
)


def derive(form: InvoiceForm) -> DerivedAmounts:
    basic_amount = form.basic_amount or 0.0

    gst_amount = 0.0
    if basic_amount > 0 and form.gst_percentage is not None:
        gst_amount = basic_amount * parse_percent(form.gst_percentage) / 100
    total_amount = basic_amount + gst_amount

    total_deduction = sum(getattr(form, name) or 0.0 for name in DEDUCTION_FIELDS)

    is_terminal = form.status in TERMINAL_STATUSES
    net_payable = 0.0 if is_terminal else total_amount - total_deduction
    effective_paid = net_payable if is_terminal else (form.amount_paid or 0.0)
    balance = 0.0 if is_terminal else net_payable - effective_paid

    return DerivedAmounts(
        invoice_gst_amount=round2(gst_amount),
        total_amount=round2(total_amount),
        total_deduction=round2(total_deduction),
        net_payable=round2(net_payable),
        effective_amount_paid=round2(effective_paid),
        balance=round2(balance),
    )


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list)) and not value:
        return True
    return False


def _duplicate_number(
    form: InvoiceForm, existing: Iterable[Invoice], invoice_id: Optional[str]
) -> bool:
    number = form.invoice_number.strip().lower()
    if not number:
        return False
    for invoice in existing:
        if invoice_id and invoice.id == invoice_id:
            continue
        if invoice.invoice_number.strip().lower() == number:
            return True
    return False


def check(
    form: InvoiceForm,
    derived: Optional[DerivedAmounts] = None,
    *,
    today: Optional[date] = None,
    existing: Optional[Iterable[Invoice]] = None,
    invoice_id: Optional[str] = None,
) -> list[str]:
    derived = derived or derive(form)
    today = today or date.today()
    issues: list[str] = []

    missing = [label for name, label in _REQUIRED_FIELDS if _is_missing(getattr(form, name))]
    if missing:
        issues.append(f"Please fill all required fields: {', '.join(missing)}")

    if form.status and form.status not in STATUSES:
        issues.append(f"Unknown status: {form.status}")
    if form.gst_percentage and form.gst_percentage not in GST_OPTIONS:
        issues.append(f"GST percentage must be one of {', '.join(GST_OPTIONS)}")

    if form.payment_date and form.submission_date and form.payment_date < form.submission_date:
        issues.append("Payment date must be later than Submission Date")

    if form.invoice_date and form.invoice_date > today:
        issues.append("Invoice Date cannot be in the future")
    if form.submission_date and form.submission_date > today:
        issues.append("Submission Date cannot be in the future")

    if form.status == "Paid" and derived.balance != 0:
        issues.append(
            f"Balance must be 0 for a Paid invoice (balance is {derived.balance:.2f})"
        )

    if not form.invoice_copy:
        issues.append("Invoice copy must be attached")
    if not form.proof_of_submission:
        issues.append("Proof of submission must be attached")

    if existing is not None and _duplicate_number(form, existing, invoice_id):
        issues.append(f"Invoice number {form.invoice_number} already exists")

    return issues


def validate(
    form: InvoiceForm,
    derived: Optional[DerivedAmounts] = None,
    *,
    mode: ValidationMode = "strict",
    today: Optional[date] = None,
    existing: Optional[Iterable[Invoice]] = None,
    invoice_id: Optional[str] = None,
) -> list[str]:
    """Run the submission gate.

    ``strict`` raises InvoiceValidationError listing every violated rule.
    ``lenient`` hands the same messages back as warnings.
    """
    issues = check(form, derived, today=today, existing=existing, invoice_id=invoice_id)
    if issues and mode == "strict":
        raise InvoiceValidationError(issues)
    if issues:
        logger.info("Invoice accepted with warnings", extra={"warnings": issues})
    return issues


def build_form_payload(
    form: InvoiceForm, derived: Optional[DerivedAmounts] = None
) -> dict[str, str | list[str]]:
    derived = derived or derive(form)

    payload: dict[str, str | list[str]] = {
        "project": form.project[0] if len(form.project) == 1 else list(form.project) or "",
        "modeOfProject": form.mode_of_project or "",
        "state": form.state or "",
        "mybillCategory": form.mybill_category or "",
        "invoiceNumber": form.invoice_number,
        "invoiceBasicAmount": format_amount(form.basic_amount),
        "gstPercentage": form.gst_percentage or "",
        "invoiceGstAmount": format_amount(derived.invoice_gst_amount),
        "totalAmount": format_amount(derived.total_amount),
        "passedAmountByClient": format_amount(form.passed_amount),
    }
    for name in DEDUCTION_FIELDS:
        payload[to_camel(name)] = format_amount(getattr(form, name))
    payload.update(
        {
            "totalDeduction": format_amount(derived.total_deduction),
            "netPayable": format_amount(derived.net_payable),
            "status": form.status or "",
            "amountPaidByClient": format_amount(derived.effective_amount_paid),
            "balance": format_amount(derived.balance),
            "remarks": form.remarks,
        }
    )

    if form.milestone:
        payload["milestone"] = form.milestone
    for key, value in (
        ("invoiceDate", form.invoice_date),
        ("submissionDate", form.submission_date),
        ("paymentDate", form.payment_date),
    ):
        if value is not None:
            payload[key] = value.isoformat()

    return payload
