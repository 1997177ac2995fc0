"""Spreadsheet rows to invoice-creation payloads.

Headers are matched by a normalized key, never by position, so user
spreadsheets may reorder, re-case or re-punctuate their columns freely.
Every row is submitted on its own: a failing row is recorded as
``Row <n>: <message>`` and the import moves on to the next one.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Callable, Dict, Optional, Sequence

from invoicebook import api_client
from invoicebook.errors import AuthenticationError, ImportFileError
from invoicebook.models import ImportReport, Invoice, Session
from invoicebook.parse_utils import coerce_date, coerce_money, format_amount
from invoicebook.spreadsheet import read_rows

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

HEADER_FIELDS: dict[str, str] = {
    "project": "project",
    "projectname": "project",
    "modeofproject": "modeOfProject",
    "mode": "modeOfProject",
    "state": "state",
    "mybillcategory": "mybillCategory",
    "billcategory": "mybillCategory",
    "milestone": "milestone",
    "invoicenumber": "invoiceNumber",
    "invoiceno": "invoiceNumber",
    "invoicedate": "invoiceDate",
    "submissiondate": "submissionDate",
    "invoicebasicamount": "invoiceBasicAmount",
    "basicamount": "invoiceBasicAmount",
    "gstpercentage": "gstPercentage",
    "gst": "gstPercentage",
    "invoicegstamount": "invoiceGstAmount",
    "gstamount": "invoiceGstAmount",
    "totalamount": "totalAmount",
    "passedamountbyclient": "passedAmountByClient",
    "passedamount": "passedAmountByClient",
    "retention": "retention",
    "gstwithheld": "gstWithheld",
    "tds": "tds",
    "gsttds": "gstTds",
    "bocw": "bocw",
    "lowdepthdeduction": "lowDepthDeduction",
    "ld": "ld",
    "slapenalty": "slaPenalty",
    "penalty": "penalty",
    "otherdeduction": "otherDeduction",
    "totaldeduction": "totalDeduction",
    "netpayable": "netPayable",
    "status": "status",
    "amountpaidbyclient": "amountPaidByClient",
    "amountpaid": "amountPaidByClient",
    "paymentdate": "paymentDate",
    "balance": "balance",
    "balancependingamount": "balance",
    "pendingamount": "balance",
    "remarks": "remarks",
}

DATE_FIELDS = frozenset({"invoiceDate", "submissionDate", "paymentDate"})
PERCENT_FIELDS = frozenset({"milestone", "gstPercentage"})
MONEY_FIELDS = frozenset(
    {
        "invoiceBasicAmount",
        "invoiceGstAmount",
        "totalAmount",
        "passedAmountByClient",
        "retention",
        "gstWithheld",
        "tds",
        "gstTds",
        "bocw",
        "lowDepthDeduction",
        "ld",
        "slaPenalty",
        "penalty",
        "otherDeduction",
        "totalDeduction",
        "netPayable",
        "amountPaidByClient",
        "balance",
    }
)

SubmitFn = Callable[[Session, Dict[str, Any]], Any]
RefreshFn = Callable[[Session], list[Invoice]]
ProgressFn = Callable[[int, int], None]

LOG_IMPORT_ROWS = os.getenv("LOG_IMPORT_ROWS", "").lower() in {"1", "true", "yes", "on"}


def normalize_header(header: Any) -> str:
    if header is None:
        return ""
    return _NON_ALNUM_RE.sub("", str(header).lower())


def map_header_to_field(normalized: str) -> Optional[str]:
    return HEADER_FIELDS.get(normalized)


def _text_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def coerce_cell(field: str, value: Any) -> Any:
    if field in DATE_FIELDS:
        return coerce_date(value)
    if field in PERCENT_FIELDS:
        return _text_value(value)
    if field in MONEY_FIELDS:
        if isinstance(value, str):
            value = value.strip()
        return coerce_money(value)
    return _text_value(value)


def row_to_payload(
    fields: Sequence[Optional[str]], row: Sequence[Any], user_id: Optional[str]
) -> Optional[Dict[str, Any]]:
    """Payload for one data row, or None when the row carries nothing we map."""
    payload: Dict[str, Any] = {"userId": user_id}
    recognized = False
    for index, field in enumerate(fields):
        if field is None:
            continue
        recognized = True
        value = row[index] if index < len(row) else None
        payload[field] = coerce_cell(field, value)
    if not recognized or all(value is None for key, value in payload.items() if key != "userId"):
        return None
    return payload


def form_fields(payload: Dict[str, Any]) -> Dict[str, str]:
    """Multipart fields for a payload; empty values are left out."""
    data: Dict[str, str] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if key in MONEY_FIELDS and isinstance(value, (int, float)):
            data[key] = format_amount(value)
        else:
            data[key] = str(value)
    return data


def _submit_row(session: Session, payload: Dict[str, Any]) -> Any:
    return api_client.create_invoice(session, form_fields(payload))


def import_rows(
    header_row: Sequence[Any],
    data_rows: Sequence[Sequence[Any]],
    session: Session,
    submit: Optional[SubmitFn] = None,
    refresh: Optional[RefreshFn] = None,
    progress: Optional[ProgressFn] = None,
) -> ImportReport:
    if not session.user_id:
        raise AuthenticationError("Please re-login")
    api_client.require_token(session)
    submit = submit or _submit_row
    refresh = refresh or api_client.list_invoices

    fields = [map_header_to_field(normalize_header(h)) for h in header_row]
    unknown = [h for h, f in zip(header_row, fields) if f is None and normalize_header(h)]
    if unknown:
        logger.info("Ignoring unrecognized columns: %s", unknown)

    report = ImportReport(total=len(data_rows))
    if progress:
        progress(0, report.total)

    try:
        for i, row in enumerate(data_rows):
            payload = row_to_payload(fields, row, session.user_id)
            if payload is None:
                report.skipped += 1
                continue
            if LOG_IMPORT_ROWS:
                logger.info("Import row %s payload: %s", i + 2, payload)

            try:
                submit(session, payload)
            except Exception as exc:
                message = api_client.error_message(exc)
                logger.info("Import row %s failed: %s", i + 2, message)
                report.errors.append(f"Row {i + 2}: {message}")
                report.failed += 1
                continue

            report.succeeded += 1
            if progress:
                progress(report.succeeded, report.total)
    finally:
        try:
            report.invoices = refresh(session)
            report.refreshed = True
        except Exception:
            logger.exception("Failed to refresh invoices after import")

    logger.info(
        "Import finished",
        extra={
            "total": report.total,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "skipped": report.skipped,
        },
    )
    return report


def import_file(
    filename: str,
    content: bytes,
    session: Session,
    submit: Optional[SubmitFn] = None,
    refresh: Optional[RefreshFn] = None,
    progress: Optional[ProgressFn] = None,
) -> ImportReport:
    rows = read_rows(filename, content)
    if len(rows) < 2:
        raise ImportFileError("File appears to be empty or missing headers")
    return import_rows(rows[0], rows[1:], session, submit=submit, refresh=refresh, progress=progress)
