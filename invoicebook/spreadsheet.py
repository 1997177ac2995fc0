from __future__ import annotations

import csv
import io
from datetime import date
from io import BytesIO
from typing import Any, Iterable

from openpyxl import Workbook, load_workbook

from invoicebook.errors import ImportFileError, UnsupportedFileError
from invoicebook.models import Invoice
from invoicebook.parse_utils import format_long_date

SUPPORTED_EXTENSIONS = (".csv", ".xlsx")

EXPORT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("Project", "project"),
    ("Mode of Project", "mode_of_project"),
    ("State", "state"),
    ("MyBill Category", "mybill_category"),
    ("Milestone", "milestone"),
    ("Invoice Number", "invoice_number"),
    ("Invoice Date", "invoice_date"),
    ("Submission Date", "submission_date"),
    ("Invoice Basic Amount", "invoice_basic_amount"),
    ("GST Percentage", "gst_percentage"),
    ("Invoice GST Amount", "invoice_gst_amount"),
    ("Total Amount", "total_amount"),
    ("Passed Amount By Client", "passed_amount_by_client"),
    ("Retention", "retention"),
    ("GST Withheld", "gst_withheld"),
    ("TDS", "tds"),
    ("GST TDS", "gst_tds"),
    ("BOCW", "bocw"),
    ("Low Depth Deduction", "low_depth_deduction"),
    ("LD", "ld"),
    ("SLA Penalty", "sla_penalty"),
    ("Penalty", "penalty"),
    ("Other Deduction", "other_deduction"),
    ("Total Deduction", "total_deduction"),
    ("Net Payable", "net_payable"),
    ("Status", "status"),
    ("Amount Paid By Client", "amount_paid_by_client"),
    ("Payment Date", "payment_date"),
    ("Balance", "balance"),
    ("Remarks", "remarks"),
    ("Invoice Copy Path", "invoice_copy_path"),
    ("Proof Of Submission Path", "proof_of_submission_path"),
    ("Supporting Docs Path", "supporting_docs_path"),
)


def _is_blank(row: Iterable[Any]) -> bool:
    return all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in row)


def _trim_trailing_blank(rows: list[list[Any]]) -> list[list[Any]]:
    while rows and _is_blank(rows[-1]):
        rows.pop()
    return rows


def _sniff_delimiter(sample: str) -> str:
    first_line = sample.splitlines()[0] if sample else ""
    if "\t" in first_line:
        return "\t"
    if ";" in first_line and "," not in first_line:
        return ";"
    return ","


def read_csv_rows(content: bytes) -> list[list[Any]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    reader = csv.reader(io.StringIO(text), delimiter=_sniff_delimiter(text))
    rows = [[cell if cell != "" else None for cell in row] for row in reader]
    return _trim_trailing_blank(rows)


def _xlsx_cell_value(cell: Any) -> Any:
    value = cell.value
    number_format = cell.number_format or ""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and "%" in number_format:
        return f"{value * 100:g}%"
    return value


def read_xlsx_rows(content: bytes) -> list[list[Any]]:
    try:
        workbook = load_workbook(BytesIO(content), data_only=True, read_only=True)
    except Exception as exc:
        raise ImportFileError(f"Failed to read Excel file: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        rows = [[_xlsx_cell_value(cell) for cell in row] for row in sheet.iter_rows()]
    finally:
        workbook.close()
    return _trim_trailing_blank(rows)


def read_rows(filename: str, content: bytes) -> list[list[Any]]:
    """First sheet of an upload as a list of rows; row 0 is the header row."""
    lowered = (filename or "").lower()
    if lowered.endswith(".csv"):
        return read_csv_rows(content)
    if lowered.endswith(".xlsx"):
        return read_xlsx_rows(content)
    raise UnsupportedFileError(
        f"Unsupported file type: {filename or 'unnamed'} (expected .csv or .xlsx)"
    )


def _export_value(invoice: Invoice, attribute: str) -> Any:
    value = getattr(invoice, attribute)
    if attribute == "project":
        return invoice.project_label()
    if isinstance(value, date):
        return format_long_date(value)
    if value is None:
        return ""
    return value


def export_invoices(invoices: Iterable[Invoice]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Invoices"
    sheet.append([header for header, _ in EXPORT_COLUMNS])
    for invoice in invoices:
        sheet.append([_export_value(invoice, attribute) for _, attribute in EXPORT_COLUMNS])

    output = BytesIO()
    workbook.save(output)
    return output.getvalue()


def export_filename(today: date | None = None) -> str:
    return f"invoices_full_{(today or date.today()).isoformat()}.xlsx"
