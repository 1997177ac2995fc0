"""Tests for reading uploads and writing the invoice export."""

from datetime import date, datetime
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from invoicebook.errors import ImportFileError, UnsupportedFileError
from invoicebook.models import Invoice
from invoicebook.spreadsheet import (
    EXPORT_COLUMNS,
    export_filename,
    export_invoices,
    read_csv_rows,
    read_rows,
)


def _xlsx_bytes(rows, percent_cells=()):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    for ref in percent_cells:
        sheet[ref].number_format = "0%"
    output = BytesIO()
    workbook.save(output)
    return output.getvalue()


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def test_csv_rows_and_empty_cells():
    rows = read_csv_rows(b"Invoice No,Remarks\nINV-1,\n")
    assert rows == [["Invoice No", "Remarks"], ["INV-1", None]]


def test_csv_with_byte_order_mark():
    rows = read_csv_rows("\ufeffInvoice No,State\nINV-1,Delhi\n".encode("utf-8"))
    assert rows[0] == ["Invoice No", "State"]


def test_csv_semicolon_delimiter():
    rows = read_csv_rows(b"Invoice No;State\nINV-1;Delhi\n")
    assert rows == [["Invoice No", "State"], ["INV-1", "Delhi"]]


def test_csv_quoted_amount_with_commas():
    rows = read_csv_rows(b'Invoice No,Basic Amount\nINV-1,"1,466.93"\n')
    assert rows[1] == ["INV-1", "1,466.93"]


def test_csv_trailing_blank_rows_dropped():
    rows = read_csv_rows(b"Invoice No\nINV-1\n,\n\n")
    assert rows == [["Invoice No"], ["INV-1"]]


# ---------------------------------------------------------------------------
# XLSX
# ---------------------------------------------------------------------------

class TestXlsxUpload:
    @pytest.fixture(autouse=True)
    def read(self):
        content = _xlsx_bytes(
            [
                ["Invoice No", "Invoice Date", "Basic Amount", "GST %", "Serial Date"],
                ["INV-1", datetime(2025, 4, 12), 1000, 0.18, 45759],
            ],
            percent_cells=("D2",),
        )
        self.rows = read_rows("Invoices.XLSX", content)

    def test_header_row(self):
        assert self.rows[0] == ["Invoice No", "Invoice Date", "Basic Amount", "GST %", "Serial Date"]

    def test_date_cell(self):
        assert self.rows[1][1] == datetime(2025, 4, 12)

    def test_number_cell(self):
        assert self.rows[1][2] == 1000

    def test_percent_cell_rendered_as_text(self):
        assert self.rows[1][3] == "18%"

    def test_serial_left_for_normalizer(self):
        assert self.rows[1][4] == 45759


def test_corrupt_xlsx():
    with pytest.raises(ImportFileError, match="Failed to read Excel file"):
        read_rows("broken.xlsx", b"not a zip archive")


@pytest.mark.parametrize("filename", ["invoices.pdf", "invoices.xls", "invoices", ""])
def test_unsupported_upload(filename):
    with pytest.raises(UnsupportedFileError):
        read_rows(filename, b"data")


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

class TestExport:
    @pytest.fixture(autouse=True)
    def export(self):
        invoices = [
            Invoice.model_validate(
                {
                    "id": "1",
                    "project": ["NFS", "GAIL"],
                    "invoiceNumber": "INV-1",
                    "invoiceDate": "2025-04-12",
                    "invoiceBasicAmount": 1000,
                    "status": "Under process",
                    "invoice_copy_path": "uploads/inv-1.pdf",
                }
            ),
            Invoice.model_validate({"id": "2", "project": "NFS", "invoiceNumber": "INV-2"}),
        ]
        workbook = load_workbook(BytesIO(export_invoices(invoices)))
        self.sheet = workbook.active
        self.rows = list(self.sheet.iter_rows(values_only=True))

    def _column(self, header):
        return [h for h, _ in EXPORT_COLUMNS].index(header)

    def test_sheet_name(self):
        assert self.sheet.title == "Invoices"

    def test_header_row(self):
        assert len(self.rows[0]) == 33
        assert self.rows[0][0] == "Project"
        assert self.rows[0][-1] == "Supporting Docs Path"

    def test_one_row_per_invoice(self):
        assert len(self.rows) == 3

    def test_projects_joined(self):
        assert self.rows[1][self._column("Project")] == "NFS, GAIL"

    def test_long_dates(self):
        assert self.rows[1][self._column("Invoice Date")] == "12 April 2025"

    def test_amounts_and_paths(self):
        assert self.rows[1][self._column("Invoice Basic Amount")] == 1000
        assert self.rows[1][self._column("Invoice Copy Path")] == "uploads/inv-1.pdf"


def test_export_filename():
    assert export_filename(date(2025, 4, 12)) == "invoices_full_2025-04-12.xlsx"
