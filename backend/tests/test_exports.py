import io
from decimal import Decimal

from docx import Document

from lexledger.generators.docx_writer import build_docx, write_docx
from lexledger.generators.invoice_document import ExpenseLine, TimesheetLine, render_invoice_document
from lexledger.generators.pdf_writer import pdf_text, save_pdf, write_pdf
from lexledger.generators.tabular import (
    export_expenses,
    export_timesheets,
    matter_label,
    to_plain_text,
)
from lexledger.services.money import CurrencyCode


def sample_document():
    return render_invoice_document({
        "invoiceNumber": "INV/2025-26/0009",
        "clientName": "Zoë Müller GmbH",
        "currency": "EUR",
        "amount": "1500",
        "timesheetEntries": [
            {"date": "2026-02-02", "lawyerName": "Asha Rao", "lawyerRole": "Partner", "hours": "3",
             "hourlyRate": "500", "fees": "1500", "currency": "EUR", "description": "合同 review"},
        ],
    })


def timesheet_line(**overrides):
    values = dict(date="2026-01-05", lawyer_name="Asha Rao", lawyer_role="Partner", hours=Decimal("1.5"),
                  hourly_rate=Decimal("200"), fees=Decimal("300"), currency=CurrencyCode.USD,
                  description='Call re "terms"', activity_type="Meeting", matter_title="Merger",
                  matter_id=4, client_code="12")
    values.update(overrides)
    return TimesheetLine(**values)


# ========================================
# WORD & PDF
# ========================================

def test_docx_contains_every_section():
    content = write_docx(sample_document())
    assert content[:2] == b"PK"

    doc = Document(io.BytesIO(content))
    text = "\n".join(p.text for p in doc.paragraphs)
    assert "Dear Sir/Madam," in text
    assert "Itemized Timesheet Entries" in text
    assert "No partner shares assigned to this invoice." in text
    assert len(doc.tables) >= 4


def test_docx_title_property():
    assert build_docx(sample_document()).core_properties.title == "Invoice INV/2025-26/0009"


def test_pdf_output(tmp_path):
    content = write_pdf(sample_document())
    assert content[:4] == b"%PDF"

    path = save_pdf(sample_document(), tmp_path / "out" / "invoice.pdf")
    assert path.exists()
    assert path.read_bytes()[:4] == b"%PDF"


def test_pdf_text_replaces_symbols_outside_latin1():
    assert pdf_text("₹1,000.00") == "INR 1,000.00"
    assert pdf_text("€5") == "EUR 5"
    assert pdf_text("£5 Zoë") == "£5 Zoë"
    assert pdf_text("合同") == "??"


def test_empty_document_renders_to_both_formats():
    document = render_invoice_document(None)
    assert write_docx(document)[:2] == b"PK"
    assert write_pdf(document)[:4] == b"%PDF"


# ========================================
# CSV / TSV / TEXT
# ========================================

def test_timesheet_csv_quotes_every_cell():
    csv_text = export_timesheets([timesheet_line()], "csv")
    header, row = csv_text.split("\n")

    assert header.startswith('"Date","Matter","Lawyer Name"')
    assert row == ('"2026-01-05","0012-0004 - Merger","Asha Rao","Partner","1.50","200.00",'
                   '"300.00","USD","Call re ""terms""","Meeting"')


def test_timesheet_tsv():
    tsv = export_timesheets([timesheet_line(description="tab\there")], "tsv")
    lines = tsv.split("\n")

    assert lines[0].split("\t")[0] == "Date"
    assert lines[1].split("\t")[8] == "tab here"


def test_plain_text_table_is_padded():
    table = to_plain_text(["Date", "Hours"], [["2026-01-05", "1.50"]])
    header, separator, row = table.split("\n")

    assert header == "Date".ljust(12) + " | " + "Hours".ljust(10)
    assert separator == "------------" + "-+-" + "----------"
    assert row.startswith("2026-01-05   | 1.50")


def test_expense_export_defaults_rate_to_one():
    line = ExpenseLine(category="Travel", description="Cab", original_amount=Decimal("1200"),
                       original_currency=CurrencyCode.INR, billed_amount=Decimal("1200"),
                       currency=CurrencyCode.INR)

    csv_text = export_expenses([line], "csv")
    assert csv_text.split("\n")[1].endswith('"INR","1.0000"')
    assert '"-"' not in csv_text


def test_matter_label():
    assert matter_label(timesheet_line()) == "0012-0004 - Merger"
    assert matter_label(timesheet_line(matter_title=None, matter_id=None, client_code=None)) == "N/A"


def test_empty_exports_have_headers_only():
    assert export_timesheets([], "csv").count("\n") == 0
    assert export_expenses([], "txt").count("\n") == 1
