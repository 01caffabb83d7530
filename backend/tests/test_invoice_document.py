from datetime import date
from decimal import Decimal

from lexledger.generators.invoice_document import (
    NO_EXPENSES,
    NO_FEES,
    NO_PARTNERS,
    NO_PAYMENTS,
    NO_TIMESHEETS,
    SECTION_KEYS,
    InvoiceDocumentData,
    PartnerShareData,
    TimesheetLine,
    day_subtotals,
    format_date,
    format_matter_id,
    group_entries_by_date,
    render_invoice_document,
    render_letter_body,
    summarize_lawyer_fees,
)
from lexledger.services.money import CurrencyCode


def sample_invoice():
    return {
        "invoiceNumber": "INV/2025-26/0004",
        "invoiceDate": "2026-01-31",
        "dueDate": "2026-03-02",
        "clientName": "Acme Holdings",
        "clientAddress": "Nariman Point, Mumbai",
        "matters": [{"title": "Lease Review"}],
        "periodFrom": "2026-01-01",
        "periodTo": "2026-01-31",
        "invoiceCurrency": "INR",
        "subtotal": "123456",
        "discountType": "percentage",
        "discountValue": "10",
        "discountAmount": "12345.60",
        "amount": "111110.40",
        "amountPaid": "10000",
        "status": "partially_paid",
        "timesheetEntries": [
            {"date": "2026-01-06", "lawyerName": "Asha Rao", "lawyerRole": "Partner", "hours": "2",
             "hourlyRate": "10000", "fees": "20000", "currency": "INR", "description": "Client call",
             "matterId": 3, "clientCode": "12", "matterTitle": "Lease Review"},
            {"date": "2026-01-05", "lawyerName": "Vikram Shah", "lawyerRole": "Associate", "hours": "3.5",
             "hourlyRate": "4000", "fees": "14000", "currency": "INR", "description": "Drafting"},
            {"date": "2026-01-05", "lawyer_name": "Asha Rao", "lawyer_role": "Partner", "hours": "1",
             "hourly_rate": "150", "fees": "150", "currency": "USD", "description": "Review"},
        ],
        "expenseEntries": [
            {"category": "Travel", "subCategory": "Cab", "description": "Court visit",
             "originalAmount": "1200", "originalCurrency": "INR", "billedAmount": "1200", "currency": "INR"},
        ],
        "partnerShares": [
            {"userName": "Asha Rao", "percentage": "60"},
            {"userName": "Meera Iyer", "percentage": "50"},
        ],
        "payments": [
            {"paymentDate": "2026-02-10", "amount": "10000", "paymentMethod": "bank_transfer",
             "transactionRef": "UTR123"},
        ],
        "companyName": "Touchstone Partners",
    }


def test_empty_input_still_renders_seven_sections():
    for payload in ({}, None, "not a mapping"):
        document = render_invoice_document(payload)

        assert [s.key for s in document.sections] == list(SECTION_KEYS)
        assert document.title == "Invoice INV-XXXX"
        assert NO_TIMESHEETS in document.section("timesheet_entries").text()
        assert NO_FEES in document.section("fee_summary").text()
        assert NO_EXPENSES in document.section("expenses").text()
        assert NO_PARTNERS in document.section("partner_split").text()
        assert NO_PAYMENTS in document.section("summary").text()


def test_malformed_fields_fall_back_to_placeholders():
    document = render_invoice_document({
        "amount": "lots",
        "invoiceDate": "sometime soon",
        "timesheetEntries": "not-a-list",
        "partnerShares": [None, {"percentage": "abc"}],
        "currency": "XXX",
    })

    letter = document.section("letter").text()
    assert "sometime soon" in letter
    assert "₹0.00" in letter
    assert "0%" in document.section("partner_split").text()


def test_out_of_range_amounts_render_as_zero():
    document = render_invoice_document({
        "amount": "1e30",
        "amountPaid": "-1e20",
        "partnerShares": [{"userName": "Asha Rao", "percentage": 50}],
        "payments": [{"paymentDate": "2026-02-10", "amount": "9e99", "paymentMethod": "upi"}],
    })

    assert "Final Amount | ₹0.00" in document.section("invoice_summary").text()
    assert "Asha Rao | 50% | ₹0.00" in document.section("partner_split").text()
    assert "10 February 2026 | ₹0.00 | UPI" in document.section("summary").text()


def test_huge_amount_in_typed_input_does_not_raise():
    document = render_invoice_document(InvoiceDocumentData(
        amount=Decimal("1e30"),
        partner_shares=[PartnerShareData(user_name="Asha Rao", percentage=Decimal("50"))],
    ))

    assert "Final Amount | -" in document.section("invoice_summary").text()
    assert "Asha Rao | 50% | ₹0.00" in document.section("partner_split").text()


def test_split_parent_balances_per_currency():
    summary = render_invoice_document({
        "amount": "1000",
        "paidByCurrency": {"INR": "0", "USD": "4.80", "XYZ": "1"},
        "remainingByCurrency": {"INR": "600", "USD": "0"},
        "payments": [{"paymentDate": "2026-02-10", "amount": "4.80", "currency": "USD", "paymentMethod": "cash"}],
    })

    text = summary.section("invoice_summary").text()
    assert "Amount Paid (INR) | ₹0.00" in text
    assert "Remaining (INR) | ₹600.00" in text
    assert "Amount Paid (USD) | $4.80" in text
    assert "Remaining (USD) | $0.00" in text
    assert "XYZ" not in text
    assert "10 February 2026 | $4.80 | CASH" in summary.section("summary").text()


def test_letter_section():
    letter = render_invoice_document(sample_invoice()).section("letter").text()

    assert "Dear Sir/Madam," in letter
    assert "31 January 2026" in letter
    assert "Matter(s): Lease Review" in letter
    assert "Period from: 01 January 2026 to 31 January 2026" in letter
    assert "₹1,11,110.40" in letter
    assert "Yours faithfully" in letter
    assert "Accounts Team, Touchstone Partners" in letter


def test_invoice_summary_shows_discount_and_remaining():
    summary = render_invoice_document(sample_invoice()).section("invoice_summary").text()

    assert "Discount (10%) | -₹12,345.60" in summary
    assert "Final Amount | ₹1,11,110.40" in summary
    assert "Remaining | ₹1,01,110.40" in summary
    assert "Partially paid" in summary


def test_timesheet_entries_grouped_by_date_with_per_currency_subtotals():
    section = render_invoice_document(sample_invoice()).section("timesheet_entries")
    table = section.blocks[1]
    first_cells = [row.cells[0] for row in table.rows]

    assert first_cells[0] == "05 January 2026"
    assert first_cells.count("Subtotal for 05 January 2026") == 2
    assert "Subtotal for 06 January 2026" in first_cells
    assert "0012-0003 - Lease Review" in section.text()
    assert "Total (INR)" in first_cells
    assert "Total (USD)" in first_cells


def test_fee_summary_derived_from_entries():
    text = render_invoice_document(sample_invoice()).section("fee_summary").text()

    assert "Asha Rao | Partner | 2.00 | ₹10,000.00 | ₹20,000.00" in text
    assert "Asha Rao | Partner | 1.00 | $150.00 | $150.00" in text


def test_partner_split_notes_incomplete_allocation():
    text = render_invoice_document(sample_invoice()).section("partner_split").text()

    assert "Asha Rao | 60% | ₹66,666.24" in text
    assert "Meera Iyer | 50% | ₹55,555.20" in text
    assert "Total | 110%" in text
    assert "Note: partner shares total 110%" in text


def test_summary_section_lists_payments():
    text = render_invoice_document(sample_invoice()).section("summary").text()

    assert "Total Hours: 6.50" in text
    assert "Number of Entries: 3" in text
    assert "10 February 2026 | ₹10,000.00 | BANK TRANSFER | UTR123" in text
    assert "Asha Rao: 60%" in text


def test_expense_section_totals():
    text = render_invoice_document(sample_invoice()).section("expenses").text()
    assert "Travel | Cab | Court visit | ₹1,200.00 | ₹1,200.00 | 1.0000" in text
    assert "Total (billed)" in text


def test_format_matter_id():
    assert format_matter_id("12", 7) == "0012-0007"
    assert format_matter_id(None, 5) == "0000-0005"
    assert format_matter_id(None, None) == "N/A"


def test_format_date():
    assert format_date("2026-01-05") == "05 January 2026"
    assert format_date(date(2025, 12, 1)) == "01 December 2025"
    assert format_date(None) == "-"
    assert format_date("TBC") == "TBC"


def _line(day, currency=CurrencyCode.INR, hours="1", fees="100", name="A"):
    return TimesheetLine(date=day, lawyer_name=name, lawyer_role="Partner", hours=Decimal(hours),
                         hourly_rate=Decimal("100"), fees=Decimal(fees), currency=currency)


def test_grouping_and_day_subtotals():
    entries = [_line("2026-01-06"), _line("2026-01-05", name="B"), _line("2026-01-05", CurrencyCode.USD, fees="5")]

    groups = group_entries_by_date(entries)
    assert list(groups) == ["2026-01-05", "2026-01-06"]
    assert [e.lawyer_name for e in groups["2026-01-05"]] == ["B", "A"]

    subtotals = day_subtotals(groups["2026-01-05"])
    assert subtotals == [(CurrencyCode.INR, Decimal("1"), Decimal("100")),
                         (CurrencyCode.USD, Decimal("1"), Decimal("5"))]


def test_summarize_lawyer_fees():
    rows = summarize_lawyer_fees([_line("2026-01-05", hours="2", fees="300"), _line("2026-01-06", fees="100")])

    assert len(rows) == 1
    assert rows[0].hours == Decimal("3")
    assert rows[0].fees == Decimal("400")


def test_from_mapping_accepts_snake_case():
    data = InvoiceDocumentData.from_mapping({"invoice_number": "INV/1", "currency": "usd", "final_amount": "10"})

    assert data.invoice_number == "INV/1"
    assert data.currency == CurrencyCode.USD
    assert data.amount == Decimal("10")


def test_letter_body_template():
    data = InvoiceDocumentData.from_mapping({"invoiceNumber": "INV/9", "amount": "250", "currency": "GBP"})

    lines = render_letter_body(data, "Dear {{ client_name }},\n\nInvoice {{ invoice_number }}: {{ amount }}\n")
    assert lines == ["Dear -,", "Invoice INV/9: £250.00"]

    default = render_letter_body(data)
    assert default[0] == "Dear Sir/Madam,"
    assert "amounting to £250.00." in default[1]
