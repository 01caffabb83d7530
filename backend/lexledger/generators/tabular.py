"""
LexLedger Practice Billing
Tabular exports of invoice timesheet and expense lines (CSV, TSV, plain text)
"""
import csv
import io
from decimal import Decimal
from typing import Iterable, List, Sequence

from lexledger.generators.invoice_document import ExpenseLine, TimesheetLine, format_matter_id

TIMESHEET_HEADERS = [
    "Date", "Matter", "Lawyer Name", "Role", "Hours", "Hourly Rate",
    "Fees", "Currency", "Description", "Activity Type",
]

EXPENSE_HEADERS = [
    "Category", "Sub-Category", "Description", "Original Amount", "Original Currency",
    "Billed Amount", "Invoice Currency", "Exchange Rate",
]

FORMATS = ("csv", "tsv", "txt")


def _fixed(value: Decimal, places: int = 2) -> str:
    return f"{value:.{places}f}"


def _clean(value) -> str:
    text = "" if value is None else str(value)
    return "" if text == "-" else text


def matter_label(entry: TimesheetLine) -> str:
    formatted = format_matter_id(entry.client_code, entry.matter_id)
    return f"{formatted} - {entry.matter_title}" if entry.matter_title else formatted


def timesheet_rows(entries: Iterable[TimesheetLine]) -> List[List[str]]:
    return [
        [
            entry.date,
            matter_label(entry),
            _clean(entry.lawyer_name),
            _clean(entry.lawyer_role),
            _fixed(entry.hours),
            _fixed(entry.hourly_rate),
            _fixed(entry.fees),
            entry.currency.value,
            _clean(entry.description),
            _clean(entry.activity_type),
        ]
        for entry in entries
    ]


def expense_rows(expenses: Iterable[ExpenseLine]) -> List[List[str]]:
    return [
        [
            _clean(expense.category),
            _clean(expense.sub_category),
            _clean(expense.description),
            _fixed(expense.original_amount),
            expense.original_currency.value,
            _fixed(expense.billed_amount),
            expense.currency.value,
            _fixed(expense.exchange_rate if expense.exchange_rate is not None else Decimal("1"), 4),
        ]
        for expense in expenses
    ]


def to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def to_tsv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    lines = [headers] + [[cell.replace("\t", " ") for cell in row] for row in rows]
    return "\n".join("\t".join(line) for line in lines)


def to_plain_text(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Fixed-width table padded to the widest cell (minimum 8) plus 2"""
    widths = []
    for index, header in enumerate(headers):
        data_width = max((len(row[index]) for row in rows), default=0)
        widths.append(max(len(header), data_width, 8) + 2)

    def line(cells):
        return " | ".join(cell.ljust(width) for cell, width in zip(cells, widths))

    lines = [line(headers), "-+-".join("-" * width for width in widths)]
    lines.extend(line(row) for row in rows)
    return "\n".join(lines)


def export_timesheets(entries: Iterable[TimesheetLine], fmt: str = "csv") -> str:
    rows = timesheet_rows(entries)
    if fmt == "tsv":
        return to_tsv(TIMESHEET_HEADERS, rows)
    if fmt == "txt":
        return to_plain_text(TIMESHEET_HEADERS, rows)
    return to_csv(TIMESHEET_HEADERS, rows)


def export_expenses(expenses: Iterable[ExpenseLine], fmt: str = "csv") -> str:
    rows = expense_rows(expenses)
    if fmt == "tsv":
        return to_tsv(EXPENSE_HEADERS, rows)
    if fmt == "txt":
        return to_plain_text(EXPENSE_HEADERS, rows)
    return to_csv(EXPENSE_HEADERS, rows)
