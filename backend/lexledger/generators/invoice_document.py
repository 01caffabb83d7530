"""
LexLedger Practice Billing
Invoice Document Renderer

Projects a resolved invoice into a structured, seven-section document:

    1. Cover letter
    2. Invoice summary (bill-to, dates, financials)
    3. Itemized timesheet entries, grouped by date with day subtotals
    4. Fee summary per lawyer
    5. Expenses with per-currency totals
    6. Partner split
    7. Overall summary and payment history

render_invoice_document() is pure and never raises: missing or malformed
fields are replaced with placeholders so export always produces a document.
The Word and PDF writers consume the resulting InvoiceDocument.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from jinja2 import BaseLoader, Environment, StrictUndefined

from lexledger.services.money import CurrencyCode, MoneyBuckets, Money, format_currency
from lexledger.services.partner_share_service import share_amount

PLACEHOLDER = "-"
INVOICE_NUMBER_PLACEHOLDER = "INV-XXXX"

# Amounts at or above this are treated as malformed input
MAX_AMOUNT = Decimal(10) ** 15

NO_TIMESHEETS = "No timesheet entries available."
NO_FEES = "No timesheet data available."
NO_EXPENSES = "No expenses recorded."
NO_PARTNERS = "No partner shares assigned to this invoice."
NO_PAYMENTS = "No payments recorded."

# One paragraph per non-empty line
LETTER_TEMPLATE = """\
Dear Sir/Madam,
Please find enclosed our invoice {{ invoice_number }} for legal services rendered, amounting to {{ amount }}.
{% if bank_details %}
{{ bank_details }}
{% endif %}
I trust you find this to be in order.
Yours faithfully
"""

SECTION_KEYS = (
    "letter",
    "invoice_summary",
    "timesheet_entries",
    "fee_summary",
    "expenses",
    "partner_split",
    "summary",
)


# ========================================
# DOCUMENT MODEL
# ========================================

@dataclass
class Heading:
    text: str
    level: int = 1


@dataclass
class Paragraph:
    text: str
    bold: bool = False
    align: str = "left"


@dataclass
class TableRow:
    cells: List[str]
    emphasis: bool = False


@dataclass
class Table:
    headers: List[str]
    rows: List[TableRow] = field(default_factory=list)
    title: Optional[str] = None


Block = Union[Heading, Paragraph, Table]


@dataclass
class Section:
    key: str
    title: str
    blocks: List[Block] = field(default_factory=list)

    def text(self) -> str:
        parts = []
        for block in self.blocks:
            if isinstance(block, Table):
                if block.title:
                    parts.append(block.title)
                parts.append(" | ".join(block.headers))
                parts.extend(" | ".join(row.cells) for row in block.rows)
            else:
                parts.append(block.text)
        return "\n".join(parts)


@dataclass
class InvoiceDocument:
    title: str
    sections: List[Section]

    def section(self, key: str) -> Section:
        for section in self.sections:
            if section.key == key:
                return section
        raise KeyError(key)

    def plain_text(self) -> str:
        return "\n\n".join(f"{s.title}\n{s.text()}" for s in self.sections)


# ========================================
# TOLERANT COERCION
# ========================================

def _text(value: Any, default: str = PLACEHOLDER) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not result.is_finite() or abs(result) >= MAX_AMOUNT:
        return Decimal("0")
    return result


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return _decimal(value)


def _currency(value: Any, default: CurrencyCode = CurrencyCode.INR) -> CurrencyCode:
    if isinstance(value, CurrencyCode):
        return value
    if isinstance(value, str) and value.strip().upper() in CurrencyCode._value2member_map_:
        return CurrencyCode(value.strip().upper())
    return default


def _date_key(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return _text(value, "Unknown")


def format_date(value: Any) -> str:
    """'2026-01-05' -> '05 January 2026'; unparseable input is shown as-is"""
    if value is None or value == "":
        return PLACEHOLDER
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        try:
            value = date.fromisoformat(str(value)[:10])
        except ValueError:
            return _text(value)
    return value.strftime("%d %B %Y")


def _hours(value: Decimal) -> str:
    return f"{value:.2f}"


def _money(amount: Decimal, currency: CurrencyCode) -> str:
    try:
        return format_currency(amount, currency)
    except InvalidOperation:
        return PLACEHOLDER


def _share(final_amount: Money, percentage: Decimal) -> Money:
    try:
        return share_amount(final_amount, percentage)
    except InvalidOperation:
        return Money.zero(final_amount.currency)


def _currency_amounts(value: Any) -> Dict[CurrencyCode, Decimal]:
    """{code: amount} with unknown currency codes dropped"""
    amounts: Dict[CurrencyCode, Decimal] = {}
    if isinstance(value, Mapping):
        for code, amount in value.items():
            if isinstance(code, str) and code.strip().upper() in CurrencyCode._value2member_map_:
                amounts[CurrencyCode(code.strip().upper())] = _decimal(amount)
    return amounts


def _get(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


# ========================================
# INPUT MODEL
# ========================================

@dataclass
class LawyerFeeData:
    lawyer_name: str
    lawyer_role: str
    hours: Decimal
    hourly_rate: Decimal
    fees: Decimal
    currency: CurrencyCode


@dataclass
class TimesheetLine:
    date: str
    lawyer_name: str
    lawyer_role: str
    hours: Decimal
    hourly_rate: Decimal
    fees: Decimal
    currency: CurrencyCode
    description: str = PLACEHOLDER
    activity_type: str = PLACEHOLDER
    matter_title: Optional[str] = None
    matter_id: Optional[int] = None
    client_code: Optional[str] = None


@dataclass
class ExpenseLine:
    category: str
    description: str
    original_amount: Decimal
    original_currency: CurrencyCode
    billed_amount: Decimal
    currency: CurrencyCode
    sub_category: str = PLACEHOLDER
    exchange_rate: Optional[Decimal] = None


@dataclass
class PartnerShareData:
    user_name: str
    percentage: Decimal
    user_id: Optional[int] = None


@dataclass
class PaymentData:
    payment_date: Any
    amount: Decimal
    payment_method: str
    transaction_ref: str = PLACEHOLDER
    notes: str = PLACEHOLDER
    currency: Optional[CurrencyCode] = None  # defaults to the invoice currency


@dataclass
class InvoiceDocumentData:
    invoice_number: str = INVOICE_NUMBER_PLACEHOLDER
    invoice_date: Any = None
    due_date: Any = None
    client_name: str = PLACEHOLDER
    client_address: Optional[str] = None
    matter_title: Optional[str] = None
    matters: List[str] = field(default_factory=list)
    period_from: Any = None
    period_to: Any = None
    currency: CurrencyCode = CurrencyCode.INR
    amount: Decimal = Decimal("0")
    subtotal: Optional[Decimal] = None
    discount_type: Optional[str] = None
    discount_value: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    remaining_amount: Optional[Decimal] = None
    # Split parents: totals over the split invoices, one entry per currency
    paid_by_currency: Dict[CurrencyCode, Decimal] = field(default_factory=dict)
    remaining_by_currency: Dict[CurrencyCode, Decimal] = field(default_factory=dict)
    status: str = "new"
    billing_location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    exchange_rates: Dict[str, Decimal] = field(default_factory=dict)
    lawyer_fees: List[LawyerFeeData] = field(default_factory=list)
    timesheet_entries: List[TimesheetLine] = field(default_factory=list)
    expense_entries: List[ExpenseLine] = field(default_factory=list)
    partner_shares: List[PartnerShareData] = field(default_factory=list)
    payments: List[PaymentData] = field(default_factory=list)
    company_name: str = PLACEHOLDER
    company_address: Optional[str] = None
    company_email: Optional[str] = None
    company_phone: Optional[str] = None
    bank_details: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "InvoiceDocumentData":
        """Build from API-style camelCase or snake_case keys, tolerating junk"""
        if not isinstance(data, Mapping):
            data = {}

        currency = _currency(_get(data, "invoiceCurrency", "invoice_currency", "currency",
                                  "matterCurrency", "matter_currency"))

        matters = []
        for matter in _as_list(_get(data, "matters")):
            if isinstance(matter, Mapping):
                matters.append(_text(_get(matter, "title", "matter_title")))
            else:
                matters.append(_text(matter))

        lawyer_fees = []
        for item in _as_list(_get(data, "lawyerFees", "lawyer_fees")):
            if not isinstance(item, Mapping):
                continue
            lawyer_fees.append(LawyerFeeData(
                lawyer_name=_text(_get(item, "lawyerName", "lawyer_name")),
                lawyer_role=_text(_get(item, "lawyerRole", "lawyer_role")),
                hours=_decimal(_get(item, "hours")),
                hourly_rate=_decimal(_get(item, "hourlyRate", "hourly_rate")),
                fees=_decimal(_get(item, "fees")),
                currency=_currency(_get(item, "currency"), currency),
            ))

        entries = []
        for item in _as_list(_get(data, "timesheetEntries", "timesheet_entries")):
            if not isinstance(item, Mapping):
                continue
            entries.append(TimesheetLine(
                date=_date_key(_get(item, "date")),
                lawyer_name=_text(_get(item, "lawyerName", "lawyer_name")),
                lawyer_role=_text(_get(item, "lawyerRole", "lawyer_role")),
                hours=_decimal(_get(item, "hours")),
                hourly_rate=_decimal(_get(item, "hourlyRate", "hourly_rate")),
                fees=_decimal(_get(item, "fees")),
                currency=_currency(_get(item, "currency", "originalCurrency", "original_currency"), currency),
                description=_text(_get(item, "description")),
                activity_type=_text(_get(item, "activityType", "activity_type")),
                matter_title=_get(item, "matterTitle", "matter_title"),
                matter_id=_get(item, "matterId", "matter_id"),
                client_code=_get(item, "clientCode", "client_code"),
            ))

        expenses = []
        for item in _as_list(_get(data, "expenseEntries", "expense_entries")):
            if not isinstance(item, Mapping):
                continue
            original_currency = _currency(_get(item, "originalCurrency", "original_currency"))
            expenses.append(ExpenseLine(
                category=_text(_get(item, "category")),
                sub_category=_text(_get(item, "subCategory", "sub_category")),
                description=_text(_get(item, "description")),
                original_amount=_decimal(_get(item, "originalAmount", "original_amount")),
                original_currency=original_currency,
                billed_amount=_decimal(_get(item, "billedAmount", "billed_amount", "amount")),
                currency=_currency(_get(item, "currency"), currency),
                exchange_rate=_optional_decimal(_get(item, "exchangeRate", "exchange_rate")),
            ))

        shares = []
        for item in _as_list(_get(data, "partnerShares", "partner_shares")):
            if not isinstance(item, Mapping):
                continue
            shares.append(PartnerShareData(
                user_name=_text(_get(item, "userName", "user_name")),
                percentage=_decimal(_get(item, "percentage")),
                user_id=_get(item, "userId", "user_id"),
            ))

        payments = []
        for item in _as_list(_get(data, "payments")):
            if not isinstance(item, Mapping):
                continue
            payments.append(PaymentData(
                payment_date=_get(item, "paymentDate", "payment_date"),
                amount=_decimal(_get(item, "amount")),
                payment_method=_text(_get(item, "paymentMethod", "payment_method")),
                transaction_ref=_text(_get(item, "transactionRef", "transaction_ref")),
                notes=_text(_get(item, "notes")),
                currency=_currency(_get(item, "currency"), currency),
            ))

        rates = {}
        raw_rates = _get(data, "exchangeRates", "exchange_rates", default={})
        if isinstance(raw_rates, Mapping):
            for code, rate in raw_rates.items():
                rates[str(code)] = _decimal(rate)

        return cls(
            invoice_number=_text(_get(data, "invoiceNumber", "invoice_number"), INVOICE_NUMBER_PLACEHOLDER),
            invoice_date=_get(data, "invoiceDate", "invoice_date"),
            due_date=_get(data, "dueDate", "due_date"),
            client_name=_text(_get(data, "clientName", "client_name")),
            client_address=_get(data, "clientAddress", "client_address"),
            matter_title=_get(data, "matterTitle", "matter_title"),
            matters=matters,
            period_from=_get(data, "periodFrom", "period_from"),
            period_to=_get(data, "periodTo", "period_to"),
            currency=currency,
            amount=_decimal(_get(data, "amount", "finalAmount", "final_amount")),
            subtotal=_optional_decimal(_get(data, "subtotal")),
            discount_type=_get(data, "discountType", "discount_type"),
            discount_value=_decimal(_get(data, "discountValue", "discount_value")),
            discount_amount=_decimal(_get(data, "discountAmount", "discount_amount")),
            amount_paid=_decimal(_get(data, "amountPaid", "amount_paid")),
            remaining_amount=_optional_decimal(_get(data, "remainingAmount", "remaining_amount")),
            paid_by_currency=_currency_amounts(_get(data, "paidByCurrency", "paid_by_currency")),
            remaining_by_currency=_currency_amounts(_get(data, "remainingByCurrency", "remaining_by_currency")),
            status=_text(_get(data, "status"), "new"),
            billing_location=_get(data, "billingLocation", "billing_location"),
            description=_get(data, "description"),
            notes=_get(data, "notes"),
            exchange_rates=rates,
            lawyer_fees=lawyer_fees,
            timesheet_entries=entries,
            expense_entries=expenses,
            partner_shares=shares,
            payments=payments,
            company_name=_text(_get(data, "companyName", "company_name")),
            company_address=_get(data, "companyAddress", "company_address"),
            company_email=_get(data, "companyEmail", "company_email"),
            company_phone=_get(data, "companyPhone", "company_phone"),
            bank_details=_get(data, "bankDetails", "bank_details"),
        )


# ========================================
# HELPERS
# ========================================

def format_matter_id(client_code: Optional[str], matter_id: Optional[int]) -> str:
    """Client code and matter id as CCCC-MMMM"""
    if not client_code and not matter_id:
        return "N/A"
    code = str(client_code).zfill(4) if client_code else "0000"
    number = str(matter_id).zfill(4) if matter_id else "0000"
    return f"{code}-{number}"


def _matter_label(entry: TimesheetLine) -> str:
    if entry.matter_id is None and not entry.client_code and not entry.matter_title:
        return PLACEHOLDER
    formatted = format_matter_id(entry.client_code, entry.matter_id)
    if entry.matter_title:
        return f"{formatted} - {entry.matter_title}"
    return formatted


def _matters_text(data: InvoiceDocumentData) -> Optional[str]:
    if data.matters:
        return ", ".join(data.matters)
    if data.matter_title:
        return str(data.matter_title)
    return None


def _period_text(data: InvoiceDocumentData) -> Optional[str]:
    if data.period_from and data.period_to:
        return f"{format_date(data.period_from)} to {format_date(data.period_to)}"
    return None


def _status_label(status: str) -> str:
    return status.replace("_", " ").capitalize()


def _subtotal(data: InvoiceDocumentData) -> Decimal:
    return data.subtotal if data.subtotal is not None else data.amount


def _remaining(data: InvoiceDocumentData) -> Decimal:
    if data.remaining_amount is not None:
        return data.remaining_amount
    return data.amount - data.amount_paid


def _balance_rows(data: InvoiceDocumentData) -> List[TableRow]:
    """Amount Paid and Remaining; a split parent gets one pair per currency"""
    if not data.remaining_by_currency and not data.paid_by_currency:
        return [
            TableRow(["Amount Paid", _money(data.amount_paid, data.currency)]),
            TableRow(["Remaining", _money(_remaining(data), data.currency)], emphasis=True),
        ]

    currencies = list(data.remaining_by_currency)
    currencies.extend(c for c in data.paid_by_currency if c not in data.remaining_by_currency)
    rows = []
    for currency in currencies:
        suffix = f" ({currency.value})" if len(currencies) > 1 else ""
        paid = data.paid_by_currency.get(currency, Decimal("0"))
        remaining = data.remaining_by_currency.get(currency, Decimal("0"))
        rows.append(TableRow([f"Amount Paid{suffix}", _money(paid, currency)]))
        rows.append(TableRow([f"Remaining{suffix}", _money(remaining, currency)], emphasis=True))
    return rows


def group_entries_by_date(entries: List[TimesheetLine]) -> "OrderedDict[str, List[TimesheetLine]]":
    """Group by date string, keys ascending, input order kept inside a group"""
    groups: Dict[str, List[TimesheetLine]] = {}
    for entry in entries:
        groups.setdefault(entry.date, []).append(entry)
    return OrderedDict((key, groups[key]) for key in sorted(groups))


def day_subtotals(entries: List[TimesheetLine]) -> List[Tuple[CurrencyCode, Decimal, Decimal]]:
    """
    (currency, hours, fees) per currency for one day.

    The first entry's currency comes first; any other currency on the same
    day gets its own subtotal rather than being added in.
    """
    totals: "OrderedDict[CurrencyCode, List[Decimal]]" = OrderedDict()
    for entry in entries:
        bucket = totals.setdefault(entry.currency, [Decimal("0"), Decimal("0")])
        bucket[0] += entry.hours
        bucket[1] += entry.fees
    return [(currency, hours, fees) for currency, (hours, fees) in totals.items()]


def summarize_lawyer_fees(entries: List[TimesheetLine]) -> List[LawyerFeeData]:
    """Derive per-lawyer fee rows from timesheet lines, one row per currency"""
    grouped: "OrderedDict[Tuple[str, str, CurrencyCode], List[Decimal]]" = OrderedDict()
    for entry in entries:
        key = (entry.lawyer_name, entry.lawyer_role, entry.currency)
        bucket = grouped.setdefault(key, [Decimal("0"), Decimal("0")])
        bucket[0] += entry.hours
        bucket[1] += entry.fees

    rows = []
    for (name, role, currency), (hours, fees) in grouped.items():
        rate = (fees / hours) if hours else Decimal("0")
        rows.append(LawyerFeeData(name, role, hours, rate, fees, currency))
    return rows


def _bucket_rows(label: str, buckets: MoneyBuckets, columns: int, amount_index: int,
                 hours: Optional[Dict[CurrencyCode, Decimal]] = None,
                 hours_index: Optional[int] = None) -> List[TableRow]:
    rows = []
    for currency, amount in buckets.items():
        cells = [""] * columns
        cells[0] = f"{label} ({currency.value})" if len(buckets) > 1 else label
        cells[amount_index] = _money(amount, currency)
        if hours is not None and hours_index is not None:
            cells[hours_index] = _hours(hours.get(currency, Decimal("0")))
        rows.append(TableRow(cells, emphasis=True))
    return rows


# ========================================
# SECTIONS
# ========================================

_letter_env = Environment(
    loader=BaseLoader(),
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_letter_body(data: InvoiceDocumentData, template: str = LETTER_TEMPLATE) -> List[str]:
    """Render the cover letter text (Jinja2) and split it into paragraphs"""
    text = _letter_env.from_string(template).render(
        invoice_number=data.invoice_number,
        amount=_money(data.amount, data.currency),
        client_name=data.client_name,
        company_name=data.company_name,
        bank_details=str(data.bank_details) if data.bank_details else "",
    )
    return [line.strip() for line in text.splitlines() if line.strip()]


def _letter_section(data: InvoiceDocumentData) -> Section:
    blocks: List[Block] = [Heading(data.company_name, level=0)]
    contact = [part for part in (data.company_address, data.company_email, data.company_phone) if part]
    if contact:
        blocks.append(Paragraph(" | ".join(str(part) for part in contact)))

    blocks.append(Paragraph(format_date(data.invoice_date), align="right"))
    blocks.append(Paragraph(data.client_name, bold=True))
    if data.client_address:
        blocks.append(Paragraph(str(data.client_address)))

    matters = _matters_text(data)
    if matters:
        label = "Matter(s)" if data.matters else "Matter name"
        blocks.append(Paragraph(f"{label}: {matters}"))
    period = _period_text(data)
    if period:
        blocks.append(Paragraph(f"Period from: {period}"))

    blocks.extend(Paragraph(line) for line in render_letter_body(data))
    blocks.append(Paragraph(f"Accounts Team, {data.company_name}", bold=True))
    return Section("letter", "Cover Letter", blocks)


def _invoice_summary_section(data: InvoiceDocumentData) -> Section:
    currency = data.currency
    info = Table(["Field", "Value"], title="Invoice Information")
    info.rows.extend([
        TableRow(["Invoice Number", data.invoice_number]),
        TableRow(["Invoice Date", format_date(data.invoice_date)]),
        TableRow(["Due Date", format_date(data.due_date)]),
        TableRow(["Status", _status_label(data.status)]),
    ])
    if data.billing_location:
        info.rows.append(TableRow(["Billing Location", str(data.billing_location)]))

    bill_to = Table(["Field", "Value"], title="Client & Matter(s)")
    bill_to.rows.append(TableRow(["Client", data.client_name]))
    if data.client_address:
        bill_to.rows.append(TableRow(["Address", str(data.client_address)]))
    bill_to.rows.append(TableRow(["Matter(s)", _matters_text(data) or PLACEHOLDER]))
    period = _period_text(data)
    if period:
        bill_to.rows.append(TableRow(["Period", period]))

    financial = Table(["Item", "Amount"], title="Financial Summary")
    financial.rows.append(TableRow(["Subtotal", _money(_subtotal(data), currency)]))
    if data.discount_amount > 0:
        label = "Discount"
        if data.discount_type == "percentage":
            label = f"Discount ({data.discount_value.normalize():f}%)"
        financial.rows.append(TableRow([label, f"-{_money(data.discount_amount, currency)}"]))
    financial.rows.append(TableRow(["Final Amount", _money(data.amount, currency)], emphasis=True))
    financial.rows.extend(_balance_rows(data))

    blocks: List[Block] = [Heading("Invoice Summary"), info, bill_to, financial]
    if data.exchange_rates:
        rates = Table(["Currency", f"Rate to {currency.value}"], title="Currency Breakdown")
        for code, rate in sorted(data.exchange_rates.items()):
            rates.rows.append(TableRow([code, f"{rate:.4f}"]))
        blocks.append(rates)
    if data.description:
        blocks.append(Paragraph(f"Description: {data.description}"))
    if data.notes:
        blocks.append(Paragraph(f"Notes: {data.notes}"))
    return Section("invoice_summary", "Invoice Summary", blocks)


def _timesheet_entries_section(data: InvoiceDocumentData) -> Section:
    section = Section("timesheet_entries", "Itemized Timesheet Entries",
                      [Heading("Itemized Timesheet Entries")])
    if not data.timesheet_entries:
        section.blocks.append(Paragraph(NO_TIMESHEETS))
        return section

    headers = ["Date", "Lawyer", "Role", "Matter", "Description", "Hours", "Rate", "Fees"]
    table = Table(headers)
    grand_fees = MoneyBuckets()
    grand_hours: Dict[CurrencyCode, Decimal] = {}

    for day, entries in group_entries_by_date(data.timesheet_entries).items():
        for entry in entries:
            table.rows.append(TableRow([
                format_date(day),
                entry.lawyer_name,
                entry.lawyer_role,
                _matter_label(entry),
                entry.description,
                _hours(entry.hours),
                _money(entry.hourly_rate, entry.currency),
                _money(entry.fees, entry.currency),
            ]))
        for currency, hours, fees in day_subtotals(entries):
            table.rows.append(TableRow(
                [f"Subtotal for {format_date(day)}", "", "", "", "", _hours(hours), "", _money(fees, currency)],
                emphasis=True,
            ))
            grand_fees.add(Money(fees, currency))
            grand_hours[currency] = grand_hours.get(currency, Decimal("0")) + hours

    table.rows.extend(_bucket_rows("Total", grand_fees, len(headers), 7, grand_hours, 5))
    section.blocks.append(table)
    return section


def _fee_summary_section(data: InvoiceDocumentData) -> Section:
    section = Section("fee_summary", "Timesheets - Fees Summary", [Heading("Timesheets - Fees Summary")])
    fees = data.lawyer_fees or summarize_lawyer_fees(data.timesheet_entries)
    if not fees:
        section.blocks.append(Paragraph(NO_FEES))
        return section

    matters = _matters_text(data)
    if matters:
        section.blocks.append(Paragraph(f"Matter(s): {matters}"))
    period = _period_text(data)
    if period:
        section.blocks.append(Paragraph(f"Period: {period}"))

    headers = ["Lawyer", "Role", "Hours", "Hourly Rate", "Fees"]
    table = Table(headers)
    totals = MoneyBuckets()
    hours_by_currency: Dict[CurrencyCode, Decimal] = {}
    for fee in fees:
        table.rows.append(TableRow([
            fee.lawyer_name,
            fee.lawyer_role,
            _hours(fee.hours),
            _money(fee.hourly_rate, fee.currency),
            _money(fee.fees, fee.currency),
        ]))
        totals.add(Money(fee.fees, fee.currency))
        hours_by_currency[fee.currency] = hours_by_currency.get(fee.currency, Decimal("0")) + fee.hours

    table.rows.extend(_bucket_rows("Grand Total", totals, len(headers), 4, hours_by_currency, 2))
    section.blocks.append(table)
    return section


def _expenses_section(data: InvoiceDocumentData) -> Section:
    section = Section("expenses", "Expenses", [Heading("Expenses")])
    if not data.expense_entries:
        section.blocks.append(Paragraph(NO_EXPENSES))
        return section

    headers = ["Category", "Sub-Category", "Description", "Original Amount", "Billed Amount", "Exchange Rate"]
    table = Table(headers)
    original_totals = MoneyBuckets()
    billed_totals = MoneyBuckets()
    for expense in data.expense_entries:
        rate = expense.exchange_rate if expense.exchange_rate is not None else Decimal("1")
        table.rows.append(TableRow([
            expense.category,
            expense.sub_category,
            expense.description,
            _money(expense.original_amount, expense.original_currency),
            _money(expense.billed_amount, expense.currency),
            f"{rate:.4f}",
        ]))
        original_totals.add(Money(expense.original_amount, expense.original_currency))
        billed_totals.add(Money(expense.billed_amount, expense.currency))

    table.rows.extend(_bucket_rows("Total (original)", original_totals, len(headers), 3))
    table.rows.extend(_bucket_rows("Total (billed)", billed_totals, len(headers), 4))
    section.blocks.append(table)
    return section


def _partner_split_section(data: InvoiceDocumentData) -> Section:
    section = Section("partner_split", "Partners & Split", [Heading("Partners & Split")])
    if not data.partner_shares:
        section.blocks.append(Paragraph(NO_PARTNERS))
        return section

    final_amount = Money(data.amount, data.currency)
    table = Table(["Partner", "Percentage", "Amount"])
    total_percentage = Decimal("0")
    total_amount = Money.zero(data.currency)
    for share in data.partner_shares:
        amount = _share(final_amount, share.percentage)
        total_percentage += share.percentage
        total_amount = total_amount + amount
        table.rows.append(TableRow([
            share.user_name,
            f"{share.percentage.normalize():f}%",
            _money(amount.amount, amount.currency),
        ]))
    table.rows.append(TableRow(
        ["Total", f"{total_percentage.normalize():f}%", _money(total_amount.amount, data.currency)],
        emphasis=True,
    ))
    section.blocks.append(table)
    if total_percentage != 100:
        section.blocks.append(Paragraph(
            f"Note: partner shares total {total_percentage.normalize():f}% of the invoice amount."
        ))
    return section


def _summary_section(data: InvoiceDocumentData) -> Section:
    currency = data.currency
    blocks: List[Block] = [Heading("Summary")]

    financial = Table(["Item", "Amount"], title="Financial Summary")
    financial.rows.append(TableRow(["Subtotal", _money(_subtotal(data), currency)]))
    if data.discount_amount > 0:
        financial.rows.append(TableRow(["Discount", f"-{_money(data.discount_amount, currency)}"]))
    financial.rows.append(TableRow(["Final Amount", _money(data.amount, currency)], emphasis=True))
    financial.rows.extend(_balance_rows(data))
    blocks.append(financial)

    fees = data.lawyer_fees or summarize_lawyer_fees(data.timesheet_entries)
    total_hours = sum((fee.hours for fee in fees), Decimal("0"))
    blocks.append(Heading("Timesheet Summary", level=2))
    blocks.append(Paragraph(f"Total Hours: {_hours(total_hours)}"))
    blocks.append(Paragraph(f"Number of Entries: {len(data.timesheet_entries)}"))
    period = _period_text(data)
    if period:
        blocks.append(Paragraph(f"Date Range: {period}"))

    blocks.append(Heading("Partner Attribution", level=2))
    if data.partner_shares:
        for share in data.partner_shares:
            blocks.append(Paragraph(f"{share.user_name}: {share.percentage.normalize():f}%"))
    else:
        blocks.append(Paragraph(NO_PARTNERS))

    blocks.append(Heading("Payment History", level=2))
    if data.payments:
        table = Table(["Payment Date", "Amount", "Method", "Transaction Ref", "Notes"])
        for payment in data.payments:
            table.rows.append(TableRow([
                format_date(payment.payment_date),
                _money(payment.amount, payment.currency or currency),
                payment.payment_method.replace("_", " ").upper(),
                payment.transaction_ref,
                payment.notes,
            ]))
        blocks.append(table)
    else:
        blocks.append(Paragraph(NO_PAYMENTS))

    return Section("summary", "Summary", blocks)


# ========================================
# ENTRY POINT
# ========================================

def render_invoice_document(data: Union[InvoiceDocumentData, Mapping[str, Any], None]) -> InvoiceDocument:
    """Render the seven invoice sections in fixed order"""
    if not isinstance(data, InvoiceDocumentData):
        data = InvoiceDocumentData.from_mapping(data)

    sections = [
        _letter_section(data),
        _invoice_summary_section(data),
        _timesheet_entries_section(data),
        _fee_summary_section(data),
        _expenses_section(data),
        _partner_split_section(data),
        _summary_section(data),
    ]
    return InvoiceDocument(title=f"Invoice {data.invoice_number}", sections=sections)
