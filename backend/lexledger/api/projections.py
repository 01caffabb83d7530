"""
LexLedger Practice Billing
ORM row <-> service dataclass projections shared by the routers
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from lexledger.core.config import settings
from lexledger.db import models
from lexledger.generators.invoice_document import (
    ExpenseLine,
    InvoiceDocumentData,
    PartnerShareData,
    PaymentData,
    TimesheetLine,
)
from lexledger.schemas.billing_schemas import (
    ExpenseResponse, InvoiceResponse, MoneyOut, PartnerShareLineResponse, PartnerSplitResponse, PaymentResponse,
    RateCardResponse, SplitLineResponse, SplitSummaryResponse, TimesheetAmountsResponse, TimesheetResponse
)
from lexledger.services.invoice_service import (
    InvoiceState,
    InvoiceStatus,
    display_status,
    remaining_amount,
    summarize_splits,
)
from lexledger.services.money import EXPENSE_CURRENCY, CurrencyCode, Money, parse_currency
from lexledger.services.partner_share_service import PartnerShare, PartnerSplit
from lexledger.services.rate_card_service import RATE_CARD_CURRENCY, RateCard, suggested_rate
from lexledger.services.timesheet_service import (
    Expense,
    TimesheetAmounts,
    TimesheetEntry,
    apply_billed_override,
    calculate_timesheet_amounts,
)


def _money_out(money: Optional[Money]) -> Optional[MoneyOut]:
    if money is None:
        return None
    return MoneyOut(amount=money.amount, currency=money.currency.value)


def _dec(value) -> Decimal:
    return Decimal("0") if value is None else Decimal(value)


# ============================================================
# RATE CARDS
# ============================================================

def rate_card_from_row(row: models.RateCard) -> RateCard:
    return RateCard(
        user_id=row.user_id,
        service_type=row.service_type,
        min_rate=Money(row.min_rate, RATE_CARD_CURRENCY) if row.min_rate is not None else None,
        max_rate=Money(row.max_rate, RATE_CARD_CURRENCY) if row.max_rate is not None else None,
        effective_date=row.effective_date,
        end_date=row.end_date,
        is_active=bool(row.is_active),
        ratecard_id=row.id,
    )


def copy_rate_card_to_row(card: RateCard, row: models.RateCard):
    row.min_rate = card.min_rate.amount if card.min_rate is not None else None
    row.max_rate = card.max_rate.amount if card.max_rate is not None else None
    row.effective_date = card.effective_date
    row.end_date = card.end_date
    row.is_active = card.is_active


def rate_card_response(card: RateCard, user_name: Optional[str] = None) -> RateCardResponse:
    suggested = suggested_rate(card)
    return RateCardResponse(
        id=card.ratecard_id,
        user_id=card.user_id,
        user_name=user_name,
        service_type=card.service_type,
        min_rate=card.min_rate.amount if card.min_rate is not None else None,
        max_rate=card.max_rate.amount if card.max_rate is not None else None,
        suggested_rate=suggested.amount if suggested is not None else None,
        currency=RATE_CARD_CURRENCY.value,
        effective_date=card.effective_date,
        end_date=card.end_date,
        is_active=card.is_active,
    )


# ============================================================
# TIMESHEETS
# ============================================================

def matter_currency_of(row: models.Timesheet) -> CurrencyCode:
    if row.matter is not None and row.matter.currency:
        return parse_currency(row.matter.currency)
    return parse_currency(settings.DEFAULT_CURRENCY)


def expense_from_row(row: models.Expense) -> Expense:
    return Expense(
        expense_id=row.id,
        category=row.category,
        description=row.description or "",
        amount=Money(row.amount, EXPENSE_CURRENCY),
        sub_category=row.sub_category,
        vendor=row.vendor,
        expense_included=bool(row.expense_included),
        status=row.status or "pending",
    )


def timesheet_entry_from_row(row: models.Timesheet) -> TimesheetEntry:
    currency = matter_currency_of(row)
    return TimesheetEntry(
        user_id=row.user_id,
        matter_id=row.matter_id,
        date=row.date,
        billable_minutes=row.billable_minutes or 0,
        non_billable_minutes=row.non_billable_minutes or 0,
        activity_type=row.activity_type,
        matter_currency=currency,
        hourly_rate=Money(row.hourly_rate, currency) if row.hourly_rate is not None else None,
        description=row.description,
        expenses=tuple(expense_from_row(e) for e in row.expenses),
        timesheet_id=row.id,
    )


def billed_entry_from_row(row: models.Timesheet, billed_minutes: Optional[int] = None,
                          billed_hourly_rate: Optional[Decimal] = None) -> TimesheetEntry:
    """Timesheet as billed on its invoice; arguments take precedence over stored overrides"""
    entry = timesheet_entry_from_row(row)
    minutes = billed_minutes if billed_minutes is not None else row.billed_minutes
    rate = billed_hourly_rate if billed_hourly_rate is not None else row.billed_hourly_rate
    return apply_billed_override(
        entry, minutes, Money(rate, entry.matter_currency) if rate is not None else None
    )


def amounts_response(amounts: TimesheetAmounts) -> TimesheetAmountsResponse:
    return TimesheetAmountsResponse(
        billable_hours=amounts.billable_hours,
        non_billable_hours=amounts.non_billable_hours,
        total_hours=amounts.total_hours,
        time_charge=_money_out(amounts.time_charge),
        accepted_expense_total=_money_out(amounts.accepted_expense_total),
        rejected_expense_total=_money_out(amounts.rejected_expense_total),
        accepted_count=amounts.accepted_count,
        rejected_count=amounts.rejected_count,
        has_mixed_currencies=amounts.has_mixed_currencies,
    )


def timesheet_response(row: models.Timesheet) -> TimesheetResponse:
    entry = timesheet_entry_from_row(row)
    return TimesheetResponse(
        id=row.id,
        user_id=row.user_id,
        user_name=row.user.name if row.user is not None else None,
        matter_id=row.matter_id,
        matter_title=row.matter.title if row.matter is not None else None,
        matter_currency=entry.matter_currency.value,
        date=row.date,
        billable_minutes=entry.billable_minutes,
        non_billable_minutes=entry.non_billable_minutes,
        activity_type=row.activity_type,
        description=row.description,
        hourly_rate=row.hourly_rate,
        status=row.status.value if row.status is not None else "pending",
        approved_by=row.approved_by,
        invoice_id=row.invoice_id,
        expenses=[ExpenseResponse.model_validate(e) for e in row.expenses],
        amounts=amounts_response(calculate_timesheet_amounts(entry)),
    )


# ============================================================
# INVOICES
# ============================================================

def invoice_state_from_row(row: models.Invoice, with_splits: bool = True) -> InvoiceState:
    splits = []
    if with_splits:
        splits = [invoice_state_from_row(child, with_splits=False) for child in row.splits]
    return InvoiceState(
        invoice_id=row.id,
        invoice_number=row.invoice_number,
        currency=parse_currency(row.currency),
        final_amount=_dec(row.final_amount),
        amount_paid=_dec(row.amount_paid),
        due_date=row.due_date,
        status=row.status or InvoiceStatus.NEW,
        splits=splits,
    )


def split_summary_response(state: InvoiceState, today: Optional[date] = None) -> SplitSummaryResponse:
    summary = summarize_splits(state.splits, today)
    return SplitSummaryResponse(
        splits=[
            SplitLineResponse(
                invoice_id=line.invoice_id,
                invoice_number=line.invoice_number,
                currency=line.currency.value,
                final_amount=line.final_amount.amount,
                amount_paid=line.amount_paid.amount,
                amount_due=line.amount_due.amount,
                status=line.status,
            )
            for line in summary.splits
        ],
        paid_by_currency={k: Decimal(v) for k, v in summary.paid_by_currency.to_dict().items()},
        due_by_currency={k: Decimal(v) for k, v in summary.due_by_currency.to_dict().items()},
        total_paid=_money_out(summary.total_paid),
        total_due=_money_out(summary.total_due),
    )


def invoice_response(row: models.Invoice, today: Optional[date] = None) -> InvoiceResponse:
    state = invoice_state_from_row(row)
    remaining = remaining_amount(state)
    return InvoiceResponse(
        id=row.id,
        invoice_number=row.invoice_number,
        client_id=row.client_id,
        client_name=row.client.name if row.client is not None else None,
        matter_id=row.matter_id,
        parent_invoice_id=row.parent_invoice_id,
        invoice_date=row.invoice_date,
        due_date=row.due_date,
        period_from=row.period_from,
        period_to=row.period_to,
        currency=state.currency.value,
        subtotal=_dec(row.subtotal),
        discount_type=row.discount_type,
        discount_value=_dec(row.discount_value),
        discount_amount=_dec(row.discount_amount),
        final_amount=state.final_amount,
        amount_paid=state.amount_paid,
        remaining={k: Decimal(v) for k, v in remaining.to_dict().items()},
        status=state.status,
        display_status=display_status(state, today),
        is_parent=state.is_parent,
        split_summary=split_summary_response(state, today) if state.is_parent else None,
        timesheet_ids=[t.id for t in row.timesheets],
        exchange_rates={k: Decimal(str(v)) for k, v in (row.exchange_rates or {}).items()} or None,
        billing_location=row.billing_location,
        description=row.description,
        notes=row.notes,
    )


def partner_shares_from_rows(rows: List[models.PartnerShare]) -> List[PartnerShare]:
    return [
        PartnerShare(
            user_id=row.user_id,
            percentage=_dec(row.percentage),
            user_name=row.user.name if row.user is not None else "",
            user_email=row.user.email if row.user is not None else None,
        )
        for row in rows
    ]


def partner_split_response(split: PartnerSplit) -> PartnerSplitResponse:
    return PartnerSplitResponse(
        shares=[
            PartnerShareLineResponse(
                user_id=line.share.user_id,
                user_name=line.share.user_name or None,
                percentage=line.share.percentage,
                amount=_money_out(line.amount),
            )
            for line in split.rows
        ],
        total_percentage=split.total_percentage,
        total_amount=_money_out(split.total_amount),
        is_complete=split.is_complete,
    )


# ============================================================
# DOCUMENT DATA
# ============================================================

def timesheet_line_from_row(row: models.Timesheet) -> TimesheetLine:
    entry = billed_entry_from_row(row)
    amounts = calculate_timesheet_amounts(entry)
    matter = row.matter
    return TimesheetLine(
        date=row.date.isoformat(),
        lawyer_name=row.user.name if row.user is not None else "-",
        lawyer_role=row.user.role if row.user is not None and row.user.role else "-",
        hours=amounts.billable_hours,
        hourly_rate=entry.hourly_rate.amount if entry.hourly_rate is not None else Decimal("0"),
        fees=amounts.time_charge.amount if amounts.time_charge is not None else Decimal("0"),
        currency=entry.matter_currency,
        description=row.description or "-",
        activity_type=row.activity_type or "-",
        matter_title=matter.title if matter is not None else None,
        matter_id=row.matter_id,
        client_code=matter.client.client_code if matter is not None and matter.client is not None else None,
    )


def expense_lines_from_rows(timesheets: List[models.Timesheet],
                            invoice_currency: CurrencyCode,
                            exchange_rates: Optional[dict]) -> List[ExpenseLine]:
    """Included expenses, billed in the invoice currency where a rate is known"""
    lines = []
    rate = None
    if invoice_currency == EXPENSE_CURRENCY:
        rate = Decimal("1")
    elif exchange_rates and exchange_rates.get(EXPENSE_CURRENCY.value) is not None:
        rate = Decimal(str(exchange_rates[EXPENSE_CURRENCY.value]))

    for timesheet in timesheets:
        for expense in timesheet.expenses:
            if not expense.expense_included:
                continue
            amount = _dec(expense.amount)
            lines.append(ExpenseLine(
                category=expense.category,
                sub_category=expense.sub_category or "-",
                description=expense.description or "-",
                original_amount=amount,
                original_currency=EXPENSE_CURRENCY,
                billed_amount=amount * rate if rate is not None else amount,
                currency=invoice_currency if rate is not None else EXPENSE_CURRENCY,
                exchange_rate=rate,
            ))
    return lines


def invoice_payments(row: models.Invoice) -> List[Tuple[models.Payment, CurrencyCode]]:
    """Payments on the invoice and, for a split parent, on each split, oldest first"""
    payments = [(p, parse_currency(row.currency)) for p in row.payments]
    for child in row.splits:
        payments.extend((p, parse_currency(child.currency)) for p in child.payments)
    return sorted(payments, key=lambda item: (item[0].payment_date, item[0].id))


def payment_response(payment: models.Payment, currency: CurrencyCode) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        invoice_id=payment.invoice_id,
        payment_date=payment.payment_date,
        amount=_dec(payment.amount),
        currency=currency.value,
        payment_method=payment.payment_method,
        transaction_ref=payment.transaction_ref,
        notes=payment.notes,
    )


def document_data_from_invoice(row: models.Invoice) -> InvoiceDocumentData:
    """Resolve an invoice and its related rows into renderer input"""
    currency = parse_currency(row.currency)
    client = row.client
    matters = []
    if row.matter is not None:
        matters.append(row.matter.title)
    for timesheet in row.timesheets:
        if timesheet.matter is not None and timesheet.matter.title not in matters:
            matters.append(timesheet.matter.title)

    state = invoice_state_from_row(row)
    remaining = remaining_amount(state)
    amount_paid = _dec(row.amount_paid)
    paid_by_currency = {}
    remaining_by_currency = {}
    if state.is_parent:
        summary = summarize_splits(state.splits)
        paid_by_currency = dict(summary.paid_by_currency.items())
        remaining_by_currency = dict(summary.due_by_currency.items())
        if summary.total_paid is not None:
            amount_paid = summary.total_paid.amount

    return InvoiceDocumentData(
        invoice_number=row.invoice_number,
        invoice_date=row.invoice_date,
        due_date=row.due_date,
        client_name=client.name if client is not None else "-",
        client_address=client.address if client is not None else None,
        matters=matters,
        period_from=row.period_from,
        period_to=row.period_to,
        currency=currency,
        amount=_dec(row.final_amount),
        subtotal=_dec(row.subtotal),
        discount_type=row.discount_type.value if row.discount_type is not None else None,
        discount_value=_dec(row.discount_value),
        discount_amount=_dec(row.discount_amount),
        amount_paid=amount_paid,
        remaining_amount=remaining.get(currency).amount if not state.is_parent else None,
        paid_by_currency=paid_by_currency,
        remaining_by_currency=remaining_by_currency,
        status=display_status(state).value,
        billing_location=row.billing_location or (client.billing_location if client is not None else None),
        description=row.description,
        notes=row.notes,
        exchange_rates={k: Decimal(str(v)) for k, v in (row.exchange_rates or {}).items()},
        timesheet_entries=[timesheet_line_from_row(t) for t in row.timesheets],
        expense_entries=expense_lines_from_rows(row.timesheets, currency, row.exchange_rates),
        partner_shares=[
            PartnerShareData(user_name=s.user_name or "-", percentage=s.percentage, user_id=s.user_id)
            for s in partner_shares_from_rows(row.partner_shares)
        ],
        payments=[
            PaymentData(
                payment_date=p.payment_date,
                amount=_dec(p.amount),
                payment_method=p.payment_method,
                transaction_ref=p.transaction_ref or "-",
                notes=p.notes or "-",
                currency=payment_currency,
            )
            for p, payment_currency in invoice_payments(row)
        ],
        company_name=settings.FIRM_NAME,
        company_address=settings.FIRM_ADDRESS,
        company_email=settings.FIRM_EMAIL,
        company_phone=settings.FIRM_PHONE or None,
        bank_details=settings.FIRM_BANK_DETAILS,
    )
