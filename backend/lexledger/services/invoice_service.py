"""
LexLedger Practice Billing
Invoice Aggregator

Subtotals, discounts, split-invoice payment summaries, read-time status
derivation and payment validation.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from lexledger.services.currency_service import RateTable, convert_offline, validate_exchange_rates
from lexledger.services.errors import ConversionError, InvoiceValidationError
from lexledger.services.money import (
    CurrencyCode,
    Money,
    MoneyBuckets,
    parse_currency,
    round_for_currency,
    to_decimal,
)
from lexledger.services.timesheet_service import TimesheetEntry, calculate_timesheet_amounts


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    NEW = "new"
    FINALIZED = "finalized"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


PAYMENT_METHODS = ("bank_transfer", "check", "upi", "cash")


@dataclass(frozen=True)
class Discount:
    type: DiscountType
    value: Decimal

    def __post_init__(self):
        object.__setattr__(self, "type", DiscountType(self.type))
        object.__setattr__(self, "value", to_decimal(self.value))


@dataclass(frozen=True)
class DiscountResult:
    subtotal: Money
    discount_amount: Money
    final_amount: Money


@dataclass
class InvoiceState:
    """Minimal invoice view used for status and payment rules"""
    invoice_id: Optional[int]
    invoice_number: str
    currency: CurrencyCode
    final_amount: Decimal
    amount_paid: Decimal
    due_date: date
    status: InvoiceStatus = InvoiceStatus.NEW
    splits: List["InvoiceState"] = field(default_factory=list)

    @property
    def is_parent(self) -> bool:
        return bool(self.splits)


@dataclass(frozen=True)
class SplitLine:
    invoice_id: Optional[int]
    invoice_number: str
    currency: CurrencyCode
    final_amount: Money
    amount_paid: Money
    amount_due: Money
    status: InvoiceStatus


@dataclass(frozen=True)
class SplitPaymentSummary:
    """
    Payment roll-up for a parent invoice.

    total_paid and total_due are only set when every split shares one
    currency; otherwise use the per-currency buckets.
    """
    splits: List[SplitLine]
    paid_by_currency: MoneyBuckets
    due_by_currency: MoneyBuckets
    total_paid: Optional[Money]
    total_due: Optional[Money]

    @property
    def is_single_currency(self) -> bool:
        return self.paid_by_currency.is_single_currency and self.due_by_currency.is_single_currency


# ========================================
# SUBTOTALS & DISCOUNTS
# ========================================

def _rounded(money: Money) -> Money:
    return Money(round_for_currency(money.amount, money.currency), money.currency)


def aggregate_subtotals(entries: Iterable[TimesheetEntry]) -> MoneyBuckets:
    """Time charges plus included expenses, bucketed by currency"""
    buckets = MoneyBuckets()
    for entry in entries:
        amounts = calculate_timesheet_amounts(entry)
        if amounts.time_charge is not None:
            buckets.add(amounts.time_charge)
        if amounts.accepted_count:
            buckets.add(amounts.accepted_expense_total)
    return buckets


def consolidate_buckets(buckets: MoneyBuckets, target_currency: str,
                        rate_table: Optional[RateTable]) -> Money:
    """
    Convert every bucket into one currency with a validated rate table.

    Raises ConversionError naming the missing or invalid rates; nothing is
    converted unless every rate is usable.
    """
    target = parse_currency(target_currency)
    validation = validate_exchange_rates(buckets.currencies, rate_table, target)
    if not validation.is_valid:
        raise ConversionError(
            "; ".join(validation.errors),
            missing_rates=validation.missing_rates,
            invalid_rates=validation.invalid_rates,
        )

    total = Money.zero(target)
    for money in buckets:
        converted = convert_offline(money.amount, money.currency, target, rate_table)
        total = total + Money(converted.amount, target)
    return total


def apply_discount(subtotal: Money, discount: Optional[Discount]) -> DiscountResult:
    """
    final = subtotal - discount.

    All three amounts are rounded to the currency's precision, so the final
    amount is exactly what the invoice shows and what a payment can settle.
    A negative final amount is a validation error; it is never clamped.
    """
    subtotal = _rounded(subtotal)
    if discount is None or discount.value == 0:
        return DiscountResult(subtotal, Money.zero(subtotal.currency), subtotal)

    if discount.value < 0:
        raise InvoiceValidationError("Discount cannot be negative", field="discount_value")

    if discount.type == DiscountType.PERCENTAGE:
        if discount.value > 100:
            raise InvoiceValidationError("Percentage discount cannot exceed 100%", field="discount_value")
        discount_amount = _rounded(Money(subtotal.amount * discount.value / 100, subtotal.currency))
    else:
        discount_amount = _rounded(Money(discount.value, subtotal.currency))

    final_amount = subtotal - discount_amount
    if final_amount.is_negative:
        raise InvoiceValidationError(
            f"Discount ({discount_amount.amount}) exceeds subtotal ({subtotal.amount})",
            field="discount_value",
        )
    return DiscountResult(subtotal, discount_amount, final_amount)


# ========================================
# STATUS
# ========================================

def derive_invoice_status(invoice: InvoiceState, today: Optional[date] = None) -> InvoiceStatus:
    """
    Read-time status for a single (non-parent) invoice.

    Unpaid invoices past their due date show as overdue. The stored status
    is not modified.
    """
    today = today or date.today()
    if invoice.status == InvoiceStatus.DRAFT:
        return InvoiceStatus.DRAFT
    if invoice.final_amount > 0 and balance_due(invoice) <= 0:
        return InvoiceStatus.PAID
    if invoice.status == InvoiceStatus.PAID:
        return InvoiceStatus.PAID
    if invoice.due_date < today:
        return InvoiceStatus.OVERDUE
    if invoice.amount_paid > 0:
        return InvoiceStatus.PARTIALLY_PAID
    if invoice.status == InvoiceStatus.OVERDUE:
        return InvoiceStatus.NEW
    return invoice.status


def derive_parent_status(splits: Sequence[InvoiceState], today: Optional[date] = None) -> InvoiceStatus:
    """Parent status follows its splits"""
    today = today or date.today()
    if not splits:
        return InvoiceStatus.NEW

    statuses = [derive_invoice_status(split, today) for split in splits]
    if all(status == InvoiceStatus.PAID for status in statuses):
        return InvoiceStatus.PAID
    if any(status == InvoiceStatus.OVERDUE for status in statuses):
        return InvoiceStatus.OVERDUE
    if any(split.amount_paid > 0 for split in splits):
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.FINALIZED


def display_status(invoice: InvoiceState, today: Optional[date] = None) -> InvoiceStatus:
    if invoice.is_parent:
        return derive_parent_status(invoice.splits, today)
    return derive_invoice_status(invoice, today)


# ========================================
# SPLITS & REMAINING AMOUNTS
# ========================================

def summarize_splits(splits: Sequence[InvoiceState], today: Optional[date] = None) -> SplitPaymentSummary:
    lines = []
    paid = MoneyBuckets()
    due = MoneyBuckets()

    for split in splits:
        final_amount = Money(split.final_amount, split.currency)
        amount_paid = Money(split.amount_paid, split.currency)
        amount_due = final_amount - amount_paid
        paid.add(amount_paid)
        due.add(amount_due)
        lines.append(SplitLine(
            invoice_id=split.invoice_id,
            invoice_number=split.invoice_number,
            currency=split.currency,
            final_amount=final_amount,
            amount_paid=amount_paid,
            amount_due=amount_due,
            status=derive_invoice_status(split, today),
        ))

    single = paid.is_single_currency and due.is_single_currency
    return SplitPaymentSummary(
        splits=lines,
        paid_by_currency=paid,
        due_by_currency=due,
        total_paid=paid.single() if single and lines else None,
        total_due=due.single() if single and lines else None,
    )


def remaining_amount(invoice: InvoiceState) -> MoneyBuckets:
    """
    Outstanding balance.

    For a normal invoice this is one bucket (final - paid). For a parent it
    is the per-currency sum of each split's amount due.
    """
    if invoice.is_parent:
        return summarize_splits(invoice.splits).due_by_currency
    return MoneyBuckets([Money(invoice.final_amount - invoice.amount_paid, invoice.currency)])


# ========================================
# PAYMENTS
# ========================================

def balance_due(invoice: InvoiceState) -> Decimal:
    """final - paid at the currency's display precision"""
    return round_for_currency(invoice.final_amount - invoice.amount_paid, invoice.currency)


def validate_payment(invoice: InvoiceState, amount: Decimal, method: str):
    if amount is None or to_decimal(amount) <= 0:
        raise InvoiceValidationError("Payment amount must be greater than 0", field="amount")
    if method not in PAYMENT_METHODS:
        raise InvoiceValidationError(
            f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}",
            field="payment_method",
        )
    if invoice.is_parent:
        raise InvoiceValidationError(
            "Cannot record payments on parent invoice. Record payments on the individual split invoices instead."
        )
    remaining = balance_due(invoice)
    if to_decimal(amount) > remaining:
        raise InvoiceValidationError(
            f"Payment amount ({amount}) exceeds remaining balance ({remaining})", field="amount"
        )


def status_after_payment(invoice: InvoiceState, amount: Decimal) -> InvoiceStatus:
    new_paid = invoice.amount_paid + to_decimal(amount)
    if round_for_currency(invoice.final_amount - new_paid, invoice.currency) <= 0:
        return InvoiceStatus.PAID
    if new_paid > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return invoice.status


# ========================================
# NUMBERING
# ========================================

def financial_year_label(on: date) -> str:
    """Indian financial year (April-March), e.g. 2025-26"""
    start = on.year if on.month >= 4 else on.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def next_invoice_number(existing: Iterable[str], prefix: str = "INV",
                        on: Optional[date] = None) -> str:
    """Next sequential number within the financial year: INV/2025-26/0001"""
    on = on or date.today()
    stem = f"{prefix}/{financial_year_label(on)}/"
    highest = 0
    for number in existing:
        if not number or not number.startswith(stem):
            continue
        tail = number[len(stem):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return f"{stem}{highest + 1:04d}"


def split_amounts(total: Money, percentages: Sequence[Decimal]) -> List[Money]:
    """
    Divide a parent invoice total across split invoices by percentage.

    Percentages must sum to 100. Each share is rounded to the currency's
    precision and the last split absorbs the rounding.
    """
    values = [to_decimal(p) for p in percentages]
    if not values:
        raise InvoiceValidationError("At least one split is required", field="splits")
    if any(p <= 0 for p in values):
        raise InvoiceValidationError("Split percentages must be greater than 0", field="splits")
    if abs(sum(values) - 100) > Decimal("0.01"):
        raise InvoiceValidationError(f"Split percentages must total 100%. Current total: {sum(values)}%",
                                     field="splits")

    shares = [_rounded(Money(total.amount * p / 100, total.currency)) for p in values[:-1]]
    allocated = sum((s.amount for s in shares), Decimal("0"))
    shares.append(Money(total.amount - allocated, total.currency))
    return shares
