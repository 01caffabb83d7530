from datetime import date, timedelta
from decimal import Decimal

import pytest

from lexledger.services.errors import ConversionError, InvoiceValidationError
from lexledger.services.invoice_service import (
    Discount,
    DiscountType,
    InvoiceState,
    InvoiceStatus,
    aggregate_subtotals,
    apply_discount,
    consolidate_buckets,
    derive_invoice_status,
    derive_parent_status,
    display_status,
    financial_year_label,
    next_invoice_number,
    remaining_amount,
    split_amounts,
    status_after_payment,
    summarize_splits,
    validate_payment,
)
from lexledger.services.money import CurrencyCode, Money
from lexledger.services.timesheet_service import Expense, TimesheetEntry

TODAY = date(2026, 3, 15)


def state(final_amount="1000", amount_paid="0", currency=CurrencyCode.INR, due_date=None,
          status=InvoiceStatus.NEW, splits=None, number="INV/2025-26/0001"):
    return InvoiceState(
        invoice_id=None,
        invoice_number=number,
        currency=currency,
        final_amount=Decimal(final_amount),
        amount_paid=Decimal(amount_paid),
        due_date=due_date or TODAY + timedelta(days=10),
        status=status,
        splits=splits or [],
    )


# ========================================
# DISCOUNTS
# ========================================

def test_percentage_discount():
    result = apply_discount(Money("10000", "INR"), Discount(DiscountType.PERCENTAGE, Decimal("10")))

    assert result.discount_amount == Money("1000", "INR")
    assert result.final_amount == Money("9000", "INR")


def test_fixed_discount_and_no_discount():
    assert apply_discount(Money("500", "USD"), Discount("fixed", "120")).final_amount == Money("380", "USD")
    assert apply_discount(Money("500", "USD"), None).final_amount == Money("500", "USD")


def test_discount_amounts_use_currency_precision():
    inr = apply_discount(Money("333.3333", "INR"), None)
    assert inr.final_amount.amount == Decimal("333.33")

    jpy = apply_discount(Money("1234.5678", "JPY"), Discount("percentage", "10"))
    assert jpy.subtotal.amount == Decimal("1235")
    assert jpy.discount_amount.amount == Decimal("124")
    assert jpy.final_amount.amount == Decimal("1111")


def test_invalid_discounts_are_rejected():
    with pytest.raises(InvoiceValidationError):
        apply_discount(Money("500", "USD"), Discount("fixed", "600"))
    with pytest.raises(InvoiceValidationError):
        apply_discount(Money("500", "USD"), Discount("percentage", "150"))
    with pytest.raises(InvoiceValidationError):
        apply_discount(Money("500", "USD"), Discount("fixed", "-5"))


# ========================================
# SUBTOTALS
# ========================================

def _entries():
    usd = TimesheetEntry(
        user_id=1, matter_id=1, date=date(2026, 1, 5), billable_minutes=360, non_billable_minutes=0,
        activity_type="Drafting", matter_currency=CurrencyCode.USD, hourly_rate=Money("200", "USD"),
        expenses=(Expense(1, "Courier", "Docs", Money("500", "INR")),
                  Expense(2, "Meals", "Lunch", Money("300", "INR"), expense_included=False)),
    )
    inr = TimesheetEntry(
        user_id=2, matter_id=2, date=date(2026, 1, 6), billable_minutes=120, non_billable_minutes=0,
        activity_type="Review", matter_currency=CurrencyCode.INR, hourly_rate=Money("3000", "INR"),
    )
    return [usd, inr]


def test_subtotals_are_bucketed_by_currency():
    buckets = aggregate_subtotals(_entries())

    assert buckets.get("USD") == Money("1200", "USD")
    assert buckets.get("INR") == Money("6500", "INR")
    assert not buckets.is_single_currency


def test_consolidation_requires_every_rate():
    buckets = aggregate_subtotals(_entries())

    assert consolidate_buckets(buckets, "INR", {"USD": "83"}) == Money("106100", "INR")

    with pytest.raises(ConversionError) as exc:
        consolidate_buckets(buckets, "INR", {})
    assert exc.value.missing_rates == ["USD"]

    with pytest.raises(ConversionError) as exc:
        consolidate_buckets(buckets, "INR", {"USD": "0"})
    assert exc.value.invalid_rates == ["USD"]


# ========================================
# STATUS
# ========================================

def test_single_invoice_status_derivation():
    assert derive_invoice_status(state(status=InvoiceStatus.DRAFT, due_date=TODAY - timedelta(days=5)),
                                 TODAY) == InvoiceStatus.DRAFT
    assert derive_invoice_status(state(amount_paid="1000"), TODAY) == InvoiceStatus.PAID
    assert derive_invoice_status(state(amount_paid="400"), TODAY) == InvoiceStatus.PARTIALLY_PAID
    assert derive_invoice_status(state(), TODAY) == InvoiceStatus.NEW
    assert derive_invoice_status(state(status=InvoiceStatus.FINALIZED), TODAY) == InvoiceStatus.FINALIZED


def test_overdue_takes_precedence_over_partial_payment():
    late = state(amount_paid="400", due_date=TODAY - timedelta(days=1))
    assert derive_invoice_status(late, TODAY) == InvoiceStatus.OVERDUE


def test_parent_status_follows_splits():
    paid = state(final_amount="600", amount_paid="600")
    unpaid = state(final_amount="400")
    partial = state(final_amount="400", amount_paid="100")
    late = state(final_amount="400", due_date=TODAY - timedelta(days=2))

    assert derive_parent_status([paid, paid], TODAY) == InvoiceStatus.PAID
    assert derive_parent_status([paid, unpaid], TODAY) == InvoiceStatus.PARTIALLY_PAID
    assert derive_parent_status([unpaid, partial], TODAY) == InvoiceStatus.PARTIALLY_PAID
    assert derive_parent_status([unpaid, unpaid], TODAY) == InvoiceStatus.FINALIZED
    assert derive_parent_status([paid, late], TODAY) == InvoiceStatus.OVERDUE
    assert display_status(state(splits=[paid, paid]), TODAY) == InvoiceStatus.PAID


# ========================================
# SPLITS & PAYMENTS
# ========================================

def test_split_summary_sums_same_currency_splits():
    summary = summarize_splits([
        state(final_amount="600", amount_paid="100"),
        state(final_amount="400", amount_paid="400"),
    ], TODAY)

    assert summary.total_paid == Money("500", "INR")
    assert summary.total_due == Money("500", "INR")
    assert [line.status for line in summary.splits] == [InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID]


def test_split_summary_keeps_mixed_currencies_apart():
    summary = summarize_splits([
        state(final_amount="600", amount_paid="100"),
        state(final_amount="5", amount_paid="1", currency=CurrencyCode.USD),
    ], TODAY)

    assert summary.total_paid is None
    assert summary.total_due is None
    assert summary.paid_by_currency.to_dict() == {"INR": "100", "USD": "1"}
    assert not summary.is_single_currency


def test_remaining_amount_for_parent_and_single_invoice():
    assert remaining_amount(state(amount_paid="250")).to_dict() == {"INR": "750"}

    parent = state(splits=[state(final_amount="600", amount_paid="100"),
                           state(final_amount="5", currency=CurrencyCode.USD)])
    assert remaining_amount(parent).to_dict() == {"INR": "500", "USD": "5"}


def test_payment_validation():
    validate_payment(state(amount_paid="400"), Decimal("600"), "upi")

    with pytest.raises(InvoiceValidationError):
        validate_payment(state(), Decimal("0"), "upi")
    with pytest.raises(InvoiceValidationError):
        validate_payment(state(), Decimal("10"), "crypto")
    with pytest.raises(InvoiceValidationError):
        validate_payment(state(amount_paid="400"), Decimal("600.01"), "cash")
    with pytest.raises(InvoiceValidationError):
        validate_payment(state(splits=[state()]), Decimal("10"), "cash")


def test_status_after_payment():
    assert status_after_payment(state(), Decimal("1000")) == InvoiceStatus.PAID
    assert status_after_payment(state(), Decimal("1")) == InvoiceStatus.PARTIALLY_PAID


def test_payments_settle_at_display_precision():
    legacy = state(final_amount="333.3333")

    with pytest.raises(InvoiceValidationError):
        validate_payment(legacy, Decimal("333.34"), "upi")
    validate_payment(legacy, Decimal("333.33"), "upi")
    assert status_after_payment(legacy, Decimal("333.33")) == InvoiceStatus.PAID

    settled = state(final_amount="333.3333", amount_paid="333.33")
    assert derive_invoice_status(settled, TODAY) == InvoiceStatus.PAID


def test_split_amounts_round_to_whole_yen():
    shares = split_amounts(Money("1000", "JPY"), [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")])
    assert [s.amount for s in shares] == [Decimal("333"), Decimal("333"), Decimal("334")]


def test_split_amounts_absorb_rounding_in_last_split():
    shares = split_amounts(Money("1000", "INR"), [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")])

    assert [s.amount for s in shares] == [Decimal("333.3"), Decimal("333.3"), Decimal("333.4")]
    assert sum(s.amount for s in shares) == Decimal("1000")

    with pytest.raises(InvoiceValidationError):
        split_amounts(Money("1000", "INR"), [Decimal("50"), Decimal("40")])
    with pytest.raises(InvoiceValidationError):
        split_amounts(Money("1000", "INR"), [])


# ========================================
# NUMBERING
# ========================================

def test_financial_year_label():
    assert financial_year_label(date(2025, 4, 1)) == "2025-26"
    assert financial_year_label(date(2026, 3, 31)) == "2025-26"


def test_next_invoice_number_within_financial_year():
    existing = ["INV/2025-26/0007", "INV/2024-25/0099", "junk", "INV/2025-26/0003"]

    assert next_invoice_number(existing, on=date(2026, 1, 10)) == "INV/2025-26/0008"
    assert next_invoice_number(existing, on=date(2026, 4, 2)) == "INV/2026-27/0001"
    assert next_invoice_number([], prefix="LL", on=date(2025, 5, 1)) == "LL/2025-26/0001"
