from datetime import date
from decimal import Decimal

import pytest

from lexledger.services.errors import TimesheetValidationError
from lexledger.services.money import CurrencyCode, Money
from lexledger.services.timesheet_service import (
    Expense,
    TimesheetEntry,
    apply_billed_override,
    apply_expense_inclusion,
    calculate_time_charge,
    calculate_timesheet_amounts,
    minutes_to_hours,
    validate_duration,
)


def expense(expense_id, amount, included=True):
    return Expense(expense_id=expense_id, category="Travel", description="Cab",
                   amount=Money(amount, CurrencyCode.INR), expense_included=included)


def entry(**overrides):
    values = dict(
        user_id=1,
        matter_id=10,
        date=date(2026, 1, 5),
        billable_minutes=360,
        non_billable_minutes=30,
        activity_type="Drafting",
        matter_currency=CurrencyCode.USD,
        hourly_rate=Money("200", CurrencyCode.USD),
    )
    values.update(overrides)
    return TimesheetEntry(**values)


def test_usd_time_and_inr_expenses_stay_separate():
    amounts = calculate_timesheet_amounts(entry(expenses=(expense(1, "500"), expense(2, "300", included=False))))

    assert amounts.time_charge == Money("1200", CurrencyCode.USD)
    assert amounts.accepted_expense_total == Money("500", CurrencyCode.INR)
    assert amounts.rejected_expense_total == Money("300", CurrencyCode.INR)
    assert amounts.accepted_count == 1
    assert amounts.rejected_count == 1
    assert amounts.has_mixed_currencies is True


def test_inr_matter_is_not_mixed():
    amounts = calculate_timesheet_amounts(entry(
        matter_currency=CurrencyCode.INR,
        hourly_rate=Money("5000", CurrencyCode.INR),
        expenses=(expense(1, "500"),),
    ))
    assert amounts.time_charge == Money("30000", CurrencyCode.INR)
    assert amounts.has_mixed_currencies is False


def test_no_included_expenses_is_not_mixed():
    amounts = calculate_timesheet_amounts(entry(expenses=(expense(1, "300", included=False),)))
    assert amounts.has_mixed_currencies is False


def test_hours_are_derived_from_minutes():
    amounts = calculate_timesheet_amounts(entry(billable_minutes=90, non_billable_minutes=15))

    assert amounts.billable_hours == Decimal("1.5")
    assert amounts.non_billable_hours == Decimal("0.25")
    assert amounts.total_hours == Decimal("1.75")
    assert minutes_to_hours(20) == Decimal("0.3333")


def test_missing_rate_means_no_charge():
    assert calculate_timesheet_amounts(entry(hourly_rate=None)).time_charge is None


def test_rate_must_be_in_matter_currency():
    with pytest.raises(TimesheetValidationError):
        calculate_time_charge(60, Money("100", CurrencyCode.EUR), CurrencyCode.USD)


def test_duration_validation():
    validate_duration(0, 15)
    with pytest.raises(TimesheetValidationError):
        validate_duration(0, 0)
    with pytest.raises(TimesheetValidationError):
        validate_duration(-30, 60)


def test_expenses_must_be_inr():
    with pytest.raises(TimesheetValidationError):
        Expense(expense_id=1, category="Travel", description="Flight", amount=Money("10", CurrencyCode.USD))


def test_bulk_inclusion_update():
    expenses = [expense(1, "100"), expense(2, "200")]

    updated = apply_expense_inclusion(expenses, [(1, False), (2, True)])

    assert [e.expense_included for e in updated] == [False, True]
    assert expenses[0].expense_included is True


def test_bulk_inclusion_rejects_unknown_ids():
    with pytest.raises(TimesheetValidationError):
        apply_expense_inclusion([expense(1, "100")], [(1, False), (99, True)])


def test_billed_override_replaces_minutes_and_rate():
    logged = entry()
    billed = apply_billed_override(logged, 90, Money("300", CurrencyCode.USD))

    assert calculate_timesheet_amounts(billed).time_charge == Money("450", CurrencyCode.USD)
    assert billed.non_billable_minutes == 30
    assert logged.billable_minutes == 360
    assert apply_billed_override(logged) is logged

    with pytest.raises(TimesheetValidationError):
        apply_billed_override(logged, -1)
    with pytest.raises(TimesheetValidationError):
        apply_billed_override(logged, None, Money("-5", CurrencyCode.USD))
