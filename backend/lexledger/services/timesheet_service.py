"""
LexLedger Practice Billing
Timesheet Amount Calculator

Time is logged in minutes and charged in the matter's currency. Expenses
attached to an entry are always recorded in INR. The two totals are reported
side by side and never added together here.
"""
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from lexledger.services.errors import TimesheetValidationError
from lexledger.services.money import (
    EXPENSE_CURRENCY,
    CurrencyCode,
    Money,
    parse_currency,
    quantize_internal,
)

MINUTES_PER_HOUR = Decimal("60")


@dataclass(frozen=True)
class Expense:
    """Expense recorded against a timesheet entry (always INR)"""
    expense_id: int
    category: str
    description: str
    amount: Money
    sub_category: Optional[str] = None
    vendor: Optional[str] = None
    expense_included: bool = True
    status: str = "pending"

    def __post_init__(self):
        if self.amount.currency != EXPENSE_CURRENCY:
            raise TimesheetValidationError(
                f"Expenses are recorded in {EXPENSE_CURRENCY.value}, got {self.amount.currency.value}",
                field="amount",
            )


@dataclass(frozen=True)
class TimesheetEntry:
    user_id: int
    matter_id: Optional[int]
    date: date
    billable_minutes: int
    non_billable_minutes: int
    activity_type: str
    matter_currency: CurrencyCode = CurrencyCode.INR
    hourly_rate: Optional[Money] = None
    description: Optional[str] = None
    expenses: Tuple[Expense, ...] = field(default_factory=tuple)
    timesheet_id: Optional[int] = None


@dataclass(frozen=True)
class TimesheetAmounts:
    """
    Derived figures for one entry.

    time_charge is in the matter currency; the expense totals are INR.
    has_mixed_currencies tells consumers the two must be shown separately.
    """
    billable_hours: Decimal
    non_billable_hours: Decimal
    total_hours: Decimal
    time_charge: Optional[Money]
    accepted_expense_total: Money
    rejected_expense_total: Money
    accepted_count: int
    rejected_count: int
    has_mixed_currencies: bool


def validate_duration(billable_minutes: int, non_billable_minutes: int):
    """A timesheet must record some time and no negative durations"""
    if billable_minutes is None or non_billable_minutes is None:
        raise TimesheetValidationError("Billable and non-billable minutes are required")
    if billable_minutes < 0 or non_billable_minutes < 0:
        raise TimesheetValidationError("Minutes cannot be negative", field="billable_minutes")
    if billable_minutes + non_billable_minutes <= 0:
        raise TimesheetValidationError(
            "Timesheet must have billable or non-billable time", field="billable_minutes"
        )


def minutes_to_hours(minutes: int) -> Decimal:
    return quantize_internal(Decimal(minutes) / MINUTES_PER_HOUR)


def calculate_time_charge(billable_minutes: int, hourly_rate: Optional[Money],
                          matter_currency: CurrencyCode) -> Optional[Money]:
    """billable_minutes / 60 * hourly_rate, in the matter currency"""
    if hourly_rate is None:
        return None
    if hourly_rate.currency != matter_currency:
        raise TimesheetValidationError(
            f"Hourly rate is in {hourly_rate.currency.value} but the matter bills in {matter_currency.value}",
            field="hourly_rate",
        )
    hours = Decimal(billable_minutes) / MINUTES_PER_HOUR
    return hourly_rate * hours


def split_expense_totals(expenses: Iterable[Expense]) -> Tuple[Money, Money, int, int]:
    """Return (accepted total, rejected total, accepted count, rejected count)"""
    accepted = Money.zero(EXPENSE_CURRENCY)
    rejected = Money.zero(EXPENSE_CURRENCY)
    accepted_count = rejected_count = 0
    for expense in expenses:
        if expense.expense_included:
            accepted = accepted + expense.amount
            accepted_count += 1
        else:
            rejected = rejected + expense.amount
            rejected_count += 1
    return accepted, rejected, accepted_count, rejected_count


def calculate_timesheet_amounts(entry: TimesheetEntry) -> TimesheetAmounts:
    """Compute hours, time charge and expense totals for one entry"""
    matter_currency = parse_currency(entry.matter_currency)
    time_charge = calculate_time_charge(entry.billable_minutes, entry.hourly_rate, matter_currency)
    accepted, rejected, accepted_count, rejected_count = split_expense_totals(entry.expenses)

    return TimesheetAmounts(
        billable_hours=minutes_to_hours(entry.billable_minutes),
        non_billable_hours=minutes_to_hours(entry.non_billable_minutes),
        total_hours=minutes_to_hours(entry.billable_minutes + entry.non_billable_minutes),
        time_charge=time_charge,
        accepted_expense_total=accepted,
        rejected_expense_total=rejected,
        accepted_count=accepted_count,
        rejected_count=rejected_count,
        has_mixed_currencies=matter_currency != EXPENSE_CURRENCY and accepted.amount > 0,
    )


def apply_expense_inclusion(expenses: Sequence[Expense],
                            updates: Iterable[Tuple[int, bool]]) -> List[Expense]:
    """
    Apply a bulk list of (expense_id, included) flags.

    Unknown expense ids reject the whole update.
    """
    flags: Dict[int, bool] = {}
    for expense_id, included in updates:
        flags[expense_id] = bool(included)

    known = {expense.expense_id for expense in expenses}
    unknown = sorted(set(flags) - known)
    if unknown:
        raise TimesheetValidationError(
            f"Expenses not linked to this timesheet: {', '.join(str(i) for i in unknown)}",
            field="expenses",
        )

    return [
        replace(expense, expense_included=flags[expense.expense_id])
        if expense.expense_id in flags else expense
        for expense in expenses
    ]


def apply_billed_override(entry: TimesheetEntry, billed_minutes: Optional[int] = None,
                          billed_hourly_rate: Optional[Money] = None) -> TimesheetEntry:
    """
    The entry as billed on a draft invoice.

    Billed minutes and rate replace the logged values for invoicing only;
    the timesheet itself keeps what was recorded.
    """
    if billed_minutes is not None and billed_minutes < 0:
        raise TimesheetValidationError("Billed minutes cannot be negative", field="billed_minutes")
    if billed_hourly_rate is not None and billed_hourly_rate.is_negative:
        raise TimesheetValidationError("Billed hourly rate cannot be negative", field="hourly_rate")

    changes = {}
    if billed_minutes is not None:
        changes["billable_minutes"] = billed_minutes
    if billed_hourly_rate is not None:
        changes["hourly_rate"] = billed_hourly_rate
    return replace(entry, **changes) if changes else entry
