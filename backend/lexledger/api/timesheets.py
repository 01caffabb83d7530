"""
LexLedger Practice Billing
Timesheets API Router - Time entries, expenses and approval
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.api.deps import get_capabilities, http_error
from lexledger.api.projections import expense_from_row, timesheet_response
from lexledger.db.database import get_db
from lexledger.db.models import Expense as ExpenseRow, Matter, Timesheet, TimesheetStatus, User
from lexledger.schemas.billing_schemas import (
    ExpenseCreate, ExpenseInclusionUpdate, TimesheetCreate, TimesheetUpdate, TimesheetResponse
)
from lexledger.services.capabilities import Capabilities
from lexledger.services.errors import LexLedgerError, TimesheetValidationError
from lexledger.services.money import Money, parse_currency
from lexledger.core.config import settings
from lexledger.services.timesheet_service import (
    apply_expense_inclusion,
    calculate_time_charge,
    validate_duration,
)

router = APIRouter()


async def _get_timesheet(db: AsyncSession, timesheet_id: int) -> Timesheet:
    result = await db.execute(
        select(Timesheet).where(Timesheet.id == timesheet_id).execution_options(populate_existing=True)
    )
    timesheet = result.scalar_one_or_none()
    if not timesheet:
        raise HTTPException(status_code=404, detail="Timesheet not found")
    return timesheet


async def _matter_currency(db: AsyncSession, matter_id: Optional[int]):
    if matter_id is None:
        return parse_currency(settings.DEFAULT_CURRENCY)
    matter = await db.get(Matter, matter_id)
    if not matter:
        raise HTTPException(status_code=404, detail="Matter not found")
    return parse_currency(matter.currency)


def _charge(billable_minutes: int, hourly_rate, rate_currency: Optional[str], matter_currency):
    """Validate the rate currency against the matter and return the stored charge"""
    if hourly_rate is None:
        return None
    rate = Money(hourly_rate, parse_currency(rate_currency, default=matter_currency))
    charge = calculate_time_charge(billable_minutes, rate, matter_currency)
    return charge.amount


@router.get("/", response_model=List[TimesheetResponse])
async def list_timesheets(
    user_id: Optional[int] = None,
    matter_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    unbilled_only: bool = False,
    db: AsyncSession = Depends(get_db)
):
    """List timesheets with derived hours and amounts"""
    query = select(Timesheet)
    if user_id is not None:
        query = query.where(Timesheet.user_id == user_id)
    if matter_id is not None:
        query = query.where(Timesheet.matter_id == matter_id)
    if date_from:
        query = query.where(Timesheet.date >= date_from)
    if date_to:
        query = query.where(Timesheet.date <= date_to)
    if unbilled_only:
        query = query.where(Timesheet.invoice_id.is_(None))
    query = query.order_by(Timesheet.date.asc(), Timesheet.id.asc())

    rows = (await db.execute(query)).scalars().all()
    return [timesheet_response(row) for row in rows]


@router.post("/", response_model=TimesheetResponse, status_code=201)
async def create_timesheet(
    data: TimesheetCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Log time against a matter.

    The hourly rate must be in the matter currency; expenses are INR.
    """
    if not await db.get(User, data.user_id):
        raise HTTPException(status_code=404, detail="User not found")
    matter_currency = await _matter_currency(db, data.matter_id)

    try:
        validate_duration(data.billable_minutes, data.non_billable_minutes)
        calculated = _charge(data.billable_minutes, data.hourly_rate, data.hourly_rate_currency, matter_currency)
    except LexLedgerError as e:
        raise http_error(e)

    timesheet = Timesheet(
        user_id=data.user_id,
        matter_id=data.matter_id,
        date=data.date,
        billable_minutes=data.billable_minutes,
        non_billable_minutes=data.non_billable_minutes,
        activity_type=data.activity_type,
        description=data.description,
        hourly_rate=data.hourly_rate,
        calculated_amount=calculated,
        status=TimesheetStatus.PENDING,
    )
    timesheet.expenses = [ExpenseRow(**expense.model_dump()) for expense in data.expenses]
    db.add(timesheet)
    await db.commit()

    return timesheet_response(await _get_timesheet(db, timesheet.id))


@router.get("/{timesheet_id}", response_model=TimesheetResponse)
async def get_timesheet(
    timesheet_id: int,
    db: AsyncSession = Depends(get_db)
):
    return timesheet_response(await _get_timesheet(db, timesheet_id))


@router.put("/{timesheet_id}", response_model=TimesheetResponse)
async def update_timesheet(
    timesheet_id: int,
    data: TimesheetUpdate,
    db: AsyncSession = Depends(get_db)
):
    """Edit an entry; duration and rate are re-validated before saving"""
    timesheet = await _get_timesheet(db, timesheet_id)
    changes = data.model_dump(exclude_unset=True)
    rate_currency = changes.pop("hourly_rate_currency", None)

    billable = changes.get("billable_minutes", timesheet.billable_minutes)
    non_billable = changes.get("non_billable_minutes", timesheet.non_billable_minutes)
    hourly_rate = changes.get("hourly_rate", timesheet.hourly_rate)
    matter_currency = await _matter_currency(db, timesheet.matter_id)

    try:
        validate_duration(billable, non_billable)
        calculated = _charge(billable, hourly_rate, rate_currency, matter_currency)
    except LexLedgerError as e:
        raise http_error(e)

    for field, value in changes.items():
        setattr(timesheet, field, value)
    timesheet.calculated_amount = calculated
    await db.commit()

    return timesheet_response(await _get_timesheet(db, timesheet_id))


@router.post("/{timesheet_id}/expenses", response_model=TimesheetResponse, status_code=201)
async def add_expense(
    timesheet_id: int,
    data: ExpenseCreate,
    db: AsyncSession = Depends(get_db)
):
    timesheet = await _get_timesheet(db, timesheet_id)
    db.add(ExpenseRow(timesheet_id=timesheet.id, **data.model_dump()))
    await db.commit()
    return timesheet_response(await _get_timesheet(db, timesheet_id))


@router.put("/{timesheet_id}/expenses", response_model=TimesheetResponse)
async def update_expense_inclusion(
    timesheet_id: int,
    updates: List[ExpenseInclusionUpdate],
    db: AsyncSession = Depends(get_db)
):
    """
    Bulk include/exclude expenses on one timesheet.

    Unknown expense ids reject the whole request.
    """
    timesheet = await _get_timesheet(db, timesheet_id)
    try:
        expenses = apply_expense_inclusion(
            [expense_from_row(row) for row in timesheet.expenses],
            [(u.expense_id, u.included) for u in updates],
        )
    except LexLedgerError as e:
        raise http_error(e)

    included = {expense.expense_id: expense.expense_included for expense in expenses}
    for row in timesheet.expenses:
        row.expense_included = included[row.id]
    await db.commit()

    return timesheet_response(await _get_timesheet(db, timesheet_id))


@router.post("/{timesheet_id}/approve", response_model=TimesheetResponse)
async def approve_timesheet(
    timesheet_id: int,
    approve: bool = True,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """Approve or reject an entry (partners and admins only)"""
    if not capabilities.can_approve_timesheets():
        raise HTTPException(status_code=403, detail="Not allowed to approve timesheets")

    timesheet = await _get_timesheet(db, timesheet_id)
    timesheet.status = TimesheetStatus.APPROVED if approve else TimesheetStatus.REJECTED
    timesheet.approved_by = capabilities.role
    await db.commit()
    return timesheet_response(await _get_timesheet(db, timesheet_id))


@router.delete("/{timesheet_id}")
async def delete_timesheet(
    timesheet_id: int,
    db: AsyncSession = Depends(get_db)
):
    timesheet = await _get_timesheet(db, timesheet_id)
    if timesheet.invoice_id is not None:
        raise http_error(TimesheetValidationError("Timesheet is already billed on an invoice"))
    await db.delete(timesheet)
    await db.commit()
    return {"status": "deleted", "timesheet_id": timesheet_id}
