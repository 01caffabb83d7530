"""
LexLedger Practice Billing
Invoices API Router - Creation, splits, payments and partner shares

Status shown to clients is derived at read time (overdue, partially paid,
parent status from splits); the stored status only changes through the
explicit endpoints below.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.api.deps import get_capabilities, http_error
from lexledger.api.projections import (
    billed_entry_from_row, invoice_payments, invoice_response, invoice_state_from_row, partner_shares_from_rows,
    partner_split_response, payment_response
)
from lexledger.core.config import settings
from lexledger.db.database import get_db
from lexledger.db.models import (
    Client, Invoice, Matter, PartnerShare as PartnerShareRow, Payment, Timesheet, User
)
from lexledger.schemas.billing_schemas import (
    InvoiceCreate, InvoiceListResponse, InvoiceResponse, InvoiceSplitRequest, InvoiceStatusUpdate, InvoiceUpdate,
    PartnerSharesUpdate, PartnerSplitResponse, PaymentCreate, PaymentResponse
)
from lexledger.services.capabilities import Capabilities
from lexledger.services.currency_service import convert_offline
from lexledger.services.errors import ConversionError, InvoiceValidationError, LexLedgerError
from lexledger.services.invoice_service import (
    Discount,
    InvoiceStatus,
    aggregate_subtotals,
    apply_discount,
    consolidate_buckets,
    next_invoice_number,
    split_amounts,
    status_after_payment,
    validate_payment,
)
from lexledger.services.money import Money, parse_currency, round_for_currency
from lexledger.services.partner_share_service import PartnerShare, calculate_partner_shares

logger = logging.getLogger(__name__)

router = APIRouter()

# Stored statuses that only payments may set
PAYMENT_DRIVEN_STATUSES = {InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE}


async def _get_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    result = await db.execute(
        select(Invoice).where(Invoice.id == invoice_id).execution_options(populate_existing=True)
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


def _require_manager(capabilities: Capabilities):
    if not capabilities.can_manage_invoices():
        raise HTTPException(status_code=403, detail="Not allowed to manage invoices")


def _conversion_failure(e: ConversionError) -> HTTPException:
    """Rate tables are caller input, so a gap in one is a 400"""
    return HTTPException(status_code=400, detail={
        "message": str(e),
        "missing_rates": e.missing_rates,
        "invalid_rates": e.invalid_rates,
    })


@router.get("/", response_model=InvoiceListResponse)
async def list_invoices(
    client_id: Optional[int] = None,
    status: Optional[InvoiceStatus] = None,
    include_splits: bool = False,
    db: AsyncSession = Depends(get_db)
):
    """List invoices; status filters on the derived display status"""
    query = select(Invoice)
    if client_id is not None:
        query = query.where(Invoice.client_id == client_id)
    if not include_splits:
        query = query.where(Invoice.parent_invoice_id.is_(None))
    query = query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc())

    rows = (await db.execute(query)).scalars().all()
    items = [invoice_response(row) for row in rows]
    if status is not None:
        items = [item for item in items if item.display_status == status]
    return InvoiceListResponse(items=items, total=len(items))


@router.post("/", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """
    Create an invoice from unbilled timesheets (or a manual subtotal).

    Subtotals are bucketed per currency and consolidated into the invoice
    currency only through the supplied exchange_rates table.
    """
    _require_manager(capabilities)
    if data.status not in (InvoiceStatus.DRAFT, InvoiceStatus.NEW):
        raise http_error(InvoiceValidationError("New invoices start as draft or new", field="status"))

    client = await db.get(Client, data.client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    matter = None
    if data.matter_id is not None:
        matter = await db.get(Matter, data.matter_id)
        if not matter:
            raise HTTPException(status_code=404, detail="Matter not found")

    try:
        currency = parse_currency(data.currency or (matter.currency if matter else settings.DEFAULT_CURRENCY))
    except LexLedgerError as e:
        raise http_error(e)

    timesheets: List[Timesheet] = []
    if data.timesheet_ids:
        rows = (await db.execute(select(Timesheet).where(Timesheet.id.in_(data.timesheet_ids)))).scalars().all()
        missing = set(data.timesheet_ids) - {row.id for row in rows}
        if missing:
            raise HTTPException(status_code=404, detail=f"Timesheets not found: {sorted(missing)}")
        billed = [row.id for row in rows if row.invoice_id is not None]
        if billed:
            raise http_error(InvoiceValidationError(f"Timesheets already invoiced: {billed}", field="timesheet_ids"))
        timesheets = sorted(rows, key=lambda row: (row.date, row.id))

    try:
        if timesheets:
            buckets = aggregate_subtotals([billed_entry_from_row(row) for row in timesheets])
            subtotal = (consolidate_buckets(buckets, currency, data.exchange_rates)
                        if not buckets.is_empty else Money.zero(currency))
        else:
            subtotal = Money(data.subtotal or Decimal("0"), currency)

        discount = Discount(data.discount.type, data.discount.value) if data.discount else None
        amounts = apply_discount(subtotal, discount)
        shares = [PartnerShare(user_id=s.user_id, percentage=s.percentage) for s in data.partner_shares]
        calculate_partner_shares(amounts.final_amount, shares)
    except ConversionError as e:
        raise _conversion_failure(e)
    except LexLedgerError as e:
        raise http_error(e)

    invoice_date = data.invoice_date or date.today()
    due_date = data.due_date or invoice_date + timedelta(days=settings.PAYMENT_TERMS_DAYS)
    if due_date < invoice_date:
        raise http_error(InvoiceValidationError("Due date cannot be before the invoice date", field="due_date"))

    existing = (await db.execute(select(Invoice.invoice_number))).scalars().all()
    invoice = Invoice(
        invoice_number=next_invoice_number(existing, settings.INVOICE_NUMBER_PREFIX, invoice_date),
        client_id=client.id,
        matter_id=matter.id if matter else None,
        invoice_date=invoice_date,
        due_date=due_date,
        period_from=data.period_from or (timesheets[0].date if timesheets else None),
        period_to=data.period_to or (timesheets[-1].date if timesheets else None),
        currency=currency.value,
        subtotal=amounts.subtotal.amount,
        discount_type=discount.type if discount else None,
        discount_value=discount.value if discount else Decimal("0"),
        discount_amount=amounts.discount_amount.amount,
        final_amount=amounts.final_amount.amount,
        amount_paid=Decimal("0"),
        exchange_rates={k: str(v) for k, v in data.exchange_rates.items()} if data.exchange_rates else None,
        status=data.status,
        billing_location=data.billing_location or client.billing_location,
        description=data.description,
        notes=data.notes,
    )
    invoice.partner_shares = [PartnerShareRow(user_id=s.user_id, percentage=s.percentage) for s in shares]
    db.add(invoice)
    await db.flush()

    for timesheet in timesheets:
        timesheet.invoice_id = invoice.id
    await db.commit()
    logger.info("Created invoice %s for client %s", invoice.invoice_number, client.id)

    return invoice_response(await _get_invoice(db, invoice.id))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db)
):
    return invoice_response(await _get_invoice(db, invoice_id))


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_draft_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """
    Edit a draft invoice.

    Billed minutes and rates per timesheet, the discount and the exchange
    rates feed a full recalculation of subtotal and final amount.
    """
    _require_manager(capabilities)
    invoice = await _get_invoice(db, invoice_id)
    if invoice.status != InvoiceStatus.DRAFT:
        raise http_error(InvoiceValidationError(
            f"Only draft invoices can be edited. Current status: '{invoice.status.value}'", field="status"
        ))

    changes = data.model_dump(exclude_unset=True)
    currency = parse_currency(invoice.currency)
    timesheets = {row.id: row for row in invoice.timesheets}
    lines = {line.timesheet_id: line for line in data.timesheets}
    unknown = sorted(set(lines) - set(timesheets))
    if unknown:
        raise HTTPException(status_code=404, detail=f"Timesheets not found in this invoice: {unknown}")

    if "exchange_rates" in changes:
        rates = data.exchange_rates
    else:
        rates = {k: Decimal(str(v)) for k, v in (invoice.exchange_rates or {}).items()} or None

    if "discount" in changes:
        discount = Discount(data.discount.type, data.discount.value) if data.discount else None
    elif invoice.discount_type is not None:
        discount = Discount(invoice.discount_type, invoice.discount_value or 0)
    else:
        discount = None

    try:
        if timesheets:
            entries = []
            for row in timesheets.values():
                line = lines.get(row.id)
                entries.append(billed_entry_from_row(
                    row,
                    line.billed_minutes if line else None,
                    line.hourly_rate if line else None,
                ))
            buckets = aggregate_subtotals(entries)
            subtotal = (consolidate_buckets(buckets, currency, rates)
                        if not buckets.is_empty else Money.zero(currency))
        else:
            subtotal = Money(invoice.subtotal or Decimal("0"), currency)

        amounts = apply_discount(subtotal, discount)
        calculate_partner_shares(amounts.final_amount, partner_shares_from_rows(invoice.partner_shares))
    except ConversionError as e:
        raise _conversion_failure(e)
    except LexLedgerError as e:
        raise http_error(e)

    invoice_date = data.invoice_date or invoice.invoice_date
    due_date = data.due_date or invoice.due_date
    if due_date < invoice_date:
        raise http_error(InvoiceValidationError("Due date cannot be before the invoice date", field="due_date"))

    for timesheet_id, line in lines.items():
        row = timesheets[timesheet_id]
        if line.billed_minutes is not None:
            row.billed_minutes = line.billed_minutes
        if line.hourly_rate is not None:
            row.billed_hourly_rate = line.hourly_rate

    for key in ("period_from", "period_to", "billing_location", "description", "notes"):
        if key in changes:
            setattr(invoice, key, changes[key])
    invoice.invoice_date = invoice_date
    invoice.due_date = due_date
    invoice.exchange_rates = {k: str(v) for k, v in rates.items()} if rates else None
    invoice.subtotal = amounts.subtotal.amount
    invoice.discount_type = discount.type if discount else None
    invoice.discount_value = discount.value if discount else Decimal("0")
    invoice.discount_amount = amounts.discount_amount.amount
    invoice.final_amount = amounts.final_amount.amount
    await db.commit()
    logger.info("Updated draft invoice %s: final amount %s %s",
                invoice.invoice_number, amounts.final_amount.amount, currency.value)

    return invoice_response(await _get_invoice(db, invoice_id))


@router.put("/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: int,
    data: InvoiceStatusUpdate,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """Move an invoice between draft, new and finalized"""
    _require_manager(capabilities)
    invoice = await _get_invoice(db, invoice_id)

    if invoice.splits:
        raise http_error(InvoiceValidationError("Parent invoice status follows its split invoices"))
    if data.status in PAYMENT_DRIVEN_STATUSES:
        raise http_error(InvoiceValidationError(
            f"Status '{data.status.value}' is derived from payments and due dates", field="status"
        ))

    invoice.status = data.status
    await db.commit()
    return invoice_response(await _get_invoice(db, invoice_id))


@router.post("/{invoice_id}/split", response_model=InvoiceResponse)
async def split_invoice(
    invoice_id: int,
    data: InvoiceSplitRequest,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """
    Finalize an invoice into split invoices.

    Each split takes a percentage of the parent's final amount, optionally
    billed in another currency at the given parent-to-split rate.
    """
    _require_manager(capabilities)
    parent = await _get_invoice(db, invoice_id)

    if parent.parent_invoice_id is not None:
        raise http_error(InvoiceValidationError("A split invoice cannot be split again"))
    if parent.splits:
        raise http_error(InvoiceValidationError("Invoice is already split"))
    if (parent.amount_paid or 0) > 0:
        raise http_error(InvoiceValidationError("Cannot split an invoice that has payments"))

    parent_currency = parse_currency(parent.currency)
    try:
        shares = split_amounts(Money(parent.final_amount, parent_currency), [s.percentage for s in data.splits])
        amounts = []
        for request, share in zip(data.splits, shares):
            target = parse_currency(request.currency, default=parent_currency)
            rate_table = {parent_currency.value: request.exchange_rate} if request.exchange_rate is not None else None
            converted = convert_offline(share.amount, parent_currency, target, rate_table)
            if not converted.converted:
                raise InvoiceValidationError(
                    f"A valid exchange rate from {parent_currency.value} to {target.value} is required",
                    field="exchange_rate",
                )
            amounts.append((Money(round_for_currency(converted.amount, target), target), request))
    except LexLedgerError as e:
        raise http_error(e)

    for index, (amount, request) in enumerate(amounts, start=1):
        db.add(Invoice(
            invoice_number=f"{parent.invoice_number}-{index}",
            client_id=parent.client_id,
            matter_id=parent.matter_id,
            parent_invoice_id=parent.id,
            invoice_date=parent.invoice_date,
            due_date=parent.due_date,
            period_from=parent.period_from,
            period_to=parent.period_to,
            currency=amount.currency.value,
            subtotal=amount.amount,
            discount_amount=Decimal("0"),
            final_amount=amount.amount,
            amount_paid=Decimal("0"),
            split_percentage=request.percentage,
            exchange_rates=({parent_currency.value: str(request.exchange_rate)}
                            if request.exchange_rate is not None else None),
            status=InvoiceStatus.NEW,
            billing_location=parent.billing_location,
        ))
    parent.status = InvoiceStatus.FINALIZED
    await db.commit()
    logger.info("Split invoice %s into %d invoices", parent.invoice_number, len(amounts))

    return invoice_response(await _get_invoice(db, invoice_id))


@router.get("/{invoice_id}/payments", response_model=List[PaymentResponse])
async def list_payments(
    invoice_id: int,
    db: AsyncSession = Depends(get_db)
):
    invoice = await _get_invoice(db, invoice_id)
    return [payment_response(p, currency) for p, currency in invoice_payments(invoice)]


@router.post("/{invoice_id}/payments", response_model=InvoiceResponse, status_code=201)
async def record_payment(
    invoice_id: int,
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """Record a payment against a non-parent invoice"""
    _require_manager(capabilities)
    invoice = await _get_invoice(db, invoice_id)
    state = invoice_state_from_row(invoice)

    try:
        validate_payment(state, data.amount, data.payment_method)
    except LexLedgerError as e:
        raise http_error(e)

    db.add(Payment(
        invoice_id=invoice.id,
        payment_date=data.payment_date or date.today(),
        amount=data.amount,
        payment_method=data.payment_method,
        transaction_ref=data.transaction_ref,
        notes=data.notes,
    ))
    invoice.status = status_after_payment(state, data.amount)
    invoice.amount_paid = state.amount_paid + data.amount
    await db.commit()

    return invoice_response(await _get_invoice(db, invoice_id))


@router.get("/{invoice_id}/partner-shares", response_model=PartnerSplitResponse)
async def get_partner_shares(
    invoice_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Partner shares with amounts; the total need not be 100%"""
    invoice = await _get_invoice(db, invoice_id)
    final_amount = Money(invoice.final_amount or 0, parse_currency(invoice.currency))
    try:
        split = calculate_partner_shares(final_amount, partner_shares_from_rows(invoice.partner_shares))
    except LexLedgerError as e:
        raise http_error(e)
    return partner_split_response(split)


@router.put("/{invoice_id}/partner-shares", response_model=PartnerSplitResponse)
async def replace_partner_shares(
    invoice_id: int,
    data: PartnerSharesUpdate,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    _require_manager(capabilities)
    invoice = await _get_invoice(db, invoice_id)

    users = {}
    for share in data.shares:
        user = await db.get(User, share.user_id)
        if not user:
            raise HTTPException(status_code=404, detail=f"User {share.user_id} not found")
        users[user.id] = user

    shares = [
        PartnerShare(user_id=s.user_id, percentage=s.percentage, user_name=users[s.user_id].name)
        for s in data.shares
    ]
    try:
        split = calculate_partner_shares(Money(invoice.final_amount or 0, parse_currency(invoice.currency)), shares)
    except LexLedgerError as e:
        raise http_error(e)

    invoice.partner_shares = [PartnerShareRow(user_id=s.user_id, percentage=s.percentage) for s in shares]
    await db.commit()
    return partner_split_response(split)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    capabilities: Capabilities = Depends(get_capabilities)
):
    """Delete an invoice with its splits; linked timesheets become unbilled"""
    _require_manager(capabilities)
    invoice = await _get_invoice(db, invoice_id)
    ids = [invoice.id] + [child.id for child in invoice.splits]

    await db.execute(
        update(Timesheet).where(Timesheet.invoice_id.in_(ids))
        .values(invoice_id=None, billed_minutes=None, billed_hourly_rate=None)
    )
    await db.execute(delete(Payment).where(Payment.invoice_id.in_(ids)))
    await db.execute(delete(PartnerShareRow).where(PartnerShareRow.invoice_id.in_(ids)))
    await db.execute(delete(Invoice).where(Invoice.parent_invoice_id == invoice.id))
    await db.execute(delete(Invoice).where(Invoice.id == invoice.id))
    await db.commit()
    logger.info("Deleted invoice %s (%d records)", invoice.invoice_number, len(ids))
    return {"status": "deleted", "invoice_id": invoice_id, "deleted_invoice_ids": ids}
