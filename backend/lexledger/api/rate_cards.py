"""
LexLedger Practice Billing
Rate Cards API Router - Hourly ranges per user and service type

Every read runs the end-date reconciliation and persists the cards it
deactivated, so the stored flags converge without a scheduled job.
"""
import logging
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.api.deps import get_currency_service, http_error
from lexledger.api.projections import copy_rate_card_to_row, rate_card_from_row, rate_card_response
from lexledger.db.database import get_db
from lexledger.db.models import RateCard as RateCardRow, User
from lexledger.schemas.billing_schemas import (
    RateCardCreate, RateCardUpdate, RateCardResponse, ResolvedRateResponse
)
from lexledger.services.currency_service import CurrencyService
from lexledger.services.errors import LexLedgerError
from lexledger.services.money import Money
from lexledger.services.rate_card_service import (
    RATE_CARD_CURRENCY,
    RateCard,
    apply_rate_card_update,
    classify_end_date,
    ensure_single_active,
    rate_card_in_currency,
    reconcile_rate_cards,
    resolve_rate_card,
    toggle_rate_card,
    validate_dates,
    validate_rate_range,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_reconciled(db: AsyncSession, query) -> List[RateCardRow]:
    """Fetch rows, deactivate expired ones and persist the change"""
    rows = (await db.execute(query)).scalars().all()
    _, changed = reconcile_rate_cards([rate_card_from_row(row) for row in rows])
    if changed:
        by_id = {row.id: row for row in rows}
        for card in changed:
            copy_rate_card_to_row(card, by_id[card.ratecard_id])
        await db.commit()
    return list(rows)


async def _get_row(db: AsyncSession, ratecard_id: int) -> RateCardRow:
    rows = await _load_reconciled(db, select(RateCardRow).where(RateCardRow.id == ratecard_id))
    if not rows:
        raise HTTPException(status_code=404, detail="Rate card not found")
    return rows[0]


async def _siblings(db: AsyncSession, user_id: int, service_type: str) -> List[RateCard]:
    rows = await _load_reconciled(
        db,
        select(RateCardRow).where(RateCardRow.user_id == user_id, RateCardRow.service_type == service_type),
    )
    return [rate_card_from_row(row) for row in rows]


def _response(row: RateCardRow) -> RateCardResponse:
    return rate_card_response(rate_card_from_row(row), row.user.name if row.user is not None else None)


@router.get("/", response_model=List[RateCardResponse])
async def list_rate_cards(
    user_id: Optional[int] = None,
    service_type: Optional[str] = None,
    active_only: bool = False,
    db: AsyncSession = Depends(get_db)
):
    """List rate cards, deactivating any whose end date has passed"""
    query = select(RateCardRow)
    if user_id is not None:
        query = query.where(RateCardRow.user_id == user_id)
    if service_type:
        query = query.where(RateCardRow.service_type == service_type)
    query = query.order_by(RateCardRow.user_id, RateCardRow.service_type, RateCardRow.effective_date.desc())

    rows = await _load_reconciled(db, query)
    if active_only:
        rows = [row for row in rows if row.is_active]
    return [_response(row) for row in rows]


@router.post("/", response_model=RateCardResponse, status_code=201)
async def create_rate_card(
    data: RateCardCreate,
    db: AsyncSession = Depends(get_db)
):
    """Create a rate card; is_active follows the end date"""
    user = await db.get(User, data.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    min_rate = Money(data.min_rate, RATE_CARD_CURRENCY) if data.min_rate is not None else None
    max_rate = Money(data.max_rate, RATE_CARD_CURRENCY) if data.max_rate is not None else None
    card = RateCard(
        user_id=data.user_id,
        service_type=data.service_type,
        min_rate=min_rate,
        max_rate=max_rate,
        effective_date=data.effective_date,
        end_date=data.end_date,
        is_active=classify_end_date(data.end_date),
    )

    try:
        validate_rate_range(min_rate, max_rate, allow_empty=data.allow_empty_rates)
        validate_dates(card.effective_date, card.end_date)
        ensure_single_active(card, await _siblings(db, data.user_id, data.service_type))
    except LexLedgerError as e:
        raise http_error(e)

    row = RateCardRow(user_id=card.user_id, service_type=card.service_type)
    copy_rate_card_to_row(card, row)
    db.add(row)
    await db.commit()
    await db.refresh(row)
    row.user = user
    return _response(row)


@router.get("/resolve", response_model=ResolvedRateResponse)
async def resolve_rate(
    user_id: int,
    service_type: str,
    matter_currency: str = Query("INR"),
    on: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    service: CurrencyService = Depends(get_currency_service)
):
    """Active card in effect on a date, expressed in the matter currency"""
    cards = await _siblings(db, user_id, service_type)
    card = resolve_rate_card(cards, user_id, service_type, on)
    try:
        resolved = await rate_card_in_currency(card, matter_currency, service)
    except LexLedgerError as e:
        raise http_error(e)

    if resolved is None:
        return ResolvedRateResponse(has_rate_card=False, target_currency=matter_currency.upper())
    return ResolvedRateResponse(
        ratecard_id=card.ratecard_id,
        has_rate_card=True,
        has_rates=resolved.has_rates,
        min_rate=resolved.min_rate.amount if resolved.min_rate is not None else None,
        max_rate=resolved.max_rate.amount if resolved.max_rate is not None else None,
        suggested_rate=resolved.suggested_rate.amount if resolved.suggested_rate is not None else None,
        original_currency=resolved.original_currency.value,
        target_currency=resolved.target_currency.value,
        conversion_rate=resolved.conversion_rate,
    )


@router.get("/{ratecard_id}", response_model=RateCardResponse)
async def get_rate_card(
    ratecard_id: int,
    db: AsyncSession = Depends(get_db)
):
    return _response(await _get_row(db, ratecard_id))


@router.put("/{ratecard_id}", response_model=RateCardResponse)
async def update_rate_card(
    ratecard_id: int,
    data: RateCardUpdate,
    db: AsyncSession = Depends(get_db)
):
    """
    Inline edit of rates, dates or the active flag.

    A rejected edit leaves the stored card unchanged.
    """
    row = await _get_row(db, ratecard_id)
    current = rate_card_from_row(row)

    try:
        updated = apply_rate_card_update(current, data.model_dump(exclude_unset=True))
        ensure_single_active(updated, await _siblings(db, row.user_id, row.service_type))
    except LexLedgerError as e:
        raise http_error(e)

    copy_rate_card_to_row(updated, row)
    await db.commit()
    return _response(row)


@router.patch("/{ratecard_id}/toggle", response_model=RateCardResponse)
async def toggle_rate_card_status(
    ratecard_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Activate or deactivate; activating clears the end date"""
    row = await _get_row(db, ratecard_id)
    updated = toggle_rate_card(rate_card_from_row(row))
    try:
        ensure_single_active(updated, await _siblings(db, row.user_id, row.service_type))
    except LexLedgerError as e:
        raise http_error(e)

    copy_rate_card_to_row(updated, row)
    await db.commit()
    logger.info("Rate card %s %s", row.id, "activated" if updated.is_active else "deactivated")
    return _response(row)


@router.delete("/{ratecard_id}")
async def delete_rate_card(
    ratecard_id: int,
    db: AsyncSession = Depends(get_db)
):
    row = await _get_row(db, ratecard_id)
    await db.delete(row)
    await db.commit()
    return {"status": "deleted", "ratecard_id": ratecard_id}
