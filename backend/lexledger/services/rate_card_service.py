"""
LexLedger Practice Billing
Rate Card Resolver

Rate cards hold an hourly range (in INR) for a user and service type,
bounded by an effective date and an optional end date. Activation follows
the end date:

    end_date is None      -> active
    end_date <  today     -> inactive
    end_date >= today     -> active

Expired cards are deactivated lazily whenever a list of cards is read.
"""
import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from lexledger.services.currency_service import CurrencyService
from lexledger.services.errors import RateCardValidationError
from lexledger.services.money import CurrencyCode, Money, parse_currency, round_for_currency, to_decimal

logger = logging.getLogger(__name__)

RATE_CARD_CURRENCY = CurrencyCode.INR

EDITABLE_FIELDS = ("min_rate", "max_rate", "effective_date", "end_date", "is_active")


@dataclass(frozen=True)
class RateCard:
    """Hourly rate range for a user performing a service type"""
    user_id: int
    service_type: str
    min_rate: Optional[Money]
    max_rate: Optional[Money]
    effective_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    ratecard_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.min_rate is None or self.max_rate is None


@dataclass(frozen=True)
class ResolvedRate:
    """Rate card figures expressed in a matter currency"""
    has_rate_card: bool
    has_rates: bool
    min_rate: Optional[Money]
    max_rate: Optional[Money]
    suggested_rate: Optional[Money]
    original_currency: CurrencyCode
    target_currency: CurrencyCode
    conversion_rate: Decimal


# ========================================
# VALIDATION
# ========================================

def validate_rate_range(min_rate: Optional[Money], max_rate: Optional[Money],
                        allow_empty: bool = False):
    """Reject missing, non-positive, or inverted rate ranges"""
    if min_rate is None and max_rate is None:
        if allow_empty:
            return
        raise RateCardValidationError("Both min_rate and max_rate are required", field="min_rate")
    if min_rate is None or max_rate is None:
        raise RateCardValidationError(
            "min_rate and max_rate must be provided together",
            field="min_rate" if min_rate is None else "max_rate",
        )
    if min_rate.amount <= 0 or max_rate.amount <= 0:
        raise RateCardValidationError("Rates must be greater than 0", field="min_rate")
    if min_rate > max_rate:
        raise RateCardValidationError(
            f"Minimum rate ({min_rate.amount}) cannot be greater than maximum rate ({max_rate.amount})",
            field="min_rate",
        )


def validate_dates(effective_date: date, end_date: Optional[date]):
    if end_date is not None and end_date < effective_date:
        raise RateCardValidationError("End date cannot be before the effective date", field="end_date")


def classify_end_date(end_date: Optional[date], today: Optional[date] = None) -> bool:
    """Return the is_active value implied by an end date"""
    today = today or date.today()
    if end_date is None:
        return True
    return end_date >= today


# ========================================
# STATE TRANSITIONS
# ========================================

def reconcile_rate_card(card: RateCard, today: Optional[date] = None) -> RateCard:
    """Lazy read-time pass: deactivate an active card whose end date has passed"""
    today = today or date.today()
    if card.is_active and card.end_date is not None and card.end_date < today:
        return replace(card, is_active=False)
    return card


def reconcile_rate_cards(cards: Iterable[RateCard],
                         today: Optional[date] = None) -> Tuple[List[RateCard], List[RateCard]]:
    """
    Reconcile a list of cards.

    Returns (all cards after reconciliation, cards that changed). Callers
    persist the changed ones.
    """
    reconciled = []
    changed = []
    for card in cards:
        updated = reconcile_rate_card(card, today)
        if updated is not card:
            logger.info("Rate card %s auto-deactivated (ended %s)", card.ratecard_id, card.end_date)
            changed.append(updated)
        reconciled.append(updated)
    return reconciled, changed


def toggle_rate_card(card: RateCard) -> RateCard:
    """Manual activate/deactivate; activating clears the end date"""
    if card.is_active:
        return replace(card, is_active=False)
    return replace(card, is_active=True, end_date=None)


def apply_rate_card_update(card: RateCard, changes: Dict[str, Any],
                           today: Optional[date] = None) -> RateCard:
    """
    Apply an inline edit and return the new card.

    Editing end_date re-derives is_active in the same update. Validation
    failures raise RateCardValidationError and the original card is
    returned untouched to the caller.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise RateCardValidationError(f"Unknown rate card fields: {', '.join(sorted(unknown))}")

    updates: Dict[str, Any] = {}
    for key in ("min_rate", "max_rate"):
        if key in changes:
            value = changes[key]
            if value is None or isinstance(value, Money):
                updates[key] = value
            else:
                updates[key] = Money(to_decimal(value), RATE_CARD_CURRENCY)

    if "effective_date" in changes:
        if changes["effective_date"] is None:
            raise RateCardValidationError("Effective date is required", field="effective_date")
        updates["effective_date"] = changes["effective_date"]

    if "end_date" in changes:
        updates["end_date"] = changes["end_date"]
        updates["is_active"] = classify_end_date(changes["end_date"], today)
    elif "is_active" in changes:
        updates["is_active"] = bool(changes["is_active"])
        if updates["is_active"] and not card.is_active:
            updates["end_date"] = None

    candidate = replace(card, **updates)
    if "min_rate" in updates or "max_rate" in updates:
        validate_rate_range(candidate.min_rate, candidate.max_rate, allow_empty=card.is_empty)
    validate_dates(candidate.effective_date, candidate.end_date)
    return candidate


def ensure_single_active(card: RateCard, others: Iterable[RateCard]):
    """At most one active card per user and service type"""
    if not card.is_active:
        return
    for other in others:
        if (other.ratecard_id != card.ratecard_id
                and other.is_active
                and other.user_id == card.user_id
                and other.service_type == card.service_type):
            raise RateCardValidationError(
                f"An active rate card (ID: {other.ratecard_id}) already exists for this user "
                f"and service type. Please deactivate it first.",
                field="is_active",
            )


# ========================================
# RESOLUTION
# ========================================

def resolve_rate_card(cards: Iterable[RateCard], user_id: int, service_type: str,
                      on: Optional[date] = None) -> Optional[RateCard]:
    """Return the active card in effect on a date (latest effective date wins)"""
    on = on or date.today()
    candidates = [
        card for card in (reconcile_rate_card(c, on) for c in cards)
        if card.user_id == user_id
        and card.service_type == service_type
        and card.is_active
        and card.effective_date <= on
        and (card.end_date is None or card.end_date >= on)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda card: card.effective_date)


def suggested_rate(card: RateCard) -> Optional[Money]:
    if card.is_empty:
        return None
    return Money((card.min_rate.amount + card.max_rate.amount) / 2, card.min_rate.currency)


async def rate_card_in_currency(card: Optional[RateCard], matter_currency: str,
                                currency_service: CurrencyService) -> Optional[ResolvedRate]:
    """Express a card's INR range in the matter currency"""
    if card is None:
        return None

    target = parse_currency(matter_currency)
    if card.is_empty:
        return ResolvedRate(
            has_rate_card=True,
            has_rates=False,
            min_rate=None,
            max_rate=None,
            suggested_rate=None,
            original_currency=RATE_CARD_CURRENCY,
            target_currency=target,
            conversion_rate=Decimal("1"),
        )

    exchange = await currency_service.get_rate(card.min_rate.currency, target)

    def _convert(money: Money) -> Money:
        return Money(round_for_currency(money.amount * exchange.rate, target), target)

    return ResolvedRate(
        has_rate_card=True,
        has_rates=True,
        min_rate=_convert(card.min_rate),
        max_rate=_convert(card.max_rate),
        suggested_rate=_convert(suggested_rate(card)),
        original_currency=card.min_rate.currency,
        target_currency=target,
        conversion_rate=exchange.rate,
    )
