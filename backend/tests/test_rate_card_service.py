from datetime import date, timedelta
from decimal import Decimal

import pytest

from lexledger.services.currency_service import CurrencyService, StaticRateProvider
from lexledger.services.errors import RateCardValidationError
from lexledger.services.money import CurrencyCode, Money
from lexledger.services.rate_card_service import (
    RateCard,
    apply_rate_card_update,
    classify_end_date,
    ensure_single_active,
    rate_card_in_currency,
    reconcile_rate_card,
    reconcile_rate_cards,
    resolve_rate_card,
    suggested_rate,
    toggle_rate_card,
    validate_rate_range,
)

TODAY = date(2026, 3, 15)


def inr(amount):
    return Money(amount, CurrencyCode.INR)


def make_card(**overrides):
    values = dict(
        user_id=1,
        service_type="litigation",
        min_rate=inr("1000"),
        max_rate=inr("2000"),
        effective_date=date(2025, 4, 1),
        end_date=None,
        is_active=True,
        ratecard_id=1,
    )
    values.update(overrides)
    return RateCard(**values)


def test_end_date_classification():
    assert classify_end_date(None, TODAY) is True
    assert classify_end_date(TODAY, TODAY) is True
    assert classify_end_date(TODAY + timedelta(days=1), TODAY) is True
    assert classify_end_date(TODAY - timedelta(days=1), TODAY) is False


def test_expired_card_is_deactivated_on_read():
    card = make_card(min_rate=inr("1000"), max_rate=inr("1000"), end_date=TODAY - timedelta(days=1))

    reconciled, changed = reconcile_rate_cards([card, make_card(ratecard_id=2)], TODAY)

    assert reconciled[0].is_active is False
    assert reconciled[1].is_active is True
    assert [c.ratecard_id for c in changed] == [1]


def test_reconcile_never_reactivates():
    card = make_card(is_active=False, end_date=None)
    assert reconcile_rate_card(card, TODAY) is card


def test_rate_range_validation():
    validate_rate_range(inr("1000"), inr("1000"))
    validate_rate_range(None, None, allow_empty=True)

    with pytest.raises(RateCardValidationError):
        validate_rate_range(None, None)
    with pytest.raises(RateCardValidationError):
        validate_rate_range(inr("1000"), None)
    with pytest.raises(RateCardValidationError):
        validate_rate_range(inr("0"), inr("1000"))
    with pytest.raises(RateCardValidationError):
        validate_rate_range(inr("3000"), inr("2000"))


def test_rejected_update_leaves_card_unchanged():
    card = make_card()

    with pytest.raises(RateCardValidationError):
        apply_rate_card_update(card, {"min_rate": Decimal("5000")}, TODAY)

    assert card.min_rate == inr("1000")
    assert card.max_rate == inr("2000")


def test_editing_end_date_rederives_active_flag():
    card = make_card()

    expired = apply_rate_card_update(card, {"end_date": TODAY - timedelta(days=3)}, TODAY)
    assert expired.is_active is False

    reopened = apply_rate_card_update(expired, {"end_date": None}, TODAY)
    assert reopened.is_active is True


def test_end_date_before_effective_date_is_rejected():
    with pytest.raises(RateCardValidationError):
        apply_rate_card_update(make_card(), {"end_date": date(2025, 1, 1)}, TODAY)


def test_unknown_fields_are_rejected():
    with pytest.raises(RateCardValidationError):
        apply_rate_card_update(make_card(), {"service_type": "advisory"}, TODAY)


def test_activation_clears_end_date():
    card = make_card(is_active=False, end_date=TODAY - timedelta(days=10))

    assert apply_rate_card_update(card, {"is_active": True}, TODAY).end_date is None
    toggled = toggle_rate_card(card)
    assert toggled.is_active is True and toggled.end_date is None
    assert toggle_rate_card(toggled).is_active is False


def test_only_one_active_card_per_user_and_service():
    existing = make_card(ratecard_id=1)
    new = make_card(ratecard_id=2)

    with pytest.raises(RateCardValidationError):
        ensure_single_active(new, [existing])
    ensure_single_active(new, [make_card(ratecard_id=1, is_active=False)])
    ensure_single_active(new, [make_card(ratecard_id=1, service_type="advisory")])
    ensure_single_active(make_card(ratecard_id=2, is_active=False), [existing])


def test_resolve_picks_card_in_effect():
    old = make_card(ratecard_id=1, effective_date=date(2025, 1, 1), is_active=False)
    current = make_card(ratecard_id=2, effective_date=date(2026, 1, 1))
    future = make_card(ratecard_id=3, effective_date=date(2026, 6, 1))

    assert resolve_rate_card([old, current, future], 1, "litigation", TODAY).ratecard_id == 2
    assert resolve_rate_card([current], 1, "advisory", TODAY) is None
    assert resolve_rate_card([current], 2, "litigation", TODAY) is None


def test_suggested_rate_is_midpoint():
    assert suggested_rate(make_card()) == inr("1500")
    assert suggested_rate(make_card(min_rate=None, max_rate=None)) is None


async def test_rate_card_in_matter_currency():
    service = CurrencyService(StaticRateProvider({("INR", "USD"): "0.012"}))

    resolved = await rate_card_in_currency(make_card(), "USD", service)

    assert resolved.has_rates
    assert resolved.min_rate == Money("12.00", "USD")
    assert resolved.max_rate == Money("24.00", "USD")
    assert resolved.suggested_rate == Money("18.00", "USD")
    assert resolved.conversion_rate == Decimal("0.012")
    assert resolved.original_currency == CurrencyCode.INR


async def test_rate_card_in_same_currency_and_empty_cards():
    service = CurrencyService(StaticRateProvider({}))

    same = await rate_card_in_currency(make_card(), "INR", service)
    assert same.min_rate == inr("1000")
    assert same.conversion_rate == Decimal("1")

    empty = await rate_card_in_currency(make_card(min_rate=None, max_rate=None), "USD", service)
    assert empty.has_rate_card and not empty.has_rates

    assert await rate_card_in_currency(None, "USD", service) is None
