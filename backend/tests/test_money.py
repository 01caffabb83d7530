from decimal import Decimal

import pytest

from lexledger.services.errors import CurrencyMismatchError, ValidationError
from lexledger.services.money import (
    CurrencyCode,
    Money,
    MoneyBuckets,
    format_amount_with_code,
    format_currency,
    parse_currency,
    round_for_currency,
)


def test_inr_uses_lakh_grouping():
    assert format_currency(Decimal("1234567.5"), "INR") == "₹12,34,567.50"
    assert format_currency("100000", CurrencyCode.INR) == "₹1,00,000.00"
    assert format_currency("999", "INR") == "₹999.00"


def test_other_currencies_use_thousands_grouping():
    assert format_currency("1234567.5", "USD") == "$1,234,567.50"
    assert format_currency("1234.6", "JPY") == "¥1,235"
    assert format_currency("-1500", "USD") == "-$1,500.00"
    assert format_currency("1500", "GBP", show_symbol=False) == "1,500.00"


def test_format_with_code():
    assert format_amount_with_code("1200", "USD") == "$1,200.00 USD"


def test_parse_currency():
    assert parse_currency("usd") == CurrencyCode.USD
    assert parse_currency(None, default=CurrencyCode.INR) == CurrencyCode.INR
    with pytest.raises(ValidationError):
        parse_currency("XYZ")
    with pytest.raises(ValidationError):
        parse_currency("")


def test_round_for_currency():
    assert round_for_currency(Decimal("10.005"), CurrencyCode.USD) == Decimal("10.01")
    assert round_for_currency(Decimal("10.5"), CurrencyCode.JPY) == Decimal("11")


def test_money_arithmetic_same_currency():
    total = Money("1.10", "USD") + Money(Decimal("2.20"), CurrencyCode.USD)
    assert total == Money(Decimal("3.30"), CurrencyCode.USD)
    assert (total - Money("0.30", "USD")).amount == Decimal("3.00")
    assert (Money("200", "USD") * 6).amount == Decimal("1200")


def test_money_refuses_mixed_currencies():
    with pytest.raises(CurrencyMismatchError):
        Money("1", "USD") + Money("1", "INR")
    with pytest.raises(CurrencyMismatchError):
        Money("1", "USD") < Money("1", "EUR")


def test_buckets_keep_currencies_apart():
    buckets = MoneyBuckets([Money("10", "USD"), Money("5", "INR")])
    buckets.add(Money("2", "USD"))

    assert buckets.to_dict() == {"USD": "12", "INR": "5"}
    assert not buckets.is_single_currency
    assert buckets.get("EUR").is_zero
    with pytest.raises(CurrencyMismatchError):
        buckets.single()


def test_buckets_single():
    assert MoneyBuckets([Money("4", "EUR")]).single() == Money("4", "EUR")
    assert MoneyBuckets().single(default_currency="INR") == Money.zero("INR")
    with pytest.raises(ValidationError):
        MoneyBuckets().single()
