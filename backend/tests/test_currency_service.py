import asyncio
from decimal import Decimal

import pytest

from lexledger.services.currency_service import (
    CurrencyService,
    LatestRequestGate,
    StaticRateProvider,
    convert_offline,
    is_valid_rate,
    validate_exchange_rates,
)
from lexledger.services.errors import ConversionError, RequestSuperseded
from lexledger.services.money import CurrencyCode, Money


class ExplodingProvider:
    calls = 0

    async def get_rate(self, from_currency, to_currency):
        self.calls += 1
        raise RuntimeError("network down")


async def test_identity_conversion_never_calls_provider():
    provider = ExplodingProvider()
    service = CurrencyService(provider)

    assert await service.convert("100.50", "USD", "usd") == Decimal("100.50")
    rate = await service.get_rate("EUR", "EUR")
    assert rate.rate == Decimal("1")
    assert provider.calls == 0


async def test_provider_failure_becomes_conversion_error():
    service = CurrencyService(ExplodingProvider())
    with pytest.raises(ConversionError):
        await service.convert("10", "USD", "INR")


async def test_convert_uses_direct_and_inverse_rates(currency_service):
    assert await currency_service.convert("10", "USD", "INR") == Decimal("830")
    assert await currency_service.convert("83", "INR", "USD") == Decimal("1")

    money = await currency_service.convert_money(Money("2", "EUR"), "INR")
    assert money == Money("180", "INR")


async def test_out_of_range_rate_is_rejected():
    service = CurrencyService(StaticRateProvider({("USD", "INR"): "20000"}))
    with pytest.raises(ConversionError):
        await service.convert("1", "USD", "INR")


async def test_unknown_pair_is_rejected(currency_service):
    with pytest.raises(ConversionError):
        await currency_service.convert("1", "JPY", "INR")


async def test_convert_many_isolates_failures(currency_service):
    results = await currency_service.convert_many(
        {"fees": ("10", CurrencyCode.USD), "travel": ("5", CurrencyCode.JPY), "same": ("7", CurrencyCode.INR)},
        "INR",
    )

    assert results["fees"] == Decimal("830")
    assert isinstance(results["travel"], ConversionError)
    assert results["same"] == Decimal("7")


def test_is_valid_rate_bounds():
    assert is_valid_rate("83.2")
    assert is_valid_rate(10000)
    assert not is_valid_rate(0)
    assert not is_valid_rate("-1")
    assert not is_valid_rate("10000.01")
    assert not is_valid_rate("abc")
    assert not is_valid_rate(None)


def test_convert_offline_with_rate_table():
    result = convert_offline("100", "USD", "INR", {"USD": 83.5})
    assert result.converted
    assert result.currency == CurrencyCode.INR
    assert result.amount == Decimal("8350")
    assert result.rate == Decimal("83.5")


def test_convert_offline_falls_back_to_original_amount():
    missing = convert_offline("100", "USD", "INR", {})
    assert not missing.converted
    assert missing.amount == Decimal("100")
    assert missing.currency == CurrencyCode.USD

    invalid = convert_offline("100", "USD", "INR", {"USD": "0"})
    assert not invalid.converted


def test_convert_offline_zero_and_identity():
    assert convert_offline("0", "USD", "INR", None).amount == Decimal("0")
    same = convert_offline("42", "INR", "INR", None)
    assert same.converted and same.amount == Decimal("42")


def test_validate_exchange_rates_reports_missing_and_invalid():
    result = validate_exchange_rates(["USD", "INR", "EUR", "USD", "GBP"], {"USD": 83, "EUR": -1}, "INR")

    assert not result.is_valid
    assert result.missing_rates == ["GBP"]
    assert result.invalid_rates == ["EUR"]
    assert len(result.errors) == 2


def test_validate_exchange_rates_ignores_target_currency():
    result = validate_exchange_rates(["INR"], None, "INR")
    assert result.is_valid


def test_rate_table_that_is_not_a_mapping_has_no_rates():
    result = convert_offline("100", "USD", "INR", [{"USD": 83}])
    assert not result.converted
    assert result.amount == Decimal("100")

    validation = validate_exchange_rates(["USD"], ["USD", 83], "INR")
    assert validation.missing_rates == ["USD"]


async def test_live_rate_is_stamped_in_utc(currency_service):
    rate = await currency_service.get_rate("USD", "INR")
    assert rate.as_of.tzinfo is not None
    assert rate.as_of.utcoffset().total_seconds() == 0


async def test_gate_supersedes_older_request():
    gate = LatestRequestGate()
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "stale"

    async def fast():
        return "fresh"

    first = asyncio.ensure_future(gate.run("rate", slow()))
    await asyncio.sleep(0)
    assert await gate.run("rate", fast()) == "fresh"

    with pytest.raises(RequestSuperseded):
        await first


async def test_gate_cancel_rejects_pending_request():
    gate = LatestRequestGate()
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "late"

    pending = asyncio.ensure_future(gate.run("convert", slow()))
    await asyncio.sleep(0)
    gate.cancel("convert")

    with pytest.raises(RequestSuperseded):
        await pending


async def test_gate_keys_are_independent():
    gate = LatestRequestGate()

    async def value(v):
        return v

    results = await asyncio.gather(gate.run("a", value(1)), gate.run("b", value(2)))
    assert results == [1, 2]
