"""
LexLedger Practice Billing
Currency Conversion Service

Two conversion paths:
- convert(): async, looks the rate up through a RateProvider and raises
  ConversionError on any failure.
- convert_offline(): synchronous, uses a caller supplied rate table and
  falls back to the unconverted amount (flagged) when a rate is unusable.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Dict, Hashable, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

import requests

from lexledger.core.config import settings
from lexledger.services.errors import ConversionError, RequestSuperseded
from lexledger.services.money import (
    Amount,
    CurrencyCode,
    Money,
    parse_currency,
    quantize_internal,
    to_decimal,
)

logger = logging.getLogger(__name__)

# Sanity bound against corrupted rate data
MAX_EXCHANGE_RATE = Decimal("10000")

RateTable = Mapping[str, Amount]


def is_valid_rate(rate: Optional[Amount]) -> bool:
    if rate is None:
        return False
    try:
        value = to_decimal(rate)
    except Exception:
        return False
    return Decimal("0") < value <= MAX_EXCHANGE_RATE


@dataclass(frozen=True)
class ExchangeRate:
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    rate: Decimal
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class OfflineConversion:
    """Result of a rate-table conversion; converted=False means fallback"""
    amount: Decimal
    currency: CurrencyCode
    converted: bool
    rate: Optional[Decimal] = None


@dataclass
class RateValidation:
    is_valid: bool
    missing_rates: List[str] = field(default_factory=list)
    invalid_rates: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


# ========================================
# RATE PROVIDERS
# ========================================

class RateProvider(Protocol):
    async def get_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode) -> Decimal:
        ...


class HttpRateProvider:
    """
    Fetch live FX rates from an exchange-rate HTTP API.

    The endpoint is expected to answer GET {base_url}/{FROM} with a JSON body
    containing a ``rates`` object keyed by currency code. requests is blocking,
    so calls run in a worker thread.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[int] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.EXCHANGE_RATE_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.EXCHANGE_RATE_API_KEY
        self.timeout = timeout or settings.EXCHANGE_RATE_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _fetch_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode) -> Decimal:
        params = {"apikey": self.api_key} if self.api_key else None
        response = self.session.get(
            f"{self.base_url}/{from_currency.value}",
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        rates = payload.get("rates") or {}
        rate = rates.get(to_currency.value)
        if rate is None:
            raise ConversionError(
                f"Exchange rate provider returned no rate for {from_currency.value} to {to_currency.value}"
            )
        return to_decimal(rate)

    async def get_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode) -> Decimal:
        return await asyncio.to_thread(self._fetch_rate, from_currency, to_currency)


class StaticRateProvider:
    """Rate provider backed by a fixed table of (from, to) pairs"""

    def __init__(self, rates: Mapping[Tuple[str, str], Amount]):
        self._rates = {
            (parse_currency(src), parse_currency(dst)): to_decimal(rate)
            for (src, dst), rate in rates.items()
        }

    async def get_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode) -> Decimal:
        if (from_currency, to_currency) in self._rates:
            return self._rates[(from_currency, to_currency)]
        if (to_currency, from_currency) in self._rates:
            inverse = self._rates[(to_currency, from_currency)]
            if inverse == 0:
                raise ConversionError(f"Zero rate stored for {to_currency.value} to {from_currency.value}")
            return Decimal("1") / inverse
        raise ConversionError(f"No rate for {from_currency.value} to {to_currency.value}")


# ========================================
# CURRENCY SERVICE
# ========================================

class CurrencyService:
    """Online and offline currency conversion"""

    def __init__(self, provider: Optional[RateProvider] = None):
        self.provider = provider or HttpRateProvider()

    async def get_rate(self, from_currency: Union[str, CurrencyCode],
                       to_currency: Union[str, CurrencyCode]) -> ExchangeRate:
        """Look up a live rate; identity pairs never touch the provider"""
        src = parse_currency(from_currency)
        dst = parse_currency(to_currency)
        if src == dst:
            return ExchangeRate(src, dst, Decimal("1"))

        try:
            rate = await self.provider.get_rate(src, dst)
        except ConversionError:
            logger.error("Exchange rate lookup failed for %s->%s", src.value, dst.value)
            raise
        except Exception as e:
            logger.error("Exchange rate lookup failed for %s->%s: %s", src.value, dst.value, e)
            raise ConversionError(f"Failed to fetch exchange rate from {src.value} to {dst.value}") from e

        if not is_valid_rate(rate):
            raise ConversionError(
                f"Invalid exchange rate for {src.value} to {dst.value}: {rate}. "
                f"Rate must be > 0 and <= {MAX_EXCHANGE_RATE}"
            )
        return ExchangeRate(src, dst, to_decimal(rate))

    async def convert(self, amount: Amount, from_currency: Union[str, CurrencyCode],
                      to_currency: Union[str, CurrencyCode]) -> Decimal:
        """Convert an amount using a live rate (4 decimal internal precision)"""
        value = to_decimal(amount)
        if parse_currency(from_currency) == parse_currency(to_currency):
            return value
        exchange = await self.get_rate(from_currency, to_currency)
        return quantize_internal(value * exchange.rate)

    async def convert_money(self, money: Money, to_currency: Union[str, CurrencyCode]) -> Money:
        target = parse_currency(to_currency)
        return Money(await self.convert(money.amount, money.currency, target), target)

    async def convert_many(
        self,
        rows: Mapping[Hashable, Tuple[Amount, Union[str, CurrencyCode]]],
        to_currency: Union[str, CurrencyCode],
    ) -> Dict[Hashable, Union[Decimal, ConversionError]]:
        """
        Convert one amount per row concurrently.

        Results are keyed by row identity; a failed row maps to its
        ConversionError and does not affect the others.
        """
        keys = list(rows.keys())
        results = await asyncio.gather(
            *(self.convert(rows[key][0], rows[key][1], to_currency) for key in keys),
            return_exceptions=True,
        )
        converted: Dict[Hashable, Union[Decimal, ConversionError]] = {}
        for key, result in zip(keys, results):
            if isinstance(result, BaseException) and not isinstance(result, ConversionError):
                if not isinstance(result, Exception):
                    raise result
                result = ConversionError(str(result))
            converted[key] = result
        return converted


def _rates(rate_table: Any) -> RateTable:
    """A rate table that is not a mapping has no usable rates"""
    if isinstance(rate_table, Mapping):
        return rate_table
    if rate_table is not None:
        logger.warning("Ignoring exchange rate table of type %s", type(rate_table).__name__)
    return {}


def convert_offline(amount: Amount, from_currency: Union[str, CurrencyCode],
                    to_currency: Union[str, CurrencyCode],
                    rate_table: Optional[RateTable]) -> OfflineConversion:
    """
    Convert with a rate table of {currency: rate-to-target}.

    A missing or invalid rate returns the original amount with
    converted=False; check validate_exchange_rates() before relying on the
    result for financial totals.
    """
    value = to_decimal(amount)
    src = parse_currency(from_currency)
    dst = parse_currency(to_currency)

    if value == 0:
        return OfflineConversion(Decimal("0"), dst, True)
    if src == dst:
        return OfflineConversion(value, dst, True, Decimal("1"))

    rate = _rates(rate_table).get(src.value)
    if rate is None:
        logger.warning("Missing exchange rate for %s to %s; using unconverted amount", src.value, dst.value)
        return OfflineConversion(value, src, False)
    if not is_valid_rate(rate):
        logger.warning("Invalid exchange rate for %s: %s; using unconverted amount", src.value, rate)
        return OfflineConversion(value, src, False)

    decimal_rate = to_decimal(rate)
    return OfflineConversion(quantize_internal(value * decimal_rate), dst, True, decimal_rate)


def validate_exchange_rates(currencies: Iterable[Union[str, CurrencyCode]],
                            rate_table: Optional[RateTable],
                            target_currency: Union[str, CurrencyCode]) -> RateValidation:
    """Check a rate table covers every currency that needs converting"""
    target = parse_currency(target_currency)
    result = RateValidation(is_valid=True)
    seen = set()
    rates = _rates(rate_table)

    for currency in currencies:
        code = parse_currency(currency)
        if code == target or code in seen:
            continue
        seen.add(code)

        rate = rates.get(code.value)
        if rate is None:
            result.missing_rates.append(code.value)
            result.errors.append(f"Missing exchange rate for {code.value} to {target.value}")
        elif not is_valid_rate(rate):
            result.invalid_rates.append(code.value)
            result.errors.append(
                f"Invalid exchange rate for {code.value}: {rate}. Rate must be > 0 and <= {MAX_EXCHANGE_RATE}"
            )

    result.is_valid = not result.missing_rates and not result.invalid_rates
    return result


# ========================================
# SUPERSEDING REQUESTS
# ========================================

class LatestRequestGate:
    """
    Keep only the newest in-flight request per key.

    Starting a request for a key cancels the previous one. A caller whose
    request was superseded gets RequestSuperseded instead of a stale result,
    even if its coroutine had already finished.
    """

    def __init__(self):
        self._tasks: Dict[Hashable, "asyncio.Task[Any]"] = {}
        self._generation: Dict[Hashable, int] = {}

    async def run(self, key: Hashable, awaitable: Awaitable[Any]) -> Any:
        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            previous.cancel()

        generation = self._generation.get(key, 0) + 1
        self._generation[key] = generation
        task = asyncio.ensure_future(awaitable)
        self._tasks[key] = task

        try:
            result = await task
        except asyncio.CancelledError:
            if self._generation.get(key) != generation:
                logger.debug("Request %s superseded", key)
                raise RequestSuperseded(str(key))
            raise
        finally:
            if self._tasks.get(key) is task:
                del self._tasks[key]

        if self._generation.get(key) != generation:
            logger.debug("Discarding stale result for %s", key)
            raise RequestSuperseded(str(key))
        return result

    def cancel(self, key: Hashable):
        task = self._tasks.get(key)
        self._generation[key] = self._generation.get(key, 0) + 1
        if task is not None and not task.done():
            task.cancel()


currency_service = CurrencyService()
