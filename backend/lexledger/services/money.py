"""
LexLedger Practice Billing
Money & Currency Catalogue

Money values carry their currency everywhere. Adding or comparing amounts in
different currencies raises CurrencyMismatchError; the only way to combine
them is an explicit conversion through the currency service.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from lexledger.services.errors import CurrencyMismatchError, ValidationError


class CurrencyCode(str, Enum):
    """Supported billing currencies"""
    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    AED = "AED"
    JPY = "JPY"


@dataclass(frozen=True)
class CurrencyInfo:
    symbol: str
    name: str
    precision: int


CURRENCY_INFO: Dict[CurrencyCode, CurrencyInfo] = {
    CurrencyCode.INR: CurrencyInfo("₹", "Indian Rupee", 2),
    CurrencyCode.USD: CurrencyInfo("$", "US Dollar", 2),
    CurrencyCode.EUR: CurrencyInfo("€", "Euro", 2),
    CurrencyCode.GBP: CurrencyInfo("£", "British Pound", 2),
    CurrencyCode.AED: CurrencyInfo("د.إ", "UAE Dirham", 2),
    CurrencyCode.JPY: CurrencyInfo("¥", "Japanese Yen", 0),
}

# Expenses are always recorded in the firm's home currency
EXPENSE_CURRENCY = CurrencyCode.INR

# Internal precision for conversions; display rounds to the currency precision
INTERNAL_PLACES = Decimal("0.0001")

Amount = Union[Decimal, int, float, str]


def parse_currency(code: Union[str, CurrencyCode, None],
                   default: Optional[CurrencyCode] = None) -> CurrencyCode:
    """Return the CurrencyCode for a string, or raise ValidationError"""
    if isinstance(code, CurrencyCode):
        return code
    if code is None or code == "":
        if default is not None:
            return default
        raise ValidationError("Currency is required", field="currency")
    normalized = str(code).strip().upper()
    if normalized not in CurrencyCode._value2member_map_:
        raise ValidationError(f"Unsupported currency: {code}", field="currency")
    return CurrencyCode(normalized)


def to_decimal(value: Amount) -> Decimal:
    """Convert user/JSON input to Decimal without float artefacts"""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def quantize_internal(value: Decimal) -> Decimal:
    return value.quantize(INTERNAL_PLACES, rounding=ROUND_HALF_UP)


def round_for_currency(value: Decimal, currency: CurrencyCode) -> Decimal:
    precision = CURRENCY_INFO[currency].precision
    exponent = Decimal(1).scaleb(-precision)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def _group_digits(digits: str, indian: bool) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    size = 2 if indian else 3
    groups = []
    while len(head) > size:
        groups.insert(0, head[-size:])
        head = head[:-size]
    groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount: Amount, currency: Union[str, CurrencyCode],
                    show_symbol: bool = True) -> str:
    """
    Format an amount for display.

    INR uses Indian lakh grouping (12,34,567.00); the other currencies use
    thousands grouping. JPY renders without decimals.
    """
    code = parse_currency(currency)
    info = CURRENCY_INFO[code]
    value = round_for_currency(to_decimal(amount), code)

    sign = "-" if value < 0 else ""
    text = f"{abs(value):.{info.precision}f}"
    if info.precision:
        whole, fraction = text.split(".")
        formatted = f"{_group_digits(whole, code == CurrencyCode.INR)}.{fraction}"
    else:
        formatted = _group_digits(text, code == CurrencyCode.INR)

    if not show_symbol:
        return f"{sign}{formatted}"
    return f"{sign}{info.symbol}{formatted}"


def format_amount_with_code(amount: Amount, currency: Union[str, CurrencyCode],
                            show_code: bool = True) -> str:
    """Format as e.g. '$1,200.00 USD'"""
    formatted = format_currency(amount, currency)
    if not show_code:
        return formatted
    return f"{formatted} {parse_currency(currency).value}"


@dataclass(frozen=True)
class Money:
    """An amount in a single currency"""
    amount: Decimal
    currency: CurrencyCode

    def __post_init__(self):
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", parse_currency(self.currency))

    @classmethod
    def zero(cls, currency: Union[str, CurrencyCode]) -> "Money":
        return cls(Decimal("0"), parse_currency(currency))

    def _require_same(self, other: "Money"):
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency.value, other.currency.value)

    def __add__(self, other: "Money") -> "Money":
        self._require_same(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._require_same(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Amount) -> "Money":
        if isinstance(factor, Money):
            raise TypeError("Cannot multiply Money by Money")
        return Money(quantize_internal(self.amount * to_decimal(factor)), self.currency)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._require_same(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._require_same(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._require_same(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._require_same(other)
        return self.amount >= other.amount

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0


class MoneyBuckets:
    """
    Per-currency totals.

    Used wherever amounts from several currencies are aggregated for
    display. Totals are never blended across currencies; single() returns
    the total only when exactly one currency is present.
    """

    def __init__(self, items: Optional[Iterable[Money]] = None):
        self._totals: Dict[CurrencyCode, Decimal] = {}
        for money in items or []:
            self.add(money)

    def add(self, money: Money) -> "MoneyBuckets":
        self._totals[money.currency] = self._totals.get(money.currency, Decimal("0")) + money.amount
        return self

    def get(self, currency: Union[str, CurrencyCode]) -> Money:
        code = parse_currency(currency)
        return Money(self._totals.get(code, Decimal("0")), code)

    @property
    def currencies(self) -> List[CurrencyCode]:
        return list(self._totals.keys())

    @property
    def is_empty(self) -> bool:
        return not self._totals

    @property
    def is_single_currency(self) -> bool:
        return len(self._totals) <= 1

    def single(self, default_currency: Union[str, CurrencyCode, None] = None) -> Money:
        """Return the only bucket; raise CurrencyMismatchError if there are several"""
        if not self._totals:
            if default_currency is None:
                raise ValidationError("No amounts to total")
            return Money.zero(default_currency)
        if len(self._totals) > 1:
            codes = [c.value for c in self._totals]
            raise CurrencyMismatchError(codes[0], codes[1])
        currency, amount = next(iter(self._totals.items()))
        return Money(amount, currency)

    def items(self) -> List[Tuple[CurrencyCode, Decimal]]:
        return list(self._totals.items())

    def __iter__(self) -> Iterator[Money]:
        for currency, amount in self._totals.items():
            yield Money(amount, currency)

    def __len__(self) -> int:
        return len(self._totals)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MoneyBuckets):
            return NotImplemented
        return self._totals == other._totals

    def __repr__(self) -> str:
        inner = ", ".join(f"{c.value}={a}" for c, a in self._totals.items())
        return f"MoneyBuckets({inner})"

    def to_dict(self) -> Dict[str, str]:
        return {currency.value: str(amount) for currency, amount in self._totals.items()}
