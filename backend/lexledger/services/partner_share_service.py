"""
LexLedger Practice Billing
Partner Share Calculator

Each partner share is an independent percentage of the invoice's final
amount. Shares are not normalised and need not total 100%; the totals are
reported so the UI can flag a partial allocation.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from lexledger.services.errors import PartnerShareError
from lexledger.services.money import Money, to_decimal


@dataclass(frozen=True)
class PartnerShare:
    user_id: int
    percentage: Decimal
    user_name: str = ""
    user_email: Optional[str] = None


@dataclass(frozen=True)
class PartnerShareLine:
    share: PartnerShare
    amount: Money


@dataclass(frozen=True)
class PartnerSplit:
    rows: List[PartnerShareLine]
    total_percentage: Decimal
    total_amount: Money

    @property
    def is_complete(self) -> bool:
        return self.total_percentage == 100


def share_amount(final_amount: Money, percentage) -> Money:
    return final_amount * (to_decimal(percentage) / 100)


def calculate_partner_shares(final_amount: Money, shares: Iterable[PartnerShare]) -> PartnerSplit:
    rows = []
    total_percentage = Decimal("0")
    total_amount = Money.zero(final_amount.currency)

    for share in shares:
        percentage = to_decimal(share.percentage)
        if percentage < 0 or percentage > 100:
            raise PartnerShareError(
                f"Partner share for user {share.user_id} must be between 0 and 100, got {percentage}",
                field="percentage",
            )
        amount = share_amount(final_amount, percentage)
        rows.append(PartnerShareLine(share=share, amount=amount))
        total_percentage += percentage
        total_amount = total_amount + amount

    return PartnerSplit(rows=rows, total_percentage=total_percentage, total_amount=total_amount)
